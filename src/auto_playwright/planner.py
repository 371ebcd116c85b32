# planner.py
# Planner service boundary: turns a task, a snapshot and the action set into
# tool invocations, one turn per call.
#
# The session only depends on the PlannerService protocol. OpenAIPlanner is
# the production implementation over any OpenAI-compatible endpoint.

import os
from typing import Protocol

from openai import AsyncOpenAI

from auto_playwright.config import DEFAULT_DEEPSEEK_BASE_URL, StepOptions
from auto_playwright.models import (
    AssistantMessage,
    PlannerRequest,
    ToolInvocation,
    ToolResultMessage,
)


class PlannerService(Protocol):
    async def complete(self, request: PlannerRequest) -> AssistantMessage:
        """Return the next assistant turn for the conversation in `request`."""
        ...


def _to_openai_messages(request: PlannerRequest) -> list[dict]:
    messages: list[dict] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.append({"role": "user", "content": request.user_prompt})

    for message in request.history:
        if isinstance(message, AssistantMessage):
            entry: dict = {"role": "assistant", "content": message.content}
            if message.invocations:
                entry["tool_calls"] = [
                    {
                        "id": invocation.id,
                        "type": "function",
                        "function": {"name": invocation.name, "arguments": invocation.arguments},
                    }
                    for invocation in message.invocations
                ]
            messages.append(entry)
        elif isinstance(message, ToolResultMessage):
            messages.append(
                {"role": "tool", "tool_call_id": message.invocation_id, "content": message.content}
            )
        else:
            raise TypeError(f"Unsupported conversation message: {type(message).__name__}")

    return messages


def _to_openai_tools(request: PlannerRequest) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in request.tools
    ]


class OpenAIPlanner:
    """
    Chat-completions planner with native tool calling.

    Example:
        planner = OpenAIPlanner.from_options(StepOptions(model="gpt-4o"))
        turn = await planner.complete(request)
    """

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    @classmethod
    def from_options(cls, options: StepOptions) -> "OpenAIPlanner":
        if options.provider == "deepseek":
            client = AsyncOpenAI(
                api_key=options.deepseek_api_key or os.getenv("DEEPSEEK_API_KEY"),
                base_url=options.deepseek_base_url or DEFAULT_DEEPSEEK_BASE_URL,
            )
        else:
            client = AsyncOpenAI(
                api_key=options.openai_api_key or os.getenv("OPENAI_API_KEY"),
                base_url=options.openai_base_url,
                default_query=options.openai_default_query,
                default_headers=options.openai_default_headers,
            )
        return cls(client, options.resolved_model())

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, request: PlannerRequest) -> AssistantMessage:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=_to_openai_messages(request),
            tools=_to_openai_tools(request),
        )
        message = response.choices[0].message
        invocations = [
            ToolInvocation(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in message.tool_calls or []
        ]
        return AssistantMessage(content=message.content, invocations=invocations)
