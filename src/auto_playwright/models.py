# models.py
# Data contracts for the planning / execution / replay engine.
# No business logic lives here. Pure schema and validation.

import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, RootModel

RESULT_ACTIONS: frozenset[str] = frozenset(
    {"resultAction", "resultQuery", "resultAssertion", "resultError"}
)


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


# ---------------------------------------------------------------------------
# Invocations and traces
# ---------------------------------------------------------------------------


class ToolInvocation(BaseModel):
    """A single named action call, as chosen by the planner or read from a trace."""

    id: str = Field(
        default_factory=_call_id,
        exclude=True,
        description="Correlates the invocation with its tool result. Never persisted.",
    )
    name: str = Field(..., description="Action name. Must exist in the registry.")
    arguments: str = Field(default="{}", description="JSON-encoded action arguments.")

    @property
    def is_result(self) -> bool:
        return self.name in RESULT_ACTIONS


Turn = Annotated[list[ToolInvocation], Field(min_length=1)]
Trace = list[Turn]


class InvocationResult(BaseModel):
    """Outcome of dispatching one invocation. Exactly one per invocation."""

    invocation: ToolInvocation
    value: Any = None
    error: str | None = None
    error_kind: Literal["ValidationError", "ExecutionError"] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_final(self) -> bool:
        return self.ok and self.invocation.is_result


class CacheEntry(BaseModel):
    fingerprint: str
    trace: list[Turn]


class CacheFile(RootModel[dict[str, CacheEntry]]):
    """Every entry persisted in one cache file, keyed by fingerprint."""


# ---------------------------------------------------------------------------
# Planner boundary
# ---------------------------------------------------------------------------


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any] = Field(..., description="JSON schema of the action input.")


class AssistantMessage(BaseModel):
    """One planner turn. An empty `invocations` list ends the plan loop."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    invocations: list[ToolInvocation] = Field(default_factory=list)


class ToolResultMessage(BaseModel):
    role: Literal["tool"] = "tool"
    invocation_id: str
    content: str


Message = Annotated[Union[AssistantMessage, ToolResultMessage], Field(discriminator="role")]


class PlannerRequest(BaseModel):
    system_prompt: str | None = None
    user_prompt: str
    history: list[Message] = Field(default_factory=list)
    tools: list[ToolDefinition]


class Snapshot(BaseModel):
    dom: str


# ---------------------------------------------------------------------------
# Task outcome
# ---------------------------------------------------------------------------


class TaskOutcome(BaseModel):
    """Classification of a finished task, taken from its last result-class invocation."""

    kind: Literal["action", "query", "assertion", "error"]
    query: str | None = None
    assertion: bool | None = None
    error_message: str | None = None

    @property
    def value(self) -> str | bool | None:
        if self.kind == "query":
            return self.query
        if self.kind == "assertion":
            return self.assertion
        return None


class TaskTranscript(BaseModel):
    """Everything a finished run produced, live or replayed."""

    task: str
    fingerprint: str
    replayed: bool = False
    results: list[InvocationResult] = Field(default_factory=list)
    trace: list[Turn] = Field(default_factory=list)
    outcome: TaskOutcome
