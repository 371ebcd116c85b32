# session.py
# Live plan loop against the planner service.
#
# The planner is a passive responder. This class owns the conversation, the
# dispatch of every invocation through the registry, and the decision to
# stop. Invocations run strictly one after another, even when a single turn
# requests several.
#
# States:
#   AWAITING_MODEL -> (invocations) -> DISPATCHING -> AWAITING_MODEL ...
#   -> TERMINAL  once a turn is empty or a result-class invocation succeeds.

import enum
import json

from auto_playwright import display
from auto_playwright.actions import ActionRegistry
from auto_playwright.config import DEFAULT_MAX_TURNS
from auto_playwright.errors import NoResultError
from auto_playwright.models import (
    AssistantMessage,
    InvocationResult,
    Message,
    PlannerRequest,
    Snapshot,
    TaskOutcome,
    TaskTranscript,
    ToolResultMessage,
)
from auto_playwright.planner import PlannerService
from auto_playwright.recorder import TraceRecorder

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You operate a web page through the provided functions.

* When creating CSS selectors, ensure they are unique and specific enough to select only one \
element, even if there are multiple elements of the same type (like multiple h1 elements).
* Avoid using generic tags like 'h1' alone. Instead, combine them with other attributes or \
structural relationships to form a unique selector.
* You must not derive data from the page if you are able to do so by using one of the provided \
functions, e.g. locator_evaluate.
* After you complete the task, you MUST call one of the result functions:
  - Call resultAction() if you were asked to perform an action (like clicking or selecting an option)
  - Call resultQuery() with the extracted data if you were asked to extract information
  - Call resultAssertion() if you were asked to check or verify something
  - Call resultError() if the task cannot be completed\
"""


def task_prompt(task: str, snapshot: Snapshot) -> str:
    return f"This is your task: {task}\n\nWebpage snapshot:\n\n```\n{snapshot.dom}\n```\n"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result_content(result: InvocationResult) -> str:
    """Serialize a dispatch result as the tool message fed back to the planner."""
    if result.error is not None:
        return json.dumps({"error": result.error, "kind": result.error_kind})
    return json.dumps(result.value, default=str)


def classify_outcome(results: list[InvocationResult]) -> TaskOutcome:
    """
    Classify a finished run by its last successful result-class invocation.

    Raises NoResultError when there is none.
    """
    for result in reversed(results):
        if not result.is_final:
            continue
        value = result.value or {}
        name = result.invocation.name
        if name == "resultQuery":
            return TaskOutcome(kind="query", query=value.get("query"))
        if name == "resultAssertion":
            return TaskOutcome(kind="assertion", assertion=value.get("assertion"))
        if name == "resultError":
            return TaskOutcome(kind="error", error_message=value.get("errorMessage"))
        return TaskOutcome(kind="action")
    raise NoResultError("The task finished without calling a result function.")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionState(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING = "dispatching"
    TERMINAL = "terminal"


class PlannerSession:
    """
    One live plan loop for one task on one page.

    Example:
        session = PlannerSession(planner, ActionRegistry(page), recorder=TraceRecorder())
        transcript = await session.run(task, key, snapshot)
    """

    def __init__(
        self,
        planner: PlannerService,
        registry: ActionRegistry,
        recorder: TraceRecorder | None = None,
        *,
        debug: bool = False,
        max_turns: int = DEFAULT_MAX_TURNS,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._planner = planner
        self._registry = registry
        self._recorder = recorder or TraceRecorder()
        self._debug = debug
        self._max_turns = max_turns
        self._system_prompt = system_prompt
        self.state = SessionState.AWAITING_MODEL

    async def _dispatch_turn(
        self, message: AssistantMessage, history: list[Message]
    ) -> list[InvocationResult]:
        self.state = SessionState.DISPATCHING
        results: list[InvocationResult] = []
        for invocation in message.invocations:
            # UnknownActionError propagates: the tool set and registry are out of sync.
            result = await self._registry.dispatch(invocation)
            history.append(ToolResultMessage(invocation_id=invocation.id, content=_result_content(result)))
            results.append(result)
            if self._debug:
                display.invocation_dispatched(result)
        self._recorder.record_turn(results)
        return results

    async def run(self, task: str, fingerprint: str, snapshot: Snapshot) -> TaskTranscript:
        """
        Drive the loop to completion and return the transcript.

        Raises NoResultError when the planner stops, or the turn limit is hit,
        without a result-class invocation having succeeded.
        """
        tools = self._registry.tool_definitions()
        user_prompt = task_prompt(task, snapshot)
        history: list[Message] = []
        results: list[InvocationResult] = []

        for turn in range(self._max_turns):
            self.state = SessionState.AWAITING_MODEL
            if self._debug:
                display.calling_planner(turn, self._max_turns)

            message = await self._planner.complete(
                PlannerRequest(
                    system_prompt=self._system_prompt,
                    user_prompt=user_prompt,
                    history=list(history),
                    tools=tools,
                )
            )
            history.append(message)
            if self._debug:
                display.turn_received(message)

            if not message.invocations:
                break

            turn_results = await self._dispatch_turn(message, history)
            results.extend(turn_results)
            if any(result.is_final for result in turn_results):
                break
        else:
            self.state = SessionState.TERMINAL
            raise NoResultError(
                f"No result function was called within {self._max_turns} planner turn(s)."
            )

        self.state = SessionState.TERMINAL
        outcome = classify_outcome(results)
        return TaskTranscript(
            task=task,
            fingerprint=fingerprint,
            replayed=False,
            results=results,
            trace=self._recorder.trace,
            outcome=outcome,
        )
