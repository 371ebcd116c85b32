# replay.py
# Re-executes a recorded trace against the registry without the planner.
#
# Turn order and within-turn order are preserved exactly, one invocation in
# flight at a time. There is no recovery path without a planner, so the
# first failed invocation ends the replay.

from auto_playwright import display
from auto_playwright.actions import ActionRegistry
from auto_playwright.errors import ExecutionError, UnknownActionError, ValidationError
from auto_playwright.models import InvocationResult, ToolInvocation, Trace


def _raise_for_result(result: InvocationResult) -> None:
    if result.error_kind == "ValidationError":
        raise ValidationError(result.error)
    if result.error_kind == "ExecutionError":
        raise ExecutionError(result.error)


class ReplayEngine:
    def __init__(self, registry: ActionRegistry, *, debug: bool = False) -> None:
        self._registry = registry
        self._debug = debug

    async def replay(self, trace: Trace) -> list[InvocationResult]:
        """
        Dispatch every recorded invocation in order and return their results.

        Raises UnknownActionError if the trace names an action the registry
        lacks, and ValidationError / ExecutionError for the first invocation
        that fails.
        """
        invocations = [invocation for turn in trace for invocation in turn]
        total = len(invocations)
        if self._debug:
            display.replay_start(total)

        results: list[InvocationResult] = []
        for index, recorded in enumerate(invocations):
            if recorded.name not in self._registry:
                raise UnknownActionError(
                    f"Cached trace calls '{recorded.name}', which is not in the registry."
                )
            if self._debug:
                display.replay_invocation(index, total, recorded)

            # Fresh invocation id per run; ids are never persisted.
            invocation = ToolInvocation(name=recorded.name, arguments=recorded.arguments)
            result = await self._registry.dispatch(invocation)
            if self._debug:
                display.invocation_dispatched(result)
                if not result.ok:
                    display.halt(f"Replay stopped at invocation {index + 1}/{total}: {result.error}")
            _raise_for_result(result)
            results.append(result)

        return results
