# recorder.py
# Builds a replayable trace from the invocations of a live plan loop.
#
# Arguments are stored verbatim, except for the fields listed in
# TEMPLATED_FIELDS: there, every occurrence of a caller-supplied parameter
# value is replaced by its @{key} placeholder so the trace can be replayed
# with different values.

import json

from auto_playwright.models import InvocationResult, ToolInvocation, Trace

# action name -> argument field that carries caller literals
TEMPLATED_FIELDS: dict[str, str] = {
    "locator_fill": "value",
}


class TraceRecorder:
    """
    Accumulates one turn at a time.

    Only invocations whose dispatch succeeded are kept: a rejected or failed
    call left nothing behind on the page for a replay to reproduce. A turn
    with no successful invocation is not recorded at all.
    """

    def __init__(self, parameters: dict[str, str] | None = None) -> None:
        self._parameters = {key: value for key, value in (parameters or {}).items() if value}
        self._trace: Trace = []

    @property
    def trace(self) -> Trace:
        return [list(turn) for turn in self._trace]

    def record_turn(self, results: list[InvocationResult]) -> None:
        turn = [self.template(result.invocation) for result in results if result.ok]
        if turn:
            self._trace.append(turn)

    def template(self, invocation: ToolInvocation) -> ToolInvocation:
        field = TEMPLATED_FIELDS.get(invocation.name)
        if field is None or not self._parameters:
            return ToolInvocation(name=invocation.name, arguments=invocation.arguments)

        args = json.loads(invocation.arguments or "{}")
        literal = args.get(field)
        if not isinstance(literal, str):
            return ToolInvocation(name=invocation.name, arguments=invocation.arguments)

        for key, value in self._parameters.items():
            literal = literal.replace(value, f"@{{{key}}}")
        args[field] = literal
        return ToolInvocation(name=invocation.name, arguments=json.dumps(args, ensure_ascii=False))
