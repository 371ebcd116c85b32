# display.py
# All terminal output for the planning / replay engine.
#
# This module owns presentation entirely. The engine never formats strings.
# It calls named functions here, and only when its `debug` option is set.
#
# Colour language:
#   cyan    - routing events (fingerprint, cache lookups)
#   blue    - planner calls and turns
#   yellow  - cache writes and replays
#   green   - success / final outcome
#   red     - failures and halts
#   magenta - action dispatches (Action / Result)

import json
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from auto_playwright.models import (
    AssistantMessage,
    InvocationResult,
    TaskOutcome,
    ToolInvocation,
)

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _result_text(result: InvocationResult) -> str:
    if result.error is not None:
        return f"{result.error_kind}: {result.error}"
    return json.dumps(result.value, default=str)


# ---------------------------------------------------------------------------
# Task entry and cache routing
# ---------------------------------------------------------------------------


def task_received(task: str, key: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW TASK[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{task}[/white]\n[dim]fingerprint {key}[/dim]",
            title=_label("TASK", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def cache_hit(path: Path) -> None:
    console.print(_label("CACHE", "cyan"), f"[cyan] Hit in[/cyan] [white]{path}[/white]. Replaying.")


def cache_miss(path: Path) -> None:
    console.print(_label("CACHE", "cyan"), f"[cyan] Miss in[/cyan] [white]{path}[/white]. Planning live.")


def cache_stale(missing: list[str]) -> None:
    console.print(
        _label("CACHE", "red"),
        f"[red] Cached trace names unknown actions {missing}. Planning live.[/red]",
    )


def placeholders_unresolved(keys: list[str]) -> None:
    names = ", ".join(f"@{{{key}}}" for key in keys)
    console.print(
        _label("CACHE", "red"),
        f"[red] No parameter value for {names}. Replaying the placeholder text as-is.[/red]",
    )


def trace_saved(path: Path, turns: int) -> None:
    console.print()
    console.print(
        _label("CACHE", "yellow"),
        f"[yellow] Saved {turns} turn(s) to[/yellow] [white]{path}[/white]",
    )


# ---------------------------------------------------------------------------
# Planner loop
# ---------------------------------------------------------------------------


def calling_planner(turn: int, max_turns: int) -> None:
    console.print()
    console.print(_label("PLANNER", "blue"), f"[blue] → Requesting turn {turn + 1}/{max_turns}…[/blue]")


def turn_received(message: AssistantMessage) -> None:
    if message.content:
        console.print(f"  [blue]Says[/blue]     [dim white]{_mono(message.content, 200)}[/dim white]")
    if not message.invocations:
        console.print("  [blue]No tool invocations in this turn.[/blue]")


def invocation_dispatched(result: InvocationResult) -> None:
    invocation = result.invocation
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{invocation.name}[/bold white]"
        f"  [dim]{_mono(invocation.arguments, 100)}[/dim]"
    )
    style = "white" if result.ok else "red"
    console.print(f"  [magenta]Result[/magenta]   [{style}]{_mono(_result_text(result), 140)}[/{style}]")


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


def replay_start(total: int) -> None:
    console.print()
    console.print(Rule(f"[yellow]REPLAY - {total} invocation(s)[/yellow]", style="yellow"))


def replay_invocation(index: int, total: int, invocation: ToolInvocation) -> None:
    console.print(
        f"[bold yellow]  [{index + 1}/{total}][/bold yellow]  Running tool "
        f"[white]{invocation.name}[/white]"
    )


# ---------------------------------------------------------------------------
# Summary and final outcome
# ---------------------------------------------------------------------------


def transcript_summary(results: list[InvocationResult]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Action", width=24)
    table.add_column("OK", justify="center", width=4)
    table.add_column("Result", style="dim white")

    for index, result in enumerate(results):
        ok = "[bold green]✓[/bold green]" if result.ok else "[bold red]✗[/bold red]"
        table.add_row(str(index + 1), result.invocation.name, ok, _mono(_result_text(result), 60))

    console.print(Panel(table, title="[dim]TRANSCRIPT[/dim]", border_style="dim", padding=(0, 1)))


def final_outcome(outcome: TaskOutcome) -> None:
    color = "red" if outcome.kind == "error" else "green"
    body = outcome.error_message if outcome.kind == "error" else outcome.value
    console.print()
    console.print(
        Panel(
            f"[white]{body}[/white]",
            title=_label(f"RESULT: {outcome.kind.upper()}", color),
            border_style=color,
            padding=(1, 2),
        )
    )


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{reason}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
