# auto.py
# Public entry points. Control flow:
#
#   task -> fingerprint -> cache lookup
#        hit:  replay the cached trace against a fresh registry
#        miss: snapshot -> live plan loop (recording) -> persist trace
#
# Nothing is written to the cache unless a live run finished with a
# non-error outcome, so an interrupted run leaves the cache untouched.

from playwright.async_api import Page

from auto_playwright import display
from auto_playwright.actions import ActionRegistry
from auto_playwright.cache import CacheStore, unresolved_placeholders
from auto_playwright.config import MAX_TASK_CHARS, StepOptions
from auto_playwright.errors import ConfigurationError, TaskFailedError
from auto_playwright.fingerprint import fingerprint as compute_fingerprint
from auto_playwright.models import CacheEntry, TaskTranscript
from auto_playwright.planner import OpenAIPlanner, PlannerService
from auto_playwright.recorder import TraceRecorder
from auto_playwright.replay import ReplayEngine
from auto_playwright.session import PlannerSession, classify_outcome
from auto_playwright.snapshot import get_snapshot

ELEMENT_ID_PREFIX_CHARS = 12


def apply_parameters(task: str, parameters: dict[str, str] | None) -> str:
    """Replace every @{key} in the task text with the caller's value."""
    for key, value in (parameters or {}).items():
        task = task.replace(f"@{{{key}}}", value)
    return task


async def _replay(
    task: str,
    key: str,
    entry: CacheEntry,
    registry: ActionRegistry,
    options: StepOptions,
) -> TaskTranscript:
    results = await ReplayEngine(registry, debug=options.debug).replay(entry.trace)
    return TaskTranscript(
        task=task,
        fingerprint=key,
        replayed=True,
        results=results,
        trace=entry.trace,
        outcome=classify_outcome(results),
    )


async def run_task(
    task: str,
    page: Page | None,
    options: StepOptions | None = None,
    parameters: dict[str, str] | None = None,
    cache_name: str | None = None,
    *,
    planner: PlannerService | None = None,
) -> TaskTranscript:
    """
    Execute `task` on `page`, replaying a cached trace when one exists.

    `parameters` maps placeholder keys to this run's values: @{key} in the
    task text and in cached traces is replaced with them, and recorded fills
    of those values are stored as @{key}. `cache_name` picks a readable cache
    file name and is also folded into the fingerprint.

    Raises ConfigurationError (missing page, task too long, missing cache
    directory) before the planner is ever contacted.
    """
    if page is None:
        raise ConfigurationError("run_task() is missing the required `page` argument.")
    if len(task) > MAX_TASK_CHARS:
        raise ConfigurationError(
            f"Provided task string is too long, max length is {MAX_TASK_CHARS} chars."
        )

    options = options or StepOptions()
    key = compute_fingerprint(task, cache_name)
    registry = ActionRegistry(page, id_prefix=key[:ELEMENT_ID_PREFIX_CHARS])
    store = CacheStore(options.cache_path) if options.cache_path else None

    if options.debug:
        display.task_received(task, key)

    if store is not None:
        entry = store.lookup(key, cache_name, parameters)
        file_path = store.resolve(key, cache_name)
        if entry is None:
            if options.debug:
                display.cache_miss(file_path)
        else:
            missing = registry.missing_actions(entry.trace)
            if not missing:
                if options.debug:
                    display.cache_hit(file_path)
                    unresolved = unresolved_placeholders(entry.trace)
                    if unresolved:
                        display.placeholders_unresolved(unresolved)
                transcript = await _replay(task, key, entry, registry, options)
                if options.debug:
                    display.final_outcome(transcript.outcome)
                return transcript
            if options.debug:
                display.cache_stale(missing)

    snapshot = await get_snapshot(page)
    session = PlannerSession(
        planner or OpenAIPlanner.from_options(options),
        registry,
        TraceRecorder(parameters),
        debug=options.debug,
        max_turns=options.max_turns,
    )
    transcript = await session.run(apply_parameters(task, parameters), key, snapshot)

    if options.debug:
        display.transcript_summary(transcript.results)

    if store is not None and transcript.outcome.kind != "error":
        saved = store.save(key, transcript.trace, cache_name)
        if options.debug:
            display.trace_saved(saved, len(transcript.trace))

    if options.debug:
        display.final_outcome(transcript.outcome)
    return transcript


async def auto(
    task: str,
    page: Page | None,
    options: StepOptions | None = None,
    parameters: dict[str, str] | None = None,
    cache_name: str | None = None,
    *,
    planner: PlannerService | None = None,
) -> str | bool | None:
    """
    Run `task` and return its value: the extracted text for queries, a bool
    for assertions, None for actions.

    Raises TaskFailedError when the planner reported the task as impossible.
    """
    transcript = await run_task(task, page, options, parameters, cache_name, planner=planner)
    if transcript.outcome.kind == "error":
        raise TaskFailedError(transcript.outcome.error_message or "Task failed.")
    return transcript.outcome.value
