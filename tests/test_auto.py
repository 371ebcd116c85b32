import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import ScriptedPlanner, make_page

from auto_playwright.auto import ELEMENT_ID_PREFIX_CHARS, apply_parameters, auto, run_task
from auto_playwright.config import MAX_TASK_CHARS, StepOptions
from auto_playwright.errors import ConfigurationError, TaskFailedError
from auto_playwright.fingerprint import fingerprint


def _element_id(task: str, n: int = 1, cache_name: str | None = None) -> str:
    return f"{fingerprint(task, cache_name)[:ELEMENT_ID_PREFIX_CHARS]}-{n}"


def _header_planner(task: str) -> ScriptedPlanner:
    return ScriptedPlanner(
        [
            [
                ("locateElement", {"cssSelector": "h1"}),
                ("locator_innerText", {"elementId": _element_id(task)}),
                ("resultQuery", {"query": "Hello, Rayrun!"}),
            ]
        ]
    )


def _unused_planner() -> MagicMock:
    planner = MagicMock()
    planner.complete = AsyncMock(side_effect=AssertionError("planner must not be called"))
    return planner


# ---------------------------------------------------------------------------
# Configuration failures
# ---------------------------------------------------------------------------


def test_missing_cache_path_fails_before_planner(tmp_path):
    planner = _unused_planner()
    options = StepOptions(cache_path=str(tmp_path / "missing"))
    with pytest.raises(ConfigurationError, match="does not exist"):
        asyncio.run(run_task("get the header text", make_page(), options, planner=planner))
    planner.complete.assert_not_called()


def test_missing_page_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="page"):
        asyncio.run(run_task("get the header text", None, planner=_unused_planner()))


def test_task_length_ceiling():
    with pytest.raises(ConfigurationError, match="too long"):
        asyncio.run(run_task("x" * (MAX_TASK_CHARS + 1), make_page(), planner=_unused_planner()))


# ---------------------------------------------------------------------------
# Live run, cache write, cache hit
# ---------------------------------------------------------------------------


def test_header_query_is_recorded_then_replayed(tmp_path):
    task = "get the header text"
    options = StepOptions(cache_path=str(tmp_path))

    live_planner = _header_planner(task)
    live = asyncio.run(run_task(task, make_page(), options, planner=live_planner))

    assert live.replayed is False
    assert live.outcome.value == "Hello, Rayrun!"
    assert [[i.name for i in turn] for turn in live.trace] == [
        ["locateElement", "locator_innerText", "resultQuery"]
    ]

    cache_file = tmp_path / f"{fingerprint(task)}.json"
    stored = json.loads(cache_file.read_text(encoding="utf-8"))
    assert stored[fingerprint(task)]["trace"][0][2] == {
        "name": "resultQuery",
        "arguments": json.dumps({"query": "Hello, Rayrun!"}),
    }

    planner = _unused_planner()
    replayed = asyncio.run(run_task(task, make_page(), options, planner=planner))

    assert replayed.replayed is True
    assert replayed.outcome.value == "Hello, Rayrun!"
    assert replayed.results[1].value == {"innerText": "Hello, Rayrun!"}
    planner.complete.assert_not_called()


def test_auto_returns_query_value_from_cache(tmp_path):
    task = "get the header text"
    options = StepOptions(cache_path=str(tmp_path))
    assert asyncio.run(auto(task, make_page(), options, planner=_header_planner(task))) == "Hello, Rayrun!"
    assert asyncio.run(auto(task, make_page(), options, planner=_unused_planner())) == "Hello, Rayrun!"


def test_without_cache_path_nothing_is_written(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    task = "get the header text"
    transcript = asyncio.run(run_task(task, make_page(), StepOptions(), planner=_header_planner(task)))
    assert transcript.outcome.query == "Hello, Rayrun!"
    assert list(tmp_path.iterdir()) == []


def test_cache_name_selects_file_and_discriminates(tmp_path):
    task = "get the header text"
    options = StepOptions(cache_path=str(tmp_path))
    planner = ScriptedPlanner(
        [
            [
                ("locateElement", {"cssSelector": "h1"}),
                ("locator_innerText", {"elementId": _element_id(task, cache_name="header flow")}),
                ("resultQuery", {"query": "Hello, Rayrun!"}),
            ]
        ]
    )
    asyncio.run(run_task(task, make_page(), options, cache_name="header flow", planner=planner))

    stored = json.loads((tmp_path / "header_flow.json").read_text(encoding="utf-8"))
    assert list(stored) == [fingerprint(task, "header flow")]

    assert not (tmp_path / f"{fingerprint(task)}.json").exists()


def test_replay_of_action_mutates_page_again(tmp_path):
    task = "click the button"
    options = StepOptions(cache_path=str(tmp_path))
    planner = ScriptedPlanner(
        [
            [("locateElement", {"cssSelector": "#click-button"})],
            [("locator_click", {"elementId": _element_id(task)})],
            [("resultAction", {})],
        ]
    )
    page = make_page()
    assert asyncio.run(auto(task, page, options, planner=planner)) is None
    assert page.elements["#current-count"].text == "1"

    asyncio.run(auto(task, page, options, planner=_unused_planner()))
    assert page.elements["#current-count"].text == "2"


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


def test_parameters_are_templated_on_record_and_substituted_on_replay(tmp_path):
    task = "Type @{name} in the search box"
    options = StepOptions(cache_path=str(tmp_path))
    search = "[data-testid='search-input']"
    planner = ScriptedPlanner(
        [
            [
                ("locateElement", {"cssSelector": search}),
                ("locator_fill", {"elementId": _element_id(task), "value": "Alice"}),
            ],
            [("resultAction", {})],
        ]
    )

    alice_page = make_page()
    asyncio.run(run_task(task, alice_page, options, parameters={"name": "Alice"}, planner=planner))

    assert "This is your task: Type Alice in the search box" in planner.requests[0].user_prompt
    assert alice_page.elements[search].value == "Alice"
    raw = (tmp_path / f"{fingerprint(task)}.json").read_text(encoding="utf-8")
    assert "@{name}" in raw
    assert "Alice" not in raw

    same_page = make_page()
    asyncio.run(run_task(task, same_page, options, parameters={"name": "Alice"}, planner=_unused_planner()))
    assert same_page.elements[search].value == "Alice"

    bob_page = make_page()
    transcript = asyncio.run(
        run_task(task, bob_page, options, parameters={"name": "Bob"}, planner=_unused_planner())
    )
    assert transcript.replayed is True
    assert bob_page.elements[search].value == "Bob"
    assert json.loads(transcript.results[1].invocation.arguments)["value"] == "Bob"


def test_apply_parameters():
    assert apply_parameters("Log in as @{user} / @{user}", {"user": "ann"}) == "Log in as ann / ann"
    assert apply_parameters("no placeholders", None) == "no placeholders"


# ---------------------------------------------------------------------------
# Failure outcomes and stale caches
# ---------------------------------------------------------------------------


def test_result_error_raises_and_is_not_cached(tmp_path):
    options = StepOptions(cache_path=str(tmp_path))
    planner = ScriptedPlanner([[("resultError", {"errorMessage": "There is no login form"})]])

    with pytest.raises(TaskFailedError, match="no login form"):
        asyncio.run(auto("log in", make_page(), options, planner=planner))
    assert list(tmp_path.iterdir()) == []


def test_assertion_value_is_returned(tmp_path):
    planner = ScriptedPlanner([[("resultAssertion", {"assertion": True})]])
    result = asyncio.run(auto('Is the header "Hello, Rayrun!"?', make_page(), StepOptions(), planner=planner))
    assert result is True


def test_stale_cache_falls_back_to_live_run(tmp_path):
    task = "click the button"
    key = fingerprint(task)
    (tmp_path / f"{key}.json").write_text(
        json.dumps(
            {key: {"fingerprint": key, "trace": [[{"name": "locator_tap", "arguments": "{}"}]]}},
            indent=2,
        ),
        encoding="utf-8",
    )
    planner = ScriptedPlanner([[("resultAction", {})]])

    transcript = asyncio.run(run_task(task, make_page(), StepOptions(cache_path=str(tmp_path)), planner=planner))

    assert transcript.replayed is False
    assert len(planner.requests) == 1
    stored = json.loads((tmp_path / f"{key}.json").read_text(encoding="utf-8"))
    assert stored[key]["trace"] == [[{"name": "resultAction", "arguments": "{}"}]]


def test_debug_run_end_to_end(tmp_path):
    task = "get the header text"
    options = StepOptions(cache_path=str(tmp_path), debug=True)
    assert asyncio.run(auto(task, make_page(), options, planner=_header_planner(task))) == "Hello, Rayrun!"
    assert asyncio.run(auto(task, make_page(), options, planner=_unused_planner())) == "Hello, Rayrun!"


def test_failed_locate_during_live_run_keeps_replay_ids_aligned(tmp_path):
    task = "get the header text"
    options = StepOptions(cache_path=str(tmp_path))
    planner = ScriptedPlanner(
        [
            [("locateElementsByRole", {"role": "button"})],
            [
                ("locateElement", {"cssSelector": "h1"}),
                ("locator_innerText", {"elementId": _element_id(task)}),
                ("resultQuery", {"query": "Hello, Rayrun!"}),
            ],
        ]
    )
    live_page = make_page()
    live_page.roles["button"] = ["#click-button", "#detached"]

    live = asyncio.run(run_task(task, live_page, options, planner=planner))
    assert live.results[0].error_kind == "ExecutionError"
    assert live.results[2].value == {"innerText": "Hello, Rayrun!"}

    replayed = asyncio.run(run_task(task, make_page(), options, planner=_unused_planner()))
    assert replayed.replayed is True
    assert replayed.results[1].value == {"innerText": "Hello, Rayrun!"}


def test_path_like_cache_name_fails_before_planner(tmp_path):
    planner = _unused_planner()
    options = StepOptions(cache_path=str(tmp_path))
    with pytest.raises(ConfigurationError, match="plain file name"):
        asyncio.run(run_task("get the header text", make_page(), options, cache_name="flows/login", planner=planner))
    planner.complete.assert_not_called()
    assert list(tmp_path.iterdir()) == []


def test_replay_without_parameter_value_fills_placeholder_text(tmp_path):
    task = "Type @{name} in the search box"
    search = "[data-testid='search-input']"
    options = StepOptions(cache_path=str(tmp_path), debug=True)
    planner = ScriptedPlanner(
        [
            [
                ("locateElement", {"cssSelector": search}),
                ("locator_fill", {"elementId": _element_id(task), "value": "Alice"}),
                ("resultAction", {}),
            ]
        ]
    )
    asyncio.run(run_task(task, make_page(), options, parameters={"name": "Alice"}, planner=planner))

    page = make_page()
    transcript = asyncio.run(run_task(task, page, options, planner=_unused_planner()))
    assert transcript.replayed is True
    assert page.elements[search].value == "@{name}"
