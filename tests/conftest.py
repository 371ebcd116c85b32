import json
import re

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from auto_playwright.actions import ELEMENT_ID_ATTRIBUTE, STAMP_SCRIPT
from auto_playwright.models import AssistantMessage, PlannerRequest, ToolInvocation

PAGE_HTML = """\
<html>
  <head><title>Fixture</title><script>window.x = 1;</script></head>
  <body>
    <h1>Hello, Rayrun!</h1>
    <form id="search">
      <label>Search</label>
      <input type="text" name="query" data-testid="search-input" />
    </form>
    <p>Click count: <span id="current-count">0</span></p>
    <button id="click-button">Click me</button>
  </body>
</html>
"""

_STAMPED_SELECTOR = re.compile(rf'\[{ELEMENT_ID_ATTRIBUTE}="(?P<id>[^"]+)"\]')


# ---------------------------------------------------------------------------
# In-memory page double
# ---------------------------------------------------------------------------


class FakeElement:
    def __init__(self, text: str = "", value: str = "", on_click=None) -> None:
        self.text = text
        self.value = value
        self.on_click = on_click
        self.attributes: dict[str, str] = {}
        self.selected: list[dict] = []


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self._selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def _element(self) -> FakeElement:
        element = self._page.find(self._selector)
        if element is None:
            raise PlaywrightTimeoutError(
                f"Timeout 30000ms exceeded waiting for locator('{self._selector}')"
            )
        return element

    async def evaluate(self, expression: str, arg=None):
        element = self._element()
        if expression == STAMP_SCRIPT:
            self._page.stamp(element, arg)
            return None
        return self._page.evaluations.get(expression)

    async def inner_text(self) -> str:
        return self._element().text

    async def input_value(self) -> str:
        return self._element().value

    async def fill(self, value: str) -> None:
        self._element().value = value
        self._page.log.append(("fill", self._selector, value))

    async def click(self) -> None:
        element = self._element()
        self._page.log.append(("click", self._selector))
        if element.on_click is not None:
            element.on_click()

    async def select_option(self, value=None, label=None, index=None) -> None:
        self._element().selected.append({"value": value, "label": label, "index": index})

    async def is_visible(self) -> bool:
        return self._page.find(self._selector) is not None


class FakeLocatorList:
    def __init__(self, locators: list[FakeLocator]) -> None:
        self._locators = locators

    async def all(self) -> list[FakeLocator]:
        return list(self._locators)


class FakePage:
    """Just enough of playwright's async Page for the action registry."""

    def __init__(self, elements: dict[str, FakeElement], html: str = PAGE_HTML) -> None:
        self.elements = elements
        self.html = html
        self.url = "http://localhost:3000/"
        self.log: list[tuple] = []
        self.evaluations: dict[str, object] = {}
        self.wait_timeout = False
        self.roles: dict[str, list[str]] = {}

    def find(self, selector: str) -> FakeElement | None:
        match = _STAMPED_SELECTOR.fullmatch(selector)
        if match is None:
            return self.elements.get(selector)
        for element in self.elements.values():
            if element.attributes.get(ELEMENT_ID_ATTRIBUTE) == match.group("id"):
                return element
        return None

    def stamp(self, element: FakeElement, element_id: str) -> None:
        for other in self.elements.values():
            if other.attributes.get(ELEMENT_ID_ATTRIBUTE) == element_id:
                del other.attributes[ELEMENT_ID_ATTRIBUTE]
        element.attributes[ELEMENT_ID_ATTRIBUTE] = element_id

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def get_by_role(self, role: str, exact: bool = False) -> FakeLocatorList:
        return FakeLocatorList([FakeLocator(self, selector) for selector in self.roles.get(role, [])])

    async def content(self) -> str:
        return self.html

    async def evaluate(self, expression: str, arg=None):
        return self.evaluations.get(expression)

    async def wait_for_selector(self, selector: str, timeout: float, state: str) -> None:
        if self.wait_timeout:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_timeout(self, timeout: float) -> None:
        return None


def make_page() -> FakePage:
    counter = FakeElement(text="0")

    def increment() -> None:
        counter.text = str(int(counter.text) + 1)

    return FakePage(
        {
            "h1": FakeElement(text="Hello, Rayrun!"),
            "[data-testid='search-input']": FakeElement(),
            "#current-count": counter,
            "#click-button": FakeElement(text="Click me", on_click=increment),
            "#fruit-select": FakeElement(),
        }
    )


# ---------------------------------------------------------------------------
# Planner double
# ---------------------------------------------------------------------------


class ScriptedPlanner:
    """
    Replies with pre-scripted turns, then with an empty turn forever.

    Each turn is a list of (name, arguments) pairs; arguments may be a dict,
    a raw string, or a callable receiving the PlannerRequest.
    """

    def __init__(self, turns: list[list[tuple]]) -> None:
        self._turns = list(turns)
        self.requests: list[PlannerRequest] = []

    async def complete(self, request: PlannerRequest) -> AssistantMessage:
        self.requests.append(request)
        if not self._turns:
            return AssistantMessage(content="Done.")

        invocations = []
        for name, arguments in self._turns.pop(0):
            if callable(arguments):
                arguments = arguments(request)
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            invocations.append(ToolInvocation(name=name, arguments=arguments))
        return AssistantMessage(invocations=invocations)


@pytest.fixture
def page() -> FakePage:
    return make_page()
