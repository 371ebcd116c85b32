# actions.py
# Action registry: every page operation the planner may invoke.
#
# The session and the replay engine only ever call ActionRegistry.dispatch.
# Executors are never called directly. Each action pairs a pydantic input
# model (its JSON schema is what the planner sees) with an executor that
# receives the validated input.

import inspect
import json
from dataclasses import dataclass
from typing import Any, Callable, Literal

import pydantic
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, ConfigDict, Field, model_validator

from auto_playwright.errors import UnknownActionError
from auto_playwright.models import InvocationResult, ToolDefinition, ToolInvocation, Trace
from auto_playwright.snapshot import SANITIZE_TAGS

ELEMENT_ID_ATTRIBUTE = "data-element-id"
DEFAULT_WAIT_TIMEOUT_MS = 30_000
SCROLL_SETTLE_MS = 500
VISIBLE_STRUCTURE_MAX_DEPTH = 30

# Removes the id from whichever element carried it before, so a re-stamped
# id always addresses exactly one element.
STAMP_SCRIPT = """
(node, id) => {
  for (const other of document.querySelectorAll(`[data-element-id="${id}"]`)) {
    other.removeAttribute("data-element-id");
  }
  node.setAttribute("data-element-id", id);
}
"""

VISIBLE_STRUCTURE_SCRIPT = """
({ allowedTags, maxDepth }) => {
  const extract = (element, depth) => {
    if (!element || depth > maxDepth) return null;
    const style = window.getComputedStyle(element);
    if (style.display === "none" || style.visibility === "hidden" || style.opacity === "0") {
      return null;
    }
    const tag = element.tagName.toLowerCase();
    if (!allowedTags.includes(tag)) return null;

    const node = { tag, attributes: {}, children: [] };
    for (const attr of element.attributes) {
      node.attributes[attr.name] = attr.value;
    }
    if (element.id) node.id = element.id;
    const role = element.getAttribute("role");
    if (role) node.role = role;
    const ariaLabel = element.getAttribute("aria-label");
    if (ariaLabel) node.ariaLabel = ariaLabel;
    const className = typeof element.className === "string" ? element.className.trim() : "";
    if (className) node.className = className;
    if (element.childNodes.length === 1 && element.childNodes[0].nodeType === 3) {
      const text = (element.textContent || "").trim();
      if (text) node.text = text.length > 50 ? text.slice(0, 50) + "..." : text;
    }
    if (depth + 1 < maxDepth) {
      for (const child of element.children) {
        const extracted = extract(child, depth + 1);
        if (extracted) node.children.push(extracted);
      }
    }
    return node;
  };
  return extract(document.body, 0);
}
"""

ELEMENT_VISIBLE_TEXT_SCRIPT = """
(node) => {
  const visibleText = (element) => {
    if (element.nodeType === 3) return (element.textContent || "").trim();
    if (!(element instanceof Element)) return "";
    const style = window.getComputedStyle(element);
    if (style.display === "none" || style.visibility === "hidden" || style.opacity === "0") {
      return "";
    }
    let text = "";
    for (const child of element.childNodes) text += visibleText(child);
    return text;
  };
  return visibleText(node);
}
"""

SELECTOR_VISIBLE_TEXT_SCRIPT = """
(selector) => {
  let text = "";
  for (const element of document.querySelectorAll(selector)) {
    const style = window.getComputedStyle(element);
    if (style.display !== "none" && style.visibility !== "hidden" && style.opacity !== "0") {
      text += (element.textContent || "").trim() + " ";
    }
  }
  return text.trim();
}
"""

SCROLL_INTO_VIEW_SCRIPT = """
(node, behavior) => node.scrollIntoView({ behavior: behavior || "smooth", block: "center" })
"""


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------


class ActionContext:
    """
    Page handle plus the element-id allocator shared by one registry.

    Ids are `<prefix>-<n>` and the counter only advances once an element
    has actually been stamped, so the same sequence of successful locate
    calls yields the same ids live and on replay. A failed invocation hands
    its ids back through `release`.
    """

    def __init__(self, page: Page, id_prefix: str = "el") -> None:
        self.page = page
        self._id_prefix = id_prefix
        self._stamped = 0

    @property
    def stamped(self) -> int:
        return self._stamped

    def release(self, stamped: int) -> None:
        """Rewind the counter to `stamped`, freeing every id allocated since."""
        self._stamped = stamped

    def locator(self, element_id: str) -> Locator:
        return self.page.locator(f'[{ELEMENT_ID_ATTRIBUTE}="{element_id}"]')

    async def stamp(self, locator: Locator) -> str:
        element_id = f"{self._id_prefix}-{self._stamped + 1}"
        await locator.evaluate(STAMP_SCRIPT, element_id)
        self._stamped += 1
        return element_id


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class ActionInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class NoInput(ActionInput):
    pass


class ElementInput(ActionInput):
    element_id: str = Field(..., alias="elementId")


class LocateElementInput(ActionInput):
    css_selector: str = Field(..., alias="cssSelector")


class LocateByRoleInput(ActionInput):
    role: str = Field(..., description="ARIA role to search for, e.g. 'button', 'grid', 'row', etc.")
    exact: bool | None = Field(
        default=None, description="Whether to match the role exactly or allow partial matches."
    )


class LocateByTextInput(ActionInput):
    text: str = Field(..., description="Text to search for within elements.")
    exact: bool | None = Field(
        default=None, description="Whether to match the text exactly or allow partial matches."
    )


class EvaluateInput(ElementInput):
    page_function: str = Field(
        ...,
        alias="pageFunction",
        description="Function to be evaluated in the page context, e.g. node => node.innerText",
    )


class GetAttributeInput(ElementInput):
    attribute_name: str = Field(..., alias="attributeName")


class FillInput(ElementInput):
    value: str


class PressKeyInput(ElementInput):
    key: str = Field(..., description="The name of the key to press, e.g., 'Enter', 'ArrowUp', 'a'.")


class PagePressKeyInput(ActionInput):
    key: str = Field(..., description="The name of the key to press, e.g., 'Enter', 'ArrowDown', 'b'.")


class GotoInput(ActionInput):
    url: str = Field(..., description="The URL to navigate to")


class SelectOptionInput(ActionInput):
    element_id: str | None = Field(
        default=None,
        alias="elementId",
        description="The ID of the <select> element, obtained via locateElement.",
    )
    css_selector: str | None = Field(
        default=None,
        alias="cssSelector",
        description="CSS selector to locate the <select> element directly, e.g., '#my-select' or 'form select'.",
    )
    value: str | list[str] | None = Field(
        default=None,
        description="Select options with matching value attribute. Can be a string or an array for multi-select.",
    )
    label: str | list[str] | None = Field(
        default=None,
        description="Select options with matching visible text. Can be a string or an array for multi-select.",
    )
    index: int | list[int] | None = Field(
        default=None,
        description="Select options by their index (zero-based). Can be a number or an array for multi-select.",
    )

    @model_validator(mode="after")
    def _check_target_and_choice(self) -> "SelectOptionInput":
        if self.element_id is None and self.css_selector is None:
            raise ValueError("Either elementId or cssSelector must be provided.")
        if self.value is None and self.label is None and self.index is None:
            raise ValueError("At least one of value, label, or index must be provided.")
        return self


class ExpectInput(ActionInput):
    actual: str
    expected: str


class ResultAssertionInput(ActionInput):
    assertion: bool


class ResultQueryInput(ActionInput):
    query: str


class ResultErrorInput(ActionInput):
    error_message: str = Field(..., alias="errorMessage")


class WaitForContentInput(ActionInput):
    selector: str = Field(..., description="CSS selector to wait for.")
    text_marker: str | None = Field(
        default=None,
        alias="textMarker",
        description="Optional text content to wait for within the selector.",
    )
    timeout: float | None = Field(
        default=None,
        description="Maximum time to wait in milliseconds. Default is 30000 (30 seconds).",
    )


class ExtractVisibleTextInput(ActionInput):
    element_id: str | None = Field(
        default=None, alias="elementId", description="ID of the element to extract text from."
    )
    selector: str | None = Field(
        default=None, description="CSS selector to locate elements for text extraction."
    )

    @model_validator(mode="after")
    def _check_target(self) -> "ExtractVisibleTextInput":
        if self.element_id is None and self.selector is None:
            raise ValueError("Either elementId or selector must be provided")
        return self


class ScrollInput(ElementInput):
    behavior: Literal["auto", "smooth"] | None = Field(
        default=None,
        description="Scrolling behavior: 'auto' for instant scrolling or 'smooth' for animated scrolling.",
    )


class NetworkIdleInput(ActionInput):
    timeout: float | None = Field(
        default=None,
        description="Maximum time to wait in milliseconds. Default is 30000 (30 seconds).",
    )
    idle_time: float | None = Field(
        default=None,
        alias="idleTime",
        description="Additional wait time after network becomes idle, in milliseconds.",
    )


# ---------------------------------------------------------------------------
# Executors: locating
# ---------------------------------------------------------------------------


async def _locate_element(ctx: ActionContext, args: LocateElementInput) -> dict:
    element_id = await ctx.stamp(ctx.page.locator(args.css_selector).first)
    return {"elementId": element_id}


async def _locate_elements_by_role(ctx: ActionContext, args: LocateByRoleInput) -> dict:
    locators = await ctx.page.get_by_role(args.role, exact=bool(args.exact)).all()
    element_ids = [await ctx.stamp(locator) for locator in locators]
    return {"elementIds": element_ids, "count": len(element_ids)}


async def _locate_elements_with_text(ctx: ActionContext, args: LocateByTextInput) -> dict:
    element_ids: list[str] = []
    for locator in await ctx.page.get_by_text(args.text, exact=bool(args.exact)).all():
        if await locator.is_visible():
            element_ids.append(await ctx.stamp(locator))
    return {"elementIds": element_ids, "count": len(element_ids)}


# ---------------------------------------------------------------------------
# Executors: reading
# ---------------------------------------------------------------------------


async def _locator_evaluate(ctx: ActionContext, args: EvaluateInput) -> dict:
    return {"result": await ctx.locator(args.element_id).evaluate(args.page_function)}


async def _locator_get_attribute(ctx: ActionContext, args: GetAttributeInput) -> dict:
    return {"attributeValue": await ctx.locator(args.element_id).get_attribute(args.attribute_name)}


async def _locator_inner_html(ctx: ActionContext, args: ElementInput) -> dict:
    return {"innerHTML": await ctx.locator(args.element_id).inner_html()}


async def _locator_inner_text(ctx: ActionContext, args: ElementInput) -> dict:
    return {"innerText": await ctx.locator(args.element_id).inner_text()}


async def _locator_text_content(ctx: ActionContext, args: ElementInput) -> dict:
    return {"textContent": await ctx.locator(args.element_id).text_content()}


async def _locator_input_value(ctx: ActionContext, args: ElementInput) -> dict:
    return {"inputValue": await ctx.locator(args.element_id).input_value()}


async def _locator_bounding_box(ctx: ActionContext, args: ElementInput) -> dict | None:
    return await ctx.locator(args.element_id).bounding_box()


async def _locator_is_checked(ctx: ActionContext, args: ElementInput) -> dict:
    return {"isChecked": await ctx.locator(args.element_id).is_checked()}


async def _locator_is_editable(ctx: ActionContext, args: ElementInput) -> dict:
    return {"isEditable": await ctx.locator(args.element_id).is_editable()}


async def _locator_is_enabled(ctx: ActionContext, args: ElementInput) -> dict:
    return {"isEnabled": await ctx.locator(args.element_id).is_enabled()}


async def _locator_is_visible(ctx: ActionContext, args: ElementInput) -> dict:
    return {"isVisible": await ctx.locator(args.element_id).is_visible()}


async def _locator_count(ctx: ActionContext, args: ElementInput) -> dict:
    return {"elementCount": await ctx.locator(args.element_id).count()}


async def _get_visible_structure(ctx: ActionContext, args: NoInput) -> dict:
    structure = await ctx.page.evaluate(
        VISIBLE_STRUCTURE_SCRIPT,
        {"allowedTags": list(SANITIZE_TAGS), "maxDepth": VISIBLE_STRUCTURE_MAX_DEPTH},
    )
    return {"structure": structure}


async def _extract_visible_text(ctx: ActionContext, args: ExtractVisibleTextInput) -> dict:
    if args.element_id is not None:
        text = await ctx.locator(args.element_id).evaluate(ELEMENT_VISIBLE_TEXT_SCRIPT)
    else:
        text = await ctx.page.evaluate(SELECTOR_VISIBLE_TEXT_SCRIPT, args.selector)
    return {"text": text}


# ---------------------------------------------------------------------------
# Executors: interacting
# ---------------------------------------------------------------------------


async def _locator_press_key(ctx: ActionContext, args: PressKeyInput) -> dict:
    await ctx.locator(args.element_id).press(args.key)
    return {"success": True}


async def _page_press_key(ctx: ActionContext, args: PagePressKeyInput) -> dict:
    await ctx.page.keyboard.press(args.key)
    return {"success": True}


async def _locator_blur(ctx: ActionContext, args: ElementInput) -> dict:
    await ctx.locator(args.element_id).blur()
    return {"success": True}


async def _locator_check(ctx: ActionContext, args: ElementInput) -> dict:
    await ctx.locator(args.element_id).check()
    return {"success": True}


async def _locator_uncheck(ctx: ActionContext, args: ElementInput) -> dict:
    await ctx.locator(args.element_id).uncheck()
    return {"success": True}


async def _locator_clear(ctx: ActionContext, args: ElementInput) -> dict:
    await ctx.locator(args.element_id).clear()
    return {"success": True}


async def _locator_click(ctx: ActionContext, args: ElementInput) -> dict:
    await ctx.locator(args.element_id).click()
    return {"success": True}


async def _locator_fill(ctx: ActionContext, args: FillInput) -> dict:
    await ctx.locator(args.element_id).fill(args.value)
    return {"success": True}


async def _page_goto(ctx: ActionContext, args: GotoInput) -> dict:
    response = await ctx.page.goto(args.url)
    return {"url": ctx.page.url, "status": response.status if response is not None else None}


async def _locator_select_option(ctx: ActionContext, args: SelectOptionInput) -> dict:
    if args.element_id is not None:
        locator = ctx.locator(args.element_id)
    else:
        locator = ctx.page.locator(args.css_selector)

    if args.value is not None:
        await locator.select_option(value=args.value)
    elif args.label is not None:
        await locator.select_option(label=args.label)
    else:
        await locator.select_option(index=args.index)
    return {"success": True}


async def _scroll_into_element_view(ctx: ActionContext, args: ScrollInput) -> dict:
    await ctx.locator(args.element_id).evaluate(SCROLL_INTO_VIEW_SCRIPT, args.behavior)
    await ctx.page.wait_for_timeout(SCROLL_SETTLE_MS)
    return {"success": True}


# ---------------------------------------------------------------------------
# Executors: waiting. Timeouts are reported, not raised.
# ---------------------------------------------------------------------------


async def _wait_for_content_to_load(ctx: ActionContext, args: WaitForContentInput) -> dict:
    selector = args.selector
    if args.text_marker:
        selector = f'{selector}:has-text("{args.text_marker}")'
    try:
        await ctx.page.wait_for_selector(
            selector,
            timeout=args.timeout or DEFAULT_WAIT_TIMEOUT_MS,
            state="visible",
        )
    except PlaywrightTimeoutError as exc:
        return {"success": False, "error": f"Timeout waiting for content to load: {exc}"}
    return {"success": True}


async def _wait_for_network_idle(ctx: ActionContext, args: NetworkIdleInput) -> dict:
    try:
        await ctx.page.wait_for_load_state(
            "networkidle", timeout=args.timeout or DEFAULT_WAIT_TIMEOUT_MS
        )
    except PlaywrightTimeoutError as exc:
        return {"success": False, "error": f"Timeout waiting for network idle: {exc}"}
    if args.idle_time:
        await ctx.page.wait_for_timeout(args.idle_time)
    return {"success": True}


# ---------------------------------------------------------------------------
# Executors: assertions and terminal results. No page side effects.
# ---------------------------------------------------------------------------


def _expect_to_be(ctx: ActionContext, args: ExpectInput) -> dict:
    return {"actual": args.actual, "expected": args.expected, "success": args.actual == args.expected}


def _expect_not_to_be(ctx: ActionContext, args: ExpectInput) -> dict:
    return {"actual": args.actual, "expected": args.expected, "success": args.actual != args.expected}


def _result_assertion(ctx: ActionContext, args: ResultAssertionInput) -> dict:
    return {"assertion": args.assertion}


def _result_query(ctx: ActionContext, args: ResultQueryInput) -> dict:
    return {"query": args.query}


def _result_action(ctx: ActionContext, args: NoInput) -> dict:
    return {"success": True}


def _result_error(ctx: ActionContext, args: ResultErrorInput) -> dict:
    return {"errorMessage": args.error_message}


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    description: str
    input_model: type[ActionInput]
    executor: Callable[[ActionContext, Any], Any]

    def tool_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.input_model.model_json_schema(),
        )


ACTIONS: dict[str, ActionDefinition] = {
    action.name: action
    for action in (
        ActionDefinition(
            "locateElement",
            "Locates element using a CSS selector and returns elementId. This element ID can be "
            "used with other functions to perform actions on the element.",
            LocateElementInput,
            _locate_element,
        ),
        ActionDefinition(
            "locateElementsByRole",
            "Finds elements by their ARIA role attribute and returns array of element IDs.",
            LocateByRoleInput,
            _locate_elements_by_role,
        ),
        ActionDefinition(
            "locateElementsWithText",
            "Finds visible elements containing specified text and returns array of element IDs. "
            "Hidden elements are excluded.",
            LocateByTextInput,
            _locate_elements_with_text,
        ),
        ActionDefinition(
            "locator_evaluate",
            "Execute JavaScript code in the page, taking the matching element as an argument.",
            EvaluateInput,
            _locator_evaluate,
        ),
        ActionDefinition(
            "locator_getAttribute",
            "Returns the matching element's attribute value.",
            GetAttributeInput,
            _locator_get_attribute,
        ),
        ActionDefinition("locator_innerHTML", "Returns the element.innerHTML.", ElementInput, _locator_inner_html),
        ActionDefinition("locator_innerText", "Returns the element.innerText.", ElementInput, _locator_inner_text),
        ActionDefinition("locator_textContent", "Returns the node.textContent.", ElementInput, _locator_text_content),
        ActionDefinition(
            "locator_inputValue",
            "Returns input.value for the selected <input> or <textarea> or <select> element.",
            ElementInput,
            _locator_input_value,
        ),
        ActionDefinition(
            "locator_blur", "Removes keyboard focus from the current element.", ElementInput, _locator_blur
        ),
        ActionDefinition(
            "locator_boundingBox",
            "Returns the bounding box of the element relative to the main frame viewport, or null "
            "if the element is not visible. The returned object has x, y, width, and height properties.",
            ElementInput,
            _locator_bounding_box,
        ),
        ActionDefinition(
            "locator_check", "Ensure that checkbox or radio element is checked.", ElementInput, _locator_check
        ),
        ActionDefinition(
            "locator_uncheck", "Ensure that checkbox or radio element is unchecked.", ElementInput, _locator_uncheck
        ),
        ActionDefinition(
            "locator_isChecked", "Returns whether the element is checked.", ElementInput, _locator_is_checked
        ),
        ActionDefinition(
            "locator_isEditable",
            "Returns whether the element is editable.",
            ElementInput,
            _locator_is_editable,
        ),
        ActionDefinition(
            "locator_isEnabled", "Returns whether the element is enabled.", ElementInput, _locator_is_enabled
        ),
        ActionDefinition(
            "locator_isVisible", "Returns whether the element is visible.", ElementInput, _locator_is_visible
        ),
        ActionDefinition("locator_clear", "Clear the input field.", ElementInput, _locator_clear),
        ActionDefinition("locator_click", "Click an element.", ElementInput, _locator_click),
        ActionDefinition(
            "locator_count", "Returns the number of elements matching the locator.", ElementInput, _locator_count
        ),
        ActionDefinition("locator_fill", "Set a value to the input field.", FillInput, _locator_fill),
        ActionDefinition(
            "locator_pressKey", "Presses a key while focused on the specified element.", PressKeyInput, _locator_press_key
        ),
        ActionDefinition("page_pressKey", "Presses a key globally on the page.", PagePressKeyInput, _page_press_key),
        ActionDefinition("page_goto", "Navigate to the specified URL.", GotoInput, _page_goto),
        ActionDefinition(
            "locator_selectOption",
            "Selects option(s) in a <select> element. Requires either an elementId (obtained via "
            "locateElement) or a direct cssSelector.",
            SelectOptionInput,
            _locator_select_option,
        ),
        ActionDefinition(
            "expect_toBe", "Asserts that the actual value is equal to the expected value.", ExpectInput, _expect_to_be
        ),
        ActionDefinition(
            "expect_notToBe",
            "Asserts that the actual value is not equal to the expected value.",
            ExpectInput,
            _expect_not_to_be,
        ),
        ActionDefinition(
            "getVisibleStructure",
            "Returns a simplified hierarchical structure of visible DOM elements, focusing on roles, "
            "attributes, and basic content.",
            NoInput,
            _get_visible_structure,
        ),
        ActionDefinition(
            "waitForContentToLoad",
            "Waits for dynamic content to load based on selector and optional text marker.",
            WaitForContentInput,
            _wait_for_content_to_load,
        ),
        ActionDefinition(
            "extractVisibleText",
            "Extracts only visible text from elements, ignoring hidden content.",
            ExtractVisibleTextInput,
            _extract_visible_text,
        ),
        ActionDefinition(
            "scrollIntoElementView",
            "Scrolls to bring an element into view, useful for loading content dynamically as user scrolls.",
            ScrollInput,
            _scroll_into_element_view,
        ),
        ActionDefinition(
            "waitForNetworkIdle",
            "Waits for network activity to be minimal or stopped, useful for SPA applications.",
            NetworkIdleInput,
            _wait_for_network_idle,
        ),
        ActionDefinition(
            "resultAssertion",
            "This function is called when the initial instructions asked to assert something; then "
            "'assertion' is either true or false (boolean) depending on whether the assertion succeeded.",
            ResultAssertionInput,
            _result_assertion,
        ),
        ActionDefinition(
            "resultQuery",
            "This function is called at the end when the initial instructions asked to extract data; "
            "then 'query' property is set to a text value of the extracted data.",
            ResultQueryInput,
            _result_query,
        ),
        ActionDefinition(
            "resultAction",
            "This function is called at the end when the initial instructions asked to perform an action.",
            NoInput,
            _result_action,
        ),
        ActionDefinition(
            "resultError",
            "If user instructions cannot be completed, then this function is used to produce the final response.",
            ResultErrorInput,
            _result_error,
        ),
    )
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ActionRegistry:
    """
    Capability table bound to one page for one task execution.

    Example:
        registry = ActionRegistry(page, id_prefix=key[:12])
        result = await registry.dispatch(
            ToolInvocation(name="locateElement", arguments='{"cssSelector": "h1"}')
        )
    """

    def __init__(
        self,
        page: Page,
        id_prefix: str = "el",
        actions: dict[str, ActionDefinition] | None = None,
    ) -> None:
        self._context = ActionContext(page, id_prefix)
        self._actions = dict(ACTIONS if actions is None else actions)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def names(self) -> list[str]:
        return list(self._actions)

    def tool_definitions(self) -> list[ToolDefinition]:
        return [action.tool_definition() for action in self._actions.values()]

    def missing_actions(self, trace: Trace) -> list[str]:
        """Names referenced by `trace` that this registry does not define, in trace order."""
        missing: list[str] = []
        for turn in trace:
            for invocation in turn:
                if invocation.name not in self._actions and invocation.name not in missing:
                    missing.append(invocation.name)
        return missing

    async def dispatch(self, invocation: ToolInvocation) -> InvocationResult:
        """
        Validate and execute one invocation.

        Raises UnknownActionError when the name is not registered. Argument
        and executor failures are captured in the returned result instead.
        """
        action = self._actions.get(invocation.name)
        if action is None:
            raise UnknownActionError(f"Action '{invocation.name}' is not in the registry.")

        try:
            raw = json.loads(invocation.arguments or "{}")
            args = action.input_model.model_validate(raw)
        except (json.JSONDecodeError, pydantic.ValidationError) as exc:
            return InvocationResult(
                invocation=invocation,
                error=f"Invalid arguments for '{invocation.name}': {exc}",
                error_kind="ValidationError",
            )

        stamped = self._context.stamped
        try:
            value = action.executor(self._context, args)
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:
            # a failed call is not recorded, so its ids must not be spent
            self._context.release(stamped)
            return InvocationResult(
                invocation=invocation,
                error=f"'{invocation.name}' failed: {exc}",
                error_kind="ExecutionError",
            )

        return InvocationResult(invocation=invocation, value=value)
