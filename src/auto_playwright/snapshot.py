# snapshot.py
# Textual page description handed to the planner.
#
# The planner does not need every tag to understand a page: scripts and
# styles do not change the rendered DOM, and layout wrappers it has never
# heard of only add noise. Reducing the HTML to basic tags keeps prompts
# short. Attributes are kept as-is so selectors built from them still work.

from bs4 import BeautifulSoup
from playwright.async_api import Page

from auto_playwright.models import Snapshot

SANITIZE_TAGS: tuple[str, ...] = (
    # block layout
    "address", "article", "aside", "footer", "header",
    "h1", "h2", "h3", "h4", "h5", "h6", "hgroup", "main", "nav", "section",
    "blockquote", "dd", "div", "dl", "dt", "figcaption", "figure", "hr",
    "li", "ol", "p", "pre", "ul",
    # inline text
    "a", "abbr", "b", "bdi", "bdo", "br", "cite", "code", "data", "dfn",
    "em", "i", "kbd", "mark", "q", "rb", "rp", "rt", "rtc", "ruby", "s",
    "samp", "small", "span", "strong", "sub", "sup", "time", "u", "var", "wbr",
    # tables
    "caption", "col", "colgroup", "table", "tbody", "td", "tfoot", "th",
    "thead", "tr",
    # forms and media
    "body", "button", "form", "img", "input", "select", "textarea", "option",
)

# Dropped together with everything inside them.
DISCARD_TAGS: tuple[str, ...] = ("head", "script", "style", "noscript", "template", "iframe")


def sanitize_html(html: str) -> str:
    """Strip `html` down to SANITIZE_TAGS, keeping the text of unwrapped tags."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(DISCARD_TAGS):
        # nested discards were already destroyed with their parent
        if not tag.decomposed:
            tag.decompose()

    allowed = set(SANITIZE_TAGS)
    for tag in soup.find_all(True):
        if tag.name not in allowed:
            tag.unwrap()

    return str(soup).strip()


async def get_snapshot(page: Page) -> Snapshot:
    return Snapshot(dom=sanitize_html(await page.content()))
