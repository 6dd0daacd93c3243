from typing import Optional

from bs4 import BeautifulSoup, NavigableString

from chat_export.adapters.base import Conversation, SiteAdapter, build_conversation


def _fence_code_blocks(element):
    # <pre> -> a ``` block on its own lines, so the flattened text keeps code boundaries
    for pre in element.find_all("pre"):
        pre.replace_with(NavigableString("\n```\n" + pre.get_text() + "\n```\n"))


def parse_dom(html: str, adapter: SiteAdapter, source_url: str = "") -> Optional[Conversation]:
    """Scan markup for role-tagged elements, in document order."""
    soup = BeautifulSoup(html or "", "html.parser")
    nodes = soup.select(adapter.turn_selector)
    if not nodes:
        return None

    pairs = []
    taken = set()
    for el in nodes:
        # an element nested in an already-selected turn belongs to that turn
        if any(id(parent) in taken for parent in el.parents):
            continue
        taken.add(id(el))

        role = next((el.get(attr) for attr in adapter.ROLE_ATTRS if el.has_attr(attr)), "")
        _fence_code_blocks(el)
        pairs.append((role or "assistant", el.get_text()))

    return build_conversation(
        adapter.read_title(soup), adapter.read_model(soup), pairs,
        source_url=source_url, source=adapter.name,
    )
