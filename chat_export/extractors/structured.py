"""Recover turns from the JSON payload a share page embeds in a <script> tag."""

import json
import logging
from typing import Any, List, Optional, Tuple

from bs4 import BeautifulSoup

from chat_export.adapters.base import Conversation, SchemaProbe, SiteAdapter, build_conversation

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def resolve_role(message: Any) -> str:
    """author.role wins over a top-level role."""
    msg = _as_dict(message)
    role = _as_dict(msg.get("author")).get("role") or msg.get("role")
    return role if isinstance(role, str) else ""


def resolve_text(message: Any) -> str:
    """content.parts (joined) -> content.text -> content (string) -> text."""
    msg = _as_dict(message)
    content = msg.get("content")

    parts = _as_dict(content).get("parts")
    if isinstance(parts, list):
        # non-string parts are attachments (images, files); they carry no text
        return "\n\n".join(p for p in parts if isinstance(p, str))

    for candidate in (_as_dict(content).get("text"), content, msg.get("text")):
        if isinstance(candidate, str):
            return candidate
    return ""


def pairs_from_node(node: Any) -> List[Pair]:
    """
    A probe result is either a list of messages or a mapping of id -> node,
    where each node may wrap its message one level down under "message".
    """
    if isinstance(node, list):
        messages = node
    elif isinstance(node, dict):
        messages = [_as_dict(v).get("message") or v for v in node.values()]
    else:
        return []
    return [(resolve_role(m), resolve_text(m)) for m in messages]


def run_probes(tree: Any, probes) -> Tuple[Optional[SchemaProbe], List[Pair]]:
    """First probe that is present and yields at least one usable pair wins."""
    for probe in probes:
        node = probe.locate(tree)
        if not node:
            continue
        pairs = [(role, text) for role, text in pairs_from_node(node) if role.strip() and text.strip()]
        if pairs:
            return probe, pairs
    return None, []


def _load_payload(text: str) -> Any:
    text = (text or "").strip()
    if not text or text[0] not in "{[":
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def parse_structured(html: str, adapter: SiteAdapter, source_url: str = "") -> Optional[Conversation]:
    soup = BeautifulSoup(html or "", "html.parser")

    for selector in adapter.PAYLOAD_SELECTORS:
        script = soup.select_one(selector)
        if script is None:
            continue
        tree = _load_payload(script.string or script.get_text())
        if tree is None:
            logger.debug("[PARSE] %s is not a JSON payload", selector)
            continue

        probe, pairs = run_probes(tree, adapter.PROBES)
        if probe is None:
            continue

        conversation = build_conversation(
            adapter.read_title(soup), adapter.read_model(soup), pairs,
            source_url=source_url, source=adapter.name,
        )
        if conversation is not None:
            logger.debug("[PARSE] %s matched probe %s (%d turns)", selector, probe.name, len(conversation.turns))
            return conversation

    return None
