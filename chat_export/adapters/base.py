from dataclasses import dataclass, field                # dataclass creates lightweight, readable data objects
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from chat_export.utils.text import clean

ROLES = ("user", "assistant", "system", "tool", "unknown")


def normalize_role(role: str) -> str:
    role = clean(role).lower()
    return role if role in ROLES else "unknown"


@dataclass
class Turn:                                             # One message attributed to a role
    role: str                                           # user / assistant / system / tool / unknown
    content: str                                        # plain text, code regions fenced with ```
    ord: int                                            # zero-based position in the conversation

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "ord": self.ord}


@dataclass
class Conversation:                                     # Unified output of every extraction strategy
    title: str
    model: Optional[str]
    source_url: str
    turns: List[Turn]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "chatgpt"                             # adapter name that produced it

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title or "Conversation",
            "model": self.model or None,
            "source": self.source,
            "canonical_url": self.source_url,
            "fetched_at": self.fetched_at.isoformat().replace("+00:00", "Z"),
            "turns": [t.to_dict() for t in self.turns],
        }


def build_conversation(
    title: str,
    model: Optional[str],
    pairs: Iterable[Tuple[str, str]],
    source_url: str = "",
    source: str = "chatgpt",
) -> Optional[Conversation]:
    """
    Turns (role, text) pairs into a Conversation.
    Pairs with an empty role or empty cleaned text are dropped; ord is assigned
    afterwards so it stays 0..n-1 in source order. Returns None when nothing is left.
    """
    turns: List[Turn] = []
    for role, text in pairs:
        role, text = clean(role), clean(text)
        if not role or not text:
            continue
        turns.append(Turn(role=normalize_role(role), content=text, ord=len(turns)))
    if not turns:
        return None
    return Conversation(title=title, model=model, source_url=source_url, turns=turns, source=source)


@dataclass(frozen=True)
class SchemaProbe:
    """A named path into an embedded payload, e.g. props -> pageProps -> serverResponse -> messages."""

    name: str
    path: Tuple[str, ...]

    def locate(self, tree: Any) -> Any:
        node = tree
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node


class SiteAdapter:                                      # Base class for site-specific extraction rules
    name: str = "base"                                  # Also used as Conversation.source
    domains: List[str] = []                             # Exact hostnames allowed for this site
    share_prefix: str = "/"                             # Path prefix of a share link

    PAYLOAD_SELECTORS: Sequence[str] = ()               # <script> elements that may carry the payload
    ROLE_ATTRS: Sequence[str] = ()                      # Attributes marking a turn element
    PROBES: Sequence[SchemaProbe] = ()                  # Payload paths, highest priority first

    TITLE_META = 'meta[property="og:title"]'
    MODEL_META = 'meta[name="model"]'

    @property
    def turn_selector(self) -> str:
        return ", ".join(f"[{attr}]" for attr in self.ROLE_ATTRS)

    def matches(self, host: str) -> bool:
        return host in self.domains

    def read_title(self, soup: BeautifulSoup) -> str:
        # og:title -> <title> -> "Conversation"
        meta = soup.select_one(self.TITLE_META)
        title = clean(meta.get("content")) if meta else ""
        if not title and soup.title is not None:
            title = clean(soup.title.get_text())
        return title or "Conversation"

    def read_model(self, soup: BeautifulSoup) -> Optional[str]:
        meta = soup.select_one(self.MODEL_META)
        if meta is None:
            return None
        return clean(meta.get("content")) or None
