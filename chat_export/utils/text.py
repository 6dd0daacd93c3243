import re

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def clean(text) -> str:
    """Normalize non-breaking spaces and trim. None becomes ""."""
    if text is None:
        return ""
    return str(text).replace("\u00a0", " ").strip()


def slugify(value: str, fallback: str = "conversation") -> str:
    # "My Chat: Part 2!" -> "my-chat-part-2"
    slug = _NON_ALNUM_RE.sub("-", (value or "").lower()).strip("-")
    return slug or fallback
