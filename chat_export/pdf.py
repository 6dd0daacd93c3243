import html
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from chat_export.adapters.base import Turn
from chat_export.browser import BrowserPool
from chat_export.errors import PdfGenerationFailed, RenderCrashed
from chat_export.utils.text import slugify

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF-"

_FENCE_RE = re.compile(r"```(.*?)```", re.S)

STYLE = """
body { font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; }
.role { font-weight: 600; margin-top: 12px; }
.bubble { border: 1px solid #ddd; border-radius: 8px; padding: 10px; }
pre, code { font-family: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, "Liberation Mono", monospace; font-size: 10pt; }
pre { white-space: pre-wrap; }
"""


def _escape(text: str) -> str:
    return html.escape(text, quote=True)


def format_rich(text: str) -> str:
    """Fenced code -> <pre><code>, everything else escaped with newlines as <br/>."""
    out = []
    pos = 0
    for m in _FENCE_RE.finditer(text):
        out.append(_escape(text[pos:m.start()]).replace("\n", "<br/>"))
        code = m.group(1).strip("\n")
        out.append(f"<pre><code>{_escape(code)}</code></pre>")
        pos = m.end()
    out.append(_escape(text[pos:]).replace("\n", "<br/>"))
    return "".join(out)


def _role_and_content(turn: Any) -> Tuple[str, str]:
    if isinstance(turn, Turn):
        return turn.role, turn.content
    if isinstance(turn, Mapping):
        return str(turn.get("role") or "unknown"), str(turn.get("content") or "")
    raise PdfGenerationFailed(f"turn must be a Turn or a mapping, got {type(turn).__name__}")


def build_pdf_html(title: str, turns: Sequence[Any], exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    sections: List[str] = []
    for turn in turns:
        role, content = _role_and_content(turn)
        sections.append(
            '<section class="turn">'
            f'<div class="role">{_escape(role.upper())}</div>'
            f'<div class="bubble">{format_rich(content)}</div>'
            "</section>"
        )
    return (
        '<!doctype html><html><head><meta charset="utf-8">'
        f"<title>{_escape(title)}</title><style>{STYLE}</style></head><body>\n"
        f"<h1>{_escape(title)}</h1>\n"
        f'<div class="exported">Exported {_escape(exported_at.isoformat())}</div>\n'
        + "".join(sections)
        + "\n</body></html>"
    )


def pdf_filename(title: str) -> str:
    return f"{slugify(title)}.pdf"


async def render_pdf(title: str, turns: Sequence[Any], pool: BrowserPool) -> bytes:
    """
    Print a conversation to an A4 PDF.
    An empty turn list is valid: the document then only carries title and export time.
    """
    if not isinstance(title, str) or not title.strip():
        raise PdfGenerationFailed("title and turns required: title must be a non-empty string")
    if isinstance(turns, (str, bytes)) or not isinstance(turns, (list, tuple)):
        raise PdfGenerationFailed("title and turns required: turns must be a list")

    markup = build_pdf_html(title, turns)

    try:
        async with pool.session() as session:
            await session.page.set_content(markup, wait_until="load")
            pdf = await session.page.pdf(format="A4", print_background=True)
    except RenderCrashed as exc:
        raise PdfGenerationFailed(exc.message, http_status=500) from exc
    except PlaywrightError as exc:
        raise PdfGenerationFailed(f"pdf rendering failed: {exc}", http_status=500) from exc

    if not pdf or not bytes(pdf).startswith(PDF_SIGNATURE):
        raise PdfGenerationFailed("renderer did not return a PDF document", http_status=500)

    logger.info("[PDF] %s -> %d bytes, %d turns", pdf_filename(title), len(pdf), len(turns))
    return bytes(pdf)
