import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from chat_export.adapters.base import Conversation, SiteAdapter
from chat_export.adapters.chatgpt import ChatGPTAdapter
from chat_export.browser import BrowserPool
from chat_export.errors import (
    ChatExportError,
    FetchFailed,
    InvalidUrl,
    ParseFailed,
    RenderCrashed,
    RenderInfraFailure,
    RenderTimeout,
)
from chat_export.extractors.dom import parse_dom
from chat_export.extractors.rendered import render_and_parse
from chat_export.extractors.structured import parse_structured
from chat_export.fetcher import FetchResponse, fetch
from chat_export.settings import Settings

logger = logging.getLogger(__name__)


# Every supported share-link family. Each adapter declares its exact hostnames.
ADAPTERS: List[SiteAdapter] = [
    ChatGPTAdapter(),
]

HEAD_SAMPLE_CHARS = 800
# How much of the fetched body goes into the debug detail.


def _has_control_chars(url: str) -> bool:
    # urlparse silently drops \t \r \n, so "/share/x\n" would look clean to it
    # while httpx refuses the raw string.
    return any(ord(c) < 32 or ord(c) == 127 for c in url)


def _host(url: str) -> Tuple[str, str]:
    if _has_control_chars(url or ""):
        return "", ""
    try:
        parsed = urlparse(url or "")
        # Example: "https://CHATGPT.com/share/x" -> ("https", "chatgpt.com")
        return parsed.scheme.lower(), (parsed.hostname or "").lower()
    except ValueError:
        # e.g. "http://[::1" -- unbalanced IPv6 brackets
        return "", ""


def is_allowed_host(url: str) -> bool:
    scheme, host = _host(url)
    # Exact hostname match only: "evil-chatgpt.com" and "chatgpt.com.evil.io" are rejected.
    return scheme in ("http", "https") and any(a.matches(host) for a in ADAPTERS)


def pick_adapter(url: str) -> SiteAdapter:
    """
    Selects the adapter whose domains contain the URL's host and whose share
    path prefix matches. Raises InvalidUrl otherwise, before any network access.
    """
    scheme, host = _host(url)
    # An empty scheme/host also covers malformed input and control characters.

    if scheme in ("http", "https"):
        path = urlparse(url).path
        for a in ADAPTERS:
            # Host must be declared by the adapter, path must be a public share link.
            if a.matches(host) and path.startswith(a.share_prefix):
                return a

    raise InvalidUrl(f"not a supported share link: {url!r}")


@dataclass
class ExtractOptions:
    debug: bool = False             # attach diagnostics to the raised error
    force_render: bool = False      # skip the static fetch for this call


@dataclass
class Attempt:
    stage: str                      # fetch / structured / dom / rendered
    outcome: str                    # ok / failed / empty / skipped
    reason: str = ""


def _diagnostics(attempts: List[Attempt], response: Optional[FetchResponse]) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"attempts": [asdict(a) for a in attempts]}
    if response is not None:
        # Only what the single fetch already returned; no second request is made.
        detail.update(
            status=response.status,
            content_type=response.content_type,
            bytes=len(response.html.encode("utf-8")),
            head_sample=response.html[:HEAD_SAMPLE_CHARS],
        )
    return detail


async def extract(
    url: str,
    pool: BrowserPool,
    settings: Settings,
    options: Optional[ExtractOptions] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Conversation:
    """
    High-level extraction.
    Steps:
        1. Pick the adapter for this URL (InvalidUrl if none).
        2. Static GET, unless rendering is forced. A failed fetch is recorded, not raised.
        3. Embedded payload -> role-tagged markup on the fetched HTML.
        4. Rendered fallback through the browser pool (its failures are terminal).
        5. ParseFailed when every strategy came back empty.
    """
    options = options or ExtractOptions()

    # Reject anything that is not an allow-listed share link before touching the network.
    adapter = pick_adapter(url)

    attempts: List[Attempt] = []
    # Ledger of every stage outcome; becomes the debug detail on failure.
    response: Optional[FetchResponse] = None
    conversation: Optional[Conversation] = None

    if settings.force_render or options.force_render:
        attempts.append(Attempt("fetch", "skipped", "rendering forced"))
    else:
        try:
            response = await fetch(url, settings.timeout_ms, client=client)
        except FetchFailed as exc:
            # Non-2xx keeps its response for the diagnostics; transport errors have none.
            response = exc.response
            attempts.append(Attempt("fetch", "failed", exc.message))
        else:
            attempts.append(Attempt("fetch", "ok", f"status {response.status}"))

            # Cheapest first: embedded JSON payload, then role-tagged markup.
            for stage, parser in (("structured", parse_structured), ("dom", parse_dom)):
                conversation = parser(response.html, adapter, source_url=url)
                if conversation is not None:
                    attempts.append(Attempt(stage, "ok"))
                    break
                attempts.append(Attempt(stage, "empty", "no turns found in static markup"))

    if conversation is None:
        # Last resort: let Chromium run the page's scripts, then parse the snapshot.
        try:
            conversation = await render_and_parse(
                url, pool, adapter, settings.timeout_ms, ready_timeout_ms=settings.ready_timeout_ms
            )
        except (RenderTimeout, RenderCrashed, RenderInfraFailure) as exc:
            # Terminal for this request, but the ledger still records what happened.
            attempts.append(Attempt("rendered", "failed", exc.message))
            logger.warning("[FAIL] %s: %s", url, exc.message)
            if options.debug:
                exc.detail = _diagnostics(attempts, response)
            raise
        attempts.append(Attempt("rendered", "ok" if conversation else "empty"))

    if conversation is None:
        logger.warning("[FAIL] %s: no strategy produced turns", url)
        detail = _diagnostics(attempts, response) if options.debug else None
        raise ParseFailed("no conversation turns found", detail=detail)

    logger.info("[OK] %s -> %d turns via %s", url, len(conversation.turns), attempts[-1].stage)
    return conversation


async def ingest(
    url: str,
    pool: BrowserPool,
    settings: Settings,
    debug: bool = False,
    client: Optional[httpx.AsyncClient] = None,
) -> Tuple[int, Dict[str, Any]]:
    """Payload-level entry point for the HTTP layer: (status, JSON body)."""

    # Smoke-test mode: answer without fetching or launching anything.
    if settings.dry_run:
        return 200, {
            "dry_run": True,
            "target_url": url,
            "debug": debug,
            "hint": "Set DRY_RUN=0 to enable real parsing.",
        }

    if not url:
        return 400, {"error": "url_required", "message": "url required"}

    try:
        conversation = await extract(url, pool, settings, ExtractOptions(debug=debug), client=client)
    except ChatExportError as exc:
        # Every known failure maps to its own status; detail only when debug was asked for.
        body = exc.to_dict(debug=debug)
        if isinstance(exc, ParseFailed) and not debug:
            body["hint"] = "retry with debug enabled to inspect the fetched page"
        return exc.http_status, body

    return 200, conversation.to_dict()
