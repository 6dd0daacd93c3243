import asyncio
import logging
from typing import Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from chat_export.adapters.base import Conversation, SiteAdapter
from chat_export.browser import HEADERS, UA, BrowserPool
from chat_export.errors import RenderCrashed, RenderTimeout
from chat_export.extractors.dom import parse_dom
from chat_export.extractors.structured import parse_structured

logger = logging.getLogger(__name__)

NAV_TIMEOUT_FLOOR_MS = 60000
READY_TIMEOUT_MS = 8000


async def race_selectors(page, selectors: Dict[str, str], timeout_ms: int) -> Optional[str]:
    """
    Wait for whichever selector gets attached first.
    Each condition has its own timeout; one timing out is fine as long as
    another resolves. Returns the winning name, or None if all timed out.
    """

    async def _wait(name: str, selector: str) -> str:
        # state="attached": <script> elements are never "visible"
        await page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
        return name

    pending = {asyncio.ensure_future(_wait(name, sel)) for name, sel in selectors.items()}
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                try:
                    return task.result()
                except PlaywrightTimeoutError:
                    continue
        return None
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def render_and_parse(
    url: str,
    pool: BrowserPool,
    adapter: SiteAdapter,
    timeout_ms: int,
    ready_timeout_ms: int = READY_TIMEOUT_MS,
) -> Optional[Conversation]:
    """
    Steps:
        1. Acquire a session from the pool (waits for a free slot).
        2. Navigate and let the page go network-idle.
        3. Race "payload script attached" against "turn elements attached".
        4. Snapshot the page and run the winner's extractor first, then the other.
        5. Release the session (always, even on error).

    Returns None when the hydrated page still has no turns. Navigation
    timeouts raise RenderTimeout, any other browser failure RenderCrashed.
    """
    session = await pool.acquire_session(user_agent=UA, locale="en-US", extra_http_headers=HEADERS)
    try:
        page = session.page
        await page.goto(url, wait_until="networkidle", timeout=max(NAV_TIMEOUT_FLOOR_MS, timeout_ms))

        winner = await race_selectors(
            page,
            {
                "structured": ", ".join(adapter.PAYLOAD_SELECTORS),
                "dom": adapter.turn_selector,
            },
            ready_timeout_ms,
        )
        logger.info("[RENDER] %s ready signal: %s", url, winner or "none (using final snapshot)")

        html = await page.content()
    except PlaywrightTimeoutError as exc:
        raise RenderTimeout(f"rendering timed out: {exc}") from exc
    except PlaywrightError as exc:
        raise RenderCrashed(f"rendering failed: {exc}") from exc
    finally:
        await pool.release_session(session)

    extractors = [parse_structured, parse_dom]
    if winner == "dom":
        extractors.reverse()
    for extractor in extractors:
        conversation = extractor(html, adapter, source_url=url)
        if conversation is not None:
            return conversation
    return None
