import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from chat_export.browser import HEADERS, UA
from chat_export.errors import FetchFailed

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    status: int
    html: str
    content_type: str


async def fetch(url: str, timeout_ms: int, client: Optional[httpx.AsyncClient] = None) -> FetchResponse:
    """
    One unauthenticated GET with browser-like headers.

    Raises FetchFailed on a non-2xx status (the response is attached for
    diagnostics) or on any transport error / timeout. Never retries.
    """
    headers = {"User-Agent": UA, **HEADERS}
    # Same desktop Chrome identity the rendered path uses.

    timeout = timeout_ms / 1000
    # httpx takes seconds; one bound for connect + read.

    try:
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as own_client:
                response = await own_client.get(url, headers=headers)
        else:
            # Injected client (tests, shared connection pool): redirect policy is the caller's.
            response = await client.get(url, headers=headers, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        # InvalidURL is not an HTTPError subclass; both mean "no usable response".
        logger.info("[FETCH] %s failed: %s", url, exc.__class__.__name__)
        raise FetchFailed(f"fetch failed: {exc.__class__.__name__}: {exc}") from exc

    result = FetchResponse(
        status=response.status_code,
        html=response.text,
        content_type=response.headers.get("content-type", ""),
    )

    if not response.is_success:
        # Keep the body: a login wall or error page is still useful debug detail.
        logger.info("[FETCH] %s answered %d", url, response.status_code)
        raise FetchFailed(f"upstream answered {response.status_code}", status=response.status_code, response=result)

    logger.debug("[FETCH] %s -> %d (%d chars)", url, result.status, len(result.html))
    return result
