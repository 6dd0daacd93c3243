import asyncio
import itertools
import logging
import signal
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from chat_export.errors import RenderCrashed, RenderInfraFailure

logger = logging.getLogger(__name__)


CHROME_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    # Required inside Docker and CI, where Chromium's sandbox cannot be set up.

    "--disable-dev-shm-usage",
    # /dev/shm is tiny in most containers; Chromium crashes without this.

    "--disable-gpu",
    "--no-zygote",
    "--single-process",
    # Keep the memory footprint of the one long-lived browser small.
]


UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
# Playwright's default UA exposes automation; share pages answer it with a challenge.

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
}


class PoolState(Enum):
    UNSTARTED = "unstarted"
    STARTING = "starting"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


@dataclass
class RenderSession:
    """One isolated browser context + page, owned by a single call until released."""

    id: int
    context: Any
    page: Any
    acquired_at: float                      # time.monotonic() when the admission gate let us in
    released_at: Optional[float] = None


class BrowserPool:
    """
    Owns the single headless Chromium process and hands out isolated sessions.

    Lifecycle: UNSTARTED -> STARTING -> READY -> SHUTTING_DOWN -> CLOSED.
    The browser is launched lazily by the first session request (or eagerly via
    ensure_ready() in always-warm mode). At most `concurrency` sessions are open
    at once; callers above the limit poll cooperatively. Waiters are not served
    in FIFO order.
    """

    def __init__(
        self,
        concurrency: int = 1,
        headless: bool = True,
        launch_args: Optional[Sequence[str]] = None,
        poll_interval: float = 0.05,
        playwright_factory=async_playwright,
    ):
        self.concurrency = max(1, concurrency)
        self.headless = headless
        self.launch_args = list(CHROME_ARGS if launch_args is None else launch_args)
        self.poll_interval = poll_interval
        self._playwright_factory = playwright_factory

        self._state = PoolState.UNSTARTED
        self._pw = None
        self._browser = None
        self._start_task: Optional[asyncio.Future] = None
        self._shutdown_task: Optional[asyncio.Future] = None
        self._signal_task: Optional[asyncio.Future] = None
        # Shutdown scheduled by a signal handler; the loop only holds a weak reference to it.
        self._in_use = 0
        # Sessions currently checked out; never above concurrency.
        self._ids = itertools.count(1)

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def in_use(self) -> int:
        return self._in_use

    # ---------------- lifecycle ----------------

    async def ensure_ready(self):
        """Start the browser once; concurrent callers share the same in-flight start."""
        if self._state is PoolState.READY:
            return self._browser
        if self._state in (PoolState.SHUTTING_DOWN, PoolState.CLOSED):
            raise RenderInfraFailure("browser pool is shut down")

        if self._start_task is None:
            self._state = PoolState.STARTING
            self._start_task = asyncio.ensure_future(self._start())
            # Later callers find the task and await it instead of launching again.

        # shield: one caller being cancelled must not abort the start for the others
        return await asyncio.shield(self._start_task)

    async def _start(self):
        logger.info("[POOL] Launching Chromium (headless=%s)", self.headless)
        pw = None
        try:
            pw = await self._playwright_factory().start()
            # Starts the Node driver; nothing can be launched without it.

            browser = await pw.chromium.launch(headless=self.headless, args=self.launch_args)
            # One Chromium process for the whole pool; sessions get their own contexts.
        except Exception as exc:
            if pw is not None:
                await self._stop_playwright(pw)
            # back to UNSTARTED: a later request may try again, this one fails
            if self._state is PoolState.STARTING:
                self._state = PoolState.UNSTARTED
                self._start_task = None
            logger.error("[POOL] Chromium failed to start: %s", exc)
            raise RenderInfraFailure(f"browser failed to start: {exc}") from exc

        self._pw, self._browser = pw, browser
        if self._state is PoolState.STARTING:
            self._state = PoolState.READY
        logger.info("[POOL] Chromium ready")
        return browser

    async def shutdown(self):
        """Close the browser and stop Playwright. Safe to call any number of times."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self):
        previous = self._state
        self._state = PoolState.SHUTTING_DOWN
        logger.info("[POOL] Shutting down (was %s, %d session(s) open)", previous.value, self._in_use)

        if previous is PoolState.STARTING and self._start_task is not None:
            try:
                await self._start_task
            except RenderInfraFailure:
                pass  # nothing was launched, nothing to close

        browser, pw = self._browser, self._pw
        self._browser = self._pw = None
        # Detach first so a late acquire cannot pick up a closing browser.

        if browser is not None:
            try:
                await browser.close()
                # Closes every context still open, then the Chromium process.
            except PlaywrightError as exc:
                logger.warning("[POOL] browser.close() failed: %s", exc)
        if pw is not None:
            await self._stop_playwright(pw)

        self._state = PoolState.CLOSED
        logger.info("[POOL] Closed")

    async def _stop_playwright(self, pw):
        # Stops the Node driver Playwright spawns; leaving it running leaks a process.
        try:
            await pw.stop()
        except Exception as exc:
            logger.warning("[POOL] playwright.stop() failed: %s", exc)

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Schedule shutdown() on SIGINT / SIGTERM / SIGQUIT."""
        loop = loop or asyncio.get_running_loop()
        for name in ("SIGINT", "SIGTERM", "SIGQUIT"):
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self._on_signal, name)
            except (NotImplementedError, RuntimeError):
                # e.g. Windows event loops, or not in the main thread
                logger.debug("[POOL] cannot install handler for %s", name)

    def _on_signal(self, name: str):
        logger.info("[POOL] %s received", name)
        if self._signal_task is None:
            self._signal_task = asyncio.ensure_future(self.shutdown())

    # ---------------- sessions ----------------

    async def acquire_session(self, **context_options) -> RenderSession:
        """
        Wait for a free slot, then open a fresh context + page.
        context_options go straight to browser.new_context() (user_agent, locale, ...).
        """
        # Bounded counter checked by short polling. No await between the check
        # and the increment, so the limit cannot be overshot.
        while self._in_use >= self.concurrency:
            await asyncio.sleep(self.poll_interval)
        self._in_use += 1
        acquired_at = time.monotonic()
        # Admission time, used to check that no more than `concurrency` sessions overlap.

        admitted = False
        context = None
        try:
            browser = await self.ensure_ready()
            context = await browser.new_context(**context_options)
            # Fresh cookies and storage per call; nothing leaks between requests.
            page = await context.new_page()
            admitted = True
        except PlaywrightError as exc:
            raise RenderCrashed(f"could not open a browser session: {exc}") from exc
        finally:
            if not admitted:
                if context is not None:
                    await self._close_context(context)
                self._in_use -= 1

        session = RenderSession(id=next(self._ids), context=context, page=page, acquired_at=acquired_at)
        logger.debug("[POOL] session %d acquired (%d/%d)", session.id, self._in_use, self.concurrency)
        return session

    async def release_session(self, session: RenderSession):
        if session.released_at is not None:
            logger.warning("[POOL] session %d released twice, ignoring", session.id)
            return
        session.released_at = time.monotonic()
        # Marked before closing, so a concurrent second release is a no-op.
        try:
            await self._close_context(session.context)
        finally:
            self._in_use -= 1
        logger.debug("[POOL] session %d released (%d/%d)", session.id, self._in_use, self.concurrency)

    async def _close_context(self, context):
        # Closes every page in the context; the browser itself stays up.
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.warning("[POOL] context.close() failed: %s", exc)

    @asynccontextmanager
    async def session(self, **context_options):
        """async with pool.session(...) as s: -- released on every exit path."""
        s = await self.acquire_session(**context_options)
        try:
            yield s
        finally:
            await self.release_session(s)
