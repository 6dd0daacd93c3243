import asyncio

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakePage:
    """Stands in for a Playwright Page: canned markup and readiness delays."""

    def __init__(self, html="<html></html>", ready=None, goto_error=None, pdf_bytes=b"%PDF-1.7\nfake"):
        self.html = html
        self.ready = ready or {}            # selector fragment -> seconds until attached
        self.goto_error = goto_error
        self.pdf_bytes = pdf_bytes
        self.visited = []
        self.set_content_html = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append((url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_selector(self, selector, state=None, timeout=None):
        for fragment, delay in self.ready.items():
            if fragment in selector and delay * 1000 <= (timeout or 0):
                await asyncio.sleep(delay)
                return object()
        await asyncio.sleep((timeout or 0) / 1000)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def content(self):
        return self.html

    async def set_content(self, html, wait_until=None):
        self.set_content_html = html

    async def pdf(self, **kwargs):
        return self.pdf_bytes


class FakeContext:
    def __init__(self, page, options):
        self.page = page
        self.options = options
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory):
        self.page_factory = page_factory
        self.contexts = []
        self.closed = False

    async def new_context(self, **options):
        ctx = FakeContext(self.page_factory(), options)
        self.contexts.append(ctx)
        return ctx

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, owner):
        self.owner = owner

    async def launch(self, headless=True, args=None):
        self.owner.launches += 1
        await asyncio.sleep(self.owner.launch_delay)
        if self.owner.launch_error is not None:
            raise self.owner.launch_error
        self.owner.browser = FakeBrowser(self.owner.page_factory)
        return self.owner.browser


class FakePlaywright:
    """Mimics async_playwright(): factory() -> manager with start() -> playwright."""

    def __init__(self, page_factory=FakePage, launch_error=None, launch_delay=0.0):
        self.page_factory = page_factory
        self.launch_error = launch_error
        self.launch_delay = launch_delay
        self.launches = 0
        self.stopped = False
        self.browser = None
        self.chromium = FakeChromium(self)

    def __call__(self):
        return self

    async def start(self):
        return self

    async def stop(self):
        self.stopped = True
