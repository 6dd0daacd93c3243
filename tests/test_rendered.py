import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from chat_export.errors import RenderCrashed, RenderTimeout
from chat_export.extractors.rendered import NAV_TIMEOUT_FLOOR_MS, race_selectors, render_and_parse
from tests.fakes import FakePage

URL = "https://chatgpt.com/share/abc"
HYDRATED = (
    "<html><head><title>Hydrated</title></head><body>"
    '<div data-message-author-role="user">Q</div>'
    '<div data-message-author-role="assistant">A</div>'
    "</body></html>"
)


@pytest.mark.asyncio
async def test_race_returns_first_attached():
    page = FakePage(ready={"__NEXT_DATA__": 0.05, "data-message-author-role": 0.0})
    winner = await race_selectors(
        page, {"structured": "script#__NEXT_DATA__", "dom": "[data-message-author-role]"}, 500
    )
    assert winner == "dom"


@pytest.mark.asyncio
async def test_race_one_timeout_is_not_fatal():
    page = FakePage(ready={"__NEXT_DATA__": 0.03})
    winner = await race_selectors(
        page, {"structured": "script#__NEXT_DATA__", "dom": "[data-message-author-role]"}, 10
    )
    assert winner is None

    winner = await race_selectors(
        page, {"structured": "script#__NEXT_DATA__", "dom": "[data-message-author-role]"}, 100
    )
    assert winner == "structured"


@pytest.mark.asyncio
async def test_dom_winner_parses_hydrated_markup(make_pool, adapter):
    page = FakePage(html=HYDRATED, ready={"data-message-author-role": 0.0})
    pool, fake = make_pool(page_factory=lambda: page)

    conv = await render_and_parse(URL, pool, adapter, timeout_ms=45000, ready_timeout_ms=50)

    assert [(t.role, t.content) for t in conv.turns] == [("user", "Q"), ("assistant", "A")]
    assert page.visited == [(URL, "networkidle", NAV_TIMEOUT_FLOOR_MS)]
    assert fake.browser.contexts[0].options["locale"] == "en-US"
    assert pool.in_use == 0


@pytest.mark.asyncio
async def test_neither_signal_uses_final_snapshot(make_pool, adapter, payload_page):
    html = payload_page({"turns": [{"role": "user", "text": "late"}]})
    page = FakePage(html=html)
    pool, _ = make_pool(page_factory=lambda: page)

    conv = await render_and_parse(URL, pool, adapter, timeout_ms=90000, ready_timeout_ms=10)

    assert conv.turns[0].content == "late"
    assert page.visited[0][2] == 90000


@pytest.mark.asyncio
async def test_no_turns_after_render_returns_none(make_pool, adapter):
    pool, _ = make_pool(page_factory=lambda: FakePage(html="<p>Not found</p>"))
    assert await render_and_parse(URL, pool, adapter, timeout_ms=1000, ready_timeout_ms=10) is None
    assert pool.in_use == 0


@pytest.mark.asyncio
async def test_navigation_timeout_is_terminal(make_pool, adapter):
    page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 60000ms exceeded"))
    pool, fake = make_pool(page_factory=lambda: page)

    with pytest.raises(RenderTimeout):
        await render_and_parse(URL, pool, adapter, timeout_ms=1000)

    assert pool.in_use == 0
    assert fake.browser.contexts[0].closed


@pytest.mark.asyncio
async def test_browser_crash_is_terminal(make_pool, adapter):
    page = FakePage(goto_error=PlaywrightError("Target crashed"))
    pool, _ = make_pool(page_factory=lambda: page)

    with pytest.raises(RenderCrashed):
        await render_and_parse(URL, pool, adapter, timeout_ms=1000)
    assert pool.in_use == 0
