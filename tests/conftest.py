import json

import pytest

from chat_export.adapters.chatgpt import ChatGPTAdapter
from chat_export.browser import BrowserPool
from tests.fakes import FakePage, FakePlaywright


@pytest.fixture
def adapter():
    return ChatGPTAdapter()


@pytest.fixture
def make_pool():
    def _make(page_factory=FakePage, concurrency=1, **fake_kwargs):
        fake = FakePlaywright(page_factory=page_factory, **fake_kwargs)
        pool = BrowserPool(concurrency=concurrency, poll_interval=0.001, playwright_factory=fake)
        return pool, fake
    return _make


def next_data_page(payload, title="Shared chat", model=None):
    model_meta = f'<meta name="model" content="{model}">' if model else ""
    return (
        "<html><head>"
        f'<meta property="og:title" content="{title}">{model_meta}'
        "<title>ChatGPT</title></head><body>"
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'
        "</body></html>"
    )


@pytest.fixture
def payload_page():
    return next_data_page
