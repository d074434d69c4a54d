"""Shared fakes and HTML builders for the bookscraper tests."""

from __future__ import annotations

import io
from typing import Dict, Iterable, List, Optional, Union

import pytest
from PIL import Image

from bookscraper.browser import PageSnapshot
from bookscraper.images import ImageFetchError
from bookscraper.storage import BookStorage


def tilda_page(
    *records: str,
    title: Optional[str] = None,
    og_title: Optional[str] = None,
    extra_body: str = "",
) -> str:
    """Wrap record markup into a minimal Tilda-like document."""
    head = f'<meta property="og:title" content="{og_title}">' if og_title else ""
    heading = f"<h1>{title}</h1>" if title else ""
    return (
        f"<html><head>{head}</head><body>{heading}"
        f'<div id="allrecords">{"".join(records)}</div>{extra_body}</body></html>'
    )


def text_record(text: str, record_type: str = "106", css: str = "t-text") -> str:
    return (
        f'<div class="r" data-record-type="{record_type}">'
        f'<div class="{css}">{text}</div></div>'
    )


def link_list(urls: Iterable[str]) -> str:
    items = "".join(f'<li><a href="{url}">Chapter {i}</a></li>' for i, url in enumerate(urls))
    return f'<div data-record-type="396"><ul>{items}</ul></div>'


def png_bytes(mode: str = "RGBA", size=(4, 4)) -> bytes:
    color = (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakePageSource:
    """Serves canned HTML per URL; an ``Exception`` value is raised on load."""

    def __init__(self, pages: Dict[str, Union[str, Exception]]):
        self.pages = pages
        self.loaded: List[str] = []

    async def load(self, url: str) -> PageSnapshot:
        self.loaded.append(url)
        if url not in self.pages:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        page = self.pages[url]
        if isinstance(page, Exception):
            raise page
        return PageSnapshot(url=url, html=page)


class FakeFetcher:
    """Returns canned bytes per URL; unknown URLs fail like a 404."""

    def __init__(self, responses: Optional[Dict[str, bytes]] = None):
        self.responses = responses or {}
        self.requested: List[str] = []

    async def fetch(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self.responses:
            raise ImageFetchError(f"HTTP 404 for {url}", url=url)
        return self.responses[url]


@pytest.fixture
def storage(tmp_path) -> BookStorage:
    store = BookStorage(tmp_path / "output")
    store.prepare()
    return store
