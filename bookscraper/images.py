"""Image resolution: placeholder rewriting, fetching with fallback, storage.

Every image of a run gets a sequential index from :class:`ImageRunState`.
Indices are allocated before any fetch starts, so they stay unique and
gap-free per chapter no matter which downloads fail.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

import httpx
from PIL import Image

from .config import DEFAULT_USER_AGENT

LOGGER = logging.getLogger(__name__)

JPEG_QUALITY = 90
TILDA_CDN_HOST = "tildacdn.com"
TILDA_STATIC_ORIGIN = "https://static.tildacdn.com"
_PLACEHOLDER_MARKER = "/-/empty/"
_PLACEHOLDER_PATH = re.compile(r"/(tild[^/]+)/-/empty/(.+)$")


class ImageFetchError(Exception):
    """Raised when an image cannot be downloaded."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


@dataclass
class ImageRunState:
    """Per-run image counters. Never share an instance between runs."""

    next_index: int = 0
    failed_count: int = 0

    def allocate(self) -> int:
        index = self.next_index
        self.next_index += 1
        return index


class ImageSink(Protocol):
    def save_image(self, data: bytes, index: int) -> str:
        """Persist JPEG bytes for *index* and return the local filename."""
        ...


def transform_placeholder_url(url: str) -> str:
    """Rewrite a Tilda thumbnail placeholder URL to the real asset URL.

    ``https://thb.tildacdn.com/tild1234/-/empty/photo.jpg`` becomes
    ``https://static.tildacdn.com/tild1234/photo.jpg``. Other URLs are
    returned unchanged.
    """
    if TILDA_CDN_HOST in url and _PLACEHOLDER_MARKER in url:
        match = _PLACEHOLDER_PATH.search(url)
        if match:
            return f"{TILDA_STATIC_ORIGIN}/{match.group(1)}/{match.group(2)}"
    return url


def image_filename(index: int) -> str:
    return f"img-{index:04d}.jpg"


def to_jpeg(data: bytes) -> bytes:
    """Convert any Pillow-readable image to JPEG on a white background."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode == "P" and "transparency" in img.info:
            img = img.convert("RGBA")
        if img.mode in ("RGBA", "LA"):
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        out_io = io.BytesIO()
        img.save(out_io, format="JPEG", quality=JPEG_QUALITY)
        return out_io.getvalue()


class ImageFetcher:
    """Async resource fetcher for images, backed by ``httpx``."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 30.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": DEFAULT_USER_AGENT},
            follow_redirects=True,
            timeout=timeout,
        )

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> bytes:
        """Download *url*.

        Raises:
            ImageFetchError: On network errors or a non-success status.
        """
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ImageFetchError(
                f"HTTP {exc.response.status_code} for {url}", url=url
            ) from exc
        except httpx.RequestError as exc:
            raise ImageFetchError(f"Request failed for {url}: {exc}", url=url) from exc
        return response.content


async def _download(url: str, fetcher: ImageFetcher) -> bytes:
    actual_url = transform_placeholder_url(url)
    try:
        return await fetcher.fetch(actual_url)
    except ImageFetchError:
        if actual_url == url:
            raise
        LOGGER.debug("Placeholder rewrite failed for %s, trying original", url)
    return await fetcher.fetch(url)


async def resolve_image(
    remote_url: str,
    index: int,
    state: ImageRunState,
    fetcher: ImageFetcher,
    sink: ImageSink,
) -> Optional[str]:
    """Fetch and persist one image. Returns the local filename or ``None``.

    Failures are counted in ``state.failed_count`` and never raised.
    """
    try:
        data = await _download(remote_url, fetcher)
        jpeg = await asyncio.to_thread(to_jpeg, data)
        return sink.save_image(jpeg, index)
    except Exception as exc:
        state.failed_count += 1
        LOGGER.warning("Image %s failed: %s", remote_url, exc)
        return None


async def resolve_chapter_images(
    urls: Sequence[str],
    state: ImageRunState,
    fetcher: ImageFetcher,
    sink: ImageSink,
) -> Dict[str, str]:
    """Resolve all images of one chapter concurrently.

    Returns a mapping of remote URL to local filename for the successes.
    """
    unique: List[str] = list(dict.fromkeys(url for url in urls if url))
    indices = [state.allocate() for _ in unique]
    results = await asyncio.gather(
        *(
            resolve_image(url, index, state, fetcher, sink)
            for url, index in zip(unique, indices)
        )
    )
    return {url: local for url, local in zip(unique, results) if local}
