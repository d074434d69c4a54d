"""Book scraper for JavaScript-rendered Tilda sites.

Scrapes every chapter of a book into Markdown files, downloads the images and
merges the result into a single ``book.md``. A start page with many same-site
links is treated as a table of contents; otherwise "next" links are followed.

Example usage:

    from bookscraper import ScrapeOptions, merge_book, scrape_book_async
    from bookscraper.storage import BookStorage

    result = await scrape_book_async(
        "https://example.com/book",
        ScrapeOptions(output_dir="output", chapter_delay=2.0),
    )
    print(f"{len(result.chapters)} chapters, {len(result.failures)} failed")

    merge_book(BookStorage("output"), name="My Book")
"""

from __future__ import annotations

import asyncio
from typing import Optional

from .browser import PageSnapshot, PlaywrightPageSource
from .config import ScrapeOptions, load_config, options_from_env
from .document import (
    ChapterFailure,
    ChapterRecord,
    InvalidMetadataError,
    RunMetadata,
    ScrapeResult,
)
from .images import ImageFetcher, ImageFetchError, ImageRunState
from .merge import MergeError, merge_book
from .scrape import ScrapeController, ScrapeSetupError
from .storage import BookStorage
from .urls import InvalidURLError, validate_url

__all__ = [
    # Data model
    "ChapterRecord",
    "ChapterFailure",
    "RunMetadata",
    "ScrapeResult",
    "PageSnapshot",
    "ImageRunState",
    # Errors
    "ScrapeSetupError",
    "InvalidURLError",
    "ImageFetchError",
    "InvalidMetadataError",
    "MergeError",
    # Configuration
    "ScrapeOptions",
    "options_from_env",
    "load_config",
    # Collaborators
    "PlaywrightPageSource",
    "ImageFetcher",
    "BookStorage",
    "ScrapeController",
    # Entry points
    "scrape_book",
    "scrape_book_async",
    "merge_book",
]


async def scrape_book_async(
    start_url: str,
    options: Optional[ScrapeOptions] = None,
) -> ScrapeResult:
    """
    Scrape a whole book into ``options.output_dir``.

    Args:
        start_url: Table-of-contents page or first chapter.
        options: Run settings; defaults to :class:`ScrapeOptions`.

    Returns:
        ScrapeResult with the written chapters and any chapter failures.

    Raises:
        ScrapeSetupError: If the start URL is invalid or cannot be loaded.
    """
    try:
        validate_url(start_url)
    except InvalidURLError as exc:
        raise ScrapeSetupError(str(exc)) from exc

    opts = options or ScrapeOptions()
    storage = BookStorage(opts.output_dir)
    pages = PlaywrightPageSource(
        page_wait=opts.page_wait,
        navigation_timeout=opts.navigation_timeout,
        headless=opts.headless,
    )
    try:
        await pages.start()
    except Exception as exc:
        raise ScrapeSetupError(f"Could not launch browser: {exc}") from exc

    try:
        async with ImageFetcher(timeout=opts.image_timeout) as fetcher:
            controller = ScrapeController(pages, fetcher, storage, opts)
            return await controller.run(start_url)
    finally:
        await pages.close()


def scrape_book(
    start_url: str,
    options: Optional[ScrapeOptions] = None,
) -> ScrapeResult:
    """Synchronous wrapper for scrape_book_async."""
    return asyncio.run(scrape_book_async(start_url, options))
