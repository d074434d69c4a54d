"""Scrape orchestration: classify the start page, traverse, finalize.

A run moves through ``classifying -> (toc | nav) traversal -> finalizing``.
Only setup problems (bad seed URL, seed page not loadable) abort a run; a
chapter that fails is recorded and traversal continues.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set
from urllib.parse import urldefrag

from .browser import PageSnapshot, PageSource
from .config import ScrapeOptions
from .document import ChapterFailure, ChapterRecord, RunMetadata, ScrapeResult
from .extract import extract_chapter
from .images import ImageFetcher, ImageRunState, resolve_chapter_images
from .links import harvest_next_link, harvest_toc_links
from .markdown import compose_chapter_markdown, render_markdown, substitute_image_sources
from .storage import BookStorage
from .urls import InvalidURLError, filter_links, validate_url

LOGGER = logging.getLogger(__name__)

MODE_TOC = "toc"
MODE_NAV = "nav"


class ScrapeSetupError(Exception):
    """Raised when a run cannot start; nothing has been written."""


@dataclass
class _RunState:
    started_at: str
    start_url: str
    images: ImageRunState = field(default_factory=ImageRunState)
    chapters: List[ChapterRecord] = field(default_factory=list)
    failures: List[ChapterFailure] = field(default_factory=list)


class ScrapeController:
    """Drives one or more scrape runs over injected collaborators.

    Args:
        pages: Sequential page loader (one browser tab).
        fetcher: Image fetcher used for every chapter.
        storage: Sink for chapters, images and metadata.
        options: Run settings; defaults to :class:`ScrapeOptions`.
        sleep: Coroutine used for the inter-chapter pause.
        jitter: ``jitter(low, high)`` returning the random extra delay.
    """

    def __init__(
        self,
        pages: PageSource,
        fetcher: ImageFetcher,
        storage: BookStorage,
        options: Optional[ScrapeOptions] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        self.pages = pages
        self.fetcher = fetcher
        self.storage = storage
        self.options = options or ScrapeOptions()
        self._sleep = sleep
        self._jitter = jitter

    async def run(self, start_url: str) -> ScrapeResult:
        """Scrape a book starting at *start_url*.

        Returns:
            The run result. Chapter failures are listed, not raised.

        Raises:
            ScrapeSetupError: If the seed URL is invalid or cannot be loaded.
        """
        try:
            validate_url(start_url)
        except InvalidURLError as exc:
            raise ScrapeSetupError(str(exc)) from exc

        run = _RunState(
            started_at=datetime.now(timezone.utc).isoformat(),
            start_url=start_url,
        )

        LOGGER.info("Navigating to start URL: %s", start_url)
        try:
            seed = await self.pages.load(start_url)
        except Exception as exc:
            raise ScrapeSetupError(f"Could not load start page {start_url}: {exc}") from exc

        links = filter_links(
            harvest_toc_links(seed, start_url),
            skip_urls=self.options.skip_urls,
            url_pattern=self.options.url_pattern,
        )
        mode = self.select_mode(len(links))
        self.storage.prepare()

        if mode == MODE_TOC:
            LOGGER.info("Found %d chapters. Scraping...", len(links))
            await self._traverse_toc(links, run)
        else:
            LOGGER.info("Following navigation links...")
            await self._traverse_nav(start_url, run)

        return self._finalize(run, mode)

    def select_mode(self, link_count: int) -> str:
        """Pick the traversal strategy for a seed page with *link_count* links."""
        if self.options.mode != "auto":
            return self.options.mode
        return MODE_TOC if link_count > self.options.toc_threshold else MODE_NAV

    async def _traverse_toc(self, links: List[str], run: _RunState) -> None:
        total = len(links)
        for index, url in enumerate(links):
            await self._visit(url, index, run, progress=f"[{index + 1}/{total}]")
            if index < total - 1:
                await self._pause()

    async def _traverse_nav(self, start_url: str, run: _RunState) -> None:
        attempted: Set[str] = set()
        current: Optional[str] = start_url
        index = 0
        while current:
            attempted.add(urldefrag(current)[0])
            snapshot = await self._visit(current, index, run, progress=f"[{index + 1}]")
            if snapshot is None:
                LOGGER.warning("No page to follow from %s, stopping traversal", current)
                break
            attempted.add(urldefrag(snapshot.url)[0])

            next_url = harvest_next_link(snapshot, start_url)
            if not next_url:
                break
            if urldefrag(next_url)[0] in attempted:
                LOGGER.info("Next link %s was already visited, stopping", next_url)
                break
            current = next_url
            index += 1
            await self._pause()

    async def _visit(
        self, url: str, index: int, run: _RunState, *, progress: str
    ) -> Optional[PageSnapshot]:
        """Scrape one chapter, recording either a record or a failure.

        Returns the loaded page (also after an extraction failure) so the
        navigation strategy can look for the next link.
        """
        snapshot: Optional[PageSnapshot] = None
        try:
            snapshot = await self.pages.load(url)
            record = await self._build_chapter(snapshot, url, index, run.images)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            LOGGER.warning("%s Failed to scrape %s: %s", progress, url, message)
            run.failures.append(ChapterFailure(sequence_index=index, url=url, error=message))
            return snapshot

        run.chapters.append(record)
        LOGGER.info("  %s %s", progress, record.title)
        return snapshot

    async def _build_chapter(
        self,
        snapshot: PageSnapshot,
        url: str,
        index: int,
        images: ImageRunState,
    ) -> ChapterRecord:
        content = extract_chapter(snapshot.html)
        local_images = await resolve_chapter_images(
            content.image_urls, images, self.fetcher, self.storage
        )
        html = substitute_image_sources(content.html, local_images)
        markdown = compose_chapter_markdown(content.title, render_markdown(html))

        record = ChapterRecord.create(index, content.title, url)
        self.storage.write_chapter(record, markdown)
        return record

    async def _pause(self) -> None:
        seconds = self.options.chapter_delay
        if self.options.delay_jitter > 0:
            seconds += self._jitter(0, self.options.delay_jitter)
        if seconds > 0:
            await self._sleep(seconds)

    def _finalize(self, run: _RunState, mode: str) -> ScrapeResult:
        metadata = RunMetadata(
            started_at=run.started_at,
            start_url=run.start_url,
            chapters=list(run.chapters),
        )
        meta_path = self.storage.write_metadata(metadata)

        LOGGER.info("Done! Scraped %d chapters.", len(run.chapters))
        if run.images.failed_count:
            LOGGER.warning("%d images failed to download", run.images.failed_count)
        if run.failures:
            LOGGER.warning("%d chapters failed:", len(run.failures))
            for failure in run.failures:
                LOGGER.warning("  #%d %s: %s", failure.sequence_index + 1, failure.url, failure.error)

        return ScrapeResult(
            metadata=metadata,
            mode=mode,
            failures=list(run.failures),
            failed_images=run.images.failed_count,
            metadata_path=str(meta_path),
        )
