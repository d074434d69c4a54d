"""Assemble chapter files into a single ``book.md``."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from .document import ChapterRecord, InvalidMetadataError, RunMetadata
from .markdown import IMAGE_LINK_PREFIX, generate_anchor
from .storage import BookStorage

LOGGER = logging.getLogger(__name__)

DEFAULT_BOOK_NAME = "Book"
SEPARATOR = "\n---\n"
MERGED_IMAGE_PREFIX = "./images/"


class MergeError(Exception):
    """Raised when there is nothing valid to merge."""


def fix_image_paths(content: str) -> str:
    """Rewrite chapter-relative image links for the merged document."""
    return content.replace(IMAGE_LINK_PREFIX, MERGED_IMAGE_PREFIX)


def generate_toc_entry(chapter: ChapterRecord) -> str:
    """Numbered TOC line, e.g. ``1. [Introduction](#introduction)``."""
    anchor = generate_anchor(chapter.title)
    return f"{chapter.sequence_index + 1}. [{chapter.title}](#{anchor})"


def format_scrape_date(value: str) -> str:
    """Calendar date of an ISO timestamp; unparseable values pass through."""
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError:
        return value


def build_book_markdown(
    metadata: RunMetadata,
    chapter_texts: Dict[str, str],
    name: str = DEFAULT_BOOK_NAME,
) -> str:
    """Render the merged document.

    Args:
        metadata: Run metadata listing the chapters in order.
        chapter_texts: Chapter Markdown keyed by filename. Chapters missing
            from the mapping are left out of the body but stay in the TOC.
        name: Book title for the title page.
    """
    parts: List[str] = [
        f"# {name}\n",
        f"Scraped from: {metadata.start_url}",
        f"Date: {format_scrape_date(metadata.started_at)}",
        f"Chapters: {len(metadata.chapters)}",
        SEPARATOR,
        "## Table of Contents\n",
    ]
    parts.extend(generate_toc_entry(chapter) for chapter in metadata.chapters)
    parts.append(SEPARATOR)

    for chapter in metadata.chapters:
        content = chapter_texts.get(chapter.filename)
        if content is None:
            continue
        parts.append(fix_image_paths(content))
        parts.append(SEPARATOR)

    return "\n".join(parts)


def merge_book(storage: BookStorage, name: str = DEFAULT_BOOK_NAME) -> Path:
    """Merge the chapters listed in ``meta.json`` into ``book.md``.

    Returns:
        Path of the written book.

    Raises:
        MergeError: If metadata is missing, invalid or lists no chapters.
    """
    try:
        metadata = storage.read_metadata()
    except FileNotFoundError as exc:
        raise MergeError(
            f"{storage.meta_path} not found. Run a scrape first."
        ) from exc
    except InvalidMetadataError as exc:
        raise MergeError(f"Invalid {storage.meta_path}: {exc}") from exc

    if not metadata.chapters:
        raise MergeError("No chapters found in metadata.")

    LOGGER.info("Merging %d chapters...", len(metadata.chapters))
    chapter_texts: Dict[str, str] = {}
    for chapter in metadata.chapters:
        try:
            chapter_texts[chapter.filename] = storage.read_chapter(chapter.filename)
        except OSError:
            LOGGER.warning("Could not read %s, skipping.", chapter.filename)
            continue
        LOGGER.info("  Added: %s", chapter.filename)

    path = storage.write_book(build_book_markdown(metadata, chapter_texts, name))
    size_kb = path.stat().st_size / 1024
    LOGGER.info("Merged document saved to: %s (%.1f KB)", path, size_kb)
    return path
