"""Chapter content extraction from rendered Tilda pages."""

from __future__ import annotations

import copy
import html as html_lib
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from .dedup import dedupe_fragments_with_stats

LOGGER = logging.getLogger(__name__)

UNTITLED = "Untitled"

# Tilda record types that never hold book content: menus, forms, cover.
EXCLUDED_RECORD_TYPES = frozenset({"229", "228", "702", "210"})

TEXT_BLOCK_SELECTORS: List[str] = [
    ".t-text",
    ".t-title",
    ".t-descr",
    ".t-text-impact",
    "[class*='t-text']",
    "[class*='t-title']",
    ".t668__content",
    ".t686__text",
    ".t688__text",
]

FALLBACK_CONTAINER_SELECTOR = "#allrecords"
FALLBACK_STRIP_SELECTOR = "[class*='menu'], nav, .t-btnflex, script, style"

IMAGE_HOST_MARKERS = ("tildacdn.com",)


@dataclass(slots=True)
class ChapterContent:
    """Extraction result for one page."""

    title: str
    html: str
    image_urls: List[str] = field(default_factory=list)


def extract_chapter(page_html: str) -> ChapterContent:
    """Extract title, deduplicated content and Tilda image URLs from a page.

    A page without title or content is still a valid (empty) chapter.
    """
    soup = BeautifulSoup(page_html or "", "html.parser")
    title = _extract_title(soup)

    fragments: List[str] = []
    image_urls: List[str] = []
    for record in soup.select("[data-record-type]"):
        if record.get("data-record-type") in EXCLUDED_RECORD_TYPES:
            continue
        _collect_record(record, fragments, image_urls)

    if not fragments:
        _collect_fallback(soup, fragments, image_urls)

    unique, stats = dedupe_fragments_with_stats(fragments)
    LOGGER.debug(
        "Extracted %d fragments (%d duplicates removed), %d images",
        len(unique),
        stats["fragments_removed"],
        len(image_urls),
    )
    return ChapterContent(
        title=title,
        html="\n\n".join(unique),
        image_urls=list(dict.fromkeys(image_urls)),
    )


def is_tilda_image(src: Optional[str]) -> bool:
    return bool(src) and any(marker in src for marker in IMAGE_HOST_MARKERS)


def image_fragment(src: str, alt: str = "") -> str:
    return (
        f'<img src="{html_lib.escape(src, quote=True)}" '
        f'alt="{html_lib.escape(alt, quote=True)}">'
    )


def _extract_title(soup: BeautifulSoup) -> str:
    heading = soup.find("h1")
    if heading is not None:
        text = heading.get_text().strip()
        if text:
            return text
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title is not None:
        content = str(og_title.get("content") or "").strip()
        if content:
            return content
    return UNTITLED


def _collect_record(record: Tag, fragments: List[str], image_urls: List[str]) -> None:
    selector = ", ".join(TEXT_BLOCK_SELECTORS + ["img[src]"])
    for element in record.select(selector):
        if element.name == "img":
            src = element.get("src")
            if is_tilda_image(src):
                image_urls.append(src)
                fragments.append(image_fragment(src, str(element.get("alt") or "")))
            continue

        if _inside_skipped_container(element):
            continue
        inner = element.decode_contents()
        if inner.strip():
            fragments.append(inner)


def _inside_skipped_container(element: Tag) -> bool:
    """True when the element sits in a navigation button or a menu."""
    for node in [element, *element.parents]:
        if _is_skipped_container(node):
            return True
    return False


def _is_skipped_container(node: Tag) -> bool:
    classes = node.get("class") or []
    if "t-btnflex" in classes:
        return True
    return "menu" in " ".join(classes)


def _collect_fallback(
    soup: BeautifulSoup, fragments: List[str], image_urls: List[str]
) -> None:
    container = soup.select_one(FALLBACK_CONTAINER_SELECTOR)
    if container is None:
        return

    root = copy.copy(container)
    for unwanted in root.select(FALLBACK_STRIP_SELECTOR):
        unwanted.extract()

    for image in root.select("img[src]"):
        src = image.get("src")
        if is_tilda_image(src):
            image_urls.append(src)

    fragments.append(root.decode_contents())
