"""Link harvesting for the two traversal strategies.

Both harvesters are pure functions over a :class:`PageSnapshot`, so they can be
exercised against stored HTML without a browser.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set
from urllib.parse import urldefrag, urlparse

from bs4 import BeautifulSoup, Tag

from .browser import PageSnapshot
from .urls import host_of, is_same_site, is_social_link, resolve

LOGGER = logging.getLogger(__name__)

# Tilda menu blocks.
MENU_BLOCK_CLASSES = frozenset({"t228", "t229"})
NAV_CLASS_MARKERS = ("menu", "nav")

_SKIPPED_SCHEMES = ("mailto:", "tel:")

# Case-insensitive substrings that mark a "next chapter" link.
NEXT_LINK_TERMS = (
    "next",
    "следующ",
    "далее",
    "дальше",
    "наступн",
    "далі",
    "weiter",
    "nächste",
    "suivant",
    "siguiente",
    "próximo",
    "proximo",
    "seguinte",
    "successivo",
    "avanti",
    "→",
)


def harvest_toc_links(page: PageSnapshot, base_url: str) -> List[str]:
    """Collect same-site content links from a table-of-contents page.

    Args:
        page: The rendered page.
        base_url: URL whose host defines "same site" (usually the seed URL).

    Returns:
        Absolute URLs in first-seen order, without duplicates.
    """
    soup = BeautifulSoup(page.html or "", "html.parser")
    base_host = host_of(base_url)
    current_path = _path_of(page.url)

    links: List[str] = []
    seen: Set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = str(anchor.get("href") or "").strip()
        if not href or "#" in href:
            continue
        if href.lower().startswith(_SKIPPED_SCHEMES):
            continue

        resolved = resolve(href, page.url)
        if resolved is None:
            LOGGER.debug("Skipping unresolvable href %r", href)
            continue
        if is_social_link(resolved) or not is_same_site(resolved, base_host):
            continue

        path = _path_of(resolved)
        if path in ("", "/") or path == current_path:
            continue
        if _inside_navigation(anchor):
            continue

        if resolved not in seen:
            seen.add(resolved)
            links.append(resolved)

    LOGGER.debug("Harvested %d content links from %s", len(links), page.url)
    return links


def harvest_next_link(page: PageSnapshot, base_url: str) -> Optional[str]:
    """Find the "next chapter" link of a page.

    The first anchor whose text contains a term from ``NEXT_LINK_TERMS`` wins.
    Anchors pointing back at the current page, with or without a fragment,
    are passed over.

    Returns:
        The resolved URL of the first candidate, or ``None``.
    """
    current = page.url or base_url
    soup = BeautifulSoup(page.html or "", "html.parser")
    for anchor in soup.find_all("a", href=True):
        text = anchor.get_text().strip().lower()
        if not text or not any(term in text for term in NEXT_LINK_TERMS):
            continue
        href = str(anchor.get("href") or "").strip()
        if not href or href.startswith("#"):
            continue
        resolved = resolve(href, current)
        if resolved and urldefrag(resolved)[0] == urldefrag(current)[0]:
            continue
        return resolved
    return None


def _path_of(url: str) -> str:
    try:
        return urlparse(url).path
    except ValueError:
        return ""


def _inside_navigation(anchor: Tag) -> bool:
    for node in [anchor, *anchor.parents]:
        if node.name == "nav":
            return True
        classes = node.get("class") or []
        if MENU_BLOCK_CLASSES.intersection(classes):
            return True
        joined = " ".join(classes)
        if any(marker in joined for marker in NAV_CLASS_MARKERS):
            return True
    return False
