"""Content fragment deduplication.

Tilda renders many blocks twice (desktop and mobile variants) with different
markup but identical text. Fragments are therefore compared by a content key:
the image source for image fragments, the plain text for everything else.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from bs4 import BeautifulSoup


def fragment_key(fragment: str) -> str:
    """Return the dedup key of an (already trimmed) HTML fragment."""
    soup = BeautifulSoup(fragment, "html.parser")
    image = soup.find("img")
    if image is not None:
        return str(image.get("src") or "")
    return soup.get_text().strip()


def dedupe_fragments(fragments: Iterable[str]) -> List[str]:
    """Drop empty and duplicate fragments, keeping the first occurrence."""
    deduped, _ = dedupe_fragments_with_stats(fragments)
    return deduped


def dedupe_fragments_with_stats(
    fragments: Iterable[str],
) -> Tuple[List[str], Dict[str, int]]:
    """Like :func:`dedupe_fragments` but also return removal counters."""
    seen: Set[str] = set()
    kept: List[str] = []
    total = 0

    for fragment in fragments:
        total += 1
        key = _key_or_none(fragment)
        if key is None or key in seen:
            continue
        seen.add(key)
        kept.append(fragment)

    stats = {
        "fragments_total": total,
        "fragments_removed": total - len(kept),
    }
    return kept, stats


def _key_or_none(fragment: Optional[str]) -> Optional[str]:
    trimmed = (fragment or "").strip()
    if not trimmed:
        return None
    return fragment_key(trimmed) or None
