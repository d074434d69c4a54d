"""Data structures representing a scraped book."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_FILENAME_UNSAFE = re.compile(r"[^a-zа-яё0-9]+")
_MAX_SLUG_LENGTH = 50


class InvalidMetadataError(ValueError):
    """Raised when a metadata document does not have the expected shape."""


def sanitize_filename(title: str) -> str:
    """Create a filesystem-safe, lower-case slug from a chapter title.

    Latin and Cyrillic letters and digits survive; every other run of
    characters becomes a single dash. The result is truncated to 50 chars.
    """
    slug = _FILENAME_UNSAFE.sub("-", title.lower())
    if slug.startswith("-"):
        slug = slug[1:]
    if slug.endswith("-"):
        slug = slug[:-1]
    return slug[:_MAX_SLUG_LENGTH] or "untitled"


def local_identifier(sequence_index: int, title: str) -> str:
    """Persistence key for a chapter, e.g. ``003-introduction``."""
    return f"{sequence_index + 1:03d}-{sanitize_filename(title)}"


@dataclass(frozen=True, slots=True)
class ChapterRecord:
    """One successfully scraped chapter."""

    sequence_index: int
    title: str
    source_url: str
    local_identifier: str

    @classmethod
    def create(cls, sequence_index: int, title: str, source_url: str) -> "ChapterRecord":
        return cls(
            sequence_index=sequence_index,
            title=title,
            source_url=source_url,
            local_identifier=local_identifier(sequence_index, title),
        )

    @property
    def filename(self) -> str:
        return f"{self.local_identifier}.md"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.sequence_index,
            "title": self.title,
            "url": self.source_url,
            "filename": self.filename,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterRecord":
        filename = str(data["filename"])
        identifier = filename[:-3] if filename.endswith(".md") else filename
        return cls(
            sequence_index=int(data["index"]),
            title=str(data["title"]),
            source_url=str(data["url"]),
            local_identifier=identifier,
        )


@dataclass(slots=True)
class RunMetadata:
    """Aggregate written as ``meta.json`` at the end of a run."""

    started_at: str
    start_url: str
    chapters: List[ChapterRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scrapedAt": self.started_at,
            "startUrl": self.start_url,
            "chapters": [chapter.to_dict() for chapter in self.chapters],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "RunMetadata":
        validate_book_meta(data)
        return cls(
            started_at=data["scrapedAt"],
            start_url=data["startUrl"],
            chapters=[ChapterRecord.from_dict(item) for item in data["chapters"]],
        )


@dataclass(frozen=True, slots=True)
class ChapterFailure:
    """A chapter whose load or extraction raised."""

    sequence_index: int
    url: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.sequence_index, "url": self.url, "error": self.error}


@dataclass(slots=True)
class ScrapeResult:
    """Outcome of one run: metadata plus the failure summary."""

    metadata: RunMetadata
    mode: str
    failures: List[ChapterFailure] = field(default_factory=list)
    failed_images: int = 0
    metadata_path: Optional[str] = None

    @property
    def chapters(self) -> List[ChapterRecord]:
        return self.metadata.chapters

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "metadata": self.metadata.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
            "failed_images": self.failed_images,
        }


def validate_book_meta(data: Any) -> None:
    """Check the shape of a ``meta.json`` document.

    Raises:
        InvalidMetadataError: describing the first problem found.
    """
    if not isinstance(data, dict):
        raise InvalidMetadataError("meta.json must be an object")
    if not isinstance(data.get("scrapedAt"), str):
        raise InvalidMetadataError("Missing or invalid field: scrapedAt (expected string)")
    if not isinstance(data.get("startUrl"), str):
        raise InvalidMetadataError("Missing or invalid field: startUrl (expected string)")
    chapters = data.get("chapters")
    if not isinstance(chapters, list):
        raise InvalidMetadataError("Missing or invalid field: chapters (expected array)")

    for position, chapter in enumerate(chapters):
        if not isinstance(chapter, dict):
            raise InvalidMetadataError(f"chapters[{position}] must be an object")
        index = chapter.get("index")
        if isinstance(index, bool) or not isinstance(index, (int, float)):
            raise InvalidMetadataError(f"chapters[{position}].index must be a number")
        for key in ("title", "url", "filename"):
            if not isinstance(chapter.get(key), str):
                raise InvalidMetadataError(f"chapters[{position}].{key} must be a string")
