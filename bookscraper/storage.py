"""Filesystem persistence for a scraped book.

Layout under the output directory::

    chapters/001-introduction.md
    images/img-0000.jpg
    meta.json
    book.md
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Union

from .document import ChapterRecord, InvalidMetadataError, RunMetadata
from .images import image_filename

LOGGER = logging.getLogger(__name__)

CHAPTERS_DIRNAME = "chapters"
IMAGES_DIRNAME = "images"
META_FILENAME = "meta.json"
BOOK_FILENAME = "book.md"


class BookStorage:
    """Reads and writes the artifacts of one book directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.chapters_dir = self.root / CHAPTERS_DIRNAME
        self.images_dir = self.root / IMAGES_DIRNAME
        self.meta_path = self.root / META_FILENAME
        self.book_path = self.root / BOOK_FILENAME

    def prepare(self) -> None:
        """Create the output directories."""
        self.chapters_dir.mkdir(parents=True, exist_ok=True)
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def write_chapter(self, record: ChapterRecord, markdown: str) -> Path:
        path = self.chapters_dir / record.filename
        path.write_text(markdown, encoding="utf-8")
        LOGGER.debug("Wrote %s", path)
        return path

    def save_image(self, data: bytes, index: int) -> str:
        """Write JPEG bytes and return the filename relative to ``images/``."""
        filename = image_filename(index)
        (self.images_dir / filename).write_bytes(data)
        return filename

    def write_metadata(self, metadata: RunMetadata) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        self.meta_path.write_text(
            json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        LOGGER.info("Metadata saved to %s", self.meta_path)
        return self.meta_path

    def read_metadata(self) -> RunMetadata:
        """Load and validate ``meta.json``.

        Raises:
            FileNotFoundError: If the file does not exist.
            InvalidMetadataError: If it is not valid JSON or has the wrong shape.
        """
        text = self.meta_path.read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidMetadataError(f"meta.json is not valid JSON: {exc}") from exc
        return RunMetadata.from_dict(data)

    def read_chapter(self, filename: str) -> str:
        return (self.chapters_dir / filename).read_text(encoding="utf-8")

    def write_book(self, text: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        self.book_path.write_text(text, encoding="utf-8")
        return self.book_path
