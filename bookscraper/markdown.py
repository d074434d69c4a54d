"""HTML to Markdown conversion for chapter content."""

from __future__ import annotations

import re
from typing import Mapping

from bs4 import BeautifulSoup
from crawl4ai.markdown_generation_strategy import DefaultMarkdownGenerator

IMAGE_LINK_PREFIX = "../images/"

_ANCHOR_UNSAFE = re.compile(r"[^a-zа-яё0-9-]")


def build_markdown_generator() -> DefaultMarkdownGenerator:
    """Markdown generator for book chapters: unfiltered, images kept."""
    return DefaultMarkdownGenerator(
        content_filter=None,
        options={
            "citations": False,
            "body_width": 0,
            "ignore_images": False,
        },
    )


def render_markdown(html: str) -> str:
    """Convert merged chapter HTML to Markdown."""
    if not html or not html.strip():
        return ""
    generator = build_markdown_generator()
    generated = generator.generate_markdown(
        html,
        base_url="",
        options=generator.options,
        content_filter=None,
        citations=False,
    )
    return (generated.raw_markdown or "").strip()


def substitute_image_sources(
    html: str,
    mapping: Mapping[str, str],
    prefix: str = IMAGE_LINK_PREFIX,
) -> str:
    """Point ``<img src>`` attributes at downloaded local files.

    Images missing from *mapping* keep their remote source.
    """
    if not mapping:
        return html
    soup = BeautifulSoup(html, "html.parser")
    for image in soup.find_all("img", src=True):
        local = mapping.get(str(image["src"]))
        if local:
            image["src"] = f"{prefix}{local}"
    return str(soup)


def compose_chapter_markdown(title: str, markdown: str) -> str:
    """Prefix the chapter title as a heading unless one is already there."""
    body = markdown.strip()
    if body.startswith("#"):
        return f"{body}\n"
    if not body:
        return f"# {title}\n"
    return f"# {title}\n\n{body}\n"


def generate_anchor(title: str) -> str:
    """GitHub-style heading anchor, e.g. ``chapter-1-introduction``."""
    anchor = title.lower().replace(" ", "-")
    anchor = _ANCHOR_UNSAFE.sub("", anchor)
    return anchor.strip("-")
