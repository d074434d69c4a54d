"""Scrape options and configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "bookscraper"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1280, "height": 800}

MODES = ("auto", "toc", "nav")


@dataclass
class ScrapeOptions:
    """Tunable settings for one scrape run.

    Times are in seconds. ``toc_threshold`` is exclusive: a start page with
    more same-site links than this is treated as a table of contents.
    """

    output_dir: str = "output"
    page_wait: float = 1.0
    chapter_delay: float = 1.0
    delay_jitter: float = 0.5
    toc_threshold: int = 20
    mode: str = "auto"
    navigation_timeout: float = 30.0
    image_timeout: float = 30.0
    skip_urls: List[str] = field(default_factory=list)
    url_pattern: Optional[str] = None
    headless: bool = True

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode {self.mode!r}; expected one of {MODES}")
        for name in ("page_wait", "chapter_delay", "delay_jitter"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.toc_threshold < 0:
            raise ValueError("toc_threshold must not be negative")
        if self.navigation_timeout <= 0 or self.image_timeout <= 0:
            raise ValueError("timeouts must be positive")


# Environment variable -> (option name, converter)
_ENV_OPTIONS: Dict[str, tuple] = {
    "BOOKSCRAPE_OUTPUT_DIR": ("output_dir", str),
    "BOOKSCRAPE_PAGE_WAIT": ("page_wait", float),
    "BOOKSCRAPE_CHAPTER_DELAY": ("chapter_delay", float),
    "BOOKSCRAPE_DELAY_JITTER": ("delay_jitter", float),
    "BOOKSCRAPE_TOC_THRESHOLD": ("toc_threshold", int),
    "BOOKSCRAPE_MODE": ("mode", str),
    "BOOKSCRAPE_NAVIGATION_TIMEOUT": ("navigation_timeout", float),
    "BOOKSCRAPE_IMAGE_TIMEOUT": ("image_timeout", float),
}


def options_from_env(**overrides: Any) -> ScrapeOptions:
    """Build :class:`ScrapeOptions` from ``BOOKSCRAPE_*`` variables.

    Environment variables are read at call time. Keyword overrides that are
    not ``None`` take precedence over the environment.
    """
    values: Dict[str, Any] = {}
    for env_name, (option, convert) in _ENV_OPTIONS.items():
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            values[option] = convert(raw.strip())
        except ValueError:
            LOGGER.warning("Ignoring invalid %s=%r", env_name, raw)

    known = {f.name for f in fields(ScrapeOptions)}
    for key, value in overrides.items():
        if key not in known:
            raise TypeError(f"Unknown option: {key}")
        if value is not None:
            values[key] = value

    return ScrapeOptions(**values)


def load_config(
    *,
    cwd: Optional[Path] = None,
    config_env_file: Path = CONFIG_ENV_FILE,
    load_env: Callable[[Path], bool] = load_dotenv,
) -> Optional[Path]:
    """Load .env configuration with fallback to the user config directory.

    Search order:
    1. .env in the current working directory
    2. ~/.config/bookscraper/.env

    Returns the file that was loaded, if any.
    """
    local_env = (cwd or Path.cwd()) / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    if config_env_file.is_file():
        load_env(config_env_file)
        return config_env_file

    return None
