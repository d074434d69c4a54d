"""Tests for bookscraper.config module."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from bookscraper.config import (
    DEFAULT_USER_AGENT,
    DEFAULT_VIEWPORT,
    ScrapeOptions,
    load_config,
    options_from_env,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "BOOKSCRAPE_OUTPUT_DIR",
        "BOOKSCRAPE_PAGE_WAIT",
        "BOOKSCRAPE_CHAPTER_DELAY",
        "BOOKSCRAPE_DELAY_JITTER",
        "BOOKSCRAPE_TOC_THRESHOLD",
        "BOOKSCRAPE_MODE",
        "BOOKSCRAPE_NAVIGATION_TIMEOUT",
        "BOOKSCRAPE_IMAGE_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestScrapeOptions:
    def test_defaults(self):
        options = ScrapeOptions()
        assert options.output_dir == "output"
        assert options.page_wait == 1.0
        assert options.chapter_delay == 1.0
        assert options.delay_jitter == 0.5
        assert options.toc_threshold == 20
        assert options.mode == "auto"
        assert options.navigation_timeout == 30.0
        assert options.skip_urls == []
        assert options.url_pattern is None
        assert options.headless is True

    def test_skip_urls_not_shared(self):
        first, second = ScrapeOptions(), ScrapeOptions()
        first.skip_urls.append("/x")
        assert second.skip_urls == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mode": "fast"},
            {"page_wait": -1},
            {"chapter_delay": -0.1},
            {"delay_jitter": -1},
            {"toc_threshold": -1},
            {"navigation_timeout": 0},
            {"image_timeout": -5},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            ScrapeOptions(**kwargs)

    def test_browser_defaults(self):
        assert "Chrome/120" in DEFAULT_USER_AGENT
        assert DEFAULT_VIEWPORT == {"width": 1280, "height": 800}


class TestOptionsFromEnv:
    def test_defaults_without_env(self):
        assert options_from_env() == ScrapeOptions()

    def test_env_values(self, monkeypatch):
        monkeypatch.setenv("BOOKSCRAPE_OUTPUT_DIR", "book")
        monkeypatch.setenv("BOOKSCRAPE_PAGE_WAIT", "2.5")
        monkeypatch.setenv("BOOKSCRAPE_TOC_THRESHOLD", "5")
        monkeypatch.setenv("BOOKSCRAPE_MODE", "nav")

        options = options_from_env()

        assert options.output_dir == "book"
        assert options.page_wait == 2.5
        assert options.toc_threshold == 5
        assert options.mode == "nav"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("BOOKSCRAPE_CHAPTER_DELAY", "3")
        options = options_from_env(chapter_delay=0.0, page_wait=None)
        assert options.chapter_delay == 0.0
        assert options.page_wait == 1.0

    def test_invalid_env_value_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("BOOKSCRAPE_TOC_THRESHOLD", "many")
        with caplog.at_level("WARNING"):
            options = options_from_env()
        assert options.toc_threshold == 20
        assert "BOOKSCRAPE_TOC_THRESHOLD" in caplog.text

    def test_unknown_override(self):
        with pytest.raises(TypeError):
            options_from_env(colour="blue")


class TestLoadConfig:
    def test_prefers_local_env(self, tmp_path):
        (tmp_path / ".env").write_text("X=1\n")
        global_env = tmp_path / "global.env"
        global_env.write_text("X=2\n")
        loader = MagicMock()

        loaded = load_config(cwd=tmp_path, config_env_file=global_env, load_env=loader)

        assert loaded == tmp_path / ".env"
        loader.assert_called_once_with(tmp_path / ".env")

    def test_falls_back_to_user_config(self, tmp_path):
        global_env = tmp_path / "global.env"
        global_env.write_text("X=2\n")
        loader = MagicMock()

        loaded = load_config(cwd=tmp_path, config_env_file=global_env, load_env=loader)

        assert loaded == global_env
        loader.assert_called_once_with(global_env)

    def test_nothing_found(self, tmp_path):
        loader = MagicMock()
        assert load_config(cwd=tmp_path, config_env_file=tmp_path / "none", load_env=loader) is None
        loader.assert_not_called()

    def test_real_dotenv_loading(self, tmp_path, monkeypatch):
        # Register the variable so monkeypatch removes it again afterwards.
        monkeypatch.setenv("BOOKSCRAPE_MODE", "auto")
        monkeypatch.delenv("BOOKSCRAPE_MODE")
        (tmp_path / ".env").write_text("BOOKSCRAPE_MODE=toc\n")

        load_config(cwd=tmp_path, config_env_file=tmp_path / "none")

        assert options_from_env().mode == "toc"
