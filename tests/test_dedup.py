"""Tests for bookscraper.dedup module."""

from __future__ import annotations

from bookscraper.dedup import dedupe_fragments, dedupe_fragments_with_stats, fragment_key


class TestFragmentKey:
    def test_text_key_strips_markup(self):
        assert fragment_key("<p>Hello <b>world</b></p>") == "Hello world"

    def test_image_key_is_src(self):
        assert fragment_key('<img src="https://x/a.jpg" alt="A">') == "https://x/a.jpg"

    def test_image_wins_over_text(self):
        assert fragment_key('<div>caption<img src="https://x/a.jpg"></div>') == "https://x/a.jpg"


class TestDedupeFragments:
    def test_responsive_duplicates_removed(self):
        fragments = [
            '<div class="t-text t-text_md">Same paragraph</div>',
            '<div class="t-text t-text_xs"><span>Same paragraph</span></div>',
            "<p>Other</p>",
        ]
        assert dedupe_fragments(fragments) == [fragments[0], fragments[2]]

    def test_duplicate_images_removed(self):
        fragments = [
            '<img src="https://static.tildacdn.com/tild1/a.jpg" alt="">',
            '<img src="https://static.tildacdn.com/tild1/a.jpg" alt="mobile">',
        ]
        assert dedupe_fragments(fragments) == fragments[:1]

    def test_empty_fragments_dropped(self):
        assert dedupe_fragments(["", "   ", "<p> </p>", "<p>x</p>"]) == ["<p>x</p>"]

    def test_key_is_case_sensitive(self):
        assert dedupe_fragments(["<p>Title</p>", "<p>title</p>"]) == [
            "<p>Title</p>",
            "<p>title</p>",
        ]

    def test_idempotent(self):
        fragments = ["<p>a</p>", "<p>b</p>", "<i>a</i>", "", "<p>c</p>", "<p>b</p>"]
        once = dedupe_fragments(fragments)
        assert dedupe_fragments(once) == once

    def test_output_is_ordered_subsequence(self):
        fragments = ["<p>3</p>", "<p>1</p>", "<p>3</p>", "<p>2</p>", "<p>1</p>"]
        result = dedupe_fragments(fragments)
        assert result == ["<p>3</p>", "<p>1</p>", "<p>2</p>"]
        positions = [fragments.index(item) for item in result]
        assert positions == sorted(positions)

    def test_accepts_generator(self):
        assert dedupe_fragments(f"<p>{i % 2}</p>" for i in range(4)) == ["<p>0</p>", "<p>1</p>"]


class TestDedupeStats:
    def test_counters(self):
        kept, stats = dedupe_fragments_with_stats(["<p>a</p>", "<p>a</p>", ""])
        assert kept == ["<p>a</p>"]
        assert stats == {"fragments_total": 3, "fragments_removed": 2}
