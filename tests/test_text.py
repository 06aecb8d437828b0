"""
tests/test_text.py — Slugs & HTML Sanitization
================================================
"""

from __future__ import annotations

import re
from itertools import islice

from onsweb.text import (
    candidate_slugs,
    sanitize_filename,
    sanitize_html,
    sanitize_text,
    slugify,
)


SLUG_SHAPE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


class TestSlugify:
    def test_basic_title(self):
        assert slugify("Hello World") == "hello-world"

    def test_strips_punctuation_and_collapses_separators(self):
        assert slugify("  Summer -- Picnic!!  2025 __ Edition ") == "summer-picnic-2025-edition"

    def test_trims_leading_and_trailing_hyphens(self):
        assert slugify("--Meetup--") == "meetup"

    def test_truncates_to_100_chars(self):
        slug = slugify("a" * 250)
        assert len(slug) == 100
        assert SLUG_SHAPE.fullmatch(slug)

    def test_html_characters_are_dropped_not_spelled_out(self):
        assert slugify("Tom & Jerry < Friends") == "tom-jerry-friends"

    def test_accents_fold_to_ascii(self):
        slug = slugify("Café Night Dashain")
        assert slug == "cafe-night-dashain"
        assert SLUG_SHAPE.fullmatch(slug)

    def test_non_latin_title_falls_back(self):
        slug = slugify("दशैं उत्सव")
        assert slug == "content"

    def test_mixed_scripts_keep_only_ascii_words(self):
        slug = slugify("Tihar तिहार 2025")
        assert slug == "tihar-2025"
        assert SLUG_SHAPE.fullmatch(slug)

    def test_candidates_append_incrementing_suffix(self):
        assert list(islice(candidate_slugs("news"), 4)) == [
            "news", "news-1", "news-2", "news-3",
        ]


class TestSanitizeHtml:
    def test_strips_script_keeps_paragraph(self):
        html = "<p>Hello</p><script>alert('x')</script>"
        assert sanitize_html(html) == "<p>Hello</p>"

    def test_drops_event_handler_attributes(self):
        cleaned = sanitize_html('<p onclick="steal()">Hi</p>')
        assert "onclick" not in cleaned
        assert "<p>Hi</p>" == cleaned

    def test_removes_iframes_and_forms(self):
        cleaned = sanitize_html('<iframe src="https://x"></iframe><form><input></form><b>ok</b>')
        assert "iframe" not in cleaned
        assert "form" not in cleaned
        assert "<b>ok</b>" in cleaned

    def test_rejects_javascript_links(self):
        cleaned = sanitize_html('<a href="javascript:alert(1)">x</a>')
        assert "javascript" not in cleaned

    def test_keeps_allowed_structure(self):
        html = "<h2>Title</h2><ul><li>one</li></ul><blockquote>q</blockquote>"
        assert sanitize_html(html) == html


class TestSanitizePlain:
    def test_sanitize_text_strips_tags(self):
        assert sanitize_text("  <b>Bold</b> name ") == "Bold name"

    def test_sanitize_text_returns_plain_characters(self):
        assert sanitize_text("Tom & Jerry < Friends") == "Tom & Jerry < Friends"
        assert sanitize_text('Café "Bar" & Grill') == 'Café "Bar" & Grill'

    def test_sanitize_text_passes_none(self):
        assert sanitize_text(None) is None

    def test_sanitize_filename_removes_path_parts(self):
        name = sanitize_filename("../../etc/pass wd.png")
        assert "/" not in name
        assert name.endswith(".png")
