"""
onsweb.text — Slugs & Sanitizers
=================================

Pure string helpers shared by the content, event and media services:

* :func:`slugify` — ASCII URL identifiers from titles.
* :func:`sanitize_html` — rich-text allow-list cleaner (``nh3``).
* :func:`sanitize_text` — strips all markup from plain-text fields.
* :func:`sanitize_filename` — safe basename for uploaded files.
"""

from __future__ import annotations

import html
import re
import unicodedata

import nh3

SLUG_MAX_LENGTH = 100
FALLBACK_SLUG = "content"

_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SEPARATORS = re.compile(r"[\s_-]+", re.ASCII)

ALLOWED_TAGS: frozenset[str] = frozenset({
    "p", "br", "strong", "b", "em", "i", "u",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "blockquote", "a", "img",
    "div", "span", "pre", "code",
    "table", "thead", "tbody", "tr", "th", "td",
})

ALLOWED_ATTRIBUTES: frozenset[str] = frozenset({
    "href", "title", "alt", "src", "width", "height", "class", "id", "target",
})

# Dropped together with their content rather than unwrapped
_STRIPPED_WITH_CONTENT: frozenset[str] = frozenset({
    "script", "style", "object", "embed", "form", "iframe",
})


def slugify(title: str) -> str:
    """Lowercase, hyphen-separated ``[a-z0-9-]`` form of *title*.

    Accented Latin letters lose their marks (``Café`` → ``cafe``); other
    non-ASCII characters are dropped.  At most 100 characters.
    """
    folded = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = _NON_SLUG_CHARS.sub("", folded.lower().strip())
    slug = _SLUG_SEPARATORS.sub("-", slug).strip("-")
    return slug[:SLUG_MAX_LENGTH].strip("-") or FALLBACK_SLUG


def candidate_slugs(base: str):
    """Yield ``base``, ``base-1``, ``base-2``, …"""
    yield base
    n = 1
    while True:
        yield f"{base}-{n}"
        n += 1


def sanitize_html(html: str) -> str:
    """Clean rich-text *html* down to the formatting allow-list.

    Tags outside the list are unwrapped (their text survives) except for
    scripts, styles, embeds and forms, which vanish entirely.  Every ``on*``
    handler and any attribute not in :data:`ALLOWED_ATTRIBUTES` is removed.
    """
    if not html:
        return ""
    return nh3.clean(
        html,
        tags=set(ALLOWED_TAGS),
        clean_content_tags=set(_STRIPPED_WITH_CONTENT),
        attributes={"*": set(ALLOWED_ATTRIBUTES)},
        url_schemes={"http", "https", "mailto"},
        link_rel=None,
    )


def sanitize_text(text: str | None) -> str | None:
    """Remove every tag from *text*, keeping its character data.

    The result is plain text, not HTML: ``&`` and ``<`` come back as typed.
    """
    if text is None:
        return None
    cleaned = nh3.clean(text, tags=set(), clean_content_tags=set(_STRIPPED_WITH_CONTENT))
    return html.unescape(cleaned).strip()


_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str) -> str:
    """Basename of *name* with anything outside ``[A-Za-z0-9._-]`` replaced."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    base = _UNSAFE_FILENAME.sub("_", base).strip("._")
    return base[:255] or "file"
