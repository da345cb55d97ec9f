"""HTML utility functions for mdweave.

This module provides HTML string helpers: escaping, URL classification,
relative page URLs and asset reference collection from rendered HTML.

Functions:
    escape_html: Escape special HTML characters in a string.
    is_external_url: Check whether a URL leaves the content tree.
    split_fragment: Separate a URL path from its ``#fragment``.
    relative_url: Build a relative URL between two output paths.
    collect_asset_refs: Find local asset references in body HTML.
"""

from __future__ import annotations

import html
import posixpath
import re
from urllib.parse import quote, unquote

from .utils import is_markdown

# Tags whose src attribute points at an embedded resource
_SRC_ATTR_RE = re.compile(
    r"<(?:img|script|audio|video|source|track|iframe|embed)\b[^>]*?\ssrc=[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)
_LINK_HREF_RE = re.compile(r"<link\b[^>]*?\shref=[\"']([^\"']+)[\"']", re.IGNORECASE)
_ANCHOR_HREF_RE = re.compile(r"<a\b([^>]*?)\shref=[\"']([^\"']+)[\"']", re.IGNORECASE)
_BROKEN_LINK_CLASS_RE = re.compile(r"\sclass=[\"'][^\"']*\bbroken-link\b", re.IGNORECASE)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")

_PAGE_SUFFIXES = (".html", ".htm")


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &quot;Jerry&quot;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def is_external_url(url: str) -> bool:
    """Check whether a URL is absolute (has a scheme or is protocol-relative).

    Args:
        url: URL or path as written in the source.

    Returns:
        True for ``https://...``, ``mailto:...``, ``//host/...`` and similar.
    """
    return url.startswith("//") or bool(_SCHEME_RE.match(url))


def split_fragment(url: str) -> tuple[str, str | None]:
    """Split ``path#fragment`` into its parts.

    Args:
        url: URL or path.

    Returns:
        Tuple of (path, fragment or None).
    """
    path, sep, fragment = url.partition("#")
    return path, (fragment if sep and fragment else None)


def relative_url(from_path: str, to_path: str, fragment: str | None = None) -> str:
    """Build a relative URL from one output page to another.

    Args:
        from_path: Output path of the linking page (posix, root-relative).
        to_path: Output path of the target page.
        fragment: Optional section anchor.

    Returns:
        Percent-quoted relative URL.

    Examples:
        >>> relative_url("notes/a.html", "b.html", "intro")
        '../b.html#intro'
    """
    start = posixpath.dirname(from_path) or "."
    rel = quote(posixpath.relpath(to_path, start))
    if fragment:
        rel = f"{rel}#{quote(fragment)}"
    return rel


def _normalize_asset(url: str, source_path: str) -> str | None:
    """Normalize an asset URL relative to the content root.

    Returns None for URLs that are not local assets.
    """
    url = html.unescape(url.strip())
    if not url or url.startswith("#") or is_external_url(url):
        return None
    path = url.split("#", 1)[0].split("?", 1)[0]
    if not path:
        return None
    path = unquote(path)
    if path.startswith("/"):
        joined = path.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source_path), path)
    return posixpath.normpath(joined)


def collect_asset_refs(body_html: str, source_path: str) -> tuple[str, ...]:
    """Collect local asset references from rendered body HTML.

    Picks up embedded resources (img/script/media ``src``), stylesheet
    ``<link href>`` and anchors pointing at local files that are not pages.
    Anchors flagged with the ``broken-link`` class are skipped.

    Args:
        body_html: Rendered HTML of the document body.
        source_path: Content-relative path of the document.

    Returns:
        Asset paths relative to the content root, in order of first
        appearance and without duplicates.
    """
    found: list[tuple[int, str]] = []
    for pattern in (_SRC_ATTR_RE, _LINK_HREF_RE):
        found.extend((m.start(), m.group(1)) for m in pattern.finditer(body_html))
    for match in _ANCHOR_HREF_RE.finditer(body_html):
        # Flagged broken links keep their raw target; they are not files
        if _BROKEN_LINK_CLASS_RE.search(match.group(1)):
            continue
        target = match.group(2).split("#", 1)[0].split("?", 1)[0]
        suffix = posixpath.splitext(target)[1].lower()
        if not suffix or suffix in _PAGE_SUFFIXES or is_markdown(target):
            continue
        found.append((match.start(), match.group(2)))

    assets: dict[str, None] = {}
    for _, url in sorted(found, key=lambda item: item[0]):
        normalized = _normalize_asset(url, source_path)
        if normalized is not None:
            assets.setdefault(normalized, None)
    return tuple(assets)
