"""Frontmatter splitting for mdweave.

A document may open with a metadata block delimited by a marker line
(``---`` by default) repeated to close it. The block holds YAML key-value
metadata; the rest of the text is the Markdown body.

Key functions:
- split_frontmatter: Separate (metadata, body).
- join_frontmatter: Re-assemble a document from metadata and body.
- derive_title: Pick a document title from metadata, body or filename.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Any

import yaml

from .errors import MalformedFrontmatter
from .utils import titleize

DEFAULT_MARKER = "---"

_FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})")
_H1_RE = re.compile(r"^\s{0,3}#(?!#)\s+(.+?)(?:\s+#+)?\s*$")


def split_frontmatter(
    text: str, marker: str = DEFAULT_MARKER
) -> tuple[dict[str, Any], str]:
    """Split a document into its frontmatter mapping and Markdown body.

    Args:
        text: Raw document text.
        marker: Delimiter line that opens and closes the block.

    Returns:
        Tuple of (metadata dict, body). Without an opening marker the
        metadata is empty and the body is the full text.

    Raises:
        MalformedFrontmatter: The block is never closed, is not valid
            YAML, or is not a mapping. ``exc.body`` carries the text to
            render instead.
    """
    source = text[1:] if text.startswith("\ufeff") else text
    lines = source.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != marker:
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].rstrip() == marker:
            block = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return _load_block(block, body), body

    raise MalformedFrontmatter(
        f"frontmatter opened with {marker!r} is never closed",
        line=1,
        body=source,
    )


def _load_block(block: str, body: str) -> dict[str, Any]:
    """Parse the YAML between the markers."""
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        # +1 for 0-based marks, +1 for the opening marker line
        line = mark.line + 2 if mark is not None else 2
        problem = getattr(exc, "problem", None) or str(exc)
        raise MalformedFrontmatter(
            f"invalid YAML in frontmatter: {problem}", line=line, body=body
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedFrontmatter(
            f"frontmatter must be a mapping, got {type(data).__name__}",
            line=2,
            body=body,
        )
    return {str(key): value for key, value in data.items()}


def join_frontmatter(
    metadata: dict[str, Any], body: str, marker: str = DEFAULT_MARKER
) -> str:
    """Serialize metadata and body back into a single document.

    Args:
        metadata: Frontmatter mapping.
        body: Markdown body.
        marker: Delimiter line.

    Returns:
        Document text that splits back into an equivalent mapping and
        the same body.
    """
    dumped = ""
    if metadata:
        dumped = yaml.safe_dump(metadata, sort_keys=False, allow_unicode=True)
    return f"{marker}\n{dumped}{marker}\n{body}"


def derive_title(metadata: dict[str, Any], body: str, source_path: str) -> str:
    """Pick the title for a document.

    Uses the ``title`` frontmatter key, then the first level-1 ATX heading
    outside fenced code, then the titleized filename.

    Args:
        metadata: Frontmatter mapping.
        body: Markdown body.
        source_path: Content-relative source path.

    Returns:
        Title string.
    """
    title = metadata.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()

    fence: str | None = None
    for line in body.splitlines():
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker[0]
            elif marker[0] == fence:
                fence = None
            continue
        if fence is not None:
            continue
        heading = _H1_RE.match(line)
        if heading:
            return heading.group(1).strip()
    return titleize(PurePosixPath(source_path).name)
