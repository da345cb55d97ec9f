"""Utility functions for mdweave.

This module contains small string and path helpers shared by the pipeline
stages. Nothing here touches document content beyond plain strings.

Key functions:
    slugify: Normalize text into an anchor/identifier slug.
    titleize: Convert filenames to human-readable titles.
    is_markdown: Check if a path is a Markdown file.
    strip_markdown_suffix: Drop a Markdown extension from a name.
    output_path_for: Derive the HTML output path for a source path.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path, PurePosixPath

MARKDOWN_SUFFIXES = (".md", ".markdown")

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[-\s]+")


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug.

    Lowercases, strips punctuation, and turns whitespace runs into a
    single hyphen. The result may be empty when the text is all
    punctuation; callers decide on a fallback.

    Args:
        text: Heading text, title or file stem.

    Returns:
        Slug string.

    Examples:
        >>> slugify("Getting Started!")
        'getting-started'

        >>> slugify("  API  v2 -- Notes ")
        'api-v2-notes'
    """
    slug = text.lower().strip()
    slug = _SLUG_STRIP_RE.sub("", slug)
    slug = _SLUG_SPACE_RE.sub("-", slug)
    return slug.strip("-")


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Replaces hyphens and underscores with spaces and capitalizes each word.

    Args:
        filename: Filename with or without extension.

    Returns:
        Human-readable title string.

    Examples:
        >>> titleize("getting-started.md")
        'Getting Started'
    """
    base = strip_markdown_suffix(PurePosixPath(filename).name)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def is_markdown(path: Path | PurePosixPath | str) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has a Markdown extension (case-insensitive).
    """
    return PurePosixPath(str(path)).suffix.lower() in MARKDOWN_SUFFIXES


def strip_markdown_suffix(name: str) -> str:
    """Remove a trailing Markdown extension, leaving other dots alone.

    Args:
        name: File name or link target.

    Returns:
        The name without ``.md``/``.markdown``.
    """
    lowered = name.lower()
    for suffix in MARKDOWN_SUFFIXES:
        if lowered.endswith(suffix):
            return name[: -len(suffix)]
    return name


def output_path_for(source_path: str) -> str:
    """Derive the output HTML path for a content-relative source path.

    Args:
        source_path: Posix path relative to the content root.

    Returns:
        The same path with an ``.html`` suffix.

    Examples:
        >>> output_path_for("notes/a.md")
        'notes/a.html'
    """
    return PurePosixPath(source_path).with_suffix(".html").as_posix()


def is_internal_path(path: PurePosixPath | Path) -> bool:
    """Check if a relative path is internal (a component starts with _ or .).

    Args:
        path: Path relative to the content root.

    Returns:
        True if any directory component is hidden or underscored.
    """
    return any(part.startswith(("_", ".")) for part in path.parts[:-1])


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)
