"""Content discovery and document construction for mdweave.

This module finds source files in the content tree, reads them and turns
each one into an immutable Document (metadata split from body, output
path derived from the source path).

Key classes:
- Document: One source document, identified by its content-relative path.
- SourceFile: A discovered file and its raw text, before splitting.
- FileContentLoader: Discovers and reads content files.
- DocumentBuilder: Splits frontmatter and builds Document instances.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from .diagnostics import DiagnosticKind, DiagnosticsCollector
from .errors import MalformedFrontmatter, UnreadableSource
from .frontmatter import DEFAULT_MARKER, derive_title, split_frontmatter
from .log import get_logger
from .utils import (
    is_internal_path,
    is_markdown,
    output_path_for,
    slugify,
    strip_markdown_suffix,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """A discovered content file and its decoded text.

    Attributes:
        source_path: Posix path relative to the content root.
        path: Filesystem path.
        raw: Decoded file contents.
    """

    source_path: str
    path: Path
    raw: str


@dataclass(frozen=True)
class Document:
    """A single source document.

    Documents live in an arena (a list) and refer to each other only by
    ``index``.

    Attributes:
        index: Position in the run's document list.
        source_path: Posix path relative to the content root (stable id).
        raw: Raw text as read from disk.
        frontmatter: Metadata mapping (empty when absent or malformed).
        body: Markdown body.
        output_path: Posix output path relative to the output root.
        title: Human-readable title.
    """

    index: int
    source_path: str
    raw: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    output_path: str = ""
    title: str = ""

    @property
    def stem(self) -> str:
        return strip_markdown_suffix(PurePosixPath(self.source_path).name)

    @property
    def identifiers(self) -> tuple[str, ...]:
        """Keys a link can use instead of a path: stem slug and title slug."""
        keys: dict[str, None] = {}
        for value in (self.stem, self.title):
            key = slugify(value)
            if key:
                keys.setdefault(key, None)
        return tuple(keys)


def read_source(path: Path) -> str:
    """Read and decode a source file.

    Args:
        path: File to read.

    Returns:
        Decoded text.

    Raises:
        UnreadableSource: The file cannot be read or is not UTF-8.
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise UnreadableSource(path, f"not valid UTF-8: {exc.reason}") from exc
    except OSError as exc:
        raise UnreadableSource(path, exc.strerror or str(exc)) from exc


class FileContentLoader:
    """Discovers content files in the content tree.

    Attributes:
        content_dir: Root of the content tree.
        include_drafts: Whether ``_``-prefixed files are included.
        exclude: Glob patterns (posix, content-relative) to skip.
    """

    def __init__(
        self,
        content_dir: Path,
        include_drafts: bool = False,
        exclude: Iterable[str] = (),
    ):
        self.content_dir = content_dir
        self.include_drafts = include_drafts
        self.exclude = tuple(exclude)

    def iter_files(self) -> list[Path]:
        """List all content files, sorted by relative path.

        Returns:
            Paths to Markdown files that pass the filters.

        Raises:
            UnreadableSource: The content directory is missing or cannot
                be listed.
        """
        if not self.content_dir.is_dir():
            raise UnreadableSource(self.content_dir, "content directory not found")
        files: list[Path] = []
        try:
            candidates = sorted(self.content_dir.rglob("*"))
        except OSError as exc:
            raise UnreadableSource(self.content_dir, exc.strerror or str(exc)) from exc
        for path in candidates:
            if path.is_dir() or not is_markdown(path):
                continue
            rel = PurePosixPath(path.relative_to(self.content_dir).as_posix())
            if self.is_included(rel):
                files.append(path)
        return files

    def is_included(self, rel: PurePosixPath) -> bool:
        """Apply the filtering policy to a content-relative path."""
        # Skip internal directories (starting with _ or .)
        if is_internal_path(rel):
            return False
        if rel.name.startswith("."):
            return False
        # Skip drafts unless requested
        if rel.name.startswith("_") and not self.include_drafts:
            return False
        return not any(fnmatch.fnmatch(rel.as_posix(), pattern) for pattern in self.exclude)

    def relative(self, path: Path) -> str:
        return path.relative_to(self.content_dir).as_posix()

    def load(
        self,
        diagnostics: DiagnosticsCollector,
        requested: Iterable[str] = (),
    ) -> list[SourceFile]:
        """Discover and read all content files.

        Files that fail to read are skipped and recorded, unless they are
        in ``requested``, in which case the failure is fatal.

        Args:
            diagnostics: Run-level diagnostics.
            requested: Content-relative paths the caller asked for directly.

        Returns:
            SourceFile list in discovery order.

        Raises:
            UnreadableSource: The content root or a requested entry is
                missing or unreadable.
        """
        requested = set(requested)
        files = self.iter_files()
        found = {self.relative(path) for path in files}
        missing = sorted(requested - found)
        if missing:
            raise UnreadableSource(self.content_dir / missing[0], "requested document not found")

        sources: list[SourceFile] = []
        for path in files:
            rel = self.relative(path)
            try:
                raw = read_source(path)
            except UnreadableSource as exc:
                if rel in requested:
                    raise
                diagnostics.add(
                    rel,
                    DiagnosticKind.UNREADABLE_SOURCE,
                    f"skipped unreadable file: {exc.message}",
                )
                continue
            sources.append(SourceFile(source_path=rel, path=path, raw=raw))
        log.info("discovered documents", count=len(sources), content_dir=str(self.content_dir))
        return sources


class DocumentBuilder:
    """Builds Document objects from source files.

    Attributes:
        marker: Frontmatter delimiter line.
    """

    def __init__(self, marker: str = DEFAULT_MARKER):
        self.marker = marker

    def build(
        self, index: int, source: SourceFile, diagnostics: DiagnosticsCollector
    ) -> Document:
        """Split a source file and build its Document.

        Malformed frontmatter is recorded and the document continues with
        empty metadata.

        Args:
            index: Arena index for the document.
            source: Discovered file.
            diagnostics: Run-level diagnostics.

        Returns:
            Document instance.
        """
        try:
            frontmatter, body = split_frontmatter(source.raw, self.marker)
        except MalformedFrontmatter as exc:
            diagnostics.add(
                source.source_path,
                DiagnosticKind.MALFORMED_FRONTMATTER,
                exc.message,
                line=exc.line,
            )
            frontmatter, body = {}, exc.body

        return Document(
            index=index,
            source_path=source.source_path,
            raw=source.raw,
            frontmatter=frontmatter,
            body=body,
            output_path=output_path_for(source.source_path),
            title=derive_title(frontmatter, body, source.source_path),
        )

    def fallback(self, index: int, source: SourceFile) -> Document:
        """Build a Document without frontmatter handling.

        Used when ``build`` fails unexpectedly: the raw text becomes the
        body and the title comes from the file name.
        """
        return Document(
            index=index,
            source_path=source.source_path,
            raw=source.raw,
            body=source.raw,
            output_path=output_path_for(source.source_path),
            title=derive_title({}, "", source.source_path),
        )
