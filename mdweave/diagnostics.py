"""Run-level diagnostics for mdweave.

Every recovered per-document problem (malformed frontmatter, broken link,
missing asset, unreadable file found during the scan, a document step that
failed unexpectedly) is recorded here and written to the diagnostics
manifest at the end of a build.

Key classes:
- DiagnosticKind: The error taxonomy.
- Diagnostic: One recorded entry.
- DiagnosticsCollector: Append-only, thread-safe aggregation owned by a run.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .log import get_logger

log = get_logger(__name__)


class DiagnosticKind(str, Enum):
    MALFORMED_FRONTMATTER = "MalformedFrontmatter"
    BROKEN_LINK = "BrokenLink"
    UNRESOLVABLE_ASSET = "UnresolvableAsset"
    UNREADABLE_SOURCE = "UnreadableSource"
    TEMPLATE_SLOT_MISSING = "TemplateSlotMissing"
    DOCUMENT_FAILURE = "DocumentFailure"


@dataclass(frozen=True)
class Diagnostic:
    """A recovered problem attributed to one document.

    Attributes:
        document: Content-relative source path.
        kind: Error kind.
        message: Human-readable description.
        line: 1-based line, when known.
        column: 1-based column, when known.
        detail: Link target or asset path involved.
    """

    document: str
    kind: DiagnosticKind
    message: str
    line: int | None = None
    column: int | None = None
    detail: str | None = None

    def sort_key(self) -> tuple:
        return (self.document, self.line or 0, self.kind.value, self.detail or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document,
            "kind": self.kind.value,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "detail": self.detail,
        }


class DiagnosticsCollector:
    """Append-only collection of diagnostics shared by pipeline workers.

    Entries can only be added; readers get sorted snapshots.
    """

    def __init__(self):
        self._entries: list[Diagnostic] = []
        self._lock = threading.Lock()

    def record(self, diagnostic: Diagnostic) -> Diagnostic:
        with self._lock:
            self._entries.append(diagnostic)
        log.warning(
            diagnostic.message,
            kind=diagnostic.kind.value,
            document=diagnostic.document,
            line=diagnostic.line,
        )
        return diagnostic

    def add(
        self,
        document: str,
        kind: DiagnosticKind,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
        detail: str | None = None,
    ) -> Diagnostic:
        """Create and record a diagnostic.

        Args:
            document: Content-relative source path.
            kind: Error kind.
            message: Human-readable description.
            line: Optional 1-based line.
            column: Optional 1-based column.
            detail: Optional link target or asset path.

        Returns:
            The recorded Diagnostic.
        """
        return self.record(
            Diagnostic(
                document=document,
                kind=kind,
                message=message,
                line=line,
                column=column,
                detail=detail,
            )
        )

    def entries(self) -> list[Diagnostic]:
        """Return a sorted snapshot of all entries."""
        with self._lock:
            snapshot = list(self._entries)
        return sorted(snapshot, key=Diagnostic.sort_key)

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self.entries() if d.kind is kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_json(self) -> str:
        return json.dumps([d.to_dict() for d in self.entries()], indent=2) + "\n"


def write_manifest(path: Path, diagnostics: DiagnosticsCollector) -> Path:
    """Write the diagnostics manifest as a JSON list.

    The file is written even when there are no entries.

    Args:
        path: Manifest file path.
        diagnostics: Collector to serialize.

    Returns:
        The path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(diagnostics.to_json(), encoding="utf-8")
    log.info("manifest written", path=str(path), entries=len(diagnostics))
    return path
