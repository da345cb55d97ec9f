"""Protocol definitions for mdweave.

These interfaces decouple the pipeline stages from concrete collaborators:
the renderer only needs something that resolves link targets, and the
orchestrator only needs something that loads sources and something that
takes the asset hand-off.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import SourceFile
    from .diagnostics import DiagnosticsCollector
    from .templates import RenderedPage


@runtime_checkable
class LinkTargetResolver(Protocol):
    """Resolves link targets and builds page-to-page URLs."""

    @abstractmethod
    def resolve(self, source_index: int, target: str) -> int | None:
        """Resolve a target written in a document.

        Args:
            source_index: Index of the linking document.
            target: Path or identifier, without fragment.

        Returns:
            Index of the target document, or None when broken.
        """
        ...

    @abstractmethod
    def href(self, source_index: int, target_index: int, fragment: str | None = None) -> str:
        """Return the URL of the target page as seen from the source page."""
        ...


@runtime_checkable
class ContentLoader(Protocol):
    """Discovers and reads source files."""

    @abstractmethod
    def load(
        self, diagnostics: DiagnosticsCollector, requested: Iterable[str] = ()
    ) -> list[SourceFile]:
        """Load all sources, recording incidental read failures.

        Args:
            diagnostics: Run-level diagnostics.
            requested: Content-relative paths that must be readable.

        Returns:
            Source files in discovery order.
        """
        ...


@runtime_checkable
class AssetHandler(Protocol):
    """Receives the asset references collected from assembled pages."""

    @abstractmethod
    def bundle(
        self,
        pages: Iterable[RenderedPage],
        diagnostics: DiagnosticsCollector,
        copy: bool = True,
    ) -> list[str]:
        """Resolve (and optionally copy) referenced assets.

        Returns:
            Asset paths that were resolved.
        """
        ...
