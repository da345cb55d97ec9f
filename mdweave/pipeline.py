"""Build orchestration for mdweave.

A run moves through global stages; each stage finishes for every document
before the next one starts, because rendering needs the complete link
graph and assembly needs every body and ToC:

    Discover -> SplitAll -> BuildGraph -> ExtractTocAll -> RenderAll
    -> AssembleAll -> Done

Per-document work within a stage runs on a thread pool. A cancellation
event is checked before each document starts; once it is set the run ends
in ``Cancelled`` and no page output is kept.

Key items:
- RunState: Orchestrator states.
- BuildResult: Outcome of a run.
- Pipeline: The stage machine.
- build_site: Load config, run the pipeline and write the output tree.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from .assets import AssetBundler
from .config import SiteConfig, load_config
from .content import Document, DocumentBuilder, FileContentLoader, SourceFile
from .diagnostics import DiagnosticKind, DiagnosticsCollector, write_manifest
from .errors import BuildError, ConfigError, MdweaveError
from .html_utils import collect_asset_refs, escape_html
from .links import LinkGraph, scan_links
from .log import get_logger
from .parsing import create_parser
from .protocols import ContentLoader
from .renderers import MarkdownRenderer
from .templates import PageAssembler, RenderedPage
from .toc import TocNode, build_toc, extract_headings
from .utils import ensure_clean_dir

log = get_logger(__name__)

T = TypeVar("T")


class RunState(str, Enum):
    DISCOVER = "Discover"
    SPLIT_ALL = "SplitAll"
    BUILD_GRAPH = "BuildGraph"
    EXTRACT_TOC_ALL = "ExtractTocAll"
    RENDER_ALL = "RenderAll"
    ASSEMBLE_ALL = "AssembleAll"
    DONE = "Done"
    CANCELLED = "Cancelled"


_SKIPPED = object()


@dataclass
class BuildResult:
    """Result of a pipeline run.

    Attributes:
        state: Terminal state (Done or Cancelled).
        documents: The document arena.
        graph: Link graph, None when cancelled before it was built.
        pages: Assembled pages keyed by source path (empty when cancelled).
        diagnostics: The run's diagnostics.
        assets: Asset paths referenced by the assembled pages.
        output_dir: Where the site was written, when it was.
    """

    state: RunState
    documents: list[Document] = field(default_factory=list)
    graph: LinkGraph | None = None
    pages: dict[str, RenderedPage] = field(default_factory=dict)
    diagnostics: DiagnosticsCollector = field(default_factory=DiagnosticsCollector)
    assets: list[str] = field(default_factory=list)
    output_dir: Path | None = None

    @property
    def cancelled(self) -> bool:
        return self.state is RunState.CANCELLED


class _Cancelled(Exception):
    """Raised inside a run when the cancellation event was observed."""


class Pipeline:
    """Runs the build stages over one content tree.

    Attributes:
        config: Settings for the run.
        diagnostics: Append-only collector shared with every worker.
        loader: Source discovery.
        assembler: Page assembler.
        state: Current state.
        transitions: Every state entered, in order.
    """

    def __init__(
        self,
        config: SiteConfig,
        diagnostics: DiagnosticsCollector | None = None,
        loader: ContentLoader | None = None,
        assembler: PageAssembler | None = None,
    ):
        self.config = config
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsCollector()
        self.loader = loader or FileContentLoader(
            config.content_path,
            include_drafts=config.include_drafts,
            exclude=config.exclude,
        )
        self.assembler = assembler or PageAssembler(config.template_path)
        self.builder = DocumentBuilder(config.frontmatter_marker)
        self.renderer = MarkdownRenderer(config.link_syntax, config.broken_links)
        self.state = RunState.DISCOVER
        self.transitions: list[RunState] = []
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; workers stop before their next document."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def _enter(self, state: RunState, count: int | None = None) -> None:
        self.state = state
        self.transitions.append(state)
        log.info("pipeline stage", stage=state.value, documents=count)

    def _checkpoint(self) -> None:
        if self._cancel.is_set():
            raise _Cancelled()

    def _guarded(
        self,
        func: Callable[[Any], T],
        fallback: Callable[[Any], T],
        item: Any,
    ) -> T | object:
        if self._cancel.is_set():
            return _SKIPPED
        try:
            return func(item)
        except MdweaveError:
            raise
        except Exception as exc:
            self.diagnostics.add(
                item.source_path,
                DiagnosticKind.DOCUMENT_FAILURE,
                _format_error_message(exc),
                detail=self.state.value,
            )
            log.debug("document step failed", document=item.source_path, exc_info=exc)
            return fallback(item)

    def _map(
        self,
        func: Callable[[Any], T],
        items: Sequence[Any],
        fallback: Callable[[Any], T],
    ) -> list[T]:
        """Apply a per-document step to every item; acts as a stage barrier.

        An item whose step raises unexpectedly is recorded as a
        DocumentFailure and gets ``fallback(item)`` instead, so the stage
        still completes for every document.

        Raises:
            _Cancelled: Cancellation was observed before some item started.
        """
        if self.config.workers == 1 or len(items) < 2:
            results = [self._guarded(func, fallback, item) for item in items]
        else:
            with ThreadPoolExecutor(
                max_workers=self.config.workers, thread_name_prefix="mdweave"
            ) as pool:
                futures = [
                    pool.submit(self._guarded, func, fallback, item) for item in items
                ]
                results = [future.result() for future in futures]
        if any(result is _SKIPPED for result in results):
            raise _Cancelled()
        self._checkpoint()
        return results  # type: ignore[return-value]

    def _normalize_only(self, only: Iterable[str | Path] | None) -> set[str]:
        requested: set[str] = set()
        content_root = self.config.content_path.resolve()
        for entry in only or ():
            path = Path(entry)
            if path.is_absolute():
                try:
                    path = path.resolve().relative_to(content_root)
                except ValueError:
                    raise ConfigError(
                        f"{entry} is not inside the content directory {self.config.content_path}"
                    ) from None
            requested.add(path.as_posix())
        return requested

    def run(
        self,
        only: Iterable[str | Path] | None = None,
        cancel: threading.Event | None = None,
    ) -> BuildResult:
        """Run every stage.

        Args:
            only: Content-relative (or absolute) paths to build. The link
                graph always covers the whole content tree; only these
                pages are rendered. A missing or unreadable entry is fatal.
            cancel: External cancellation event; ``Pipeline.cancel`` sets
                an internal one otherwise.

        Returns:
            BuildResult in state Done or Cancelled.

        Raises:
            UnreadableSource: The content root or a requested entry cannot
                be read.
        """
        if cancel is not None:
            self._cancel = cancel
        self.transitions = []
        requested = self._normalize_only(only)
        documents: list[Document] = []
        graph: LinkGraph | None = None
        try:
            self._enter(RunState.DISCOVER)
            sources = self.loader.load(self.diagnostics, requested)
            self._checkpoint()

            self._enter(RunState.SPLIT_ALL, len(sources))
            positions = {source.source_path: i for i, source in enumerate(sources)}

            def split(source: SourceFile) -> Document:
                return self.builder.build(positions[source.source_path], source, self.diagnostics)

            documents = self._map(
                split,
                sources,
                lambda source: self.builder.fallback(positions[source.source_path], source),
            )

            self._enter(RunState.BUILD_GRAPH, len(documents))
            link_syntax = self.config.link_syntax
            references = self._map(
                lambda doc: scan_links(doc, link_syntax=link_syntax),
                documents,
                lambda doc: [],
            )
            graph = LinkGraph.build(documents, references, self.diagnostics)
            self._checkpoint()

            targets = [d for d in documents if not requested or d.source_path in requested]

            self._enter(RunState.EXTRACT_TOC_ALL, len(targets))
            max_level = self.config.max_toc_level

            def extract(doc: Document) -> list[TocNode]:
                headings = extract_headings(doc.body, create_parser(link_syntax))
                return build_toc(headings, max_level)

            tocs = dict(
                zip((d.index for d in targets), self._map(extract, targets, lambda doc: []))
            )

            self._enter(RunState.RENDER_ALL, len(targets))
            bodies = dict(
                zip(
                    (d.index for d in targets),
                    self._map(
                        lambda doc: self.renderer.render(doc, graph),
                        targets,
                        _plain_body,
                    ),
                )
            )

            self._enter(RunState.ASSEMBLE_ALL, len(targets))
            pages = self._map(
                lambda doc: self.assembler.assemble(
                    doc, bodies[doc.index], tocs[doc.index], graph
                ),
                targets,
                lambda doc: _bare_page(doc, bodies[doc.index]),
            )
        except _Cancelled:
            self._enter(RunState.CANCELLED)
            return BuildResult(
                state=RunState.CANCELLED,
                documents=documents,
                graph=graph,
                diagnostics=self.diagnostics,
            )

        self._enter(RunState.DONE, len(pages))
        assets: dict[str, None] = {}
        for page in pages:
            assets.update(dict.fromkeys(page.assets))
        return BuildResult(
            state=RunState.DONE,
            documents=documents,
            graph=graph,
            pages={page.source_path: page for page in pages},
            diagnostics=self.diagnostics,
            assets=sorted(assets),
        )


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    # Template errors raised while assembling
    if error_type == "UndefinedError":
        return f"Undefined variable in template: {error_msg}"
    if error_type == "TemplateSyntaxError":
        return f"Template syntax error: {error_msg}"

    return f"{error_type}: {error_msg}"


def _plain_body(document: Document) -> str:
    """Degraded body: the Markdown source, escaped, in a ``pre`` block."""
    return f"<pre>{escape_html(document.body)}</pre>\n"


def _bare_page(document: Document, body_html: str) -> RenderedPage:
    """Degraded page: the rendered body without the template."""
    return RenderedPage(
        source_path=document.source_path,
        output_path=document.output_path,
        html=body_html,
        assets=collect_asset_refs(body_html, document.source_path),
    )


def _write_page(output_dir: Path, page: RenderedPage) -> Path:
    """Write an assembled page under the output directory.

    Raises:
        BuildError: The page file could not be written.
    """
    target = output_dir / page.output_path
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(page.html)
    except OSError as exc:
        raise BuildError(
            page.source_path, f"Cannot write {target}: {exc.strerror or exc}", exc
        ) from exc
    return target


def build_site(
    project_root: Path,
    overrides: dict[str, Any] | None = None,
    only: Iterable[str | Path] | None = None,
    write: bool = True,
    cancel: threading.Event | None = None,
) -> BuildResult:
    """Build the site for a project.

    Loads ``mdweave.yaml`` and runs the pipeline. Only once the run reaches
    Done is the output directory cleaned and one HTML file written per
    page, with the referenced assets handed to the bundler. The
    diagnostics manifest is always written, including in check mode and
    when the run is cancelled or fails fatally; in those cases the
    previous output is left in place.

    Args:
        project_root: Root directory of the project.
        overrides: Config values that win over ``mdweave.yaml``.
        only: Restrict page output to these documents.
        write: False checks the content and writes only the manifest.
        cancel: Optional cancellation event.

    Returns:
        BuildResult for the run.

    Raises:
        ConfigError: Invalid configuration.
        UnreadableSource: The content root or a requested entry cannot
            be read.
        BuildError: A page could not be written.
    """
    config = load_config(project_root, overrides)
    output_dir = config.output_path
    content_dir = config.content_path.resolve()
    if content_dir.is_relative_to(output_dir.resolve()):
        raise ConfigError(
            f"output_dir {config.output_dir!r} must not contain the content directory"
        )
    diagnostics = DiagnosticsCollector()

    try:
        result = Pipeline(config, diagnostics).run(only=only, cancel=cancel)
        if result.state is RunState.DONE:
            if write:
                if config.clean_output:
                    ensure_clean_dir(output_dir)
                else:
                    output_dir.mkdir(parents=True, exist_ok=True)
                for page in result.pages.values():
                    _write_page(output_dir, page)
                result.output_dir = output_dir
            bundler = AssetBundler(config.content_path, output_dir)
            result.assets = bundler.bundle(
                result.pages.values(), diagnostics, copy=write and config.copy_assets
            )
    finally:
        write_manifest(config.manifest_path, diagnostics)
    return result
