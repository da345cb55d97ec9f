"""Link graph construction for mdweave.

Internal links are scanned from every document body, resolved against the
full document set and aggregated into a directed graph stored as adjacency
lists over document indices. Backlinks are derived from the resolved links.

Resolution order for a link target, relative to the linking document:
1. exact path (relative to the linking document, ``/`` for the content
   root, ``.md`` and ``/index.md`` tried for suffix-less targets)
2. identifier (slug of the target name against file stems and titles)
3. case-insensitive path, then case-insensitive file name anywhere

Key classes:
- LinkReference: A link as written in one document, before resolution.
- Link: A resolved (or broken) directed edge.
- LinkResolver: Index of documents used to resolve targets.
- LinkGraph: Links, adjacency lists and the backlink index.
"""

from __future__ import annotations

import posixpath
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import unquote

import mistune

from .content import Document
from .diagnostics import DiagnosticKind, DiagnosticsCollector
from .html_utils import is_external_url, relative_url, split_fragment
from .log import get_logger
from .parsing import create_parser, plain_text
from .utils import MARKDOWN_SUFFIXES, slugify, strip_markdown_suffix

log = get_logger(__name__)

MARKDOWN_LINK = "markdown"
WIKI_LINK = "wiki"


def is_document_target(url: str) -> bool:
    """Check whether a standard Markdown link target points at a document.

    Absolute URLs and same-page ``#fragments`` are not document links;
    local paths are when they carry a Markdown suffix or no suffix at all.
    """
    if not url or url.startswith("#") or is_external_url(url):
        return False
    path = split_fragment(url)[0].split("?", 1)[0]
    suffix = PurePosixPath(unquote(path)).suffix.lower()
    return not suffix or suffix in MARKDOWN_SUFFIXES


def is_asset_target(target: str) -> bool:
    """Check whether a wiki target names a file other than a document."""
    suffix = PurePosixPath(target).suffix.lower()
    return bool(suffix) and suffix not in MARKDOWN_SUFFIXES


@dataclass(frozen=True)
class LinkReference:
    """An internal link as written in a document.

    Attributes:
        text: Anchor text.
        target: Path or identifier part of the target.
        fragment: Optional section anchor.
        kind: "markdown" or "wiki".
        line: 1-based line in the body, when it could be located.
    """

    text: str
    target: str
    fragment: str | None = None
    kind: str = MARKDOWN_LINK
    line: int | None = None


@dataclass(frozen=True)
class Link:
    """A directed edge between two documents.

    Attributes:
        source: Index of the linking document.
        target: Index of the linked document, or None when broken.
        text: Anchor text.
        raw_target: Target as written.
        fragment: Optional section anchor.
        kind: "markdown" or "wiki".
        line: 1-based line in the body, when known.
    """

    source: int
    target: int | None
    text: str
    raw_target: str
    fragment: str | None = None
    kind: str = MARKDOWN_LINK
    line: int | None = None

    @property
    def broken(self) -> bool:
        return self.target is None

    @property
    def is_self_link(self) -> bool:
        return self.target == self.source


class _LineLocator:
    """Finds successive occurrences of link targets in a body."""

    def __init__(self, body: str):
        self.body = body
        self.cursor = 0

    def line_of(self, needle: str) -> int | None:
        if not needle:
            return None
        found = self.body.find(needle, self.cursor)
        if found < 0:
            return None
        self.cursor = found + len(needle)
        return self.body.count("\n", 0, found) + 1


def _walk_links(
    tokens: list[dict[str, Any]], link_syntax: str, locator: _LineLocator
) -> list[LinkReference]:
    refs: list[LinkReference] = []
    for token in tokens:
        kind = token["type"]
        if kind == "link":
            if link_syntax == "wiki":
                continue
            url = token["attrs"]["url"]
            if not is_document_target(url):
                continue
            path, fragment = split_fragment(url)
            target = unquote(path)
            refs.append(
                LinkReference(
                    text=plain_text(token.get("children", [])),
                    target=target,
                    fragment=unquote(fragment) if fragment else None,
                    kind=MARKDOWN_LINK,
                    line=locator.line_of(target),
                )
            )
        elif kind == "wiki_link":
            attrs = token["attrs"]
            if not attrs["target"] or (attrs["embed"] and is_asset_target(attrs["target"])):
                continue
            refs.append(
                LinkReference(
                    text=token["raw"],
                    target=attrs["target"],
                    fragment=attrs["fragment"],
                    kind=WIKI_LINK,
                    line=locator.line_of(f"[[{attrs['target']}"),
                )
            )
        elif isinstance(token.get("children"), list):
            refs.extend(_walk_links(token["children"], link_syntax, locator))
    return refs


def scan_links(
    document: Document,
    parser: mistune.Markdown | None = None,
    link_syntax: str = "both",
) -> list[LinkReference]:
    """Scan one document body for internal link references.

    Links inside code spans and code blocks never produce link tokens and
    are ignored.

    Args:
        document: Document to scan.
        parser: AST parser; one is created when omitted.
        link_syntax: "markdown", "wiki" or "both".

    Returns:
        Link references in document order.
    """
    parser = parser or create_parser(link_syntax)
    tokens, _ = parser.parse(document.body)
    return _walk_links(tokens, link_syntax, _LineLocator(document.body))


class LinkResolver:
    """Resolves link targets to document indices.

    Attributes:
        documents: The run's document arena.
    """

    def __init__(self, documents: Sequence[Document]):
        self.documents = documents
        self._by_path: dict[str, int] = {}
        self._by_path_lower: dict[str, int] = {}
        self._by_name_lower: dict[str, int] = {}
        self._by_identifier: dict[str, int] = {}
        # Smallest output path wins on ambiguity
        for doc in sorted(documents, key=lambda d: d.output_path):
            self._by_path[doc.source_path] = doc.index
            self._by_path_lower.setdefault(doc.source_path.lower(), doc.index)
            name = PurePosixPath(doc.source_path).name.lower()
            self._by_name_lower.setdefault(name, doc.index)
            for key in doc.identifiers:
                self._by_identifier.setdefault(key, doc.index)

    @staticmethod
    def _candidate_paths(source_path: str, target: str) -> list[str]:
        if target.startswith("/"):
            joined = target.lstrip("/")
        else:
            joined = posixpath.join(posixpath.dirname(source_path), target)
        normalized = posixpath.normpath(joined) if joined else ""
        if not normalized or normalized == "." or normalized.startswith("../") or normalized == "..":
            return []
        candidates = [normalized]
        if PurePosixPath(normalized).suffix.lower() not in MARKDOWN_SUFFIXES:
            candidates.append(f"{normalized}.md")
            candidates.append(f"{normalized}/index.md")
        return candidates

    def resolve(self, source_index: int, target: str) -> int | None:
        """Resolve a link target written in a document.

        Args:
            source_index: Index of the linking document.
            target: Path or identifier, without fragment.

        Returns:
            Index of the target document, or None when nothing matches.
        """
        target = unquote(target).strip()
        if not target:
            return None
        source = self.documents[source_index]
        candidates = self._candidate_paths(source.source_path, target)

        for candidate in candidates:
            if candidate in self._by_path:
                return self._by_path[candidate]

        name = strip_markdown_suffix(PurePosixPath(target.rstrip("/")).name)
        key = slugify(name)
        if key and key in self._by_identifier:
            return self._by_identifier[key]

        for candidate in candidates:
            if candidate.lower() in self._by_path_lower:
                return self._by_path_lower[candidate.lower()]
        for suffix in MARKDOWN_SUFFIXES:
            found = self._by_name_lower.get(f"{name.lower()}{suffix}")
            if found is not None:
                return found
        return None


class LinkGraph:
    """Directed document graph with derived backlinks.

    The graph is immutable once built; a changed link set means building
    a new graph.

    Attributes:
        documents: The run's document arena.
        links: All links, including broken ones and self-links.
        outgoing: Per document index, the resolved target indices in
            document order (duplicates kept).
        backlinks: Per document index, the linking document indices sorted
            by output path, de-duplicated, self-links excluded.
    """

    def __init__(
        self,
        documents: Sequence[Document],
        links: Sequence[Link],
        resolver: LinkResolver | None = None,
    ):
        self.documents = documents
        self.links = tuple(links)
        self.resolver = resolver or LinkResolver(documents)
        outgoing: list[list[int]] = [[] for _ in documents]
        incoming: list[set[int]] = [set() for _ in documents]
        for link in self.links:
            if link.target is None:
                continue
            outgoing[link.source].append(link.target)
            if not link.is_self_link:
                incoming[link.target].add(link.source)
        self.outgoing: tuple[tuple[int, ...], ...] = tuple(tuple(o) for o in outgoing)
        self.backlinks: dict[int, tuple[int, ...]] = {
            index: tuple(sorted(sources, key=lambda i: documents[i].output_path))
            for index, sources in enumerate(incoming)
        }

    @classmethod
    def build(
        cls,
        documents: Sequence[Document],
        references: Sequence[Sequence[LinkReference]],
        diagnostics: DiagnosticsCollector | None = None,
    ) -> LinkGraph:
        """Resolve scanned references into a graph.

        Every unresolvable reference is recorded as a BrokenLink.

        Args:
            documents: The document arena.
            references: Per document index, its scanned references.
            diagnostics: Collector for broken links.

        Returns:
            LinkGraph.
        """
        resolver = LinkResolver(documents)
        links: list[Link] = []
        for document, refs in zip(documents, references):
            for ref in refs:
                target = resolver.resolve(document.index, ref.target)
                link = Link(
                    source=document.index,
                    target=target,
                    text=ref.text,
                    raw_target=ref.target,
                    fragment=ref.fragment,
                    kind=ref.kind,
                    line=ref.line,
                )
                links.append(link)
                if link.broken and diagnostics is not None:
                    diagnostics.add(
                        document.source_path,
                        DiagnosticKind.BROKEN_LINK,
                        f"link [{ref.text}] points at unknown document {ref.target!r}",
                        line=ref.line,
                        detail=ref.target,
                    )
        graph = cls(documents, links, resolver)
        log.info(
            "link graph built",
            documents=len(documents),
            links=len(links),
            broken=len(graph.broken_links),
        )
        return graph

    @property
    def broken_links(self) -> list[Link]:
        return [link for link in self.links if link.broken]

    def resolve(self, source_index: int, target: str) -> int | None:
        return self.resolver.resolve(source_index, target)

    def href(self, source_index: int, target_index: int, fragment: str | None = None) -> str:
        """Relative URL from one document's page to another's."""
        return relative_url(
            self.documents[source_index].output_path,
            self.documents[target_index].output_path,
            fragment,
        )

    def backlinks_for(self, index: int) -> list[Document]:
        return [self.documents[i] for i in self.backlinks.get(index, ())]


def build_link_graph(
    documents: Sequence[Document],
    link_syntax: str = "both",
    diagnostics: DiagnosticsCollector | None = None,
) -> LinkGraph:
    """Scan and resolve links for a whole document set in one call."""
    parser = create_parser(link_syntax)
    references = [scan_links(doc, parser, link_syntax) for doc in documents]
    return LinkGraph.build(documents, references, diagnostics)
