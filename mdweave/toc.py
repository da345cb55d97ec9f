"""Table-of-contents extraction for mdweave.

Headings are collected in document order with collision-free slugs, then
nested into a forest where each heading's parent is the nearest preceding
heading of a strictly lower level.

Key classes:
- Heading: One heading with its generated slug.
- TocNode: A heading and its nested children.
- Slugger: Per-document slug generator with collision suffixes.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .utils import slugify

if TYPE_CHECKING:
    import mistune

FALLBACK_SLUG = "section"


@dataclass(frozen=True)
class Heading:
    """A heading extracted from a document body.

    Attributes:
        level: Heading level (1-6).
        text: Plain text of the heading.
        slug: Anchor id, unique within the document.
        position: 0-based order of the heading in the document.
    """

    level: int
    text: str
    slug: str
    position: int


@dataclass
class TocNode:
    heading: Heading
    children: list[TocNode] = field(default_factory=list)


class Slugger:
    """Generates unique slugs within one document.

    The first occurrence of a slug is unsuffixed; later ones get ``-1``,
    ``-2``... skipping any suffix already taken by a literal heading.
    """

    def __init__(self):
        self._seen: set[str] = set()
        self._counts: dict[str, int] = {}

    def slug(self, text: str) -> str:
        base = slugify(text) or FALLBACK_SLUG
        if base not in self._seen:
            self._seen.add(base)
            return base
        count = self._counts.get(base, 0)
        while True:
            count += 1
            candidate = f"{base}-{count}"
            if candidate not in self._seen:
                break
        self._counts[base] = count
        self._seen.add(candidate)
        return candidate


def extract_headings(body: str, parser: mistune.Markdown) -> list[Heading]:
    """Extract headings from a Markdown body.

    Args:
        body: Markdown body.
        parser: Parser from ``mdweave.parsing.create_parser``; its heading
            hook assigns the slugs.

    Returns:
        Headings in document order.
    """
    _, state = parser.parse(body)
    return list(state.env.get("headings", []))


def build_toc(headings: list[Heading], max_level: int = 6) -> list[TocNode]:
    """Nest a flat heading list into a ToC forest.

    Args:
        headings: Headings in document order.
        max_level: Deepest level to include.

    Returns:
        Root nodes of the forest; empty when there are no headings.
    """
    roots: list[TocNode] = []
    stack: list[TocNode] = []
    for heading in headings:
        if heading.level > max_level:
            continue
        node = TocNode(heading)
        while stack and stack[-1].heading.level >= heading.level:
            stack.pop()
        if stack:
            stack[-1].children.append(node)
        else:
            roots.append(node)
        stack.append(node)
    return roots


def iter_toc(nodes: list[TocNode], depth: int = 0) -> Iterator[tuple[int, Heading]]:
    """Walk a ToC forest depth-first, yielding (depth, heading)."""
    for node in nodes:
        yield depth, node.heading
        yield from iter_toc(node.children, depth + 1)
