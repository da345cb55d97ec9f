"""Page assembly for mdweave.

Rendered body HTML, the table of contents and the backlinks section are
injected into a Jinja2 page template through named slots (``title``,
``body``, ``toc``, ``backlinks``, ``metadata``). A slot the template does
not use is skipped without error.

Key items:
- RenderedPage: Final page HTML and its asset references.
- PageAssembler: Loads the template and assembles pages.
- render_toc / render_backlinks: Slot HTML builders.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, meta, select_autoescape
from markupsafe import Markup

from .content import Document
from .html_utils import collect_asset_refs, escape_html
from .log import get_logger
from .links import LinkGraph
from .toc import TocNode

log = get_logger(__name__)

__all__ = ["PageAssembler", "RenderedPage", "render_backlinks", "render_toc"]

SLOTS = ("title", "body", "toc", "backlinks", "metadata")
DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE_NAME = "page.html.jinja"


@dataclass(frozen=True)
class RenderedPage:
    """A finished page.

    Attributes:
        source_path: Content-relative source path.
        output_path: Output-relative HTML path.
        html: Final page HTML.
        assets: Asset paths referenced by the body, content-relative.
    """

    source_path: str
    output_path: str
    html: str
    assets: tuple[str, ...] = ()


def render_toc(toc: list[TocNode]) -> Markup:
    """Render a ToC forest as nested lists.

    Generates ``<nav class="toc"><ul><li><a href="#id">text</a>...`` with one
    nested ``<ul>`` per level of children.

    Args:
        toc: Root nodes of the forest.

    Returns:
        Markup-safe HTML, or empty Markup when there are no headings.
    """
    if not toc:
        return Markup("")
    return Markup(f'<nav class="toc">{_render_toc_nodes(toc)}</nav>')


def _render_toc_nodes(nodes: list[TocNode]) -> str:
    items = []
    for node in nodes:
        heading = node.heading
        children = _render_toc_nodes(node.children) if node.children else ""
        items.append(
            f'<li><a href="#{escape_html(heading.slug)}">{escape_html(heading.text)}</a>'
            f"{children}</li>"
        )
    return f"<ul>{''.join(items)}</ul>"


def render_backlinks(document: Document, graph: LinkGraph) -> Markup:
    """Render the pages linking to a document.

    Args:
        document: Document whose backlinks are shown.
        graph: The run's link graph.

    Returns:
        Markup-safe ``<ul class="backlinks">``, or empty Markup when no
        other page links here.
    """
    sources = graph.backlinks_for(document.index)
    if not sources:
        return Markup("")
    items = "".join(
        f'<li><a href="{escape_html(graph.href(document.index, source.index))}">'
        f"{escape_html(source.title)}</a></li>"
        for source in sources
    )
    return Markup(f'<ul class="backlinks">{items}</ul>')


class PageAssembler:
    """Assembles final pages from a Jinja2 template.

    Attributes:
        env: Jinja2 environment.
        template: Compiled page template.
        slots: Slots the template references.
    """

    def __init__(
        self,
        template_path: Path | None = None,
        template_source: str | None = None,
    ):
        """Load the page template.

        Args:
            template_path: Template file; the packaged default when None.
            template_source: Template text, used instead of any file.
        """
        search_path = [template_path.parent] if template_path else []
        search_path.append(DEFAULT_TEMPLATE_DIR)
        self.env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(
                ["html", "xml", "jinja"], default_for_string=True
            ),
        )
        if template_source is not None:
            source = template_source
            self.template = self.env.from_string(template_source)
        else:
            name = template_path.name if template_path else DEFAULT_TEMPLATE_NAME
            source = self.env.loader.get_source(self.env, name)[0]
            self.template = self.env.get_template(name)
        self.slots = self._find_slots(source)
        for slot in SLOTS:
            if slot not in self.slots:
                log.debug("template slot missing; section omitted", slot=slot)

    def _find_slots(self, source: str) -> frozenset[str]:
        ast = self.env.parse(source)
        if any(True for _ in meta.find_referenced_templates(ast)):
            # Included/extended templates may use any slot
            return frozenset(SLOTS)
        return frozenset(SLOTS) & meta.find_undeclared_variables(ast)

    def assemble(
        self,
        document: Document,
        body_html: str,
        toc: list[TocNode],
        graph: LinkGraph,
    ) -> RenderedPage:
        """Assemble one page.

        Args:
            document: Source document.
            body_html: Rendered body.
            toc: The document's ToC forest.
            graph: The run's link graph, for backlinks.

        Returns:
            RenderedPage with final HTML and collected asset references.
        """
        context: dict[str, object] = {
            "title": document.title,
            "metadata": document.frontmatter,
        }
        if "body" in self.slots:
            context["body"] = Markup(body_html)
        if "toc" in self.slots:
            context["toc"] = render_toc(toc)
        if "backlinks" in self.slots:
            context["backlinks"] = render_backlinks(document, graph)
        html = self.template.render(**context)
        return RenderedPage(
            source_path=document.source_path,
            output_path=document.output_path,
            html=html,
            assets=collect_asset_refs(body_html, document.source_path),
        )
