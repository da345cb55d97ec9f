"""Markdown parser setup for mdweave.

Every stage parses bodies with the same mistune configuration so that the
link scanner, the ToC extractor and the HTML renderer agree on the token
tree. mistune's AST (dicts tagged by ``type`` with ``attrs``, ``children``
and ``raw``) is used directly as the document tree.

Key functions:
- create_parser: Build a mistune Markdown instance (AST or HTML).
- wiki_links: mistune plugin for ``[[target#section|label]]`` and ``![[file]]``.
- heading_id_hook: Assigns collision-free ids to every heading.
- plain_text: Flatten inline tokens to text.
"""

from __future__ import annotations

import html
from typing import Any

import mistune

from .toc import Heading, Slugger

MARKDOWN_PLUGINS = ("strikethrough", "table", "url")

WIKI_LINK_PATTERN = (
    r"(?P<wiki_embed>!?)\[\["
    r"(?P<wiki_target>[^\[\]|\n]+?)"
    r"(?:\|(?P<wiki_label>[^\[\]\n]+?))?"
    r"\]\]"
)


def parse_wiki_link(inline: Any, m: Any, state: Any) -> int:
    target = m.group("wiki_target").strip()
    label = m.group("wiki_label")
    path, _, fragment = target.partition("#")
    state.append_token(
        {
            "type": "wiki_link",
            "raw": (label or target).strip(),
            "attrs": {
                "target": path.strip(),
                "fragment": fragment.strip() or None,
                "embed": bool(m.group("wiki_embed")),
            },
        }
    )
    return m.end()


def render_wiki_link(
    renderer: Any, text: str, target: str, fragment: str | None = None, embed: bool = False
) -> str:
    """Fallback rendering when the renderer has no wiki_link method."""
    href = target + (f"#{fragment}" if fragment else "")
    return f'<a href="{renderer.safe_url(href)}">{html.escape(text)}</a>'


def wiki_links(md: mistune.Markdown) -> None:
    """Register the wiki-link inline rule ahead of standard links."""
    md.inline.register("wiki_link", WIKI_LINK_PATTERN, parse_wiki_link, before="link")
    if md.renderer and md.renderer.NAME == "html" and not hasattr(md.renderer, "wiki_link"):
        md.renderer.register("wiki_link", render_wiki_link)


def _collect_text(tokens: list[dict[str, Any]]) -> str:
    parts: list[str] = []
    for token in tokens:
        kind = token["type"]
        if kind in ("softbreak", "linebreak"):
            parts.append(" ")
        elif kind == "inline_html":
            continue
        elif "children" in token:
            parts.append(_collect_text(token["children"]))
        elif "raw" in token:
            parts.append(token["raw"])
    return "".join(parts)


def plain_text(tokens: list[dict[str, Any]]) -> str:
    """Flatten inline tokens into plain text (markup and inline HTML dropped)."""
    return html.unescape(_collect_text(tokens)).strip()


def _iter_headings(tokens: list[dict[str, Any]]):
    for token in tokens:
        if token["type"] == "heading":
            yield token
        children = token.get("children")
        if isinstance(children, list):
            yield from _iter_headings(children)


def heading_id_hook(md: mistune.Markdown, state: Any) -> None:
    """Before-render hook: give every heading a unique id.

    Runs on block tokens (before inline rendering), walking nested
    quotes and lists in document order. The headings are stored in
    ``state.env["headings"]``.
    """
    slugger = Slugger()
    headings: list[Heading] = []
    for token in _iter_headings(state.tokens):
        text = plain_text(md.inline(token["text"].strip(), state.env))
        slug = slugger.slug(text)
        attrs = token.setdefault("attrs", {})
        attrs["id"] = slug
        headings.append(
            Heading(level=attrs["level"], text=text, slug=slug, position=len(headings))
        )
    state.env["headings"] = headings


def create_parser(
    link_syntax: str = "both", renderer: mistune.HTMLRenderer | None = None
) -> mistune.Markdown:
    """Create a Markdown parser.

    Instances are cheap and hold per-call state in the renderer, so each
    worker creates its own.

    Args:
        link_syntax: "markdown", "wiki" or "both"; wiki links are only
            parsed when enabled.
        renderer: HTML renderer to attach; None produces the token AST.

    Returns:
        Configured mistune Markdown instance.
    """
    plugins: list[Any] = list(MARKDOWN_PLUGINS)
    if link_syntax in ("wiki", "both"):
        plugins.append(wiki_links)
    md = mistune.create_markdown(
        escape=False,
        renderer=renderer if renderer is not None else "ast",
        plugins=plugins,
    )
    md.before_render_hooks.append(heading_id_hook)
    return md
