"""Markdown rendering for mdweave.

Converts a document body to HTML with mistune, rewriting internal links
to the output pages they resolve to. External links, raw HTML and images
pass through untouched; assets are handed off after assembly.

Key classes:
- DocumentHTMLRenderer: mistune renderer bound to one document.
- MarkdownRenderer: Renders document bodies with a link resolver.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import quote, unquote

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import Document
from .html_utils import escape_html, split_fragment
from .links import is_asset_target, is_document_target
from .parsing import create_parser
from .protocols import LinkTargetResolver
from .utils import slugify

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".avif")


class DocumentHTMLRenderer(mistune.HTMLRenderer):
    """mistune HTML renderer with internal link rewriting and highlighting.

    Raw HTML is emitted verbatim (``escape=False``). A new instance is
    created for every render, so it can hold the document being rendered.

    Attributes:
        document: Document being rendered.
        resolver: Link resolver (the run's LinkGraph).
        link_syntax: Which syntaxes are internal links.
        broken_links: "flag" or "text".
    """

    def __init__(
        self,
        document: Document,
        resolver: LinkTargetResolver,
        link_syntax: str = "both",
        broken_links: str = "flag",
    ):
        super().__init__(escape=False)
        self.document = document
        self.resolver = resolver
        self.link_syntax = link_syntax
        self.broken_links = broken_links

    def link(self, text: str, url: str, title: str | None = None) -> str:
        """Render a standard link, rewriting document targets.

        Args:
            text: Rendered anchor HTML.
            url: Link target as parsed.
            title: Title attribute.

        Returns:
            HTML anchor, or broken-link markup per policy.
        """
        if self.link_syntax == "wiki" or not is_document_target(url):
            return super().link(text, url, title)
        path, fragment = split_fragment(url)
        target = self.resolver.resolve(self.document.index, unquote(path))
        if target is None:
            return self._broken(text, url)
        href = self.resolver.href(
            self.document.index, target, unquote(fragment) if fragment else None
        )
        return super().link(text, href, title)

    def wiki_link(
        self,
        text: str,
        target: str,
        fragment: str | None = None,
        embed: bool = False,
    ) -> str:
        """Render ``[[target#fragment|label]]`` and ``![[file]]``.

        Wiki fragments are heading texts, so they are slugified the same
        way heading ids are.
        """
        label = escape_html(text)
        anchor = slugify(fragment) if fragment else None
        if embed and is_asset_target(target):
            return self._embed(label, target)
        if not target:
            return f'<a href="#{anchor or ""}">{label}</a>'
        index = self.resolver.resolve(self.document.index, target)
        if index is None:
            original = target + (f"#{fragment}" if fragment else "")
            return self._broken(label, original)
        href = self.resolver.href(self.document.index, index, anchor)
        return f'<a href="{self.safe_url(href)}">{label}</a>'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Info string; its first word names the language.

        Returns:
            HTML string with highlighted code, or an escaped block when the
            language is unknown.
        """
        lang = info.split(None, 1)[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = escape_html(code)
        lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"

    def _embed(self, label: str, target: str) -> str:
        src = self.safe_url(quote(target))
        if PurePosixPath(target).suffix.lower() in IMAGE_SUFFIXES:
            return f'<img src="{src}" alt="{label}" />'
        return f'<a class="embed" href="{src}">{label}</a>'

    def _broken(self, text: str, original: str) -> str:
        if self.broken_links == "text":
            return text
        return f'<a class="broken-link" href="{self.safe_url(original)}">{text}</a>'


class MarkdownRenderer:
    """Renders document bodies to HTML.

    Rendering depends only on the body and the link resolver, so the same
    inputs always produce byte-identical HTML.
    """

    def __init__(self, link_syntax: str = "both", broken_links: str = "flag"):
        self.link_syntax = link_syntax
        self.broken_links = broken_links

    def render(self, document: Document, resolver: LinkTargetResolver) -> str:
        """Render a document body.

        Args:
            document: Document to render.
            resolver: Link resolver built from the whole document set.

        Returns:
            Body HTML.
        """
        renderer = DocumentHTMLRenderer(
            document, resolver, self.link_syntax, self.broken_links
        )
        markdown = create_parser(self.link_syntax, renderer=renderer)
        return markdown(document.body)
