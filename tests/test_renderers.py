from pathlib import Path

from mdweave.content import Document, DocumentBuilder, SourceFile
from mdweave.diagnostics import DiagnosticsCollector
from mdweave.links import build_link_graph
from mdweave.renderers import MarkdownRenderer


def make_documents(files: dict[str, str]) -> list[Document]:
    builder = DocumentBuilder()
    diagnostics = DiagnosticsCollector()
    return [
        builder.build(index, SourceFile(path, Path(path), text), diagnostics)
        for index, (path, text) in enumerate(files.items())
    ]


def render(body: str, extra: dict[str, str] | None = None, **options) -> str:
    files = {"a.md": body, "notes/b.md": "# B\n\n## Setup\n"}
    files.update(extra or {})
    link_syntax = options.get("link_syntax", "both")
    docs = make_documents(files)
    graph = build_link_graph(docs, link_syntax)
    return MarkdownRenderer(**options).render(docs[0], graph)


def test_internal_links_are_rewritten_to_output_paths():
    html = render("[see b](notes/b.md#setup) and [[b#Setup|setup section]]\n")
    assert '<a href="notes/b.html#setup">see b</a>' in html
    assert '<a href="notes/b.html#setup">setup section</a>' in html


def test_links_from_nested_documents_are_relative():
    docs = make_documents({"notes/b.md": "[home](../index.md) [[index]]\n", "index.md": ""})
    graph = build_link_graph(docs)
    html = MarkdownRenderer().render(docs[0], graph)
    assert html.count('href="../index.html"') == 2


def test_external_and_fragment_links_pass_through():
    html = render("[web](https://example.com/x.md) [top](#top) [mail](mailto:a@b.c)\n")
    assert '<a href="https://example.com/x.md">web</a>' in html
    assert '<a href="#top">top</a>' in html
    assert '<a href="mailto:a@b.c">mail</a>' in html


def test_broken_link_policies():
    flagged = render("[x](missing.md) [[Nowhere]]\n")
    assert '<a class="broken-link" href="missing.md">x</a>' in flagged
    assert '<a class="broken-link" href="Nowhere">Nowhere</a>' in flagged

    plain = render("[x](missing.md) [[Nowhere]]\n", broken_links="text")
    assert "<p>x Nowhere</p>" in plain
    assert "missing.md" not in plain


def test_rendering_is_idempotent():
    body = "# Title\n\n## Title\n\n[b](notes/b.md) [[b]] [x](missing.md)\n\n```python\nx = 1\n```\n"
    docs = make_documents({"a.md": body, "notes/b.md": "# B\n"})
    graph = build_link_graph(docs)
    renderer = MarkdownRenderer()
    assert renderer.render(docs[0], graph) == renderer.render(docs[0], graph)


def test_headings_carry_unique_ids():
    html = render("# Intro\n\n## Intro\n\n### Hello *World*\n")
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h2 id="intro-1">Intro</h2>' in html
    assert '<h3 id="hello-world">Hello <em>World</em></h3>' in html


def test_raw_html_blocks_are_preserved():
    block = '<div class="note">\n<b>keep *this*</b>\n</div>'
    html = render(f"Before\n\n{block}\n\nAfter <span class=\"x\">inline</span>\n")
    assert block in html
    assert '<span class="x">inline</span>' in html


def test_ordered_list_start_and_nesting():
    html = render("3. three\n4. four\n\n- a\n  - b\n    - c\n")
    assert '<ol start="3">' in html
    assert html.count("<ul>") == 3

    html = render("1. one\n2. two\n")
    assert "<ol>" in html


def test_code_blocks_are_highlighted_or_escaped():
    html = render("```python\nprint('hi')\n```\n")
    assert 'class="highlight"' in html

    html = render("```nosuchlanguage\nx < y\n```\n")
    assert '<pre><code class="language-nosuchlanguage">x &lt; y' in html

    html = render("    plain & simple\n")
    assert "<pre><code>plain &amp; simple" in html


def test_links_inside_code_are_not_rewritten():
    html = render("`[b](notes/b.md)`\n")
    assert "<code>[b](notes/b.md)</code>" in html


def test_wiki_embeds_and_same_page_links():
    html = render("![[diagram.png]] ![[files/report.pdf|Report]] [[#Setup|jump]]\n")
    assert '<img src="diagram.png" alt="diagram.png" />' in html
    assert '<a class="embed" href="files/report.pdf">Report</a>' in html
    assert '<a href="#setup">jump</a>' in html


def test_markdown_only_syntax_leaves_wiki_text():
    html = render("[[b]] and [b](notes/b.md)\n", link_syntax="markdown")
    assert "[[b]]" in html
    assert '<a href="notes/b.html">b</a>' in html


def test_wiki_only_syntax_leaves_markdown_links_alone():
    html = render("[b](notes/b.md) [[b]]\n", link_syntax="wiki")
    assert '<a href="notes/b.md">b</a>' in html
    assert '<a href="notes/b.html">b</a>' in html


def test_images_and_tables():
    html = render("![alt text](img/pic.png)\n\n| a | b |\n|---|---|\n| 1 | 2 |\n\n~~gone~~\n")
    assert '<img src="img/pic.png" alt="alt text" />' in html
    assert "<table>" in html
    assert "<del>gone</del>" in html
