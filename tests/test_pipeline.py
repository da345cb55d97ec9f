import json
import threading
from pathlib import Path

import pytest

from mdweave.config import SiteConfig
from mdweave.content import SourceFile
from mdweave.diagnostics import DiagnosticKind
from mdweave.errors import BuildError, ConfigError, UnreadableSource
from mdweave.pipeline import Pipeline, RunState, _write_page, build_site
from mdweave.protocols import ContentLoader
from mdweave.templates import RenderedPage


def create_project(tmp_path: Path, files: dict[str, str], config: str = "") -> Path:
    content = tmp_path / "content"
    for rel, text in files.items():
        path = content / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    content.mkdir(exist_ok=True)
    if config:
        (tmp_path / "mdweave.yaml").write_text(config, encoding="utf-8")
    return tmp_path


def read_manifest(project: Path) -> list[dict]:
    return json.loads((project / "output" / "diagnostics.json").read_text(encoding="utf-8"))


SITE = {
    "index.md": "---\ntitle: Home\n---\n# Welcome\n\nSee [the guide](guide/setup.md#install) and [[notes]].\n",
    "guide/setup.md": "# Setup\n\n## Install\n\n## Install\n\nBack [home](../index.md).\n\n![logo](logo.png)\n",
    "guide/logo.png": "not really a png",
    "notes.md": "# Notes\n\n[[Home]] links back.\n",
}


def test_run_walks_every_stage_in_order(tmp_path):
    project = create_project(tmp_path, SITE)
    pipeline = Pipeline(SiteConfig(project_root=project, workers=1))
    result = pipeline.run()
    assert result.state is RunState.DONE
    assert pipeline.transitions == [
        RunState.DISCOVER,
        RunState.SPLIT_ALL,
        RunState.BUILD_GRAPH,
        RunState.EXTRACT_TOC_ALL,
        RunState.RENDER_ALL,
        RunState.ASSEMBLE_ALL,
        RunState.DONE,
    ]
    assert [d.source_path for d in result.documents] == ["guide/setup.md", "index.md", "notes.md"]
    assert [d.index for d in result.documents] == [0, 1, 2]
    assert set(result.pages) == {"guide/setup.md", "index.md", "notes.md"}
    assert result.assets == ["guide/logo.png"]
    assert len(result.diagnostics) == 0


def test_parallel_and_inline_runs_match(tmp_path):
    files = {f"doc{i:02d}.md": f"# Doc {i}\n\n[next](doc{(i + 1) % 20:02d}.md)\n" for i in range(20)}
    project = create_project(tmp_path, files)
    inline = Pipeline(SiteConfig(project_root=project, workers=1)).run()
    threaded = Pipeline(SiteConfig(project_root=project, workers=8)).run()
    assert {k: p.html for k, p in inline.pages.items()} == {
        k: p.html for k, p in threaded.pages.items()
    }
    assert threaded.graph.backlinks == inline.graph.backlinks


def test_build_site_writes_pages_assets_and_manifest(tmp_path):
    project = create_project(tmp_path, SITE)
    result = build_site(project)
    output = project / "output"
    assert result.output_dir == output
    index_html = (output / "index.html").read_text(encoding="utf-8")
    assert '<a href="guide/setup.html#install">the guide</a>' in index_html
    assert '<a href="notes.html">notes</a>' in index_html
    assert "<title>Home</title>" in index_html

    setup_html = (output / "guide" / "setup.html").read_text(encoding="utf-8")
    assert '<h2 id="install">Install</h2>' in setup_html
    assert '<h2 id="install-1">Install</h2>' in setup_html
    assert '<a href="#install-1">Install</a>' in setup_html
    assert '<ul class="backlinks"><li><a href="../index.html">Home</a></li></ul>' in setup_html

    assert (output / "guide" / "logo.png").read_text(encoding="utf-8") == "not really a png"
    assert read_manifest(project) == []


def test_malformed_frontmatter_degrades_but_renders(tmp_path):
    project = create_project(tmp_path, {"a.md": "---\ntitle: Unclosed\n\nBody text here.\n"})
    result = build_site(project)
    assert result.state is RunState.DONE
    assert [d.kind for d in result.diagnostics.entries()] == [
        DiagnosticKind.MALFORMED_FRONTMATTER
    ]
    html = (project / "output" / "a.html").read_text(encoding="utf-8")
    assert "title: Unclosed" in html
    assert "Body text here." in html
    manifest = read_manifest(project)
    assert [(e["document"], e["kind"], e["line"]) for e in manifest] == [
        ("a.md", "MalformedFrontmatter", 1)
    ]


@pytest.mark.parametrize(
    ("policy", "expected"),
    [
        ("flag", '<a class="broken-link" href="missing.md">x</a>'),
        ("text", "<p>x</p>"),
    ],
)
def test_broken_link_recorded_under_each_policy(tmp_path, policy, expected):
    project = create_project(tmp_path, {"a.md": "[x](missing.md)\n"}, f"broken_links: {policy}\n")
    result = build_site(project)
    assert result.state is RunState.DONE
    assert expected in (project / "output" / "a.html").read_text(encoding="utf-8")
    manifest = read_manifest(project)
    assert [(e["kind"], e["detail"], e["line"]) for e in manifest] == [
        ("BrokenLink", "missing.md", 1)
    ]


def test_missing_assets_and_unreadable_files_are_recorded(tmp_path):
    project = create_project(tmp_path, {"a.md": "![gone](gone.png)\n"})
    (project / "content" / "b.md").write_bytes(b"\xff\xfe\xfa")
    result = build_site(project)
    assert result.state is RunState.DONE
    kinds = [(e["document"], e["kind"]) for e in read_manifest(project)]
    assert kinds == [("a.md", "UnresolvableAsset"), ("b.md", "UnreadableSource")]
    assert (project / "output" / "a.html").exists()
    assert not (project / "output" / "b.html").exists()


def test_template_without_slots_is_not_a_diagnostic(tmp_path):
    project = create_project(
        tmp_path,
        {"a.md": "# A\n\n[b](b.md)\n", "b.md": "# B\n"},
        "template: page.html\n",
    )
    (project / "page.html").write_text("<body>{{ body }}</body>", encoding="utf-8")
    build_site(project)
    html = (project / "output" / "b.html").read_text(encoding="utf-8")
    assert html == '<body><h1 id="b">B</h1>\n</body>'
    assert read_manifest(project) == []


def test_cancel_before_start_produces_no_pages(tmp_path):
    project = create_project(tmp_path, SITE)
    cancel = threading.Event()
    cancel.set()
    result = build_site(project, cancel=cancel)
    assert result.cancelled
    assert result.pages == {}
    assert sorted(p.name for p in (project / "output").iterdir()) == ["diagnostics.json"]


def test_cancel_between_documents(tmp_path):
    project = create_project(tmp_path, SITE)
    pipeline = Pipeline(SiteConfig(project_root=project, workers=1))
    rendered = []
    real_render = pipeline.renderer.render

    def render_then_cancel(document, resolver):
        rendered.append(document.source_path)
        pipeline.cancel()
        return real_render(document, resolver)

    pipeline.renderer.render = render_then_cancel
    result = pipeline.run()
    assert result.state is RunState.CANCELLED
    assert pipeline.transitions[-2:] == [RunState.RENDER_ALL, RunState.CANCELLED]
    assert rendered == ["guide/setup.md"]
    assert result.pages == {}
    assert result.graph is not None


def test_only_builds_requested_documents(tmp_path):
    project = create_project(tmp_path, SITE)
    result = build_site(project, only=["guide/setup.md"])
    assert set(result.pages) == {"guide/setup.md"}
    assert not (project / "output" / "index.html").exists()
    setup_html = (project / "output" / "guide" / "setup.html").read_text(encoding="utf-8")
    assert '<a href="../index.html">Home</a>' in setup_html

    absolute = project / "content" / "notes.md"
    result = build_site(project, only=[absolute])
    assert set(result.pages) == {"notes.md"}


def test_fatal_conditions_still_write_manifest(tmp_path):
    project = create_project(tmp_path, SITE)
    with pytest.raises(UnreadableSource):
        build_site(project, only=["nope.md"])
    assert read_manifest(project) == []

    with pytest.raises(UnreadableSource):
        build_site(project, overrides={"content_dir": "missing"})

    with pytest.raises(ConfigError):
        build_site(project, only=[tmp_path.parent / "elsewhere.md"])


def test_output_dir_must_not_contain_content(tmp_path):
    project = create_project(tmp_path, SITE, "output_dir: .\n")
    with pytest.raises(ConfigError):
        build_site(project)
    assert (project / "content" / "index.md").exists()


def test_failing_document_degrades_and_the_run_finishes(tmp_path):
    files = {
        "a.md": "---\ndate: 2024-01-02\n---\n# A\n",
        "b.md": "---\ndate: someday\n---\n# B\n",
        "c.md": "# C\n",
    }
    project = create_project(tmp_path, files, "template: page.jinja\n")
    (project / "page.jinja").write_text(
        "{{ metadata.date.strftime('%Y') if metadata.date is defined else '-' }}{{ body }}",
        encoding="utf-8",
    )
    result = build_site(project)
    assert result.state is RunState.DONE
    assert set(result.pages) == {"a.md", "b.md", "c.md"}

    output = project / "output"
    assert (output / "a.html").read_text(encoding="utf-8").startswith("2024<h1")
    assert (output / "c.html").read_text(encoding="utf-8").startswith("-<h1")
    assert (output / "b.html").read_text(encoding="utf-8").startswith('<h1 id="b">B</h1>')

    manifest = read_manifest(project)
    assert len(manifest) == 1
    assert manifest[0]["document"] == "b.md"
    assert manifest[0]["kind"] == "DocumentFailure"
    assert manifest[0]["detail"] == "AssembleAll"
    assert "strftime" in manifest[0]["message"]


def test_render_failure_falls_back_to_escaped_source(tmp_path):
    project = create_project(tmp_path, {"a.md": "# A\n\n<b>x</b>\n", "b.md": "# B\n"})
    pipeline = Pipeline(SiteConfig(project_root=project, workers=2))
    render = pipeline.renderer.render

    def explode(document, resolver):
        if document.source_path == "a.md":
            raise ValueError("boom")
        return render(document, resolver)

    pipeline.renderer.render = explode
    result = pipeline.run()
    assert result.state is RunState.DONE
    assert "<pre># A\n\n&lt;b&gt;x&lt;/b&gt;\n</pre>" in result.pages["a.md"].html
    assert '<h1 id="b">B</h1>' in result.pages["b.md"].html
    [failure] = result.diagnostics.of_kind(DiagnosticKind.DOCUMENT_FAILURE)
    assert failure.document == "a.md"
    assert failure.message == "ValueError: boom"
    assert failure.detail == "RenderAll"


def test_unwritable_page_is_a_build_error(tmp_path):
    blocker = tmp_path / "output"
    blocker.write_text("not a directory", encoding="utf-8")
    page = RenderedPage("notes/a.md", "notes/a.html", "<p>a</p>")
    with pytest.raises(BuildError) as excinfo:
        _write_page(blocker, page)
    assert excinfo.value.source_path == Path("notes/a.md")
    assert isinstance(excinfo.value.original_error, OSError)


def test_flagged_broken_link_is_not_an_asset(tmp_path):
    project = create_project(tmp_path, {"a.md": "See [[v1.2 notes]] and [[report.v2]].\n"})
    result = build_site(project)
    assert result.assets == []
    kinds = [entry["kind"] for entry in read_manifest(project)]
    assert kinds == ["BrokenLink", "BrokenLink"]


def test_fatal_run_keeps_the_previous_site(tmp_path):
    project = create_project(tmp_path, SITE)
    build_site(project)
    with pytest.raises(UnreadableSource):
        build_site(project, only=["nope.md"])
    assert (project / "output" / "index.html").exists()
    assert (project / "output" / "guide" / "setup.html").exists()
    assert read_manifest(project) == []


def test_check_mode_writes_only_the_manifest(tmp_path):
    project = create_project(tmp_path, {"a.md": "[x](missing.md)\n"})
    result = build_site(project, write=False)
    assert result.state is RunState.DONE
    assert len(result.diagnostics) == 1
    assert result.output_dir is None
    assert [p.name for p in (project / "output").iterdir()] == ["diagnostics.json"]
    assert read_manifest(project)[0]["kind"] == "BrokenLink"


def test_pipeline_accepts_any_content_loader(tmp_path):
    class MemoryLoader:
        def load(self, diagnostics, requested=()):
            return [
                SourceFile("x.md", Path("x.md"), "# X\n\nSee [[y]].\n"),
                SourceFile("y.md", Path("y.md"), "# Y\n"),
            ]

    loader = MemoryLoader()
    assert isinstance(loader, ContentLoader)
    result = Pipeline(SiteConfig(project_root=tmp_path, workers=1), loader=loader).run()
    assert result.state is RunState.DONE
    assert result.graph.backlinks[1] == (0,)
    assert '<a href="y.html">y</a>' in result.pages["x.md"].html
