from mdweave.assets import AssetBundler
from mdweave.diagnostics import DiagnosticKind, DiagnosticsCollector
from mdweave.protocols import AssetHandler
from mdweave.templates import RenderedPage


def create_tree(tmp_path):
    content = tmp_path / "content"
    (content / "img").mkdir(parents=True)
    (content / "img" / "logo.png").write_bytes(b"\x89PNG")
    (content / "notes").mkdir()
    (content / "notes" / "doc.pdf").write_bytes(b"%PDF")
    (tmp_path / "secret.txt").write_text("secret", encoding="utf-8")
    return content, tmp_path / "output"


def test_bundler_copies_found_assets_once(tmp_path):
    content, output = create_tree(tmp_path)
    pages = [
        RenderedPage("a.md", "a.html", "", ("img/logo.png", "notes/doc.pdf")),
        RenderedPage("b.md", "b.html", "", ("img/logo.png",)),
    ]
    diagnostics = DiagnosticsCollector()
    bundler = AssetBundler(content, output)
    assert isinstance(bundler, AssetHandler)
    assert bundler.bundle(pages, diagnostics) == ["img/logo.png", "notes/doc.pdf"]
    assert (output / "img" / "logo.png").read_bytes() == b"\x89PNG"
    assert (output / "notes" / "doc.pdf").exists()
    assert len(diagnostics) == 0


def test_missing_and_escaping_assets_are_recorded(tmp_path):
    content, output = create_tree(tmp_path)
    pages = [RenderedPage("a.md", "a.html", "", ("img/missing.png", "../secret.txt", "img"))]
    diagnostics = DiagnosticsCollector()
    assert AssetBundler(content, output).bundle(pages, diagnostics) == []
    entries = diagnostics.of_kind(DiagnosticKind.UNRESOLVABLE_ASSET)
    assert sorted(d.detail for d in entries) == ["../secret.txt", "img", "img/missing.png"]
    assert all(d.document == "a.md" for d in entries)
    assert not (output / "secret.txt").exists()


def test_check_only_mode_does_not_copy(tmp_path):
    content, output = create_tree(tmp_path)
    pages = [RenderedPage("a.md", "a.html", "", ("img/logo.png",))]
    found = AssetBundler(content, output).bundle(pages, DiagnosticsCollector(), copy=False)
    assert found == ["img/logo.png"]
    assert not output.exists()
