"""Asset bundling for mdweave.

Assembled pages report the local files their body references. The bundler
checks each reference against the content tree and copies the file to the
same relative location under the output directory.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from pathlib import Path

from .diagnostics import DiagnosticKind, DiagnosticsCollector
from .log import get_logger
from .templates import RenderedPage

log = get_logger(__name__)


class AssetBundler:
    """Copies referenced assets from the content tree into the output.

    Attributes:
        content_dir: Content root.
        output_dir: Output root.
    """

    def __init__(self, content_dir: Path, output_dir: Path):
        self.content_dir = content_dir
        self.output_dir = output_dir

    def locate(self, asset: str) -> Path | None:
        """Return the file behind a content-relative asset path.

        None when the file does not exist or lies outside the content root.
        """
        root = self.content_dir.resolve()
        candidate = (root / asset).resolve()
        if not candidate.is_relative_to(root) or not candidate.is_file():
            return None
        return candidate

    def bundle(
        self,
        pages: Iterable[RenderedPage],
        diagnostics: DiagnosticsCollector,
        copy: bool = True,
    ) -> list[str]:
        """Resolve every page's assets, copying each file once.

        Args:
            pages: Assembled pages.
            diagnostics: Collector for UnresolvableAsset entries.
            copy: Copy files into the output; False only checks them.

        Returns:
            Sorted asset paths that were found.
        """
        found: dict[str, Path] = {}
        for page in pages:
            for asset in page.assets:
                if asset in found:
                    continue
                path = self.locate(asset)
                if path is None:
                    diagnostics.add(
                        page.source_path,
                        DiagnosticKind.UNRESOLVABLE_ASSET,
                        f"asset {asset!r} not found in the content tree",
                        detail=asset,
                    )
                    continue
                found[asset] = path

        if copy:
            for asset, source in found.items():
                dest = self.output_dir / asset
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, dest)
        log.info("assets bundled", assets=len(found), copied=copy)
        return sorted(found)
