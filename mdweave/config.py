"""Project configuration for mdweave.

Settings live in ``mdweave.yaml`` at the project root. Values from the
file are layered over the defaults, then non-None overrides (CLI options)
are applied last.

Key items:
- SiteConfig: Validated settings for one run.
- load_config: Read ``mdweave.yaml`` and apply overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .log import get_logger

log = get_logger(__name__)

CONFIG_FILE = "mdweave.yaml"
LINK_SYNTAXES = ("markdown", "wiki", "both")
BROKEN_LINK_POLICIES = ("flag", "text")


@dataclass
class SiteConfig:
    """Settings for one build.

    Attributes:
        project_root: Directory that relative paths are resolved against.
        content_dir: Content tree root.
        output_dir: Where HTML pages and the manifest are written.
        template: Optional page template path.
        frontmatter_marker: Line that opens and closes frontmatter.
        link_syntax: Which internal link syntaxes count as links.
        broken_links: How unresolved links render ("flag" or "text").
        max_toc_level: Deepest heading level shown in the ToC.
        workers: Threads per pipeline stage.
        include_drafts: Whether ``_``-prefixed files are included.
        exclude: Glob patterns (content-relative) to skip.
        manifest_name: Diagnostics manifest file name.
        copy_assets: Whether referenced assets are copied to the output.
        clean_output: Whether the output directory is emptied first.
    """

    project_root: Path = field(default_factory=Path.cwd)
    content_dir: str = "content"
    output_dir: str = "output"
    template: str | None = None
    frontmatter_marker: str = "---"
    link_syntax: str = "both"
    broken_links: str = "flag"
    max_toc_level: int = 6
    workers: int = 4
    include_drafts: bool = False
    exclude: list[str] = field(default_factory=list)
    manifest_name: str = "diagnostics.json"
    copy_assets: bool = True
    clean_output: bool = True

    def __post_init__(self):
        self.project_root = Path(self.project_root)
        self._validate()

    def _validate(self) -> None:
        marker = self.frontmatter_marker
        if not isinstance(marker, str) or not marker.strip() or "\n" in marker:
            raise ConfigError(f"frontmatter_marker must be a single non-empty line, got {marker!r}")
        if self.link_syntax not in LINK_SYNTAXES:
            raise ConfigError(
                f"link_syntax must be one of {', '.join(LINK_SYNTAXES)}, got {self.link_syntax!r}"
            )
        if self.broken_links not in BROKEN_LINK_POLICIES:
            raise ConfigError(
                f"broken_links must be one of {', '.join(BROKEN_LINK_POLICIES)}, got {self.broken_links!r}"
            )
        self.max_toc_level = _as_int("max_toc_level", self.max_toc_level)
        if not 1 <= self.max_toc_level <= 6:
            raise ConfigError(f"max_toc_level must be between 1 and 6, got {self.max_toc_level}")
        self.workers = _as_int("workers", self.workers)
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if isinstance(self.exclude, str):
            self.exclude = [self.exclude]
        if not all(isinstance(pattern, str) for pattern in self.exclude):
            raise ConfigError("exclude must be a list of glob patterns")

    @property
    def content_path(self) -> Path:
        return self.project_root / self.content_dir

    @property
    def output_path(self) -> Path:
        return self.project_root / self.output_dir

    @property
    def template_path(self) -> Path | None:
        if not self.template:
            return None
        return self.project_root / self.template

    @property
    def manifest_path(self) -> Path:
        return self.output_path / self.manifest_name

    @classmethod
    def from_mapping(cls, data: dict[str, Any], project_root: Path) -> SiteConfig:
        """Build a config from a mapping, ignoring unknown keys.

        Args:
            data: Settings mapping (e.g. parsed YAML).
            project_root: Root directory of the project.

        Returns:
            Validated SiteConfig.
        """
        known = {f.name for f in fields(cls)} - {"project_root"}
        unknown = sorted(set(data) - known)
        if unknown:
            log.warning("ignoring unknown config keys", keys=unknown)
        values = {key: value for key, value in data.items() if key in known}
        return cls(project_root=project_root, **values)


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def load_config(
    project_root: Path, overrides: dict[str, Any] | None = None
) -> SiteConfig:
    """Load project configuration from mdweave.yaml.

    Args:
        project_root: Root directory of the project.
        overrides: Values that win over the file; None values are ignored.

    Returns:
        SiteConfig with defaults applied.

    Raises:
        ConfigError: The file is not valid YAML, not a mapping, or holds
            invalid values.
    """
    config_path = project_root / CONFIG_FILE
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid {CONFIG_FILE}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"Invalid {CONFIG_FILE}: expected a mapping")
        data.update(loaded)
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return SiteConfig.from_mapping(data, project_root)
