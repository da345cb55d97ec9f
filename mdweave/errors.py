"""Exception types for mdweave.

Only ``UnreadableSource`` (on a requested entry), ``ConfigError`` and
``BuildError`` (a page that cannot be written) ever escape a build.
``MalformedFrontmatter`` is raised by the splitter and recovered by the
pipeline, which records a diagnostic.
"""

from __future__ import annotations

from pathlib import Path


class MdweaveError(Exception):
    """Base class for all mdweave errors."""


class MalformedFrontmatter(MdweaveError):
    """Frontmatter block that cannot be split or parsed.

    Attributes:
        message: Human-readable description.
        line: 1-based line of the problem within the document.
        body: Body text to render in place of the split result.
    """

    def __init__(self, message: str, *, line: int = 1, body: str = ""):
        self.message = message
        self.line = line
        self.body = body
        super().__init__(f"line {line}: {message}")


class UnreadableSource(MdweaveError):
    """A source file or the content root cannot be read.

    Attributes:
        source_path: Path that failed.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path | str, message: str):
        self.source_path = Path(source_path)
        self.message = message
        super().__init__(f"{source_path}: {message}")


class ConfigError(MdweaveError):
    """Invalid project configuration."""


class BuildError(MdweaveError):
    """A page could not be written to the output directory.

    Attributes:
        source_path: Source file of the page.
        message: Human-readable error message.
        original_error: The underlying OSError.
    """

    def __init__(
        self,
        source_path: Path | str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = Path(source_path)
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")
