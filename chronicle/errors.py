"""Exception types shared across Chronicle.

Content problems (bad filenames, malformed front matter) carry the offending
path so the CLI can point authors at the file that needs fixing.
"""

from __future__ import annotations

from pathlib import Path


class ChronicleError(Exception):
    """Base class for all Chronicle errors."""


class ConfigError(ChronicleError):
    """Raised when chronicle.yaml cannot be used."""


class ContentError(ChronicleError):
    """A content file could not be turned into a post.

    Attributes:
        source_path: File that caused the error.
        message: Human-readable description of the problem.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


class PostNameError(ContentError):
    """The filename does not follow the YYYY-MM-DD-title-slug convention."""


class FrontMatterError(ContentError):
    """The front-matter block is missing, unparseable or has bad values."""


class BuildError(ChronicleError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class CrosspostError(ChronicleError):
    """Raised when a post cannot be published to Medium."""
