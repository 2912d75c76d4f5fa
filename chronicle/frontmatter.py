"""Front-matter parsing for Chronicle posts.

Every post starts with a YAML block fenced by ``---`` lines. The keys
Chronicle understands are typed and validated here; anything else is kept
as-is so layouts can use it.

Key objects:
- FrontMatter: Dataclass holding the validated metadata.
- split_frontmatter: Separate the raw YAML block from the Markdown body.
- parse_frontmatter: Parse and validate a complete post source.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import FrontMatterError

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)

DEFAULT_LAYOUT = "post"

KNOWN_KEYS = ("layout", "title", "comments", "github", "crosspost_to_medium")


@dataclass
class FrontMatter:
    """Validated front-matter metadata.

    Attributes:
        layout: Template name used to render the post.
        title: Post title, or None to derive one from the filename.
        comments: Whether the comment thread is shown.
        github: Optional link to a companion repository.
        crosspost_to_medium: Whether the post is syndicated to Medium.
        extra: Any keys Chronicle does not interpret itself.
    """

    layout: str = DEFAULT_LAYOUT
    title: str | None = None
    comments: bool = False
    github: str | None = None
    crosspost_to_medium: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            layout=self.layout,
            title=self.title,
            comments=self.comments,
            github=self.github,
            crosspost_to_medium=self.crosspost_to_medium,
        )
        return data


def split_frontmatter(text: str, path: Path) -> tuple[str, str]:
    """Split a post source into its raw YAML block and its body.

    Raises:
        FrontMatterError: If the file does not start with a closed ``---`` block.
    """
    if not re.match(r"\A---[ \t]*\r?\n", text):
        raise FrontMatterError(path, "missing front matter (file must start with '---')")
    match = FRONTMATTER_RE.match(text)
    if not match:
        raise FrontMatterError(path, "front matter is never closed with '---'")
    return match.group(1), text[match.end() :]


def _expect_bool(path: Path, key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise FrontMatterError(path, f"'{key}' must be true or false, got {value!r}")


def _expect_text(path: Path, key: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    # `title: 2015` is a number to YAML but clearly meant as text.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise FrontMatterError(path, f"'{key}' must be a string, got {value!r}")


def validate_frontmatter(data: dict[str, Any], path: Path) -> FrontMatter:
    """Check the recognised keys and build a FrontMatter.

    ``null`` values count as absent, matching how YAML authors leave keys blank.
    """
    values = {key: value for key, value in data.items() if value is not None}
    meta = FrontMatter(extra={k: v for k, v in data.items() if k not in KNOWN_KEYS})

    if "layout" in values:
        layout = _expect_text(path, "layout", values["layout"]).strip()
        if not layout:
            raise FrontMatterError(path, "'layout' cannot be empty")
        meta.layout = layout
    if "title" in values:
        meta.title = _expect_text(path, "title", values["title"])
    if "comments" in values:
        meta.comments = _expect_bool(path, "comments", values["comments"])
    if "github" in values:
        github = _expect_text(path, "github", values["github"]).strip()
        if not github.startswith(("http://", "https://")):
            raise FrontMatterError(path, f"'github' must be an http(s) URL, got {github!r}")
        meta.github = github
    if "crosspost_to_medium" in values:
        meta.crosspost_to_medium = _expect_bool(
            path, "crosspost_to_medium", values["crosspost_to_medium"]
        )
    return meta


def parse_frontmatter(text: str, path: Path) -> tuple[FrontMatter, str]:
    """Parse the front matter of a post.

    Args:
        text: Full file contents.
        path: Path of the file, used in error messages.

    Returns:
        Tuple of (FrontMatter, Markdown body).

    Raises:
        FrontMatterError: If the block is missing, is not valid YAML, is not a
            mapping, or a recognised key has the wrong type.
    """
    raw, body = split_frontmatter(text, path)
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 2})" if mark is not None else ""
        raise FrontMatterError(path, f"front matter is not valid YAML{where}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError(
            path, f"front matter must be key/value pairs, got {type(data).__name__}"
        )
    return validate_frontmatter(data, path), body
