"""Post loading for Chronicle.

This module discovers post files, parses their names and front matter,
renders their bodies and computes their permalinks.

Key classes:
- Post: Dataclass representing one blog post.
- PostLoader: Finds post and draft files on disk.
- PermalinkBuilder: Expands a permalink pattern for a post.
- PostBuilder: Builds a Post from a source file.
- PostProcessor: Facade that loads every post into a PostCollection.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import BuildError, FrontMatterError, PostNameError
from .frontmatter import FrontMatter, parse_frontmatter
from .html_utils import strip_tags
from .renderers import Heading, MarkdownRenderer, default_renderer
from .utils import (
    POST_NAME_RE,
    is_post_file,
    parse_post_filename,
    slugify,
    split_excerpt,
    titleize,
)

if TYPE_CHECKING:
    from .collections import PostCollection

logger = logging.getLogger(__name__)

POSTS_DIR = "_posts"
DRAFTS_DIR = "_drafts"
DEFAULT_PERMALINK = "/:year/:month/:day/:title/"

_PERMALINK_TOKEN_RE = re.compile(r":(year|month|day|title|slug|categories)")


@dataclass
class Post:
    """A blog post with its metadata and rendered content.

    Attributes:
        title: Human-readable title.
        layout: Name of the layout template.
        date: Publish date taken from the filename.
        slug: URL-friendly slug taken from the filename.
        body: Markdown source after the front matter.
        content: Rendered HTML of the body.
        excerpt: Rendered HTML of the leading section of the body.
        url: Permalink path (root-relative).
        comments: Whether comments are enabled.
        github: Optional companion repository URL.
        crosspost_to_medium: Whether the post is syndicated to Medium.
        draft: True for files loaded from the drafts directory.
        path: Source file.
        source: Source path relative to the project root (stable identifier).
        categories: Sub-folders between the posts directory and the file.
        frontmatter: The validated front matter.
        toc: Headings found in the body.
        previous: The next older post, once neighbours are linked.
        next: The next newer post, once neighbours are linked.
    """

    title: str
    layout: str
    date: datetime
    slug: str
    body: str
    content: str
    excerpt: str
    url: str
    comments: bool
    github: str | None
    crosspost_to_medium: bool
    draft: bool
    path: Path
    source: str
    categories: list[str] = field(default_factory=list)
    frontmatter: FrontMatter = field(default_factory=FrontMatter)
    toc: list[Heading] = field(default_factory=list)
    previous: Post | None = field(default=None, repr=False, compare=False)
    next: Post | None = field(default=None, repr=False, compare=False)

    @property
    def extra(self) -> dict[str, Any]:
        return self.frontmatter.extra

    @property
    def description(self) -> str:
        """Plain-text excerpt, for meta tags and feeds."""
        return strip_tags(self.excerpt)


class PostLoader:
    """Discovers post and draft files under a project root.

    Attributes:
        posts_dir: Directory holding dated posts.
        drafts_dir: Directory holding undated drafts.
    """

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self.posts_dir = project_root / POSTS_DIR
        self.drafts_dir = project_root / DRAFTS_DIR

    def iter_posts(self) -> list[Path]:
        return self._scan(self.posts_dir)

    def iter_drafts(self) -> list[Path]:
        return self._scan(self.drafts_dir)

    def _scan(self, root: Path) -> list[Path]:
        if not root.is_dir():
            return []
        return sorted(p for p in root.rglob("*") if p.is_file() and is_post_file(p))


class PermalinkBuilder:
    """Expands a permalink pattern such as ``/:year/:month/:day/:title/``."""

    def __init__(self, pattern: str = DEFAULT_PERMALINK):
        self.pattern = pattern if pattern.startswith("/") else f"/{pattern}"

    def build(self, date: datetime, slug: str, categories: list[str]) -> str:
        values = {
            "year": f"{date.year:04d}",
            "month": f"{date.month:02d}",
            "day": f"{date.day:02d}",
            "title": slug,
            "slug": slug,
            "categories": "/".join(slugify(c) for c in categories if slugify(c)),
        }
        url = _PERMALINK_TOKEN_RE.sub(lambda m: values[m.group(1)], self.pattern)
        # An empty :categories leaves a doubled slash behind.
        return re.sub(r"/{2,}", "/", url)


class PostBuilder:
    """Builds Post objects from source files.

    Attributes:
        project_root: Project directory; sources are identified relative to it.
        permalinks: Permalink pattern expander.
        excerpt_separator: Marker ending the excerpt.
        renderer: Markdown renderer.
    """

    def __init__(
        self,
        project_root: Path,
        permalink: str = DEFAULT_PERMALINK,
        excerpt_separator: str = "\n\n",
        renderer: MarkdownRenderer | None = None,
    ):
        self.project_root = project_root
        self.permalinks = PermalinkBuilder(permalink)
        self.excerpt_separator = excerpt_separator
        self.renderer = renderer or default_renderer

    def build(self, path: Path, draft: bool = False) -> Post:
        """Build a Post from a source file.

        Raises:
            PostNameError: If a non-draft filename lacks a valid date prefix.
            FrontMatterError: If the front matter is missing or invalid.
        """
        if draft:
            date, slug = self._draft_identity(path)
            base = self.project_root / DRAFTS_DIR
        else:
            date, slug = parse_post_filename(path)
            base = self.project_root / POSTS_DIR
        categories = list(path.parent.relative_to(base).parts)

        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise FrontMatterError(path, "file is not valid UTF-8") from exc
        meta, body = parse_frontmatter(text, path)
        content, toc = self.renderer.render(body)
        excerpt_source = split_excerpt(body, self.excerpt_separator)
        excerpt, _ = self.renderer.render(excerpt_source)

        return Post(
            title=meta.title or titleize(slug),
            layout=meta.layout,
            date=date,
            slug=slug,
            body=body,
            content=content,
            excerpt=excerpt,
            url=self.permalinks.build(date, slug, categories),
            comments=meta.comments,
            github=meta.github,
            crosspost_to_medium=meta.crosspost_to_medium,
            draft=draft,
            path=path,
            source=path.relative_to(self.project_root).as_posix(),
            categories=categories,
            frontmatter=meta,
            toc=toc,
        )

    def _draft_identity(self, path: Path) -> tuple[datetime, str]:
        """Drafts may omit the date prefix; they are dated by modification time."""
        try:
            return parse_post_filename(path)
        except PostNameError:
            pass
        match = POST_NAME_RE.match(path.stem)
        stem = match.group("rest") if match else path.stem
        slug = slugify(stem) or "draft"
        return datetime.fromtimestamp(path.stat().st_mtime), slug


class PostProcessor:
    """Facade that loads every post of a project.

    Attributes:
        project_root: Project directory containing ``_posts``.
    """

    def __init__(
        self,
        project_root: Path,
        config: dict[str, Any] | None = None,
        loader: PostLoader | None = None,
        builder: PostBuilder | None = None,
    ):
        config = config or {}
        self.project_root = project_root
        self._loader = loader or PostLoader(project_root)
        self._builder = builder or PostBuilder(
            project_root,
            permalink=str(config.get("permalink") or DEFAULT_PERMALINK),
            excerpt_separator=str(config.get("excerpt_separator", "\n\n")),
        )

    def load(self, include_drafts: bool = False) -> PostCollection:
        """Load all posts, newest first.

        Raises:
            PostNameError, FrontMatterError: On the first invalid post.
            BuildError: If two posts resolve to the same permalink.
        """
        from .collections import PostCollection

        posts = [self._builder.build(path) for path in self._loader.iter_posts()]
        if include_drafts:
            posts.extend(
                self._builder.build(path, draft=True) for path in self._loader.iter_drafts()
            )
        logger.debug("Loaded %d posts from %s", len(posts), self.project_root)

        seen: dict[str, Post] = {}
        for post in posts:
            if post.url in seen:
                raise BuildError(
                    post.path,
                    f"permalink {post.url} is already used by {seen[post.url].source}",
                )
            seen[post.url] = post

        collection = PostCollection(posts).sorted()
        collection.link_neighbours()
        return collection
