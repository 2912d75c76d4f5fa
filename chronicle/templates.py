"""Template rendering for Chronicle.

Layouts are Jinja2 templates stored in ``_layouts/``; shared fragments live in
``_includes/``. A post names its layout in front matter and is rendered with
that template. Layouts may build on each other with ``{% extends %}``.

Key class:
- TemplateEngine: Renders posts, index pages and the archive page.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateNotFound,
    select_autoescape,
)
from markupsafe import Markup, escape
from pygments.formatters import HtmlFormatter

from .collections import Paginator, PostCollection
from .html_utils import join_root_url
from .posts import Post
from .renderers import Heading

__all__ = ["TemplateEngine", "render_toc"]

LAYOUTS_DIR = "_layouts"
INCLUDES_DIR = "_includes"
LAYOUT_SUFFIXES = (".html", ".html.jinja", ".jinja", "")
FALLBACK_LAYOUT = "default"


def render_toc(page: Post) -> Markup:
    """Render a post's headings as nested ``<ul>`` lists."""
    if not page.toc:
        return Markup("")
    return _render_toc_from_headings(page.toc)


def _render_toc_from_headings(headings: list[Heading]) -> Markup:
    parts: list[str] = []
    levels: list[int] = []

    for heading in headings:
        while levels and levels[-1] > heading.level:
            levels.pop()
            parts.append("</li></ul>")
        if levels and levels[-1] == heading.level:
            parts.append("</li>")
        else:
            parts.append("<ul>")
            levels.append(heading.level)
        # Heading text is already HTML produced by the Markdown renderer.
        parts.append(f'<li><a href="#{escape(heading.id)}">{heading.text}</a>')

    while levels:
        levels.pop()
        parts.append("</li></ul>")
    return Markup("".join(parts))


def date_to_string(value: datetime, fmt: str = "%d %b %Y") -> str:
    return value.strftime(fmt)


def date_to_xmlschema(value: datetime) -> str:
    if value.tzinfo is None:
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat()


class TemplateEngine:
    """Jinja2-backed renderer for every page Chronicle writes.

    Attributes:
        project_root: Project directory containing ``_layouts``.
        config: Site configuration, exposed to templates as ``site``.
        root_url: Base URL used by ``url_for``; empty for root-relative links.
        env: Jinja2 environment.
        posts: Collection exposed to templates as ``posts``.
    """

    def __init__(
        self,
        project_root: Path,
        config: dict[str, Any],
        root_url: str | None = None,
    ):
        self.project_root = project_root
        self.config = config
        self.root_url = (root_url if root_url is not None else config.get("root_url")) or ""
        self.layouts_dir = project_root / LAYOUTS_DIR
        self.env = Environment(
            loader=FileSystemLoader(
                [str(self.layouts_dir), str(project_root / INCLUDES_DIR)]
            ),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
        )
        self.posts = PostCollection([])
        self._install_globals()

    def _install_globals(self) -> None:
        self.env.globals["site"] = self.config
        self.env.globals["posts"] = self.posts
        self.env.globals["url_for"] = self.url_for
        self.env.globals["pygments_css"] = self._pygments_css
        self.env.globals["render_toc"] = render_toc
        self.env.filters["date_to_string"] = date_to_string
        self.env.filters["date_to_xmlschema"] = date_to_xmlschema
        self.env.filters["absolute_url"] = self.absolute_url

    @staticmethod
    def _pygments_css(style: str = "default") -> str:
        return HtmlFormatter(style=style).get_style_defs(".highlight")

    def update_posts(self, posts: PostCollection) -> None:
        self.posts = posts
        self.env.globals["posts"] = posts

    def url_for(self, path: str) -> str:
        """Return a link for ``path``, prefixed with root_url when one is set."""
        if path.startswith(("http://", "https://", "//")):
            return path
        normalized = path if path.startswith("/") else f"/{path}"
        return join_root_url(self.root_url, normalized) if self.root_url else normalized

    def absolute_url(self, path: str) -> str:
        """Return ``path`` joined to the site's public ``url``."""
        if path.startswith(("http://", "https://", "//")):
            return path
        base = str(self.config.get("url") or self.root_url or "")
        return join_root_url(base, path) if base else path

    def has_layout(self, name: str) -> bool:
        return self._find_layout_file(name) is not None

    def _find_layout_file(self, name: str) -> str | None:
        for suffix in LAYOUT_SUFFIXES:
            candidate = f"{name}{suffix}"
            if (self.layouts_dir / candidate).is_file():
                return candidate
        return None

    def resolve_layout(self, name: str) -> Template:
        """Return the layout template, falling back to ``default``.

        Raises:
            TemplateNotFound: If neither the layout nor the fallback exists.
        """
        for candidate in (name, FALLBACK_LAYOUT):
            filename = self._find_layout_file(candidate)
            if filename is not None:
                return self.env.get_template(filename)
        raise TemplateNotFound(name)

    def render_post(self, post: Post) -> str:
        layout = self.resolve_layout(post.layout)
        return layout.render(
            page=post,
            post=post,
            content=Markup(post.content),
            posts=self.posts,
        )

    def render_index(self, paginator: Paginator) -> str:
        layout = self.resolve_layout("home")
        page = {"title": self.config.get("title", ""), "url": paginator.url}
        return layout.render(page=page, paginator=paginator, posts=self.posts, content=Markup(""))

    def render_archive(self) -> str:
        layout = self.resolve_layout("archive")
        page = {"title": "Archive", "url": "/archive/"}
        return layout.render(
            page=page,
            years=self.posts.by_year(),
            posts=self.posts,
            content=Markup(""),
        )

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        return self.env.from_string(template).render(**context)
