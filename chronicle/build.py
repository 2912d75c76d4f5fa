"""Site building for Chronicle.

This module turns a project directory into a static site: it loads the
configuration, reads every post, renders posts, index pages and the archive
through the layouts, publishes assets and writes the feeds.

Key functions:
- load_config: Loads site configuration from chronicle.yaml.
- build_site: Builds the whole site.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jinja2 import TemplateError, TemplateNotFound, TemplateSyntaxError

from .assets import AssetPipeline
from .collections import DEFAULT_PAGINATE_PATH, PostCollection
from .errors import BuildError, ConfigError
from .feeds import create_default_feed_registry
from .html_utils import absolutize_html_urls
from .posts import DEFAULT_PERMALINK, Post, PostProcessor
from .templates import TemplateEngine
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)

CONFIG_FILE = "chronicle.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "My Blog",
    "description": "",
    "author": "",
    "url": "",
    "root_url": "",
    "output_dir": "_site",
    "port": 4000,
    "permalink": DEFAULT_PERMALINK,
    "paginate": 10,
    "paginate_path": DEFAULT_PAGINATE_PATH,
    "excerpt_separator": "\n\n",
    "feed_limit": 20,
    "disqus_shortname": "",
    "medium": {},
}


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        posts: Every post that was rendered, newest first.
        output_dir: Directory the site was written to.
        config: Effective configuration.
        written: Output files, relative to output_dir.
    """

    posts: PostCollection
    output_dir: Path
    config: dict[str, Any]
    written: list[str] = field(default_factory=list)


def load_config(project_root: Path) -> dict[str, Any]:
    """Load chronicle.yaml merged over DEFAULT_CONFIG.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = project_root / CONFIG_FILE
    if not config_path.exists():
        logger.debug("No %s in %s; using defaults", CONFIG_FILE, project_root)
        return config
    with open(config_path, encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{config_path}: invalid YAML ({exc})") from exc
    if loaded is None:
        return config
    if not isinstance(loaded, dict):
        raise ConfigError(f"{config_path}: expected key/value settings")
    config.update(loaded)
    return config


def output_path_for(url: str) -> Path:
    """Relative output file for a permalink.

    ``/2015/03/02/jaxb/`` maps to ``2015/03/02/jaxb/index.html`` while
    ``/2015/03/02/jaxb.html`` maps to that file.
    """
    path = url.strip("/")
    if url.endswith(".html"):
        return Path(path)
    return Path(path) / "index.html" if path else Path("index.html")


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    root_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include posts from ``_drafts``.
        root_url: Optional base URL to absolutize links with.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Write here instead of the configured output_dir.

    Returns:
        BuildResult describing what was written.

    Raises:
        ContentError: If a post has a bad name or front matter.
        BuildError: If rendering a post or page fails.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    resolved_root = str(config.get("root_url") or "")
    output_dir = output_dir_override or (project_root / str(config["output_dir"]))
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    posts = PostProcessor(project_root, config).load(include_drafts=include_drafts)
    # Links stay root-relative here; write() applies root_url once.
    engine = TemplateEngine(project_root, config, root_url="")
    engine.update_posts(posts)
    result = BuildResult(posts=posts, output_dir=output_dir, config=config)

    def write(url: str, html: str) -> None:
        if resolved_root:
            html = absolutize_html_urls(html, resolved_root)
        rel = output_path_for(url)
        target = output_dir / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(html, encoding="utf-8")
        result.written.append(rel.as_posix())

    for post in posts:
        write(post.url, _render(post.path, lambda p=post: engine.render_post(p), post))

    layouts_dir = project_root / "_layouts"
    if engine.has_layout("home"):
        per_page = int(config.get("paginate") or 0)
        path_pattern = str(config.get("paginate_path") or DEFAULT_PAGINATE_PATH)
        for paginator in posts.paginate(per_page, path_pattern):
            write(
                paginator.url,
                _render(layouts_dir / "home", lambda p=paginator: engine.render_index(p)),
            )
    else:
        logger.warning("No 'home' layout; skipping the post index")
    if engine.has_layout("archive"):
        write("/archive/", _render(layouts_dir / "archive", engine.render_archive))

    AssetPipeline(project_root, output_dir).run()
    result.written.extend(
        create_default_feed_registry().generate_all(output_dir, posts.published(), config)
    )
    logger.info("Built %d posts into %s", len(posts), output_dir)
    return result


def _render(source: Path, render, post: Post | None = None) -> str:
    """Run a render callable, turning template failures into BuildError."""
    try:
        return render()
    except TemplateNotFound as exc:
        if post is not None and exc.name == post.layout:
            message = f"layout '{post.layout}' not found (and no 'default' layout)"
        else:
            message = f"template '{exc.name}' not found"
        raise BuildError(source, message, exc) from exc
    except TemplateSyntaxError as exc:
        raise BuildError(
            source,
            f"template syntax error in {exc.filename or exc.name} line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except (TemplateError, TypeError, AttributeError) as exc:
        raise BuildError(source, _format_error_message(exc), exc) from exc


def _format_error_message(exc: Exception) -> str:
    error_type = type(exc).__name__
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    return f"{error_type}: {exc}"
