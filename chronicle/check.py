"""Build verification for Chronicle.

``check_site`` answers "would this blog build, and is the output sane?"
without stopping at the first problem. Every post is parsed on its own so a
single report lists every broken file; the site is then built into a
temporary directory and each HTML page is checked for balanced markup.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .build import build_site, load_config
from .errors import BuildError, ChronicleError, ContentError
from .html_utils import find_markup_problems
from .posts import Post, PostBuilder, PostLoader
from .templates import TemplateEngine

logger = logging.getLogger(__name__)


@dataclass
class Issue:
    """One problem found by the checker."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class CheckReport:
    """Outcome of a site check.

    Attributes:
        checked_posts: Number of post files inspected.
        checked_pages: Number of built HTML files inspected.
        issues: Every problem found.
    """

    checked_posts: int = 0
    checked_pages: int = 0
    issues: list[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def add(self, path: Path | str, message: str) -> None:
        self.issues.append(Issue(str(path), message))


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def check_posts(
    project_root: Path, report: CheckReport, include_drafts: bool = False
) -> list[Post]:
    """Parse each post independently, recording name, front-matter and layout problems."""
    config = load_config(project_root)
    loader = PostLoader(project_root)
    builder = PostBuilder(
        project_root,
        permalink=str(config["permalink"]),
        excerpt_separator=str(config["excerpt_separator"]),
    )
    engine = TemplateEngine(project_root, config)
    sources = [(p, False) for p in loader.iter_posts()]
    if include_drafts:
        sources.extend((p, True) for p in loader.iter_drafts())

    posts: list[Post] = []
    permalinks: dict[str, str] = {}
    for path, draft in sources:
        report.checked_posts += 1
        try:
            post = builder.build(path, draft=draft)
        except ContentError as exc:
            report.add(_relative(path, project_root), exc.message)
            continue
        if not engine.has_layout(post.layout) and not engine.has_layout("default"):
            report.add(post.source, f"layout '{post.layout}' does not exist")
        if post.url in permalinks:
            report.add(post.source, f"permalink {post.url} duplicates {permalinks[post.url]}")
        else:
            permalinks[post.url] = post.source
        posts.append(post)
    return posts


def check_output(output_dir: Path, report: CheckReport) -> None:
    """Verify every built HTML file has balanced markup."""
    for html_file in sorted(output_dir.rglob("*.html")):
        report.checked_pages += 1
        problems = find_markup_problems(html_file.read_text(encoding="utf-8"))
        for problem in problems:
            report.add(f"{_relative(html_file, output_dir)} (built)", problem)


def check_site(project_root: Path, include_drafts: bool = False) -> CheckReport:
    """Check every post and, if they all parse, the built HTML.

    Args:
        project_root: Root directory of the project.
        include_drafts: Also check files in ``_drafts``.

    Returns:
        CheckReport listing every problem found.
    """
    report = CheckReport()
    try:
        check_posts(project_root, report, include_drafts=include_drafts)
    except ChronicleError as exc:
        report.add(project_root, str(exc))
        return report
    if not report.ok:
        logger.debug("Skipping output check: %d post problems", len(report.issues))
        return report

    with tempfile.TemporaryDirectory(prefix="chronicle-check-") as tmp:
        output_dir = Path(tmp) / "site"
        try:
            build_site(project_root, include_drafts=include_drafts, output_dir_override=output_dir)
        except BuildError as exc:
            report.add(_relative(exc.source_path, project_root), exc.message)
            return report
        check_output(output_dir, report)
    return report
