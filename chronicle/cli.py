"""Command-line interface for Chronicle.

Commands:
- new: Scaffold a new blog.
- build: Build the site into the output directory.
- serve: Run the development server with live reload.
- post: Create a new dated post interactively.
- check: Verify every post parses and the built HTML is well-formed.
- crosspost: Publish flagged posts to Medium.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from datetime import datetime
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .errors import BuildError, ChronicleError, ContentError
from .posts import POSTS_DIR
from .utils import POST_NAME_RE, is_post_file, slugify

logger = logging.getLogger(__name__)

_SCAFFOLD_DIR = Path(__file__).parent / "scaffold"

SAMPLE_POST = """\
Welcome to your new blog. Posts live in `_posts/` and are named
`YYYY-MM-DD-title-slug.md`; the date and slug become the permalink.

Fenced code blocks are highlighted when you name the language:

```java
@Configuration
public class AppConfig {
    @Bean
    public Greeter greeter() {
        return new Greeter("hello");
    }
}
```
"""


@click.group()
@click.version_option(version=__version__, prog_name="chronicle")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Chronicle static blog generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new blog."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(f"Refusing to initialize into non-empty directory: {target}")
    _scaffold(target)
    click.echo(f"New Chronicle blog created at {target}")


def _report_failure(exc: BuildError | ContentError, project_root: Path) -> None:
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(f"  Error: {exc.message}", err=True)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include posts from _drafts")
def build(drafts: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import build_site

    try:
        result = build_site(project_root, include_drafts=drafts)
    except (BuildError, ContentError) as exc:
        _report_failure(exc, project_root)
        raise SystemExit(1) from None
    except ChronicleError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Built {len(result.posts)} posts into {result.output_dir}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include posts from _drafts")
@click.option("--port", type=int, required=False, help="HTTP port (overrides chronicle.yaml)")
@click.option("--ws-port", type=int, required=False, help="Live reload websocket port")
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run the dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(project_root, http_port=port, ws_port=ws_port)
    server.start(include_drafts=drafts)


@cli.command()
@click.option("--drafts", is_flag=True, help="Also check posts in _drafts")
def check(drafts: bool):
    """Check that every post parses and builds to well-formed HTML."""
    from .check import check_site

    report = check_site(Path.cwd(), include_drafts=drafts)
    for issue in report.issues:
        click.echo(click.style(str(issue), fg="red"), err=True)
    summary = f"Checked {report.checked_posts} posts and {report.checked_pages} pages"
    if not report.ok:
        click.echo(f"{summary}: {len(report.issues)} problem(s)", err=True)
        raise SystemExit(1)
    click.echo(f"{summary}: no problems")


@cli.command()
@click.option("--dry-run", is_flag=True, help="List posts that would be sent without sending")
def crosspost(dry_run: bool):
    """Publish posts flagged crosspost_to_medium to Medium."""
    project_root = Path.cwd()
    from .build import load_config
    from .crosspost import crosspost as run_crosspost
    from .posts import PostProcessor

    try:
        config = load_config(project_root)
        posts = PostProcessor(project_root, config).load()
        results = run_crosspost(project_root, posts, config, dry_run=dry_run)
    except ContentError as exc:
        _report_failure(exc, project_root)
        raise SystemExit(1) from None
    except ChronicleError as exc:
        raise click.ClickException(str(exc)) from exc

    if not results:
        click.echo("Nothing to cross-post")
        return
    for result in results:
        if dry_run:
            click.echo(f"Would cross-post {result.post.source} ({result.post.title})")
        else:
            click.echo(f"Cross-posted {result.post.source} -> {result.url}")


@cli.command()
def post():
    """Create a new dated post interactively."""
    project_root = Path.cwd()
    posts_dir = project_root / POSTS_DIR
    if not posts_dir.is_dir():
        raise click.ClickException(
            f"No {POSTS_DIR}/ directory found. Run this command from a Chronicle project root."
        )

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    slug = slugify(title)
    if not slug:
        raise click.ClickException("Title must contain at least one letter or digit")

    layout = "post"
    layouts = _get_layouts(project_root)
    if layouts:
        layout = questionary.select(
            "Layout:",
            choices=layouts,
            default="post" if "post" in layouts else None,
            style=_questionary_style(),
        ).ask()
        if layout is None:
            raise click.Abort()

    comments = questionary.confirm("Enable comments?", default=True, style=_questionary_style()).ask()
    if comments is None:
        raise click.Abort()
    crosspost_flag = questionary.confirm(
        "Cross-post to Medium?", default=False, style=_questionary_style()
    ).ask()
    if crosspost_flag is None:
        raise click.Abort()

    existing = _get_existing_slugs(posts_dir)
    if slug in existing:
        raise click.ClickException(f"A post with slug '{slug}' already exists: {existing[slug]}")

    filename = f"{datetime.now().strftime('%Y-%m-%d')}-{slug}.md"
    target = posts_dir / filename
    target.write_text(
        render_post_source(title, layout, comments, crosspost_flag), encoding="utf-8"
    )
    click.echo(f"Created {target.relative_to(project_root)}")


def render_post_source(
    title: str, layout: str = "post", comments: bool = True, crosspost: bool = False, body: str = ""
) -> str:
    """Front matter plus body for a new post file."""
    meta = {"layout": layout, "title": title, "comments": comments}
    if crosspost:
        meta["crosspost_to_medium"] = True
    front = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True, width=1000)
    return f"---\n{front}---\n\n{body}"


def _get_layouts(project_root: Path) -> list[str]:
    layouts_dir = project_root / "_layouts"
    if not layouts_dir.is_dir():
        return []
    names = {p.name.split(".", 1)[0] for p in layouts_dir.iterdir() if p.is_file()}
    # home and archive render index pages, not posts
    return sorted(names - {"home", "archive"})


def _get_existing_slugs(posts_dir: Path) -> dict[str, str]:
    """Map slug to filename for every dated post."""
    slugs: dict[str, str] = {}
    for path in posts_dir.rglob("*"):
        if not path.is_file() or not is_post_file(path):
            continue
        match = POST_NAME_RE.match(path.stem)
        if match:
            slugs[slugify(match.group("rest"))] = path.name
    return slugs


def _questionary_style():
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Copy the starter blog into ``root`` and add a first post."""
    for src_path in _SCAFFOLD_DIR.rglob("*"):
        if src_path.is_dir():
            continue
        dest_path = root / src_path.relative_to(_SCAFFOLD_DIR)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dest_path)

    config_path = root / "chronicle.yaml"
    config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    config["title"] = root.name.replace("-", " ").replace("_", " ").title()
    config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")

    posts_dir = root / POSTS_DIR
    posts_dir.mkdir(parents=True, exist_ok=True)
    (root / "_drafts").mkdir(exist_ok=True)
    filename = f"{datetime.now().strftime('%Y-%m-%d')}-welcome-to-chronicle.md"
    (posts_dir / filename).write_text(
        render_post_source("Welcome to Chronicle", body=SAMPLE_POST), encoding="utf-8"
    )
    _try_git_init(root)


def _try_git_init(root: Path) -> None:
    """Initialize a git repository if git is available."""
    if os.environ.get("CHRONICLE_SKIP_GIT_INIT") == "1":
        return
    git_bin = shutil.which("git")
    if not git_bin:
        return
    try:
        subprocess.run([git_bin, "init"], cwd=root, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("git init failed in %s: %s", root, exc)
