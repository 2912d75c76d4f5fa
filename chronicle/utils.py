"""Utility functions for Chronicle.

String and path helpers used by the loader, the build and the CLI.

Key functions:
    slugify: Convert a post name to a URL slug.
    titleize: Convert a slug or filename to a human-readable title.
    parse_post_filename: Split ``YYYY-MM-DD-slug.md`` into date and slug.
    is_post_file: Check whether a path is a Markdown post.
    split_excerpt: Cut the leading section off a post body.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from datetime import datetime
from pathlib import Path

from .errors import PostNameError

POST_EXTENSIONS = (".md", ".markdown")

POST_NAME_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<rest>.+)$")


def slugify(name: str) -> str:
    """Convert a name to a lower-case, dash-separated slug.

    Args:
        name: Filename stem or free text.

    Returns:
        URL-friendly slug, or an empty string when nothing usable remains.

    Examples:
        >>> slugify("Spring Profiles & You")
        'spring-profiles-you'
    """
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", name)
    return cleaned.strip("-").lower()


def titleize(name: str) -> str:
    """Convert a slug or filename to a human-readable title.

    Removes a date prefix and the extension, replaces hyphens and
    underscores with spaces and capitalizes each word.

    Examples:
        >>> titleize("2015-03-02-jaxb-episode-files.md")
        'Jaxb Episode Files'
    """
    base = Path(name).stem if Path(name).suffix in POST_EXTENSIONS else name
    match = POST_NAME_RE.match(base)
    if match:
        base = match.group("rest")
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def parse_post_filename(path: Path) -> tuple[datetime, str]:
    """Extract the publish date and slug from a post filename.

    Args:
        path: Path to a post named ``YYYY-MM-DD-title-slug.md``.

    Returns:
        Tuple of (publish date at midnight, slug).

    Raises:
        PostNameError: If the date prefix is missing or invalid, or no slug remains.
    """
    match = POST_NAME_RE.match(path.stem)
    if not match:
        raise PostNameError(path, "filename must look like YYYY-MM-DD-title-slug.md")
    try:
        date = datetime(
            int(match.group("year")), int(match.group("month")), int(match.group("day"))
        )
    except ValueError as exc:
        raise PostNameError(path, f"invalid date prefix ({exc})") from exc
    slug = slugify(match.group("rest"))
    if not slug:
        raise PostNameError(path, "filename has no title slug after the date")
    return date, slug


def is_post_file(path: Path) -> bool:
    """Check if a path is a Markdown post file.

    Hidden files and editor backups (``~`` suffix) are skipped.
    """
    if path.name.startswith(".") or path.name.endswith("~"):
        return False
    return path.suffix.lower() in POST_EXTENSIONS


def split_excerpt(body: str, separator: str) -> str:
    """Return the part of a post body before the excerpt separator.

    Leading blank lines are ignored so that a body starting with an empty
    line still yields its first paragraph.

    Args:
        body: Markdown body.
        separator: Marker that ends the excerpt (e.g. a blank line or ``<!--more-->``).

    Returns:
        The excerpt source, or the whole body when the separator is absent.
    """
    text = body.lstrip("\n")
    if not separator:
        return text
    head, found, _ = text.partition(separator)
    return head if found else text


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)
