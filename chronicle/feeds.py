"""Feed generation for Chronicle.

Feeds are written after the pages. Each generator needs the public site
``url`` to build absolute links and is skipped when it is not configured.

Classes:
    FeedGenerator: Base class for feed generators.
    AtomFeedGenerator: Writes ``feed.xml`` (Atom 1.0).
    SitemapGenerator: Writes ``sitemap.xml``.
    FeedRegistry: Runs every registered generator.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape, quoteattr

from .html_utils import absolutize_html_urls
from .posts import Post

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 20


def _xml_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _base_url(config: dict[str, Any]) -> str:
    return str(config.get("url") or "").rstrip("/")


class FeedGenerator(ABC):
    """Base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        ...

    @abstractmethod
    def generate(self, posts: list[Post], config: dict[str, Any]) -> str | None:
        """Return the feed document, or None if it cannot be produced."""
        ...

    def write(self, output_dir: Path, posts: list[Post], config: dict[str, Any]) -> bool:
        content = self.generate(posts, config)
        if content is None:
            logger.info("Skipping %s: no site url configured", self.filename)
            return False
        (output_dir / self.filename).write_text(content, encoding="utf-8")
        return True


class AtomFeedGenerator(FeedGenerator):
    """Atom feed of the newest published posts."""

    @property
    def filename(self) -> str:
        return "feed.xml"

    def generate(self, posts: list[Post], config: dict[str, Any]) -> str | None:
        base_url = _base_url(config)
        if not base_url:
            return None
        limit = config.get("feed_limit")
        limit = DEFAULT_FEED_LIMIT if limit is None else int(limit)
        entries = sorted(
            (p for p in posts if not p.draft), key=lambda p: p.date, reverse=True
        )
        # 0 lists every post.
        if limit > 0:
            entries = entries[:limit]
        updated = entries[0].date if entries else datetime.now(timezone.utc)
        title = str(config.get("title") or "Chronicle")
        author = str(config.get("author") or "")

        lines = [
            '<?xml version="1.0" encoding="utf-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"  <title>{escape(title)}</title>",
            f"  <link href={quoteattr(base_url + '/feed.xml')} rel=\"self\"/>",
            f"  <link href={quoteattr(base_url + '/')}/>",
            f"  <id>{escape(base_url)}/</id>",
            f"  <updated>{_xml_datetime(updated)}</updated>",
        ]
        if config.get("description"):
            lines.append(f"  <subtitle>{escape(str(config['description']))}</subtitle>")
        if author:
            lines.append(f"  <author><name>{escape(author)}</name></author>")
        for post in entries:
            link = f"{base_url}{post.url}"
            summary = absolutize_html_urls(post.excerpt, base_url, page_url=link)
            content = absolutize_html_urls(post.content, base_url, page_url=link)
            lines.extend(
                [
                    "  <entry>",
                    f"    <title>{escape(post.title)}</title>",
                    f"    <link href={quoteattr(link)}/>",
                    f"    <id>{escape(link)}</id>",
                    f"    <published>{_xml_datetime(post.date)}</published>",
                    f"    <updated>{_xml_datetime(post.date)}</updated>",
                    f'    <summary type="html">{escape(summary)}</summary>',
                    f'    <content type="html">{escape(content)}</content>',
                    "  </entry>",
                ]
            )
        lines.append("</feed>")
        return "\n".join(lines) + "\n"


class SitemapGenerator(FeedGenerator):
    """Sitemap listing the index and every published post."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, posts: list[Post], config: dict[str, Any]) -> str | None:
        base_url = _base_url(config)
        if not base_url:
            return None
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            f"  <url><loc>{escape(base_url)}/</loc></url>",
        ]
        for post in posts:
            if post.draft:
                continue
            loc = escape(f"{base_url}{post.url}")
            lastmod = post.date.strftime("%Y-%m-%d")
            lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class FeedRegistry:
    """Runs a list of feed generators during the build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self, output_dir: Path, posts: Iterable[Post], config: dict[str, Any]
    ) -> list[str]:
        """Write every feed; return the filenames that were produced."""
        post_list = list(posts)
        return [
            g.filename for g in self._generators if g.write(output_dir, post_list, config)
        ]


def create_default_feed_registry() -> FeedRegistry:
    registry = FeedRegistry()
    registry.register(AtomFeedGenerator())
    registry.register(SitemapGenerator())
    return registry
