"""HTML helpers for Chronicle.

Functions:
    join_root_url: Join a base URL with a path.
    absolutize_html_urls: Prefix root-relative URLs in HTML with a root URL.
    strip_tags: Reduce an HTML fragment to plain text.
    find_markup_problems: Report unbalanced tags in an HTML document.
"""

from __future__ import annotations

import re
from html.parser import HTMLParser
from urllib.parse import urljoin

_URL_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:href|src|action)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "#",
    "javascript:",
    "data:",
)

_TAG_RE = re.compile(r"<[^>]+>")

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)

# Elements whose end tag HTML lets authors omit.
OPTIONAL_CLOSE = frozenset({"li", "p", "dt", "dd", "tr", "td", "th", "option"})


def join_root_url(root_url: str, path: str) -> str:
    """Join a root URL and a path without doubling slashes.

    Examples:
        >>> join_root_url('https://example.com/', 'about/')
        'https://example.com/about/'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def absolutize_html_urls(html: str, root_url: str, page_url: str | None = None) -> str:
    """Rewrite root-relative href/src/action URLs against ``root_url``.

    Page-relative URLs such as ``diagram.png`` are resolved against
    ``page_url`` when one is given and are otherwise left alone. External
    URLs, fragments, ``mailto:``/``tel:`` links and inline data are never
    touched.

    Examples:
        >>> absolutize_html_urls('<a href="/about/">About</a>', 'https://example.com')
        '<a href="https://example.com/about/">About</a>'
        >>> absolutize_html_urls('<img src="a.png">', 'https://example.com', 'https://example.com/x/')
        '<img src="https://example.com/x/a.png">'
    """
    if not root_url and not page_url:
        return html

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if url.startswith(_URL_SKIP_PREFIXES):
            return match.group(0)
        if url.startswith("/"):
            if not root_url:
                return match.group(0)
            absolute = join_root_url(root_url, url)
        elif page_url:
            absolute = urljoin(page_url, url)
        else:
            return match.group(0)
        return f"{match.group('prefix')}{absolute}{match.group('suffix')}"

    return _URL_ATTR_RE.sub(repl, html)


def strip_tags(html: str) -> str:
    """Drop tags and collapse whitespace in an HTML fragment."""
    return " ".join(_TAG_RE.sub(" ", html).split())


class _BalanceChecker(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.stack: list[tuple[str, int]] = []
        self.problems: list[str] = []

    def handle_starttag(self, tag, attrs):
        if tag in VOID_ELEMENTS:
            return
        self.stack.append((tag, self.getpos()[0]))

    def handle_startendtag(self, tag, attrs):
        pass

    def handle_endtag(self, tag):
        if tag in VOID_ELEMENTS:
            return
        line = self.getpos()[0]
        open_tags = [name for name, _ in self.stack]
        if tag not in open_tags:
            self.problems.append(f"line {line}: stray closing tag </{tag}>")
            return
        while self.stack:
            name, opened_at = self.stack.pop()
            if name == tag:
                break
            if name not in OPTIONAL_CLOSE:
                self.problems.append(
                    f"line {opened_at}: <{name}> is never closed (closed by </{tag}> on line {line})"
                )

    def finish(self) -> list[str]:
        self.close()
        for name, opened_at in self.stack:
            if name not in OPTIONAL_CLOSE:
                self.problems.append(f"line {opened_at}: <{name}> is never closed")
        return self.problems


def find_markup_problems(html: str) -> list[str]:
    """Return a list of tag-balance problems found in an HTML document.

    An empty list means every non-void element is closed in order.
    """
    checker = _BalanceChecker()
    checker.feed(html)
    return checker.finish()
