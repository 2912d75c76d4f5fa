"""Markdown rendering for Chronicle.

Post bodies are rendered with mistune. Fenced code blocks that carry a
language hint are highlighted with Pygments, and headings receive anchor ids
that are collected for a table of contents.

Key classes:
- Heading: A heading found while rendering.
- MarkdownRenderer: Renders a Markdown body to HTML.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import strip_tags

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


@dataclass
class Heading:
    """A heading extracted while rendering, used for TOC generation.

    Attributes:
        id: Anchor id (URL-friendly slug).
        text: Heading text (may contain inline HTML).
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


def anchor_for(text: str) -> str:
    """Anchor id for a heading: its plain text, lower-cased and dash-joined."""
    words = re.findall(r"[\w-]+", strip_tags(text).lower())
    anchor = re.sub(r"-{2,}", "-", "-".join(words))
    return anchor.strip("-") or "section"


def highlight_code(code: str, language: str | None) -> str:
    """Highlight a code block, falling back to an escaped ``<pre>`` block.

    Args:
        code: Source code.
        language: Language hint from the code fence (e.g. ``java``, ``xml``).

    Returns:
        HTML for the block.
    """
    words = (language or "").split()
    lang = words[0] if words else ""
    if lang:
        try:
            lexer = get_lexer_by_name(lang, stripall=True)
        except ClassNotFound:
            lexer = None
        if lexer is not None:
            formatter = HtmlFormatter(cssclass="highlight")
            return highlight(code, lexer, formatter)
    lang_class = f' class="language-{html.escape(lang)}"' if lang else ""
    return f"<pre><code{lang_class}>{html.escape(code, quote=False)}</code></pre>\n"


class _PostHTMLRenderer(mistune.HTMLRenderer):
    """mistune renderer adding heading anchors and Pygments highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self.headings: list[Heading] = []
        self._issued: set[str] = set()

    def _unique_anchor(self, text: str) -> str:
        base = anchor_for(text)
        anchor, n = base, 0
        while anchor in self._issued:
            n += 1
            anchor = f"{base}-{n}"
        self._issued.add(anchor)
        return anchor

    def heading(self, text: str, level: int, **attrs) -> str:
        anchor = self._unique_anchor(text)
        self.headings.append(Heading(id=anchor, text=text, level=level))
        return f'<h{level} id="{anchor}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        return highlight_code(code, info)


class MarkdownRenderer:
    """Renders Markdown post bodies to HTML."""

    def render(self, source: str) -> tuple[str, list[Heading]]:
        """Render Markdown to HTML.

        A fresh mistune instance is created per call so heading ids never
        leak between posts.

        Args:
            source: Markdown text.

        Returns:
            Tuple of (HTML, headings in document order).
        """
        renderer = _PostHTMLRenderer()
        markdown = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
        return markdown(source), renderer.headings


default_renderer = MarkdownRenderer()
