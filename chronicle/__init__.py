"""Chronicle static blog generator.

Chronicle turns a directory of dated Markdown posts into a static website.
Posts follow the ``YYYY-MM-DD-title-slug.md`` naming convention and start with
a YAML front-matter block (``layout``, ``title``, ``comments``, ``github``,
``crosspost_to_medium``). Bodies are rendered with mistune, code blocks are
highlighted with Pygments and pages are laid out with Jinja2 templates.

The CLI module is the main entry point. It provides commands for scaffolding a
blog, building it, serving it with live reload, checking that every post builds
cleanly and cross-posting flagged posts to Medium.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
