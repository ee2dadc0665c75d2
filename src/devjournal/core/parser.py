"""Markdown rendering for journal pages."""

from markdown import Markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import SimpleTagInlineProcessor


# Pattern for strikethrough: ~~text~~
# Group 2 must contain the text (SimpleTagInlineProcessor expectation)
STRIKETHROUGH_PATTERN = r"(~~)(.*?)~~"


class StrikethroughExtension(Extension):
    """Markdown extension for ~~strikethrough~~ text."""

    def extendMarkdown(self, md: Markdown) -> None:
        """Add strikethrough pattern to markdown parser."""
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(STRIKETHROUGH_PATTERN, "del"),
            "strikethrough",
            50,
        )


def create_parser() -> Markdown:
    """Create a Markdown parser close to GitHub-flavoured rendering.

    Headings get ids, single newlines become ``<br />``, output is XHTML.
    """
    return Markdown(
        extensions=[
            "extra",  # Includes: abbreviations, attr_list, def_list, fenced_code, footnotes, md_in_html, tables
            "sane_lists",
            "nl2br",  # Hard wraps
            "toc",  # Heading ids and table of contents
            "pymdownx.tasklist",
            StrikethroughExtension(),
        ],
        output_format="xhtml",
    )


def render_markdown(content: str) -> str:
    """Render page markdown to HTML."""
    return create_parser().convert(content)


def render_markdown_with_toc(content: str) -> tuple[str, str]:
    """Render page markdown and return ``(html, toc_html)``.

    ``toc_html`` is empty when the page has no headings.
    """
    parser = create_parser()
    html = parser.convert(content)
    toc_html = getattr(parser, "toc", "")
    if not getattr(parser, "toc_tokens", None):
        toc_html = ""
    return html, toc_html
