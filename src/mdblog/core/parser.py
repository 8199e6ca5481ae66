"""Markdown rendering for post bodies."""

import hashlib
import html
import re

from markdown import Markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import SimpleTagInlineProcessor
from markdown.postprocessors import Postprocessor
from markdown.preprocessors import Preprocessor


# Pattern for strikethrough: ~~text~~
# Group 2 must contain the text (SimpleTagInlineProcessor expectation)
STRIKETHROUGH_PATTERN = r"(~~)(.*?)~~"

# Any fenced block, with the same fence rules as fenced_code. Blocks are
# matched outermost first, so a fence nested in a longer one stays code.
FENCED_BLOCK_PATTERN = re.compile(
    r"^(?P<fence>`{3,}|~{3,})(?P<info>[^\n]*)\n"
    r"(?P<code>.*?)(?<=\n)"
    r"(?P=fence)[ ]*$",
    re.MULTILINE | re.DOTALL,
)

MERMAID_INFO_PATTERN = re.compile(r"^[ ]*\{?\.?mermaid\}?[ ]*$", re.IGNORECASE)

# Fenced code output from the fenced_code extension (no codehilite)
CODE_BLOCK_PATTERN = re.compile(
    r'<pre><code class="language-([^"]+)">(.*?)</code></pre>',
    re.DOTALL,
)

IFRAME_PATTERN = re.compile(r"<iframe\b[^>]*?(?:/>|>.*?</iframe>)", re.DOTALL | re.IGNORECASE)


def mermaid_anchor_id(source: str, ordinal: int) -> str:
    """Stable DOM id for a diagram: same source and position, same id."""
    digest = hashlib.sha1(source.encode("utf-8")).hexdigest()[:10]
    return f"mermaid-{digest}-{ordinal}"


class StrikethroughExtension(Extension):
    """Markdown extension for ~~strikethrough~~ text."""

    def extendMarkdown(self, md: Markdown) -> None:
        """Add strikethrough pattern to markdown parser."""
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(STRIKETHROUGH_PATTERN, "del"),
            "strikethrough",
            50,
        )


class MermaidPreprocessor(Preprocessor):
    """Replace ```mermaid fences with diagram containers before fenced_code sees them."""

    def run(self, lines: list[str]) -> list[str]:
        text = "\n".join(lines)
        if "mermaid" not in text.lower():
            return lines

        ordinal = 0

        def replace(m: re.Match) -> str:
            nonlocal ordinal
            if not MERMAID_INFO_PATTERN.match(m.group("info")):
                return m.group(0)
            source = m.group("code").rstrip("\n")
            anchor = mermaid_anchor_id(source, ordinal)
            ordinal += 1
            block = (
                f'<div class="mermaid-diagram" id="{anchor}">'
                f'<pre class="mermaid">{html.escape(source, quote=False)}</pre>'
                "</div>"
            )
            return f"\n{self.md.htmlStash.store(block)}\n"

        return FENCED_BLOCK_PATTERN.sub(replace, text).split("\n")


class MermaidExtension(Extension):
    """Markdown extension rendering ```mermaid fences as client-side diagrams."""

    def extendMarkdown(self, md: Markdown) -> None:
        # Must run before fenced_code (priority 25)
        md.preprocessors.register(MermaidPreprocessor(md), "mermaid", 30)


class CodeBlockPostprocessor(Postprocessor):
    """Wrap fenced code blocks with a language label and a copy button."""

    def run(self, text: str) -> str:
        counter = 0

        def wrap(m: re.Match) -> str:
            nonlocal counter
            counter += 1
            lang = m.group(1)
            return (
                f'<div class="code-block" data-block-id="code-{counter}">'
                '<div class="code-block-header">'
                f'<span class="code-lang">{lang}</span>'
                '<button type="button" class="code-copy" data-copied="false">Copy</button>'
                "</div>"
                f"{m.group(0)}"
                "</div>"
            )

        return CODE_BLOCK_PATTERN.sub(wrap, text)


class CodeBlockExtension(Extension):
    """Markdown extension adding headers to fenced code blocks."""

    def extendMarkdown(self, md: Markdown) -> None:
        # After raw HTML (and stashed fenced code) is restored at priority 30
        md.postprocessors.register(CodeBlockPostprocessor(md), "code_block", 25)


class ResponsiveEmbedPostprocessor(Postprocessor):
    """Wrap iframes in a fixed aspect ratio container."""

    def run(self, text: str) -> str:
        return IFRAME_PATTERN.sub(
            lambda m: f'<div class="embed-responsive">{m.group(0)}</div>', text
        )


class ResponsiveEmbedExtension(Extension):
    """Markdown extension for responsive <iframe> embeds."""

    def extendMarkdown(self, md: Markdown) -> None:
        md.postprocessors.register(ResponsiveEmbedPostprocessor(md), "responsive_embed", 24)


def create_parser() -> Markdown:
    """Create a Markdown parser configured for blog posts.

    Raw HTML in post bodies is passed through untouched: posts are
    written by the site owner, so this is not a sanitization boundary.

    Returns:
        Configured Markdown parser instance.
    """
    return Markdown(
        extensions=[
            # Core formatting
            "extra",  # Includes: abbreviations, attr_list, def_list, fenced_code, footnotes, md_in_html, tables
            "sane_lists",  # Better list handling
            "smarty",  # Smart quotes and dashes
            "toc",  # Table of contents
            # PyMdown extensions
            "pymdownx.tasklist",  # Task lists with checkboxes
            # Custom extensions
            StrikethroughExtension(),  # ~~strikethrough~~
            MermaidExtension(),  # ```mermaid diagrams
            CodeBlockExtension(),  # language label + copy button
            ResponsiveEmbedExtension(),  # <iframe> wrapper
        ]
    )


def render_markdown(content: str) -> str:
    """Render a post body to HTML.

    Args:
        content: Markdown body (no frontmatter).

    Returns:
        HTML string.
    """
    parser = create_parser()
    return parser.convert(content)


def render_markdown_with_toc(content: str) -> tuple[str, str]:
    """Render a post body and return HTML with table of contents.

    Args:
        content: Markdown body (no frontmatter).

    Returns:
        Tuple of (html_content, toc_html).
    """
    parser = create_parser()
    html_content = parser.convert(content)
    toc_html = getattr(parser, "toc", "")
    return html_content, toc_html


def extract_mermaid_blocks(content: str) -> list[str]:
    """Extract the source of every mermaid diagram in a post body.

    Args:
        content: Markdown body.

    Returns:
        Diagram sources in document order.
    """
    return [
        m.group("code").rstrip("\n")
        for m in FENCED_BLOCK_PATTERN.finditer(content)
        if MERMAID_INFO_PATTERN.match(m.group("info"))
    ]
