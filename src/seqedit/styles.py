from __future__ import annotations

import re

from .types import BoxStyle, Directive, Document, LineStyle, Message

# ============================================================================
# Text metrics -- character-count width estimates.
#
# Labels may carry inline markup (**bold**, //italic//) and literal "\n"
# line breaks. Widths are measured on the stripped text, one line at a time.
# ============================================================================

_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"//(.*?)//")

# Literal backslash-n sequence as written in the source text
LINE_BREAK = "\\n"


def strip_markup(text: str) -> str:
    """Remove bold/italic markers, keeping their content."""
    text = _BOLD_RE.sub(r"\1", text)
    return _ITALIC_RE.sub(r"\1", text)


def split_lines(text: str) -> list[str]:
    """Split on literal "\\n" escapes and real newlines."""
    if not text:
        return [""]
    return text.replace(LINE_BREAK, "\n").split("\n")


def line_count(text: str) -> int:
    return len(split_lines(text))


def longest_line_length(text: str) -> int:
    """Character count of the longest line after markup is stripped."""
    return max(len(strip_markup(line)) for line in split_lines(text))


def estimate_text_width(text: str, char_width: float) -> float:
    """Width in px of the widest line at a uniform per-character width."""
    return longest_line_length(text) * char_width


# ============================================================================
# Style resolution -- named ("style NAME ...") and type ("messagestyle") styles
# ============================================================================


def find_named_style(document: Document, name: str) -> Directive | None:
    """The first "style" definition called `name`."""
    for node, _ in document.walk():
        if isinstance(node, Directive) and node.directive_type == "style" and node.name == name:
            return node
    return None


def resolve_message_style(document: Document, message: Message) -> LineStyle | None:
    """Effective stroke style for a message.

    An explicit style wins over the document's "messagestyle". A ##name
    reference resolves through the matching definition (its fill, else its
    border, is the line colour); an unknown name means the default style.
    """
    style = message.style
    if style is None:
        default = document.find_directive("messagestyle")
        return default.line_style if default is not None else None
    if style.style_name is None:
        return style
    definition = find_named_style(document, style.style_name)
    if definition is None:
        return None
    box = definition.style or BoxStyle()
    return LineStyle(
        color=box.fill or box.border, width=box.border_width, line_style=box.border_style
    )
