"""seqedit -- Parse, lay out and edit text-defined sequence diagrams."""

from __future__ import annotations

from .types import (
    Document,
    Node,
    Participant,
    Message,
    Fragment,
    ElseClause,
    Note,
    Divider,
    Directive,
    ParticipantGroup,
    Comment,
    BlankLine,
    Error,
    BoxStyle,
    LineStyle,
    Slot,
    TOP_LEVEL,
    DiagramLayout,
    LayoutOptions,
)
from .ids import IdGenerator, generate_id
from .parser import parse
from .layout import layout_document, SEQ
from .commands import Command, History

__all__ = [
    "parse",
    "layout_document",
    "layout_text",
    "generate_id",
    "IdGenerator",
    "SEQ",
    "Document",
    "Node",
    "Participant",
    "Message",
    "Fragment",
    "ElseClause",
    "Note",
    "Divider",
    "Directive",
    "ParticipantGroup",
    "Comment",
    "BlankLine",
    "Error",
    "BoxStyle",
    "LineStyle",
    "Slot",
    "TOP_LEVEL",
    "DiagramLayout",
    "LayoutOptions",
    "Command",
    "History",
]


def layout_text(
    text: str,
    options: LayoutOptions | None = None,
) -> tuple[Document, DiagramLayout]:
    """Parse diagram source and lay it out in one step."""
    document = parse(text)
    return document, layout_document(document, options)
