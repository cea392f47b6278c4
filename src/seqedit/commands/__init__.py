from .base import Command, History, DEFAULT_CAPACITY
from .structure import (
    AddParticipantCommand,
    AddMessageCommand,
    AddFragmentCommand,
    RemoveNodeCommand,
    ReorderNodeCommand,
    ReorderParticipantCommand,
    ReplaceDocumentCommand,
)
from .edit import (
    EditMessageLabelCommand,
    EditNoteTextCommand,
    EditDividerTextCommand,
    EditFragmentConditionCommand,
    EditElseConditionCommand,
    MoveMessageSourceCommand,
    MoveMessageTargetCommand,
    MoveNoteToParticipantCommand,
    EditParticipantCommand,
)
from .fragments import (
    AdjustFragmentBoundaryCommand,
    MoveEntryBetweenClausesCommand,
    ToggleExpandableCommand,
)
from .directives import SetDirectiveCommand, ChangeEntrySpacingCommand

__all__ = [
    "Command",
    "History",
    "DEFAULT_CAPACITY",
    "AddParticipantCommand",
    "AddMessageCommand",
    "AddFragmentCommand",
    "RemoveNodeCommand",
    "ReorderNodeCommand",
    "ReorderParticipantCommand",
    "ReplaceDocumentCommand",
    "EditMessageLabelCommand",
    "EditNoteTextCommand",
    "EditDividerTextCommand",
    "EditFragmentConditionCommand",
    "EditElseConditionCommand",
    "MoveMessageSourceCommand",
    "MoveMessageTargetCommand",
    "MoveNoteToParticipantCommand",
    "EditParticipantCommand",
    "AdjustFragmentBoundaryCommand",
    "MoveEntryBetweenClausesCommand",
    "ToggleExpandableCommand",
    "SetDirectiveCommand",
    "ChangeEntrySpacingCommand",
]
