from __future__ import annotations

import dataclasses
from typing import Any

from ..types import Directive, Divider, Document, Fragment, Message, Node, Note, Participant
from .base import Command

# ============================================================================
# Property edit commands
#
# Each edit captures the previous value when applied, so invert restores it
# exactly. A missing or mistyped target makes the command a no-op.
# ============================================================================

_UNSET = object()


class _FieldEditCommand(Command):
    """Replaces one field of one node."""

    node_class: type = object
    field_name: str = ""

    def __init__(self, description: str, node_id: str, new_value: Any) -> None:
        super().__init__(description)
        self.node_id = node_id
        self.new_value = new_value
        self._old_value: Any = _UNSET

    def apply(self, document: Document) -> Document:
        node = document.get(self.node_id)
        if not isinstance(node, self.node_class):
            self._old_value = _UNSET
            return document
        self._old_value = getattr(node, self.field_name)
        return document.with_node(dataclasses.replace(node, **{self.field_name: self.new_value}))

    def invert(self, document: Document) -> Document:
        node = document.get(self.node_id)
        if self._old_value is _UNSET or not isinstance(node, self.node_class):
            return document
        return document.with_node(dataclasses.replace(node, **{self.field_name: self._old_value}))


class EditMessageLabelCommand(_FieldEditCommand):
    node_class = Message
    field_name = "label"

    def __init__(self, message_id: str, new_label: str) -> None:
        super().__init__("Edit message label", message_id, new_label)


class EditNoteTextCommand(_FieldEditCommand):
    node_class = Note
    field_name = "text"

    def __init__(self, note_id: str, new_text: str) -> None:
        super().__init__("Edit note text", note_id, new_text)


class EditDividerTextCommand(_FieldEditCommand):
    node_class = Divider
    field_name = "text"

    def __init__(self, divider_id: str, new_text: str) -> None:
        super().__init__("Edit divider text", divider_id, new_text)


class EditFragmentConditionCommand(_FieldEditCommand):
    node_class = Fragment
    field_name = "condition"

    def __init__(self, fragment_id: str, new_condition: str) -> None:
        super().__init__("Edit fragment condition", fragment_id, new_condition)


class MoveMessageSourceCommand(_FieldEditCommand):
    node_class = Message
    field_name = "from_"

    def __init__(self, message_id: str, new_source: str) -> None:
        super().__init__(f"Move message source to {new_source}", message_id, new_source)


class MoveMessageTargetCommand(_FieldEditCommand):
    node_class = Message
    field_name = "to"

    def __init__(self, message_id: str, new_target: str) -> None:
        super().__init__(f"Move message target to {new_target}", message_id, new_target)


class EditElseConditionCommand(Command):
    def __init__(self, fragment_id: str, clause_index: int, new_condition: str) -> None:
        super().__init__("Edit else condition")
        self.fragment_id = fragment_id
        self.clause_index = clause_index
        self.new_condition = new_condition
        self._old_condition: str | None = None

    def _set(self, document: Document, condition: str) -> Document:
        fragment = document.get(self.fragment_id)
        clauses = list(fragment.else_clauses)
        clauses[self.clause_index] = dataclasses.replace(
            clauses[self.clause_index], condition=condition
        )
        return document.with_node(dataclasses.replace(fragment, else_clauses=tuple(clauses)))

    def _clause_exists(self, document: Document) -> bool:
        fragment = document.get(self.fragment_id)
        return isinstance(fragment, Fragment) and 0 <= self.clause_index < len(fragment.else_clauses)

    def apply(self, document: Document) -> Document:
        self._old_condition = None
        if not self._clause_exists(document):
            return document
        self._old_condition = document.get(self.fragment_id).else_clauses[self.clause_index].condition
        return self._set(document, self.new_condition)

    def invert(self, document: Document) -> Document:
        if self._old_condition is None or not self._clause_exists(document):
            return document
        return self._set(document, self._old_condition)


class MoveNoteToParticipantCommand(Command):
    """Re-anchors a note by replacing its first participant."""

    def __init__(self, note_id: str, new_participant: str) -> None:
        super().__init__(f"Move note to {new_participant}")
        self.note_id = note_id
        self.new_participant = new_participant
        self._old_participants: tuple[str, ...] | None = None

    def apply(self, document: Document) -> Document:
        note = document.get(self.note_id)
        if not isinstance(note, Note) or not note.participants:
            self._old_participants = None
            return document
        self._old_participants = note.participants
        participants = (self.new_participant,) + note.participants[1:]
        return document.with_node(dataclasses.replace(note, participants=participants))

    def invert(self, document: Document) -> Document:
        note = document.get(self.note_id)
        if self._old_participants is None or not isinstance(note, Note):
            return document
        return document.with_node(dataclasses.replace(note, participants=self._old_participants))


class EditParticipantCommand(Command):
    """Renames a participant.

    A changed alias is rewritten in every message endpoint, note anchor and
    directive that referenced the old alias, at any depth.
    """

    def __init__(
        self,
        participant_id: str,
        new_display_name: str | None = None,
        new_alias: str | None = None,
    ) -> None:
        super().__init__("Edit participant")
        self.participant_id = participant_id
        self.new_display_name = new_display_name
        self.new_alias = new_alias
        # Original versions of every node touched by apply
        self._originals: dict[str, Node] = {}

    def apply(self, document: Document) -> Document:
        self._originals = {}
        participant = document.get(self.participant_id)
        if not isinstance(participant, Participant):
            return document

        old_alias = participant.alias
        new_alias = self.new_alias or old_alias
        replacements: dict[str, Node] = {
            participant.id: dataclasses.replace(
                participant,
                alias=new_alias,
                display_name=self.new_display_name or participant.display_name,
            )
        }
        if new_alias != old_alias:
            for node in document.nodes.values():
                renamed = _rename_references(node, old_alias, new_alias)
                if renamed is not None:
                    replacements[node.id] = renamed

        self._originals = {node_id: document.nodes[node_id] for node_id in replacements}
        return document.with_nodes(replacements)

    def invert(self, document: Document) -> Document:
        if not self._originals:
            return document
        return document.with_nodes(self._originals)


def _rename_references(node: Node, old: str, new: str) -> Node | None:
    """Copy of `node` with alias `old` replaced by `new`, or None if it has no reference."""
    if isinstance(node, Message) and old in (node.from_, node.to):
        return dataclasses.replace(
            node,
            from_=new if node.from_ == old else node.from_,
            to=new if node.to == old else node.to,
        )
    if isinstance(node, Note) and old in node.participants:
        return dataclasses.replace(
            node, participants=tuple(new if p == old else p for p in node.participants)
        )
    if isinstance(node, Directive) and node.participant == old:
        return dataclasses.replace(node, participant=new)
    return None
