from __future__ import annotations

import dataclasses

from ..ids import IdGenerator, default_generator
from ..types import (
    TOP_LEVEL,
    ArrowType,
    Directive,
    Document,
    FragmentType,
    Fragment,
    Message,
    Node,
    Participant,
    ParticipantGroup,
    ParticipantType,
    Slot,
)
from .base import Command

# ============================================================================
# Structural commands: add, remove, reorder and replace nodes
# ============================================================================


def declaration_index(document: Document) -> int:
    """Top-level index just after the participant declarations.

    Falls back to just after a leading title, then to the top of the document.
    """
    last = -1
    for i, node in enumerate(document.top_level()):
        if isinstance(node, (Participant, ParticipantGroup)):
            last = i
    if last >= 0:
        return last + 1
    for i, node in enumerate(document.top_level()):
        if isinstance(node, Directive) and node.directive_type == "title":
            return i + 1
    return 0


def with_free_id(node: Node, document: Document, ids: IdGenerator) -> Node:
    """`node`, re-keyed to an unused id if its id is already taken in `document`."""
    if node.id not in document.nodes:
        return node
    return dataclasses.replace(node, id=ids.unused_id(node.type, document.nodes))


class _InsertNodeCommand(Command):
    """Inserts a node built once, at construction, so redo restores the same id.

    The id is only replaced when the target document already uses it.
    """

    def __init__(
        self,
        description: str,
        node: Node,
        insert_index: int,
        slot: Slot,
        ids: IdGenerator,
    ) -> None:
        super().__init__(description)
        self.node = node
        self.insert_index = insert_index
        self.slot = slot
        self.ids = ids

    def _index(self, document: Document) -> int:
        return self.insert_index

    def apply(self, document: Document) -> Document:
        self.node = with_free_id(self.node, document, self.ids)
        return document.insert(self.slot, self._index(document), self.node)

    def invert(self, document: Document) -> Document:
        return document.remove(self.node.id)


class AddParticipantCommand(_InsertNodeCommand):
    def __init__(
        self,
        participant_type: ParticipantType,
        alias: str,
        display_name: str | None = None,
        insert_index: int = -1,
        ids: IdGenerator | None = None,
    ) -> None:
        ids = ids or default_generator()
        participant = Participant(
            id=ids.next_id("participant"),
            participant_type=participant_type,
            alias=alias,
            display_name=display_name or alias,
        )
        super().__init__(f"Add participant {alias}", participant, insert_index, TOP_LEVEL, ids)

    def _index(self, document: Document) -> int:
        if self.insert_index < 0:
            return declaration_index(document)
        return self.insert_index


class AddMessageCommand(_InsertNodeCommand):
    def __init__(
        self,
        from_: str,
        to: str,
        label: str,
        arrow_type: ArrowType = "->",
        insert_index: int = -1,
        slot: Slot | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        ids = ids or default_generator()
        message = Message(
            id=ids.next_id("message"), from_=from_, to=to, arrow_type=arrow_type, label=label
        )
        super().__init__(
            f"Add message {from_} {arrow_type} {to}",
            message,
            insert_index,
            slot or TOP_LEVEL,
            ids,
        )


class AddFragmentCommand(_InsertNodeCommand):
    def __init__(
        self,
        fragment_type: FragmentType,
        condition: str = "",
        insert_index: int = -1,
        slot: Slot | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        ids = ids or default_generator()
        fragment = Fragment(
            id=ids.next_id("fragment"), fragment_type=fragment_type, condition=condition
        )
        super().__init__(
            f"Add {fragment_type} fragment", fragment, insert_index, slot or TOP_LEVEL, ids
        )


class RemoveNodeCommand(Command):
    """Removes a node (a fragment together with everything inside it)."""

    def __init__(self, node_id: str) -> None:
        super().__init__("Remove node")
        self.node_id = node_id
        self._removed: tuple[Slot, int, dict[str, Node]] | None = None

    def apply(self, document: Document) -> Document:
        located = document.locate(self.node_id)
        if located is None:
            self._removed = None
            return document
        slot, index = located
        self._removed = (slot, index, document.subtree(self.node_id))
        return document.remove(self.node_id)

    def invert(self, document: Document) -> Document:
        if self._removed is None:
            return document
        slot, index, subtree = self._removed
        return document.insert(slot, index, subtree[self.node_id], subtree)


def _move_within(document: Document, node_id: str, new_index: int) -> tuple[Document, int] | None:
    """Move a node inside its own container; returns (document, old index)."""
    located = document.locate(node_id)
    if located is None:
        return None
    slot, old_index = located
    entries = list(document.entries_at(slot) or ())
    new_index = max(0, min(new_index, len(entries) - 1))
    entries.pop(old_index)
    entries.insert(new_index, node_id)
    return document.with_entries(slot, tuple(entries)), old_index


class ReorderNodeCommand(Command):
    def __init__(self, node_id: str, new_index: int) -> None:
        super().__init__("Reorder node")
        self.node_id = node_id
        self.new_index = new_index
        self._old_index: int | None = None

    def _accepts(self, document: Document) -> bool:
        return document.get(self.node_id) is not None

    def apply(self, document: Document) -> Document:
        self._old_index = None
        if not self._accepts(document):
            return document
        moved = _move_within(document, self.node_id, self.new_index)
        if moved is None:
            return document
        document, self._old_index = moved
        return document

    def invert(self, document: Document) -> Document:
        if self._old_index is None:
            return document
        moved = _move_within(document, self.node_id, self._old_index)
        return document if moved is None else moved[0]


class ReorderParticipantCommand(ReorderNodeCommand):
    """Moves a top-level participant declaration to a new top-level index."""

    def __init__(self, participant_id: str, new_index: int) -> None:
        super().__init__(participant_id, new_index)
        self.description = "Reorder participant"

    def _accepts(self, document: Document) -> bool:
        return (
            isinstance(document.get(self.node_id), Participant)
            and self.node_id in document.order
        )


class ReplaceDocumentCommand(Command):
    """Swaps in a freshly parsed document after a text edit."""

    def __init__(self, old: Document, new: Document, old_text: str, new_text: str) -> None:
        super().__init__("Edit text")
        self.old = old
        self.new = new
        self.old_text = old_text
        self.new_text = new_text

    def apply(self, document: Document) -> Document:
        return self.new

    def invert(self, document: Document) -> Document:
        return self.old
