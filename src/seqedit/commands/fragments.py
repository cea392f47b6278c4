from __future__ import annotations

import dataclasses
from typing import Literal

from ..types import Document, Fragment, Message
from .base import Command

# ============================================================================
# Fragment commands: boundary drags, clause transfers, expand/collapse
#
# Moves are clamped to what is available; the count actually moved is
# recorded so invert performs the exact opposite move.
# ============================================================================

Boundary = Literal["top", "bottom"]


class AdjustFragmentBoundaryCommand(Command):
    """Drags a fragment's top or bottom edge over neighbouring entries.

    A positive delta pulls adjacent sibling messages into the fragment; a
    negative delta pushes the fragment's first (top) or last (bottom) entries
    out into its container.
    """

    def __init__(self, fragment_id: str, boundary: Boundary, delta: int) -> None:
        if boundary not in ("top", "bottom"):
            raise ValueError(f"boundary must be 'top' or 'bottom', got {boundary!r}")
        super().__init__(f"Adjust fragment {boundary} boundary")
        self.fragment_id = fragment_id
        self.boundary = boundary
        self.delta = delta
        self.moved = 0

    def apply(self, document: Document) -> Document:
        self.moved = 0
        fragment = document.get(self.fragment_id)
        located = document.locate(self.fragment_id)
        if not isinstance(fragment, Fragment) or located is None:
            return document
        slot, index = located
        siblings = document.entries_at(slot) or ()

        if self.delta > 0:
            if self.boundary == "top":
                candidates = reversed(siblings[:index])
            else:
                candidates = iter(siblings[index + 1:])
            # Only a contiguous run of messages next to the fragment is pulled in
            for sibling_id in candidates:
                if self.moved >= self.delta or not isinstance(document.get(sibling_id), Message):
                    break
                self.moved += 1
        elif self.delta < 0:
            self.moved = -min(-self.delta, len(fragment.entries))

        return _shift_boundary(document, self.fragment_id, self.boundary, self.moved)

    def invert(self, document: Document) -> Document:
        return _shift_boundary(document, self.fragment_id, self.boundary, -self.moved)


def _shift_boundary(document: Document, fragment_id: str, boundary: Boundary, count: int) -> Document:
    """Move `count` entries across a fragment edge without any checks beyond bounds."""
    fragment = document.get(fragment_id)
    located = document.locate(fragment_id)
    if count == 0 or not isinstance(fragment, Fragment) or located is None:
        return document
    slot, index = located
    siblings = list(document.entries_at(slot) or ())
    entries = list(fragment.entries)

    if boundary == "top":
        if count > 0:
            start = max(0, index - count)
            entries = siblings[start:index] + entries
            del siblings[start:index]
        else:
            siblings[index:index] = entries[:-count]
            entries = entries[-count:]
    else:
        if count > 0:
            entries = entries + siblings[index + 1:index + 1 + count]
            del siblings[index + 1:index + 1 + count]
        else:
            siblings[index + 1:index + 1] = entries[count:]
            entries = entries[:count]

    document = document.with_node(dataclasses.replace(fragment, entries=tuple(entries)))
    return document.with_entries(slot, tuple(siblings))


class MoveEntryBetweenClausesCommand(Command):
    """Shifts the border between a fragment's primary section and an else clause.

    A positive delta moves the last entries of the primary section to the front
    of the clause; a negative delta moves the clause's first entries to the end
    of the primary section.
    """

    def __init__(self, fragment_id: str, clause_index: int, delta: int) -> None:
        super().__init__("Move entries between clauses")
        self.fragment_id = fragment_id
        self.clause_index = clause_index
        self.delta = delta
        self.moved = 0

    def apply(self, document: Document) -> Document:
        self.moved = 0
        fragment = document.get(self.fragment_id)
        if not isinstance(fragment, Fragment) or not (
            0 <= self.clause_index < len(fragment.else_clauses)
        ):
            return document
        clause = fragment.else_clauses[self.clause_index]
        if self.delta > 0:
            self.moved = min(self.delta, len(fragment.entries))
        elif self.delta < 0:
            self.moved = -min(-self.delta, len(clause.entries))
        return self._transfer(document, self.moved)

    def invert(self, document: Document) -> Document:
        return self._transfer(document, -self.moved)

    def _transfer(self, document: Document, count: int) -> Document:
        fragment = document.get(self.fragment_id)
        if count == 0 or not isinstance(fragment, Fragment):
            return document
        clauses = list(fragment.else_clauses)
        clause = clauses[self.clause_index]
        if count > 0:
            entries = fragment.entries[:-count]
            clause_entries = fragment.entries[-count:] + clause.entries
        else:
            entries = fragment.entries + clause.entries[:-count]
            clause_entries = clause.entries[-count:]
        clauses[self.clause_index] = dataclasses.replace(clause, entries=clause_entries)
        return document.with_node(
            dataclasses.replace(fragment, entries=entries, else_clauses=tuple(clauses))
        )


class ToggleExpandableCommand(Command):
    def __init__(self, fragment_id: str) -> None:
        super().__init__("Toggle expandable")
        self.fragment_id = fragment_id
        self._toggled = False

    def _toggle(self, document: Document) -> Document:
        fragment = document.get(self.fragment_id)
        return document.with_node(dataclasses.replace(fragment, collapsed=not fragment.collapsed))

    def apply(self, document: Document) -> Document:
        fragment = document.get(self.fragment_id)
        self._toggled = isinstance(fragment, Fragment) and fragment.fragment_type == "expandable"
        return self._toggle(document) if self._toggled else document

    def invert(self, document: Document) -> Document:
        if not self._toggled or not isinstance(document.get(self.fragment_id), Fragment):
            return document
        return self._toggle(document)
