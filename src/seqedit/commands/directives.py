from __future__ import annotations

import dataclasses
from typing import Any

from ..ids import IdGenerator, default_generator
from ..types import TOP_LEVEL, Directive, Document
from .base import Command
from .structure import declaration_index, with_free_id


class SetDirectiveCommand(Command):
    """Sets a document-level directive value.

    Updates the first directive of that type if one exists; otherwise inserts
    a new one after the participant declarations (a title goes first).
    """

    def __init__(self, directive_type: str, value: Any, ids: IdGenerator | None = None) -> None:
        super().__init__(f"Set {directive_type}")
        self.directive_type = directive_type
        self.value = value
        self.ids = ids or default_generator()
        self._new_directive = Directive(
            id=self.ids.next_id("directive"), directive_type=directive_type, value=value
        )
        self._previous: Directive | None = None
        self._inserted = False

    def apply(self, document: Document) -> Document:
        self._previous = document.find_directive(self.directive_type)
        self._inserted = self._previous is None
        if self._previous is not None:
            return document.with_node(dataclasses.replace(self._previous, value=self.value))
        index = 0 if self.directive_type == "title" else declaration_index(document)
        self._new_directive = with_free_id(self._new_directive, document, self.ids)
        return document.insert(TOP_LEVEL, index, self._new_directive)

    def invert(self, document: Document) -> Document:
        if self._inserted:
            return document.remove(self._new_directive.id)
        if self._previous is not None and document.get(self._previous.id) is not None:
            return document.with_node(self._previous)
        return document


class ChangeEntrySpacingCommand(SetDirectiveCommand):
    def __init__(self, value: float, ids: IdGenerator | None = None) -> None:
        super().__init__("entryspacing", value, ids=ids)
        self.description = f"Change entry spacing to {value}"
