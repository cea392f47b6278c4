from __future__ import annotations

import logging
from collections import deque

from ..types import Document

# ============================================================================
# Reversible commands and bounded undo/redo history
#
# A Command turns one Document into another and can turn the result back:
# command.invert(command.apply(d)) == d. History keeps the executed commands
# (not snapshots) on two bounded stacks.
# ============================================================================

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class Command:
    """Base class for reversible document edits."""

    def __init__(self, description: str) -> None:
        self.description = description

    def apply(self, document: Document) -> Document:
        raise NotImplementedError(f"{type(self).__name__} does not implement apply()")

    def invert(self, document: Document) -> Document:
        raise NotImplementedError(f"{type(self).__name__} does not implement invert()")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"


class History:
    """Undo and redo stacks of executed commands.

    Executing a command clears the redo stack; once `capacity` commands are
    held, the oldest is evicted.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._undo: deque[Command] = deque(maxlen=capacity)
        self._redo: deque[Command] = deque(maxlen=capacity)

    def execute(self, command: Command, document: Document) -> Document:
        result = command.apply(document)
        self._undo.append(command)
        self._redo.clear()
        logger.debug("execute: %s", command.description)
        return result

    def undo(self, document: Document) -> Document:
        """Revert the most recent command; unchanged if there is nothing to undo."""
        if not self._undo:
            return document
        command = self._undo.pop()
        self._redo.append(command)
        logger.debug("undo: %s", command.description)
        return command.invert(document)

    def redo(self, document: Document) -> Document:
        """Re-apply the most recently undone command; unchanged if there is none."""
        if not self._redo:
            return document
        command = self._redo.pop()
        self._undo.append(command)
        logger.debug("redo: %s", command.description)
        return command.apply(document)

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo) > 0

    @property
    def undo_description(self) -> str | None:
        return self._undo[-1].description if self._undo else None

    @property
    def redo_description(self) -> str | None:
        return self._redo[-1].description if self._redo else None

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def info(self) -> dict:
        """Stack sizes and availability flags."""
        return {
            "undo_count": len(self._undo),
            "redo_count": len(self._redo),
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "capacity": self.capacity,
        }
