from __future__ import annotations

import itertools
from collections.abc import Container, Iterator

# ============================================================================
# Node id generation
#
# Ids are "{prefix}_{n}" with one monotonic counter per node type. A shared
# default generator keeps ids unique for the lifetime of the process; pass a
# fresh IdGenerator to get reproducible ids (e.g. in tests).
# ============================================================================

TYPE_PREFIXES = {
    "participant": "p",
    "message": "m",
    "fragment": "f",
    "note": "n",
    "divider": "div",
    "comment": "c",
    "blankline": "bl",
    "directive": "d",
    "error": "e",
    "participantgroup": "pg",
}

# Prefix used for node types without a registered prefix
FALLBACK_PREFIX = "x"


class IdGenerator:
    """Issues type-prefixed ids from per-type counters starting at `start`."""

    def __init__(self, start: int = 1) -> None:
        self.start = start
        self._counters: dict[str, Iterator[int]] = {}

    def next_id(self, node_type: str) -> str:
        prefix = TYPE_PREFIXES.get(node_type, FALLBACK_PREFIX)
        counter = self._counters.setdefault(prefix, itertools.count(self.start))
        return f"{prefix}_{next(counter)}"

    def unused_id(self, node_type: str, taken: Container[str]) -> str:
        """Next id for `node_type` that is not in `taken`."""
        node_id = self.next_id(node_type)
        while node_id in taken:
            node_id = self.next_id(node_type)
        return node_id


_default_generator = IdGenerator()


def default_generator() -> IdGenerator:
    return _default_generator


def generate_id(node_type: str) -> str:
    """Return a fresh id for a node of the given type from the shared generator."""
    return _default_generator.next_id(node_type)
