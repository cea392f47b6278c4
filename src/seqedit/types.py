from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Literal, Union

# ============================================================================
# Sequence diagram document types
#
# Models the parsed document (an immutable table of nodes with containers
# referencing their children by id) and the geometry produced by layout.
# ============================================================================

# ============================================================================
# Parsed document -- node variants
# ============================================================================

ParticipantType = Literal[
    "participant",
    "rparticipant",
    "actor",
    "database",
    "boundary",
    "control",
    "entity",
    # Icon variants carry an icon code
    "fontawesome6solid",
    "fontawesome6regular",
    "fontawesome6brands",
    "materialdesignicons",
    # Carries inline image data (a data: URL)
    "image",
]

ArrowType = Literal[
    "->",     # sync
    "->>",    # async
    "-->",    # return
    "-->>",   # async return
    "<-",     # reversed sync
    "<--",    # reversed return
    "<->>",   # reversed async / bidirectional async
    "<-->>",  # reversed async return
    "<->",    # bidirectional
    "<-->",   # bidirectional dashed
    "-x",     # lost
    "--x",    # dashed lost
]

FragmentType = Literal[
    "alt", "loop", "opt", "par", "break", "critical", "ref", "seq", "strict",
    "neg", "ignore", "consider", "assert", "region", "group", "expandable",
]

NoteType = Literal["note", "box", "abox", "rbox", "ref", "state"]
NotePosition = Literal["over", "left of", "right of"]

LEFT_BOUNDARY = "["
RIGHT_BOUNDARY = "]"

# Directives that set the default style of one node kind
TYPE_STYLE_DIRECTIVES = (
    "participantstyle", "notestyle", "messagestyle", "dividerstyle",
    "boxstyle", "aboxstyle", "rboxstyle", "aboxrightstyle", "aboxleftstyle",
)


@dataclass(frozen=True, slots=True)
class BoxStyle:
    """Fill and border styling for boxes (participants, fragments, notes, dividers)."""
    fill: str | None = None
    border: str | None = None
    border_width: int | None = None
    # 'solid', 'dashed' or 'dotted'
    border_style: str | None = None
    # Fragments and frames: colour of the operator label, glued to the keyword (alt#yellow)
    operator_color: str | None = None
    # Reference to a "style NAME ..." definition (##NAME)
    style_name: str | None = None


@dataclass(frozen=True, slots=True)
class LineStyle:
    """Stroke styling for lines (messages, lifelines)."""
    color: str | None = None
    width: int | None = None
    line_style: str | None = None
    # Reference to a "style NAME ..." definition (##NAME)
    style_name: str | None = None


@dataclass(frozen=True, slots=True)
class Participant:
    type: ClassVar[str] = "participant"
    id: str
    participant_type: ParticipantType
    # Identifier used as a message/note endpoint
    alias: str
    display_name: str
    style: BoxStyle | None = None
    # Icon variants only (fontawesome / material design code point)
    icon_code: str | None = None
    # Image participants only
    image_data: str | None = None
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Message:
    type: ClassVar[str] = "message"
    id: str
    # Participant alias, or "[" for a message entering from the left edge
    from_: str
    # Participant alias, or "]" for a message leaving through the right edge
    to: str
    arrow_type: ArrowType
    label: str
    # Vertical slope magnitude from "(N)"
    delay: int | None = None
    style: LineStyle | None = None
    # Target is created by this message (A->*B or <<create>> in the label)
    is_create: bool = False
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class ElseClause:
    condition: str
    # Ids of the nodes inside this clause, in source order
    entries: tuple[str, ...] = ()
    style: BoxStyle | None = None


@dataclass(frozen=True, slots=True)
class Fragment:
    type: ClassVar[str] = "fragment"
    id: str
    fragment_type: FragmentType
    condition: str
    # Ids of the nodes in the primary section, in source order
    entries: tuple[str, ...] = ()
    else_clauses: tuple[ElseClause, ...] = ()
    style: BoxStyle | None = None
    # Expandable fragments only
    collapsed: bool = False
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Note:
    type: ClassVar[str] = "note"
    id: str
    note_type: NoteType
    position: NotePosition
    # Participant aliases the note is attached to
    participants: tuple[str, ...]
    # Raw text; a literal "\n" sequence is a line break
    text: str
    style: BoxStyle | None = None
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Divider:
    type: ClassVar[str] = "divider"
    id: str
    text: str
    style: BoxStyle | None = None
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Directive:
    type: ClassVar[str] = "directive"
    id: str
    # title, entryspacing, autonumber, space, participantspacing, lifelinestyle,
    # linear, parallel, activate, deactivate, deactivateafter, autoactivation,
    # activecolor, destroy, destroyafter, destroysilent, bottomparticipants,
    # frame, fontfamily, style and the TYPE_STYLE_DIRECTIVES
    directive_type: str
    value: Any = None
    participant: str | None = None
    color: str | None = None
    line_style: LineStyle | None = None
    # Named style definitions: the name referenced as ##name
    name: str | None = None
    # Box styling for frame, style and type style directives
    style: BoxStyle | None = None
    # Text markup applied to labels (e.g. "**<color:#red>")
    text_markup: str | None = None
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class ParticipantGroup:
    """A labelled background box around the participants declared inside it."""
    type: ClassVar[str] = "participantgroup"
    id: str
    label: str = ""
    color: str | None = None
    # Ids of the nodes declared inside the group (participants, nested groups)
    entries: tuple[str, ...] = ()
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Comment:
    type: ClassVar[str] = "comment"
    id: str
    # Full trimmed line including the "//" or "#" marker
    text: str
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class BlankLine:
    type: ClassVar[str] = "blankline"
    id: str
    source_line_start: int = 0
    source_line_end: int = 0


@dataclass(frozen=True, slots=True)
class Error:
    type: ClassVar[str] = "error"
    id: str
    # Human-readable diagnostic
    message: str
    # Offending source text
    text: str
    source_line_start: int = 0
    source_line_end: int = 0


Node = Union[
    Participant, Message, Fragment, Note, Divider, Directive, ParticipantGroup,
    Comment, BlankLine, Error,
]


def child_ids(node: Node | None) -> list[str]:
    """Ids directly inside a container node, in document order."""
    if isinstance(node, ParticipantGroup):
        return list(node.entries)
    if not isinstance(node, Fragment):
        return []
    ids = list(node.entries)
    for clause in node.else_clauses:
        ids.extend(clause.entries)
    return ids


# ============================================================================
# Document -- flat node table plus top-level order
# ============================================================================


@dataclass(frozen=True, slots=True)
class Slot:
    """Names a container of node ids.

    parent_id=None is the top level; otherwise the fragment's primary entries
    (clause=None) or its else clause at index `clause`. A participant group
    only has primary entries.
    """
    parent_id: str | None = None
    clause: int | None = None


TOP_LEVEL = Slot()


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable sequence diagram document.

    Every node lives in `nodes`; `order` lists the top-level ids and containers
    (fragments, participant groups) list their children by id. All write
    helpers return a new Document.
    """
    nodes: Mapping[str, Node] = field(default_factory=dict)
    order: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "order", tuple(self.order))

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.top_level())

    # --- Reads ---

    def get(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def top_level(self) -> list[Node]:
        return [self.nodes[node_id] for node_id in self.order]

    def entries_at(self, slot: Slot) -> tuple[str, ...] | None:
        """Ids held by a container, or None if the container does not exist."""
        if slot.parent_id is None:
            return self.order
        parent = self.nodes.get(slot.parent_id)
        if isinstance(parent, ParticipantGroup):
            return parent.entries if slot.clause is None else None
        if not isinstance(parent, Fragment):
            return None
        if slot.clause is None:
            return parent.entries
        if 0 <= slot.clause < len(parent.else_clauses):
            return parent.else_clauses[slot.clause].entries
        return None

    def children(self, node_id: str) -> list[Node]:
        """Direct children of a container: primary entries, then each else clause."""
        ids = child_ids(self.nodes.get(node_id))
        return [self.nodes[child_id] for child_id in ids if child_id in self.nodes]

    def walk(self) -> Iterator[tuple[Node, int]]:
        """Yield (node, depth) for every node in document order, depth first."""
        stack: list[tuple[str, int]] = [(node_id, 0) for node_id in reversed(self.order)]
        while stack:
            node_id, depth = stack.pop()
            node = self.nodes.get(node_id)
            if node is None:
                continue
            yield node, depth
            stack.extend(
                (child_id, depth + 1) for child_id in reversed(child_ids(node))
            )

    def locate(self, node_id: str) -> tuple[Slot, int] | None:
        """Find the container holding `node_id` and its index there."""
        if node_id in self.order:
            return TOP_LEVEL, self.order.index(node_id)
        for node in self.nodes.values():
            if isinstance(node, ParticipantGroup) and node_id in node.entries:
                return Slot(node.id), node.entries.index(node_id)
            if not isinstance(node, Fragment):
                continue
            if node_id in node.entries:
                return Slot(node.id), node.entries.index(node_id)
            for clause_index, clause in enumerate(node.else_clauses):
                if node_id in clause.entries:
                    return Slot(node.id, clause_index), clause.entries.index(node_id)
        return None

    def participants(self) -> list[Participant]:
        return [node for node, _ in self.walk() if isinstance(node, Participant)]

    def find_directive(self, directive_type: str) -> Directive | None:
        for node, _ in self.walk():
            if isinstance(node, Directive) and node.directive_type == directive_type:
                return node
        return None

    def subtree(self, node_id: str) -> dict[str, Node]:
        """The node and all of its descendants, keyed by id."""
        collected: dict[str, Node] = {}
        pending = [node_id]
        while pending:
            current = self.nodes.get(pending.pop())
            if current is None:
                continue
            collected[current.id] = current
            pending.extend(child_ids(current))
        return collected

    # --- Copy-on-write updates ---

    def with_node(self, node: Node) -> Document:
        """Replace the table entry for `node.id`."""
        return self.with_nodes({node.id: node})

    def with_nodes(self, replacements: Mapping[str, Node]) -> Document:
        nodes = dict(self.nodes)
        nodes.update(replacements)
        return Document(nodes=nodes, order=self.order)

    def with_entries(self, slot: Slot, entries: tuple[str, ...]) -> Document:
        """Replace the ids held by a container.

        Returns the document unchanged when the container does not exist.
        """
        if self.entries_at(slot) is None:
            return self
        if slot.parent_id is None:
            return Document(nodes=self.nodes, order=tuple(entries))
        parent = self.nodes[slot.parent_id]
        if isinstance(parent, ParticipantGroup) or slot.clause is None:
            updated = dataclasses.replace(parent, entries=tuple(entries))
        else:
            clauses = list(parent.else_clauses)
            clauses[slot.clause] = dataclasses.replace(
                clauses[slot.clause], entries=tuple(entries)
            )
            updated = dataclasses.replace(parent, else_clauses=tuple(clauses))
        return self.with_node(updated)

    def insert(
        self,
        slot: Slot,
        index: int,
        node: Node,
        descendants: Mapping[str, Node] | None = None,
    ) -> Document:
        """Add `node` (plus any descendants) and reference it from `slot` at `index`.

        A negative index appends. Returns the document unchanged when the
        container does not exist or an id is already taken.
        """
        entries = self.entries_at(slot)
        if entries is None:
            return self
        if node.id in self.nodes or any(key in self.nodes for key in descendants or ()):
            return self
        nodes = dict(self.nodes)
        if descendants:
            nodes.update(descendants)
        nodes[node.id] = node
        ids = list(entries)
        position = len(ids) if index < 0 else min(index, len(ids))
        ids.insert(position, node.id)
        return Document(nodes=nodes, order=self.order).with_entries(slot, tuple(ids))

    def remove(self, node_id: str) -> Document:
        """Drop a node and its descendants and unreference it from its container."""
        located = self.locate(node_id)
        if located is None:
            return self
        slot, index = located
        entries = self.entries_at(slot) or ()
        doomed = self.subtree(node_id)
        nodes = {key: value for key, value in self.nodes.items() if key not in doomed}
        remaining = Document(nodes=nodes, order=self.order)
        return remaining.with_entries(slot, entries[:index] + entries[index + 1:])


# ============================================================================
# Layout geometry -- ready for rendering
# ============================================================================


@dataclass(slots=True)
class ParticipantBox:
    alias: str
    # Left edge of the participant box
    x: float
    y: float
    width: float
    height: float
    # Lifeline x
    center_x: float


@dataclass(slots=True)
class MessageGeometry:
    # Y of the arrow line
    y: float
    from_x: float
    to_x: float
    # Vertical space consumed by the message
    height: float
    delay: int = 0
    is_boundary: bool = False
    # Undeclared aliases, centered and flagged for distinct presentation
    unknown_from: str | None = None
    unknown_to: str | None = None


@dataclass(slots=True)
class NoteGeometry:
    x: float
    y: float
    width: float
    height: float
    # Lifeline the note hangs from ('left of' / 'right of' notes)
    connector_x: float | None = None
    connector_side: Literal["left", "right"] | None = None
    unknown_participants: tuple[str, ...] = ()


@dataclass(slots=True)
class BoxGeometry:
    """Full-width boxes: dividers and error nodes."""
    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True)
class FragmentGeometry:
    x: float
    y: float
    width: float
    height: float
    # Y of each else clause divider line, in clause order
    else_dividers: list[float] = field(default_factory=list)
    collapsed: bool = False


@dataclass(slots=True)
class MarkerGeometry:
    """Activation and destroy markers anchored on a lifeline."""
    y: float
    kind: str
    participant: str | None = None


@dataclass(slots=True)
class GroupGeometry:
    """Participant group background, from its label down to the last entry."""
    x: float
    y: float
    width: float
    height: float
    label: str = ""
    # Participant aliases enclosed by the group, nested groups included
    members: tuple[str, ...] = ()


@dataclass(slots=True)
class FrameGeometry:
    """Border drawn around the whole diagram."""
    x: float
    y: float
    width: float
    height: float
    label: str = ""


Geometry = Union[
    ParticipantBox, MessageGeometry, NoteGeometry, BoxGeometry, FragmentGeometry,
    MarkerGeometry, GroupGeometry, FrameGeometry,
]


@dataclass(slots=True)
class DiagramLayout:
    # Node id -> geometry
    geometry: dict[str, Geometry] = field(default_factory=dict)
    # Participant alias -> placement
    participants: dict[str, ParticipantBox] = field(default_factory=dict)
    total_height: float = 0
    width: float = 0
    # Aliases referenced by messages/notes but never declared
    unknown_participants: list[str] = field(default_factory=list)


# ============================================================================
# Layout options -- user-facing configuration
#
# Every field overrides the layout constant of the same name when set.
# ============================================================================


@dataclass(slots=True)
class LayoutOptions:
    line_height: float | None = None
    char_width: float | None = None
    participant_char_width: float | None = None
    participant_min_width: float | None = None
    participant_padding: float | None = None
    participant_height: float | None = None
    participant_spacing: float | None = None
    participant_start_x: float | None = None
    participant_start_y: float | None = None
    collision_gap: float | None = None
    message_start_y: float | None = None
    message_spacing: float | None = None
    blankline_spacing: float | None = None
    delay_unit: float | None = None
    note_margin: float | None = None
    fragment_header_height: float | None = None
    else_label_height: float | None = None
    fragment_margin: float | None = None
    error_height: float | None = None
    divider_height: float | None = None
    group_padding: float | None = None
    group_label_height: float | None = None
    frame_inset: float | None = None
    margin: float | None = None
