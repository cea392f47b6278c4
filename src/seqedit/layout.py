from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field

from .styles import estimate_text_width, line_count
from .types import (
    LEFT_BOUNDARY,
    RIGHT_BOUNDARY,
    BoxGeometry,
    DiagramLayout,
    Directive,
    Divider,
    Document,
    Error,
    Fragment,
    FragmentGeometry,
    FrameGeometry,
    GroupGeometry,
    LayoutOptions,
    MarkerGeometry,
    Message,
    MessageGeometry,
    Note,
    NoteGeometry,
    ParticipantBox,
    ParticipantGroup,
)

# ============================================================================
# Sequence diagram layout engine
#
# Timeline layout in two passes:
#   1. Participants left to right; gaps widen to fit notes, message labels
#      and participant group borders
#   2. A vertical cursor walks the document in order, recursing into
#      fragments, and assigns every node a y position and extent
#
# Pure and deterministic: the same Document always yields the same geometry.
# References to undeclared participants are flagged, never fatal.
# ============================================================================

logger = logging.getLogger(__name__)

# Layout constants specific to sequence diagrams
SEQ = {
    "line_height": 16,
    # Character width for labels, notes and dividers
    "char_width": 7,
    # Character width for participant display names (bolder font)
    "participant_char_width": 7.5,
    "participant_min_width": 80,
    "participant_padding": 20,
    # Width used for the horizontal extent of a diagram with no participants
    "participant_width": 100,
    "participant_height": 60,
    # Default distance between consecutive participant boxes
    "participant_spacing": 150,
    "participant_start_x": 50,
    "participant_start_y": 50,
    # Extra vertical offset when the diagram has a title
    "title_height": 30,
    "collision_gap": 20,
    # Y of the first entry below the participant boxes
    "message_start_y": 150,
    "message_spacing": 50,
    # Vertical space per unit of "space N"
    "blankline_spacing": 20,
    # Vertical space per unit of message delay "(N)"
    "delay_unit": 10,
    "self_message_loop_width": 40,
    "self_message_label_gap": 5,
    "message_label_padding": 20,
    # Boundary messages start/end this far outside the outermost lifelines
    "boundary_offset": 30,
    "note_height": 28,
    "note_width": 50,
    "note_padding_h": 8,
    "note_padding_v": 6,
    "note_margin": 35,
    # Gap between a side note and the lifeline it hangs from
    "note_connector_gap": 8,
    "fragment_header_height": 45,
    "else_label_height": 35,
    "fragment_padding": 5,
    "fragment_margin": 20,
    "fragment_inset": 20,
    # Body height of a collapsed expandable fragment
    "collapsed_body_height": 10,
    "divider_height": 24,
    "divider_inset": 20,
    "error_height": 40,
    "error_inset": 10,
    "error_gap": 10,
    # Horizontal padding around grouped participants, per nesting level
    "group_padding": 10,
    # Room above the participant boxes for each level of group labels
    "group_label_height": 20,
    # Distance between the diagram frame and the canvas edge
    "frame_inset": 10,
    # Padding below the last entry (and right of the widest element)
    "margin": 50,
}


def resolve_constants(options: LayoutOptions | None = None) -> dict[str, float]:
    """Layout constants with every set option overriding its default."""
    constants = dict(SEQ)
    if options is not None:
        for f in dataclasses.fields(options):
            value = getattr(options, f.name)
            if value is not None:
                constants[f.name] = value
    return constants


def layout_document(document: Document, options: LayoutOptions | None = None) -> DiagramLayout:
    """Lay out a parsed document.

    Returns geometry keyed by node id, ready for rendering.
    """
    seq = resolve_constants(options)
    title_offset = seq["title_height"] if document.find_directive("title") else 0
    groups = _participant_groups(document)
    group_levels = max((level for _, _, level in groups), default=0)
    top_offset = title_offset + group_levels * seq["group_label_height"]

    # 1. Participants left to right
    participants = _layout_participants(document, seq, top_offset, groups)
    if participants:
        boxes = list(participants.values())
        min_x = boxes[0].x
        max_x = boxes[-1].x + boxes[-1].width
    else:
        min_x = seq["participant_start_x"]
        max_x = min_x + seq["participant_width"]

    result = DiagramLayout(participants=participants)
    for node, _ in document.walk():
        if node.type == "participant" and node.alias in participants:
            result.geometry[node.id] = participants[node.alias]

    # 2. Vertical cursor pass
    spacing = document.find_directive("entryspacing")
    state = _VerticalPass(
        document=document,
        seq=seq,
        participants=participants,
        min_x=min_x,
        max_x=max_x,
        entry_spacing=spacing.value if spacing and spacing.value else 1,
        cursor=seq["message_start_y"] + top_offset,
        result=result,
    )
    state.last_message_y = state.cursor
    state.layout_entries(document.order)
    if state.parallel:
        state.end_parallel()

    # 3. Participant group backgrounds reach down to the last entry
    for group, members, level in groups:
        boxes = [participants[alias] for alias in members if alias in participants]
        if not boxes:
            continue
        padding = level * seq["group_padding"]
        left = min(b.x for b in boxes) - padding
        right = max(b.x + b.width for b in boxes) + padding
        top = boxes[0].y - level * seq["group_label_height"]
        result.geometry[group.id] = GroupGeometry(
            x=left,
            y=top,
            width=right - left,
            height=state.cursor - top,
            label=group.label,
            members=members,
        )

    # 4. Overall extent
    total_height = state.cursor + seq["margin"]
    if document.find_directive("bottomparticipants"):
        total_height += seq["participant_height"] + 10
    right_edge = max_x
    for geometry in result.geometry.values():
        if isinstance(geometry, MessageGeometry):
            right_edge = max(right_edge, geometry.from_x, geometry.to_x)
        elif not isinstance(geometry, MarkerGeometry):
            right_edge = max(right_edge, geometry.x + geometry.width)
    result.total_height = total_height
    result.width = right_edge + seq["margin"]
    result.unknown_participants = sorted(state.unknown)

    frame = document.find_directive("frame")
    if frame is not None:
        inset = seq["frame_inset"]
        result.geometry[frame.id] = FrameGeometry(
            x=inset,
            y=inset,
            width=result.width - 2 * inset,
            height=result.total_height - 2 * inset,
            label=frame.value or "",
        )
    return result


def _participant_groups(
    document: Document,
) -> list[tuple[ParticipantGroup, tuple[str, ...], int]]:
    """(group, member aliases, nesting level) for every group enclosing a participant.

    A group's level is one more than its deepest nested group; empty groups
    are skipped.
    """
    levels: dict[str, int] = {}
    found = []
    # Children before parents so nested levels are known
    for node, _ in reversed(list(document.walk())):
        if not isinstance(node, ParticipantGroup):
            continue
        inside = document.subtree(node.id)
        members = tuple(dict.fromkeys(
            p.alias for p in document.participants() if p.id in inside
        ))
        if not members:
            continue
        levels[node.id] = 1 + max((levels[c] for c in node.entries if c in levels), default=0)
        found.append((node, members, levels[node.id]))
    found.reverse()
    return found


# ============================================================================
# Participant pass
# ============================================================================


def _layout_participants(
    document: Document,
    seq: dict[str, float],
    top_offset: float,
    groups: list[tuple[ParticipantGroup, tuple[str, ...], int]],
) -> dict[str, ParticipantBox]:
    # First declaration of an alias wins
    declared = {}
    for participant in document.participants():
        declared.setdefault(participant.alias, participant)
    aliases = list(declared)
    if not aliases:
        return {}

    widths = [
        max(
            seq["participant_min_width"],
            estimate_text_width(declared[a].display_name, seq["participant_char_width"])
            + seq["participant_padding"],
        )
        for a in aliases
    ]
    index = {alias: i for i, alias in enumerate(aliases)}

    spacing_directive = document.find_directive("participantspacing")
    base_spacing = seq["participant_spacing"]
    if spacing_directive and spacing_directive.value != "equal":
        base_spacing = spacing_directive.value

    # extra_demand[i] is the distance needed between participant i-1 and i
    extra_demand = [0.0] * len(aliases)
    for node, _ in document.walk():
        if isinstance(node, Note) and node.position != "over" and node.participants:
            i = index.get(node.participants[0])
            if i is None:
                continue
            demand = _note_size(node, seq)[0] + 2 * seq["note_connector_gap"]
            gap_index = i if node.position == "left of" else i + 1
            if 0 < gap_index < len(aliases):
                extra_demand[gap_index] = max(extra_demand[gap_index], demand)
        elif isinstance(node, Message):
            i, j = index.get(node.from_), index.get(node.to)
            if i is None or j is None:
                continue
            label_width = estimate_text_width(node.label, seq["char_width"])
            if i == j:
                demand = (
                    seq["self_message_loop_width"]
                    + seq["self_message_label_gap"]
                    + label_width
                    + 10
                )
                if i + 1 < len(aliases):
                    extra_demand[i + 1] = max(extra_demand[i + 1], demand)
            elif abs(i - j) == 1:
                gap_index = max(i, j)
                extra_demand[gap_index] = max(
                    extra_demand[gap_index], label_width + seq["message_label_padding"]
                )

    # Every group border between two neighbours needs its padding
    border_demand = [0.0] * len(aliases)
    for i in range(1, len(aliases)):
        for _, members, level in groups:
            if (aliases[i - 1] in members) != (aliases[i] in members):
                border_demand[i] += level * seq["group_padding"]

    y = seq["participant_start_y"] + top_offset
    boxes: dict[str, ParticipantBox] = {}
    x = seq["participant_start_x"]
    for i, alias in enumerate(aliases):
        if i > 0:
            x += max(
                base_spacing,
                extra_demand[i],
                widths[i - 1] + seq["collision_gap"] + border_demand[i],
            )
        boxes[alias] = ParticipantBox(
            alias=alias,
            x=x,
            y=y,
            width=widths[i],
            height=seq["participant_height"],
            center_x=x + widths[i] / 2,
        )
    return boxes


def _note_size(note: Note, seq: dict[str, float]) -> tuple[float, float]:
    """(width, height) of a note box sized to its text."""
    width = max(
        seq["note_width"],
        estimate_text_width(note.text, seq["char_width"]) + 2 * seq["note_padding_h"],
    )
    height = max(
        seq["note_height"],
        line_count(note.text) * seq["line_height"] + 2 * seq["note_padding_v"],
    )
    return width, height


# ============================================================================
# Vertical pass
# ============================================================================


@dataclass
class _VerticalPass:
    document: Document
    seq: dict[str, float]
    participants: dict[str, ParticipantBox]
    min_x: float
    max_x: float
    entry_spacing: float
    cursor: float
    result: DiagramLayout
    last_message_y: float = 0
    # "parallel" freezes the cursor; messages share its y
    parallel: bool = False
    parallel_y: float = 0
    parallel_height: float = 0
    unknown: set[str] = field(default_factory=set)

    def layout_entries(self, entry_ids: tuple[str, ...]) -> None:
        for node_id in entry_ids:
            node = self.document.get(node_id)
            if isinstance(node, Message):
                self.layout_message(node)
            elif isinstance(node, Note):
                self.layout_note(node)
            elif isinstance(node, Fragment):
                self.layout_fragment(node)
            elif isinstance(node, ParticipantGroup):
                self.layout_entries(node.entries)
            elif isinstance(node, Directive):
                self.layout_directive(node)
            elif isinstance(node, Divider):
                self.result.geometry[node.id] = self._full_width_box(
                    self.seq["divider_inset"], self.seq["divider_height"]
                )
                self.cursor += self.seq["divider_height"] + self.seq["note_margin"]
            elif isinstance(node, Error):
                self.result.geometry[node.id] = self._full_width_box(
                    self.seq["error_inset"], self.seq["error_height"]
                )
                self.cursor += self.seq["error_height"] + self.seq["error_gap"]
            # Participants, comments and blank lines take no vertical space

    def _full_width_box(self, inset: float, height: float) -> BoxGeometry:
        return BoxGeometry(
            x=self.min_x - inset,
            y=self.cursor,
            width=self.max_x - self.min_x + 2 * inset,
            height=height,
        )

    def _center(self) -> float:
        return (self.min_x + self.max_x) / 2

    def _flag(self, alias: str) -> None:
        if alias not in self.unknown:
            logger.debug("reference to undeclared participant %r", alias)
            self.unknown.add(alias)

    def _endpoint_x(self, endpoint: str) -> tuple[float, bool]:
        """(x, known) for a message endpoint."""
        if endpoint == LEFT_BOUNDARY:
            return self.min_x - self.seq["boundary_offset"], True
        if endpoint == RIGHT_BOUNDARY:
            return self.max_x + self.seq["boundary_offset"], True
        box = self.participants.get(endpoint)
        if box is None:
            self._flag(endpoint)
            return self._center(), False
        return box.center_x, True

    # --- Messages ---

    def layout_message(self, message: Message) -> None:
        seq = self.seq
        extra_lines = line_count(message.label) - 1
        delay = message.delay or 0
        height = (
            seq["message_spacing"] * self.entry_spacing
            + delay * seq["delay_unit"]
            + extra_lines * seq["line_height"]
        )
        top = self.parallel_y if self.parallel else self.cursor
        # Multi-line labels sit above the arrow
        y = top + extra_lines * seq["line_height"]

        from_x, from_known = self._endpoint_x(message.from_)
        to_x, to_known = self._endpoint_x(message.to)
        self.result.geometry[message.id] = MessageGeometry(
            y=y,
            from_x=from_x,
            to_x=to_x,
            height=height,
            delay=delay,
            is_boundary=LEFT_BOUNDARY in (message.from_, message.to)
            or RIGHT_BOUNDARY in (message.from_, message.to),
            unknown_from=None if from_known else message.from_,
            unknown_to=None if to_known else message.to,
        )
        self.last_message_y = y
        if self.parallel:
            self.parallel_height = max(self.parallel_height, height)
        else:
            self.cursor += height

    # --- Notes ---

    def layout_note(self, note: Note) -> None:
        seq = self.seq
        width, height = _note_size(note, seq)
        boxes = []
        unknown = []
        for alias in note.participants:
            box = self.participants.get(alias)
            if box is None:
                self._flag(alias)
                unknown.append(alias)
            else:
                boxes.append(box)

        connector_x = None
        connector_side = None
        if not boxes:
            x = self._center() - width / 2
        elif note.position == "left of":
            connector_x = boxes[0].center_x
            connector_side = "left"
            x = connector_x - width - seq["note_connector_gap"]
        elif note.position == "right of":
            connector_x = boxes[0].center_x
            connector_side = "right"
            x = connector_x + seq["note_connector_gap"]
        elif len(boxes) == 1:
            x = boxes[0].center_x - width / 2
        else:
            # Spanning note: overhang the outer lifelines by a quarter width
            left = min(b.center_x for b in boxes)
            right = max(b.center_x for b in boxes)
            x = left - width / 4
            width = max(width, right - left + width / 2)

        self.result.geometry[note.id] = NoteGeometry(
            x=x,
            y=self.cursor,
            width=width,
            height=height,
            connector_x=connector_x,
            connector_side=connector_side,
            unknown_participants=tuple(unknown),
        )
        self.cursor += height + seq["note_margin"]

    # --- Directives ---

    def layout_directive(self, directive: Directive) -> None:
        seq = self.seq
        kind = directive.directive_type
        if kind == "space":
            self.cursor += (directive.value or 0) * seq["blankline_spacing"]
        elif kind == "parallel":
            if directive.value and not self.parallel:
                self.parallel = True
                self.parallel_y = self.cursor
                self.parallel_height = 0
            elif not directive.value and self.parallel:
                self.end_parallel()
        elif kind in ("activate", "deactivate", "deactivateafter"):
            self.result.geometry[directive.id] = MarkerGeometry(
                y=self.last_message_y, kind=kind, participant=directive.participant
            )
            if kind == "deactivateafter":
                self.cursor += seq["message_spacing"]
        elif kind in ("destroy", "destroyafter", "destroysilent"):
            self.result.geometry[directive.id] = MarkerGeometry(
                y=self.cursor, kind=kind, participant=directive.participant
            )
            if kind == "destroyafter":
                self.cursor += seq["message_spacing"]
        # "linear" and document-level directives have no vertical effect

    def end_parallel(self) -> None:
        # Notes inside the section already advanced the cursor
        self.cursor = max(self.cursor, self.parallel_y + self.parallel_height)
        self.parallel = False
        self.parallel_height = 0

    # --- Fragments ---

    def layout_fragment(self, fragment: Fragment) -> None:
        seq = self.seq
        top = self.cursor
        self.cursor += seq["fragment_header_height"]

        else_dividers: list[float] = []
        if fragment.fragment_type == "expandable" and fragment.collapsed:
            self.cursor += seq["collapsed_body_height"]
        else:
            self.layout_entries(fragment.entries)
            for clause in fragment.else_clauses:
                else_dividers.append(self.cursor)
                self.cursor += seq["else_label_height"]
                self.layout_entries(clause.entries)

        self.cursor += seq["fragment_padding"]
        left, right = self._fragment_bounds(fragment)
        self.result.geometry[fragment.id] = FragmentGeometry(
            x=left,
            y=top,
            width=right - left,
            height=self.cursor - top,
            else_dividers=else_dividers,
            collapsed=fragment.collapsed,
        )
        self.cursor += seq["fragment_margin"]

    def _fragment_bounds(self, fragment: Fragment) -> tuple[float, float]:
        """Horizontal extent covering every participant referenced inside."""
        boxes = []
        for node in self.document.subtree(fragment.id).values():
            if isinstance(node, Message):
                aliases = (node.from_, node.to)
            elif isinstance(node, Note):
                aliases = node.participants
            else:
                continue
            boxes.extend(self.participants[a] for a in aliases if a in self.participants)

        inset = self.seq["fragment_inset"]
        if not boxes:
            return self.min_x - inset, self.max_x + inset
        return (
            min(b.x for b in boxes) - inset,
            max(b.x + b.width for b in boxes) + inset,
        )
