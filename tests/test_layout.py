"""Tests for the sequence diagram layout engine.

Covers: participant spacing (widths, collisions, notes and labels widening
gaps), the vertical cursor (messages, notes, dividers, errors, directives,
fragments), reference flagging, options and determinism.
"""
from __future__ import annotations

import pytest

from seqedit.ids import IdGenerator
from seqedit.layout import SEQ, layout_document
from seqedit.parser import parse
from seqedit.types import (
    BoxGeometry,
    FragmentGeometry,
    FrameGeometry,
    GroupGeometry,
    LayoutOptions,
    MarkerGeometry,
    MessageGeometry,
    NoteGeometry,
)


def layout(text: str, options: LayoutOptions | None = None):
    """Parse with reproducible ids and lay out."""
    doc = parse(text, ids=IdGenerator())
    return doc, layout_document(doc, options)


def by_label(doc, result, label: str) -> MessageGeometry:
    for node, _ in doc.walk():
        if node.type == "message" and node.label == label:
            return result.geometry[node.id]
    raise AssertionError(f"no message labelled {label!r}")


def first_of(doc, result, node_type: str):
    for node, _ in doc.walk():
        if node.type == node_type:
            return result.geometry[node.id]
    raise AssertionError(f"no {node_type} node")


# ============================================================================
# Participants
# ============================================================================


class TestParticipants:
    def test_participants_left_to_right(self):
        doc, result = layout("participant Alice\nparticipant Bob\nAlice->Bob:Hi")
        alice = result.participants["Alice"]
        bob = result.participants["Bob"]
        assert alice.x < bob.x
        assert alice.x == 50
        assert bob.x == 200
        assert alice.center_x == 90

    def test_participant_geometry_keyed_by_node_id(self):
        doc, result = layout("participant Alice")
        assert result.geometry["p_1"] is result.participants["Alice"]

    def test_minimum_width(self):
        _, result = layout("participant A")
        assert result.participants["A"].width == SEQ["participant_min_width"]
        assert result.participants["A"].height == SEQ["participant_height"]

    def test_width_grows_with_display_name(self):
        _, result = layout("participant VeryLongParticipantName")
        assert result.participants["VeryLongParticipantName"].width == 23 * 7.5 + 20

    def test_wide_participants_do_not_collide(self):
        _, result = layout("participant " + "a" * 30 + "\nparticipant B")
        # 30 * 7.5 + 20 = 245 wide, plus the collision gap
        assert result.participants["B"].x == 50 + 245 + 20

    def test_participantspacing_overrides_base_spacing(self):
        _, result = layout("participantspacing 300\nparticipant A\nparticipant B")
        assert result.participants["B"].x == 350

    def test_left_note_widens_gap_before_target(self):
        _, result = layout("participant A\nparticipant B\nnote left of B: " + "x" * 30)
        # note width 30 * 7 + 16 = 226, plus two connector gaps
        assert result.participants["B"].x == 50 + 242

    def test_self_message_label_widens_gap_to_the_right(self):
        _, result = layout("participant A\nparticipant B\nA->A:" + "y" * 20)
        assert result.participants["B"].x == 50 + 40 + 5 + 140 + 10

    def test_adjacent_message_label_widens_gap(self):
        _, result = layout("participant A\nparticipant B\nA->B:" + "z" * 30)
        assert result.participants["B"].x == 50 + 30 * 7 + 20

    def test_title_offsets_participants_and_messages(self):
        doc, result = layout("title T\nparticipant A\nA->A:x")
        assert result.participants["A"].y == 80
        assert by_label(doc, result, "x").y == 180

    def test_participants_inside_fragments_are_placed(self):
        _, result = layout("participant A\nopt\nparticipant B\nend")
        assert list(result.participants) == ["A", "B"]


# ============================================================================
# Messages
# ============================================================================


class TestMessages:
    def test_message_endpoints_and_height(self):
        doc, result = layout("participant Alice\nparticipant Bob\nAlice->Bob:Hi")
        geometry = by_label(doc, result, "Hi")
        assert geometry.y == 150
        assert geometry.from_x == 90
        assert geometry.to_x == 240
        assert geometry.height == 50
        assert result.total_height == 250
        assert result.width == 280 + 50

    def test_messages_stack_downwards(self):
        doc, result = layout("participant A\nparticipant B\nA->B:x\nB->A:y")
        assert by_label(doc, result, "y").y - by_label(doc, result, "x").y == 50

    def test_entryspacing_scales_message_height(self):
        doc, result = layout("participant A\nparticipant B\nentryspacing 2\nA->B:x\nA->B:y")
        assert by_label(doc, result, "x").height == 100
        assert by_label(doc, result, "y").y == 250

    def test_delay_adds_height(self):
        doc, result = layout("participant A\nparticipant B\nA->(2)B:x\nA->B:y")
        assert by_label(doc, result, "x").height == 70
        assert by_label(doc, result, "x").delay == 2
        assert by_label(doc, result, "y").y == 220

    def test_multiline_label_sits_above_the_arrow(self):
        doc, result = layout("participant A\nparticipant B\nA->B:one\\ntwo\nA->B:next")
        first = by_label(doc, result, "one\\ntwo")
        assert first.y == 166
        assert first.height == 66
        assert by_label(doc, result, "next").y == 216

    def test_boundary_messages(self):
        doc, result = layout("participant A\nparticipant B\n[->A:in\nB->]:out")
        incoming = by_label(doc, result, "in")
        outgoing = by_label(doc, result, "out")
        assert incoming.is_boundary and outgoing.is_boundary
        assert incoming.from_x == 50 - 30
        assert outgoing.to_x == 280 + 30
        assert result.width == 310 + 50

    def test_unknown_participant_is_centered_and_flagged(self):
        doc, result = layout("participant A\nA->Z:x")
        geometry = by_label(doc, result, "x")
        assert geometry.unknown_to == "Z"
        assert geometry.unknown_from is None
        assert geometry.to_x == 90
        assert result.unknown_participants == ["Z"]

    def test_unknown_participants_are_sorted_and_unique(self):
        _, result = layout("Y->X:a\nX->Y:b")
        assert result.unknown_participants == ["X", "Y"]


# ============================================================================
# Notes, dividers, errors
# ============================================================================


class TestNotes:
    def test_left_of_note(self):
        doc, result = layout("participant A\nparticipant B\nnote left of B: " + "x" * 30)
        note = first_of(doc, result, "note")
        assert isinstance(note, NoteGeometry)
        assert note.width == 226
        assert note.height == 28
        assert note.x == 332 - 226 - 8
        assert note.connector_x == 332
        assert note.connector_side == "left"

    def test_right_of_note(self):
        doc, result = layout("participant A\nnote right of A: hi")
        note = first_of(doc, result, "note")
        assert note.x == 90 + 8
        assert note.connector_side == "right"

    def test_note_over_single_participant_is_centered(self):
        doc, result = layout("participant A\nnote over A: hi")
        note = first_of(doc, result, "note")
        assert note.x + note.width / 2 == 90

    def test_note_spanning_participants(self):
        doc, result = layout("participant A\nparticipant B\nnote over A,B: hi")
        note = first_of(doc, result, "note")
        # 90 .. 240 between lifelines; minimum note width 50
        assert note.x == 90 - 50 / 4
        assert note.width == 150 + 25

    def test_multiline_note_height(self):
        doc, result = layout("participant A\nnote over A: a\\nb\\nc")
        assert first_of(doc, result, "note").height == 3 * 16 + 12

    def test_note_advances_cursor(self):
        doc, result = layout("participant A\nnote over A: hi\nA->A:x")
        assert by_label(doc, result, "x").y == 150 + 28 + 35

    def test_note_with_unknown_participant_is_flagged(self):
        doc, result = layout("participant A\nnote over Q: hi")
        assert first_of(doc, result, "note").unknown_participants == ("Q",)
        assert result.unknown_participants == ["Q"]


class TestFullWidthBoxes:
    def test_divider(self):
        doc, result = layout("participant A\n==Step==\nA->A:x")
        divider = first_of(doc, result, "divider")
        assert isinstance(divider, BoxGeometry)
        assert divider.x == 30
        assert divider.width == 120
        assert divider.height == 24
        assert by_label(doc, result, "x").y == 150 + 24 + 35

    def test_error_box(self):
        doc, result = layout("participant A\ngarbage here\nA->A:x")
        error = first_of(doc, result, "error")
        assert error.x == 40
        assert error.width == 100
        assert error.height == 40
        assert by_label(doc, result, "x").y == 200


# ============================================================================
# Directives
# ============================================================================


class TestDirectives:
    def test_space(self):
        doc, result = layout("participant A\nspace 3\nA->A:x")
        assert by_label(doc, result, "x").y == 210

    def test_parallel_messages_share_y(self):
        doc, result = layout(
            "participant A\nparticipant B\nparallel\nA->B:x\nB->A:y\nparallel off\nA->B:z"
        )
        assert by_label(doc, result, "x").y == 150
        assert by_label(doc, result, "y").y == 150
        assert by_label(doc, result, "z").y == 200

    def test_parallel_section_with_only_a_note_keeps_cursor(self):
        doc, result = layout(
            "participant A\nparallel\nnote over A: n\nparallel off\nA->A:after"
        )
        note = first_of(doc, result, "note")
        assert note.y == 150
        assert note.height == 28
        assert by_label(doc, result, "after").y == 150 + 28 + 35

    def test_parallel_section_ends_below_tallest_entry(self):
        doc, result = layout(
            "participant A\nparticipant B\nparallel\nA->B:x\nnote over A: n\n"
            "parallel off\nA->B:z"
        )
        assert by_label(doc, result, "x").y == 150
        assert by_label(doc, result, "z").y == 150 + 28 + 35

    def test_linear_has_no_effect(self):
        _, plain = layout("participant A\nA->A:x")
        _, linear = layout("participant A\nlinear\nA->A:x")
        assert linear.total_height == plain.total_height

    def test_activation_and_destroy_markers(self):
        doc, result = layout(
            "participant A\nparticipant B\nA->B:x\nactivate B\nB->A:y\n"
            "deactivateafter B\ndestroy A"
        )
        markers = {
            node.directive_type: result.geometry[node.id]
            for node, _ in doc.walk()
            if node.type == "directive"
        }
        assert isinstance(markers["activate"], MarkerGeometry)
        assert markers["activate"].y == 150
        assert markers["activate"].participant == "B"
        assert markers["deactivateafter"].y == 200
        assert markers["destroy"].y == 300

    def test_bottomparticipants_adds_height(self):
        _, result = layout("participant A\nbottomparticipants\nA->A:x")
        assert result.total_height == 200 + 50 + 70


# ============================================================================
# Fragments
# ============================================================================


class TestFragments:
    def test_fragment_with_else_clause(self):
        doc, result = layout(
            "participant A\nparticipant B\nparticipant C\n"
            "alt ok\nA->B:x\nelse no\nA->B:y\nend"
        )
        fragment = first_of(doc, result, "fragment")
        assert isinstance(fragment, FragmentGeometry)
        assert fragment.y == 150
        assert by_label(doc, result, "x").y == 195
        assert fragment.else_dividers == [245]
        assert by_label(doc, result, "y").y == 280
        assert fragment.height == 185
        # Spans A and B only
        assert fragment.x == 30
        assert fragment.width == 270
        assert result.total_height == 150 + 185 + 20 + 50

    def test_fragment_without_references_spans_full_width(self):
        doc, result = layout("participant A\nparticipant B\nopt empty\nend")
        fragment = first_of(doc, result, "fragment")
        assert fragment.x == 30
        assert fragment.width == 280 - 50 + 40

    def test_nested_fragment_references_count_for_outer_bounds(self):
        doc, result = layout(
            "participant A\nparticipant B\nparticipant C\n"
            "loop outer\nopt inner\nB->C:x\nend\nend"
        )
        outer = result.geometry[doc.order[3]]
        assert outer.x == 200 - 20
        assert outer.x + outer.width == 430 + 20

    def test_collapsed_expandable_skips_content(self):
        doc, result = layout("participant A\nexpandable- more\nA->A:x\nend\nA->A:after")
        fragment = first_of(doc, result, "fragment")
        assert fragment.collapsed is True
        assert fragment.height == 45 + 10 + 5
        message_id = doc.get(doc.order[1]).entries[0]
        assert message_id not in result.geometry
        assert by_label(doc, result, "after").y == 150 + 60 + 20


# ============================================================================
# Participant groups and frame
# ============================================================================

GROUPED = (
    "participantgroup #lightblue Internal\nparticipant A\nparticipant B\nend\n"
    "participant C"
)


class TestParticipantGroups:
    def test_group_pushes_participants_down(self):
        _, result = layout(GROUPED)
        assert result.participants["A"].y == 50 + 20
        assert result.total_height == 150 + 20 + 50

    def test_group_geometry_wraps_members(self):
        doc, result = layout(GROUPED)
        group = first_of(doc, result, "participantgroup")
        assert isinstance(group, GroupGeometry)
        assert group.members == ("A", "B")
        assert group.label == "Internal"
        assert group.x == 50 - 10
        assert group.y == 50
        assert group.width == 200 + 80 + 10 - 40
        assert group.height == 170 - 50

    def test_group_border_widens_gap(self):
        options = LayoutOptions(participant_spacing=50)
        _, grouped = layout(GROUPED, options)
        _, plain = layout("participant A\nparticipant B\nparticipant C", options)
        assert grouped.participants["B"].x == plain.participants["B"].x == 150
        assert plain.participants["C"].x == 250
        assert grouped.participants["C"].x == 260

    def test_nested_groups(self):
        doc, result = layout(
            "participantgroup Outer\nparticipant A\nparticipantgroup Inner\n"
            "participant B\nend\nparticipant C\nend"
        )
        outer = result.geometry[doc.order[0]]
        inner = result.geometry[doc.get(doc.order[0]).entries[1]]
        assert result.participants["A"].y == 50 + 40
        assert outer.y == 50
        assert inner.y == 70
        assert outer.x == 50 - 20
        assert inner.x == 200 - 10
        assert outer.members == ("A", "B", "C")
        assert inner.members == ("B",)

    def test_empty_group_has_no_geometry(self):
        doc, result = layout("participantgroup Empty\nend\nparticipant A")
        assert doc.order[0] not in result.geometry
        assert result.participants["A"].y == 50

    def test_messages_inside_group_are_placed(self):
        doc, result = layout("participantgroup G\nparticipant A\nA->A:x\nend")
        assert by_label(doc, result, "x").y == 150 + 20


class TestFrame:
    def test_frame_surrounds_diagram(self):
        doc, result = layout("frame My Diagram\nparticipant A\nA->A:self")
        frame = first_of(doc, result, "directive")
        assert isinstance(frame, FrameGeometry)
        assert frame.label == "My Diagram"
        assert (frame.x, frame.y) == (10, 10)
        assert frame.width == result.width - 20
        assert frame.height == result.total_height - 20

    def test_frame_does_not_move_content(self):
        doc, framed = layout("frame\nparticipant A\nA->A:x")
        _, plain = layout("participant A\nA->A:x")
        assert framed.participants == plain.participants
        assert framed.total_height == plain.total_height
        assert first_of(doc, framed, "directive").label == ""


# ============================================================================
# Options and determinism
# ============================================================================


class TestOptions:
    def test_message_spacing_option(self):
        doc, result = layout(
            "participant A\nA->A:x\nA->A:y", LayoutOptions(message_spacing=80)
        )
        assert by_label(doc, result, "y").y == 230

    def test_unset_options_fall_back_to_defaults(self):
        _, with_options = layout("participant A\nA->A:x", LayoutOptions())
        _, without = layout("participant A\nA->A:x")
        assert with_options == without

    @pytest.mark.parametrize("text", [
        "participant A\nparticipant B\nA->B:x",
        "alt a\nA->B:x\nelse\nnote over A: n\nend\n==d==\nspace 2",
        "",
    ])
    def test_layout_is_deterministic(self, text: str):
        doc = parse(text, ids=IdGenerator())
        assert layout_document(doc) == layout_document(doc)

    def test_empty_document(self):
        _, result = layout("")
        assert result.participants == {}
        assert result.total_height == 150 + 50
