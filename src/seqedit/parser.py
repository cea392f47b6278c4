from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field

from .ids import IdGenerator, default_generator
from .types import (
    BlankLine,
    BoxStyle,
    Comment,
    Directive,
    Divider,
    Document,
    ElseClause,
    Error,
    Fragment,
    LineStyle,
    Message,
    Node,
    Note,
    Participant,
    ParticipantGroup,
    TYPE_STYLE_DIRECTIVES,
)

# ============================================================================
# Sequence diagram parser
#
# Parses the line-oriented diagram language into a Document. Each physical
# line yields at most one node; fragments (alt/loop/...) collect the nodes
# between their opening line and the matching "end".
#
# Supported syntax:
#   participant Alice
#   actor "Long Name" as U #lightblue #green;2;dashed
#   fontawesome6solid f48e Server    image data:image/png;base64,... Logo
#   participantgroup #lightblue Backend ... end
#   A->B:label  A->>B  A-->B  A-->>B  A<-B  A<->B  A-xB  [->A  A->]
#   A-[#red;2;dashed]->B:styled   A-[##warning]->B:named   A->(2)B   A->*B
#   alt#yellow #lightgray ok ... else #pink failed ... end
#   expandable+ collapsed ... end
#   note over A,B: text    box left of A: text
#   ==Divider==
#   title / entryspacing / autonumber / space / participantspacing /
#   lifelinestyle / linear / parallel / activate / deactivate(after) /
#   autoactivation / activecolor / destroy(after|silent) / bottomparticipants /
#   frame#red #fill Title / fontfamily "Name"
#   style warning #white #red;2;dashed,**   notestyle #yellow   messagestyle #red;2
#   // comment   # comment
#
# The parser never raises: unrecognised lines become Error nodes and parsing
# resumes on the next line.
# ============================================================================

logger = logging.getLogger(__name__)

PARTICIPANT_TYPES = (
    "participant", "rparticipant", "actor", "database", "boundary", "control", "entity",
)
ICON_PARTICIPANT_TYPES = (
    "fontawesome6solid", "fontawesome6regular", "fontawesome6brands", "materialdesignicons",
)
IMAGE_PARTICIPANT_TYPE = "image"
FRAGMENT_TYPES = (
    "alt", "loop", "opt", "par", "break", "critical", "ref", "seq", "strict",
    "neg", "ignore", "consider", "assert", "region", "group",
)
NOTE_TYPES = ("note", "box", "abox", "rbox", "ref", "state")

# Longest first so "-->>" is never read as "-->" followed by ">"
ARROWS = ("<-->>", "<->>", "-->>", "<-->", "<--", "<->", "->>", "-->", "--x", "<-", "->", "-x")

_BORDER_STYLES = r"solid|dashed|dotted"
_ALIAS = r"[^\s:#]+"

# Compiled regex patterns
_FILL_RE = re.compile(r"^(#[^\s#;]+)(?:\s+|$)")
_BORDER_RE = re.compile(
    rf"^(?:(#[^\s#;]+)(?:;(\d+)(?:;({_BORDER_STYLES}))?)?|;(\d+)(?:;({_BORDER_STYLES}))?)(?:\s+|$)"
)
_LINE_STYLE_RE = re.compile(rf"^(#[^\s#;]+)?(?:;(\d+))?(?:;({_BORDER_STYLES}))?$")
# Reference to a named style: ##warning
_STYLE_REF_RE = re.compile(r"^##([^\s#;:,]+)(?:\s+|$)")

_TITLE_RE = re.compile(r"^title\s+(.+)$")
_ENTRY_SPACING_RE = re.compile(r"^entryspacing\s+(\d+(?:\.\d+)?)$")
_AUTONUMBER_RE = re.compile(r"^autonumber(?:\s+(\d+|off))?$")
_SPACE_RE = re.compile(r"^space(?:\s+([+-]?\d+))?$")
_PARTICIPANT_SPACING_RE = re.compile(r"^participantspacing\s+(\d+(?:\.\d+)?|equal)$")
_LIFELINE_STYLE_RE = re.compile(rf"^lifelinestyle(?:\s+([^\s:#;]+))?(?:\s+([#;]\S*))?$")
_TOGGLE_RE = re.compile(r"^(linear|parallel)(?:\s+(off))?$")
_ACTIVATE_RE = re.compile(rf"^activate\s+({_ALIAS})(?:\s+(#\S+))?$")
_DEACTIVATE_RE = re.compile(rf"^(deactivate|deactivateafter)\s+({_ALIAS})$")
_AUTOACTIVATION_RE = re.compile(r"^autoactivation\s+(on|off)$")
_ACTIVE_COLOR_RE = re.compile(rf"^activecolor(?:\s+({_ALIAS}))?\s+(#\S+)$")
_DESTROY_RE = re.compile(rf"^(destroy|destroyafter|destroysilent)\s+({_ALIAS})$")
_BOTTOM_PARTICIPANTS_RE = re.compile(r"^bottomparticipants$")
_FRAME_RE = re.compile(r"^frame(?:#([^\s#;]+))?(?:\s+(.*))?$")
_FONT_FAMILY_RE = re.compile(r'^fontfamily\s+(?:"([^"]*)"|(.+))$')
_NAMED_STYLE_RE = re.compile(r"^style\s+([^\s#;,]+)(?:\s+(.*))?$")
_TYPE_STYLE_RE = re.compile(rf"^({'|'.join(TYPE_STYLE_DIRECTIVES)})(?:\s+(.*))?$")

_DIVIDER_RE = re.compile(r"^==(.*?)==(.*)$")
_NOTE_RE = re.compile(
    rf"^({'|'.join(NOTE_TYPES)})\s+(over|left of|right of)\s+"
    r"([^\s:#,]+(?:\s*,\s*[^\s:#,]+)*)\s*([^:]*):(.*)$"
)
_FRAGMENT_RE = re.compile(rf"^({'|'.join(FRAGMENT_TYPES)})(?:#([^\s#;]+))?(?:\s+(.*))?$")
_EXPANDABLE_RE = re.compile(r"^expandable([+-])(?:\s+(.*))?$")
_ELSE_RE = re.compile(r"^else(?:\s+(.*))?$")
_END_RE = re.compile(r"^end$")
_GROUP_RE = re.compile(r"^participantgroup(?:\s+(.*))?$")

_PARTICIPANT_RE = re.compile(
    rf"^({'|'.join(PARTICIPANT_TYPES + ICON_PARTICIPANT_TYPES)}|{IMAGE_PARTICIPANT_TYPE})\s+(.+)$"
)
_QUOTED_NAME_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"(?:\s+as\s+([^\s#]+))?(.*)$')
_SIMPLE_NAME_RE = re.compile(r"^([^\s#]+)(.*)$")
_ESCAPE_RE = re.compile(r'\\(["\\n])')

_MESSAGE_RE = re.compile(
    r"^(\[|[^\s\-<\[]+)"          # source alias or left boundary
    r"(?:-\[([^\]]*)\])?"         # style embedded in the arrow: A-[#red]->B
    rf"({'|'.join(re.escape(a) for a in ARROWS)})"
    r"\s*(?:\((\d+)\))?"          # delay: A->(2)B
    r"\s*(\*)?"                   # create marker: A->*B
    r"(\]|[^\s:\[\]]+)"           # target alias or right boundary
    r"\s*(?:\[([^\]]*)\])?"       # trailing style: A->B [#red]:x
    r"\s*(?::(.*))?$"
)

CREATE_STEREOTYPE = "<<create>>"


# ============================================================================
# Style decomposition
# ============================================================================


def parse_box_style(text: str) -> tuple[BoxStyle | None, str]:
    """Split leading style tokens off `text`.

    Tokens are consumed in a fixed order: an optional fill colour, then an
    optional border (colour, width, dash). Returns the style (None when no
    tokens were present) and the remaining text.
    """
    rest = text.strip()
    named = _STYLE_REF_RE.match(rest)
    if named:
        return BoxStyle(style_name=named.group(1)), rest[named.end():].strip()

    fill = border = border_style = None
    border_width: int | None = None

    fill_match = _FILL_RE.match(rest)
    if fill_match:
        fill = fill_match.group(1)
        rest = rest[fill_match.end():]

    border_match = _BORDER_RE.match(rest)
    if border_match and border_match.group(0).strip():
        colour, width, dash, bare_width, bare_dash = border_match.groups()
        border = colour
        width = width or bare_width
        border_width = int(width) if width else None
        border_style = dash or bare_dash
        rest = rest[border_match.end():]

    if fill is None and border is None and border_width is None and border_style is None:
        return None, rest.strip()
    return BoxStyle(
        fill=fill, border=border, border_width=border_width, border_style=border_style
    ), rest.strip()


def parse_line_style(text: str | None) -> LineStyle | None:
    """Parse "#colour;width;dash" (every part optional) or "##name" into a LineStyle."""
    if not text or not text.strip():
        return None
    named = _STYLE_REF_RE.match(text.strip())
    if named and named.end() == len(text.strip()):
        return LineStyle(style_name=named.group(1))
    match = _LINE_STYLE_RE.match(text.strip())
    if not match:
        return None
    colour, width, dash = match.groups()
    if colour is None and width is None and dash is None:
        return None
    return LineStyle(color=colour, width=int(width) if width else None, line_style=dash)


def split_style_markup(text: str) -> tuple[str, str | None]:
    """Split a style definition into its style tokens and its text markup.

    Markup follows the first comma; without a comma, text that does not
    start with a style token ('#' or ';') is all markup.
    """
    text = text.strip()
    if "," in text:
        style_text, markup = text.split(",", 1)
        return style_text.strip(), markup.strip() or None
    if not text or text.startswith(("#", ";")):
        return text, None
    return "", text


def unescape_name(raw: str) -> str:
    r"""Resolve \", \\ and \n escapes in a quoted display name."""
    return _ESCAPE_RE.sub(lambda m: "\n" if m.group(1) == "n" else m.group(1), raw)


# ============================================================================
# Fragment scopes
# ============================================================================


@dataclass
class _OpenClause:
    condition: str
    style: BoxStyle | None
    entries: list[str] = field(default_factory=list)


@dataclass
class _OpenFragment:
    """A fragment whose "end" has not been seen yet."""
    node_id: str
    fragment_type: str
    condition: str
    style: BoxStyle | None
    collapsed: bool
    line: int
    text: str
    entries: list[str] = field(default_factory=list)
    clauses: list[_OpenClause] = field(default_factory=list)

    def current(self) -> list[str]:
        return self.clauses[-1].entries if self.clauses else self.entries

    def close(self, end_line: int) -> Fragment:
        return Fragment(
            id=self.node_id,
            fragment_type=self.fragment_type,  # type: ignore[arg-type]
            condition=self.condition,
            entries=tuple(self.entries),
            else_clauses=tuple(
                ElseClause(condition=c.condition, entries=tuple(c.entries), style=c.style)
                for c in self.clauses
            ),
            style=self.style,
            collapsed=self.collapsed,
            source_line_start=self.line,
            source_line_end=end_line,
        )

    def unclosed_message(self) -> str:
        return (
            f"Unclosed fragment: '{self.fragment_type}' opened at line {self.line} "
            "has no matching 'end'"
        )


@dataclass
class _OpenGroup:
    """A participant group whose "end" has not been seen yet."""
    node_id: str
    label: str
    color: str | None
    line: int
    text: str
    entries: list[str] = field(default_factory=list)

    def current(self) -> list[str]:
        return self.entries

    def close(self, end_line: int) -> ParticipantGroup:
        return ParticipantGroup(
            id=self.node_id,
            label=self.label,
            color=self.color,
            entries=tuple(self.entries),
            source_line_start=self.line,
            source_line_end=end_line,
        )

    def unclosed_message(self) -> str:
        return (
            f"Unclosed participant group opened at line {self.line} has no matching 'end'"
        )


# ============================================================================
# Entry point
# ============================================================================


def parse(text: str, ids: IdGenerator | None = None) -> Document:
    """Parse diagram source into a Document.

    Never raises. Empty input yields a single BlankLine.
    """
    ids = ids or default_generator()
    lines = [line.rstrip("\r") for line in text.split("\n")]

    nodes: dict[str, Node] = {}
    order: list[str] = []
    # Track fragment and participant group nesting with a stack
    scope_stack: list[_OpenFragment | _OpenGroup] = []

    def append(node: Node) -> None:
        nodes[node.id] = node
        (scope_stack[-1].current() if scope_stack else order).append(node.id)

    for index, raw in enumerate(lines):
        line_number = index + 1
        line = raw.strip()

        # --- Blank, comment, directive, divider, note ---
        node = _parse_leading(line, line_number, ids)
        if node is not None:
            append(node)
            continue

        # --- Fragment or participant group start ---
        opened = _parse_group_start(line, line_number, ids) or _parse_fragment_start(
            line, line_number, ids
        )
        if opened is not None:
            scope_stack.append(opened)
            continue

        # --- Else clause ---
        else_match = _ELSE_RE.match(line)
        if else_match:
            if scope_stack and isinstance(scope_stack[-1], _OpenFragment):
                style, condition = parse_box_style(else_match.group(1) or "")
                scope_stack[-1].clauses.append(_OpenClause(condition=condition, style=style))
            else:
                logger.debug("line %d: 'else' outside any fragment", line_number)
                append(_error(ids, "'else' without matching fragment", line, line_number))
            continue

        # --- Fragment end ---
        if _END_RE.match(line):
            if scope_stack:
                closed = scope_stack.pop()
                append(closed.close(line_number))
            else:
                logger.debug("line %d: 'end' outside any fragment", line_number)
                append(_error(ids, "'end' without matching fragment", line, line_number))
            continue

        append(_parse_line(line, line_number, ids))

    # Close unterminated scopes innermost first, each preceded by an error
    last_line = len(lines)
    while scope_stack:
        unclosed = scope_stack.pop()
        logger.debug("unclosed scope %r opened at line %d", unclosed.text, unclosed.line)
        append(_error(ids, unclosed.unclosed_message(), unclosed.text, unclosed.line))
        append(unclosed.close(last_line))

    return Document(nodes=nodes, order=tuple(order))


def _parse_leading(line: str, line_number: int, ids: IdGenerator) -> Node | None:
    """Rules that take precedence over fragment keywords."""
    # --- Blank line ---
    if not line:
        return BlankLine(
            id=ids.next_id("blankline"), source_line_start=line_number, source_line_end=line_number
        )

    # --- Comment ---
    if line.startswith("//") or line.startswith("#"):
        return Comment(
            id=ids.next_id("comment"),
            text=line,
            source_line_start=line_number,
            source_line_end=line_number,
        )

    # "ref over A: ..." is a note, not a ref fragment
    for rule in (_parse_directive, _parse_divider, _parse_note):
        node = rule(line, line_number, ids)
        if node is not None:
            return node
    return None


def _parse_line(line: str, line_number: int, ids: IdGenerator) -> Node:
    """Participant or message, else an Error node."""
    for rule in (_parse_participant, _parse_message):
        node = rule(line, line_number, ids)
        if node is not None:
            return node

    logger.debug("line %d: unrecognized syntax %r", line_number, line)
    return _error(ids, f"Unrecognized syntax: {line}", line, line_number)


def _error(ids: IdGenerator, message: str, text: str, line_number: int) -> Error:
    return Error(
        id=ids.next_id("error"),
        message=message,
        text=text,
        source_line_start=line_number,
        source_line_end=line_number,
    )


# ============================================================================
# Line rules
# ============================================================================


def _parse_group_start(line: str, line_number: int, ids: IdGenerator) -> _OpenGroup | None:
    match = _GROUP_RE.match(line)
    if not match:
        return None
    rest = (match.group(1) or "").strip()
    color = None
    color_match = _FILL_RE.match(rest)
    if color_match:
        color = color_match.group(1)
        rest = rest[color_match.end():]
    return _OpenGroup(
        node_id=ids.next_id("participantgroup"),
        label=rest.strip(),
        color=color,
        line=line_number,
        text=line,
    )


def _parse_fragment_start(line: str, line_number: int, ids: IdGenerator) -> _OpenFragment | None:
    expandable_match = _EXPANDABLE_RE.match(line)
    if expandable_match:
        style, condition = parse_box_style(expandable_match.group(2) or "")
        return _OpenFragment(
            node_id=ids.next_id("fragment"),
            fragment_type="expandable",
            condition=condition,
            style=style,
            collapsed=expandable_match.group(1) == "-",
            line=line_number,
            text=line,
        )

    match = _FRAGMENT_RE.match(line)
    if not match:
        return None
    fragment_type, operator_color, rest = match.groups()
    style, condition = parse_box_style(rest or "")
    if operator_color:
        style = dataclasses.replace(style or BoxStyle(), operator_color=operator_color)
    return _OpenFragment(
        node_id=ids.next_id("fragment"),
        fragment_type=fragment_type,
        condition=condition,
        style=style,
        collapsed=False,
        line=line_number,
        text=line,
    )


def _parse_directive(line: str, line_number: int, ids: IdGenerator) -> Directive | None:
    fields = _match_directive(line)
    if fields is None:
        return None
    return Directive(
        id=ids.next_id("directive"),
        source_line_start=line_number,
        source_line_end=line_number,
        **fields,
    )


def _match_directive(line: str) -> dict | None:
    """Directive payload fields for `line`, or None if it is not a directive."""
    match = _TITLE_RE.match(line)
    if match:
        return {"directive_type": "title", "value": match.group(1).strip()}

    match = _ENTRY_SPACING_RE.match(line)
    if match:
        return {"directive_type": "entryspacing", "value": _number(match.group(1))}

    match = _AUTONUMBER_RE.match(line)
    if match:
        arg = match.group(1)
        value = None if arg == "off" else int(arg or 1)
        return {"directive_type": "autonumber", "value": value}

    match = _SPACE_RE.match(line)
    if match:
        return {"directive_type": "space", "value": int(match.group(1) or 1)}

    match = _PARTICIPANT_SPACING_RE.match(line)
    if match:
        arg = match.group(1)
        return {
            "directive_type": "participantspacing",
            "value": arg if arg == "equal" else _number(arg),
        }

    match = _LIFELINE_STYLE_RE.match(line)
    if match:
        participant, style = match.groups()
        return {
            "directive_type": "lifelinestyle",
            "participant": participant,
            "line_style": parse_line_style(style),
        }

    match = _TOGGLE_RE.match(line)
    if match:
        return {"directive_type": match.group(1), "value": match.group(2) is None}

    match = _ACTIVATE_RE.match(line)
    if match:
        return {"directive_type": "activate", "participant": match.group(1), "color": match.group(2)}

    match = _DEACTIVATE_RE.match(line)
    if match:
        return {"directive_type": match.group(1), "participant": match.group(2)}

    match = _AUTOACTIVATION_RE.match(line)
    if match:
        return {"directive_type": "autoactivation", "value": match.group(1) == "on"}

    match = _ACTIVE_COLOR_RE.match(line)
    if match:
        return {"directive_type": "activecolor", "participant": match.group(1), "color": match.group(2)}

    match = _DESTROY_RE.match(line)
    if match:
        return {"directive_type": match.group(1), "participant": match.group(2)}

    if _BOTTOM_PARTICIPANTS_RE.match(line):
        return {"directive_type": "bottomparticipants", "value": True}

    match = _FRAME_RE.match(line)
    if match:
        operator_color, rest = match.groups()
        style, title = parse_box_style(rest or "")
        if operator_color:
            style = dataclasses.replace(style or BoxStyle(), operator_color=operator_color)
        return {"directive_type": "frame", "value": title, "style": style}

    match = _FONT_FAMILY_RE.match(line)
    if match:
        quoted, bare = match.groups()
        value = quoted if quoted is not None else bare.strip()
        return {"directive_type": "fontfamily", "value": value}

    # --- Style definitions ---

    match = _NAMED_STYLE_RE.match(line)
    if match:
        style_text, markup = split_style_markup(match.group(2) or "")
        style, _ = parse_box_style(style_text)
        return {
            "directive_type": "style",
            "name": match.group(1),
            "style": style,
            "text_markup": markup,
        }

    match = _TYPE_STYLE_RE.match(line)
    if match:
        kind = match.group(1)
        style_text, markup = split_style_markup(match.group(2) or "")
        if kind == "messagestyle":
            return {
                "directive_type": kind,
                "line_style": parse_line_style(style_text),
                "text_markup": markup,
            }
        style, _ = parse_box_style(style_text)
        return {"directive_type": kind, "style": style, "text_markup": markup}

    return None


def _number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


def _parse_divider(line: str, line_number: int, ids: IdGenerator) -> Divider | None:
    match = _DIVIDER_RE.match(line)
    if not match:
        return None
    style, _ = parse_box_style(match.group(2))
    return Divider(
        id=ids.next_id("divider"),
        text=match.group(1),
        style=style,
        source_line_start=line_number,
        source_line_end=line_number,
    )


def _parse_note(line: str, line_number: int, ids: IdGenerator) -> Note | None:
    match = _NOTE_RE.match(line)
    if not match:
        return None
    note_type, position, targets, style_str, text = match.groups()
    style, _ = parse_box_style(style_str)
    return Note(
        id=ids.next_id("note"),
        note_type=note_type,  # type: ignore[arg-type]
        position=position,  # type: ignore[arg-type]
        participants=tuple(t.strip() for t in targets.split(",")),
        text=text.strip(),
        style=style,
        source_line_start=line_number,
        source_line_end=line_number,
    )


def _parse_participant(line: str, line_number: int, ids: IdGenerator) -> Participant | None:
    match = _PARTICIPANT_RE.match(line)
    if not match:
        return None
    participant_type, rest = match.groups()

    # Icon code or image data precedes the name
    icon_code = image_data = None
    if participant_type in ICON_PARTICIPANT_TYPES or participant_type == IMAGE_PARTICIPANT_TYPE:
        parts = rest.split(None, 1)
        if len(parts) < 2:
            return None
        if participant_type == IMAGE_PARTICIPANT_TYPE:
            image_data, rest = parts
        else:
            icon_code, rest = parts

    quoted = _QUOTED_NAME_RE.match(rest)
    if quoted:
        display_name = unescape_name(quoted.group(1))
        # Without "as", the alias is the display name minus whitespace
        alias = quoted.group(2) or re.sub(r"\s", "", display_name)
        style, _ = parse_box_style(quoted.group(3))
    else:
        simple = _SIMPLE_NAME_RE.match(rest)
        if not simple:
            return None
        alias = simple.group(1)
        style, leftover = parse_box_style(simple.group(2))
        display_name = leftover or alias

    return Participant(
        id=ids.next_id("participant"),
        participant_type=participant_type,  # type: ignore[arg-type]
        alias=alias,
        display_name=display_name,
        style=style,
        icon_code=icon_code,
        image_data=image_data,
        source_line_start=line_number,
        source_line_end=line_number,
    )


def _parse_message(line: str, line_number: int, ids: IdGenerator) -> Message | None:
    # Format: FROM [-[style]]ARROW [(delay)] [*]TO [[style]] [:LABEL]
    match = _MESSAGE_RE.match(line)
    if not match:
        return None
    source, arrow_style, arrow, delay, create, target, trailing_style, label = match.groups()
    label = (label or "").strip()
    return Message(
        id=ids.next_id("message"),
        from_=source,
        to=target,
        arrow_type=arrow,  # type: ignore[arg-type]
        label=label,
        delay=int(delay) if delay else None,
        style=parse_line_style(arrow_style) or parse_line_style(trailing_style),
        is_create=bool(create) or CREATE_STEREOTYPE in label,
        source_line_start=line_number,
        source_line_end=line_number,
    )
