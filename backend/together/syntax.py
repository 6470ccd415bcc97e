"""Line classification, block extraction and statement-tree building.

A Together script is line oriented: every line is exactly one statement
form, recognized by an ordered list of shape matchers (first match wins).
Block statements (``If``/``Else If``/``Else``/``During``) open a body with a
line ending in ``{`` and close it with a line ending in ``}``; bodies may
nest, and ``extract_block`` tracks nesting depth per line so an inner
closing brace never ends the outer block.

``parse_block`` turns a list of lines into a tree: each conditional chain
becomes one ``Conditional`` node with its ordered branches, each ``During``
header plus body becomes a ``During`` node. Lines that cannot be parsed
become ``Invalid``/``Dangling`` nodes which fail only when execution reaches
them, so earlier output survives.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from .errors import ScriptSyntaxError
from .features import DIRECTIVE_RE
from .values import split_list_items

_CONDITION = r"\s*<(?P<left>.+?)>\s*=\?\s*<(?P<right>.+)>\s*\{(?P<rest>.*)$"
IF_RE = re.compile(r"^If" + _CONDITION)
ELSE_IF_RE = re.compile(r"^Else\s+If" + _CONDITION)
ELSE_RE = re.compile(r"^Else\s*\{(?P<rest>.*)$")
DURING_RE = re.compile(r"^During" + _CONDITION)
FOR_RE = re.compile(
    r"^For\s*\[(?P<var>[^\[\]]+)\]\s*=\s*(?P<start>.+?),"
    r"\s*\[(?P<check>[^\[\]]+)\]\s*=\?\s*(?P<end>.+?),\s*(?P<body>.+)$"
)
LOG_RE = re.compile(r"^log\((?P<arg>.*)\)$")
WAIT_RE = re.compile(r"^wait\(\s*(?P<ms>\d+)\s*\)$")
ASSIGN_RE = re.compile(r"^\[(?P<name>[^\[\]]+)\]\s*=(?!\?)\s*(?P<value>.+)$")
LET_RE = re.compile(r"^Let\s*\[(?P<name>[^\[\]]+)\]\s*=\s*(?P<value>.+)$")
LIST_ASSIGN_RE = re.compile(r"^/(?P<name>[^/]+)/\s*=\s*#(?P<items>.*)#$")
GLOBAL_RE = re.compile(r"^glb\s+(?P<kind>\w+)\s+(?P<name>\w+)\s*=\s*(?P<value>.+)$", re.IGNORECASE)
LIST_LITERAL_RE = re.compile(r"^#(?P<items>.*)#$")

_GROUPLET_RE = re.compile(r"=\s*(Action|Runner|Storage)\(Grouplet\)", re.IGNORECASE)
_STRUCTURAL_RE = re.compile(r"^(Process|Connect)\(")

COMMENT_PREFIXES = ("++", "--")


# --- Statement shapes --------------------------------------------------------

@dataclass
class Skip:
    """Blank line, comment or directive."""

    line: str = ""


@dataclass
class IfHeader:
    left: str
    right: str
    inline: Optional[str]
    line: str


@dataclass
class ElseIfHeader:
    left: str
    right: str
    inline: Optional[str]
    line: str


@dataclass
class ElseHeader:
    inline: Optional[str]
    line: str


@dataclass
class DuringHeader:
    left: str
    right: str
    inline: Optional[str]
    line: str


@dataclass
class Assignment:
    name: str
    value: str
    line: str


@dataclass
class ListAssignment:
    name: str
    items: List[str]
    line: str


@dataclass
class GlobalDeclaration:
    """``glb <kind> <name> = <value>``; only recognized in fast mode."""

    kind: str
    name: str
    value: str
    line: str


@dataclass
class LogCall:
    arg: str
    line: str


@dataclass
class WaitCall:
    ms: float
    line: str


@dataclass
class Invalid:
    """A line that matches no statement form (or a malformed block)."""

    line: str
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = f'Unknown instruction or syntax: "{self.line}"'


@dataclass
class ForLoop:
    var: str
    start: str
    check: str
    end: str
    body: "Node"
    line: str


# --- Tree nodes --------------------------------------------------------------

@dataclass
class Branch:
    left: str
    right: str
    body: List["Node"]


@dataclass
class Conditional:
    branches: List[Branch]
    otherwise: Optional[List["Node"]]
    line: str


@dataclass
class During:
    left: str
    right: str
    body: List["Node"]
    line: str


@dataclass
class Dangling:
    """``Else``/``Else If`` that does not follow an ``If`` chain."""

    line: str
    is_else_if: bool = False


Statement = Union[
    Skip, IfHeader, ElseIfHeader, ElseHeader, DuringHeader, ForLoop,
    LogCall, WaitCall, Assignment, ListAssignment, GlobalDeclaration, Invalid,
]
Node = Union[Conditional, During, Dangling, ForLoop, LogCall, WaitCall, Assignment, ListAssignment, GlobalDeclaration, Invalid]
Matcher = Callable[[str], Optional[Statement]]


# --- Matchers ----------------------------------------------------------------

def _inline_body(rest: str) -> Tuple[bool, Optional[str]]:
    """Split what follows a header's ``{``.

    Returns (ok, inline): ``inline`` is None when the body is on the
    following lines, or the statement text of a one-line ``{ ... }`` body.
    """
    text = rest.strip()
    if not text:
        return True, None
    if text.endswith("}"):
        return True, text[:-1].strip()
    return False, None


def _match_skip(line: str) -> Optional[Statement]:
    if not line or line.startswith(COMMENT_PREFIXES) or DIRECTIVE_RE.match(line):
        return Skip(line)
    return None


def _match_conditional(regex, kind):
    def matcher(line: str) -> Optional[Statement]:
        m = regex.match(line)
        if not m:
            return None
        ok, inline = _inline_body(m.group("rest"))
        if not ok:
            return Invalid(line)
        return kind(m.group("left").strip(), m.group("right").strip(), inline, line)
    return matcher


def _match_else(line: str) -> Optional[Statement]:
    m = ELSE_RE.match(line)
    if not m:
        return None
    ok, inline = _inline_body(m.group("rest"))
    if not ok:
        return Invalid(line)
    return ElseHeader(inline, line)


def _match_for(line: str) -> Optional[Statement]:
    m = FOR_RE.match(line)
    if not m:
        return None
    body_text = m.group("body").strip()
    body = classify(body_text)
    if isinstance(body, (IfHeader, ElseIfHeader, ElseHeader, DuringHeader)):
        body = Invalid(body_text, f'For loop body must be a single statement: "{body_text}"')
    return ForLoop(
        m.group("var"),
        m.group("start").strip(),
        m.group("check"),
        m.group("end").strip(),
        body,
        line,
    )


def _match_log(line: str) -> Optional[Statement]:
    m = LOG_RE.match(line)
    return LogCall(m.group("arg").strip(), line) if m else None


def _match_wait(line: str) -> Optional[Statement]:
    m = WAIT_RE.match(line)
    # oversized digit strings become inf; the range is checked when the wait runs
    return WaitCall(float(m.group("ms")), line) if m else None


def _match_assignment(line: str) -> Optional[Statement]:
    m = ASSIGN_RE.match(line) or LET_RE.match(line)
    return Assignment(m.group("name"), m.group("value").strip(), line) if m else None


def list_literal_items(body: str) -> List[str]:
    return split_list_items(body) if body.strip() else []


def _match_list_assignment(line: str) -> Optional[Statement]:
    m = LIST_ASSIGN_RE.match(line)
    return ListAssignment(m.group("name"), list_literal_items(m.group("items")), line) if m else None


def _match_structural(line: str) -> Optional[Statement]:
    if _GROUPLET_RE.search(line) or _STRUCTURAL_RE.match(line):
        return Skip(line)
    return None


def _match_global(line: str) -> Optional[Statement]:
    m = GLOBAL_RE.match(line)
    if not m:
        return None
    return GlobalDeclaration(m.group("kind"), m.group("name"), m.group("value").strip(), line)


STANDARD_MATCHERS: Tuple[Matcher, ...] = (
    _match_skip,
    _match_conditional(IF_RE, IfHeader),
    _match_conditional(ELSE_IF_RE, ElseIfHeader),
    _match_else,
    _match_conditional(DURING_RE, DuringHeader),
    _match_for,
    _match_log,
    _match_wait,
    _match_assignment,
    _match_list_assignment,
)

FAST_MATCHERS: Tuple[Matcher, ...] = (
    _match_skip,
    _match_structural,
    _match_global,
    _match_assignment,
    _match_list_assignment,
    _match_log,
    _match_wait,
)


def _classify_with(matchers: Tuple[Matcher, ...], line: str) -> Statement:
    text = line.strip()
    for matcher in matchers:
        stmt = matcher(text)
        if stmt is not None:
            return stmt
    return Invalid(text)


def classify(line: str) -> Statement:
    """Classify one line for the standard engine."""
    return _classify_with(STANDARD_MATCHERS, line)


def classify_fast(line: str) -> Statement:
    """Classify one line for the fast-mode engine (no control flow)."""
    return _classify_with(FAST_MATCHERS, line)


# --- Block extraction --------------------------------------------------------

def closes_block(line: str) -> bool:
    return line.startswith("}") or (line.endswith("}") and "{" not in line)


def extract_block_span(lines: List[str], start_index: int) -> Tuple[List[str], int]:
    """Return (body_lines, closing_index) for the block opened at ``start_index``.

    The first line ending in ``{`` is the header. After it, a line ending in
    ``{`` goes one level deeper and a closing line goes one level up; a line
    shaped ``} ... {`` closes and reopens at the same depth. The scan stops
    when depth returns to zero. Body lines are trimmed; the header and the
    closing line are excluded.

    Raises:
        ScriptSyntaxError: no block opens at ``start_index`` or the block is
            never closed.
    """
    body: List[str] = []
    depth = 0
    header: Optional[str] = None
    for j in range(start_index, len(lines)):
        line = lines[j].strip()
        if header is None:
            if line.endswith("{"):
                header = line
                depth = 1
            continue
        if closes_block(line):
            depth -= 1
            if depth == 0:
                return body, j
            if line.endswith("{"):
                depth += 1
        elif line.endswith("{"):
            depth += 1
        body.append(line)
    if header is None:
        raise ScriptSyntaxError(f"No block opens at line {start_index + 1}")
    raise ScriptSyntaxError(f"Missing closing '}}' for block: {header}", line_text=header)


def extract_block(lines: List[str], start_index: int) -> List[str]:
    """Return the lines strictly inside the block opened at ``start_index``."""
    return extract_block_span(lines, start_index)[0]


# --- Tree building -----------------------------------------------------------

def _parse_body(lines: List[str], i: int, inline: Optional[str]) -> Tuple[List[Node], int]:
    """Parse the body of the header at ``i``; return (nodes, next_index)."""
    if inline is not None:
        return parse_block([inline] if inline else []), i + 1
    body, end = extract_block_span(lines, i)
    rest = lines[end].strip()
    if rest.startswith("}") and rest[1:].strip():
        # `} Else {`: the remainder of the closing line is the next statement
        lines[end] = rest[1:].strip()
        return parse_block(body), end
    return parse_block(body), end + 1


def _parse_conditional(lines: List[str], i: int, header: IfHeader) -> Tuple[Conditional, int]:
    body, i = _parse_body(lines, i, header.inline)
    branches = [Branch(header.left, header.right, body)]
    otherwise: Optional[List[Node]] = None
    while True:
        j = i
        while j < len(lines) and not lines[j]:
            j += 1
        if j >= len(lines):
            break
        stmt = classify(lines[j])
        if isinstance(stmt, ElseIfHeader):
            body, i = _parse_body(lines, j, stmt.inline)
            branches.append(Branch(stmt.left, stmt.right, body))
        elif isinstance(stmt, ElseHeader):
            otherwise, i = _parse_body(lines, j, stmt.inline)
            break
        else:
            break
    return Conditional(branches, otherwise, header.line), i


def parse_block(raw_lines: List[str]) -> List[Node]:
    """Build the statement tree for a standard-mode line list.

    Parsing never raises: malformed blocks become an ``Invalid`` node and
    stop the parse at that point.
    """
    lines = [raw.strip() for raw in raw_lines]
    nodes: List[Node] = []
    i = 0
    while i < len(lines):
        stmt = classify(lines[i])
        if isinstance(stmt, Skip):
            i += 1
            continue
        try:
            if isinstance(stmt, IfHeader):
                node, i = _parse_conditional(lines, i, stmt)
            elif isinstance(stmt, DuringHeader):
                body, i = _parse_body(lines, i, stmt.inline)
                node = During(stmt.left, stmt.right, body, stmt.line)
            elif isinstance(stmt, (ElseIfHeader, ElseHeader)):
                node = Dangling(stmt.line, is_else_if=isinstance(stmt, ElseIfHeader))
                i += 1
            else:
                node = stmt
                i += 1
        except ScriptSyntaxError as e:
            nodes.append(Invalid(lines[i], str(e)))
            break
        nodes.append(node)
    return nodes
