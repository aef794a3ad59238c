"""
ncsl/reader.py - S-expression reader for NCSL source text.

The reader only knows about lists, atoms and string literals; the
meaning of each form is decided by :mod:`ncsl.parser`.  Every datum
keeps its character offsets so the parser can give each syntax node an
exact :class:`~nullcontracts.syntax.Span`.

Comments run from ``;`` to the end of the line.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from nullcontracts.errors import NullContractsError
from nullcontracts.syntax import Span

logger = logging.getLogger(__name__)

__all__ = ["Atom", "SList", "Datum", "Source", "NcslSyntaxError", "read"]


# ═══════════════════════════════════════════════════════════════════
#  PART 1: GRAMMAR
# ═══════════════════════════════════════════════════════════════════

NCSL_GRAMMAR = Grammar(r'''
    document    = _ datum*
    datum       = (list / string / atom) _
    list        = "(" _ datum* ")"
    string      = ~r'"(?:[^"\\]|\\.)*"'
    atom        = ~r'[^\s()";]+'
    _           = (whitespace / comment)*
    whitespace  = ~r'\s+'
    comment     = ~r';[^\n]*'
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2: DATA
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Atom:
    """A bare symbol, number, or (when ``quoted``) a string literal."""

    text: str
    start: int
    end: int
    quoted: bool = False

    @property
    def is_keyword(self) -> bool:
        return not self.quoted and self.text.startswith(":")


@dataclass(frozen=True, slots=True)
class SList:
    items: Tuple["Datum", ...]
    start: int
    end: int

    @property
    def head(self) -> Optional[str]:
        if self.items and isinstance(self.items[0], Atom) and not self.items[0].quoted:
            return self.items[0].text
        return None

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]


Datum = Union[Atom, SList]


class NcslSyntaxError(NullContractsError):
    """Malformed NCSL text, with the position it was detected at."""

    def __init__(self, message: str, span: Optional[Span] = None) -> None:
        super().__init__(message)
        self.message = message
        self.span = span

    def __str__(self) -> str:
        if self.span is not None:
            return f"{self.span}: {self.message}"
        return self.message


class Source:
    """Source text plus an offset → line/column index."""

    def __init__(self, text: str, file: str = "<string>") -> None:
        self.text = text
        self.file = file
        self._line_starts = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._line_starts.append(index + 1)

    def position(self, offset: int) -> Tuple[int, int]:
        """1-based ``(line, column)`` of *offset*."""
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return line + 1, offset - self._line_starts[line] + 1

    def span(self, start: int, end: int) -> Span:
        line, column = self.position(start)
        return Span(start, end, line, column, self.file)

    def span_of(self, datum: Datum) -> Span:
        return self.span(datum.start, datum.end)


# ═══════════════════════════════════════════════════════════════════
#  PART 3: VISITOR (parse tree → data)
# ═══════════════════════════════════════════════════════════════════

def _unescape(body: str) -> str:
    out = []
    chars = iter(body)
    for char in chars:
        if char == "\\":
            escaped = next(chars, "")
            out.append({"n": "\n", "t": "\t"}.get(escaped, escaped))
        else:
            out.append(char)
    return "".join(out)


class _DatumBuilder(NodeVisitor):
    """Transforms the parsimonious parse tree into :class:`Datum` values."""

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_document(self, node, visited_children):
        _, data = visited_children
        return _data(data)

    def visit_datum(self, node, visited_children):
        (value,), _ = visited_children
        return value

    def visit_list(self, node, visited_children):
        _, _, data, _ = visited_children
        return SList(tuple(_data(data)), node.start, node.end)

    def visit_string(self, node, visited_children):
        return Atom(_unescape(node.text[1:-1]), node.start, node.end, quoted=True)

    def visit_atom(self, node, visited_children):
        return Atom(node.text, node.start, node.end)


def _data(children) -> List[Datum]:
    # ``datum*`` visits to a list when it matched, to the bare node otherwise.
    if not isinstance(children, list):
        return []
    return [c for c in children if isinstance(c, (Atom, SList))]


def read(source: Source) -> List[Datum]:
    """Read every top-level datum of *source*.

    Raises :class:`NcslSyntaxError` on unbalanced parentheses, stray
    characters or unterminated strings.
    """
    try:
        tree = NCSL_GRAMMAR.parse(source.text)
    except ParseError as exc:
        offset = exc.pos if exc.pos is not None else 0
        snippet = source.text[offset:offset + 20].split("\n", 1)[0]
        raise NcslSyntaxError(
            f"unreadable text near {snippet!r}", source.span(offset, offset)
        ) from exc
    try:
        data = _DatumBuilder().visit(tree)
    except VisitationError as exc:
        raise NcslSyntaxError(str(exc)) from exc
    logger.debug("read %d top-level forms from %s", len(data), source.file)
    return data
