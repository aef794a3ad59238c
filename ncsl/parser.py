"""
ncsl/parser.py - NCSL forms → :mod:`nullcontracts.syntax` trees.

NCSL is a parenthesised rendition of the C#-like subset the engine
analyses::

    (class Person
      (field name String :notnull)
      (method Greet String ((other Person)) :notnull
        (if (!= other null)
          (return other.name))
        (return "nobody")))

Dispatch
--------
Every list form is dispatched on its head symbol through one of three
tables (members, statements, expressions) filled by ``@_register``.
Bare atoms are names, literals or dotted access chains: ``a.b?.c`` is
sugar for ``(?. (. a b) c)``.

Binary operators accept more than two operands and associate to the
left: ``(&& a b c)`` is ``(a && b) && c``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from nullcontracts import syntax as S
from ncsl.reader import Atom, Datum, NcslSyntaxError, SList, Source, read

logger = logging.getLogger(__name__)

__all__ = ["NcslSyntaxError", "parse_source", "parse_file", "STATEMENT_HEADS"]


BINARY_OPERATORS = frozenset({
    "==", "!=", "&&", "||", "??", "+", "-", "*", "/", "%", "<", ">", "<=", ">=",
})

_NUMBER = re.compile(r"-?\d+(\.\d+)?$")
_ACCESS = re.compile(r"\?\.|\.")

_FLAG_ATTRIBUTES = {":notnull": "NotNull", ":checknull": "CheckNull"}
_REF_FLAGS = {":out": S.RefKind.OUT, ":ref": S.RefKind.REF, ":params": S.RefKind.PARAMS}


# ═══════════════════════════════════════════════════════════════════════
#  Dispatch registry
# ═══════════════════════════════════════════════════════════════════════

_MEMBER_DISPATCH: Dict[str, Callable[..., S.Member]] = {}
_STATEMENT_DISPATCH: Dict[str, Callable[..., S.Statement]] = {}
_EXPRESSION_DISPATCH: Dict[str, Callable[..., S.Expression]] = {}


def _register(table: dict, *tags: str):
    """Decorator: register a parser function under each of *tags* in *table*."""
    def deco(fn):
        for tag in tags:
            table[tag] = fn
        return fn
    return deco


class _Parser:
    """Shared state for one source file: span lookup and the entry points."""

    def __init__(self, source: Source) -> None:
        self.source = source

    # -- helpers ----------------------------------------------------------

    def span(self, datum: Datum) -> S.Span:
        return self.source.span_of(datum)

    def error(self, message: str, datum: Optional[Datum] = None) -> NcslSyntaxError:
        return NcslSyntaxError(message, self.span(datum) if datum is not None else None)

    def expect_list(self, datum: Datum, *, min_len: int = 0,
                    tag: Optional[str] = None) -> SList:
        if not isinstance(datum, SList):
            raise self.error(
                f"expected list{f' ({tag} ...)' if tag else ''}, got {datum.text!r}", datum)
        if len(datum) < min_len:
            raise self.error(
                f"({datum.head} ...) needs at least {min_len - 1} operand(s)", datum)
        if tag is not None and datum.head != tag:
            raise self.error(f"expected ({tag} ...), got ({datum.head} ...)", datum)
        return datum

    def symbol(self, datum: Datum, what: str = "name") -> str:
        if not isinstance(datum, Atom) or datum.quoted or datum.is_keyword:
            raise self.error(f"expected {what}", datum)
        return datum.text

    def flags(self, data: Sequence[Datum]) -> Tuple[FrozenSet[str], FrozenSet[str], List[Datum]]:
        """Split leading-or-trailing ``:keyword`` atoms from the other data.

        Returns ``(attributes, modifiers, rest)``.
        """
        attributes, modifiers, rest = set(), set(), []
        for datum in data:
            if isinstance(datum, Atom) and datum.is_keyword:
                if datum.text in _FLAG_ATTRIBUTES:
                    attributes.add(_FLAG_ATTRIBUTES[datum.text])
                else:
                    modifiers.add(datum.text)
            else:
                rest.append(datum)
        return frozenset(attributes), frozenset(modifiers), rest

    # -- entry points -------------------------------------------------------

    def unit(self, data: Sequence[Datum]) -> S.CompilationUnit:
        types = tuple(self.type_declaration(d) for d in data)
        span = (self.source.span(data[0].start, data[-1].end) if data
                else self.source.span(0, 0))
        return S.CompilationUnit(types, self.source.file, span)

    def type_declaration(self, datum: Datum) -> S.TypeDeclaration:
        s = self.expect_list(datum, min_len=2)
        if s.head not in ("class", "struct"):
            raise self.error(f"expected (class ...) or (struct ...), got ({s.head} ...)", s)
        name = self.symbol(s[1], "type name")
        members = tuple(self.member(m) for m in s[2:])
        return S.TypeDeclaration(name, members, s.head == "struct", self.span(s))

    def member(self, datum: Datum) -> S.Member:
        s = self.expect_list(datum, min_len=1)
        fn = _MEMBER_DISPATCH.get(s.head or "")
        if fn is None:
            raise self.error(f"unknown member form ({s.head} ...)", s)
        return fn(self, s)

    def statement(self, datum: Datum) -> S.Statement:
        if isinstance(datum, SList):
            fn = _STATEMENT_DISPATCH.get(datum.head or "")
            if fn is not None:
                return fn(self, datum)
        expr = self.expression(datum)
        return S.ExpressionStatement(expr, expr.span)

    def statements(self, data: Sequence[Datum]) -> Tuple[S.Statement, ...]:
        return tuple(self.statement(d) for d in data)

    def block(self, data: Sequence[Datum], owner: Datum) -> S.Block:
        if data:
            span = self.source.span(data[0].start, data[-1].end)
        else:
            span = self.source.span(owner.end, owner.end)
        return S.Block(self.statements(data), span)

    def expression(self, datum: Datum) -> S.Expression:
        if isinstance(datum, Atom):
            return self.atom(datum)
        if not datum.items:
            raise self.error("empty form is not an expression", datum)
        head = datum.head
        if head in BINARY_OPERATORS:
            if head == "-" and len(datum) == 2:
                return S.Unary("-", self.expression(datum[1]), self.span(datum))
            return self.binary(datum)
        fn = _EXPRESSION_DISPATCH.get(head or "")
        if fn is None:
            raise self.error(f"unknown expression form ({head} ...)", datum)
        return fn(self, datum)

    def atom(self, atom: Atom) -> S.Expression:
        span = self.span(atom)
        if atom.quoted:
            return S.Literal(S.LiteralKind.STRING, atom.text, span)
        text = atom.text
        if atom.is_keyword:
            raise self.error(f"keyword {text} is not an expression", atom)
        if text == "null":
            return S.Literal(S.LiteralKind.NULL, None, span)
        if text in ("true", "false"):
            return S.Literal(S.LiteralKind.BOOL, text == "true", span)
        if _NUMBER.match(text):
            value = float(text) if "." in text else int(text)
            return S.Literal(S.LiteralKind.NUMBER, value, span)
        return self.access_chain(atom)

    def access_chain(self, atom: Atom) -> S.Expression:
        """``a.b?.c`` → nested :class:`MemberAccess` / :class:`ConditionalAccess`."""
        text = atom.text
        pieces = _ACCESS.split(text)
        operators = _ACCESS.findall(text)
        if any(not p for p in pieces):
            raise self.error(f"malformed member access {text!r}", atom)
        first = pieces[0]
        end = atom.start + len(first)
        node: S.Expression
        if first == "this":
            node = S.This(self.source.span(atom.start, end))
        else:
            node = S.Name(first, self.source.span(atom.start, end))
        for operator, piece in zip(operators, pieces[1:]):
            end += len(operator) + len(piece)
            span = self.source.span(atom.start, end)
            if operator == "?.":
                node = S.ConditionalAccess(node, piece, span)
            else:
                node = S.MemberAccess(node, piece, span)
        return node

    def binary(self, s: SList) -> S.Expression:
        if len(s) < 3:
            raise self.error(f"({s.head} ...) needs at least two operands", s)
        operands = [self.expression(d) for d in s[1:]]
        node = operands[0]
        for datum, right in zip(s[2:], operands[1:]):
            node = S.Binary(s.head, node, right, self.source.span(s[1].start, datum.end))
        # The outermost node covers the whole form, parentheses included.
        return S.Binary(node.operator, node.left, node.right, self.span(s))

    def parameters(self, datum: Datum) -> Tuple[S.Parameter, ...]:
        s = self.expect_list(datum)
        return tuple(self.parameter(p) for p in s.items)

    def parameter(self, datum: Datum) -> S.Parameter:
        if isinstance(datum, Atom):
            return S.Parameter(self.symbol(datum, "parameter name"), span=self.span(datum))
        s = self.expect_list(datum, min_len=1)
        attributes, modifiers, rest = self.flags(s.items)
        name = self.symbol(rest[0], "parameter name")
        type_name = self.symbol(rest[1], "parameter type") if len(rest) > 1 else None
        ref_kind = S.RefKind.NONE
        for flag, kind in _REF_FLAGS.items():
            if flag in modifiers:
                ref_kind = kind
        return S.Parameter(name, type_name, attributes, ref_kind, self.span(s))

    def arguments(self, data: Sequence[Datum]) -> Tuple[S.Argument, ...]:
        args = []
        for datum in data:
            if isinstance(datum, SList) and datum.head in ("out", "ref"):
                self.expect_list(datum, min_len=2)
                kind = S.RefKind.OUT if datum.head == "out" else S.RefKind.REF
                args.append(S.Argument(self.expression(datum[1]), kind, self.span(datum)))
            elif isinstance(datum, SList) and datum.head == "out-var":
                self.expect_list(datum, min_len=2)
                variable = S.OutVariable(
                    self.symbol(datum[1]),
                    self.symbol(datum[2], "type") if len(datum) > 2 else None,
                    self.span(datum),
                )
                args.append(S.Argument(variable, S.RefKind.OUT, self.span(datum)))
            else:
                expr = self.expression(datum)
                args.append(S.Argument(expr, S.RefKind.NONE, expr.span))
        return tuple(args)

    def initializer_clause(self, data: Sequence[Datum], tag: str) -> Optional[S.Expression]:
        for datum in data:
            if isinstance(datum, SList) and datum.head == tag:
                self.expect_list(datum, min_len=2)
                return self.expression(datum[1])
        return None


# ═══════════════════════════════════════════════════════════════════════
#  Members
# ═══════════════════════════════════════════════════════════════════════

@_register(_MEMBER_DISPATCH, "field")
def _parse_field(p: _Parser, s: SList) -> S.FieldDeclaration:
    p.expect_list(s, min_len=3)
    attributes, modifiers, rest = p.flags(s[1:])
    name = p.symbol(rest[0], "field name")
    type_name = p.symbol(rest[1], "field type")
    init = p.initializer_clause(rest[2:], "init")
    return S.FieldDeclaration(
        name, type_name, attributes,
        is_readonly=":readonly" in modifiers,
        is_static=":static" in modifiers,
        initializer=init,
        span=p.span(s),
    )


@_register(_MEMBER_DISPATCH, "property")
def _parse_property(p: _Parser, s: SList) -> S.PropertyDeclaration:
    p.expect_list(s, min_len=3)
    attributes, modifiers, rest = p.flags(s[1:])
    name = p.symbol(rest[0], "property name")
    type_name = p.symbol(rest[1], "property type")
    return S.PropertyDeclaration(
        name, type_name, attributes,
        is_static=":static" in modifiers,
        initializer=p.initializer_clause(rest[2:], "init"),
        expression_body=p.initializer_clause(rest[2:], "=>"),
        span=p.span(s),
    )


@_register(_MEMBER_DISPATCH, "method")
def _parse_method(p: _Parser, s: SList) -> S.MethodDeclaration:
    p.expect_list(s, min_len=4)
    name = p.symbol(s[1], "method name")
    return_type = p.symbol(s[2], "return type")
    parameters = p.parameters(s[3])
    attributes, modifiers, rest = p.flags(s[4:])
    body: Optional[S.Block] = None
    expression_body: Optional[S.Expression] = None
    if len(rest) == 1 and isinstance(rest[0], SList) and rest[0].head == "=>":
        p.expect_list(rest[0], min_len=2)
        expression_body = p.expression(rest[0][1])
    elif ":abstract" not in modifiers:
        body = p.block(rest, s)
    return S.MethodDeclaration(
        name, return_type, parameters, attributes,
        is_static=":static" in modifiers,
        body=body,
        expression_body=expression_body,
        span=p.span(s),
    )


@_register(_MEMBER_DISPATCH, "ctor")
def _parse_ctor(p: _Parser, s: SList) -> S.ConstructorDeclaration:
    p.expect_list(s, min_len=2)
    return S.ConstructorDeclaration(p.parameters(s[1]), p.block(s[2:], s), p.span(s))


# ═══════════════════════════════════════════════════════════════════════
#  Statements
# ═══════════════════════════════════════════════════════════════════════

@_register(_STATEMENT_DISPATCH, "block")
def _parse_block(p: _Parser, s: SList) -> S.Block:
    return S.Block(p.statements(s[1:]), p.span(s))


@_register(_STATEMENT_DISPATCH, "var")
def _parse_var(p: _Parser, s: SList) -> S.LocalDeclaration:
    p.expect_list(s, min_len=3)
    name = p.symbol(s[1], "variable name")
    type_name = p.symbol(s[2], "variable type")
    init = p.expression(s[3]) if len(s) > 3 else None
    return S.LocalDeclaration(name, None if type_name == "var" else type_name, init, p.span(s))


@_register(_STATEMENT_DISPATCH, "if")
def _parse_if(p: _Parser, s: SList) -> S.IfStatement:
    p.expect_list(s, min_len=3)
    orelse = p.statement(s[3]) if len(s) > 3 else None
    return S.IfStatement(p.expression(s[1]), p.statement(s[2]), orelse, p.span(s))


@_register(_STATEMENT_DISPATCH, "while")
def _parse_while(p: _Parser, s: SList) -> S.WhileStatement:
    p.expect_list(s, min_len=2)
    return S.WhileStatement(p.expression(s[1]), p.block(s[2:], s), p.span(s))


@_register(_STATEMENT_DISPATCH, "do")
def _parse_do(p: _Parser, s: SList) -> S.DoStatement:
    p.expect_list(s, min_len=2)
    condition = p.expression(s[1])
    return S.DoStatement(p.block(s[2:], s), condition, p.span(s))


def _for_clause(p: _Parser, datum: Datum) -> S.Node:
    if isinstance(datum, SList) and datum.head == "var":
        return p.statement(datum)
    return p.expression(datum)


@_register(_STATEMENT_DISPATCH, "for")
def _parse_for(p: _Parser, s: SList) -> S.ForStatement:
    p.expect_list(s, min_len=4)
    initializers = tuple(_for_clause(p, d) for d in p.expect_list(s[1]).items)
    condition = None
    if not (isinstance(s[2], SList) and not s[2].items):
        condition = p.expression(s[2])
    incrementors = tuple(p.expression(d) for d in p.expect_list(s[3]).items)
    return S.ForStatement(initializers, condition, incrementors, p.block(s[4:], s), p.span(s))


@_register(_STATEMENT_DISPATCH, "foreach")
def _parse_foreach(p: _Parser, s: SList) -> S.ForEachStatement:
    p.expect_list(s, min_len=4)
    name = p.symbol(s[1], "loop variable")
    type_name = p.symbol(s[2], "loop variable type")
    return S.ForEachStatement(
        name, None if type_name == "var" else type_name,
        p.expression(s[3]), p.block(s[4:], s), p.span(s),
    )


def _parse_label(p: _Parser, datum: Datum) -> S.Node:
    if isinstance(datum, SList) and datum.head == "pattern":
        p.expect_list(datum, min_len=2)
        designation = p.symbol(datum[2]) if len(datum) > 2 else None
        return S.PatternLabel(p.symbol(datum[1], "type"), designation, p.span(datum))
    value = p.expression(datum)
    return S.CaseLabel(value, value.span)


@_register(_STATEMENT_DISPATCH, "switch")
def _parse_switch(p: _Parser, s: SList) -> S.SwitchStatement:
    p.expect_list(s, min_len=2)
    sections = []
    for datum in s[2:]:
        section = p.expect_list(datum, min_len=1)
        if section.head == "default":
            labels: Tuple[S.Node, ...] = (S.DefaultLabel(p.span(section[0])),)
            body = section[1:]
        elif section.head == "case":
            p.expect_list(section, min_len=2)
            labels = (_parse_label(p, section[1]),)
            body = section[2:]
        else:
            raise p.error(f"expected (case ...) or (default ...), got ({section.head} ...)", section)
        sections.append(S.SwitchSection(labels, p.statements(body), p.span(section)))
    return S.SwitchStatement(p.expression(s[1]), tuple(sections), p.span(s))


@_register(_STATEMENT_DISPATCH, "try")
def _parse_try(p: _Parser, s: SList) -> S.TryStatement:
    p.expect_list(s, min_len=2)
    block = _parse_block(p, p.expect_list(s[1], tag="block"))
    catches = []
    finalbody = None
    for datum in s[2:]:
        clause = p.expect_list(datum, min_len=1)
        if clause.head == "catch":
            header = []
            for item in clause[1:3]:
                if isinstance(item, Atom):
                    header.append(p.symbol(item))
                else:
                    break
            type_name = header[0] if header else None
            name = header[1] if len(header) > 1 else None
            body = clause[1 + len(header):]
            catches.append(S.CatchClause(type_name, name, p.block(body, clause), p.span(clause)))
        elif clause.head == "finally":
            finalbody = p.block(clause[1:], clause)
        else:
            raise p.error(f"expected (catch ...) or (finally ...), got ({clause.head} ...)", clause)
    return S.TryStatement(block, tuple(catches), finalbody, p.span(s))


@_register(_STATEMENT_DISPATCH, "using")
def _parse_using(p: _Parser, s: SList) -> S.UsingStatement:
    p.expect_list(s, min_len=2)
    return S.UsingStatement(_for_clause(p, s[1]), p.block(s[2:], s), p.span(s))


@_register(_STATEMENT_DISPATCH, "lock")
def _parse_lock(p: _Parser, s: SList) -> S.LockStatement:
    p.expect_list(s, min_len=2)
    return S.LockStatement(p.expression(s[1]), p.block(s[2:], s), p.span(s))


@_register(_STATEMENT_DISPATCH, "return")
def _parse_return(p: _Parser, s: SList) -> S.ReturnStatement:
    return S.ReturnStatement(p.expression(s[1]) if len(s) > 1 else None, p.span(s))


@_register(_STATEMENT_DISPATCH, "throw")
def _parse_throw(p: _Parser, s: SList) -> S.ThrowStatement:
    return S.ThrowStatement(p.expression(s[1]) if len(s) > 1 else None, p.span(s))


@_register(_STATEMENT_DISPATCH, "break")
def _parse_break(p: _Parser, s: SList) -> S.BreakStatement:
    return S.BreakStatement(p.span(s))


@_register(_STATEMENT_DISPATCH, "continue")
def _parse_continue(p: _Parser, s: SList) -> S.ContinueStatement:
    return S.ContinueStatement(p.span(s))


#: Heads that always start a statement, never an expression.
STATEMENT_HEADS: FrozenSet[str] = frozenset(_STATEMENT_DISPATCH)


# ═══════════════════════════════════════════════════════════════════════
#  Expressions
# ═══════════════════════════════════════════════════════════════════════

@_register(_EXPRESSION_DISPATCH, ".")
def _parse_member_access(p: _Parser, s: SList) -> S.MemberAccess:
    p.expect_list(s, min_len=3)
    return S.MemberAccess(p.expression(s[1]), p.symbol(s[2], "member name"), p.span(s))


@_register(_EXPRESSION_DISPATCH, "?.")
def _parse_conditional_access(p: _Parser, s: SList) -> S.ConditionalAccess:
    p.expect_list(s, min_len=3)
    return S.ConditionalAccess(p.expression(s[1]), p.symbol(s[2], "member name"), p.span(s))


@_register(_EXPRESSION_DISPATCH, "index")
def _parse_index(p: _Parser, s: SList) -> S.ElementAccess:
    p.expect_list(s, min_len=3)
    return S.ElementAccess(p.expression(s[1]), p.expression(s[2]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "call")
def _parse_call(p: _Parser, s: SList) -> S.Invocation:
    p.expect_list(s, min_len=2)
    return S.Invocation(p.expression(s[1]), p.arguments(s[2:]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "new")
def _parse_new(p: _Parser, s: SList) -> S.ObjectCreation:
    p.expect_list(s, min_len=2)
    return S.ObjectCreation(p.symbol(s[1], "type"), p.arguments(s[2:]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "=")
def _parse_assignment(p: _Parser, s: SList) -> S.Assignment:
    p.expect_list(s, min_len=3)
    return S.Assignment(p.expression(s[1]), p.expression(s[2]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "!")
def _parse_not(p: _Parser, s: SList) -> S.Unary:
    p.expect_list(s, min_len=2)
    return S.Unary("!", p.expression(s[1]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "is")
def _parse_is(p: _Parser, s: SList) -> S.IsType:
    p.expect_list(s, min_len=3)
    designation = p.symbol(s[3], "variable name") if len(s) > 3 else None
    return S.IsType(p.expression(s[1]), p.symbol(s[2], "type"), designation, p.span(s))


@_register(_EXPRESSION_DISPATCH, "as")
def _parse_as(p: _Parser, s: SList) -> S.AsExpression:
    p.expect_list(s, min_len=3)
    return S.AsExpression(p.expression(s[1]), p.symbol(s[2], "type"), p.span(s))


@_register(_EXPRESSION_DISPATCH, "cast")
def _parse_cast(p: _Parser, s: SList) -> S.Cast:
    p.expect_list(s, min_len=3)
    return S.Cast(p.symbol(s[1], "type"), p.expression(s[2]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "paren")
def _parse_paren(p: _Parser, s: SList) -> S.Parenthesized:
    p.expect_list(s, min_len=2)
    return S.Parenthesized(p.expression(s[1]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "?")
def _parse_conditional(p: _Parser, s: SList) -> S.Conditional:
    p.expect_list(s, min_len=4)
    return S.Conditional(p.expression(s[1]), p.expression(s[2]), p.expression(s[3]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "lambda")
def _parse_lambda(p: _Parser, s: SList) -> S.Lambda:
    p.expect_list(s, min_len=2)
    parameters = p.parameters(s[1])
    body_data = s[2:]
    body: S.Node
    if (len(body_data) == 1
            and not (isinstance(body_data[0], SList) and body_data[0].head in STATEMENT_HEADS)):
        body = p.expression(body_data[0])
    else:
        body = p.block(body_data, s)
    return S.Lambda(parameters, body, p.span(s))


@_register(_EXPRESSION_DISPATCH, "await")
def _parse_await(p: _Parser, s: SList) -> S.Await:
    p.expect_list(s, min_len=2)
    return S.Await(p.expression(s[1]), p.span(s))


@_register(_EXPRESSION_DISPATCH, "this")
def _parse_this(p: _Parser, s: SList) -> S.This:
    return S.This(p.span(s))


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def parse_source(text: str, file: str = "<string>") -> S.CompilationUnit:
    """Parse NCSL *text* into a :class:`~nullcontracts.syntax.CompilationUnit`.

    Raises :class:`NcslSyntaxError` when the text is malformed.
    """
    source = Source(text, file)
    unit = _Parser(source).unit(read(source))
    logger.debug("parsed %s: %d type(s)", file, len(unit.types))
    return unit


def parse_file(path: Union[str, Path]) -> S.CompilationUnit:
    path = Path(path)
    return parse_source(path.read_text(encoding="utf-8"), str(path))
