"""nullcontracts/syntax.py – the parsed program representation.

The engine never reads source text.  It walks an immutable tree of the
dataclasses below, produced by a front end (see :mod:`ncsl.parser`).

Design invariants
-----------------
* Every node is a ``@dataclass(frozen=True, eq=False, slots=True)``.
  Equality and hashing are by *identity*: two textually identical
  occurrences of ``x`` are different nodes, which is exactly what the
  point-query engine needs to tell a use from a reassignment.
* Children are stored in tuples, in source order.  ``iter_child_nodes``
  relies on dataclass field order, so fields are declared in the order
  they appear in source.
* Every node carries a :class:`Span` (character offsets plus line and
  column).  Spans are excluded from ``repr``.

Module layout
-------------
§1  Spans
§2  Declarations
§3  Statements
§4  Expressions
§5  Traversal (``iter_child_nodes``, ``walk``, ``contains``, ``SyntaxWalker``)
§6  Canonical rendering
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterator, Optional, Tuple

from nullcontracts.errors import ParseFailedError

__all__ = [
    "Span", "NO_SPAN", "RefKind", "LiteralKind",
    "Node", "Statement", "Expression", "Member",
    "CompilationUnit", "TypeDeclaration", "Parameter", "FieldDeclaration",
    "PropertyDeclaration", "MethodDeclaration", "ConstructorDeclaration",
    "Block", "LocalDeclaration", "ExpressionStatement", "IfStatement",
    "WhileStatement", "DoStatement", "ForStatement", "ForEachStatement",
    "SwitchStatement", "SwitchSection", "CaseLabel", "PatternLabel",
    "DefaultLabel", "TryStatement", "CatchClause", "UsingStatement",
    "LockStatement", "ReturnStatement", "ThrowStatement", "BreakStatement",
    "ContinueStatement",
    "Name", "Literal", "This", "MemberAccess", "ConditionalAccess",
    "ElementAccess", "Argument", "OutVariable", "Invocation",
    "ObjectCreation", "Assignment", "Binary", "Unary", "IsType",
    "AsExpression", "Cast", "Parenthesized", "Conditional", "Lambda", "Await",
    "iter_child_nodes", "walk", "contains", "strip_parentheses",
    "statements_of", "SyntaxWalker", "render",
]


# ════════════════════════════════════════════════════════════════════════
# §1  Spans
# ════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Span:
    """A half-open character range ``[start, end)`` in one source file."""

    start: int = 0
    end: int = 0
    line: int = 0
    column: int = 0
    file: str = "<string>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


#: Span for nodes synthesised without a source position.
NO_SPAN = Span()


class RefKind(Enum):
    """How an argument or parameter is passed."""

    NONE = "none"
    OUT = "out"
    REF = "ref"
    PARAMS = "params"


class LiteralKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"


class Node:
    """Common base of every syntax node."""

    __slots__ = ()

    @property
    def kind(self) -> str:
        return type(self).__name__


class Statement(Node):
    __slots__ = ()


class Expression(Node):
    __slots__ = ()


class Member(Node):
    __slots__ = ()


_node = dataclass(frozen=True, eq=False, slots=True)


# ════════════════════════════════════════════════════════════════════════
# §2  Declarations
# ════════════════════════════════════════════════════════════════════════

@_node
class Parameter(Node):
    name: str
    type_name: Optional[str] = None
    attributes: FrozenSet[str] = frozenset()
    ref_kind: RefKind = RefKind.NONE
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class FieldDeclaration(Member):
    name: str
    type_name: str
    attributes: FrozenSet[str] = frozenset()
    is_readonly: bool = False
    is_static: bool = False
    initializer: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class PropertyDeclaration(Member):
    name: str
    type_name: str
    attributes: FrozenSet[str] = frozenset()
    is_static: bool = False
    initializer: Optional[Expression] = None
    expression_body: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class MethodDeclaration(Member):
    name: str
    return_type: str
    parameters: Tuple[Parameter, ...] = ()
    attributes: FrozenSet[str] = frozenset()
    is_static: bool = False
    body: Optional["Block"] = None
    expression_body: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ConstructorDeclaration(Member):
    parameters: Tuple[Parameter, ...] = ()
    body: Optional["Block"] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class TypeDeclaration(Node):
    name: str
    members: Tuple[Member, ...] = ()
    is_struct: bool = False
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class CompilationUnit(Node):
    types: Tuple[TypeDeclaration, ...] = ()
    file: str = "<string>"
    span: Span = field(default=NO_SPAN, repr=False)


# ════════════════════════════════════════════════════════════════════════
# §3  Statements
# ════════════════════════════════════════════════════════════════════════

@_node
class Block(Statement):
    statements: Tuple[Statement, ...] = ()
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class LocalDeclaration(Statement):
    """``T name = initializer;`` – ``type_name`` is ``None`` for ``var``."""

    name: str
    type_name: Optional[str] = None
    initializer: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ExpressionStatement(Statement):
    expression: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class IfStatement(Statement):
    condition: Expression
    then: Statement
    orelse: Optional[Statement] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class WhileStatement(Statement):
    condition: Expression
    body: Statement
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class DoStatement(Statement):
    body: Statement
    condition: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ForStatement(Statement):
    initializers: Tuple[Node, ...] = ()
    condition: Optional[Expression] = None
    incrementors: Tuple[Expression, ...] = ()
    body: Statement = field(default_factory=Block)
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ForEachStatement(Statement):
    name: str
    type_name: Optional[str]
    collection: Expression
    body: Statement
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class CaseLabel(Node):
    value: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class PatternLabel(Node):
    """``case T name:`` – a type pattern, optionally binding ``name``."""

    type_name: str
    designation: Optional[str] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class DefaultLabel(Node):
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class SwitchSection(Node):
    labels: Tuple[Node, ...] = ()
    statements: Tuple[Statement, ...] = ()
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class SwitchStatement(Statement):
    expression: Expression
    sections: Tuple[SwitchSection, ...] = ()
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class CatchClause(Node):
    type_name: Optional[str] = None
    name: Optional[str] = None
    block: Block = field(default_factory=Block)
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class TryStatement(Statement):
    block: Block
    catches: Tuple[CatchClause, ...] = ()
    finalbody: Optional[Block] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class UsingStatement(Statement):
    resource: Node
    body: Statement
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class LockStatement(Statement):
    expression: Expression
    body: Statement
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ReturnStatement(Statement):
    expression: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ThrowStatement(Statement):
    expression: Optional[Expression] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class BreakStatement(Statement):
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ContinueStatement(Statement):
    span: Span = field(default=NO_SPAN, repr=False)


# ════════════════════════════════════════════════════════════════════════
# §4  Expressions
# ════════════════════════════════════════════════════════════════════════

@_node
class Name(Expression):
    identifier: str
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Literal(Expression):
    literal_kind: LiteralKind
    value: Any = None
    span: Span = field(default=NO_SPAN, repr=False)

    @property
    def is_null(self) -> bool:
        return self.literal_kind is LiteralKind.NULL


@_node
class This(Expression):
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class MemberAccess(Expression):
    target: Expression
    name: str
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ConditionalAccess(Expression):
    """``target?.name`` – evaluates to null when ``target`` is null."""

    target: Expression
    name: str
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ElementAccess(Expression):
    target: Expression
    index: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class OutVariable(Expression):
    """``out T name`` declared inline in an argument list."""

    name: str
    type_name: Optional[str] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Argument(Node):
    expression: Expression
    ref_kind: RefKind = RefKind.NONE
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Invocation(Expression):
    callee: Expression
    arguments: Tuple[Argument, ...] = ()
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class ObjectCreation(Expression):
    type_name: str
    arguments: Tuple[Argument, ...] = ()
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Assignment(Expression):
    target: Expression
    value: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Binary(Expression):
    operator: str
    left: Expression
    right: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Unary(Expression):
    operator: str
    operand: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class IsType(Expression):
    """``expression is T`` or the pattern form ``expression is T name``."""

    expression: Expression
    type_name: str
    designation: Optional[str] = None
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class AsExpression(Expression):
    expression: Expression
    type_name: str
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Cast(Expression):
    type_name: str
    expression: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Parenthesized(Expression):
    expression: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Conditional(Expression):
    condition: Expression
    when_true: Expression
    when_false: Expression
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Lambda(Expression):
    parameters: Tuple[Parameter, ...] = ()
    body: Node = field(default_factory=Block)
    span: Span = field(default=NO_SPAN, repr=False)


@_node
class Await(Expression):
    expression: Expression
    span: Span = field(default=NO_SPAN, repr=False)


# ════════════════════════════════════════════════════════════════════════
# §5  Traversal
# ════════════════════════════════════════════════════════════════════════

def iter_child_nodes(node: Node) -> Iterator[Node]:
    """Yield the direct children of *node* in source order."""
    for f in dataclasses.fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of *node* and all of its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_child_nodes(current))))


def contains(ancestor: Node, node: Node) -> bool:
    """True when *node* is *ancestor* itself or one of its descendants."""
    if ancestor is node:
        return True
    span, inner = ancestor.span, node.span
    if span is not NO_SPAN and inner is not NO_SPAN:
        if inner.start < span.start or inner.end > span.end:
            return False
    return any(n is node for n in walk(ancestor))


def strip_parentheses(expr: Expression) -> Expression:
    while isinstance(expr, Parenthesized):
        expr = expr.expression
    return expr


def statements_of(statement: Optional[Statement]) -> Tuple[Statement, ...]:
    """The statement sequence a branch owns: a block's body, or the statement itself."""
    if statement is None:
        return ()
    if isinstance(statement, Block):
        return statement.statements
    return (statement,)


class SyntaxWalker:
    """Depth-first visitor dispatching to ``visit_<NodeClass>`` methods.

    Unhandled node classes fall through to :meth:`generic_visit`, which
    visits every child.  A ``visit_X`` override that wants to continue
    into the children calls ``self.generic_visit(node)`` itself.
    """

    def visit(self, node: Node) -> Any:
        method = getattr(self, "visit_" + type(node).__name__, None)
        if method is None:
            return self.generic_visit(node)
        return method(node)

    def generic_visit(self, node: Node) -> None:
        for child in iter_child_nodes(node):
            self.visit(child)


# ════════════════════════════════════════════════════════════════════════
# §6  Canonical rendering
# ════════════════════════════════════════════════════════════════════════

def _render_arguments(arguments: Tuple[Argument, ...]) -> str:
    parts = []
    for arg in arguments:
        text = render(arg.expression)
        if arg.ref_kind is RefKind.OUT or arg.ref_kind is RefKind.REF:
            text = f"{arg.ref_kind.value} {text}"
        parts.append(text)
    return ",".join(parts)


def render(expr: Node) -> str:
    """Canonical source text of an expression.

    Parentheses and casts are dropped, ``?.`` is flattened to ``.``, and an
    assignment renders as its target.  Statements and declarations have
    no canonical text and raise :class:`ParseFailedError`.
    """
    if isinstance(expr, Name):
        return expr.identifier
    if isinstance(expr, This):
        return "this"
    if isinstance(expr, Literal):
        if expr.literal_kind is LiteralKind.NULL:
            return "null"
        if expr.literal_kind is LiteralKind.BOOL:
            return "true" if expr.value else "false"
        if expr.literal_kind is LiteralKind.STRING:
            return '"' + str(expr.value).replace('"', '\\"') + '"'
        return str(expr.value)
    if isinstance(expr, (MemberAccess, ConditionalAccess)):
        return f"{render(expr.target)}.{expr.name}"
    if isinstance(expr, ElementAccess):
        return f"{render(expr.target)}[{render(expr.index)}]"
    if isinstance(expr, Invocation):
        return f"{render(expr.callee)}({_render_arguments(expr.arguments)})"
    if isinstance(expr, ObjectCreation):
        return f"new {expr.type_name}({_render_arguments(expr.arguments)})"
    if isinstance(expr, Assignment):
        return render(expr.target)
    if isinstance(expr, Binary):
        return f"{render(expr.left)}{expr.operator}{render(expr.right)}"
    if isinstance(expr, Unary):
        return f"{expr.operator}{render(expr.operand)}"
    if isinstance(expr, IsType):
        text = f"{render(expr.expression)} is {expr.type_name}"
        if expr.designation:
            text += f" {expr.designation}"
        return text
    if isinstance(expr, AsExpression):
        return f"{render(expr.expression)} as {expr.type_name}"
    if isinstance(expr, (Cast, Parenthesized)):
        return render(expr.expression)
    if isinstance(expr, Conditional):
        return (
            f"{render(expr.condition)}?{render(expr.when_true)}"
            f":{render(expr.when_false)}"
        )
    if isinstance(expr, Lambda):
        params = ",".join(p.name for p in expr.parameters)
        return f"({params})=>@{expr.span.start}"
    if isinstance(expr, Await):
        return f"await {render(expr.expression)}"
    if isinstance(expr, OutVariable):
        return expr.name
    span = getattr(expr, "span", None)
    raise ParseFailedError(
        f"cannot render {type(expr).__name__} as an expression", span
    )
