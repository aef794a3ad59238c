"""
ncsl/binder.py - name and type binding for NCSL compilation units.

:class:`Binder` implements :class:`nullcontracts.semantic.SemanticModel`.
It binds a whole unit eagerly at construction: every name, member
access, invocation and object creation is mapped to a :class:`Symbol`,
every expression gets a :class:`TypeRef` where one can be inferred, and
every declaring node (locals, parameters, loop and pattern variables)
gets the symbol it introduces.

Lookup order for a simple name is: enclosing scopes (innermost first),
members of the containing type, then type names.  Member lookup falls
back to ``Object`` members and, for enumerable receivers, to the
``Enumerable`` extension methods.

Lambdas passed straight to an ``Enumerable`` method are query
lambdas: their parameters range over collection elements and are
treated as non-null.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from nullcontracts import syntax as S
from nullcontracts.config import AnalysisConfig
from nullcontracts.known_members import ExternalAllowlist, KnownMembers
from nullcontracts.semantic import Symbol, SymbolKind, TypeRef
from ncsl.builtins import (
    BUILTIN_TYPES,
    CONSTRUCTOR_NAME,
    EXTENSION_CONTAINER,
    TYPE_ALIASES,
    VALUE_TYPES,
    BuiltinMember,
)

logger = logging.getLogger(__name__)

__all__ = ["Binder"]

_BOOLEAN = TypeRef("Boolean", True)
_STRING = TypeRef("String")
_COMPARISONS = frozenset({"==", "!=", "<", ">", "<=", ">=", "&&", "||"})


def _split_arguments(text: str) -> List[str]:
    """Split ``A,B<C,D>`` at top-level commas."""
    parts, depth, current = [], 0, []
    for char in text:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


@dataclass
class _TypeInfo:
    name: str
    is_struct: bool
    members: Dict[str, List[Symbol]] = field(default_factory=dict)

    def add(self, symbol: Symbol) -> None:
        self.members.setdefault(symbol.name, []).append(symbol)


class _Scope:
    __slots__ = ("parent", "names")

    def __init__(self, parent: Optional["_Scope"] = None) -> None:
        self.parent = parent
        self.names: Dict[str, Symbol] = {}

    def lookup(self, name: str) -> Optional[Symbol]:
        scope: Optional[_Scope] = self
        while scope is not None:
            if name in scope.names:
                return scope.names[name]
            scope = scope.parent
        return None


def _pick(candidates: Sequence[Symbol], arity: Optional[int]) -> Optional[Symbol]:
    """Overload selection by argument count only."""
    if not candidates:
        return None
    if arity is None:
        return candidates[0]
    for symbol in candidates:
        if len(symbol.parameters) == arity:
            return symbol
    for symbol in candidates:
        params = symbol.parameters
        if params and params[-1].ref_kind is S.RefKind.PARAMS and arity >= len(params) - 1:
            return symbol
    return candidates[0]


class Binder:
    """Semantic model for one :class:`~nullcontracts.syntax.CompilationUnit`."""

    def __init__(
        self,
        unit: S.CompilationUnit,
        config: Optional[AnalysisConfig] = None,
        known_members: Optional[KnownMembers] = None,
    ) -> None:
        self.unit = unit
        self.config = config or AnalysisConfig()
        if known_members is None:
            allowlist = (ExternalAllowlist(self.config.allowlist_path)
                         if self.config.allowlist_path else None)
            known_members = KnownMembers(allowlist)
        self.known_members = known_members

        self._user_types: Dict[str, _TypeInfo] = {}
        self._symbols: Dict[S.Node, Symbol] = {}
        self._declared: Dict[S.Node, Symbol] = {}
        self._types: Dict[S.Node, TypeRef] = {}
        self._type_symbols: Dict[str, Symbol] = {}
        self._builtin_symbols: Dict[Tuple[str, BuiltinMember], Symbol] = {}
        self._raw_types: Dict[Symbol, str] = {}
        self._lambda_hints: Dict[S.Lambda, Optional[TypeRef]] = {}
        self._out_hints: Dict[S.OutVariable, Optional[TypeRef]] = {}
        self._always: Dict[S.Block, FrozenSet[Symbol]] = {}

        self._declare_types()
        self._bind_bodies()
        logger.debug(
            "bound %s: %d references, %d declarations",
            unit.file, len(self._symbols), len(self._declared),
        )

    # -- SemanticModel ----------------------------------------------------

    def resolve_symbol(self, node: S.Expression) -> Optional[Symbol]:
        if isinstance(node, S.OutVariable):
            return self._declared.get(node)
        return self._symbols.get(node)

    def declared_symbol(self, node: S.Node) -> Optional[Symbol]:
        return self._declared.get(node)

    def type_of(self, node: S.Expression) -> Optional[TypeRef]:
        return self._types.get(node)

    def resolve_type(self, name: Optional[str]) -> Optional[TypeRef]:
        if not name or name == "var":
            return None
        return self._parse_type(name.strip(), {})

    def always_assigned(self, body: S.Block) -> FrozenSet[Symbol]:
        cached = self._always.get(body)
        if cached is None:
            cached = _DefiniteAssignment(self).run(body)
            self._always[body] = cached
        return cached

    def is_known_not_null(self, symbol: Symbol) -> bool:
        return self.known_members.is_known_not_null(symbol)

    # -- types --------------------------------------------------------------

    def _canonical(self, name: str) -> str:
        return TYPE_ALIASES.get(name, name)

    def _is_value_type(self, name: str) -> bool:
        info = self._user_types.get(name)
        if info is not None:
            return info.is_struct
        return name in VALUE_TYPES

    def is_type_name(self, name: str) -> bool:
        name = self._canonical(name)
        return name in self._user_types or name in BUILTIN_TYPES

    def _parse_type(self, text: str, bindings: Mapping[str, TypeRef]) -> TypeRef:
        if text.endswith("?"):
            inner = self._parse_type(text[:-1], bindings)
            if inner.is_value_type:
                return TypeRef("Nullable", False, (inner,))
            return inner
        if text.endswith("[]"):
            return TypeRef("Array", False, (self._parse_type(text[:-2], bindings),))
        if "<" in text and text.endswith(">"):
            cut = text.index("<")
            base = self._canonical(text[:cut])
            arguments = tuple(
                self._parse_type(a, bindings) for a in _split_arguments(text[cut + 1:-1])
            )
            return TypeRef(base, self._is_value_type(base), arguments)
        if text in bindings:
            return bindings[text]
        base = self._canonical(text)
        return TypeRef(base, self._is_value_type(base))

    def element_type(self, type_ref: Optional[TypeRef]) -> Optional[TypeRef]:
        """Element type of an enumerable, or ``None``."""
        if type_ref is None:
            return None
        if type_ref.name in ("Array", "List", "IEnumerable") and type_ref.arguments:
            return type_ref.arguments[0]
        if type_ref.name == "Dictionary" and len(type_ref.arguments) == 2:
            return TypeRef("KeyValuePair", True, type_ref.arguments)
        if type_ref.name == "String":
            return TypeRef("Char", True)
        return None

    def _bindings(self, type_ref: TypeRef) -> Dict[str, TypeRef]:
        builtin = BUILTIN_TYPES.get(type_ref.name)
        if builtin is None:
            return {}
        return dict(zip(builtin.type_parameters, type_ref.arguments))

    def type_symbol(self, name: str) -> Symbol:
        name = self._canonical(name)
        symbol = self._type_symbols.get(name)
        if symbol is None:
            symbol = Symbol(name, SymbolKind.TYPE, TypeRef(name, self._is_value_type(name)))
            self._type_symbols[name] = symbol
        return symbol

    # -- members ------------------------------------------------------------

    def _builtin_parameter(self, text: str) -> Symbol:
        words = text.split()
        ref_kind = S.RefKind.NONE
        if words[0] in ("out", "ref", "params"):
            ref_kind = S.RefKind(words.pop(0))
        type_name, name = words
        return Symbol(name, SymbolKind.PARAMETER, self._parse_type(type_name, {}),
                      ref_kind=ref_kind)

    def _builtin_symbol(self, container: str, member: BuiltinMember) -> Symbol:
        key = (container, member)
        symbol = self._builtin_symbols.get(key)
        if symbol is None:
            symbol = Symbol(
                member.name, member.kind,
                type=self._parse_type(member.type, {}),
                container=container,
                is_static=member.is_static,
                parameters=tuple(self._builtin_parameter(p) for p in member.parameters),
            )
            self._builtin_symbols[key] = symbol
            self._raw_types[symbol] = member.type
        return symbol

    def members_of(self, type_name: str, name: str) -> List[Symbol]:
        """Members called *name* on *type_name*, including ``Object`` members."""
        info = self._user_types.get(type_name)
        if info is not None and name in info.members:
            return list(info.members[name])
        builtin = BUILTIN_TYPES.get(type_name)
        if builtin is not None:
            found = [self._builtin_symbol(type_name, m) for m in builtin.members if m.name == name]
            if found:
                return found
        if name == CONSTRUCTOR_NAME:
            return []
        # Object members are reported against the receiver type.
        return [self._builtin_symbol(type_name, m)
                for m in BUILTIN_TYPES["Object"].members if m.name == name]

    def member_type(self, symbol: Symbol, receiver: Optional[TypeRef],
                    extension_element: Optional[TypeRef] = None) -> Optional[TypeRef]:
        """Type of *symbol* accessed on *receiver*, with type parameters substituted."""
        raw = self._raw_types.get(symbol)
        if raw is None:
            return symbol.type
        bindings = self._bindings(receiver) if receiver is not None else {}
        if extension_element is not None:
            bindings["T"] = extension_element
        return self._parse_type(raw, bindings)

    # -- declaration pass -----------------------------------------------------

    def _declare_parameter(self, parameter: S.Parameter,
                           hint: Optional[TypeRef] = None, query: bool = False) -> Symbol:
        symbol = Symbol(
            parameter.name, SymbolKind.PARAMETER,
            type=self.resolve_type(parameter.type_name) or hint,
            attributes=parameter.attributes,
            ref_kind=parameter.ref_kind,
            is_query_parameter=query,
        )
        self._declared[parameter] = symbol
        return symbol

    def _declare_types(self) -> None:
        for decl in self.unit.types:
            self._user_types[decl.name] = _TypeInfo(decl.name, decl.is_struct)
        for decl in self.unit.types:
            info = self._user_types[decl.name]
            for member in decl.members:
                symbol = self._declare_member(decl.name, member)
                self._declared[member] = symbol
                info.add(symbol)

    def _declare_member(self, container: str, member: S.Member) -> Symbol:
        if isinstance(member, S.FieldDeclaration):
            return Symbol(
                member.name, SymbolKind.FIELD, self.resolve_type(member.type_name),
                container, member.attributes,
                is_static=member.is_static, is_readonly=member.is_readonly,
            )
        if isinstance(member, S.PropertyDeclaration):
            return Symbol(
                member.name, SymbolKind.PROPERTY, self.resolve_type(member.type_name),
                container, member.attributes, is_static=member.is_static,
            )
        if isinstance(member, S.MethodDeclaration):
            return Symbol(
                member.name, SymbolKind.METHOD, self.resolve_type(member.return_type),
                container, member.attributes, is_static=member.is_static,
                parameters=tuple(self._declare_parameter(p) for p in member.parameters),
            )
        return Symbol(
            CONSTRUCTOR_NAME, SymbolKind.METHOD, TypeRef("Void", True), container,
            parameters=tuple(self._declare_parameter(p) for p in member.parameters),
        )

    # -- binding pass -----------------------------------------------------------

    def _bind_bodies(self) -> None:
        for decl in self.unit.types:
            for member in decl.members:
                scope = _Scope()
                for parameter in getattr(member, "parameters", ()):
                    scope.names[parameter.name] = self._declared[parameter]
                walker = _BodyBinder(self, decl.name, scope)
                for part in ("initializer", "expression_body", "body"):
                    node = getattr(member, part, None)
                    if node is not None:
                        walker.visit(node)

    def _record(self, node: S.Node, symbol: Optional[Symbol],
                type_ref: Optional[TypeRef]) -> None:
        if symbol is not None:
            self._symbols[node] = symbol
        if type_ref is not None:
            self._types[node] = type_ref


class _BodyBinder(S.SyntaxWalker):
    """Binds one member body, tracking lexical scopes."""

    def __init__(self, binder: Binder, current: str, scope: _Scope) -> None:
        self.binder = binder
        self.current = current
        self.scope = scope

    # -- scopes -------------------------------------------------------------

    def _scoped(self, node: S.Node) -> None:
        self.scope = _Scope(self.scope)
        try:
            self.generic_visit(node)
        finally:
            self.scope = self.scope.parent

    def _declare(self, node: S.Node, name: str, type_ref: Optional[TypeRef],
                 **flags) -> Symbol:
        symbol = Symbol(name, SymbolKind.LOCAL, type_ref, **flags)
        self.scope.names[name] = symbol
        self.binder._declared[node] = symbol
        return symbol

    def _type(self, node: Optional[S.Node]) -> Optional[TypeRef]:
        return self.binder._types.get(node) if node is not None else None

    visit_Block = _scoped
    visit_ForStatement = _scoped
    visit_SwitchSection = _scoped
    visit_UsingStatement = _scoped

    # -- declarations -----------------------------------------------------------

    def visit_LocalDeclaration(self, node: S.LocalDeclaration) -> None:
        if node.initializer is not None:
            self.visit(node.initializer)
        type_ref = self.binder.resolve_type(node.type_name) or self._type(node.initializer)
        self._declare(node, node.name, type_ref)

    def visit_ForEachStatement(self, node: S.ForEachStatement) -> None:
        self.visit(node.collection)
        type_ref = (self.binder.resolve_type(node.type_name)
                    or self.binder.element_type(self._type(node.collection)))
        self.scope = _Scope(self.scope)
        try:
            self._declare(node, node.name, type_ref, is_foreach_variable=True)
            self.visit(node.body)
        finally:
            self.scope = self.scope.parent

    def visit_CatchClause(self, node: S.CatchClause) -> None:
        self.scope = _Scope(self.scope)
        try:
            if node.name:
                self._declare(node, node.name,
                              self.binder.resolve_type(node.type_name or "Exception"))
            self.visit(node.block)
        finally:
            self.scope = self.scope.parent

    def visit_PatternLabel(self, node: S.PatternLabel) -> None:
        if node.designation:
            self._declare(node, node.designation, self.binder.resolve_type(node.type_name))

    def visit_IsType(self, node: S.IsType) -> None:
        self.visit(node.expression)
        if node.designation:
            self._declare(node, node.designation, self.binder.resolve_type(node.type_name))
        self.binder._record(node, None, _BOOLEAN)

    def visit_OutVariable(self, node: S.OutVariable) -> None:
        type_ref = self.binder.resolve_type(node.type_name) or self.binder._out_hints.get(node)
        symbol = self._declare(node, node.name, type_ref)
        self.binder._record(node, None, symbol.type)

    def visit_Lambda(self, node: S.Lambda) -> None:
        query = node in self.binder._lambda_hints
        hint = self.binder._lambda_hints.get(node)
        self.scope = _Scope(self.scope)
        try:
            for parameter in node.parameters:
                symbol = self.binder._declare_parameter(parameter, hint, query)
                self.scope.names[parameter.name] = symbol
            self.visit(node.body)
        finally:
            self.scope = self.scope.parent
        self.binder._record(node, None, TypeRef("Func"))

    # -- names ------------------------------------------------------------------

    def _lookup(self, name: str, arity: Optional[int] = None) -> Optional[Symbol]:
        symbol = self.scope.lookup(name)
        if symbol is not None:
            return symbol
        members = self.binder.members_of(self.current, name)
        if members:
            return _pick(members, arity)
        if self.binder.is_type_name(name):
            return self.binder.type_symbol(name)
        logger.debug("unresolved name %r in %s", name, self.current)
        return None

    def visit_Name(self, node: S.Name) -> None:
        symbol = self._lookup(node.identifier)
        self.binder._record(node, symbol, symbol.type if symbol else None)

    def visit_This(self, node: S.This) -> None:
        self.binder._record(node, None, self.binder.resolve_type(self.current))

    def visit_Literal(self, node: S.Literal) -> None:
        kind = node.literal_kind
        if kind is S.LiteralKind.STRING:
            self.binder._record(node, None, _STRING)
        elif kind is S.LiteralKind.BOOL:
            self.binder._record(node, None, _BOOLEAN)
        elif kind is S.LiteralKind.NUMBER:
            name = "Double" if isinstance(node.value, float) else "Int32"
            self.binder._record(node, None, TypeRef(name, True))

    def _resolve_member(
        self, target: S.Expression, name: str, arity: Optional[int]
    ) -> Tuple[Optional[Symbol], Optional[TypeRef]]:
        receiver = self._type(target)
        if receiver is None:
            return None, None
        candidates = self.binder.members_of(receiver.name, name)
        extension: Optional[TypeRef] = None
        if not candidates:
            extension = self.binder.element_type(receiver)
            if extension is not None:
                candidates = self.binder.members_of(EXTENSION_CONTAINER, name)
        symbol = _pick(candidates, arity)
        if symbol is None:
            return None, None
        return symbol, self.binder.member_type(symbol, receiver, extension)

    def visit_MemberAccess(self, node: S.MemberAccess) -> None:
        self.visit(node.target)
        symbol, type_ref = self._resolve_member(node.target, node.name, None)
        self.binder._record(node, symbol, type_ref)

    def visit_ConditionalAccess(self, node: S.ConditionalAccess) -> None:
        self.visit(node.target)
        symbol, type_ref = self._resolve_member(node.target, node.name, None)
        if type_ref is not None and type_ref.is_value_type:
            # ``a?.Count`` is an ``int?``.
            type_ref = TypeRef("Nullable", False, (type_ref,))
        self.binder._record(node, symbol, type_ref)

    def visit_ElementAccess(self, node: S.ElementAccess) -> None:
        self.generic_visit(node)
        receiver = self._type(node.target)
        element = None
        if receiver is not None:
            if receiver.name == "Dictionary" and len(receiver.arguments) == 2:
                element = receiver.arguments[1]
            else:
                element = self.binder.element_type(receiver)
        self.binder._record(node, None, element)

    # -- calls --------------------------------------------------------------------

    def visit_Invocation(self, node: S.Invocation) -> None:
        callee = node.callee
        arity = len(node.arguments)
        method: Optional[Symbol] = None
        type_ref: Optional[TypeRef] = None
        if isinstance(callee, S.Name):
            method = self._lookup(callee.identifier, arity)
            if method is not None and method.kind is SymbolKind.METHOD:
                type_ref = method.type
            self.binder._record(callee, method, None)
        elif isinstance(callee, (S.MemberAccess, S.ConditionalAccess)):
            self.visit(callee.target)
            method, type_ref = self._resolve_member(callee.target, callee.name, arity)
            self.binder._record(callee, method, None)
        else:
            self.visit(callee)
        if method is not None and method.kind is not SymbolKind.METHOD:
            # Invoking a delegate-typed local or member.
            method, type_ref = None, None

        if method is not None:
            self._hint_arguments(method, node.arguments, callee)
        for argument in node.arguments:
            self.visit(argument)
        self.binder._record(node, method, type_ref)

    def _hint_arguments(self, method: Symbol, arguments: Sequence[S.Argument],
                        callee: S.Expression) -> None:
        if method.container == EXTENSION_CONTAINER and isinstance(
                callee, (S.MemberAccess, S.ConditionalAccess)):
            element = self.binder.element_type(self._type(callee.target))
            for argument in arguments:
                if isinstance(argument.expression, S.Lambda):
                    self.binder._lambda_hints[argument.expression] = element
        for parameter, argument in zip(method.parameters, arguments):
            if isinstance(argument.expression, S.OutVariable):
                self.binder._out_hints[argument.expression] = parameter.type

    def visit_ObjectCreation(self, node: S.ObjectCreation) -> None:
        type_ref = self.binder.resolve_type(node.type_name)
        ctor = None
        if type_ref is not None:
            ctor = _pick(self.binder.members_of(type_ref.name, CONSTRUCTOR_NAME),
                         len(node.arguments))
        if ctor is not None:
            self._hint_arguments(ctor, node.arguments, node)
        for argument in node.arguments:
            self.visit(argument)
        self.binder._record(node, ctor, type_ref)

    # -- operators ------------------------------------------------------------------

    def visit_Assignment(self, node: S.Assignment) -> None:
        self.generic_visit(node)
        self.binder._record(node, None, self._type(node.target))

    def visit_Binary(self, node: S.Binary) -> None:
        self.generic_visit(node)
        left, right = self._type(node.left), self._type(node.right)
        if node.operator in _COMPARISONS:
            type_ref = _BOOLEAN
        elif node.operator == "??":
            type_ref = right or left
        elif node.operator == "+" and (left == _STRING or right == _STRING):
            type_ref = _STRING
        else:
            type_ref = left if left is not None and left.is_value_type else None
        self.binder._record(node, None, type_ref)

    def visit_Unary(self, node: S.Unary) -> None:
        self.generic_visit(node)
        type_ref = _BOOLEAN if node.operator == "!" else self._type(node.operand)
        self.binder._record(node, None, type_ref)

    def visit_AsExpression(self, node: S.AsExpression) -> None:
        self.visit(node.expression)
        self.binder._record(node, None, self.binder.resolve_type(node.type_name))

    def visit_Cast(self, node: S.Cast) -> None:
        self.visit(node.expression)
        self.binder._record(node, None, self.binder.resolve_type(node.type_name))

    def visit_Parenthesized(self, node: S.Parenthesized) -> None:
        self.visit(node.expression)
        self.binder._record(node, None, self._type(node.expression))

    def visit_Await(self, node: S.Await) -> None:
        self.visit(node.expression)

    def visit_Conditional(self, node: S.Conditional) -> None:
        self.generic_visit(node)
        type_ref = self._type(node.when_true) or self._type(node.when_false)
        self.binder._record(node, None, type_ref)


# ═══════════════════════════════════════════════════════════════════════
#  Definite assignment
# ═══════════════════════════════════════════════════════════════════════

class _DefiniteAssignment:
    """Locals and parameters assigned on every normal exit of a body.

    The approximation is narrow: loop bodies, ``try`` and
    ``catch`` blocks and switch sections never contribute, nor do the
    right operands of ``&&``, ``||`` and ``??``, the arms of ``?:`` or
    anything inside a lambda.  A path ending in ``throw`` is not an exit.
    State ``None`` means "unreachable".
    """

    def __init__(self, binder: Binder) -> None:
        self.binder = binder
        self.exits: List[FrozenSet[Symbol]] = []

    def run(self, body: S.Block) -> FrozenSet[Symbol]:
        end = self._statements(body.statements, frozenset())
        if end is not None:
            self.exits.append(end)
        if not self.exits:
            return frozenset()
        result = self.exits[0]
        for state in self.exits[1:]:
            result &= state
        return result

    @staticmethod
    def _meet(first, second):
        if first is None:
            return second
        if second is None:
            return first
        return first & second

    def _statements(self, statements: Sequence[S.Node], state):
        for statement in statements:
            if state is None:
                return None
            state = self._statement(statement, state)
        return state

    def _discarded(self, statements: Sequence[S.Node], state) -> None:
        # Walked only so that returns inside still register their exits.
        self._statements(statements, state)

    def _statement(self, node: S.Node, state):
        if state is None:
            return None
        if isinstance(node, S.Block):
            return self._statements(node.statements, state)
        if isinstance(node, S.LocalDeclaration):
            if node.initializer is None:
                return state
            state = self._expression(node.initializer, state)
            symbol = self.binder.declared_symbol(node)
            return state | {symbol} if symbol is not None else state
        if isinstance(node, S.ExpressionStatement):
            return self._expression(node.expression, state)
        if isinstance(node, S.IfStatement):
            state = self._expression(node.condition, state)
            then = self._statement(node.then, state)
            orelse = self._statement(node.orelse, state) if node.orelse is not None else state
            return self._meet(then, orelse)
        if isinstance(node, S.WhileStatement):
            state = self._expression(node.condition, state)
            self._discarded(S.statements_of(node.body), state)
            return state
        if isinstance(node, S.DoStatement):
            self._discarded(S.statements_of(node.body), state)
            return state
        if isinstance(node, S.ForStatement):
            for init in node.initializers:
                if isinstance(init, S.Statement):
                    state = self._statement(init, state)
                else:
                    state = self._expression(init, state)
            state = self._expression(node.condition, state)
            self._discarded(S.statements_of(node.body), state)
            return state
        if isinstance(node, S.ForEachStatement):
            state = self._expression(node.collection, state)
            self._discarded(S.statements_of(node.body), state)
            return state
        if isinstance(node, S.SwitchStatement):
            state = self._expression(node.expression, state)
            for section in node.sections:
                self._discarded(section.statements, state)
            return state
        if isinstance(node, S.TryStatement):
            self._discarded(node.block.statements, state)
            for clause in node.catches:
                self._discarded(clause.block.statements, state)
            if node.finalbody is not None:
                return self._statements(node.finalbody.statements, state)
            return state
        if isinstance(node, S.UsingStatement):
            if isinstance(node.resource, S.Statement):
                state = self._statement(node.resource, state)
            else:
                state = self._expression(node.resource, state)
            return self._statement(node.body, state) if state is not None else None
        if isinstance(node, S.LockStatement):
            state = self._expression(node.expression, state)
            return self._statement(node.body, state)
        if isinstance(node, S.ReturnStatement):
            self.exits.append(self._expression(node.expression, state))
            return None
        if isinstance(node, (S.ThrowStatement, S.BreakStatement, S.ContinueStatement)):
            return None
        if isinstance(node, S.Expression):
            return self._expression(node, state)
        return state

    def _variable(self, target: S.Expression) -> Optional[Symbol]:
        target = S.strip_parentheses(target)
        if isinstance(target, S.OutVariable):
            return self.binder.declared_symbol(target)
        if not isinstance(target, S.Name):
            return None
        symbol = self.binder.resolve_symbol(target)
        if symbol is not None and symbol.kind in (SymbolKind.LOCAL, SymbolKind.PARAMETER):
            return symbol
        return None

    def _expression(self, node: Optional[S.Node], state):
        if node is None or state is None:
            return state
        if isinstance(node, S.Lambda):
            return state
        if isinstance(node, S.Binary) and node.operator in ("&&", "||", "??"):
            return self._expression(node.left, state)
        if isinstance(node, S.Conditional):
            return self._expression(node.condition, state)
        if isinstance(node, S.Assignment):
            state = self._expression(node.value, state)
            symbol = self._variable(node.target)
            return state | {symbol} if symbol is not None else state
        if isinstance(node, S.Argument) and node.ref_kind is S.RefKind.OUT:
            symbol = self._variable(node.expression)
            return state | {symbol} if symbol is not None else state
        for child in S.iter_child_nodes(node):
            state = self._expression(child, state)
        return state
