"""nullcontracts/guard.py – boolean guard → :class:`Condition`.

The decomposer keeps a worklist of partially reduced sub-expressions.
Each entry carries the combinator that joins it to the *next* entry and
a negation flag.  The head of the worklist is rewritten until it is
atomic, then moved to the output; rewrites push their pieces back onto
the front so that output order is evaluation order.

Rewrites
--------
=============================  =========================================
``(e)``                        ``e``
``!e``                         ``e`` with the negation flag flipped
``a && b`` / ``a || b``        ``a`` (joined by the operator) then ``b``
                               (joined by whatever joined the original);
                               negation swaps the operator
``e == null`` / ``e != null``  ``StateAtom(e, Null|NotNull)``
``e == true`` / ``e != false`` ``e`` (and the negated forms)
``e is T [x]``                 ``TypeTestAtom(e)``
``string.IsNullOrEmpty(e)``    ``e == null`` (also ``IsNullOrWhiteSpace``)
``TryX(..., out t)`` -> bool   ``t != null``
``a?.b == null``               ``a == null || a.b == null``
``a?.b != null``               ``a != null && a.b != null``
``a?.b == true``               ``a != null && <a.b>``
=============================  =========================================

Anything else becomes a ``Discard`` atom: it proves nothing, but it holds
its place so short-circuit truncation still sees where it sits.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from nullcontracts import syntax as S
from nullcontracts.condition import (
    Atom,
    Combinator,
    Condition,
    ConditionKind,
    StateAtom,
    TypeTestAtom,
)
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.semantic import SemanticModel, SymbolKind
from nullcontracts.value_state import ValueState

logger = logging.getLogger(__name__)

__all__ = ["GuardDecomposer", "EMPTINESS_CHECKS"]

#: Static string predicates treated as "the argument is null".
EMPTINESS_CHECKS = frozenset({"String.IsNullOrEmpty", "String.IsNullOrWhiteSpace"})


@dataclass(slots=True)
class _Item:
    node: S.Expression
    operator: Optional[Combinator]
    negated: bool = False
    # Set when ``node`` is the operand of a null comparison.
    check: Optional[ValueState] = None
    anchor: Optional[S.Node] = None


def _bool_literal(expr: S.Expression) -> Optional[bool]:
    expr = S.strip_parentheses(expr)
    if isinstance(expr, S.Literal) and expr.literal_kind is S.LiteralKind.BOOL:
        return bool(expr.value)
    return None


def _null_literal(expr: S.Expression) -> bool:
    expr = S.strip_parentheses(expr)
    return isinstance(expr, S.Literal) and expr.is_null


class GuardDecomposer:
    """Turns guard expressions into :class:`Condition` objects."""

    def __init__(self, model: SemanticModel) -> None:
        self.model = model

    def parse(self, kind: ConditionKind, guard: Optional[S.Expression]) -> Condition:
        if guard is None:
            return Condition.empty(kind)
        atoms = self._decompose(guard)
        condition = Condition.empty(kind)
        previous: Optional[Combinator] = None
        for atom, operator in atoms:
            condition = condition.extend([atom], previous)
            previous = operator
        return condition

    # -- worklist ---------------------------------------------------------

    def _decompose(self, guard: S.Expression) -> List[Tuple[Atom, Optional[Combinator]]]:
        pending: Deque[_Item] = deque([_Item(guard, None)])
        out: List[Tuple[Atom, Optional[Combinator]]] = []
        while pending:
            item = pending.popleft()
            replacement = self._rewrite(item)
            if replacement is None:
                out.append((self._atom(item), item.operator))
            else:
                pending.extendleft(reversed(replacement))
        return out

    def _rewrite(self, item: _Item) -> Optional[List[_Item]]:
        """One rewrite step, or ``None`` when *item* is already atomic."""
        node = item.node
        if isinstance(node, S.Parenthesized):
            return [_Item(node.expression, item.operator, item.negated,
                          item.check, item.anchor)]

        if item.check is not None:
            if isinstance(node, S.ConditionalAccess):
                return self._rewrite_conditional_access(item, node)
            return None

        if isinstance(node, S.Unary) and node.operator == "!":
            return [_Item(node.operand, item.operator, not item.negated)]

        if isinstance(node, S.Binary):
            return self._rewrite_binary(item, node)

        if isinstance(node, S.Invocation):
            return self._rewrite_invocation(item, node)

        return None

    def _rewrite_binary(self, item: _Item, node: S.Binary) -> Optional[List[_Item]]:
        op = node.operator
        if op in ("&&", "||"):
            joined = Combinator.AND if op == "&&" else Combinator.OR
            if item.negated:
                joined = joined.negate()
            return [
                _Item(node.left, joined, item.negated),
                _Item(node.right, item.operator, item.negated),
            ]
        if op not in ("==", "!="):
            return None

        if _null_literal(node.right) or _null_literal(node.left):
            target = node.left if _null_literal(node.right) else node.right
            state = ValueState.NULL if op == "==" else ValueState.NOT_NULL
            if item.negated:
                state = state.negate()
            return [_Item(target, item.operator, False, state, anchor=node)]

        for operand, other in ((node.left, node.right), (node.right, node.left)):
            literal = _bool_literal(other)
            if literal is None:
                continue
            # ``e == true`` is ``e``; ``e == false`` and ``e != true`` are ``!e``.
            negated = item.negated ^ (literal != (op == "=="))
            inner = S.strip_parentheses(operand)
            if isinstance(inner, S.ConditionalAccess):
                if negated:
                    return None
                # ``a?.b == true`` can only hold when ``a`` is not null.
                return [
                    _Item(inner.target, Combinator.AND, False,
                          ValueState.NOT_NULL, anchor=inner.target),
                    _Item(inner, item.operator, False, None, anchor=node),
                ]
            return [_Item(operand, item.operator, negated)]
        return None

    def _rewrite_conditional_access(
        self, item: _Item, node: S.ConditionalAccess
    ) -> List[_Item]:
        state = item.check
        joined = Combinator.OR if state is ValueState.NULL else Combinator.AND
        return [
            _Item(node.target, joined, False, state, anchor=node.target),
            _Item(_MemberOf(node), item.operator, False, state,
                  anchor=item.anchor or node),
        ]

    def _rewrite_invocation(
        self, item: _Item, node: S.Invocation
    ) -> Optional[List[_Item]]:
        symbol = self.model.resolve_symbol(node)
        if symbol is None or symbol.kind is not SymbolKind.METHOD:
            return None
        if symbol.full_name in EMPTINESS_CHECKS and node.arguments:
            state = ValueState.NOT_NULL if item.negated else ValueState.NULL
            return [_Item(node.arguments[0].expression, item.operator,
                          False, state, anchor=node)]
        if self._is_try_pattern(symbol.name, symbol.type, node):
            target = [a for a in node.arguments if a.ref_kind is S.RefKind.OUT][-1]
            state = ValueState.NULL if item.negated else ValueState.NOT_NULL
            return [_Item(target.expression, item.operator, False, state,
                          anchor=node)]
        return None

    @staticmethod
    def _is_try_pattern(name, return_type, node: S.Invocation) -> bool:
        if not name.startswith("Try"):
            return False
        if return_type is None or return_type.name != "Boolean":
            return False
        return any(a.ref_kind is S.RefKind.OUT for a in node.arguments)

    # -- atoms --------------------------------------------------------------

    def _atom(self, item: _Item) -> Atom:
        node = item.node
        anchor = item.anchor or node
        if isinstance(node, _MemberOf):
            fp = Fingerprint.of(node.access, self.model)
            return StateAtom(fp, item.check or ValueState.DISCARD, anchor)
        if item.check is not None:
            return StateAtom(Fingerprint.of(node, self.model), item.check, anchor)
        if isinstance(node, S.IsType):
            fp = Fingerprint.of(node.expression, self.model).narrowed_to(
                node.type_name, self.model)
            return TypeTestAtom(fp, item.negated, anchor)
        logger.debug("guard part %s proves nothing", type(node).__name__)
        return StateAtom(Fingerprint.of(node, self.model), ValueState.DISCARD, anchor)


class _MemberOf(S.Expression):
    """Worklist marker for the ``a.b`` half of a rewritten ``a?.b``.

    It stops the conditional-access rewrite from firing again on the
    same node while keeping the original node for fingerprinting.
    """

    __slots__ = ("access",)

    def __init__(self, access: S.ConditionalAccess) -> None:
        self.access = access
