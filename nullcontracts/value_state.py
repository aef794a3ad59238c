"""nullcontracts/value_state.py – the four-point nullness lattice and
the expression valuation built on it.

``ValueState`` is what an assignment record, a condition atom, or an
expression evaluates to.  ``Discard`` marks atoms that only exist to keep
their position inside a guard and must never prove anything.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from nullcontracts import syntax as S
from nullcontracts.semantic import SemanticModel, Symbol, SymbolKind

logger = logging.getLogger(__name__)

__all__ = ["ValueState", "combine", "ValueEvaluator"]


class ValueState(Enum):
    UNKNOWN = "unknown"
    NOT_NULL = "not-null"
    NULL = "null"
    DISCARD = "discard"

    def negate(self) -> "ValueState":
        if self is ValueState.NOT_NULL:
            return ValueState.NULL
        if self is ValueState.NULL:
            return ValueState.NOT_NULL
        return self


def combine(first: ValueState, second: ValueState) -> ValueState:
    """Pointwise join of the two arms of a conditional expression."""
    if first is ValueState.UNKNOWN or second is ValueState.UNKNOWN:
        return ValueState.UNKNOWN
    if first is not second:
        return ValueState.UNKNOWN
    return first


class ValueEvaluator:
    """Classifies an expression's value without any flow information."""

    def __init__(self, model: SemanticModel) -> None:
        self.model = model

    def value_of(self, expr: Optional[S.Expression]) -> ValueState:
        if expr is None:
            return ValueState.UNKNOWN
        if isinstance(expr, S.Literal):
            return ValueState.NULL if expr.is_null else ValueState.NOT_NULL
        if isinstance(expr, (S.Parenthesized, S.Cast, S.Await)):
            return self.value_of(expr.expression)
        if isinstance(expr, S.Assignment):
            return self.value_of(expr.value)
        if isinstance(expr, S.Conditional):
            return combine(
                self.value_of(expr.when_true), self.value_of(expr.when_false)
            )
        if isinstance(expr, S.Binary):
            return self._value_of_binary(expr)
        if isinstance(expr, (S.ObjectCreation, S.Lambda, S.This,
                             S.ElementAccess, S.IsType, S.Unary)):
            # Element reads are not tracked; negations and type tests are bool.
            return ValueState.NOT_NULL
        if isinstance(expr, (S.Name, S.MemberAccess)):
            return self._value_of_symbol(expr)
        if isinstance(expr, S.Invocation):
            return self._value_of_invocation(expr)
        return ValueState.UNKNOWN

    def _is_value_type(self, expr: S.Expression) -> bool:
        type_ref = self.model.type_of(expr)
        return type_ref is not None and type_ref.is_value_type

    def _value_of_binary(self, expr: S.Binary) -> ValueState:
        if expr.operator == "??":
            return self.value_of(expr.right)
        if expr.operator == "+":
            type_ref = self.model.type_of(expr)
            if type_ref is not None and (
                type_ref.is_value_type or type_ref.name == "String"
            ):
                return ValueState.NOT_NULL
            return ValueState.UNKNOWN
        # Comparisons and logical operators produce bool.
        return ValueState.NOT_NULL

    def _value_of_symbol(self, expr: S.Expression) -> ValueState:
        symbol = self.model.resolve_symbol(expr)
        if symbol is None:
            return ValueState.UNKNOWN
        if symbol.kind is SymbolKind.TYPE:
            return ValueState.NOT_NULL
        if symbol.is_foreach_variable or symbol.is_query_parameter:
            return ValueState.NOT_NULL
        if self._is_value_type(expr):
            return ValueState.NOT_NULL
        if symbol.has_not_null_or_check_null:
            return ValueState.NOT_NULL
        if self.model.is_known_not_null(symbol):
            return ValueState.NOT_NULL
        return ValueState.UNKNOWN

    def _value_of_invocation(self, expr: S.Invocation) -> ValueState:
        symbol: Optional[Symbol] = self.model.resolve_symbol(expr)
        if symbol is None:
            return ValueState.UNKNOWN
        if symbol.has_not_null or self.model.is_known_not_null(symbol):
            return ValueState.NOT_NULL
        if symbol.type is not None and symbol.type.is_value_type:
            return ValueState.NOT_NULL
        return ValueState.UNKNOWN
