"""nullcontracts/fingerprint.py – comparable identities for expressions.

Two occurrences of "the same value" (``a.b`` inside a guard and
``a?.b`` passed to a sink later on) must compare equal even though they
are different syntax nodes.  A :class:`Fingerprint` is the canonical
text of the expression with redundant wrappers peeled off, plus the type
it was narrowed to by a top-level ``as``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from nullcontracts import syntax as S
from nullcontracts.semantic import SemanticModel

__all__ = ["Fingerprint"]


@dataclass(frozen=True, slots=True)
class Fingerprint:
    key: str
    narrowed_type: Optional[str] = None

    @classmethod
    def of(
        cls, expr: S.Expression, model: Optional[SemanticModel] = None
    ) -> "Fingerprint":
        """Fingerprint *expr*.

        Raises :class:`~nullcontracts.errors.ParseFailedError` when *expr*
        is not an expression at all.
        """
        narrowed: Optional[str] = None
        node = expr
        while True:
            if isinstance(node, (S.Parenthesized, S.Cast)):
                node = node.expression
            elif isinstance(node, S.Assignment):
                node = node.target
            elif isinstance(node, S.AsExpression) and narrowed is None:
                narrowed = _canonical_type(node.type_name, model)
                node = node.expression
            else:
                break
        key = "".join(S.render(node).split())
        return cls(key, narrowed)

    def contains(self, other: "Fingerprint") -> bool:
        """True when a fact about ``self`` is also a fact about *other*.

        A fact about a narrowing of a value (``x as T != null``, ``x is T``)
        also holds for the plain value, but a fact about the plain value
        says nothing about any narrowing of it.
        """
        if self.key != other.key:
            return False
        return other.narrowed_type is None or other.narrowed_type == self.narrowed_type

    def narrowed_to(
        self, type_name: str, model: Optional[SemanticModel] = None
    ) -> "Fingerprint":
        """The same value narrowed to *type_name*, as a type test sees it."""
        return Fingerprint(self.key, _canonical_type(type_name, model))

    def __str__(self) -> str:
        if self.narrowed_type:
            return f"{self.key} as {self.narrowed_type}"
        return self.key


def _canonical_type(name: str, model: Optional[SemanticModel]) -> str:
    if model is not None:
        resolved = model.resolve_type(name)
        if resolved is not None:
            return str(resolved)
    return name
