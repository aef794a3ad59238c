"""nullcontracts/semantic.py – the semantic-service capability.

The engine does not resolve names itself.  It is handed an object that
satisfies :class:`SemanticModel` and asks it three kinds of question:

* *what* does this expression refer to (``resolve_symbol`` /
  ``declared_symbol``),
* *what type* does it have (``type_of`` / ``resolve_type``),
* *which locals are definitely assigned* on every path through a body
  (``always_assigned``).

:mod:`ncsl.binder` provides the implementation used by the command line
tool and the tests; any other front end can plug in its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import FrozenSet, Optional, Protocol, Tuple, runtime_checkable

from nullcontracts.syntax import Block, Expression, Node, RefKind

__all__ = [
    "NOT_NULL_ATTRIBUTE",
    "CHECK_NULL_ATTRIBUTE",
    "SymbolKind",
    "TypeRef",
    "Symbol",
    "SemanticModel",
]

NOT_NULL_ATTRIBUTE = "NotNull"
CHECK_NULL_ATTRIBUTE = "CheckNull"


class SymbolKind(Enum):
    LOCAL = auto()
    PARAMETER = auto()
    FIELD = auto()
    PROPERTY = auto()
    METHOD = auto()
    TYPE = auto()


@dataclass(frozen=True, slots=True)
class TypeRef:
    """A resolved type.  ``Nullable`` wrappers are reference-like."""

    name: str
    is_value_type: bool = False
    arguments: Tuple["TypeRef", ...] = ()

    def __str__(self) -> str:
        if not self.arguments:
            return self.name
        return f"{self.name}<{','.join(str(a) for a in self.arguments)}>"


@dataclass(frozen=True, eq=False, slots=True)
class Symbol:
    """A declared entity.  Identity is the symbol object itself."""

    name: str
    kind: SymbolKind
    type: Optional[TypeRef] = None
    container: Optional[str] = None
    attributes: FrozenSet[str] = frozenset()
    ref_kind: RefKind = RefKind.NONE
    is_static: bool = False
    is_readonly: bool = False
    is_foreach_variable: bool = False
    is_query_parameter: bool = False
    parameters: Tuple["Symbol", ...] = field(default=(), repr=False)

    @property
    def full_name(self) -> str:
        if self.container:
            return f"{self.container}.{self.name}"
        return self.name

    @property
    def has_not_null(self) -> bool:
        return NOT_NULL_ATTRIBUTE in self.attributes

    @property
    def has_not_null_or_check_null(self) -> bool:
        return (
            NOT_NULL_ATTRIBUTE in self.attributes
            or CHECK_NULL_ATTRIBUTE in self.attributes
        )

    @property
    def is_local(self) -> bool:
        return self.kind is SymbolKind.LOCAL

    def __str__(self) -> str:
        return self.full_name


@runtime_checkable
class SemanticModel(Protocol):
    """What the engine needs to know about names and types."""

    def resolve_symbol(self, node: Expression) -> Optional[Symbol]:
        """The symbol an expression refers to, or ``None`` when unresolved."""
        ...

    def declared_symbol(self, node: Node) -> Optional[Symbol]:
        """The symbol introduced by a declaring node (local, pattern, parameter)."""
        ...

    def type_of(self, node: Expression) -> Optional[TypeRef]:
        ...

    def resolve_type(self, name: str) -> Optional[TypeRef]:
        ...

    def always_assigned(self, body: Block) -> FrozenSet[Symbol]:
        """Locals and parameters assigned on every path that leaves *body*."""
        ...

    def is_known_not_null(self, symbol: Symbol) -> bool:
        ...
