"""nullcontracts/condition.py – immutable, composable proof conditions.

A :class:`Condition` is what must hold for control to reach a branch of
the flow tree.  It is an ordered sequence of atoms joined by one
combinator:

* ``StateAtom(fp, state)``   – ``fp`` is null / not null
* ``TypeTestAtom(fp, neg)``  – ``fp is T`` succeeded (or failed)

Atom order is load-bearing.  ``a != null && Use(a)`` only guarantees the
first atom has been evaluated while ``Use(a)`` runs, so queries made from
inside a guard use :meth:`Condition.try_truncate_before` to keep just the
prefix evaluated strictly before the query position.

Every atom remembers the guard sub-expression it came from (its
*anchor*).  Anchors take no part in equality: two conditions built from
separately parsed, identical guards compare equal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Sequence, Tuple, Union

from nullcontracts import syntax as S
from nullcontracts.errors import ConditionContractError
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.value_state import ValueState

__all__ = [
    "ConditionKind",
    "Combinator",
    "StateAtom",
    "TypeTestAtom",
    "Atom",
    "Condition",
    "combine_combinators",
]


class ConditionKind(Enum):
    NONE = auto()
    IF = auto()
    WHILE = auto()
    FOREACH = auto()
    CONSTRAINT = auto()
    RETURN = auto()


class Combinator(Enum):
    AND = "&&"
    OR = "||"
    MIXED = "mixed"

    def negate(self) -> "Combinator":
        if self is Combinator.AND:
            return Combinator.OR
        if self is Combinator.OR:
            return Combinator.AND
        return self


def combine_combinators(
    existing: Optional[Combinator], new: Optional[Combinator]
) -> Optional[Combinator]:
    """Join two combinators: equal ones survive, different ones become Mixed."""
    if existing is None or existing is new:
        return new
    if new is None:
        return existing
    return Combinator.MIXED


@dataclass(frozen=True, slots=True)
class StateAtom:
    fingerprint: Fingerprint
    state: ValueState
    anchor: Optional[S.Node] = field(default=None, compare=False, repr=False)

    def negate(self) -> "StateAtom":
        return StateAtom(self.fingerprint, self.state.negate(), self.anchor)

    def proves_not_null(self, fp: Fingerprint) -> bool:
        return self.state is ValueState.NOT_NULL and self.fingerprint.contains(fp)

    def proves_null(self, fp: Fingerprint) -> bool:
        return self.state is ValueState.NULL and self.fingerprint.contains(fp)

    def __str__(self) -> str:
        if self.state is ValueState.NOT_NULL:
            return f"{self.fingerprint} != null"
        if self.state is ValueState.NULL:
            return f"{self.fingerprint} == null"
        return f"<{self.fingerprint}>"


@dataclass(frozen=True, slots=True)
class TypeTestAtom:
    """A successful ``x is T`` implies ``x`` is not null."""

    fingerprint: Fingerprint
    negated: bool = False
    anchor: Optional[S.Node] = field(default=None, compare=False, repr=False)

    def negate(self) -> "TypeTestAtom":
        return TypeTestAtom(self.fingerprint, not self.negated, self.anchor)

    def proves_not_null(self, fp: Fingerprint) -> bool:
        return not self.negated and self.fingerprint.contains(fp)

    def proves_null(self, fp: Fingerprint) -> bool:
        # A failed type test says nothing about nullness of a non-null value,
        # but it is the exact negation of a successful one.
        return self.negated and self.fingerprint.contains(fp)

    def __str__(self) -> str:
        tested = self.fingerprint.narrowed_type or "..."
        return f"{'!' if self.negated else ''}({self.fingerprint.key} is {tested})"


Atom = Union[StateAtom, TypeTestAtom]


@dataclass(frozen=True, slots=True)
class Condition:
    kind: ConditionKind = ConditionKind.NONE
    atoms: Tuple[Atom, ...] = ()
    combinator: Optional[Combinator] = None
    truncated: bool = False

    def __post_init__(self) -> None:
        if len(self.atoms) > 1 and self.combinator is None:
            raise ConditionContractError(
                f"{len(self.atoms)} atoms combined without a combinator"
            )
        if len(self.atoms) <= 1 and not self.truncated and self.combinator is not None:
            # A lone atom keeps its combinator only as a truncated prefix.
            object.__setattr__(self, "combinator", None)

    # -- construction ---------------------------------------------------

    @classmethod
    def empty(cls, kind: ConditionKind = ConditionKind.NONE) -> "Condition":
        return cls(kind)

    @classmethod
    def of(
        cls,
        kind: ConditionKind,
        atoms: Sequence[Atom],
        combinator: Optional[Combinator] = None,
    ) -> "Condition":
        return cls(kind, tuple(atoms), combinator if len(atoms) > 1 else None)

    def extend(
        self, atoms: Sequence[Atom], combinator: Optional[Combinator]
    ) -> "Condition":
        """Concatenate *atoms*, joined to the existing ones by *combinator*."""
        if not atoms:
            return self
        merged = self.atoms + tuple(atoms)
        if len(merged) <= 1:
            return Condition(self.kind, merged, None, self.truncated)
        joined = self.combinator if len(self.atoms) > 1 else None
        joined = combine_combinators(joined, combinator)
        if joined is None:
            raise ConditionContractError("concatenation needs a combinator")
        return Condition(self.kind, merged, joined, self.truncated)

    def negate(self) -> "Condition":
        combinator = self.combinator.negate() if self.combinator else None
        return Condition(
            self.kind,
            tuple(atom.negate() for atom in self.atoms),
            combinator,
            self.truncated,
        )

    # -- queries ----------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.atoms

    def is_not_null(self, fp: Fingerprint) -> bool:
        """Does reaching this condition prove *fp* non-null?"""
        if self.combinator is None or self.combinator is Combinator.AND:
            return any(atom.proves_not_null(fp) for atom in self.atoms)
        return False

    def is_not_null_with_short_circuit(self, fp: Fingerprint) -> bool:
        """Is *fp* non-null by the time evaluation got past these atoms?

        Under ``&&`` every atom so far held.  Under ``||`` every atom so
        far failed, so an atom claiming ``fp == null`` was false.
        """
        if self.combinator is None or self.combinator is Combinator.AND:
            return any(atom.proves_not_null(fp) for atom in self.atoms)
        if self.combinator is Combinator.OR:
            return any(atom.proves_null(fp) for atom in self.atoms)
        return False

    def proves_null_with_short_circuit(self, fp: Fingerprint) -> bool:
        if self.combinator is None or self.combinator is Combinator.AND:
            return any(atom.proves_null(fp) for atom in self.atoms)
        if self.combinator is Combinator.OR:
            return any(atom.proves_not_null(fp) for atom in self.atoms)
        return False

    def is_constraint_for(self, fp: Fingerprint) -> bool:
        return self.kind is ConditionKind.CONSTRAINT and any(
            atom.fingerprint == fp for atom in self.atoms
        )

    def is_while_for(self, fp: Fingerprint) -> bool:
        return self.kind is ConditionKind.WHILE and any(
            atom.fingerprint.key == fp.key for atom in self.atoms
        )

    def try_truncate_before(self, node: S.Node) -> Optional["Condition"]:
        """The prefix of atoms evaluated strictly before *node*.

        Returns ``None`` when *node* lies outside every atom's anchor, i.e.
        the query is not inside this condition's guard expression.
        """
        taken = []
        for atom in self.atoms:
            anchor = atom.anchor
            if anchor is not None and S.contains(anchor, node):
                return Condition(self.kind, tuple(taken), self.combinator, True)
            taken.append(atom)
        return None

    def __str__(self) -> str:
        if not self.atoms:
            return f"{self.kind.name}"
        joiner = f" {self.combinator.value} " if self.combinator else ""
        return f"{self.kind.name}({joiner.join(str(a) for a in self.atoms)})"
