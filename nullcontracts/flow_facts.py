"""nullcontracts/flow_facts.py – point queries over a built flow tree.

:class:`FlowFacts` bundles what :class:`~nullcontracts.flow_tree.FlowTreeBuilder`
produced for one body and answers the question the checker asks at every
sink: *is this expression provably non-null here?*

Query algorithm (``is_proven``)
-------------------------------
1. A local or parameter assigned on every path, always to a non-null
   value, is proven everywhere.
2. So is a local whose every recorded assignment is non-null.  A
   constraint over either kind of fact is reported as redundant.
3. Locate the branch owning the query node (closure trees first, the
   innermost closure first, then the main tree).  A query inside a guard
   yields the guard prefix evaluated before it.
4. That prefix can settle the question on its own.
5. Otherwise walk up from the branch.  The nearest non-constraint branch
   whose condition proves the value wins.  A constraint proving it is
   remembered; if a real proof is found further up the constraint was
   redundant.
6. A null/unknown reassignment made inside the proving branch voids the
   proof, except that under a ``while`` guard only reassignments located
   before the query do: later ones are re-checked by the guard before the
   next iteration reaches the query again.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import FrozenSet, Iterator, List, Optional, Sequence, Tuple, Union

from nullcontracts import syntax as S
from nullcontracts.condition import Condition, ConditionKind
from nullcontracts.config import AnalysisConfig
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.flow_tree import Assignment, Branch, FlowTreeBuilder
from nullcontracts.semantic import SemanticModel, Symbol, SymbolKind
from nullcontracts.value_state import ValueState

logger = logging.getLogger(__name__)

__all__ = ["ExpressionStatus", "FlowFacts", "analyze"]


class ExpressionStatus(Enum):
    ASSIGNED = "assigned"
    REASSIGNED_AFTER_CONDITION = "reassigned-after-condition"
    NOT_ASSIGNED = "not-assigned"
    ASSIGNED_WITH_REDUNDANT_CONSTRAINT = "assigned-with-redundant-constraint"

    @property
    def is_assigned(self) -> bool:
        return self in (
            ExpressionStatus.ASSIGNED,
            ExpressionStatus.ASSIGNED_WITH_REDUNDANT_CONSTRAINT,
        )


class FlowFacts:
    """Flow tree, assignments and whole-method facts for one body."""

    def __init__(
        self,
        model: SemanticModel,
        tree: Branch,
        detached: Sequence[Branch],
        assignments: Sequence[Assignment],
        always_not_null_locals: FrozenSet[Symbol],
        has_explicit_constraints: bool,
        return_expressions: Sequence[S.Expression],
    ) -> None:
        self.model = model
        self.tree = tree
        self.detached_lambda_trees: Tuple[Branch, ...] = tuple(detached)
        self.assignments: Tuple[Assignment, ...] = tuple(assignments)
        self.always_not_null_locals = always_not_null_locals
        self.has_explicit_constraints = has_explicit_constraints
        self.return_expressions: Tuple[S.Expression, ...] = tuple(return_expressions)

    # -- lookup ---------------------------------------------------------------

    def find_branch(
        self, node: S.Node
    ) -> Optional[Tuple[Branch, Optional[Condition]]]:
        for root in self.detached_lambda_trees:
            found = root.find(node)
            if found is not None:
                return found
        return self.tree.find(node)

    def iter_branches(self) -> Iterator[Branch]:
        yield from self.tree.iter_tree()
        for root in self.detached_lambda_trees:
            yield from root.iter_tree()

    def assignments_for(self, symbol: Symbol) -> List[Assignment]:
        return [a for a in self.assignments if a.target is symbol]

    # -- queries ----------------------------------------------------------------

    def is_proven(
        self, target: S.Expression, query: Optional[S.Node] = None
    ) -> ExpressionStatus:
        """Is *target* non-null when control reaches *query*?

        *query* defaults to *target* itself.
        """
        target = S.strip_parentheses(target)
        if query is None:
            query = target
        elif isinstance(query, S.Expression):
            query = S.strip_parentheses(query)

        symbol = self.model.resolve_symbol(_narrowing_operand(target))
        if symbol is None:
            return ExpressionStatus.NOT_ASSIGNED
        fp = Fingerprint.of(target, self.model)

        # ``x as T`` can be null however often x is assigned.
        assignments = self.assignments_for(symbol)
        if fp.narrowed_type is None:
            if symbol in self.always_not_null_locals:
                return self._whole_method_status(fp, query)
            if symbol.kind is SymbolKind.LOCAL and assignments:
                if all(a.state is ValueState.NOT_NULL for a in assignments):
                    return self._whole_method_status(fp, query)

        located = self.find_branch(query)
        if located is None:
            logger.debug("query node %s is outside the flow tree", query.kind)
            return ExpressionStatus.NOT_ASSIGNED
        branch, inline = located

        if inline is not None:
            if inline.is_not_null_with_short_circuit(fp):
                return ExpressionStatus.ASSIGNED
            if inline.proves_null_with_short_circuit(fp):
                return ExpressionStatus.NOT_ASSIGNED

        proving, constraint = self._proving_branches(branch, fp)
        effective = proving or constraint
        if effective is None:
            return ExpressionStatus.NOT_ASSIGNED
        unsafe = [a for a in assignments if a.state is not ValueState.NOT_NULL]
        if self._reassigned_within(effective, fp, unsafe, query):
            return ExpressionStatus.REASSIGNED_AFTER_CONDITION
        if proving is not None and constraint is not None:
            return ExpressionStatus.ASSIGNED_WITH_REDUNDANT_CONSTRAINT
        return ExpressionStatus.ASSIGNED

    def assignments_after_constraints(self) -> Iterator[Assignment]:
        """Assignments made where a constraint already asserts their target."""
        for assignment in self.assignments:
            located = self.find_branch(assignment.expression)
            if located is None:
                continue
            fp = self._fingerprint_of_target(assignment)
            if fp is None:
                continue
            for branch in located[0].ancestors():
                if branch.condition.is_constraint_for(fp):
                    yield assignment
                    break

    # -- helpers ------------------------------------------------------------

    def _whole_method_status(
        self, fp: Fingerprint, query: S.Node
    ) -> ExpressionStatus:
        # Already proven everywhere, so any constraint over the query is redundant.
        located = self.find_branch(query)
        if located is not None:
            if any(b.condition.is_constraint_for(fp) for b in located[0].ancestors()):
                return ExpressionStatus.ASSIGNED_WITH_REDUNDANT_CONSTRAINT
        return ExpressionStatus.ASSIGNED

    @staticmethod
    def _proving_branches(
        branch: Branch, fp: Fingerprint
    ) -> Tuple[Optional[Branch], Optional[Branch]]:
        constraint: Optional[Branch] = None
        for ancestor in branch.ancestors():
            if not ancestor.condition.is_not_null(fp):
                continue
            if ancestor.condition.kind is ConditionKind.CONSTRAINT:
                if constraint is None:
                    constraint = ancestor
                continue
            return ancestor, constraint
        return None, constraint

    def _reassigned_within(
        self,
        proving: Branch,
        fp: Fingerprint,
        unsafe: Sequence[Assignment],
        query: S.Node,
    ) -> bool:
        loop_guard = proving.condition.is_while_for(fp)
        for assignment in unsafe:
            # A closure tree hangs from its declaring branch, so an
            # assignment inside a closure still counts under that branch.
            located = self.find_branch(assignment.expression)
            if located is None:
                continue
            owner = located[0]
            if not proving.is_ancestor_of(owner):
                continue
            if not loop_guard:
                return True
            if assignment.expression.span.start < query.span.start:
                return True
        return False

    def _fingerprint_of_target(self, assignment: Assignment) -> Optional[Fingerprint]:
        node = assignment.expression
        if isinstance(node, S.Assignment):
            return Fingerprint.of(node.target, self.model)
        if isinstance(node, S.Argument):
            return Fingerprint.of(node.expression, self.model)
        if isinstance(node, S.Expression):
            return Fingerprint.of(node, self.model)
        return None


def _narrowing_operand(expr: S.Expression) -> S.Expression:
    """The value under a top-level ``as``, which is what symbols resolve on."""
    while isinstance(expr, (S.Parenthesized, S.Cast, S.AsExpression)):
        expr = expr.expression
    return expr


def analyze(
    body: Union[S.Block, S.Expression, Sequence[S.Node]],
    model: SemanticModel,
    config: Optional[AnalysisConfig] = None,
    parameters: Sequence[Symbol] = (),
) -> FlowFacts:
    """Build the flow tree for *body* and wrap it as :class:`FlowFacts`.

    *parameters* are the analysed member's parameter symbols; annotated
    ones are whole-method facts unless the body reassigns them.
    """
    builder = FlowTreeBuilder(model, config)
    if isinstance(body, S.Block):
        tree, detached = builder.build(body.statements)
        always = model.always_assigned(body)
    elif isinstance(body, S.Expression):
        tree, detached = builder.build(body)
        always = frozenset()
    else:
        tree, detached = builder.build(list(body))
        always = model.always_assigned(S.Block(tuple(body)))

    unsafe = {a.target for a in builder.assignments if a.state is not ValueState.NOT_NULL}
    not_null = {s for s in always if s not in unsafe}
    for parameter in parameters:
        if parameter.has_not_null_or_check_null and parameter not in unsafe:
            not_null.add(parameter)

    return FlowFacts(
        model=model,
        tree=tree,
        detached=detached,
        assignments=builder.assignments,
        always_not_null_locals=frozenset(not_null),
        has_explicit_constraints=builder.has_explicit_constraints,
        return_expressions=builder.return_expressions,
    )
