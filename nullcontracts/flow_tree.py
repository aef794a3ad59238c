"""nullcontracts/flow_tree.py – the control-flow tree of reachability conditions.

A method body becomes a tree of :class:`Branch` objects.  Each branch
owns the statements reached under one :class:`Condition`; nesting means
"and also".  The shape follows the statements:

  if (c) A else B        ──►  child(c){A}, child(!c){B}
  if (c) { ...; return } ──►  child(c){...}, child(!c){rest of sequence}
  while (c) A            ──►  child(WHILE c){A}
  do/for/foreach         ──►  child(WHILE|FOREACH){A}
  try/using/lock/{...}   ──►  child(NONE){A}     (scoping only)
  switch                 ──►  one child(NONE) per section
  Constraint.NotNull(() => x);
                         ──►  child(CONSTRAINT x != null){rest of sequence}
  return c ? a : b       ──►  child(RETURN c){a}, child(RETURN !c){b}
  return <expr>          ──►  child(RETURN <expr>){}   (for truncation)

While walking, the builder records every assignment (explicit, initializer,
``out`` argument, pattern binding, foreach variable) and queues closures.
Closures are built afterwards as *detached* trees whose root hangs from
the branch active at the closure's declaration, then reversed so the
innermost closure is searched first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from nullcontracts import syntax as S
from nullcontracts.condition import Condition, ConditionKind, StateAtom
from nullcontracts.config import AnalysisConfig
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.guard import GuardDecomposer
from nullcontracts.semantic import SemanticModel, Symbol
from nullcontracts.value_state import ValueEvaluator, ValueState

logger = logging.getLogger(__name__)

__all__ = ["Branch", "Assignment", "FlowTreeBuilder", "constraint_target"]


class Branch:
    """A node of the flow tree.

    Attributes
    ----------
    parent : Branch or None
        The enclosing branch.  ``None`` only for the main root.  The root
        of a detached closure tree points at the declaring branch.
    condition : Condition
        What holds whenever this branch's statements run.
    body : list
        Nodes owned directly by this branch (never by a child).
    children : list[Branch]
        Nested branches, in source order.
    """

    __slots__ = ("parent", "condition", "body", "children")

    def __init__(self, parent: Optional["Branch"], condition: Condition) -> None:
        self.parent = parent
        self.condition = condition
        self.body: List[S.Node] = []
        self.children: List[Branch] = []

    def add_child(self, condition: Condition) -> "Branch":
        child = Branch(self, condition)
        self.children.append(child)
        return child

    def ancestors(self) -> Iterator["Branch"]:
        """This branch, then its parents up to the root."""
        branch: Optional[Branch] = self
        while branch is not None:
            yield branch
            branch = branch.parent

    def is_ancestor_of(self, other: "Branch") -> bool:
        return any(b is self for b in other.ancestors())

    def contains(self, node: S.Node) -> bool:
        """True when *node* sits in this branch's own body."""
        return any(S.contains(owned, node) for owned in self.body)

    def find(self, node: S.Node) -> Optional[Tuple["Branch", Optional[Condition]]]:
        """Locate the most specific branch that owns *node*.

        When *node* is inside this branch's own guard, the result is the
        parent together with the prefix of the guard evaluated before
        *node*.  Children are searched before the body: a statement whose
        arms were split into child branches stays in the body too.
        """
        inline = self.condition.try_truncate_before(node)
        if inline is not None:
            return (self.parent or self), inline
        for child in self.children:
            found = child.find(node)
            if found is not None:
                return found
        if self.contains(node):
            return self, None
        return None

    def iter_tree(self) -> Iterator["Branch"]:
        yield self
        for child in self.children:
            yield from child.iter_tree()

    def structure(self) -> tuple:
        """Nested tuple of conditions and owned nodes, for comparisons."""
        owned = tuple((n.kind, n.span.start) for n in self.body)
        return (self.condition, owned, tuple(c.structure() for c in self.children))

    def dump(self, indent: int = 0) -> str:
        lines = [f"{'  ' * indent}{self.condition}"]
        for node in self.body:
            lines.append(f"{'  ' * (indent + 1)}- {node.kind} @ {node.span}")
        for child in self.children:
            lines.append(child.dump(indent + 1))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<Branch {self.condition} body={len(self.body)} children={len(self.children)}>"


@dataclass(frozen=True, slots=True)
class Assignment:
    """A value bound to ``target`` at ``expression``."""

    target: Symbol
    expression: S.Node
    state: ValueState


def constraint_target(
    statement: S.Node, model: SemanticModel, config: AnalysisConfig
) -> Optional[S.Expression]:
    """The asserted member of ``Constraint.NotNull(() => member)``.

    Returns ``None`` when *statement* is not a call to the configured
    constraint method or the lambda body is not a plain member read.
    """
    if not isinstance(statement, S.ExpressionStatement):
        return None
    call = statement.expression
    if not is_constraint_call(call, model, config):
        return None
    if len(call.arguments) != 1:
        return None
    lam = call.arguments[0].expression
    if not isinstance(lam, S.Lambda) or lam.parameters:
        return None
    body = S.strip_parentheses(lam.body) if isinstance(lam.body, S.Expression) else None
    if isinstance(body, (S.Name, S.MemberAccess)):
        return body
    return None


def is_constraint_call(
    node: S.Node, model: SemanticModel, config: AnalysisConfig
) -> bool:
    if not isinstance(node, S.Invocation):
        return False
    symbol = model.resolve_symbol(node)
    return symbol is not None and symbol.full_name in config.constraint_methods


def _exits_early(statement: S.Statement) -> bool:
    # Only immediate children count; nested exits are not hoisted.
    return any(
        isinstance(s, (S.ReturnStatement, S.ThrowStatement, S.ContinueStatement))
        for s in S.statements_of(statement)
    )


class _AssignmentCollector(S.SyntaxWalker):
    """Records assignments in one statement and queues nested closures."""

    def __init__(self, builder: "FlowTreeBuilder", branch: Branch) -> None:
        self.builder = builder
        self.branch = branch

    def visit_Lambda(self, node: S.Lambda) -> None:
        self.builder._closures.append((node, self.branch))

    def visit_Assignment(self, node: S.Assignment) -> None:
        self.builder._record(node.target, node, self.builder.evaluator.value_of(node.value))
        self.generic_visit(node)

    def visit_LocalDeclaration(self, node: S.LocalDeclaration) -> None:
        if node.initializer is not None:
            symbol = self.builder.model.declared_symbol(node)
            if symbol is not None:
                state = self.builder.evaluator.value_of(node.initializer)
                self.builder._add(symbol, node, state)
        self.generic_visit(node)

    def visit_Argument(self, node: S.Argument) -> None:
        if node.ref_kind is S.RefKind.OUT:
            if isinstance(node.expression, S.OutVariable):
                symbol = self.builder.model.declared_symbol(node.expression)
                if symbol is not None:
                    self.builder._add(symbol, node.expression, ValueState.UNKNOWN)
            else:
                self.builder._record(node.expression, node, ValueState.UNKNOWN)
        self.generic_visit(node)

    def visit_IsType(self, node: S.IsType) -> None:
        if node.designation:
            symbol = self.builder.model.declared_symbol(node)
            if symbol is not None:
                self.builder._add(symbol, node, ValueState.NOT_NULL)
        self.generic_visit(node)


class FlowTreeBuilder:
    """Builds the flow tree for one body.  Use once per body."""

    def __init__(
        self, model: SemanticModel, config: Optional[AnalysisConfig] = None
    ) -> None:
        self.model = model
        self.config = config or AnalysisConfig()
        self.evaluator = ValueEvaluator(model)
        self.decomposer = GuardDecomposer(model)
        self.assignments: List[Assignment] = []
        self.return_expressions: List[S.Expression] = []
        self.has_explicit_constraints = False
        self._closures: List[Tuple[S.Lambda, Branch]] = []

    # -- entry points -------------------------------------------------------

    def build(
        self, body: Union[Sequence[S.Node], S.Expression]
    ) -> Tuple[Branch, List[Branch]]:
        """Build the main tree and the detached closure trees.

        *body* is a statement sequence, or the expression of an
        expression-bodied member (treated as its single return value).
        """
        if isinstance(body, S.Expression):
            root = Branch(None, Condition.empty())
            self.return_expressions.append(body)
            self._collect(body, root)
            self._build_expression_body(root, body)
        else:
            root = self.build_into(None, Condition.empty(), body, in_lambda=False)
        detached: List[Branch] = []
        # Closures found while building a closure are appended as we go.
        index = 0
        while index < len(self._closures):
            lam, declaring = self._closures[index]
            index += 1
            branch = Branch(declaring, Condition.empty())
            if isinstance(lam.body, S.Block):
                self._build_sequence(branch, list(lam.body.statements), True)
            else:
                self._collect(lam.body, branch)
                self._build_expression_body(branch, lam.body)
            detached.append(branch)
        detached.reverse()
        logger.debug(
            "built flow tree: %d branches, %d closures, %d assignments",
            sum(1 for _ in root.iter_tree()), len(detached), len(self.assignments),
        )
        return root, detached

    def build_into(
        self,
        parent: Optional[Branch],
        inherited: Condition,
        statements: Sequence[S.Node],
        in_lambda: bool,
    ) -> Branch:
        """Build *statements* under *inherited* as a new child of *parent*
        (or as a new root when *parent* is ``None``)."""
        if parent is None:
            branch = Branch(None, inherited)
        else:
            branch = parent.add_child(inherited)
        self._build_sequence(branch, list(statements), in_lambda)
        return branch

    # -- statements -----------------------------------------------------------

    def _build_sequence(
        self, branch: Branch, statements: List[S.Node], in_lambda: bool
    ) -> None:
        for index, statement in enumerate(statements):
            rest = statements[index + 1:]
            if self._build_statement(branch, statement, rest, in_lambda):
                return

    def _build_statement(
        self,
        branch: Branch,
        statement: S.Node,
        rest: List[S.Node],
        in_lambda: bool,
    ) -> bool:
        """Build one statement; return True when it consumed *rest*."""
        none = Condition.empty()

        if isinstance(statement, S.IfStatement):
            self._collect(statement.condition, branch)
            condition = self.decomposer.parse(ConditionKind.IF, statement.condition)
            self.build_into(branch, condition, S.statements_of(statement.then), in_lambda)
            if _exits_early(statement.then):
                remainder = list(S.statements_of(statement.orelse)) + rest
                self.build_into(branch, condition.negate(), remainder, in_lambda)
                return True
            if statement.orelse is not None:
                self.build_into(branch, condition.negate(),
                                S.statements_of(statement.orelse), in_lambda)
            return False

        if isinstance(statement, S.ReturnStatement):
            if statement.expression is not None:
                if not in_lambda:
                    self.return_expressions.append(statement.expression)
                self._collect(statement.expression, branch)
                self._build_expression_body(branch, statement.expression)
            return False

        if isinstance(statement, S.WhileStatement):
            self._collect(statement.condition, branch)
            condition = self.decomposer.parse(ConditionKind.WHILE, statement.condition)
            self.build_into(branch, condition, S.statements_of(statement.body), in_lambda)
            return False

        if isinstance(statement, S.DoStatement):
            self._collect(statement.condition, branch)
            body = list(S.statements_of(statement.body)) + [statement.condition]
            self.build_into(branch, Condition.empty(ConditionKind.WHILE), body, in_lambda)
            return False

        if isinstance(statement, S.ForStatement):
            for init in statement.initializers:
                self._collect(init, branch)
                branch.body.append(init)
            loop = list(S.statements_of(statement.body))
            for node in (statement.condition, *statement.incrementors):
                if node is not None:
                    self._collect(node, branch)
                    loop.append(node)
            self.build_into(branch, Condition.empty(ConditionKind.FOREACH), loop, in_lambda)
            return False

        if isinstance(statement, S.ForEachStatement):
            self._collect(statement.collection, branch)
            branch.body.append(statement.collection)
            symbol = self.model.declared_symbol(statement)
            if symbol is not None:
                self._add(symbol, statement, ValueState.NOT_NULL)
            self.build_into(branch, Condition.empty(ConditionKind.FOREACH),
                            S.statements_of(statement.body), in_lambda)
            return False

        if isinstance(statement, S.SwitchStatement):
            self._collect(statement.expression, branch)
            branch.body.append(statement.expression)
            for section in statement.sections:
                for label in section.labels:
                    if isinstance(label, S.PatternLabel) and label.designation:
                        symbol = self.model.declared_symbol(label)
                        if symbol is not None:
                            self._add(symbol, label, ValueState.NOT_NULL)
                self.build_into(branch, none, section.statements, in_lambda)
            return False

        if isinstance(statement, S.TryStatement):
            self.build_into(branch, none, statement.block.statements, in_lambda)
            for clause in statement.catches:
                if clause.name:
                    symbol = self.model.declared_symbol(clause)
                    if symbol is not None:
                        self._add(symbol, clause, ValueState.NOT_NULL)
                self.build_into(branch, none, clause.block.statements, in_lambda)
            if statement.finalbody is not None:
                self.build_into(branch, none, statement.finalbody.statements, in_lambda)
            return False

        if isinstance(statement, (S.UsingStatement, S.LockStatement)):
            header = (statement.resource if isinstance(statement, S.UsingStatement)
                      else statement.expression)
            self._collect(header, branch)
            branch.body.append(header)
            self.build_into(branch, none, S.statements_of(statement.body), in_lambda)
            return False

        if isinstance(statement, S.Block):
            self.build_into(branch, none, statement.statements, in_lambda)
            return False

        target = constraint_target(statement, self.model, self.config)
        if target is not None:
            self.has_explicit_constraints = True
            branch.body.append(statement)
            atom = StateAtom(Fingerprint.of(target, self.model), ValueState.NOT_NULL, target)
            condition = Condition.of(ConditionKind.CONSTRAINT, [atom])
            self.build_into(branch, condition, rest, in_lambda)
            return True

        if isinstance(statement, (S.ExpressionStatement, S.LocalDeclaration)):
            value = (statement.expression if isinstance(statement, S.ExpressionStatement)
                     else statement.initializer)
            if isinstance(value, S.Assignment):
                value = value.value
            value = S.strip_parentheses(value) if value is not None else None
            if isinstance(value, S.Conditional):
                # x = c ? a : b  – each arm only runs under its half of c.
                self._collect(statement, branch)
                branch.body.append(statement)
                self._build_conditional_arms(branch, value)
                return False

        self._collect(statement, branch)
        branch.body.append(statement)
        return False

    def _build_expression_body(self, branch: Branch, expr: S.Expression) -> None:
        """Children for an expression whose value is produced (returns, arrow bodies)."""
        inner = S.strip_parentheses(expr)
        if isinstance(inner, S.Conditional):
            self._build_conditional_arms(branch, inner)
            return
        # The child owns nothing; its atoms' anchors cover the expression,
        # so queries inside it resolve through truncation.
        branch.add_child(self.decomposer.parse(ConditionKind.RETURN, inner))

    def _build_conditional_arms(self, branch: Branch, expr: S.Conditional) -> None:
        condition = self.decomposer.parse(ConditionKind.RETURN, expr.condition)
        branch.add_child(condition).body.append(expr.when_true)
        branch.add_child(condition.negate()).body.append(expr.when_false)

    # -- assignments ------------------------------------------------------

    def _collect(self, node: Optional[S.Node], branch: Branch) -> None:
        if node is not None:
            _AssignmentCollector(self, branch).visit(node)

    def _record(self, target: S.Expression, node: S.Node, state: ValueState) -> None:
        symbol = self.model.resolve_symbol(S.strip_parentheses(target))
        if symbol is not None:
            self._add(symbol, node, state)

    def _add(self, symbol: Symbol, node: S.Node, state: ValueState) -> None:
        self.assignments.append(Assignment(symbol, node, state))
