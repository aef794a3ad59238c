"""
nullcontracts/checker.py
════════════════════════

The caller side of the engine: finds every "must not be null" sink in a
compilation unit and asks :class:`~nullcontracts.flow_facts.FlowFacts`
whether the value reaching it is proven.

Sinks
─────
  * arguments bound to ``NotNull`` / ``CheckNull`` parameters
  * assignments to ``NotNull`` fields, properties, locals or parameters
  * return values of ``NotNull`` methods and expression-bodied members
  * ``NotNull`` field / property initializers

Besides the sinks the checker flags redundant null checks on annotated
members, ``Constraint.NotNull`` misuse, and annotated members passed by
``ref``.

Each checker follows the lifecycle

  1. **configure()**:        read the analysis settings
  2. **collect_evidence()**: build flow facts, walk the members
  3. **diagnose()**:         turn evidence into Diagnostics
  4. **report()**:           return them in source order
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Set, Tuple

from nullcontracts import syntax as S
from nullcontracts.analysis_cache import AnalysisCache
from nullcontracts.config import AnalysisConfig
from nullcontracts.errors import ParseFailedError
from nullcontracts.flow_facts import ExpressionStatus, FlowFacts, analyze
from nullcontracts.flow_tree import constraint_target, is_constraint_call
from nullcontracts.semantic import (
    CHECK_NULL_ATTRIBUTE, NOT_NULL_ATTRIBUTE, SemanticModel, Symbol, SymbolKind,
)
from nullcontracts.value_state import ValueEvaluator, ValueState

logger = logging.getLogger(__name__)

__all__ = [
    "DiagnosticSeverity",
    "SourceLocation",
    "Diagnostic",
    "CheckerContext",
    "Checker",
    "NullContractChecker",
    "PARSE_FAILED",
    "INVALID_CONSTRAINT",
    "ASSIGNMENT_AFTER_CONSTRAINT",
    "ASSIGNMENT_AFTER_CONDITION",
    "UNNEEDED_NULL_CHECK",
    "UNNEEDED_CONSTRAINT",
    "NULL_ASSIGNMENT",
    "RETURN_NULL",
    "NOT_NULL_AS_REF_PARAMETER",
]

PARSE_FAILED = "NC0000"
INVALID_CONSTRAINT = "NC1003"
ASSIGNMENT_AFTER_CONSTRAINT = "NC1004"
ASSIGNMENT_AFTER_CONDITION = "NC1005"
UNNEEDED_NULL_CHECK = "NC2001"
UNNEEDED_CONSTRAINT = "NC2002"
NULL_ASSIGNMENT = "NC3001"
RETURN_NULL = "NC3004"
NOT_NULL_AS_REF_PARAMETER = "NC3005"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"

    @property
    def color(self) -> str:
        """termcolor colour name used by the text reporter."""
        return "red" if self is DiagnosticSeverity.ERROR else "yellow"


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0
    column: int = 0

    @classmethod
    def of(cls, node: S.Node) -> "SourceLocation":
        span = node.span
        return cls(span.file, span.line, span.column)

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding.

    Attributes
    ----------
    error_id     : NC rule identifier (e.g. "NC3001")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Primary source location
    checker_name : Name of the checker that produced this
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    checker_name: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "file": self.location.file,
            "line": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "errorId": self.error_id,
            "message": self.message,
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """
    Shared context passed to every checker.

    Attributes
    ----------
    unit    : the compilation unit under analysis
    model   : semantic service for ``unit``
    config  : AnalysisConfig
    cache   : flow analyses shared across checkers and runs
    """
    unit: S.CompilationUnit
    model: SemanticModel
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    cache: Optional[AnalysisCache] = None


class Checker(ABC):
    """
    Abstract base class for all checkers.

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``error_ids``
      - Implement ``collect_evidence()`` and ``diagnose()``
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    error_ids: ClassVar[FrozenSet[str]] = frozenset()
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING
    severities: ClassVar[Dict[str, DiagnosticSeverity]] = {}

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def configure(self, ctx: CheckerContext) -> None:
        pass

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        return sorted(
            self._diagnostics,
            key=lambda d: (d.location.file, d.location.line, d.location.column),
        )

    def run(self, ctx: CheckerContext) -> List[Diagnostic]:
        """All four phases in order."""
        self.configure(ctx)
        self.collect_evidence(ctx)
        self.diagnose(ctx)
        return self.report(ctx)

    def _emit(self, error_id: str, message: str, node: Optional[S.Node] = None,
              location: Optional[SourceLocation] = None) -> None:
        self._diagnostics.append(Diagnostic(
            error_id=error_id,
            message=message,
            severity=self.severities.get(error_id, self.default_severity),
            location=location or (SourceLocation.of(node) if node else SourceLocation()),
            checker_name=self.name,
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: NULL CONTRACT CHECKER
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _Finding:
    error_id: str
    message: str
    node: S.Node


def _is_null_literal(expr: S.Expression) -> bool:
    expr = S.strip_parentheses(expr)
    return isinstance(expr, S.Literal) and expr.is_null


def _underlying_member(expr: S.Expression) -> Optional[S.Expression]:
    """The field/property/local read by *expr*, ignoring wrappers."""
    while isinstance(expr, (S.Parenthesized, S.Cast, S.Assignment)):
        expr = expr.target if isinstance(expr, S.Assignment) else expr.expression
    if isinstance(expr, (S.Name, S.MemberAccess, S.ConditionalAccess, S.Conditional)):
        return expr
    return None


class _SinkWalker(S.SyntaxWalker):
    """Walks one member body and collects findings."""

    def __init__(self, checker: "NullContractChecker", facts: Optional[FlowFacts]) -> None:
        self.checker = checker
        self.facts = facts
        self.model = checker.model
        self.findings: List[_Finding] = []
        self._precondition_checks: Set[S.Node] = set()

    # -- statements ---------------------------------------------------------

    def visit_IfStatement(self, node: S.IfStatement) -> None:
        # ``if (p == null) throw ...`` is a precondition, not a redundant check.
        first = S.statements_of(node.then)[:1]
        if first and isinstance(first[0], S.ThrowStatement):
            self._precondition_checks.add(S.strip_parentheses(node.condition))
        self.generic_visit(node)

    def visit_ExpressionStatement(self, node: S.ExpressionStatement) -> None:
        if is_constraint_call(node.expression, self.model, self.checker.config):
            target = constraint_target(node, self.model, self.checker.config)
            if target is None:
                self._add(INVALID_CONSTRAINT,
                          "Constraint.NotNull needs a lambda returning a member", node)
            else:
                symbol = self.model.resolve_symbol(target)
                if symbol is not None and symbol.has_not_null_or_check_null:
                    self._add(UNNEEDED_CONSTRAINT,
                              f"'{symbol}' is already annotated; the constraint is unneeded",
                              node)
            return
        self.generic_visit(node)

    # -- expressions ----------------------------------------------------------

    def visit_Invocation(self, node: S.Invocation) -> None:
        self.generic_visit(node)
        symbol = self.model.resolve_symbol(node)
        if symbol is not None and symbol.kind is SymbolKind.METHOD:
            self._check_arguments(node, symbol, node.arguments)

    def visit_ObjectCreation(self, node: S.ObjectCreation) -> None:
        self.generic_visit(node)
        symbol = self.model.resolve_symbol(node)
        if symbol is not None:
            self._check_arguments(node, symbol, node.arguments)

    def visit_Assignment(self, node: S.Assignment) -> None:
        self.generic_visit(node)
        member = _underlying_member(node.target)
        if member is None:
            return
        symbol = self.model.resolve_symbol(member)
        if symbol is None or not symbol.has_not_null_or_check_null:
            return
        self._check_value(node.value, node, NULL_ASSIGNMENT,
                          f"'{symbol}' is NotNull but may be assigned null")

    def visit_Binary(self, node: S.Binary) -> None:
        self.generic_visit(node)
        if node.operator in ("==", "!="):
            if _is_null_literal(node.right):
                self._check_redundant(node.left, node)
            elif _is_null_literal(node.left):
                self._check_redundant(node.right, node)
        elif node.operator == "??":
            self._check_redundant(node.left, node)

    def visit_ConditionalAccess(self, node: S.ConditionalAccess) -> None:
        self.generic_visit(node)
        self._check_redundant(node.target, node)

    # -- checks -----------------------------------------------------------------

    def _check_arguments(
        self, node: S.Node, method: Symbol, arguments: Tuple[S.Argument, ...]
    ) -> None:
        parameters = method.parameters
        if len(parameters) != len(arguments):
            return
        for parameter, argument in zip(parameters, arguments):
            if parameter.ref_kind is S.RefKind.PARAMS:
                return
            expr = argument.expression
            if parameter.ref_kind is S.RefKind.REF:
                symbol = self.model.resolve_symbol(S.strip_parentheses(expr))
                if symbol is not None and symbol.has_not_null_or_check_null:
                    self._add(NOT_NULL_AS_REF_PARAMETER,
                              f"NotNull member '{symbol}' cannot be passed by ref", argument)
                    continue
            if parameter.ref_kind is S.RefKind.OUT:
                continue
            if not parameter.has_not_null_or_check_null:
                continue
            self._check_value(
                expr, expr, NULL_ASSIGNMENT,
                f"argument '{S.render(expr)}' of {method.name}() may be null",
            )

    def _check_redundant(self, expr: S.Expression, check: S.Node) -> None:
        if check in self._precondition_checks:
            return
        member = _underlying_member(expr)
        if member is None:
            return
        if isinstance(member, S.Conditional):
            self._check_redundant(member.when_true, check)
            self._check_redundant(member.when_false, check)
            return
        if self.checker.evaluator.value_of(expr) is not ValueState.NOT_NULL:
            return
        symbol = self.model.resolve_symbol(member)
        if symbol is not None and symbol.has_not_null_or_check_null:
            self._add(UNNEEDED_NULL_CHECK,
                      f"'{symbol}' is NotNull; the null check is unneeded", check)

    def _check_value(self, expr: S.Expression, where: S.Node,
                     error_id: str, message: str) -> None:
        for status in self.checker.value_statuses(self.facts, expr):
            if status is ExpressionStatus.NOT_ASSIGNED:
                self._add(error_id, message, where)
            elif status is ExpressionStatus.REASSIGNED_AFTER_CONDITION:
                self._add(ASSIGNMENT_AFTER_CONDITION,
                          f"'{S.render(expr)}' is reassigned after its null check", where)
            elif status is ExpressionStatus.ASSIGNED_WITH_REDUNDANT_CONSTRAINT:
                self._add(UNNEEDED_CONSTRAINT,
                          f"the constraint on '{S.render(expr)}' is unneeded", where)

    def _add(self, error_id: str, message: str, node: S.Node) -> None:
        self.findings.append(_Finding(error_id, message, node))


class NullContractChecker(Checker):
    """Verifies NotNull contracts with flow-sensitive null proofs."""

    name: ClassVar[str] = "null-contracts"
    description: ClassVar[str] = "NotNull sink verification"
    error_ids: ClassVar[FrozenSet[str]] = frozenset({
        PARSE_FAILED, INVALID_CONSTRAINT, ASSIGNMENT_AFTER_CONSTRAINT,
        ASSIGNMENT_AFTER_CONDITION, UNNEEDED_NULL_CHECK, UNNEEDED_CONSTRAINT,
        NULL_ASSIGNMENT, RETURN_NULL, NOT_NULL_AS_REF_PARAMETER,
    })
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.ERROR
    severities: ClassVar[Dict[str, DiagnosticSeverity]] = {
        UNNEEDED_NULL_CHECK: DiagnosticSeverity.WARNING,
        UNNEEDED_CONSTRAINT: DiagnosticSeverity.WARNING,
    }

    def __init__(self) -> None:
        super().__init__()
        self.model: Optional[SemanticModel] = None
        self.config = AnalysisConfig()
        self.evaluator: Optional[ValueEvaluator] = None
        self._cache: Optional[AnalysisCache] = None
        self._findings: List[_Finding] = []
        self._failures: List[ParseFailedError] = []

    def configure(self, ctx: CheckerContext) -> None:
        self.model = ctx.model
        self.config = ctx.config
        self.evaluator = ValueEvaluator(ctx.model)
        self._cache = ctx.cache

    # -- evidence -------------------------------------------------------------

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for type_decl in ctx.unit.types:
            for member in type_decl.members:
                try:
                    self._collect_member(member)
                except ParseFailedError as exc:
                    logger.info("analysis of %s failed: %s", member.kind, exc)
                    self._failures.append(exc)

    def _collect_member(self, member: S.Member) -> None:
        if isinstance(member, (S.FieldDeclaration, S.PropertyDeclaration)):
            self._collect_field_like(member)
        elif isinstance(member, (S.MethodDeclaration, S.ConstructorDeclaration)):
            self._collect_method(member)

    def _collect_field_like(self, member: S.Member) -> None:
        annotated = bool(member.attributes & {NOT_NULL_ATTRIBUTE, CHECK_NULL_ATTRIBUTE})
        init = member.initializer
        if init is not None:
            walker = _SinkWalker(self, None)
            walker.visit(init)
            self._findings.extend(walker.findings)
            if annotated and self.evaluator.value_of(init) is ValueState.NULL:
                self._findings.append(_Finding(
                    NULL_ASSIGNMENT, f"'{member.name}' is NotNull but initialized to null", init))
        body = getattr(member, "expression_body", None)
        if body is not None:
            facts = self.facts_for(member, body)
            walker = _SinkWalker(self, facts)
            walker.visit(body)
            self._findings.extend(walker.findings)
            if annotated:
                self._check_returns(member.name, facts)

    def _collect_method(self, member: S.Node) -> None:
        body = member.body
        if body is None:
            body = getattr(member, "expression_body", None)
        if body is None:
            return
        facts = self.facts_for(member, body)
        walker = _SinkWalker(self, facts)
        walker.visit(body)
        self._findings.extend(walker.findings)
        if isinstance(member, S.MethodDeclaration) and NOT_NULL_ATTRIBUTE in member.attributes:
            self._check_returns(member.name, facts)
        if facts.has_explicit_constraints:
            for assignment in facts.assignments_after_constraints():
                self._findings.append(_Finding(
                    ASSIGNMENT_AFTER_CONSTRAINT,
                    f"'{assignment.target}' is assigned after its constraint",
                    assignment.expression,
                ))

    def _check_returns(self, name: str, facts: FlowFacts) -> None:
        for expr in facts.return_expressions:
            for status in self.value_statuses(facts, expr):
                if not status.is_assigned:
                    self._findings.append(_Finding(
                        RETURN_NULL, f"{name} is NotNull but may return null", expr))
                elif status is ExpressionStatus.ASSIGNED_WITH_REDUNDANT_CONSTRAINT:
                    self._findings.append(_Finding(
                        UNNEEDED_CONSTRAINT, f"the constraint on '{S.render(expr)}' is unneeded", expr))

    # -- engine access -----------------------------------------------------

    def facts_for(self, member: S.Node, body: S.Node) -> FlowFacts:
        parameters = [
            symbol for symbol in (
                self.model.declared_symbol(p) for p in getattr(member, "parameters", ())
            ) if symbol is not None
        ]

        def build() -> FlowFacts:
            return analyze(body, self.model, self.config, parameters)

        if self._cache is None:
            return build()
        return self._cache.get_or_build(member, build)

    def value_statuses(
        self, facts: Optional[FlowFacts], expr: S.Expression
    ) -> List[ExpressionStatus]:
        """Status of each value *expr* can produce at its own position."""
        expr = S.strip_parentheses(expr)
        if isinstance(expr, S.Conditional):
            return (self.value_statuses(facts, expr.when_true)
                    + self.value_statuses(facts, expr.when_false))
        if isinstance(expr, S.Binary) and expr.operator == "??":
            return self.value_statuses(facts, expr.right)
        value = self.evaluator.value_of(expr)
        if value is ValueState.NOT_NULL:
            return [ExpressionStatus.ASSIGNED]
        if value is ValueState.NULL or facts is None:
            return [ExpressionStatus.NOT_ASSIGNED]
        if isinstance(expr, S.Invocation):
            # Call results are never tracked by the tree.
            return [ExpressionStatus.NOT_ASSIGNED]
        return [facts.is_proven(expr, expr)]

    # -- diagnosis ------------------------------------------------------------

    def diagnose(self, ctx: CheckerContext) -> None:
        seen: Set[Tuple[str, int]] = set()
        for finding in self._findings:
            key = (finding.error_id, id(finding.node))
            if key in seen:
                continue
            seen.add(key)
            self._emit(finding.error_id, finding.message, finding.node)
        for failure in self._failures:
            loc = failure.location
            location = (SourceLocation(loc.file, loc.line, loc.column)
                        if loc is not None else SourceLocation(ctx.unit.file))
            self._emit(PARSE_FAILED, f"analysis failed: {failure.message}",
                       location=location)
