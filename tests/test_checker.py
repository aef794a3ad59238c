# tests/test_checker.py
"""
Tests for NullContractChecker: one scenario per diagnostic, plus the
diagnostic model and output formats.
"""

import json

import pytest

from nullcontracts import syntax as S
from nullcontracts.checker import (
    Diagnostic,
    DiagnosticSeverity,
    NullContractChecker,
    SourceLocation,
)
from nullcontracts.config import AnalysisConfig
from nullcontracts.errors import ParseFailedError
from ncsl.driver import check_source, new_cache
from tests.conftest import member_source


def _diagnostics(body, **kwargs):
    return check_source(member_source(body, **kwargs), "c.ncsl")


def _ids(body, **kwargs):
    return [d.error_id for d in _diagnostics(body, **kwargs)]


class TestArguments:

    def test_clean_class(self):
        assert _ids("") == []

    def test_unproven_argument(self):
        (diag,) = _diagnostics("(call Use x)")
        assert diag.error_id == "NC3001"
        assert diag.severity is DiagnosticSeverity.ERROR
        assert "argument 'x' of Use()" in diag.message

    def test_guarded_argument(self):
        assert _ids("(if (!= x null) (call Use x))") == []

    def test_unannotated_parameter_is_not_a_sink(self):
        assert _ids("(call Consume x)") == []

    def test_null_literal(self):
        assert _ids("(call Use null)") == ["NC3001"]

    def test_call_results_are_not_tracked(self):
        assert _ids("(call Use (call Next))") == ["NC3001"]

    def test_known_member_result(self):
        assert _ids("(call Use (call Path.GetTempPath))") == []

    def test_type_test_before_as(self):
        assert _ids("(if (is x String) (call Use (as x String)))") == []
        assert _ids("(if (is x Person) (call Use (as x String)))") == ["NC3001"]

    def test_unguarded_as(self):
        assert _ids("(call Use (as x String))") == ["NC3001"]

    def test_coalesce_checks_its_fallback(self):
        assert _ids('(call Use (?? x "d"))') == []
        assert _ids("(call Use (?? x (call Next)))") == ["NC3001"]

    def test_conditional_arms(self):
        assert _ids('(call Use (? c "a" "b"))') == []
        assert _ids('(call Use (? c x "b"))') == ["NC3001"]

    def test_constructor_arguments(self):
        text = member_source("(call Consume (new Box x))") + \
            "(class Box (ctor ((value String :notnull))))"
        assert [d.error_id for d in check_source(text)] == ["NC3001"]

    def test_reassigned_after_condition(self):
        assert _ids("(if (!= x null) (block (= x (call Next)) (call Use x)))") == ["NC1005"]

    def test_ref_argument(self):
        assert _ids("(call Swap (ref this.label))") == ["NC3005"]
        assert _ids("(call Swap (ref this.cached))") == []


class TestAssignmentsAndReturns:

    def test_assignment_to_annotated_field(self):
        assert _ids("(= this.label x)") == ["NC3001"]
        assert _ids('(= this.label "v")') == []

    def test_null_initializer(self):
        extra = "(field title String :notnull (init null))"
        diagnostics = _diagnostics("", extra=extra)
        assert [d.error_id for d in diagnostics] == ["NC3001"]
        assert "initialized to null" in diagnostics[0].message

    def test_unproven_return(self):
        assert _ids("(return x)", returns="String", flags=":notnull") == ["NC3004"]

    def test_guarded_returns(self):
        body = '(if (== x null) (return "d")) (return x)'
        assert _ids(body, returns="String", flags=":notnull") == []

    def test_conditional_return(self):
        body = '(return (? (!= x null) x "d"))'
        assert _ids(body, returns="String", flags=":notnull") == []

    def test_unannotated_method_returns_anything(self):
        assert _ids("(return null)", returns="String") == []

    def test_expression_bodied_property(self):
        assert _ids("", extra="(property Title String :notnull (=> this.cached))") == ["NC3004"]
        assert _ids("", extra="(property Title String :notnull (=> this.label))") == []


class TestRedundancy:

    def test_check_on_annotated_member(self):
        (diag,) = _diagnostics("(if (!= this.label null) (call Use this.label))")
        assert diag.error_id == "NC2001"
        assert diag.severity is DiagnosticSeverity.WARNING

    def test_check_on_annotated_parameter(self):
        assert _ids("(if (== y null) (return))", params="((y String :notnull))") == ["NC2001"]

    def test_precondition_throw_is_allowed(self):
        body = "(if (== this.label null) (throw (new ArgumentNullException)))"
        assert _ids(body) == []

    def test_coalesce_on_annotated_member(self):
        assert _ids('(call Consume (?? this.label "d"))') == ["NC2001"]

    def test_conditional_access_on_annotated_member(self):
        assert _ids("(call Consume this.label?.Length)") == ["NC2001"]


class TestConstraints:

    def test_invalid_constraint(self):
        assert _ids("(call Constraint.NotNull (lambda () (call Next)))") == ["NC1003"]

    def test_constraint_on_annotated_member(self):
        assert _ids("(call Constraint.NotNull (lambda () this.label))") == ["NC2002"]

    def test_constraint_proves_the_rest(self):
        body = "(call Constraint.NotNull (lambda () this.cached)) (call Use this.cached)"
        assert _ids(body) == []

    def test_redundant_constraint(self):
        body = (
            "(if (!= this.cached null)"
            " (block (call Constraint.NotNull (lambda () this.cached)) (call Use this.cached)))"
        )
        assert _ids(body) == ["NC2002"]

    def test_assignment_after_constraint(self):
        body = "(call Constraint.NotNull (lambda () this.cached)) (= this.cached (call Next))"
        assert _ids(body) == ["NC1004"]

    def test_configured_constraint_method(self):
        config = AnalysisConfig(constraint_methods=frozenset({"C.Defer"}))
        text = member_source("(call Defer (lambda () this.cached)) (call Use this.cached)")
        assert check_source(text, config=config) == []


class TestParseFailures:

    def test_failure_is_reported_and_other_members_continue(self, monkeypatch):
        def fail(*args, **kwargs):
            raise ParseFailedError("cannot render Block", S.Span(0, 1, 7, 3, "c.ncsl"))

        monkeypatch.setattr("nullcontracts.checker.analyze", fail)
        extra = "(field title String :notnull (init null))"
        diagnostics = _diagnostics("(call Use x)", extra=extra)
        ids = {d.error_id for d in diagnostics}
        assert ids == {"NC0000", "NC3001"}
        failure = next(d for d in diagnostics if d.error_id == "NC0000")
        assert str(failure.location) == "c.ncsl:7:3"
        assert "cannot render Block" in failure.message


class TestDiagnosticModel:

    def _diag(self):
        return Diagnostic(
            error_id="NC3001",
            message="argument 'x' of Use() may be null",
            severity=DiagnosticSeverity.ERROR,
            location=SourceLocation("c.ncsl", 12, 5),
            checker_name="null-contracts",
        )

    def test_gcc_format(self):
        assert self._diag().to_gcc_format() == (
            "c.ncsl:12:5: error: argument 'x' of Use() may be null [NC3001]"
        )

    def test_json(self):
        data = json.loads(self._diag().to_json_str())
        assert data == {
            "file": "c.ncsl", "line": 12, "column": 5, "severity": "error",
            "errorId": "NC3001", "message": "argument 'x' of Use() may be null",
        }

    def test_location_without_column(self):
        assert str(SourceLocation("c.ncsl", 3)) == "c.ncsl:3"

    def test_report_is_in_source_order(self):
        diagnostics = _diagnostics("(call Use x)\n(call Use null)\n(= this.label x)")
        lines = [d.location.line for d in diagnostics]
        assert lines == sorted(lines)
        assert len(diagnostics) == 3

    def test_checker_metadata(self):
        checker = NullContractChecker()
        assert "NC3004" in checker.error_ids
        assert repr(checker) == "<NullContractChecker 'null-contracts'>"

    def test_shared_cache(self):
        cache = new_cache(AnalysisConfig())
        check_source(member_source("(call Use x)"), cache=cache)
        assert cache.stats["misses"] > 0
        assert len(cache) == cache.stats["misses"]

    @pytest.mark.parametrize("body", ["(call Use x)", "(= this.label null)"])
    def test_every_diagnostic_carries_its_checker(self, body):
        assert all(d.checker_name == "null-contracts" for d in _diagnostics(body))
