# tests/test_fingerprint.py
"""
Tests for expression fingerprints and canonical rendering.
"""

import pytest

from nullcontracts import syntax as S
from nullcontracts.errors import ParseFailedError
from nullcontracts.fingerprint import Fingerprint
from tests.conftest import analyze_body


def _first_argument(body, name="Consume", **kwargs):
    result = analyze_body(body, **kwargs)
    return result.argument(name), result.model


class TestFingerprintOf:

    def test_name(self):
        assert Fingerprint.of(S.Name("x")).key == "x"

    def test_parentheses_and_casts_are_peeled(self):
        expr, model = _first_argument("(call Consume (paren (cast String (paren x))))")
        assert Fingerprint.of(expr, model) == Fingerprint("x")

    def test_assignment_fingerprints_its_target(self):
        expr, model = _first_argument('(call Consume (= x "v"))')
        assert Fingerprint.of(expr, model) == Fingerprint("x")

    def test_conditional_access_matches_member_access(self):
        first, model = _first_argument("(call Consume p?.Manager?.name)", params="((p Person))")
        second = S.MemberAccess(S.MemberAccess(S.Name("p"), "Manager"), "name")
        assert Fingerprint.of(first, model) == Fingerprint.of(second, model)

    def test_as_records_canonical_narrowed_type(self):
        expr, model = _first_argument("(call Consume (as x string))")
        fp = Fingerprint.of(expr, model)
        assert fp.key == "x"
        assert fp.narrowed_type == "String"

    def test_only_the_outermost_as_narrows(self):
        expr, model = _first_argument("(call Consume (as (as x Person) Object))")
        fp = Fingerprint.of(expr, model)
        assert fp.narrowed_type == "Object"
        assert fp.key == "x as Person".replace(" ", "")

    def test_whitespace_is_insignificant(self):
        expr, model = _first_argument("(call Consume (is x Person))")
        assert " " not in Fingerprint.of(expr, model).key

    def test_invocation_and_index(self):
        expr, model = _first_argument("(call Consume (index (call p.Describe) 0))",
                                      params="((p Person))")
        assert Fingerprint.of(expr, model).key == "p.Describe()[0]"

    def test_out_arguments_render_with_modifier(self):
        expr, model = _first_argument("(call Consume (call Int32.TryParse x (out n)))")
        assert Fingerprint.of(expr, model).key == "Int32.TryParse(x,outn)"

    def test_statement_cannot_be_fingerprinted(self):
        block = S.Block((), S.Span(3, 4, 1, 4, "f.ncsl"))
        with pytest.raises(ParseFailedError) as info:
            Fingerprint.of(block)
        assert info.value.location.file == "f.ncsl"


class TestFingerprintContains:

    def test_same_key(self):
        assert Fingerprint("x").contains(Fingerprint("x"))

    def test_different_key(self):
        assert not Fingerprint("x").contains(Fingerprint("y"))

    def test_unnarrowed_fact_covers_plain_query(self):
        assert Fingerprint("x", "Person").contains(Fingerprint("x"))

    def test_narrowed_query_needs_the_same_narrowing(self):
        assert Fingerprint("x", "Person").contains(Fingerprint("x", "Person"))
        assert not Fingerprint("x").contains(Fingerprint("x", "Person"))
        assert not Fingerprint("x", "Object").contains(Fingerprint("x", "Person"))

    def test_str(self):
        assert str(Fingerprint("x", "Person")) == "x as Person"
