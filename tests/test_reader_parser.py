# tests/test_reader_parser.py
"""
Tests for the NCSL reader and parser: source text → syntax nodes.
"""

import pytest

from nullcontracts import syntax as S
from ncsl.parser import NcslSyntaxError, parse_source
from ncsl.reader import Atom, SList, Source, read
from tests.conftest import MINIMAL_NCSL, find_all, get_member, member_source


def _run_body(text):
    unit = parse_source(member_source(text))
    return get_member(unit, "C", "Run").body.statements


def _expr(text):
    (statement,) = _run_body(text)
    assert isinstance(statement, S.ExpressionStatement)
    return statement.expression


class TestReader:

    def test_empty_document(self):
        assert read(Source("")) == []

    def test_comments_and_whitespace(self):
        data = read(Source("; nothing\n  ; still nothing\n"))
        assert data == []

    def test_nested_lists_keep_offsets(self):
        text = "(a (b c))"
        (outer,) = read(Source(text))
        assert isinstance(outer, SList)
        assert outer.head == "a"
        inner = outer[1]
        assert text[inner.start:inner.end] == "(b c)"

    def test_string_atoms_are_unescaped(self):
        (form,) = read(Source(r'(say "a \"quoted\" word")'))
        atom = form[1]
        assert isinstance(atom, Atom)
        assert atom.quoted
        assert atom.text == 'a "quoted" word'

    def test_keyword_atoms(self):
        (form,) = read(Source("(field x String :notnull)"))
        assert form[3].is_keyword
        assert not form[1].is_keyword

    def test_unbalanced_parenthesis_reports_position(self):
        with pytest.raises(NcslSyntaxError) as info:
            read(Source("(class A\n  (field x String)", "broken.ncsl"))
        assert info.value.span is not None
        assert info.value.span.file == "broken.ncsl"

    def test_source_positions_are_one_based(self):
        source = Source("ab\ncd")
        assert source.position(0) == (1, 1)
        assert source.position(4) == (2, 2)


class TestParseDeclarations:

    def test_minimal(self):
        unit = parse_source(MINIMAL_NCSL)
        assert [t.name for t in unit.types] == ["Empty"]
        assert unit.types[0].members == ()

    def test_struct_flag(self):
        unit = parse_source("(struct Point (field x int))")
        assert unit.types[0].is_struct

    def test_field_flags_and_initializer(self):
        unit = parse_source('(class A (field name String :notnull :readonly (init "n")))')
        field = unit.types[0].members[0]
        assert isinstance(field, S.FieldDeclaration)
        assert field.attributes == frozenset({"NotNull"})
        assert field.is_readonly
        assert isinstance(field.initializer, S.Literal)

    def test_property_with_expression_body(self):
        unit = parse_source("(class A (property Name String :checknull (=> this.other)))")
        prop = unit.types[0].members[0]
        assert prop.attributes == frozenset({"CheckNull"})
        assert isinstance(prop.expression_body, S.MemberAccess)

    def test_method_parameters(self):
        unit = parse_source(
            "(class A (method M Boolean ((a String :notnull) (b Int32 :out) (c Object[] :params))"
            " :notnull (return true)))"
        )
        method = unit.types[0].members[0]
        a, b, c = method.parameters
        assert a.attributes == frozenset({"NotNull"})
        assert b.ref_kind is S.RefKind.OUT
        assert c.ref_kind is S.RefKind.PARAMS
        assert method.attributes == frozenset({"NotNull"})
        assert isinstance(method.body.statements[0], S.ReturnStatement)

    def test_expression_bodied_method(self):
        unit = parse_source("(class A (method M String () (=> \"x\")))")
        method = unit.types[0].members[0]
        assert method.body is None
        assert isinstance(method.expression_body, S.Literal)

    def test_constructor(self):
        unit = parse_source("(class A (ctor ((x String)) (= this.x x)))")
        ctor = unit.types[0].members[0]
        assert isinstance(ctor, S.ConstructorDeclaration)
        assert ctor.parameters[0].name == "x"

    def test_unknown_member_form(self):
        with pytest.raises(NcslSyntaxError, match="unknown member form"):
            parse_source("(class A (event Changed))")

    def test_top_level_must_be_a_type(self):
        with pytest.raises(NcslSyntaxError):
            parse_source("(method M Void ())")


class TestParseStatements:

    def test_var_declaration(self):
        (decl,) = _run_body('(var s String "a")')
        assert isinstance(decl, S.LocalDeclaration)
        assert decl.type_name == "String"

    def test_var_inferred_type(self):
        (decl,) = _run_body('(var s var "a")')
        assert decl.type_name is None

    def test_if_else(self):
        (stmt,) = _run_body("(if c (call Use x) (return))")
        assert isinstance(stmt, S.IfStatement)
        assert isinstance(stmt.then, S.ExpressionStatement)
        assert isinstance(stmt.orelse, S.ReturnStatement)

    def test_loops(self):
        loop_w, loop_d, loop_f, loop_e = _run_body(
            "(while c (call Use x))"
            "(do c (call Use x))"
            "(for ((var i int 0)) (< i 3) ((= i (+ i 1))) (call Use x))"
            "(foreach item String items (call Use item))"
        )
        assert isinstance(loop_w, S.WhileStatement)
        assert isinstance(loop_d, S.DoStatement)
        assert isinstance(loop_f, S.ForStatement)
        assert isinstance(loop_f.initializers[0], S.LocalDeclaration)
        assert len(loop_f.incrementors) == 1
        assert isinstance(loop_e, S.ForEachStatement)
        assert loop_e.name == "item"

    def test_for_without_condition(self):
        (loop,) = _run_body("(for () () () (break))")
        assert loop.condition is None

    def test_switch_sections(self):
        (stmt,) = _run_body(
            '(switch x (case "a" (break)) (case (pattern String s) (call Use s)) (default (break)))'
        )
        labels = [section.labels[0] for section in stmt.sections]
        assert isinstance(labels[0], S.CaseLabel)
        assert isinstance(labels[1], S.PatternLabel)
        assert labels[1].designation == "s"
        assert isinstance(labels[2], S.DefaultLabel)

    def test_try_catch_finally(self):
        (stmt,) = _run_body(
            "(try (block (call Use x)) (catch Exception e (call Use e)) (catch (throw)) (finally (return)))"
        )
        assert stmt.catches[0].type_name == "Exception"
        assert stmt.catches[0].name == "e"
        assert stmt.catches[1].type_name is None
        assert stmt.finalbody is not None

    def test_using_and_lock(self):
        using, lock = _run_body("(using (var r Object (new Object)) (call Use r)) (lock this (break))")
        assert isinstance(using.resource, S.LocalDeclaration)
        assert isinstance(lock, S.LockStatement)

    def test_unknown_expression_form(self):
        with pytest.raises(NcslSyntaxError, match="unknown expression form"):
            _run_body("(frobnicate x)")


class TestParseExpressions:

    def test_literals(self):
        call = _expr('(call Consume null true 2 2.5 "s")')
        kinds = [a.expression.literal_kind for a in call.arguments]
        assert kinds == [
            S.LiteralKind.NULL, S.LiteralKind.BOOL, S.LiteralKind.NUMBER,
            S.LiteralKind.NUMBER, S.LiteralKind.STRING,
        ]

    def test_dotted_access_sugar(self):
        call = _expr("(call Consume a.b?.c)")
        access = call.arguments[0].expression
        assert isinstance(access, S.ConditionalAccess)
        assert access.name == "c"
        assert isinstance(access.target, S.MemberAccess)
        assert S.render(access) == "a.b.c"

    def test_access_chain_spans_nest(self):
        call = _expr("(call Consume this.a.b)")
        outer = call.arguments[0].expression
        inner = outer.target
        assert isinstance(inner.target, S.This)
        assert inner.span.start == outer.span.start
        assert inner.span.end < outer.span.end

    def test_binary_is_left_associative(self):
        expr = _expr("(&& a b c)")
        assert isinstance(expr, S.Binary)
        assert S.render(expr.left) == "a&&b"
        assert S.render(expr.right) == "c"

    def test_binary_needs_two_operands(self):
        with pytest.raises(NcslSyntaxError):
            _expr("(== a)")

    def test_out_and_ref_arguments(self):
        call = _expr("(call M (out a) (ref b) (out-var c Int32))")
        out, ref, out_var = call.arguments
        assert out.ref_kind is S.RefKind.OUT
        assert ref.ref_kind is S.RefKind.REF
        assert isinstance(out_var.expression, S.OutVariable)
        assert out_var.expression.type_name == "Int32"

    def test_lambda_expression_body(self):
        call = _expr("(call Defer (lambda () x))")
        lam = call.arguments[0].expression
        assert isinstance(lam.body, S.Name)

    def test_lambda_block_body(self):
        call = _expr("(call Defer (lambda (a b) (var t String a) (return t)))")
        lam = call.arguments[0].expression
        assert [p.name for p in lam.parameters] == ["a", "b"]
        assert isinstance(lam.body, S.Block)
        assert len(lam.body.statements) == 2

    def test_misc_forms(self):
        expr = _expr("(? (is x String s) (as x String) (cast String (paren (await x))))")
        assert isinstance(expr, S.Conditional)
        assert expr.condition.designation == "s"
        assert isinstance(expr.when_true, S.AsExpression)
        assert isinstance(expr.when_false, S.Cast)

    def test_node_spans_report_lines(self):
        unit = parse_source("(class A\n  (method M Void ()\n    (call Use x)))", "a.ncsl")
        (call,) = find_all(unit, lambda n: isinstance(n, S.Invocation))
        assert call.span.line == 3
        assert call.span.column == 5
        assert str(call.span) == "a.ncsl:3:5"
