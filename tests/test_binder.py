# tests/test_binder.py
"""
Tests for name, type and definite-assignment binding.
"""

from nullcontracts import syntax as S
from nullcontracts.semantic import SemanticModel, SymbolKind, TypeRef
from ncsl.binder import Binder
from ncsl.parser import parse_source
from tests.conftest import analyze_body, calls_to, find_all, get_member, member_source


def _bind(body, **kwargs):
    unit = parse_source(member_source(body, **kwargs))
    return unit, Binder(unit), get_member(unit, "C", "Run")


def _names(root, identifier):
    return find_all(root, lambda n: isinstance(n, S.Name) and n.identifier == identifier)


class TestResolution:

    def test_binder_is_a_semantic_model(self):
        _, model, _ = _bind("")
        assert isinstance(model, SemanticModel)

    def test_parameter_and_local(self):
        _, model, run = _bind('(var s String "a") (call Use s) (call Use x)')
        s_use = calls_to(run, "Use")[0].arguments[0].expression
        x_use = calls_to(run, "Use")[1].arguments[0].expression
        assert model.resolve_symbol(s_use).kind is SymbolKind.LOCAL
        assert model.resolve_symbol(s_use) is model.declared_symbol(run.body.statements[0])
        assert model.resolve_symbol(x_use).kind is SymbolKind.PARAMETER
        assert model.resolve_symbol(x_use) is model.declared_symbol(run.parameters[0])

    def test_local_shadows_field(self):
        _, model, run = _bind('(var label String "l") (call Use label) (call Use this.label)')
        local, member = (c.arguments[0].expression for c in calls_to(run, "Use"))
        assert model.resolve_symbol(local).kind is SymbolKind.LOCAL
        field = model.resolve_symbol(member)
        assert field.kind is SymbolKind.FIELD
        assert field.full_name == "C.label"
        assert field.has_not_null

    def test_member_access_on_user_type(self):
        _, model, run = _bind("(call Use p.Manager.email)", params="((p Person))")
        access = calls_to(run, "Use")[0].arguments[0].expression
        symbol = model.resolve_symbol(access)
        assert symbol.full_name == "Person.email"
        assert model.type_of(access.target) == TypeRef("Person")

    def test_type_names_resolve_to_type_symbols(self):
        _, model, run = _bind("(call Use (call string.IsNullOrEmpty x))")
        inner = calls_to(run, "string.IsNullOrEmpty")[0]
        assert model.resolve_symbol(inner.callee.target).kind is SymbolKind.TYPE
        method = model.resolve_symbol(inner)
        assert method.full_name == "String.IsNullOrEmpty"
        assert model.type_of(inner) == TypeRef("Boolean", True)

    def test_unresolved_name(self):
        _, model, run = _bind("(call Consume nowhere)")
        (name,) = _names(run, "nowhere")
        assert model.resolve_symbol(name) is None

    def test_overload_by_arity(self):
        text = (
            "(class O (method F String ((a String)) (return a))"
            " (method F String ((a String) (b String)) :notnull (return b))"
            " (method Run Void () (call F \"1\" \"2\")))"
        )
        unit = parse_source(text)
        model = Binder(unit)
        (call,) = calls_to(get_member(unit, "O", "Run"), "F")
        assert model.resolve_symbol(call).has_not_null

    def test_object_members_are_reported_against_receiver(self):
        _, model, run = _bind("(call Use (call p.ToString))", params="((p Person))")
        (call,) = calls_to(run, "p.ToString")
        assert model.resolve_symbol(call).full_name == "Person.ToString"


class TestTypes:

    def test_aliases_and_value_types(self):
        _, model, _ = _bind("")
        assert model.resolve_type("int") == TypeRef("Int32", True)
        assert model.resolve_type("string") == TypeRef("String")
        assert model.resolve_type("var") is None

    def test_nullable_value_type(self):
        _, model, _ = _bind("")
        nullable = model.resolve_type("int?")
        assert nullable.name == "Nullable"
        assert not nullable.is_value_type
        assert model.resolve_type("String?") == TypeRef("String")

    def test_generics_and_arrays(self):
        _, model, _ = _bind("")
        assert str(model.resolve_type("Dictionary<string,List<int>>")) == \
            "Dictionary<String,List<Int32>>"
        assert model.resolve_type("Person[]") == TypeRef("Array", False, (TypeRef("Person"),))

    def test_user_struct_is_value_type(self):
        unit = parse_source("(struct Point (field x int)) (class A (field p Point))")
        model = Binder(unit)
        assert model.resolve_type("Point").is_value_type

    def test_extension_method_substitutes_element_type(self):
        _, model, run = _bind(
            "(var found var (call items.ToList)) (call Use found)",
            params="((items List<String>))",
        )
        (call,) = calls_to(run, "items.ToList")
        assert model.resolve_symbol(call).full_name == "Enumerable.ToList"
        assert str(model.type_of(call)) == "List<String>"
        assert str(model.declared_symbol(run.body.statements[0]).type) == "List<String>"

    def test_foreach_variable(self):
        _, model, run = _bind(
            "(foreach item var items (call Use item))", params="((items Person[]))"
        )
        loop = run.body.statements[0]
        symbol = model.declared_symbol(loop)
        assert symbol.is_foreach_variable
        assert symbol.type == TypeRef("Person")

    def test_query_lambda_parameters(self):
        _, model, run = _bind(
            "(call Consume (call items.Where (lambda (i) (call Check i))))",
            params="((items List<String>))",
        )
        (lam,) = find_all(run, lambda n: isinstance(n, S.Lambda))
        symbol = model.declared_symbol(lam.parameters[0])
        assert symbol.is_query_parameter
        assert symbol.type == TypeRef("String")

    def test_plain_lambda_parameters_are_not_query_parameters(self):
        _, model, run = _bind("(call Defer (lambda (i) (call Consume i)))")
        (lam,) = find_all(run, lambda n: isinstance(n, S.Lambda))
        assert not model.declared_symbol(lam.parameters[0]).is_query_parameter

    def test_out_variable_type_from_parameter(self):
        _, model, run = _bind("(call Int32.TryParse x (out-var n))")
        (out,) = find_all(run, lambda n: isinstance(n, S.OutVariable))
        assert model.declared_symbol(out).type == TypeRef("Int32", True)

    def test_string_concatenation_type(self):
        _, model, run = _bind('(call Use (+ x "!"))')
        (binary,) = find_all(run, lambda n: isinstance(n, S.Binary))
        assert model.type_of(binary) == TypeRef("String")


class TestAlwaysAssigned:

    def _always(self, body, **kwargs):
        _, model, run = _bind(body, **kwargs)
        return {s.name for s in model.always_assigned(run.body)}

    def test_straight_line(self):
        assert self._always('(var s String "a") (var t String)') == {"s"}

    def test_both_arms_of_if(self):
        assert "s" in self._always('(var s String) (if c (= s "a") (= s "b"))')

    def test_single_arm_of_if(self):
        assert "s" not in self._always('(var s String) (if c (= s "a"))')

    def test_loop_bodies_do_not_count(self):
        assert "s" not in self._always('(var s String) (while c (= s "a"))')

    def test_return_path_without_assignment(self):
        assert "s" not in self._always('(var s String) (if c (return)) (= s "a")')

    def test_throw_path_is_not_an_exit(self):
        assert "s" in self._always('(var s String) (if c (throw)) (= s "a")')

    def test_lambda_assignments_do_not_count(self):
        assert "s" not in self._always('(var s String) (call Defer (lambda () (= s "a")))')

    def test_short_circuit_right_operand_does_not_count(self):
        assert "n" not in self._always(
            "(var n int) (var ok Boolean (&& c (call Int32.TryParse x (out n))))"
        )

    def test_out_argument(self):
        assert "n" in self._always("(var n int) (call Int32.TryParse x (out n))")

    def test_finally_counts(self):
        assert "s" in self._always('(var s String) (try (block (call Next)) (finally (= s "a")))')

    def test_parameter_assignment(self):
        assert "x" in self._always('(= x "a")')


class TestFlowIntegration:

    def test_analyze_accepts_a_bound_method(self):
        result = analyze_body("(call Use x)")
        assert result.facts.tree.parent is None
