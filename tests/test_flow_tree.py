# tests/test_flow_tree.py
"""
Tests for flow-tree construction: branch shapes, assignments and closures.
"""

from nullcontracts import syntax as S
from nullcontracts.condition import ConditionKind, StateAtom
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.value_state import ValueState
from tests.conftest import analyze_body

X_NOT_NULL = StateAtom(Fingerprint("x"), ValueState.NOT_NULL)


def _tree(body, **kwargs):
    return analyze_body(body, **kwargs).facts.tree


def _kinds(branch):
    return [c.condition.kind for c in branch.children]


class TestStatements:

    def test_if_else_splits_into_two_children(self):
        root = _tree("(if (!= x null) (call Use x) (call Consume x))")
        then, orelse = root.children
        assert then.condition.atoms == (X_NOT_NULL,)
        assert orelse.condition == then.condition.negate()
        assert [n.kind for n in then.body] == ["ExpressionStatement"]
        assert root.body == []

    def test_early_return_hoists_the_rest(self):
        root = _tree("(if (== x null) (return)) (call Use x) (call Consume x)")
        guard, rest = root.children
        assert guard.condition.atoms == (X_NOT_NULL.negate(),)
        assert guard.body == []
        assert rest.condition.atoms == (X_NOT_NULL,)
        assert len(rest.body) == 2
        assert root.body == []

    def test_throw_and_continue_also_hoist(self):
        for exit_form in ("(throw (new ArgumentNullException))", "(continue)"):
            root = _tree(f"(if (== x null) {exit_form}) (call Use x)")
            assert len(root.children) == 2

    def test_nested_exit_is_not_hoisted(self):
        root = _tree("(if (== x null) (block (if c (return)))) (call Use x)")
        assert len(root.children) == 1
        assert [n.kind for n in root.body] == ["ExpressionStatement"]

    def test_while(self):
        root = _tree("(while (!= x null) (call Use x))")
        (loop,) = root.children
        assert loop.condition.kind is ConditionKind.WHILE
        assert loop.condition.is_not_null(Fingerprint("x"))

    def test_do_keeps_its_condition_in_the_loop(self):
        root = _tree("(do (!= x null) (call Use x))")
        (loop,) = root.children
        assert loop.condition.kind is ConditionKind.WHILE
        assert loop.condition.is_empty
        assert [n.kind for n in loop.body] == ["ExpressionStatement", "Binary"]

    def test_for(self):
        root = _tree("(for ((var i int 0)) (< i 3) ((= i (+ i 1))) (call Use x))")
        assert [n.kind for n in root.body] == ["LocalDeclaration"]
        (loop,) = root.children
        assert loop.condition.kind is ConditionKind.FOREACH
        assert [n.kind for n in loop.body] == ["ExpressionStatement", "Binary", "Assignment"]

    def test_foreach(self):
        root = _tree("(foreach item String items (call Use item))",
                     params="((items List<String>))")
        assert [n.kind for n in root.body] == ["Name"]
        assert _kinds(root) == [ConditionKind.FOREACH]

    def test_switch_sections_are_siblings(self):
        root = _tree('(switch x (case "a" (call Use x)) (default (break)))')
        assert _kinds(root) == [ConditionKind.NONE, ConditionKind.NONE]

    def test_try_catch_finally(self):
        root = _tree("(try (block (call Next)) (catch Exception e (call Use e)) (finally (call Next)))")
        assert len(root.children) == 3

    def test_using_keeps_its_header(self):
        root = _tree("(using (var r Object (new Object)) (call Use r))")
        assert [n.kind for n in root.body] == ["LocalDeclaration"]
        assert len(root.children) == 1


class TestConstraintsAndReturns:

    def test_constraint_guards_the_rest(self):
        facts = analyze_body(
            "(call Constraint.NotNull (lambda () this.cached)) (call Use this.cached)"
        ).facts
        root = facts.tree
        assert [n.kind for n in root.body] == ["ExpressionStatement"]
        (constraint,) = root.children
        assert constraint.condition.kind is ConditionKind.CONSTRAINT
        assert constraint.condition.is_constraint_for(Fingerprint("this.cached"))
        assert len(constraint.body) == 1
        assert facts.has_explicit_constraints
        assert facts.detached_lambda_trees == ()

    def test_other_calls_are_not_constraints(self):
        facts = analyze_body("(call Defer (lambda () this.cached))").facts
        assert not facts.has_explicit_constraints

    def test_conditional_return_has_one_child_per_arm(self):
        result = analyze_body('(return (? (!= x null) x "d"))', returns="String")
        root = result.facts.tree
        when_true, when_false = root.children
        assert when_true.condition.kind is ConditionKind.RETURN
        assert when_true.condition.is_not_null(Fingerprint("x"))
        assert isinstance(when_true.body[0], S.Name)
        assert isinstance(when_false.body[0], S.Literal)
        assert len(result.facts.return_expressions) == 1

    def test_plain_return_gets_an_empty_child(self):
        root = _tree("(return x)", returns="String")
        (child,) = root.children
        assert child.condition.kind is ConditionKind.RETURN
        assert child.body == []

    def test_conditional_initializer(self):
        root = _tree('(var s String (? c x "d")) (call Use s)')
        assert len(root.children) == 2
        assert [n.kind for n in root.body] == ["LocalDeclaration", "ExpressionStatement"]

    def test_lambda_returns_are_not_member_returns(self):
        facts = analyze_body("(call Defer (lambda () (return x)))").facts
        assert facts.return_expressions == ()


class TestClosures:

    def test_closure_hangs_from_declaring_branch(self):
        facts = analyze_body(
            "(if (!= x null) (call Defer (lambda () (call Use x) (call Next))))"
        ).facts
        (closure,) = facts.detached_lambda_trees
        assert closure.parent is facts.tree.children[0]
        assert [n.kind for n in closure.body] == ["ExpressionStatement", "ExpressionStatement"]

    def test_iter_branches_walks_main_tree_then_closures(self):
        facts = analyze_body(
            "(if (!= x null) (call Defer (lambda () (call Use x) (call Next))))"
        ).facts
        (closure,) = facts.detached_lambda_trees
        branches = list(facts.iter_branches())
        assert branches == [facts.tree, facts.tree.children[0], closure]

    def test_innermost_closure_comes_first(self):
        facts = analyze_body(
            "(call Defer (lambda () (call Defer (lambda () (call Use x)))))"
        ).facts
        inner, outer = facts.detached_lambda_trees
        assert outer.parent is facts.tree
        assert inner.parent is outer

    def test_expression_bodied_closure(self):
        facts = analyze_body("(call Defer (lambda () x))").facts
        (closure,) = facts.detached_lambda_trees
        assert len(closure.children) == 1


class TestAssignments:

    def test_recorded_states(self):
        facts = analyze_body(
            '(var s String "a") (= s null) (call Int32.TryParse "1" (out-var n))'
            " (if (is x String t) (break))"
        ).facts
        recorded = [(a.target.name, a.state) for a in facts.assignments]
        assert recorded == [
            ("s", ValueState.NOT_NULL),
            ("s", ValueState.NULL),
            ("n", ValueState.UNKNOWN),
            ("t", ValueState.NOT_NULL),
        ]

    def test_foreach_and_catch_variables(self):
        facts = analyze_body(
            "(foreach item String items (break)) (try (block (break)) (catch Exception e (break)))",
            params="((items List<String>))",
        ).facts
        assert {a.target.name for a in facts.assignments} == {"item", "e"}
        assert all(a.state is ValueState.NOT_NULL for a in facts.assignments)

    def test_assignment_inside_closure(self):
        facts = analyze_body("(call Defer (lambda () (= x null)))").facts
        (assignment,) = facts.assignments
        assert assignment.target.name == "x"
        assert assignment.state is ValueState.NULL


class TestBranches:

    def test_find_inside_guard_returns_parent_and_prefix(self):
        result = analyze_body("(if (&& (!= x null) (call Check x)) (break))")
        (check,) = result.calls("Check")
        branch, prefix = result.facts.tree.find(check.arguments[0].expression)
        assert branch is result.facts.tree
        assert prefix.truncated
        assert prefix.is_not_null_with_short_circuit(Fingerprint("x"))

    def test_find_in_body(self):
        result = analyze_body("(if (!= x null) (call Use x))")
        branch, prefix = result.facts.tree.find(result.argument())
        assert branch is result.facts.tree.children[0]
        assert prefix is None

    def test_ancestry(self):
        root = _tree("(if c (while (!= x null) (call Use x)))")
        loop = root.children[0].children[0]
        assert list(loop.ancestors()) == [loop, root.children[0], root]
        assert root.is_ancestor_of(loop)
        assert not loop.is_ancestor_of(root)

    def test_structure_is_deterministic(self):
        body = "(if (== x null) (return)) (while c (= x (call Next))) (call Use x)"
        assert _tree(body).structure() == _tree(body).structure()

    def test_dump(self):
        text = _tree("(if (!= x null) (call Use x))").dump()
        lines = text.splitlines()
        assert lines[0] == "NONE"
        assert lines[1] == "  IF(x != null)"
        assert lines[2].startswith("    - ExpressionStatement @ ")
