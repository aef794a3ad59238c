# tests/conftest.py
"""
Shared NCSL sources and helpers for the test-suite.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

import pytest

from nullcontracts import syntax as S
from nullcontracts.flow_facts import ExpressionStatus, FlowFacts, analyze
from ncsl.binder import Binder
from ncsl.parser import parse_source


#: Types every snippet can use.
SUPPORT_TYPES = """
(class Person
  (field name String)
  (field email String :notnull)
  (property Manager Person)
  (method Describe String ()
    (return name)))
"""

#: Members shared by the generated ``C`` class.
SUPPORT_MEMBERS = """
  (field label String :notnull)
  (field cached String)
  (method Use Void ((value Object :notnull)))
  (method Consume Void ((value Object)))
  (method Check Boolean ((value String :notnull)) (return true))
  (method Next String ())
  (method Defer Void ((action Func)))
  (method Swap Void ((s String :ref)))
"""

MINIMAL_NCSL = """
; a single empty class
(class Empty)
"""


def member_source(body: str, params: str = "((x String) (c Boolean))",
                  returns: str = "Void", flags: str = "", extra: str = "") -> str:
    """NCSL text for class ``C`` whose ``Run`` method has *body*."""
    return (
        f"{SUPPORT_TYPES}\n(class C\n{SUPPORT_MEMBERS}\n{extra}\n"
        f"  (method Run {returns} {params} {flags}\n{body}))\n"
    )


def find_all(root: S.Node, predicate: Callable[[S.Node], bool]) -> List[S.Node]:
    """Matching nodes in source order."""
    found = [n for n in S.walk(root) if predicate(n)]
    return sorted(found, key=lambda n: n.span.start)


def calls_to(root: S.Node, name: str) -> List[S.Invocation]:
    return find_all(
        root, lambda n: isinstance(n, S.Invocation) and S.render(n.callee) == name
    )


def get_member(unit: S.CompilationUnit, type_name: str, name: str) -> S.Member:
    for decl in unit.types:
        if decl.name != type_name:
            continue
        for member in decl.members:
            if getattr(member, "name", None) == name:
                return member
    raise KeyError(f"{type_name}.{name}")


@dataclass
class Analyzed:
    unit: S.CompilationUnit
    model: Binder
    member: S.Member
    facts: FlowFacts

    def calls(self, name: str) -> List[S.Invocation]:
        return calls_to(self.member, name)

    def argument(self, name: str = "Use", nth: int = 0, index: int = 0) -> S.Expression:
        return self.calls(name)[nth].arguments[index].expression

    def status(self, name: str = "Use", nth: int = 0, index: int = 0) -> ExpressionStatus:
        expr = self.argument(name, nth, index)
        return self.facts.is_proven(expr, expr)


def analyze_source(text: str, type_name: str = "C", member: str = "Run") -> Analyzed:
    unit = parse_source(text)
    model = Binder(unit)
    decl = get_member(unit, type_name, member)
    body = getattr(decl, "body", None) or decl.expression_body
    parameters = [model.declared_symbol(p) for p in getattr(decl, "parameters", ())]
    return Analyzed(unit, model, decl, analyze(body, model, parameters=parameters))


def analyze_body(body: str, **kwargs) -> Analyzed:
    return analyze_source(member_source(body, **kwargs))


@pytest.fixture
def analyzed() -> Callable[..., Analyzed]:
    return analyze_body
