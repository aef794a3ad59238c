"""
nullcontracts - flow-sensitive NotNull contract analysis.

The engine turns a method body into a tree of reachability conditions
and answers point queries against it: "is this expression provably not
null at this position?".  It is independent of any concrete language
front end; names and types come from a :class:`SemanticModel`.

Quick start::

    from ncsl import Binder, parse_source
    from nullcontracts import analyze

    unit = parse_source(text)
    model = Binder(unit)
    facts = analyze(method.body, model)
    facts.is_proven(expr)
"""

__version__ = "0.3.0"

from nullcontracts.analysis_cache import AnalysisCache
from nullcontracts.condition import Combinator, Condition, ConditionKind, StateAtom, TypeTestAtom
from nullcontracts.config import AnalysisConfig
from nullcontracts.errors import ConditionContractError, NullContractsError, ParseFailedError
from nullcontracts.fingerprint import Fingerprint
from nullcontracts.flow_facts import ExpressionStatus, FlowFacts, analyze
from nullcontracts.flow_tree import Branch, FlowTreeBuilder
from nullcontracts.guard import GuardDecomposer
from nullcontracts.semantic import SemanticModel, Symbol, SymbolKind, TypeRef
from nullcontracts.value_state import ValueEvaluator, ValueState

__all__ = [
    "AnalysisCache",
    "AnalysisConfig",
    "Branch",
    "Combinator",
    "Condition",
    "ConditionContractError",
    "ConditionKind",
    "ExpressionStatus",
    "Fingerprint",
    "FlowFacts",
    "FlowTreeBuilder",
    "GuardDecomposer",
    "NullContractsError",
    "ParseFailedError",
    "SemanticModel",
    "StateAtom",
    "Symbol",
    "SymbolKind",
    "TypeRef",
    "TypeTestAtom",
    "ValueEvaluator",
    "ValueState",
    "analyze",
]
