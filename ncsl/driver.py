"""ncsl/driver.py – parse, bind and check NCSL sources in one call."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from nullcontracts import syntax as S
from nullcontracts.analysis_cache import AnalysisCache
from nullcontracts.checker import CheckerContext, Diagnostic, NullContractChecker
from nullcontracts.config import AnalysisConfig
from nullcontracts.flow_facts import FlowFacts, analyze
from ncsl.binder import Binder
from ncsl.parser import parse_source

logger = logging.getLogger(__name__)

__all__ = ["check_source", "check_file", "iter_bodies", "analyze_member", "new_cache"]


def new_cache(config: AnalysisConfig) -> AnalysisCache:
    return AnalysisCache(config.cache_retention_seconds, config.cache_max_entries)


def check_source(
    text: str,
    file: str = "<string>",
    config: Optional[AnalysisConfig] = None,
    cache: Optional[AnalysisCache] = None,
) -> List[Diagnostic]:
    """Diagnostics for NCSL *text*, in source order.

    Raises :class:`~ncsl.parser.NcslSyntaxError` when *text* does not parse.
    """
    config = config or AnalysisConfig()
    unit = parse_source(text, file)
    model = Binder(unit, config)
    ctx = CheckerContext(unit, model, config, cache)
    diagnostics = NullContractChecker().run(ctx)
    logger.info("%s: %d diagnostic(s)", file, len(diagnostics))
    return diagnostics


def check_file(
    path: Union[str, Path],
    config: Optional[AnalysisConfig] = None,
    cache: Optional[AnalysisCache] = None,
) -> List[Diagnostic]:
    path = Path(path)
    return check_source(path.read_text(encoding="utf-8"), str(path), config, cache)


def iter_bodies(unit: S.CompilationUnit) -> Iterator[Tuple[str, S.Member, S.Node]]:
    """``(Type.Member, member, body)`` for every member with code in it."""
    for decl in unit.types:
        for member in decl.members:
            name = getattr(member, "name", decl.name)
            body = getattr(member, "body", None) or getattr(member, "expression_body", None)
            if body is not None:
                yield f"{decl.name}.{name}", member, body


def analyze_member(model: Binder, member: S.Member, body: S.Node,
                   config: Optional[AnalysisConfig] = None) -> FlowFacts:
    parameters = [model.declared_symbol(p) for p in getattr(member, "parameters", ())]
    return analyze(body, model, config, [p for p in parameters if p is not None])
