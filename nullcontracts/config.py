"""nullcontracts/config.py – analysis settings."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, FrozenSet, Mapping, Optional

__all__ = ["AnalysisConfig", "DEFAULT_CONSTRAINT_METHODS"]

DEFAULT_CONSTRAINT_METHODS: FrozenSet[str] = frozenset({"Constraint.NotNull"})


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    """Knobs shared by the engine, the cache and the checker.

    Attributes
    ----------
    allowlist_path : str or None
        Text file of extra known-non-null ``Type.Member`` entries.
    cache_retention_seconds : float
        How long a built flow analysis stays in the cache.
    cache_max_entries : int
        Least recently used analyses beyond this count are evicted.
    constraint_methods : frozenset[str]
        Fully qualified methods recognised as ``NotNull(() => member)``
        assertions.
    """

    allowlist_path: Optional[str] = None
    cache_retention_seconds: float = 20.0
    cache_max_entries: int = 256
    constraint_methods: FrozenSet[str] = DEFAULT_CONSTRAINT_METHODS

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AnalysisConfig":
        """Build a config from a dict, ignoring unknown keys and ``None`` values."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in mapping.items() if k in known and v is not None}
        if "constraint_methods" in values:
            values["constraint_methods"] = frozenset(values["constraint_methods"])
        if "cache_retention_seconds" in values:
            values["cache_retention_seconds"] = float(values["cache_retention_seconds"])
        if "cache_max_entries" in values:
            values["cache_max_entries"] = int(values["cache_max_entries"])
        return cls(**values)
