"""nullcontracts/errors.py – exception hierarchy for the flow-analysis engine.

Only two failure kinds ever leave the engine:

* :class:`ParseFailedError` – an expression shape the engine cannot
  fingerprint reached the core.  It carries the offending location so a
  host can surface one diagnostic for the member and carry on with the
  rest of the compilation unit.
* :class:`ConditionContractError` – a programming error inside the
  engine (a multi-atom condition built without a combinator).  Never
  user-facing.

Everything else the engine cannot understand is under-approximated
silently (see :mod:`nullcontracts.guard`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from nullcontracts.syntax import Span

__all__ = [
    "NullContractsError",
    "ParseFailedError",
    "ConditionContractError",
]


class NullContractsError(Exception):
    """Base class for every error raised by :mod:`nullcontracts`."""


class ParseFailedError(NullContractsError):
    """An unexpected node shape reached fingerprint computation."""

    def __init__(self, message: str, location: Optional["Span"] = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location is not None:
            return f"{self.location}: {self.message}"
        return self.message


class ConditionContractError(NullContractsError):
    """A condition with several atoms was constructed without a combinator."""
