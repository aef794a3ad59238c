"""nullcontracts/known_members.py – framework members that never return null.

The engine is intra-procedural, so the only library knowledge it has is
this table plus an optional allowlist file with one fully qualified
``Type.Member`` per line.  The file is re-read only when its size on disk
changes, so an unchanged file costs one ``stat`` per lookup.  That is
good enough for an editor session where the file is appended to.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Union

from nullcontracts.semantic import Symbol

logger = logging.getLogger(__name__)

__all__ = ["BUILTIN_NOT_NULL_MEMBERS", "ExternalAllowlist", "KnownMembers"]


BUILTIN_NOT_NULL_MEMBERS: FrozenSet[str] = frozenset({
    "String.IsNullOrEmpty",
    "String.IsNullOrWhiteSpace",
    "String.Substring",
    "String.Replace",
    "Uri.TryCreate",
    "Uri.ToString",
    "Dictionary.Keys",
    "Dictionary.Values",
    "Guid.ToString",
    "Int64.ToString",
    "Enumerable.ToList",
    "Enumerable.ToArray",
    "Enumerable.Where",
    "Enumerable.Select",
    "Path.GetTempPath",
    "Marshal.GetObjectForIUnknown",
    "Task.FromResult",
    "Task.ConfigureAwait",
})


def _parse_entries(text: str) -> FrozenSet[str]:
    entries = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        entries.add(line)
    return frozenset(entries)


class ExternalAllowlist:
    """Additional known-non-null members read from a text file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._size = -1
        self._entries: FrozenSet[str] = frozenset()

    def _current_size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def entries(self) -> FrozenSet[str]:
        # Only a size change triggers a read; same-size edits go unnoticed.
        size = self._current_size()
        with self._lock:
            if size != self._size:
                try:
                    text = self.path.read_text(encoding="utf-8")
                except FileNotFoundError:
                    text = ""
                self._entries = _parse_entries(text)
                self._size = size
                logger.debug(
                    "Loaded %d allowlist entries from %s",
                    len(self._entries), self.path,
                )
            return self._entries


class KnownMembers:
    """Answers "is this member known to return a non-null value?"."""

    def __init__(
        self,
        allowlist: Optional[ExternalAllowlist] = None,
        extra: Iterable[str] = (),
    ) -> None:
        self._builtin = BUILTIN_NOT_NULL_MEMBERS | frozenset(extra)
        self._allowlist = allowlist

    def _matches(self, full_name: str, entries: FrozenSet[str]) -> bool:
        if full_name in entries:
            return True
        # Allowlist entries may carry a namespace prefix.
        suffix = "." + full_name
        return any(entry.endswith(suffix) for entry in entries)

    def is_known_not_null(self, symbol: Symbol) -> bool:
        full_name = symbol.full_name
        if full_name in self._builtin:
            return True
        if self._allowlist is None:
            return False
        return self._matches(full_name, self._allowlist.entries())
