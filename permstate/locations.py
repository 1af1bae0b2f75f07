"""Concrete location handles.

The logic only needs locations to be hashable and cheap to compare; any
object the alias analysis hands out will do.  ``Location`` is a ready-made
handle for drivers that have nothing better: an alias-equivalence class
identified by the set of variable labels it covers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet


@dataclass(frozen=True)
class Location:
    """An alias-equivalence class of run-time values at a program point."""
    labels: FrozenSet[str]

    @staticmethod
    def of(*labels: str) -> Location:
        return Location(frozenset(labels))

    def merged(self, other: Location) -> Location:
        return Location(self.labels | other.labels)

    def __str__(self) -> str:
        return "{" + ", ".join(sorted(self.labels)) + "}"
