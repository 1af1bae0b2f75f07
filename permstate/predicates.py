"""Variable predicates: atomic facts observed about one location.

A predicate is what a branch, comparison or cast tells the analysis
directly: "b is true", "x is null".  Predicates are values; two predicates
about the same location saying the same thing are equal, which is what
lets the logic intersect facts at merge points.

``PermissionPredicate`` is the odd one out: it is never observed directly
and can only be tested against the live permission lattice.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Hashable, Protocol

from permstate.errors import UnsupportedImplicationError
from permstate.permissions import Permission


class LatticeSnapshot(Protocol):
    """The live permission lattice, as far as predicates need to see it."""

    def has_permission(self, location: Hashable, permission: Permission) -> bool:
        ...

    def holds(self, predicate: VariablePredicate) -> bool:
        ...

    def is_known_implication(self, location: Hashable, implication: object) -> bool:
        ...


class VariablePredicate(ABC):
    location: Hashable

    def get_variable(self) -> Hashable:
        return self.location

    @abstractmethod
    def create_identical_pred(self, other: Hashable) -> VariablePredicate:
        """The same fact about ``other``."""

    @abstractmethod
    def create_opposite_pred(self, other: Hashable) -> VariablePredicate:
        """The negated fact about ``other``."""

    def denotes_boolean_truth(self) -> bool:
        return False

    def denotes_boolean_falsehood(self) -> bool:
        return False

    def denotes_null_variable(self) -> bool:
        return False

    def denotes_non_null_variable(self) -> bool:
        return False

    def is_satisfied(self, snapshot: LatticeSnapshot) -> bool:
        return snapshot.holds(self)

    def is_unsatisfiable(self, snapshot: LatticeSnapshot) -> bool:
        return not self.is_satisfied(snapshot)


@dataclass(frozen=True)
class BooleanPredicate(VariablePredicate):
    location: Hashable
    truth: bool

    @staticmethod
    def true_of(location: Hashable) -> BooleanPredicate:
        return BooleanPredicate(location, True)

    @staticmethod
    def false_of(location: Hashable) -> BooleanPredicate:
        return BooleanPredicate(location, False)

    def create_identical_pred(self, other: Hashable) -> BooleanPredicate:
        return BooleanPredicate(other, self.truth)

    def create_opposite_pred(self, other: Hashable) -> BooleanPredicate:
        return BooleanPredicate(other, not self.truth)

    def denotes_boolean_truth(self) -> bool:
        return self.truth

    def denotes_boolean_falsehood(self) -> bool:
        return not self.truth

    def __str__(self) -> str:
        return f"{self.location} == {'true' if self.truth else 'false'}"


@dataclass(frozen=True)
class NullPredicate(VariablePredicate):
    location: Hashable
    is_null: bool

    @staticmethod
    def null_of(location: Hashable) -> NullPredicate:
        return NullPredicate(location, True)

    @staticmethod
    def non_null_of(location: Hashable) -> NullPredicate:
        return NullPredicate(location, False)

    def create_identical_pred(self, other: Hashable) -> NullPredicate:
        return NullPredicate(other, self.is_null)

    def create_opposite_pred(self, other: Hashable) -> NullPredicate:
        return NullPredicate(other, not self.is_null)

    def denotes_null_variable(self) -> bool:
        return self.is_null

    def denotes_non_null_variable(self) -> bool:
        return not self.is_null

    def __str__(self) -> str:
        return f"{self.location} {'==' if self.is_null else '!='} null"


@dataclass(frozen=True)
class PermissionPredicate(VariablePredicate):
    """``location`` currently holds ``permission``."""
    location: Hashable
    permission: Permission

    def create_identical_pred(self, other: Hashable) -> PermissionPredicate:
        return PermissionPredicate(other, self.permission)

    def create_opposite_pred(self, other: Hashable) -> VariablePredicate:
        raise UnsupportedImplicationError(
            f"Don't know how to negate permission: {self.permission}",
            details={"location": str(self.location)},
        )

    def is_satisfied(self, snapshot: LatticeSnapshot) -> bool:
        return snapshot.has_permission(self.location, self.permission)

    def __str__(self) -> str:
        return f"{self.location} has {self.permission}"
