"""Implications and their results.

An implication is a fact that waits for another fact: "if b is true then
f is open", "if b is false then x is null", "once r holds a full
permission, hand these permissions to the parameters".  The logic stores
implications under the location their antecedent talks about and
discharges them when the antecedent is known.

Two ways to discharge:

  - MATCH: the antecedent is a directly observable predicate (boolean or
    nullness) and is compared with the predicate known for the location.
  - SATISFACTION: the antecedent is a condition on the permission lattice
    and is asked ``is_satisfied(snapshot)``.

Discharging yields an ``ImplicationResult``: an instruction for the
driver.  Results do nothing on their own; ``put_result_into`` applies one
to a lattice that offers the operations it needs.

Implications are linear facts.  After the driver applies a result it
retracts the implication so it cannot fire twice.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any, FrozenSet, Hashable, List, Optional, Set, Tuple

from permstate.errors import UnsupportedImplicationError
from permstate.permissions import Permission
from permstate.predicates import (
    BooleanPredicate, LatticeSnapshot, PermissionPredicate, VariablePredicate,
)

logger = logging.getLogger(__name__)


class ImplicationKind(Enum):
    STATE = auto()       # boolean antecedent, typestate consequence
    NULLNESS = auto()    # boolean antecedent, nullness consequence
    PERMISSION = auto()  # permission antecedent, parameter permissions consequence


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ImplicationResult(ABC):
    """An instruction produced by discharging an implication."""

    @abstractmethod
    def put_result_into(self, lattice: Any) -> Any:
        """Apply this result to ``lattice`` and return it."""


@dataclass(frozen=True)
class StateResult(ImplicationResult):
    """``location`` is in ``state``."""
    location: Hashable
    state: str
    temporary: bool = False
    source: Optional[Implication] = field(default=None, compare=False, repr=False)

    def put_result_into(self, lattice: Any) -> Any:
        lattice.set_state(self.location, self.state, temporary=self.temporary)
        return lattice

    def __str__(self) -> str:
        return f"{self.location} in {self.state}"


@dataclass(frozen=True)
class NullnessResult(ImplicationResult):
    """``location`` is (or is not) null."""
    location: Hashable
    is_null: bool
    source: Optional[Implication] = field(default=None, compare=False, repr=False)

    def put_result_into(self, lattice: Any) -> Any:
        lattice.record_nullness(self.location, self.is_null)
        return lattice

    def __str__(self) -> str:
        return f"{self.location} {'==' if self.is_null else '!='} null"


@dataclass(frozen=True)
class ParameterConsequence:
    """A permission (and optionally states) handed to ``location``."""
    location: Hashable
    permission: Permission
    states: FrozenSet[str] = frozenset()

    def without_states(self) -> ParameterConsequence:
        return replace(self, states=frozenset())

    def __str__(self) -> str:
        if self.states:
            return f"{self.location}: {self.permission} in {sorted(self.states)}"
        return f"{self.location}: {self.permission}"


@dataclass(frozen=True)
class PermissionResult(ImplicationResult):
    """Consume the antecedent permission and release the consequences."""
    antecedent: PermissionPredicate
    consequences: Tuple[ParameterConsequence, ...]
    source: Optional[Implication] = field(default=None, compare=False, repr=False)

    def put_result_into(self, lattice: Any) -> Any:
        """Move the permission.  Nothing happens if it was already spent."""
        if not lattice.split_off(self.antecedent.location, self.antecedent.permission):
            logger.debug("%s no longer holds %s; result of %s skipped",
                         self.antecedent.location, self.antecedent.permission, self.source)
            return lattice
        if self.source is not None:
            lattice.remove_implication(self.antecedent.location, self.source)
        for c in self.consequences:
            lattice.merge_in(c.location, c.permission)
            for state in sorted(c.states):
                lattice.set_state(c.location, state, temporary=True)
        return lattice


# ---------------------------------------------------------------------------
# Implications
# ---------------------------------------------------------------------------

class Implication(ABC):
    kind: ImplicationKind
    antecedent: VariablePredicate

    def get_antecedent(self) -> VariablePredicate:
        return self.antecedent

    @abstractmethod
    def supports_match(self) -> bool:
        """True if ``match`` can be called; otherwise use ``is_satisfied``."""

    @abstractmethod
    def match(self, pred: VariablePredicate) -> bool:
        ...

    def is_satisfied(self, snapshot: LatticeSnapshot) -> bool:
        return self.antecedent.is_satisfied(snapshot)

    @abstractmethod
    def result(self) -> ImplicationResult:
        ...

    @abstractmethod
    def with_opposite_antecedent(self, other: Hashable) -> Implication:
        ...

    @abstractmethod
    def with_identical_antecedent(self, other: Hashable) -> Implication:
        ...

    @abstractmethod
    def has_temporary_state(self) -> bool:
        ...

    @abstractmethod
    def without_temporary_state(self) -> Optional[Implication]:
        """An equivalent implication without temporary state information,
        or None if the implication should be dropped."""

    def consequence_locations(self) -> Set[Hashable]:
        return set()


@dataclass(frozen=True)
class StateImplication(Implication):
    """If ``antecedent`` holds then ``obj`` is in ``state``.

    ``temporary`` marks state information that is only valid while the
    current region is protected (e.g. an unpacked receiver's field states).
    """
    antecedent: BooleanPredicate
    obj: Hashable
    state: str
    temporary: bool = False

    kind = ImplicationKind.STATE

    @staticmethod
    def true_var_implies(ant: Hashable, obj: Hashable, state: str,
                         temporary: bool = False) -> StateImplication:
        return StateImplication(BooleanPredicate.true_of(ant), obj, state, temporary)

    @staticmethod
    def false_var_implies(ant: Hashable, obj: Hashable, state: str,
                          temporary: bool = False) -> StateImplication:
        return StateImplication(BooleanPredicate.false_of(ant), obj, state, temporary)

    def supports_match(self) -> bool:
        return True

    def match(self, pred: VariablePredicate) -> bool:
        return pred == self.antecedent

    def result(self) -> StateResult:
        return StateResult(self.obj, self.state, self.temporary, source=self)

    def with_opposite_antecedent(self, other: Hashable) -> StateImplication:
        return replace(self, antecedent=self.antecedent.create_opposite_pred(other))

    def with_identical_antecedent(self, other: Hashable) -> StateImplication:
        return replace(self, antecedent=self.antecedent.create_identical_pred(other))

    def has_temporary_state(self) -> bool:
        return self.temporary

    def without_temporary_state(self) -> Optional[StateImplication]:
        return None if self.temporary else self

    def consequence_locations(self) -> Set[Hashable]:
        return {self.obj}

    def __str__(self) -> str:
        return f"{self.antecedent} => {self.obj} in {self.state}"


@dataclass(frozen=True)
class NullImplication(Implication):
    """If ``antecedent`` holds then ``obj`` is (or is not) null."""
    antecedent: BooleanPredicate
    obj: Hashable
    is_null: bool

    kind = ImplicationKind.NULLNESS

    @staticmethod
    def create(v_1: Hashable, is_v1_true: bool, v_2: Hashable, is_v2_null: bool) -> NullImplication:
        return NullImplication(BooleanPredicate(v_1, is_v1_true), v_2, is_v2_null)

    def supports_match(self) -> bool:
        return True

    def match(self, pred: VariablePredicate) -> bool:
        return pred == self.antecedent

    def result(self) -> NullnessResult:
        return NullnessResult(self.obj, self.is_null, source=self)

    def with_opposite_antecedent(self, other: Hashable) -> NullImplication:
        return replace(self, antecedent=self.antecedent.create_opposite_pred(other))

    def with_identical_antecedent(self, other: Hashable) -> NullImplication:
        return replace(self, antecedent=self.antecedent.create_identical_pred(other))

    def has_temporary_state(self) -> bool:
        return False

    def without_temporary_state(self) -> NullImplication:
        return self

    def consequence_locations(self) -> Set[Hashable]:
        return {self.obj}

    def __str__(self) -> str:
        return f"{self.antecedent} => {self.obj} {'==' if self.is_null else '!='} null"


@dataclass(frozen=True)
class PermissionImplication(Implication):
    """Once ``antecedent`` holds, trade it for permissions on the parameters."""
    antecedent: PermissionPredicate
    consequences: Tuple[ParameterConsequence, ...] = ()

    kind = ImplicationKind.PERMISSION

    def supports_match(self) -> bool:
        return False

    def match(self, pred: VariablePredicate) -> bool:
        raise UnsupportedImplicationError(
            "Permission implications are discharged against the lattice, not matched",
        )

    def result(self) -> PermissionResult:
        return PermissionResult(self.antecedent, self.consequences, source=self)

    def with_opposite_antecedent(self, other: Hashable) -> PermissionImplication:
        raise UnsupportedImplicationError(
            "A permission antecedent has no opposite",
            details={"location": str(other)},
        )

    def with_identical_antecedent(self, other: Hashable) -> PermissionImplication:
        return replace(self, antecedent=self.antecedent.create_identical_pred(other))

    def has_temporary_state(self) -> bool:
        return any(c.states for c in self.consequences)

    def without_temporary_state(self) -> PermissionImplication:
        if not self.has_temporary_state():
            return self
        return replace(self, consequences=tuple(c.without_states() for c in self.consequences))

    def find_implied_parameter(self, location: Hashable) -> List[ParameterConsequence]:
        return [c for c in self.consequences if c.location == location]

    def consequence_locations(self) -> Set[Hashable]:
        return {c.location for c in self.consequences}

    def __str__(self) -> str:
        return f"{self.antecedent} => " + " (X) ".join(str(c) for c in self.consequences)
