"""Dynamic State Logic: conditional facts for typestate checking.

Keeps track of what is known about locations at one program point and of
implications waiting on those facts, and discharges implications when the
time is right.

Example, a state test method:

    boolean isOpen()  // @TrueIndicates("open")

    b = f.isOpen();          add_true_implication(b, f, "open")
                             add_false_implication(b, f, "closed")
    if (b) {                 add_true_var_predicate(b)
        ...                  solve_with_hint(lattice, b)  ->  [f in open]

Lattice structure:

  - The store maps locations to one known predicate each and to a
    persistent list of implications.
  - JOIN keeps exactly the entries both predecessors agree on.  Fewer
    facts is a weaker, sound over-approximation.
  - ORDERING (at_least_as_precise) checks that this value knows at least
    everything the other one knows; the fixpoint driver stops iterating
    when the value at a loop head no longer changes.
  - BOTTOM is the unreachable program point.  It is the identity of join
    and below everything in the ordering.

Ownership:

  A value is mutable until ``freeze()``; after that every mutator raises
  FrozenStateError and the value can be shared freely between dataflow
  facts.  ``mutable_copy()`` shallow-copies the two maps.  Predicates and
  implication lists are immutable, so entries are shared, not copied.

Locations are owned by the alias analysis.  Entries are dropped
explicitly through ``remove_variables`` when a location's scope ends.
"""

from __future__ import annotations

import logging
from typing import (
    Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple,
)

from permstate.conslist import ConsList
from permstate.errors import frozen_error
from permstate.implications import (
    Implication, ImplicationResult, NullImplication, ParameterConsequence,
    PermissionImplication, StateImplication,
)
from permstate.predicates import (
    BooleanPredicate, LatticeSnapshot, NullPredicate, VariablePredicate,
)

logger = logging.getLogger(__name__)

AliasingFilter = Callable[[Hashable], bool]


class DynamicStateLogic:
    """Known predicates and pending implications for one program point."""

    def __init__(self, strict_ordering: bool = False):
        self._known_predicates: Optional[Dict[Hashable, VariablePredicate]] = {}
        self._known_implications: Optional[Dict[Hashable, ConsList[Implication]]] = {}
        self._frozen = False
        self._strict_ordering = strict_ordering

    @classmethod
    def empty(cls, strict_ordering: bool = False) -> DynamicStateLogic:
        return cls(strict_ordering=strict_ordering)

    @classmethod
    def from_config(cls, config: Any) -> DynamicStateLogic:
        return cls(strict_ordering=bool(getattr(config, "strict_ordering", False)))

    @classmethod
    def bottom(cls) -> DynamicStateLogic:
        """The frozen, shared value for unreachable code."""
        return _BOTTOM

    # -- state --------------------------------------------------------------

    def is_bottom(self) -> bool:
        return self._known_predicates is None and self._known_implications is None

    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def strict_ordering(self) -> bool:
        return self._strict_ordering

    def _check_mutable(self, operation: str) -> None:
        if self._frozen:
            raise frozen_error(operation)

    def freeze(self) -> DynamicStateLogic:
        self._frozen = True
        return self

    def copy(self) -> DynamicStateLogic:
        return self.freeze()

    def mutable_copy(self) -> DynamicStateLogic:
        if self.is_bottom():
            return self
        result = DynamicStateLogic(strict_ordering=self._strict_ordering)
        result._known_predicates = dict(self._known_predicates)
        result._known_implications = dict(self._known_implications)
        return result

    # -- solving ------------------------------------------------------------

    @staticmethod
    def _discharge(pred: Optional[VariablePredicate], impls: Iterable[Implication],
                   snapshot: LatticeSnapshot) -> List[ImplicationResult]:
        result: List[ImplicationResult] = []
        for impl in impls:
            if impl.supports_match():
                if pred is not None and impl.match(pred):
                    result.append(impl.result())
            elif impl.antecedent.is_satisfied(snapshot):
                result.append(impl.result())
        return result

    def solve(self, snapshot: LatticeSnapshot) -> List[ImplicationResult]:
        """Every fact derivable from the known predicates and implications.

        Scans all locations; prefer ``solve_with_hint`` when the driver
        knows which location just changed.
        """
        if self.is_bottom():
            return []
        result: List[ImplicationResult] = []
        for loc, pred in self._known_predicates.items():
            impls = self._known_implications.get(loc)
            if not impls:
                continue
            result.extend(self._discharge(pred, impls, snapshot))
        logger.debug("solve: %d predicates, %d implication lists -> %d results",
                     len(self._known_predicates), len(self._known_implications), len(result))
        return result

    def solve_with_hint(self, snapshot: LatticeSnapshot, loc: Hashable) -> List[ImplicationResult]:
        """Facts derivable from what is known about ``loc`` alone."""
        if self.is_bottom():
            return []
        pred = self._known_predicates.get(loc)
        impls = self._known_implications.get(loc)
        if pred is None or not impls:
            return []
        return self._discharge(pred, impls, snapshot)

    def solve_with_hints(self, snapshot: LatticeSnapshot, *locs: Hashable) -> List[ImplicationResult]:
        result: List[ImplicationResult] = []
        for loc in locs:
            result.extend(self.solve_with_hint(snapshot, loc))
        return result

    def solve_filtered_variables(self, snapshot: LatticeSnapshot,
                                 is_live: AliasingFilter) -> List[ImplicationResult]:
        """Like ``solve`` but only for locations ``is_live`` accepts.

        Implications that are tested against the lattice fire here even if
        no predicate is known for their location.
        """
        if self.is_bottom():
            return []
        result: List[ImplicationResult] = []
        for loc, impls in self._known_implications.items():
            if is_live(loc):
                result.extend(self._discharge(self._known_predicates.get(loc), impls, snapshot))
        logger.debug("solve_filtered_variables: %d implication lists -> %d results",
                     len(self._known_implications), len(result))
        return result

    # -- predicates ---------------------------------------------------------

    def add_true_var_predicate(self, loc: Hashable) -> None:
        """``loc`` is true.  Replaces whatever was known about ``loc``."""
        self._check_mutable("add_true_var_predicate")
        self._known_predicates[loc] = BooleanPredicate.true_of(loc)

    def add_false_var_predicate(self, loc: Hashable) -> None:
        self._check_mutable("add_false_var_predicate")
        self._known_predicates[loc] = BooleanPredicate.false_of(loc)

    def add_null_variable(self, loc: Hashable) -> None:
        self._check_mutable("add_null_variable")
        self._known_predicates[loc] = NullPredicate.null_of(loc)

    def add_non_null_variable(self, loc: Hashable) -> None:
        self._check_mutable("add_non_null_variable")
        self._known_predicates[loc] = NullPredicate.non_null_of(loc)

    def add_predicates(self, preds: Iterable[Tuple[Hashable, VariablePredicate]]) -> None:
        self._check_mutable("add_predicates")
        for loc, pred in preds:
            self._known_predicates[loc] = pred

    # -- implications -------------------------------------------------------

    def add_true_implication(self, ant: Hashable, obj: Hashable, state: str) -> None:
        """If ``ant`` is true then ``obj`` is in ``state``."""
        self._check_mutable("add_true_implication")
        self.add_implication(ant, StateImplication.true_var_implies(ant, obj, state))

    def add_false_implication(self, ant: Hashable, obj: Hashable, state: str) -> None:
        """If ``ant`` is false then ``obj`` is in ``state``."""
        self._check_mutable("add_false_implication")
        self.add_implication(ant, StateImplication.false_var_implies(ant, obj, state))

    def add_null_implication(self, v_1: Hashable, is_v1_true: bool,
                             v_2: Hashable, is_v2_null: bool) -> None:
        """The truth (or falsehood) of ``v_1`` implies ``v_2`` is null (or non-null)."""
        self._check_mutable("add_null_implication")
        self.add_implication(v_1, NullImplication.create(v_1, is_v1_true, v_2, is_v2_null))

    def add_implication(self, ant: Hashable, impl: Implication) -> None:
        """Prepend ``impl`` to the implications about ``ant``."""
        self._check_mutable("add_implication")
        existing = self._known_implications.get(ant)
        if existing is None:
            self._known_implications[ant] = ConsList.singleton(impl)
        else:
            self._known_implications[ant] = existing.cons(impl)

    def add_implications(self, impls: Iterable[Tuple[Hashable, Implication]]) -> None:
        self._check_mutable("add_implications")
        for ant, impl in impls:
            self.add_implication(ant, impl)

    def remove_implication(self, loc: Hashable, impl: Implication) -> None:
        """Retract one occurrence of ``impl``.  Implications are linear facts."""
        self._check_mutable("remove_implication")
        impls = self._known_implications.get(loc)
        if impls is None:
            return
        remaining = impls.remove_element_once(impl)
        if remaining:
            self._known_implications[loc] = remaining
        else:
            del self._known_implications[loc]

    def is_known_implication(self, loc: Hashable, impl: Implication) -> bool:
        if self.is_bottom():
            return False
        impls = self._known_implications.get(loc)
        return impls is not None and impl in impls

    def find_implied_parameter(self, ant: Hashable, param: Hashable) -> List[ParameterConsequence]:
        if self.is_bottom():
            return []
        result: List[ParameterConsequence] = []
        for impl in self._known_implications.get(ant, ConsList.empty()):
            if isinstance(impl, PermissionImplication):
                result.extend(impl.find_implied_parameter(param))
        return result

    # -- equality and inequality --------------------------------------------

    def add_equality(self, v_1: Hashable, v_2: Hashable) -> None:
        """``v_1`` and ``v_2`` hold the same value."""
        self._check_mutable("add_equality")
        self._propagate(v_1, v_2, opposite=False)

    def add_inequality(self, v_1: Hashable, v_2: Hashable) -> None:
        """``v_1`` and ``v_2`` hold opposite values."""
        self._check_mutable("add_inequality")
        self._propagate(v_1, v_2, opposite=True)

    def _propagate(self, v_1: Hashable, v_2: Hashable, opposite: bool) -> None:
        preds = self._known_predicates
        if v_1 in preds:
            known, other = v_1, v_2
        elif v_2 in preds:
            known, other = v_2, v_1
        else:
            known = other = None
        if known is not None:
            pred = preds[known]
            preds[other] = (pred.create_opposite_pred(other) if opposite
                            else pred.create_identical_pred(other))

        impls = self._known_implications
        if v_1 in impls:
            known, other = v_1, v_2
        elif v_2 in impls:
            known, other = v_2, v_1
        else:
            return
        for impl in impls[known]:
            self.add_implication(other, impl.with_opposite_antecedent(other) if opposite
                                 else impl.with_identical_antecedent(other))

    # -- forgetting ---------------------------------------------------------

    def forget_temporary_state_in_implications(self) -> None:
        """Drop or sanitize implications that carry temporary state.

        Lists without temporary state are kept as the same object.
        """
        self._check_mutable("forget_temporary_state_in_implications")
        updates: Dict[Hashable, ConsList[Implication]] = {}
        for loc, impls in self._known_implications.items():
            kept = []
            for impl in impls:
                if impl.has_temporary_state():
                    impl = impl.without_temporary_state()
                    if impl is None:
                        continue
                kept.append(impl)
            new_list = ConsList.from_iterable(kept)
            if new_list != impls:
                updates[loc] = new_list

        for loc, new_list in updates.items():
            if new_list:
                self._known_implications[loc] = new_list
            else:
                del self._known_implications[loc]
        if updates:
            logger.debug("forgot temporary state in %d implication lists", len(updates))

    def remove_variables(self, is_considered: AliasingFilter) -> None:
        """Delete everything known about the locations ``is_considered`` accepts."""
        self._check_mutable("remove_variables")
        for loc in [l for l in self._known_predicates if is_considered(l)]:
            del self._known_predicates[loc]
        for loc in [l for l in self._known_implications if is_considered(l)]:
            del self._known_implications[loc]

    # -- lattice operations -------------------------------------------------

    def join(self, other: Optional[DynamicStateLogic],
             merge_point: Any = None) -> DynamicStateLogic:
        """Facts that hold on both incoming paths at ``merge_point``."""
        self.freeze()
        if other is None or self is other:
            return self
        other.freeze()

        if self.is_bottom():
            return other
        if other.is_bottom():
            return self

        result = DynamicStateLogic(strict_ordering=self._strict_ordering)
        result._known_predicates = _intersect(self._known_predicates, other._known_predicates)
        result._known_implications = _intersect(self._known_implications, other._known_implications)
        logger.debug("join at %s: %d/%d predicates, %d/%d implication lists kept",
                     merge_point,
                     len(result._known_predicates), len(self._known_predicates),
                     len(result._known_implications), len(self._known_implications))
        return result

    def at_least_as_precise(self, other: Optional[DynamicStateLogic]) -> bool:
        """Does this value know at least everything ``other`` knows?

        By default the check compares key sets and value sets separately,
        so two values holding swapped facts for two locations compare as
        equally precise.  With ``strict_ordering`` the full mappings are
        compared instead.
        """
        self.freeze()
        if self is other:
            return True
        if other is None:
            return False
        other.freeze()

        if self.is_bottom():
            return True
        if other.is_bottom():
            return False

        if self._strict_ordering:
            return (_contains_mapping(self._known_predicates, other._known_predicates)
                    and _contains_mapping(self._known_implications, other._known_implications))

        mine_p, theirs_p = self._known_predicates, other._known_predicates
        mine_i, theirs_i = self._known_implications, other._known_implications
        return (mine_p.keys() >= theirs_p.keys()
                and set(mine_p.values()) >= set(theirs_p.values())
                and mine_i.keys() >= theirs_i.keys()
                and set(mine_i.values()) >= set(theirs_i.values()))

    # -- queries ------------------------------------------------------------

    def is_boolean_true(self, loc: Hashable) -> bool:
        pred = self.known_predicate(loc)
        return pred is not None and pred.denotes_boolean_truth()

    def is_boolean_false(self, loc: Hashable) -> bool:
        pred = self.known_predicate(loc)
        return pred is not None and pred.denotes_boolean_falsehood()

    def is_null(self, loc: Hashable) -> bool:
        pred = self.known_predicate(loc)
        return pred is not None and pred.denotes_null_variable()

    def is_non_null(self, loc: Hashable) -> bool:
        pred = self.known_predicate(loc)
        return pred is not None and pred.denotes_non_null_variable()

    def known_predicate(self, loc: Hashable) -> Optional[VariablePredicate]:
        if self.is_bottom():
            return None
        return self._known_predicates.get(loc)

    def implications_of(self, loc: Hashable) -> ConsList[Implication]:
        if self.is_bottom():
            return ConsList.empty()
        return self._known_implications.get(loc, ConsList.empty())

    def locations(self) -> set:
        if self.is_bottom():
            return set()
        return set(self._known_predicates) | set(self._known_implications)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, DynamicStateLogic):
            return NotImplemented
        return (self._known_predicates == other._known_predicates
                and self._known_implications == other._known_implications)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if self.is_bottom():
            return "DynamicStateLogic(BOTTOM)"
        return (f"DynamicStateLogic(predicates={len(self._known_predicates)}, "
                f"implications={sum(len(v) for v in self._known_implications.values())}, "
                f"frozen={self._frozen})")

    def __str__(self) -> str:
        if self.is_bottom():
            return "BOTTOM"
        lines = [str(p) for p in self._known_predicates.values()]
        for impls in self._known_implications.values():
            lines.extend(str(i) for i in impls)
        return "\n".join(lines)


def _intersect(a: Dict[Hashable, Any], b: Dict[Hashable, Any]) -> Dict[Hashable, Any]:
    if len(b) < len(a):
        a, b = b, a
    return {k: v for k, v in a.items() if k in b and b[k] == v}


def _contains_mapping(mine: Dict[Hashable, Any], theirs: Dict[Hashable, Any]) -> bool:
    return all(k in mine and mine[k] == v for k, v in theirs.items())


def _make_bottom() -> DynamicStateLogic:
    bottom = DynamicStateLogic()
    bottom._known_predicates = None
    bottom._known_implications = None
    return bottom.freeze()


_BOTTOM = _make_bottom()
