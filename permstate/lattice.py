"""A small concrete permission lattice.

``PermissionTuple`` is what implication results are applied to: for each
location it holds a permission, the set of current state names and,
optionally, the typestate hierarchy of the location's class.  It also owns
the ``DynamicStateLogic`` for the same program point and answers the
questions predicates ask while the logic is being solved.

A typical driver step:

    pt = PermissionTuple()
    pt.register_hierarchy(f, file_hierarchy)
    pt.logic.add_true_implication(b, f, "open")
    pt.logic.add_true_var_predicate(b)
    pt.propagate(b)                # f is now in "open"
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, List, Optional, Set

from permstate.config import PermStateConfig
from permstate.hierarchy import Dimension, StateHierarchy, StateHierarchyNode
from permstate.implications import Implication, ImplicationResult
from permstate.logic import DynamicStateLogic
from permstate.permissions import UNGROUND, Permission
from permstate.predicates import PermissionPredicate, VariablePredicate

logger = logging.getLogger(__name__)


class PermissionTuple:
    """Permissions, states and nullness per location, plus the logic."""

    def __init__(self, logic: Optional[DynamicStateLogic] = None,
                 config: Optional[PermStateConfig] = None):
        self.config = config or PermStateConfig()
        self.logic = logic if logic is not None else DynamicStateLogic.from_config(self.config)
        self._permissions: Dict[Hashable, Permission] = {}
        self._states: Dict[Hashable, Set[str]] = {}
        self._temporary: Dict[Hashable, Set[str]] = {}
        self._nullness: Dict[Hashable, bool] = {}
        self._hierarchies: Dict[Hashable, StateHierarchy] = {}

    # -- permissions --------------------------------------------------------

    def get(self, loc: Hashable) -> Permission:
        return self._permissions.get(loc, UNGROUND)

    def put(self, loc: Hashable, permission: Permission) -> None:
        self._permissions[loc] = permission

    def has_permission(self, loc: Hashable, permission: Permission) -> bool:
        """Is every element of ``permission`` covered by what ``loc`` holds?"""
        held = self.get(loc)
        if not held.is_ground() or not permission.is_ground():
            return False
        held_ground = held.get_ground()
        return all(held_ground.find_covering(e) is not None
                   for e in permission.get_ground().elements)

    def split_off(self, loc: Hashable, permission: Permission) -> bool:
        """Take ``permission`` away from ``loc``.  False if it is not held."""
        if not self.has_permission(loc, permission):
            return False
        held = self.get(loc).get_ground()
        for required in permission.get_ground().elements:
            held = held.without_element(held.find_covering(required))
        self.put(loc, held)
        return True

    def merge_in(self, loc: Hashable, permission: Permission) -> None:
        if not permission.is_ground():
            return
        held = self.get(loc)
        if held.is_ground():
            self.put(loc, held.get_ground().with_elements(permission.get_ground().elements))
        else:
            self.put(loc, permission)

    # -- states -------------------------------------------------------------

    def register_hierarchy(self, loc: Hashable, hierarchy: StateHierarchy) -> None:
        self._hierarchies[loc] = hierarchy

    def states_of(self, loc: Hashable) -> frozenset:
        return frozenset(self._states.get(loc, ()))

    def set_state(self, loc: Hashable, state: str, temporary: bool = False) -> None:
        """Record that ``loc`` is in ``state``.

        With a hierarchy registered for ``loc``, states that ``state``
        refines or excludes are dropped.  States that already refine
        ``state`` are kept and ``state`` itself is not added.
        """
        current = self._states.setdefault(loc, set())
        hierarchy = self._hierarchies.get(loc)
        if hierarchy is not None:
            new_node = hierarchy.find_by_name(state)
            for old in list(current):
                old_node = hierarchy.find_by_name(old)
                if old_node.refines(new_node):
                    return
                if new_node.refines(old_node) or isinstance(_lca(old_node, new_node), Dimension):
                    current.discard(old)
                    self._temporary.get(loc, set()).discard(old)
        current.add(state)
        if temporary:
            self._temporary.setdefault(loc, set()).add(state)

    # -- nullness -----------------------------------------------------------

    def record_nullness(self, loc: Hashable, is_null: bool) -> None:
        self._nullness[loc] = is_null
        logic = self._mutable_logic()
        if is_null:
            logic.add_null_variable(loc)
        else:
            logic.add_non_null_variable(loc)

    def is_null(self, loc: Hashable) -> Optional[bool]:
        return self._nullness.get(loc)

    # -- logic --------------------------------------------------------------

    def _mutable_logic(self) -> DynamicStateLogic:
        if self.logic.is_frozen():
            self.logic = self.logic.mutable_copy()
        return self.logic

    def holds(self, predicate: VariablePredicate) -> bool:
        if isinstance(predicate, PermissionPredicate):
            return predicate.is_satisfied(self)
        return self.logic.known_predicate(predicate.get_variable()) == predicate

    def is_known_implication(self, loc: Hashable, implication: Implication) -> bool:
        return self.logic.is_known_implication(loc, implication)

    def remove_implication(self, loc: Hashable, implication: Implication) -> None:
        self._mutable_logic().remove_implication(loc, implication)

    def apply(self, result: ImplicationResult) -> PermissionTuple:
        return result.put_result_into(self)

    def apply_all(self, results: Iterable[ImplicationResult]) -> PermissionTuple:
        for result in results:
            self.apply(result)
        return self

    def propagate(self, *hints: Hashable) -> List[ImplicationResult]:
        """Solve the logic against this tuple and apply what it yields.

        Without hints every location is considered.
        """
        results = self.logic.solve_with_hints(self, *hints) if hints else self.logic.solve(self)
        self.apply_all(results)
        logger.debug("propagate(%s): applied %d results", ", ".join(map(str, hints)), len(results))
        return results

    def cross_boundary(self) -> None:
        """Leave the region in which temporary state information is valid."""
        if not self.config.forget_on_boundary:
            return
        self._mutable_logic().forget_temporary_state_in_implications()
        for loc, temporary in self._temporary.items():
            self._states.get(loc, set()).difference_update(temporary)
        self._temporary.clear()

    def __str__(self) -> str:
        lines = []
        for loc in sorted(set(self._permissions) | set(self._states), key=str):
            states = ", ".join(sorted(self.states_of(loc)))
            lines.append(f"{loc}: {self.get(loc)} in [{states}]")
        return "\n".join(lines)


def _lca(a: StateHierarchyNode, b: StateHierarchyNode) -> Optional[StateHierarchyNode]:
    ancestors = set()
    current: Optional[StateHierarchyNode] = a
    while current is not None:
        ancestors.add(current)
        current = current.parent
    current = b
    while current is not None:
        if current in ancestors:
            return current
        current = current.parent
    return None
