"""Typestate hierarchies.

A class's typestates form a tree (Bierhoff & Aldrich 2007, "Modular
Typestate Checking of Aliased Objects", OOPSLA '07):

    alive
     +-- [openness]          (dimension)
     |     +-- open          (state)
     |     |    +-- [eof]    (dimension refining open)
     |     |          +-- hasNext
     |     |          +-- end
     |     +-- closed
     +-- [ownership]         (an orthogonal dimension of alive)
           +-- owned
           +-- borrowed

States and dimensions alternate.  A state may be refined by several
dimensions, which are tracked independently of each other; a dimension
partitions its parent state into mutually exclusive sub-states.  The root
is always the state named ``alive``.

The hierarchy is built once and then only read.  ``copy()`` produces an
independent structural copy with the same shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from permstate.errors import HierarchyError, UnknownStateError

ALIVE = "alive"


class NodeKind(Enum):
    STATE = "state"
    DIMENSION = "dimension"


class StateHierarchyNode:
    """A state or dimension in a typestate hierarchy."""

    kind: NodeKind

    def __init__(self, name: str):
        self._name = name
        self._parent: Optional[StateHierarchyNode] = None
        self._children: Set[StateHierarchyNode] = set()

    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Optional[StateHierarchyNode]:
        return self._parent

    @property
    def children(self) -> frozenset:
        return frozenset(self._children)

    def add_child(self, child: StateHierarchyNode) -> None:
        if child.kind == self.kind:
            raise HierarchyError(
                f"A {self.kind.value} cannot be refined by the {child.kind.value} "
                f"'{child.name()}'; states and dimensions must alternate",
                details={"parent": self._name, "child": child.name()},
            )
        if child._parent is not None and child._parent is not self:
            raise HierarchyError(
                f"'{child.name()}' already refines '{child._parent.name()}'",
                details={"node": child.name()},
            )
        child._parent = self
        self._children.add(child)

    def copy(self, parent: Optional[StateHierarchyNode] = None) -> StateHierarchyNode:
        result = type(self)(self._name)
        result._parent = parent
        for child in self._children:
            result._children.add(child.copy(result))
        return result

    def refines(self, ancestor: StateHierarchyNode) -> bool:
        """Is this node ``ancestor`` or below it?"""
        current: Optional[StateHierarchyNode] = self
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent
        return False

    def walk(self) -> Iterator[StateHierarchyNode]:
        yield self
        for child in sorted(self._children, key=lambda c: c.name()):
            yield from child.walk()

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"


class State(StateHierarchyNode):
    kind = NodeKind.STATE


class Dimension(StateHierarchyNode):
    kind = NodeKind.DIMENSION


class StateHierarchy:
    """An immutable typestate tree rooted at ``alive``."""

    def __init__(self, alive: State, type_name: Optional[str] = None):
        _check_well_formed(alive)
        self._root = alive
        self._type_name = type_name
        self._by_name = _generate_name_map(alive)

    @classmethod
    def from_dict(cls, tree: Mapping[str, Any], type_name: Optional[str] = None) -> StateHierarchy:
        """Build a hierarchy from nested mappings.

        The outer mapping has the single key ``alive``.  Each state maps
        dimension names to mappings of state names, recursively:

            {"alive": {"openness": {"open": {}, "closed": {}}}}
        """
        if len(tree) != 1:
            raise HierarchyError("A hierarchy has exactly one root state",
                                 details={"roots": sorted(tree)})
        (root_name, dims), = tree.items()
        return cls(_build_state(root_name, dims), type_name)

    @property
    def root(self) -> State:
        return self._root

    @property
    def type_name(self) -> Optional[str]:
        return self._type_name

    def name_map(self) -> Dict[str, StateHierarchyNode]:
        return dict(self._by_name)

    def find_by_name(self, name: str) -> StateHierarchyNode:
        node = self._by_name.get(name)
        if node is None:
            raise UnknownStateError(
                f"No state or dimension named '{name}'"
                + (f" in the hierarchy of {self._type_name}" if self._type_name else ""),
                details={"name": name, "type": self._type_name},
            )
        return node

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def state_names(self) -> List[str]:
        return [n.name() for n in self._root.walk() if n.kind == NodeKind.STATE]

    def states_below(self, name: str) -> Set[str]:
        """All states refining ``name``, including ``name`` itself if it is a state."""
        node = self.find_by_name(name)
        return {n.name() for n in node.walk() if n.kind == NodeKind.STATE}

    def is_below(self, name: str, ancestor: str) -> bool:
        """Does ``name`` refine (or equal) ``ancestor``?"""
        target = self.find_by_name(ancestor)
        node: Optional[StateHierarchyNode] = self.find_by_name(name)
        while node is not None:
            if node is target:
                return True
            node = node.parent
        return False

    def dimension_of(self, name: str) -> Optional[Dimension]:
        node = self.find_by_name(name)
        parent = node.parent
        return parent if isinstance(parent, Dimension) else None

    def copy(self) -> StateHierarchy:
        return StateHierarchy(self._root.copy(None), self._type_name)

    def to_dict(self) -> Dict[str, Any]:
        return {self._root.name(): _node_to_dict(self._root)}

    def __str__(self) -> str:
        return f"StateHierarchy({self._type_name or '?'}: {', '.join(self.state_names())})"


def _build_state(name: str, dims: Mapping[str, Any]) -> State:
    state = State(name)
    for dim_name, states in (dims or {}).items():
        dim = Dimension(dim_name)
        for child_name, child_dims in (states or {}).items():
            dim.add_child(_build_state(child_name, child_dims))
        state.add_child(dim)
    return state


def _node_to_dict(node: StateHierarchyNode) -> Dict[str, Any]:
    return {c.name(): _node_to_dict(c)
            for c in sorted(node.children, key=lambda c: c.name())}


def _generate_name_map(root: StateHierarchyNode) -> Dict[str, StateHierarchyNode]:
    by_name: Dict[str, StateHierarchyNode] = {}
    for node in root.walk():
        if node.name() in by_name:
            raise HierarchyError(f"Duplicate node name '{node.name()}'",
                                 details={"name": node.name()})
        by_name[node.name()] = node
    return by_name


def _check_well_formed(alive: StateHierarchyNode) -> None:
    if not isinstance(alive, State) or alive.name() != ALIVE:
        raise HierarchyError(
            f"The root of a typestate hierarchy must be the state '{ALIVE}', "
            f"got {alive!r}",
            details={"root": alive.name()},
        )
    if alive.parent is not None:
        raise HierarchyError("The root state cannot have a parent")
    for node in alive.walk():
        for child in node.children:
            if child.kind == node.kind or child.parent is not node:
                raise HierarchyError(
                    f"'{child.name()}' under '{node.name()}' breaks state/dimension alternation",
                    details={"node": child.name()},
                )
