"""Shared fixtures: a file-like typestate hierarchy and a few locations."""

import pytest

from permstate.fractions import NamedFraction
from permstate.hierarchy import StateHierarchy
from permstate.locations import Location
from permstate.permissions import (
    ConcretePermission, ConcretePermissionElement, PermissionKind, PermissionUse,
)


FILE_TREE = {
    "alive": {
        "openness": {
            "open": {"eof": {"hasNext": {}, "end": {}}},
            "closed": {},
        },
        "ownership": {"owned": {}, "borrowed": {}},
    },
}


@pytest.fixture
def file_hierarchy():
    return StateHierarchy.from_dict(FILE_TREE, type_name="File")


@pytest.fixture
def locs():
    return {name: Location.of(name) for name in ("b", "c", "f", "r", "p", "x", "y")}


@pytest.fixture
def make_permission(file_hierarchy):
    """Build a one-element ConcretePermission over the File hierarchy."""
    def build(kind=PermissionKind.FULL, states=(), usage=PermissionUse.BOTH,
              guarantee="alive", fraction=None):
        element = ConcretePermissionElement(
            kind,
            fraction or NamedFraction("k"),
            usage,
            file_hierarchy.find_by_name(guarantee),
            frozenset(file_hierarchy.find_by_name(s) for s in states),
        )
        return ConcretePermission.of(element)
    return build
