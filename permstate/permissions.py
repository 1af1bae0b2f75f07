"""Access permissions.

Implements the permission model of:
  Bierhoff & Aldrich (2007) "Modular Typestate Checking of Aliased Objects"
  OOPSLA '07, https://doi.org/10.1145/1297027.1297050

  Boyland (2003) "Checking Interference with Fractional Permissions"
  SAS '03, https://doi.org/10.1007/3-540-44898-5_4

Key Theory:

1. PERMISSION KINDS describe what the holder may do and what other
   references to the same object may do:

     kind       this reference    other references
     ---------  ----------------  ----------------
     unique     read/write        none
     full       read/write        read-only
     share      read/write        read/write
     pure       read-only         read/write
     immutable  read-only         read-only

2. A permission is scoped to a GUARANTEE state of the typestate
   hierarchy: the holder may rely on the object staying inside that
   state, and the current STATES refine it.

3. FRACTIONS make splitting exact.  Splitting a permission hands out
   shares of the same fraction; merging them back is only allowed when
   the shares provably add up again.  Two elements with the identical
   fraction token are shares of the same split.

4. USAGE says whether a permission covers the object's own fields
   (frame), its dynamically dispatched behaviour (virtual), or both.

A permission for a location is either UNGROUND (not yet inferred) or a
ground set of concrete elements combined with the tensor (X).
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from xml.sax.saxutils import quoteattr

from permstate.errors import NotGroundError
from permstate.fractions import Fraction
from permstate.hierarchy import StateHierarchyNode

TENSOR_STR = " (X) "
newline = os.linesep


# ---------------------------------------------------------------------------
# Kinds and usage
# ---------------------------------------------------------------------------

class PermissionKind(Enum):
    """Access permission kinds."""
    UNIQUE = auto()     # Sole reference
    FULL = auto()       # Sole modifier, others may read
    SHARE = auto()      # Modifier among modifiers
    PURE = auto()       # Reader, others may modify
    IMMUTABLE = auto()  # Reader, nobody modifies

    def can_read(self) -> bool:
        return True

    def can_write(self) -> bool:
        return self in (PermissionKind.UNIQUE, PermissionKind.FULL,
                        PermissionKind.SHARE)

    def allows_other_modifiers(self) -> bool:
        return self in (PermissionKind.SHARE, PermissionKind.PURE)

    def is_exclusive_writer(self) -> bool:
        return self in (PermissionKind.UNIQUE, PermissionKind.FULL)

    def __str__(self) -> str:
        return self.name.lower()


class PermissionUse(Enum):
    FRAME = "Frame"
    VIRTUAL = "Virtual"
    BOTH = "Both"

    @staticmethod
    def from_annotation(use: str) -> PermissionUse:
        """Map an annotation's ``use`` attribute to a permission use."""
        mapping = {
            "fields": PermissionUse.FRAME,
            "dispatch": PermissionUse.VIRTUAL,
            "disp_fields": PermissionUse.BOTH,
        }
        try:
            return mapping[use.lower()]
        except KeyError:
            raise ValueError(f"Unknown permission use '{use}'") from None

    def covers(self, other: PermissionUse) -> bool:
        return self == other or self == PermissionUse.BOTH

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Concrete permission elements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConcretePermissionElement:
    """One ground permission: kind(guarantee) in states, with a fraction."""
    kind: PermissionKind
    fraction: Fraction
    usage: PermissionUse
    guarantee: StateHierarchyNode
    states: FrozenSet[StateHierarchyNode] = field(default_factory=frozenset)

    def same_fraction(self, other: ConcretePermissionElement) -> bool:
        return self.fraction is other.fraction

    def copy_with_new_usage(self, usage: PermissionUse) -> ConcretePermissionElement:
        return ConcretePermissionElement(self.kind, self.fraction, usage,
                                         self.guarantee, self.states)

    def state_names(self) -> List[str]:
        return sorted(s.name() for s in self.states)

    def covers(self, required: ConcretePermissionElement) -> bool:
        """Can this element stand in for ``required``?

        Same kind, a usage at least as wide, a guarantee at or below the
        required one, and every required state is refined by a held state.
        """
        if self.kind != required.kind or not self.usage.covers(required.usage):
            return False
        if not self.guarantee.refines(required.guarantee):
            return False
        return all(any(held.refines(wanted) for held in self.states)
                   for wanted in required.states)

    def __str__(self) -> str:
        return f"{self.kind}({self.guarantee.name()}) in [{', '.join(self.state_names())}]"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.name,
            "guarantee": self.guarantee.name(),
            "fraction_id": self.fraction.fraction_id(),
            "usage": str(self.usage),
            "states": self.state_names(),
        }

    def to_xml(self, prefix: str = "") -> str:
        lines = [
            f"{prefix}<plural:concrete-perm-element kind={quoteattr(self.kind.name)} "
            f"guarantee={quoteattr(self.guarantee.name())} "
            f"fraction-id={quoteattr(str(self.fraction.fraction_id()))} "
            f"usage={quoteattr(str(self.usage))}>"
        ]
        for name in self.state_names():
            lines.append(f"{prefix}  <plural:state name={quoteattr(name)}/>")
        lines.append(f"{prefix}</plural:concrete-perm-element>")
        return newline.join(lines)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

class Permission(ABC):
    """The permission held for one location: ground or not yet known."""

    @abstractmethod
    def is_ground(self) -> bool:
        ...

    @abstractmethod
    def get_ground(self) -> ConcretePermission:
        """Return this permission as a ConcretePermission.

        Raises NotGroundError if the permission is not ground.
        """

    @abstractmethod
    def copy_with_new_usage(self, usage: PermissionUse) -> Permission:
        ...

    @abstractmethod
    def to_xml(self, prefix: str = "") -> str:
        ...


@dataclass(frozen=True)
class ConcretePermission(Permission):
    """A ground permission: the tensor of its elements."""
    elements: FrozenSet[ConcretePermissionElement] = field(default_factory=frozenset)

    @staticmethod
    def of(*elements: ConcretePermissionElement) -> ConcretePermission:
        return ConcretePermission(frozenset(elements))

    def is_ground(self) -> bool:
        return True

    def get_ground(self) -> ConcretePermission:
        return self

    def copy_with_new_usage(self, usage: PermissionUse) -> ConcretePermission:
        return ConcretePermission(frozenset(e.copy_with_new_usage(usage)
                                            for e in self.elements))

    def with_elements(self, elements: Iterable[ConcretePermissionElement]) -> ConcretePermission:
        return ConcretePermission(self.elements | frozenset(elements))

    def without_element(self, element: ConcretePermissionElement) -> ConcretePermission:
        return ConcretePermission(self.elements - {element})

    def find_covering(self, required: ConcretePermissionElement) -> Optional[ConcretePermissionElement]:
        for e in self._sorted():
            if e.covers(required):
                return e
        return None

    def _sorted(self) -> List[ConcretePermissionElement]:
        return sorted(self.elements, key=str)

    def __str__(self) -> str:
        if not self.elements:
            return "1"
        return TENSOR_STR.join(str(e) for e in self._sorted())

    def to_dict(self) -> Dict[str, Any]:
        return {"ground": True, "elements": [e.to_dict() for e in self._sorted()]}

    def to_xml(self, prefix: str = "") -> str:
        lines = [f"{prefix}<plural:permission>", f"{prefix}  <plural:concrete-perm>"]
        for e in self._sorted():
            lines.append(e.to_xml(prefix + "    "))
        lines.append(f"{prefix}  </plural:concrete-perm>")
        lines.append(f"{prefix}</plural:permission>")
        return newline.join(lines)


class UngroundPermission(Permission):
    """A permission that has not been inferred yet."""

    _instance: Optional[UngroundPermission] = None

    def __new__(cls) -> UngroundPermission:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def is_ground(self) -> bool:
        return False

    def get_ground(self) -> ConcretePermission:
        raise NotGroundError("This permission is not ground.")

    def copy_with_new_usage(self, usage: PermissionUse) -> UngroundPermission:
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"ground": False}

    def to_xml(self, prefix: str = "") -> str:
        return newline.join([
            f"{prefix}<plural:permission>",
            f"{prefix}  <plural:unground-perm/>",
            f"{prefix}</plural:permission>",
        ])

    def __str__(self) -> str:
        return "UNGROUND"

    def __repr__(self) -> str:
        return "UNGROUND"


UNGROUND = UngroundPermission()
