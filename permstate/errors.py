"""Structured usage errors for the permission/typestate core.

The core performs no I/O, so every failure is a contract violation by the
driver: asking an ungrounded permission for its ground form, mutating a
frozen logic value, building a malformed state hierarchy, and so on.  Each
error carries a machine-readable record so reports can consume it directly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    NOT_GROUND = "not_ground"
    FROZEN_STATE = "frozen_state"
    MALFORMED_HIERARCHY = "malformed_hierarchy"
    UNKNOWN_STATE = "unknown_state"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    INCONSISTENT_FRACTIONS = "inconsistent_fractions"


@dataclass
class UsageError:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def __str__(self) -> str:
        return f"[{self.kind.value}]: {self.message}"


class PermStateError(Exception):
    """Exception wrapping a UsageError."""

    kind: ErrorKind = ErrorKind.UNSUPPORTED_OPERATION

    def __init__(self, message: str, details: Optional[dict] = None):
        self.error = UsageError(kind=self.kind, message=message,
                                details=details or {})
        super().__init__(str(self.error))

    def to_json(self, indent: int = 2) -> str:
        return self.error.to_json(indent=indent)


class NotGroundError(PermStateError):
    """Raised by get_ground() on an ungrounded permission."""
    kind = ErrorKind.NOT_GROUND


class FrozenStateError(PermStateError):
    """Raised when a frozen DynamicStateLogic is mutated."""
    kind = ErrorKind.FROZEN_STATE


class HierarchyError(PermStateError):
    kind = ErrorKind.MALFORMED_HIERARCHY


class UnknownStateError(HierarchyError):
    kind = ErrorKind.UNKNOWN_STATE


class UnsupportedImplicationError(PermStateError):
    """Raised for transformations an implication variant cannot perform."""
    kind = ErrorKind.UNSUPPORTED_OPERATION


class InconsistentFractionsError(PermStateError):
    kind = ErrorKind.INCONSISTENT_FRACTIONS


def frozen_error(operation: str) -> FrozenStateError:
    return FrozenStateError(
        f"Cannot '{operation}' a frozen logic value; take a mutable_copy() first",
        details={"operation": operation},
    )
