"""Symbolic fractions and the fraction constraint solver.

Fractional permissions (Boyland 2003, "Checking Interference with
Fractional Permissions", SAS '03) split an access right into shares.  The
checker never needs the numbers themselves; it needs to know which shares
are the *same* share.  A ``Fraction`` is therefore an identity token: two
fractions are equal only if they are the same object.

While permissions are inferred, a share may be an unknown
``VariableFraction``.  Solving sets its ``value`` in place, and because the
variable object is shared by every permission element that mentions it,
all holders see the solution at once.

Solving is delegated to Z3 (de Moura & Bjorner 2008): each fraction is a
real in [0, 1], splitting a permission is a linear sum constraint, and a
model of the constraints gives every variable a ground representative.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional, Tuple

import z3

from permstate.config import PermStateConfig
from permstate.errors import InconsistentFractionsError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fraction tokens
# ---------------------------------------------------------------------------

class Fraction:
    """An opaque share of a permission.  Equality is identity."""

    __slots__ = ("__weakref__",)

    def fraction_id(self) -> str:
        return str(id(self))

    def is_variable(self) -> bool:
        return False

    def resolve(self) -> Fraction:
        return self

    def __repr__(self) -> str:
        return f"Fraction#{self.fraction_id()}"


class NamedFraction(Fraction):
    """A ground fraction with a display name."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"NamedFraction({self.name!r})"


ONE = NamedFraction("1")
ZERO = NamedFraction("0")


class VariableFraction(Fraction):
    """A fraction pending solution.  ``value`` is a shared mutable cell."""

    __slots__ = ("var_name", "value")

    _ids = itertools.count()

    def __init__(self) -> None:
        self.var_name = f"VAR{next(VariableFraction._ids)}"
        self.value: Optional[Fraction] = None

    def is_variable(self) -> bool:
        return True

    def is_solved(self) -> bool:
        return self.value is not None

    def set_value(self, value: Fraction) -> None:
        self.value = value

    def resolve(self) -> Fraction:
        """Follow solved values to a ground fraction, or the last unsolved variable."""
        seen = set()
        current: Fraction = self
        while isinstance(current, VariableFraction) and current.value is not None:
            if id(current) in seen:
                break
            seen.add(id(current))
            current = current.value
        return current

    def __str__(self) -> str:
        if self.is_solved():
            return f"{self.var_name}[{self.value}]"
        return self.var_name

    def __repr__(self) -> str:
        return f"VariableFraction({self})"


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------

class ConstraintKind(Enum):
    EQUIVALENT = auto()
    ZERO = auto()
    ONE = auto()
    NONZERO = auto()
    SUM = auto()       # fractions[0] == sum(fractions[1:])


@dataclass(frozen=True)
class FractionConstraint:
    kind: ConstraintKind
    fractions: Tuple[Fraction, ...]

    def __str__(self) -> str:
        names = [str(f) for f in self.fractions]
        if self.kind == ConstraintKind.EQUIVALENT:
            return " == ".join(names)
        if self.kind == ConstraintKind.SUM:
            return f"{names[0]} == " + " + ".join(names[1:])
        if self.kind == ConstraintKind.ZERO:
            return f"{names[0]} == 0"
        if self.kind == ConstraintKind.ONE:
            return f"{names[0]} == 1"
        return f"{names[0]} > 0"


@dataclass
class FractionConstraints:
    """Constraints collected while permissions are split and merged."""
    constraints: List[FractionConstraint] = field(default_factory=list)

    def _add(self, kind: ConstraintKind, fractions: Iterable[Fraction]) -> None:
        self.constraints.append(FractionConstraint(kind, tuple(fractions)))

    def make_equivalent(self, *fractions: Fraction) -> None:
        if len(fractions) > 1:
            self._add(ConstraintKind.EQUIVALENT, fractions)

    def make_zero(self, f: Fraction) -> None:
        self._add(ConstraintKind.ZERO, (f,))

    def make_one(self, f: Fraction) -> None:
        self._add(ConstraintKind.ONE, (f,))

    def make_nonzero(self, f: Fraction) -> None:
        self._add(ConstraintKind.NONZERO, (f,))

    def make_sum(self, whole: Fraction, *parts: Fraction) -> None:
        """Record that ``whole`` was split into ``parts``."""
        self._add(ConstraintKind.SUM, (whole,) + parts)

    def fractions(self) -> List[Fraction]:
        seen: Dict[Fraction, None] = {}
        for c in self.constraints:
            for f in c.fractions:
                seen.setdefault(f, None)
        return list(seen)

    def __len__(self) -> int:
        return len(self.constraints)


# ---------------------------------------------------------------------------
# Solving
# ---------------------------------------------------------------------------

@dataclass
class FractionAssignment:
    """A satisfying assignment of rational values to fractions."""
    values: Dict[Fraction, Any] = field(default_factory=dict)
    representatives: Dict[Any, Fraction] = field(default_factory=dict)

    def value_of(self, f: Fraction) -> Any:
        if f in self.values:
            return self.values[f]
        f = f.resolve()
        if f is ONE:
            return 1
        if f is ZERO:
            return 0
        return self.values.get(f)

    def are_equivalent(self, f1: Fraction, f2: Fraction) -> bool:
        v1, v2 = self.value_of(f1), self.value_of(f2)
        return v1 is not None and v1 == v2

    def is_one(self, f: Fraction) -> bool:
        return self.value_of(f) == 1

    def is_zero(self, f: Fraction) -> bool:
        return self.value_of(f) == 0


def _term(f: Fraction, solver: z3.Solver, z3_vars: Dict[Fraction, Any]) -> Any:
    f = f.resolve()
    if f is ONE:
        return z3.RealVal(1)
    if f is ZERO:
        return z3.RealVal(0)
    var = z3_vars.get(f)
    if var is None:
        var = z3.Real(f"f{len(z3_vars)}")
        if f.is_variable():
            solver.add(var >= 0, var <= 1)
        else:
            solver.add(var > 0, var <= 1)
        z3_vars[f] = var
    return var


def solve_fractions(constraints: FractionConstraints,
                    timeout_ms: Optional[int] = None,
                    config: Optional[PermStateConfig] = None) -> FractionAssignment:
    """Solve the constraints and write a ground value into every unsolved variable.

    The z3 timeout is ``timeout_ms`` if given, else ``solver_timeout_ms``
    from ``config`` (or the default configuration).

    Raises InconsistentFractionsError if the constraints are unsatisfiable
    or the solver gives up.
    """
    if timeout_ms is None:
        timeout_ms = (config or PermStateConfig()).solver_timeout_ms
    solver = z3.Solver()
    solver.set("timeout", timeout_ms)
    z3_vars: Dict[Fraction, Any] = {}

    for c in constraints.constraints:
        terms = [_term(f, solver, z3_vars) for f in c.fractions]
        if c.kind == ConstraintKind.EQUIVALENT:
            solver.add(*[t == terms[0] for t in terms[1:]])
        elif c.kind == ConstraintKind.ZERO:
            solver.add(terms[0] == 0)
        elif c.kind == ConstraintKind.ONE:
            solver.add(terms[0] == 1)
        elif c.kind == ConstraintKind.NONZERO:
            solver.add(terms[0] > 0)
        elif c.kind == ConstraintKind.SUM:
            solver.add(terms[0] == z3.Sum(*terms[1:]) if len(terms) > 2 else terms[0] == terms[1])

    status = solver.check()
    logger.debug("fraction constraints: %d over %d fractions -> %s",
                 len(constraints), len(z3_vars), status)
    if status != z3.sat:
        raise InconsistentFractionsError(
            f"Fraction constraints are not satisfiable ({status})",
            details={"status": str(status),
                     "constraints": [str(c) for c in constraints.constraints]},
        )

    model = solver.model()
    assignment = FractionAssignment()
    assignment.representatives[1] = ONE
    assignment.representatives[0] = ZERO

    for f, var in z3_vars.items():
        value = model.evaluate(var, model_completion=True).as_fraction()
        assignment.values[f] = value
        if not f.is_variable():
            assignment.representatives.setdefault(value, f)

    for f in list(z3_vars):
        if not isinstance(f, VariableFraction) or f.is_solved():
            continue
        value = assignment.values[f]
        rep = assignment.representatives.get(value)
        if rep is None:
            rep = NamedFraction(str(value))
            assignment.representatives[value] = rep
            assignment.values[rep] = value
        f.set_value(rep)

    return assignment
