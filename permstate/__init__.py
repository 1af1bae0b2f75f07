"""permstate: permission and typestate abstract domain for typestate checkers."""

__version__ = "0.1.0"

from permstate.config import PermStateConfig, load_config
from permstate.conslist import ConsList
from permstate.errors import (
    ErrorKind, FrozenStateError, HierarchyError, InconsistentFractionsError,
    NotGroundError, PermStateError, UnknownStateError, UnsupportedImplicationError,
)
from permstate.fractions import (
    ONE, ZERO, Fraction, FractionConstraints, NamedFraction, VariableFraction,
    solve_fractions,
)
from permstate.hierarchy import Dimension, State, StateHierarchy
from permstate.implications import (
    Implication, ImplicationResult, NullImplication, ParameterConsequence,
    PermissionImplication, StateImplication,
)
from permstate.lattice import PermissionTuple
from permstate.locations import Location
from permstate.logic import DynamicStateLogic
from permstate.permissions import (
    UNGROUND, ConcretePermission, ConcretePermissionElement, Permission,
    PermissionKind, PermissionUse, UngroundPermission,
)
from permstate.predicates import (
    BooleanPredicate, NullPredicate, PermissionPredicate, VariablePredicate,
)
