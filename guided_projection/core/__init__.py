"""
Variable model, constraint/energy contracts and the iteration engine.
"""

from .variables import VariableSet, Variable, SubVariable
from .types import ConstraintType, LinearisedConstraintType, EnergyType
from .solver import GuidedProjectionAlgorithm, Constraint, Energy
from .history import IterationHistory, load_history
from . import constraint_types, energy_types

__all__ = [
	"VariableSet",
	"Variable",
	"SubVariable",
	"ConstraintType",
	"LinearisedConstraintType",
	"EnergyType",
	"GuidedProjectionAlgorithm",
	"Constraint",
	"Energy",
	"IterationHistory",
	"load_history",
	"constraint_types",
	"energy_types"
]
