"""
Guided projection: iterative constraint projection over sparse systems.
"""

__version__ = "0.1.0"

from .config import Config
from .errors import (
	GuidedProjectionError,
	CapacityError,
	VariableIndexError,
	DimensionMismatchError,
	SequencingError,
	SingularSystemError
)
from .logging_config import setup_logging, get_logger, log_performance
from .plot_utils import plot_convergence, plot_sparsity, save_solver_plots
from .core import (
	GuidedProjectionAlgorithm,
	VariableSet,
	Variable,
	SubVariable,
	ConstraintType,
	LinearisedConstraintType,
	EnergyType,
	IterationHistory,
	load_history,
	constraint_types,
	energy_types
)

__all__ = [
	"Config",
	"GuidedProjectionError",
	"CapacityError",
	"VariableIndexError",
	"DimensionMismatchError",
	"SequencingError",
	"SingularSystemError",
	"setup_logging",
	"get_logger",
	"log_performance",
	"plot_convergence",
	"plot_sparsity",
	"save_solver_plots",
	"GuidedProjectionAlgorithm",
	"VariableSet",
	"Variable",
	"SubVariable",
	"ConstraintType",
	"LinearisedConstraintType",
	"EnergyType",
	"IterationHistory",
	"load_history",
	"constraint_types",
	"energy_types"
]
