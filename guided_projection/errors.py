"""
Exception taxonomy for the guided projection solver and its sparse layer.

Every error derives from GuidedProjectionError and from the builtin it is
closest to, so callers can catch either.
"""

import numpy as np


class GuidedProjectionError(Exception):
    pass


class CapacityError(GuidedProjectionError, OverflowError):
    """A VariableSet has no reserved slot left."""


class VariableIndexError(GuidedProjectionError, IndexError):
    """A component, slot or global index lies outside its valid range."""


class DimensionMismatchError(GuidedProjectionError, ValueError):
    """Operands or bindings have incompatible sizes."""


class SequencingError(GuidedProjectionError, RuntimeError):
    """An operation was called in the wrong solver state."""


class SingularSystemError(GuidedProjectionError, np.linalg.LinAlgError):
    """The regularised global system could not be factorised."""
