"""
Contracts for the relations the guided projection solver enforces.

A ConstraintType is a quadratic relation over its local vector x:

	C(x) = x^T H x + b^T x + c = 0

with H symmetric, so the gradient is (H + H^T) x + b = 2 H x + b.

An EnergyType is a linear least-squares term (K^T x - S)^2.

Local models only depend on the layout of the bound variables; the solver
gathers the live values of x from the global state at every iteration.
"""

from typing import Optional

import numpy as np

from ..errors import DimensionMismatchError
from ..linalg import CompressedColumn, DenseVector, DictionaryOfKeys, SparseVector


def add_symmetric(dok: DictionaryOfKeys, value: float, row: int, column: int):
	"""Add a value at (row, column) and at its mirrored position."""
	dok.add(value, row, column)
	if row != column:
		dok.add(value, column, row)


class ConstraintType:
	"""
	Local quadratic model of a constraint.

	Attributes:
		local_dimension: Width of the local vector x
		local_hessian: Symmetric H as a CompressedColumn
		local_linear: b as a SparseVector, or None when zero
		local_constant: c
	"""
	def __init__(self, local_dimension: int, hessian: Optional[DictionaryOfKeys] = None,
				linear: Optional[SparseVector] = None, constant: float = 0.0):
		if local_dimension <= 0:
			raise ValueError(f"Local dimension must be positive, got {local_dimension}")
		self.local_dimension = int(local_dimension)
		self.local_hessian = CompressedColumn.from_dok(hessian or DictionaryOfKeys(),
													   self.local_dimension, self.local_dimension)
		if linear is not None and linear.size != self.local_dimension:
			raise DimensionMismatchError(
				f"Linear term of size {linear.size} for a local dimension of {self.local_dimension}")
		self.local_linear = linear
		self.local_constant = float(constant)

		hessian_array = self.local_hessian.to_array()
		if not np.allclose(hessian_array, hessian_array.T):
			raise ValueError(f"{type(self).__name__} local Hessian must be symmetric")

	def _local_vector(self, x_reduced) -> np.ndarray:
		x_reduced = np.asarray(x_reduced, dtype=float)
		if x_reduced.shape != (self.local_dimension,):
			raise DimensionMismatchError(
				f"{type(self).__name__} expects {self.local_dimension} local values, got {x_reduced.shape}")
		return x_reduced

	def evaluate(self, x_reduced) -> float:
		"""Residual C(x) at the given local values."""
		x_reduced = self._local_vector(x_reduced)
		hx = self.local_hessian.multiply(DenseVector(x_reduced))
		value = float(hx.transpose_multiply(x_reduced)) + self.local_constant
		if self.local_linear is not None:
			value += self.local_linear.transpose_multiply(x_reduced)
		return value

	def gradient(self, x_reduced) -> np.ndarray:
		"""Gradient (H + H^T) x + b at the given local values."""
		x_reduced = self._local_vector(x_reduced)
		gradient = 2.0 * self.local_hessian.multiply(DenseVector(x_reduced)).to_array()
		if self.local_linear is not None:
			gradient += self.local_linear.to_array()
		return gradient

	def __repr__(self):
		return f"{type(self).__name__}(local_dimension={self.local_dimension})"


class LinearisedConstraintType(ConstraintType):
	"""
	Constraint whose local model is refreshed from the live values before each
	iteration, for relations that are not quadratic in their variables.

	Subclasses implement `update_local` and reassign `local_hessian`,
	`local_linear` and `local_constant` from the given local values.
	"""
	def update_local(self, x_reduced: np.ndarray):
		raise NotImplementedError


class EnergyType:
	"""
	Local linear model of an energy (K^T x - S)^2.

	Attributes:
		local_dimension: Width of the local vector x
		local_vector: K as a SparseVector
		target: S
	"""
	def __init__(self, local_vector: SparseVector, target: float = 0.0):
		if local_vector.size <= 0:
			raise ValueError("Energy local vector must not be empty")
		self.local_vector = local_vector
		self.local_dimension = local_vector.size
		self.target = float(target)

	def residual(self, x_reduced) -> float:
		"""K^T x - S at the given local values."""
		x_reduced = np.asarray(x_reduced, dtype=float)
		if x_reduced.shape != (self.local_dimension,):
			raise DimensionMismatchError(
				f"{type(self).__name__} expects {self.local_dimension} local values, got {x_reduced.shape}")
		return self.local_vector.transpose_multiply(x_reduced) - self.target

	def evaluate(self, x_reduced) -> float:
		return self.residual(x_reduced) ** 2

	def __repr__(self):
		return f"{type(self).__name__}(local_dimension={self.local_dimension}, target={self.target})"
