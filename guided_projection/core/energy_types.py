"""
Concrete linear energies, each minimised in the least-squares sense.
"""

import numpy as np

from .types import EnergyType
from ..linalg import SparseVector

# Directions shorter than this are treated as zero
ABSOLUTE_PRECISION = 1e-8


def unitise(direction) -> np.ndarray:
	direction = np.asarray(direction, dtype=float).ravel()
	if direction.size == 0 or np.all(np.abs(direction) <= ABSOLUTE_PRECISION):
		raise ValueError("The length of the target direction must be different from zero")
	return direction / np.linalg.norm(direction)


class ScalarEquality(EnergyType):
	"""Drives a scalar variable to a target value. Local vector: [x]."""
	def __init__(self, value: float):
		super().__init__(SparseVector(1, [0], [1.0]), value)


class SegmentOrthogonality(EnergyType):
	"""
	Makes a segment orthogonal to a fixed direction.

	Local vector: [start, end]; minimises ((end - start) . u)^2 with u the
	unit direction.
	"""
	def __init__(self, direction):
		self.direction = unitise(direction)
		dimension = self.direction.shape[0]
		indices = list(range(2 * dimension))
		values = np.concatenate([-self.direction, self.direction])
		super().__init__(SparseVector(2 * dimension, indices, values), 0.0)


class SegmentParallelity(EnergyType):
	"""
	Aligns a segment with a fixed direction.

	Local vector: [start, end, length]; minimises ((end - start) . u - length)^2
	with u the unit direction. Pair it with a CoherentLength constraint so the
	length variable follows the true segment length.
	"""
	def __init__(self, direction):
		self.direction = unitise(direction)
		dimension = self.direction.shape[0]
		indices = list(range(2 * dimension + 1))
		values = np.concatenate([-self.direction, self.direction, [-1.0]])
		super().__init__(SparseVector(2 * dimension + 1, indices, values), 0.0)


class NodeEquilibrium(EnergyType):
	"""
	Force-density equilibrium of a node along one axis with fixed geometry.

	Local vector: [q_0 .. q_{n-1}], the force densities of the bars from the
	node to its n adjacent nodes. Minimises
	(sum_k q_k (node - adjacent_k) - force)^2.
	"""
	def __init__(self, node_coordinate: float, adjacent_coordinates, force: float):
		adjacent = np.asarray(adjacent_coordinates, dtype=float).ravel()
		if adjacent.size == 0:
			raise ValueError("A node needs at least one adjacent node")
		values = float(node_coordinate) - adjacent
		super().__init__(SparseVector(adjacent.size, range(adjacent.size), values), force)
