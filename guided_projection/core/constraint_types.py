"""
Concrete quadratic constraints.

Each class documents the layout of its local vector; bindings passed to
`GuidedProjectionAlgorithm.add_constraint` must follow that order.
"""

import numpy as np

from .types import ConstraintType, add_symmetric
from ..linalg import DictionaryOfKeys, SparseVector


class LowerBound(ConstraintType):
	"""
	Keeps a scalar above a bound through a slack variable.

	Local vector: [x, slack]. Enforces x - slack^2 - bound = 0, so x >= bound.
	"""
	def __init__(self, bound: float):
		hessian = DictionaryOfKeys()
		hessian.add(1.0, 1, 1)
		super().__init__(2, hessian, SparseVector(2, [0], [-1.0]), bound)
		self.bound = float(bound)


class UpperBound(ConstraintType):
	"""
	Keeps a scalar below a bound through a slack variable.

	Local vector: [x, slack]. Enforces bound - x - slack^2 = 0, so x <= bound.
	"""
	def __init__(self, bound: float):
		hessian = DictionaryOfKeys()
		hessian.add(-1.0, 1, 1)
		super().__init__(2, hessian, SparseVector(2, [0], [-1.0]), bound)
		self.bound = float(bound)


class VectorLength(ConstraintType):
	"""
	Fixes the Euclidean norm of a vector.

	Local vector: the vector's components.
	"""
	def __init__(self, length: float, dimension: int = 3):
		hessian = DictionaryOfKeys()
		for i in range(dimension):
			hessian.add(1.0, i, i)
		super().__init__(dimension, hessian, None, -length * length)
		self.length = float(length)


def _segment_hessian(dimension: int) -> DictionaryOfKeys:
	# |e - s|^2 over the local vector [s, e]
	hessian = DictionaryOfKeys()
	for i in range(dimension):
		hessian.add(1.0, i, i)
		hessian.add(1.0, dimension + i, dimension + i)
		add_symmetric(hessian, -1.0, i, dimension + i)
	return hessian


class SegmentLength(ConstraintType):
	"""
	Fixes the distance between two points.

	Local vector: [start, end], each of `dimension` components.
	"""
	def __init__(self, dimension: int, length: float):
		super().__init__(2 * dimension, _segment_hessian(dimension), None, -length * length)
		self.length = float(length)


class CoherentLength(ConstraintType):
	"""
	Ties a length variable to the distance between two points.

	Local vector: [start, end, length]; enforces |end - start|^2 - length^2 = 0.
	"""
	def __init__(self, dimension: int):
		hessian = _segment_hessian(dimension)
		hessian.add(-1.0, 2 * dimension, 2 * dimension)
		super().__init__(2 * dimension + 1, hessian, None, 0.0)


class SegmentOrthogonality(ConstraintType):
	"""
	Makes a segment orthogonal to a variable direction.

	Local vector: [start, end, direction]; enforces (end - start) . direction = 0.
	"""
	def __init__(self, dimension: int):
		hessian = DictionaryOfKeys()
		for i in range(dimension):
			add_symmetric(hessian, -0.5, i, 2 * dimension + i)
			add_symmetric(hessian, 0.5, dimension + i, 2 * dimension + i)
		super().__init__(3 * dimension, hessian, None, 0.0)


class DistanceToPoint(ConstraintType):
	"""
	Keeps a point at a given distance from a fixed point (on it by default).

	Local vector: the point's components.
	"""
	def __init__(self, point, distance: float = 0.0):
		point = np.asarray(point, dtype=float).ravel()
		dimension = point.shape[0]
		hessian = DictionaryOfKeys()
		for i in range(dimension):
			hessian.add(1.0, i, i)
		linear = SparseVector.from_array(-2.0 * point)
		super().__init__(dimension, hessian, linear, float(point @ point) - distance * distance)
		self.point = point
		self.distance = float(distance)


class NodeEquilibrium(ConstraintType):
	"""
	Force-density equilibrium of a node along one axis, with both the force
	densities and the coordinates variable.

	Local vector: [q_0 .. q_{n-1}, x_node, x_0 .. x_{n-1}] where q_k is the
	force density of the bar to the k-th adjacent node and x_k its coordinate.
	Enforces sum_k q_k (x_node - x_k) = force.
	"""
	def __init__(self, force: float, adjacent_count: int):
		if adjacent_count <= 0:
			raise ValueError(f"A node needs at least one adjacent node, got {adjacent_count}")
		node = adjacent_count
		hessian = DictionaryOfKeys()
		for k in range(adjacent_count):
			add_symmetric(hessian, 0.5, k, node)
			add_symmetric(hessian, -0.5, k, node + 1 + k)
		super().__init__(2 * adjacent_count + 1, hessian, None, -force)
		self.force = float(force)
		self.adjacent_count = adjacent_count
