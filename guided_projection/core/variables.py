"""
Variable model: named slices of the solver's flat state vector X.

A VariableSet reserves a contiguous block of X for `capacity` variables of the
same dimension. Variables and SubVariables never hold values of their own once
the solver is initialised: every read and write goes to X.
"""

from typing import List, Sequence

import numpy as np

from ..errors import CapacityError, VariableIndexError


class _VariableView:
	"""Read/write helpers shared by Variable and SubVariable."""

	dimension = 0

	def __len__(self):
		return self.dimension

	def __iter__(self):
		for i in range(self.dimension):
			yield self[i]

	def _check_component(self, index: int) -> int:
		index = int(index)
		if not 0 <= index < self.dimension:
			raise VariableIndexError(f"Component {index} out of range for a {self.dimension}-dimensional variable")
		return index

	def reference_index(self, index: int) -> int:
		raise NotImplementedError

	@property
	def global_indices(self) -> List[int]:
		"""Positions in X of every component, in local order."""
		return [self.reference_index(i) for i in range(self.dimension)]

	def to_array(self) -> np.ndarray:
		return np.array([self[i] for i in range(self.dimension)], dtype=float)


class VariableSet:
	"""
	Pool of same-shaped variables backed by one contiguous block of X.

	Slots are filled in order by `add_variable`; initial values are held here
	until the solver copies them into X.

	Attributes:
		dimension: Components per variable
		capacity: Number of reserved slots
		offset: Position in X of the first component of slot 0
		count: Number of filled slots
	"""
	def __init__(self, solver, dimension: int, capacity: int, offset: int):
		if dimension <= 0:
			raise ValueError(f"Variable dimension must be positive, got {dimension}")
		if capacity <= 0:
			raise ValueError(f"Variable set capacity must be positive, got {capacity}")
		self._solver = solver
		self.dimension = int(dimension)
		self.capacity = int(capacity)
		self.offset = int(offset)
		self.count = 0
		self._initial: List[np.ndarray] = []

	@property
	def size(self) -> int:
		"""Number of components reserved in X."""
		return self.dimension * self.capacity

	@property
	def is_full(self) -> bool:
		return self.count == self.capacity

	def add_variable(self, *components) -> "Variable":
		"""
		Fill the next free slot with the given initial components.

		Accepts either the components as separate arguments or one sequence.
		"""
		if len(components) == 1 and np.ndim(components[0]) == 1:
			components = components[0]
		values = np.array(components, dtype=float).ravel()
		if values.shape[0] != self.dimension:
			raise ValueError(f"Expected {self.dimension} initial components, got {values.shape[0]}")
		self._solver._check_open("add a variable")
		if self.is_full:
			raise CapacityError(f"Variable set at offset {self.offset} is full ({self.capacity} slots)")

		self._initial.append(values)
		self.count += 1
		return Variable(self, self.count - 1)

	def _check_slot(self, slot: int) -> int:
		slot = int(slot)
		if not 0 <= slot < self.capacity:
			raise VariableIndexError(f"Slot {slot} out of range for a set of capacity {self.capacity}")
		return slot

	def __len__(self):
		return self.count

	def __getitem__(self, slot: int) -> "Variable":
		slot = self._check_slot(slot)
		if slot >= self.count:
			raise VariableIndexError(f"Slot {slot} has not been filled ({self.count} of {self.capacity} used)")
		return Variable(self, slot)

	def __iter__(self):
		for slot in range(self.count):
			yield Variable(self, slot)

	def reference_index(self, slot: int, component: int = 0) -> int:
		"""Position in X of one component of one slot."""
		slot = self._check_slot(slot)
		if not 0 <= component < self.dimension:
			raise VariableIndexError(f"Component {component} out of range for dimension {self.dimension}")
		return self.offset + slot * self.dimension + int(component)

	def slot_indices(self, slot: int) -> List[int]:
		start = self.reference_index(slot)
		return list(range(start, start + self.dimension))

	def initial_block(self) -> np.ndarray:
		"""Initial values of the filled slots, flattened in slot order."""
		if not self._initial:
			return np.zeros(0)
		return np.concatenate(self._initial)

	def values(self) -> np.ndarray:
		"""Current values of the filled slots as a (count, dimension) array."""
		if self._solver.is_initialised:
			end = self.offset + self.count * self.dimension
			return self._solver._x[self.offset:end].reshape(self.count, self.dimension).copy()
		return self.initial_block().reshape(self.count, self.dimension)

	def __repr__(self):
		return f"VariableSet(dimension={self.dimension}, count={self.count}/{self.capacity}, offset={self.offset})"


class Variable(_VariableView):
	"""
	Handle on one slot of a VariableSet.

	Indexing reads and writes the live value in X once the solver is
	initialised, and the staged initial value before that.
	"""
	def __init__(self, variable_set: VariableSet, slot: int):
		self.variable_set = variable_set
		self.slot = int(slot)
		self.dimension = variable_set.dimension
		self.offset = variable_set.offset + self.slot * self.dimension

	def reference_index(self, index: int) -> int:
		return self.offset + self._check_component(index)

	def __getitem__(self, index: int) -> float:
		index = self._check_component(index)
		solver = self.variable_set._solver
		if solver.is_initialised:
			return float(solver._x[self.offset + index])
		return float(self.variable_set._initial[self.slot][index])

	def __setitem__(self, index: int, value: float):
		index = self._check_component(index)
		solver = self.variable_set._solver
		if solver.is_initialised:
			solver._x[self.offset + index] = float(value)
		else:
			self.variable_set._initial[self.slot][index] = float(value)

	def __eq__(self, other):
		if not isinstance(other, Variable):
			return NotImplemented
		return self.variable_set is other.variable_set and self.slot == other.slot

	def __hash__(self):
		return hash((id(self.variable_set), self.slot))

	def __repr__(self):
		return f"Variable(offset={self.offset}, dimension={self.dimension})"


class SubVariable(_VariableView):
	"""
	Reindexed view over selected components of a Variable (or of another SubVariable).

	Component i of the view is component `indices[i]` of the parent. Indices
	are validated on construction; reads and writes pass straight through.
	"""
	def __init__(self, parent, indices: Sequence[int]):
		if not isinstance(parent, _VariableView):
			raise TypeError(f"SubVariable parent must be a Variable or SubVariable, got {type(parent).__name__}")
		indices = [int(i) for i in indices]
		if not indices:
			raise ValueError("A SubVariable needs at least one index")
		for i in indices:
			if not 0 <= i < parent.dimension:
				raise VariableIndexError(f"Index {i} outside [0, {parent.dimension}) of the parent variable")
		if len(set(indices)) != len(indices):
			raise ValueError(f"Duplicate indices in SubVariable selection {indices}")

		self.parent = parent
		self.indices = tuple(indices)
		self.dimension = len(indices)

	@classmethod
	def from_range(cls, parent, start: int, count: int) -> "SubVariable":
		"""View over `count` consecutive components of the parent starting at `start`."""
		return cls(parent, range(start, start + count))

	def reference_index(self, index: int) -> int:
		return self.parent.reference_index(self.indices[self._check_component(index)])

	def __getitem__(self, index: int) -> float:
		return self.parent[self.indices[self._check_component(index)]]

	def __setitem__(self, index: int, value: float):
		self.parent[self.indices[self._check_component(index)]] = value

	def __repr__(self):
		return f"SubVariable(indices={list(self.indices)}, parent={self.parent!r})"
