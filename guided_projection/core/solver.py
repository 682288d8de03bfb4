import numpy as np
from typing import List, Optional, Sequence, Tuple

from .history import IterationHistory
from .types import ConstraintType, EnergyType, LinearisedConstraintType
from .variables import SubVariable, Variable, VariableSet, _VariableView
from ..config import Config
from ..errors import DimensionMismatchError, SequencingError, SingularSystemError, VariableIndexError
from ..linalg import CompressedColumn, DenseVector, DictionaryOfKeys
from ..logging_config import get_logger, log_performance


class _Registration:
	"""Item bound to global indices of X with a fixed or iteration-dependent weight."""
	def __init__(self, indices: List[int], weight, pending: List[Tuple[VariableSet, int]]):
		self.indices = np.asarray(indices, dtype=np.int64)
		self.pending = pending
		if callable(weight):
			self.weight_function = weight
			self.weight = self._checked(weight(0))
		else:
			self.weight_function = None
			self.weight = self._checked(weight)

	@staticmethod
	def _checked(weight) -> float:
		weight = float(weight)
		if not np.isfinite(weight) or weight < 0:
			raise ValueError(f"Weights must be finite and non-negative, got {weight}")
		return weight

	def weight_at(self, iteration: int) -> float:
		"""Checked weight for the given iteration, without storing it."""
		if self.weight_function is None:
			return self.weight
		return self._checked(self.weight_function(iteration))


class Constraint(_Registration):
	"""A ConstraintType registered with the solver."""
	def __init__(self, constraint_type: ConstraintType, indices, weight, pending):
		super().__init__(indices, weight, pending)
		self.constraint_type = constraint_type


class Energy(_Registration):
	"""An EnergyType registered with the solver."""
	def __init__(self, energy_type: EnergyType, indices, weight, pending):
		super().__init__(indices, weight, pending)
		self.energy_type = energy_type


class GuidedProjectionAlgorithm:
	"""
	Guided projection solver over a flat state vector X.

	Problems are set up by reserving variables, then registering constraints
	and energies over them. `initialise_x` copies the initial values into X and
	closes registration. Each `run_iteration` linearises every registered item
	at the current X and solves the regularised least-squares system

		(J^T W J + K^T W K + epsilon I) delta = -J^T W C(x) - K^T W (K x - S)

	for the step delta, where J stacks the constraint gradients. X is updated
	in place once the step is known, so a failed iteration leaves X untouched.
	"""
	def __init__(self, epsilon: Optional[float] = None, max_iteration: Optional[int] = None,
				 tolerance: Optional[float] = None, config: Optional[Config] = None, logger=None):
		config = config or Config()
		self.logger = logger or get_logger(__name__)

		self.epsilon = float(config.epsilon if epsilon is None else epsilon)
		self.max_iteration = int(config.max_iteration if max_iteration is None else max_iteration)
		self.tolerance = float(config.tolerance if tolerance is None else tolerance)
		if self.epsilon < 0:
			raise ValueError(f"epsilon must be non-negative, got {self.epsilon}")
		if self.max_iteration < 0:
			raise ValueError(f"max_iteration must be non-negative, got {self.max_iteration}")

		self.damping_rho = float(config.damping_rho)
		self.damping_max_halvings = int(config.damping_max_halvings)
		if not 0 < self.damping_rho < 1:
			raise ValueError(f"damping_rho must lie in (0, 1), got {self.damping_rho}")
		self.clean_tolerance = float(config.clean_tolerance)
		self.log_frequency = max(1, int(config.log_frequency))
		self.results_dir = config.results_dir
		self.run_name = config.run_name

		self._variable_sets: List[VariableSet] = []
		self._constraints: List[Constraint] = []
		self._energies: List[Energy] = []
		self._x: Optional[np.ndarray] = None
		self._last_system = None
		self._last_step_norm = None

		self.component_count = 0
		self.iteration = 0
		self.history = IterationHistory(config.history_stride, self.logger, keep_states=self.results_dir is not None)

	# ---------- State ---------- #

	@property
	def is_initialised(self) -> bool:
		return self._x is not None

	@property
	def x(self) -> np.ndarray:
		"""Copy of the state vector X."""
		self._check_initialised("read X")
		return self._x.copy()

	@property
	def constraint_count(self) -> int:
		return len(self._constraints)

	@property
	def energy_count(self) -> int:
		return len(self._energies)

	def __getitem__(self, global_index: int) -> float:
		self._check_initialised("read X")
		global_index = int(global_index)
		if not 0 <= global_index < self.component_count:
			raise VariableIndexError(f"Global index {global_index} outside [0, {self.component_count})")
		return float(self._x[global_index])

	def _check_open(self, action: str):
		if self.is_initialised:
			raise SequencingError(f"Cannot {action} after initialise_x()")

	def _check_initialised(self, action: str):
		if not self.is_initialised:
			raise SequencingError(f"Cannot {action} before initialise_x()")

	# ---------- Variables ---------- #

	def add_variable_set(self, dimension: int, capacity: int) -> VariableSet:
		"""Reserve `capacity` variables of `dimension` components at the end of X."""
		self._check_open("add a variable set")
		variable_set = VariableSet(self, dimension, capacity, self.component_count)
		self._variable_sets.append(variable_set)
		self.component_count += variable_set.size
		self.logger.debug(f"Reserved {variable_set}")
		return variable_set

	def add_variable(self, *components) -> Variable:
		"""Add a stand-alone variable holding the given initial components."""
		self._check_open("add a variable")
		values = np.array(components[0] if len(components) == 1 and np.ndim(components[0]) == 1 else components,
						  dtype=float).ravel()
		return self.add_variable_set(values.shape[0], 1).add_variable(values)

	# ---------- Constraints and energies ---------- #

	def _owning_set(self, view) -> VariableSet:
		while isinstance(view, SubVariable):
			view = view.parent
		return view.variable_set

	def _resolve_bindings(self, bindings, expected: int, name: str):
		"""Map an ordered binding list to global indices of X."""
		if isinstance(bindings, _VariableView):
			bindings = [bindings]
		indices: List[int] = []
		pending: List[Tuple[VariableSet, int]] = []
		for binding in bindings:
			if isinstance(binding, _VariableView):
				if self._owning_set(binding)._solver is not self:
					raise ValueError(f"{binding!r} belongs to another solver")
				indices.extend(binding.global_indices)
			elif isinstance(binding, tuple) and len(binding) == 2 and isinstance(binding[0], VariableSet):
				variable_set, slot = binding
				if variable_set._solver is not self:
					raise ValueError(f"{variable_set!r} belongs to another solver")
				indices.extend(variable_set.slot_indices(slot))
				pending.append((variable_set, int(slot)))
			else:
				raise TypeError(f"Unsupported binding {binding!r}; expected a Variable, SubVariable or (VariableSet, slot)")

		if len(indices) != expected:
			raise DimensionMismatchError(f"{name} expects {expected} local components, bindings provide {len(indices)}")
		return indices, pending

	def add_constraint(self, constraint_type: ConstraintType, bindings: Sequence, weight=1.0) -> Constraint:
		"""
		Register a constraint over the concatenation of the bound variables.

		Parameters:
		-----------
		constraint_type : ConstraintType
			Local quadratic model
		bindings : sequence
			Variables, SubVariables or (VariableSet, slot) pairs, in the order
			of the constraint's local vector
		weight : float or callable
			Non-negative weight, or a function of the iteration returning one
		"""
		self._check_open("register a constraint")
		indices, pending = self._resolve_bindings(bindings, constraint_type.local_dimension, type(constraint_type).__name__)
		constraint = Constraint(constraint_type, indices, weight, pending)
		self._constraints.append(constraint)
		return constraint

	def add_energy(self, energy_type: EnergyType, bindings: Sequence, weight=1.0) -> Energy:
		"""Register an energy; arguments as for `add_constraint`."""
		self._check_open("register an energy")
		indices, pending = self._resolve_bindings(bindings, energy_type.local_dimension, type(energy_type).__name__)
		energy = Energy(energy_type, indices, weight, pending)
		self._energies.append(energy)
		return energy

	# ---------- Solving ---------- #

	def initialise_x(self):
		"""Copy every variable's initial values into X and close registration."""
		self._check_open("initialise X again")
		if self.component_count == 0:
			raise SequencingError("Cannot initialise X without any variables")

		for item in self._constraints + self._energies:
			for variable_set, slot in item.pending:
				if slot >= variable_set.count:
					raise VariableIndexError(
						f"Binding refers to slot {slot} of {variable_set!r}, which was never filled")

		x = np.zeros(self.component_count)
		for variable_set in self._variable_sets:
			block = variable_set.initial_block()
			x[variable_set.offset:variable_set.offset + block.shape[0]] = block
		self._x = x

		self.logger.info(f"Initialised X with {self.component_count} components "
						 f"({len(self._variable_sets)} variable sets, {self.constraint_count} constraints, "
						 f"{self.energy_count} energies)")
		self.history.record(0, self.residual_norm(), self.energy_norm(), 0.0, self._x)

	def _constraint_residuals(self, x: np.ndarray) -> np.ndarray:
		return np.array([c.constraint_type.evaluate(x[c.indices]) for c in self._constraints if c.weight > 0])

	def _energy_residuals(self, x: np.ndarray) -> np.ndarray:
		return np.array([e.energy_type.residual(x[e.indices]) for e in self._energies if e.weight > 0])

	def _weights(self, items) -> np.ndarray:
		return np.array([item.weight for item in items if item.weight > 0])

	def _merit(self, x: np.ndarray) -> float:
		constraint_residuals = self._constraint_residuals(x)
		energy_residuals = self._energy_residuals(x)
		return float(self._weights(self._constraints) @ constraint_residuals ** 2
					 + self._weights(self._energies) @ energy_residuals ** 2)

	def residual_norm(self) -> float:
		"""Euclidean norm of the weighted constraint residuals sqrt(w) C(x)."""
		self._check_initialised("evaluate residuals")
		residuals = self._constraint_residuals(self._x)
		return float(np.sqrt(self._weights(self._constraints) @ residuals ** 2))

	def energy_norm(self) -> float:
		"""Euclidean norm of the weighted energy residuals sqrt(w) (K x - S)."""
		self._check_initialised("evaluate energies")
		residuals = self._energy_residuals(self._x)
		return float(np.sqrt(self._weights(self._energies) @ residuals ** 2))

	@property
	def converged(self) -> bool:
		if not self.is_initialised or self._last_step_norm is None:
			return False
		return self.residual_norm() <= self.tolerance and self._last_step_norm <= self.tolerance

	def _assemble(self, x: np.ndarray) -> Tuple[CompressedColumn, DenseVector]:
		"""Form the regularised normal equations of the linearised problem at x."""
		n = self.component_count

		jacobian = DictionaryOfKeys()
		constraint_rhs = []
		for constraint in self._constraints:
			if constraint.weight == 0:
				continue
			local = x[constraint.indices]
			scale = np.sqrt(constraint.weight)
			row = len(constraint_rhs)
			for column, value in zip(constraint.indices, constraint.constraint_type.gradient(local)):
				if value != 0:
					jacobian.add(scale * value, row, column)
			constraint_rhs.append(-scale * constraint.constraint_type.evaluate(local))

		linear = DictionaryOfKeys()
		energy_rhs = []
		for energy in self._energies:
			if energy.weight == 0:
				continue
			local = x[energy.indices]
			scale = np.sqrt(energy.weight)
			row = len(energy_rhs)
			for local_index, value in energy.energy_type.local_vector.non_zeros():
				linear.add(scale * value, row, energy.indices[local_index])
			energy_rhs.append(-scale * energy.energy_type.residual(local))

		H = CompressedColumn.from_dok(jacobian, len(constraint_rhs), n)
		K = CompressedColumn.from_dok(linear, len(energy_rhs), n)
		if self.clean_tolerance > 0:
			H.clean(self.clean_tolerance)
			K.clean(self.clean_tolerance)

		lhs = H.transpose_multiply_self() + K.transpose_multiply_self() + CompressedColumn.identity(n) * self.epsilon
		rhs = H.transpose_multiply(DenseVector(constraint_rhs)) + K.transpose_multiply(DenseVector(energy_rhs))
		if self.clean_tolerance > 0:
			lhs.clean(self.clean_tolerance)
		return lhs, rhs

	def _damped_scale(self, delta: np.ndarray) -> float:
		"""Backtrack the step until the weighted merit does not increase."""
		base = self._merit(self._x)
		scale = 1.0
		for _ in range(self.damping_max_halvings):
			if self._merit(self._x + scale * delta) <= base:
				return scale
			scale *= self.damping_rho
		self.logger.warning(f"Iteration {self.iteration}: no decreasing step after "
							f"{self.damping_max_halvings} halvings, applying scale {scale:.3e}")
		return scale

	def run_iteration(self, damped: bool = False) -> float:
		"""
		Linearise, assemble, solve and apply one step to X.

		With `damped` the step is shortened by `damping_rho` until the weighted
		merit sum(w C^2) + sum(w (K x - S)^2) does not increase. Returns the norm
		of the applied step.
		"""
		self._check_initialised("run an iteration")
		if not self._constraints and not self._energies:
			raise SequencingError("Cannot run an iteration without any constraint or energy")

		# Every weight is checked before any registration is modified
		items = self._constraints + self._energies
		weights = [item.weight_at(self.iteration) for item in items]
		for constraint in self._constraints:
			if isinstance(constraint.constraint_type, LinearisedConstraintType):
				constraint.constraint_type.update_local(self._x[constraint.indices])
		for item, weight in zip(items, weights):
			item.weight = weight

		scale = 1.0
		if not any(item.weight > 0 for item in items):
			self.logger.warning(f"Iteration {self.iteration}: every weight is zero, X is left unchanged")
			delta = np.zeros(self.component_count)
		else:
			lhs, rhs = self._assemble(self._x)
			self._last_system = (lhs, rhs)
			try:
				delta = lhs.solve_positive_definite(rhs).to_array()
			except SingularSystemError as e:
				self.logger.error(f"Iteration {self.iteration}: {e}")
				raise
			if damped:
				scale = self._damped_scale(delta)

		step = scale * delta
		self._x += step
		self.iteration += 1
		self._last_step_norm = float(np.linalg.norm(step))

		residual = self.residual_norm()
		energy = self.energy_norm()
		self.history.record(self.iteration, residual, energy, self._last_step_norm, self._x, scale)
		message = (f"Iteration {self.iteration}: residual={residual:.6e}, energy={energy:.6e}, "
				   f"step={self._last_step_norm:.6e}")
		if self.iteration % self.log_frequency == 0:
			self.logger.info(message)
		else:
			self.logger.debug(message)
		return self._last_step_norm

	@log_performance("guided projection solve")
	def solve(self, damped: bool = False) -> np.ndarray:
		"""
		Run up to `max_iteration` iterations, stopping once both the residual
		norm and the step norm are within the tolerance.

		Initialises X first when needed. Writes the iteration history when
		`results_dir` is configured. Returns a copy of X.
		"""
		if not self.is_initialised:
			self.initialise_x()

		for _ in range(self.max_iteration):
			step_norm = self.run_iteration(damped)
			if self.residual_norm() <= self.tolerance and step_norm <= self.tolerance:
				break

		if self.converged:
			self.logger.info(f"Converged after {self.iteration} iterations (residual {self.residual_norm():.3e})")
		else:
			self.logger.info(f"Stopped after {self.iteration} iterations (residual {self.residual_norm():.3e})")

		if self.results_dir is not None:
			self.history.save(self.results_dir, self.run_name, attrs={
				'epsilon': self.epsilon,
				'max_iteration': self.max_iteration,
				'tolerance': self.tolerance,
				'component_count': self.component_count,
				'constraint_count': self.constraint_count,
				'energy_count': self.energy_count,
				'converged': self.converged,
			})
		return self.x

	def global_system(self) -> Tuple[CompressedColumn, DenseVector]:
		"""The (lhs, rhs) pair assembled by the last iteration."""
		if self._last_system is None:
			raise SequencingError("No system has been assembled yet")
		return self._last_system
