import yaml

from .logging_config import get_logger


class Config:
	"""Configuration parameters for the guided projection solver."""
	def __init__(self, params=None):
		# Solver parameters
		self.epsilon = 1e-4         # Tikhonov regularization weight
		self.max_iteration = 10     # Iteration budget of solve()
		self.tolerance = 1e-8       # Residual norm regarded as converged

		# Damped step policy
		self.damping_rho = 0.5          # Step reduction factor
		self.damping_max_halvings = 30  # Backtracking attempts before giving up

		# Assembly parameters
		self.clean_tolerance = 0.0  # Drop assembled entries below this magnitude (0 disables)

		# Logging parameters
		self.log_frequency = 1

		# History / artifact parameters
		self.history_stride = 1     # store every k-th iterate of X
		self.results_dir = None
		self.run_name = None

		if params:
			logger = get_logger(__name__)
			logger.info("Overriding default parameters with:")
			for k, v in params.items():
				if hasattr(self, k):
					old_value = getattr(self, k)
					# Ensure numeric parameters are properly typed
					if isinstance(old_value, bool) and v is not None:
						v = bool(v)
					elif isinstance(old_value, float) and v is not None:
						v = float(v)
					elif isinstance(old_value, int) and v is not None:
						v = int(v)
					setattr(self, k, v)
					logger.info(f"  {k}: {old_value} -> {v}")
				else:
					logger.warning(f"  Unknown parameter '{k}' with value {v}")

	@classmethod
	def from_yaml(cls, path, defaults=None):
		"""
		Build a configuration from a YAML mapping of parameter overrides.

		`defaults` are applied first, so values in the file take precedence.
		"""
		with open(path, 'r') as f:
			loaded = yaml.safe_load(f) or {}
		if not isinstance(loaded, dict):
			raise ValueError(f"Expected a mapping of parameters in {path}, got {type(loaded).__name__}")
		params = dict(defaults or {})
		params.update(loaded)
		return cls(params)

	def get_solver_parameters(self):
		"""Get the parameters the solver reads at construction."""
		return {
			'epsilon': self.epsilon,
			'max_iteration': self.max_iteration,
			'tolerance': self.tolerance,
		}
