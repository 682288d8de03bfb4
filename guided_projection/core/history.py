import os
import datetime
from typing import Dict, Optional

import h5py
import numpy as np

from ..logging_config import get_logger


class IterationHistory:
	"""
	Per-iteration record of a guided projection run.

	Norms are kept for every iteration. With `keep_states` the state vector X
	is also kept every `stride`-th iteration (first and last always kept when
	exported); otherwise only the latest X is held.
	"""
	def __init__(self, stride: int = 1, logger=None, keep_states: bool = True):
		self.logger = logger or get_logger(__name__)
		self.stride = max(1, int(stride))
		self.keep_states = keep_states
		self.log = {'iterations': [], 'residual_norm': [], 'energy_norm': [], 'step_norm': [], 'step_scale': []}
		self.states: Dict[int, np.ndarray] = {}
		self._last_x = None

	def __len__(self):
		return len(self.log['iterations'])

	def record(self, k: int, residual_norm: float, energy_norm: float, step_norm: float, x: np.ndarray,
			   step_scale: float = 1.0):
		self.log['iterations'].append(int(k))
		self.log['residual_norm'].append(float(residual_norm))
		self.log['energy_norm'].append(float(energy_norm))
		self.log['step_norm'].append(float(step_norm))
		self.log['step_scale'].append(float(step_scale))
		if self.keep_states and k % self.stride == 0:
			self.states[int(k)] = np.array(x, dtype=float)
		self._last_x = np.array(x, dtype=float)

	def _append_summary_line(self, fh, k: int, residual: float, energy: float, step: float, scale: float):
		# Columns: ITER RESIDUAL ENERGY STEP SCALE
		fh.write(f"{k} {residual:.16e} {energy:.16e} {step:.16e} {scale:.16e}\n")

	def save(self, results_dir: str, run_name: Optional[str] = None, attrs: Optional[dict] = None):
		"""
		Write `<run_name>_summary.out` and `<run_name>_internal_data.hdf5` to results_dir.

		Returns the (summary, hdf5) file paths.
		"""
		if run_name is None:
			run_name = f"gp_{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}"
		os.makedirs(results_dir, exist_ok=True)
		summary_filename = os.path.join(results_dir, f"{run_name}_summary.out")
		internal_data_filename = os.path.join(results_dir, f"{run_name}_internal_data.hdf5")

		states = dict(self.states)
		if len(self) > 0:
			states.setdefault(self.log['iterations'][-1], self._last_x)

		with open(summary_filename, 'w') as summary_fh, h5py.File(internal_data_filename, 'w') as h5f:
			h5f.attrs['solver'] = 'guided_projection'
			h5f.attrs['iteration_count'] = len(self)
			for key, value in (attrs or {}).items():
				if value is not None:
					h5f.attrs[key] = value

			summary_fh.write("ITER RESIDUAL ENERGY STEP SCALE\n")
			for i, k in enumerate(self.log['iterations']):
				grp = h5f.create_group(f'iter_{k}')
				grp.create_dataset('residual_norm', data=self.log['residual_norm'][i])
				grp.create_dataset('energy_norm', data=self.log['energy_norm'][i])
				grp.create_dataset('step_norm', data=self.log['step_norm'][i])
				grp.create_dataset('step_scale', data=self.log['step_scale'][i])
				if k in states:
					grp.create_dataset('x', data=states[k])
				self._append_summary_line(summary_fh, k, self.log['residual_norm'][i], self.log['energy_norm'][i],
										  self.log['step_norm'][i], self.log['step_scale'][i])

		self.logger.info(f"  Summary saved to: {summary_filename}")
		self.logger.info(f"  Iteration data saved to: {internal_data_filename}")
		return summary_filename, internal_data_filename


def load_history(path: str) -> dict:
	"""
	Read an exported history back as {'attrs', 'iterations', 'residual_norm',
	'energy_norm', 'step_norm', 'x'} with 'x' mapping iteration -> state.
	"""
	with h5py.File(path, 'r') as h5f:
		attrs = {k: v for k, v in h5f.attrs.items()}
		keys = sorted((k for k in h5f.keys() if k.startswith('iter_')), key=lambda s: int(s.split('_')[1]))
		result = {'attrs': attrs, 'iterations': [], 'residual_norm': [], 'energy_norm': [], 'step_norm': [], 'x': {}}
		for key in keys:
			k = int(key.split('_')[1])
			grp = h5f[key]
			result['iterations'].append(k)
			result['residual_norm'].append(float(grp['residual_norm'][()]))
			result['energy_norm'].append(float(grp['energy_norm'][()]))
			result['step_norm'].append(float(grp['step_norm'][()]))
			if 'x' in grp:
				result['x'][k] = grp['x'][()]
	return result
