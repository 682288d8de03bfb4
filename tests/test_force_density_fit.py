"""
Smoke test of the force-density example network.
"""

import logging
import sys

import numpy as np
import pytest
import yaml

from guided_projection import GuidedProjectionAlgorithm
from examples.force_density_fit import BARS, LOAD, POINTS, build_problem, equilibrium_residuals, main


def test_force_densities_balance_the_load():
    solver = GuidedProjectionAlgorithm(epsilon=1e-6, max_iteration=200, tolerance=1e-10)
    force_densities = build_problem(solver, POINTS, BARS, LOAD)
    assert solver.energy_count == 3
    assert solver.constraint_count == len(BARS)

    solver.initialise_x()
    initial_energy = solver.energy_norm()
    solver.solve()

    q = force_densities.values().ravel()
    assert solver.residual_norm() < 1e-6
    assert np.all(q <= 1e-6)
    assert solver.energy_norm() < 1e-2 * initial_energy

    residuals = equilibrium_residuals(POINTS, BARS, q, LOAD)
    assert list(residuals) == [3]
    assert np.linalg.norm(residuals[3]) == pytest.approx(solver.energy_norm(), abs=1e-9)


def test_main_reads_parameters_through_config(tmp_path, monkeypatch):
    params = tmp_path / 'params.yaml'
    params.write_text("max_iteration: 300\nepsilon: 1.0e-6\n")
    output_dir = tmp_path / 'out'
    monkeypatch.setattr(sys, 'argv', ['force_density_fit.py', '--input', str(params),
                                      '--output-dir', str(output_dir), '--log-level', 'WARNING'])

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        main()
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    run_dirs = list(output_dir.glob('fdfit_*'))
    assert len(run_dirs) == 1
    meta = yaml.safe_load((run_dirs[0] / 'metadata.yaml').read_text())
    assert meta['input_parameters']['max_iteration'] == 300
    assert meta['input_parameters']['epsilon'] == 1e-6
    assert meta['input_parameters']['run_name'] == 'fdfit'
    assert (run_dirs[0] / 'force_densities.h5').exists()
    assert (run_dirs[0] / 'fdfit_internal_data.hdf5').exists()
