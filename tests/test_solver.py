"""
Tests for the guided projection iteration engine.
"""

import logging
import os

import numpy as np
import pytest
from numpy.testing import assert_allclose

from guided_projection import Config, GuidedProjectionAlgorithm
from guided_projection.core import LinearisedConstraintType, load_history
from guided_projection.core.constraint_types import LowerBound, SegmentLength, VectorLength
from guided_projection.core.energy_types import ScalarEquality
from guided_projection.errors import (
    DimensionMismatchError,
    SequencingError,
    SingularSystemError,
    VariableIndexError,
)
from guided_projection.linalg import SparseVector


def length_problem(start=(8.0, 3.0, 0.0), length=5.5, **kwargs):
    solver = GuidedProjectionAlgorithm(**kwargs)
    v = solver.add_variable(*start)
    solver.add_constraint(VectorLength(length, len(start)), [v])
    return solver, v


class CubeRoot(LinearisedConstraintType):
    """x^3 = value, linearised around the current x before every iteration."""
    def __init__(self, value):
        super().__init__(1)
        self.value = value
        self.seen = []

    def update_local(self, x_reduced):
        x0 = float(x_reduced[0])
        self.seen.append(x0)
        self.local_linear = SparseVector(1, [0], [3.0 * x0 ** 2])
        self.local_constant = -2.0 * x0 ** 3 - self.value


def test_construction_from_config():
    solver = GuidedProjectionAlgorithm(config=Config({'epsilon': 1e-6, 'max_iteration': 7}))
    assert solver.epsilon == 1e-6
    assert solver.max_iteration == 7
    solver = GuidedProjectionAlgorithm(epsilon=1e-3, config=Config({'epsilon': 1e-6}))
    assert solver.epsilon == 1e-3
    with pytest.raises(ValueError):
        GuidedProjectionAlgorithm(epsilon=-1.0)


def test_sequencing_errors():
    solver = GuidedProjectionAlgorithm()
    with pytest.raises(SequencingError):
        solver.initialise_x()

    v = solver.add_variable(1.0, 1.0)
    with pytest.raises(SequencingError):
        solver.run_iteration(False)
    solver.initialise_x()
    with pytest.raises(SequencingError):
        solver.initialise_x()
    with pytest.raises(SequencingError):
        solver.add_constraint(VectorLength(1.0, 2), [v])
    with pytest.raises(SequencingError):
        solver.add_energy(ScalarEquality(1.0), [v])
    with pytest.raises(SequencingError):
        solver.run_iteration(False)
    with pytest.raises(SequencingError):
        solver.global_system()


def test_binding_errors():
    solver = GuidedProjectionAlgorithm()
    v = solver.add_variable(1.0, 2.0)
    pool = solver.add_variable_set(1, 2)
    pool.add_variable(0.5)

    with pytest.raises(DimensionMismatchError):
        solver.add_constraint(VectorLength(1.0, 3), [v])
    with pytest.raises(VariableIndexError):
        solver.add_energy(ScalarEquality(1.0), [(pool, 2)])
    with pytest.raises(TypeError):
        solver.add_energy(ScalarEquality(1.0), [0])
    with pytest.raises(ValueError):
        solver.add_energy(ScalarEquality(1.0), [v], weight=-1.0)

    other = GuidedProjectionAlgorithm().add_variable(1.0)
    with pytest.raises(ValueError):
        solver.add_energy(ScalarEquality(1.0), [other])


def test_unfilled_slot_is_an_index_error():
    solver = GuidedProjectionAlgorithm()
    pool = solver.add_variable_set(1, 2)
    pool.add_variable(1.0)
    solver.add_energy(ScalarEquality(0.0), [(pool, 1)])
    with pytest.raises(VariableIndexError):
        solver.initialise_x()


def test_mixed_bindings_resolve_to_global_indices():
    solver = GuidedProjectionAlgorithm()
    points = solver.add_variable_set(2, 2)
    s = points.add_variable(0.0, 0.0)
    points.add_variable(3.0, 4.0)
    constraint = solver.add_constraint(SegmentLength(2, 5.0), [s, (points, 1)])
    assert constraint.indices.tolist() == [0, 1, 2, 3]
    assert solver.constraint_count == 1


def test_global_state_access():
    solver, v = length_problem()
    solver.initialise_x()
    assert solver[1] == 3.0
    assert_allclose(solver.x, [8.0, 3.0, 0.0])
    solver.x[0] = 100.0
    assert solver[0] == 8.0
    with pytest.raises(VariableIndexError):
        solver[3]


def test_iteration_reduces_residual_and_converges():
    solver, v = length_problem(epsilon=1e-4)
    solver.initialise_x()
    initial = solver.residual_norm()
    solver.run_iteration(False)
    assert solver.residual_norm() < initial
    for _ in range(20):
        solver.run_iteration(False)
    assert solver.iteration == 21
    assert np.linalg.norm(v.to_array()) == pytest.approx(5.5, abs=1e-8)


def test_converged_fixed_point_is_stable():
    solver, v = length_problem(epsilon=1e-4, tolerance=1e-8)
    solver.initialise_x()
    for _ in range(30):
        solver.run_iteration(False)
    assert solver.residual_norm() < solver.tolerance
    converged = solver.x
    for _ in range(5):
        solver.run_iteration(False)
    assert_allclose(solver.x, converged, atol=solver.tolerance)
    assert solver.converged


def test_singular_system_leaves_x_untouched():
    """Without regularisation an unconstrained slack makes the system singular."""
    solver = GuidedProjectionAlgorithm(epsilon=0.0)
    x = solver.add_variable(-3.0)
    slack = solver.add_variable(0.0)
    solver.add_constraint(LowerBound(2.0), [x, slack])
    solver.initialise_x()
    with pytest.raises(SingularSystemError):
        solver.run_iteration(False)
    assert x[0] == -3.0
    assert solver.iteration == 0


def test_regularised_system_is_symmetric():
    solver, v = length_problem(epsilon=1e-3)
    solver.initialise_x()
    solver.run_iteration(False)
    lhs, rhs = solver.global_system()
    array = lhs.to_array()
    assert lhs.shape == (3, 3)
    assert rhs.size == 3
    assert_allclose(array, array.T)
    assert np.all(np.diag(array) >= 1e-3)


def test_weight_functions_are_evaluated_each_iteration(caplog):
    solver = GuidedProjectionAlgorithm(epsilon=1e-4)
    x = solver.add_variable(3.0)
    energy = solver.add_energy(ScalarEquality(1.0), [x], weight=lambda k: 0.0 if k < 2 else 1.0)
    solver.initialise_x()

    with caplog.at_level(logging.WARNING):
        solver.run_iteration(False)
        solver.run_iteration(False)
    assert x[0] == 3.0
    assert "every weight is zero" in caplog.text

    solver.run_iteration(False)
    assert energy.weight == 1.0
    assert x[0] == pytest.approx(1.0, abs=1e-3)


def test_negative_weight_function_rejected():
    solver = GuidedProjectionAlgorithm()
    x = solver.add_variable(3.0)
    solver.add_energy(ScalarEquality(1.0), [x], weight=lambda k: 1.0 - k)
    solver.initialise_x()
    solver.run_iteration(False)
    solver.run_iteration(False)
    with pytest.raises(ValueError):
        solver.run_iteration(False)


def test_damped_steps_never_increase_the_merit():
    solver, v = length_problem(start=(0.1,), length=5.0, epsilon=1e-4)
    solver.initialise_x()
    residuals = [solver.residual_norm()]
    for _ in range(40):
        solver.run_iteration(True)
        residuals.append(solver.residual_norm())
    assert all(b <= a + 1e-12 for a, b in zip(residuals, residuals[1:]))
    assert solver.history.log['step_scale'][1] < 1.0
    assert abs(v[0]) == pytest.approx(5.0, abs=1e-6)


def test_damped_and_full_steps_agree_on_easy_problems():
    full, v_full = length_problem(epsilon=1e-4)
    damped, v_damped = length_problem(epsilon=1e-4)
    full.initialise_x()
    damped.initialise_x()
    for _ in range(25):
        full.run_iteration(False)
        damped.run_iteration(True)
    assert_allclose(v_full.to_array(), v_damped.to_array(), atol=1e-6)


def test_linearised_constraint_is_refreshed_each_iteration():
    solver = GuidedProjectionAlgorithm(epsilon=1e-8)
    x = solver.add_variable(3.0)
    cube_root = CubeRoot(8.0)
    solver.add_constraint(cube_root, [x])
    solver.initialise_x()
    for _ in range(15):
        solver.run_iteration(False)
    assert cube_root.seen[0] == 3.0
    assert len(cube_root.seen) == 15
    assert x[0] == pytest.approx(2.0, abs=1e-6)


def test_solve_stops_early_and_writes_history(tmp_path):
    config = Config({'max_iteration': 50, 'tolerance': 1e-9, 'results_dir': str(tmp_path), 'run_name': 'unit'})
    solver, v = length_problem(config=config)
    x = solver.solve()

    assert solver.converged
    assert solver.iteration < 50
    assert np.linalg.norm(x) == pytest.approx(5.5, abs=1e-8)

    summary = tmp_path / 'unit_summary.out'
    data = tmp_path / 'unit_internal_data.hdf5'
    assert summary.exists() and data.exists()
    lines = summary.read_text().splitlines()
    assert lines[0].startswith("ITER")
    assert len(lines) == solver.iteration + 2

    history = load_history(str(data))
    assert history['iterations'] == list(range(solver.iteration + 1))
    assert history['attrs']['component_count'] == 3
    assert_allclose(history['x'][solver.iteration], x)
    assert history['residual_norm'][-1] <= 1e-9


def test_history_stride(tmp_path):
    config = Config({'max_iteration': 7, 'tolerance': 0.0, 'history_stride': 3,
                     'results_dir': str(tmp_path), 'run_name': 'stride'})
    solver, v = length_problem(start=(0.1,), length=5.0, config=config)
    solver.solve()
    assert solver.iteration == 7
    history = load_history(os.path.join(str(tmp_path), 'stride_internal_data.hdf5'))
    assert sorted(history['x']) == [0, 3, 6, 7]


def test_states_are_not_kept_without_results_dir():
    solver = GuidedProjectionAlgorithm(epsilon=1e-4)
    values = solver.add_variable_set(1, 1000)
    for i in range(1000):
        values.add_variable(float(i))
    solver.add_energy(ScalarEquality(1.0), [values[0]])
    solver.initialise_x()
    for _ in range(50):
        solver.run_iteration(False)

    assert len(solver.history) == 51
    assert solver.history.states == {}
    assert_allclose(solver.history._last_x, solver.x)


def test_failing_weight_leaves_registrations_untouched():
    solver = GuidedProjectionAlgorithm(epsilon=1e-8)
    x = solver.add_variable(3.0)
    cube_root = CubeRoot(8.0)
    constraint = solver.add_constraint(cube_root, [x], weight=lambda k: 2.0 if k == 0 else -1.0)
    solver.initialise_x()
    solver.run_iteration(False)
    after_first = x[0]

    with pytest.raises(ValueError):
        solver.run_iteration(False)
    assert cube_root.seen == [3.0]
    assert constraint.weight == 2.0
    assert x[0] == after_first
