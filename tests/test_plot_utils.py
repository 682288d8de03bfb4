"""
Tests for the convergence and sparsity plots (Agg backend, see conftest).
"""

import os

import matplotlib.pyplot as plt

from guided_projection import GuidedProjectionAlgorithm
from guided_projection.core.constraint_types import VectorLength
from guided_projection.plot_utils import plot_convergence, plot_sparsity, save_solver_plots


def solved_problem():
    solver = GuidedProjectionAlgorithm(epsilon=1e-4, max_iteration=5)
    v = solver.add_variable(8.0, 3.0, 0.0)
    solver.add_constraint(VectorLength(5.5, 3), [v])
    solver.solve()
    return solver


def test_plot_convergence_draws_every_series():
    solver = solved_problem()
    fig, ax = plot_convergence(solver.history)
    assert len(ax.get_lines()) == 3
    assert ax.get_yscale() == 'log'
    plt.close(fig)


def test_plot_sparsity_accepts_compressed_matrices():
    solver = solved_problem()
    lhs, _ = solver.global_system()
    fig, ax = plot_sparsity(lhs)
    assert "nnz" in ax.get_title()
    plt.close(fig)


def test_save_solver_plots(tmp_path):
    solver = solved_problem()
    written = save_solver_plots(solver, output_dir=str(tmp_path), prefix="unit")
    assert [os.path.basename(p) for p in written] == ["unit_convergence.png", "unit_sparsity.png"]
    for path in written:
        assert os.path.exists(path)
