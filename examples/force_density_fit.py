#!/usr/bin/env python3
"""
Force-density fit of a small pin-jointed network with guided projection.

The geometry is fixed; the force densities of the bars are the variables.
Every free node contributes one NodeEquilibrium energy per axis, and every
force density is kept below an upper bound (compression only by default).
"""

import os
import sys
import argparse
import datetime
import getpass
import platform
import socket

import numpy as np
import h5py
import yaml

# Add the repository root to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from guided_projection import Config, GuidedProjectionAlgorithm, setup_logging, get_logger
from guided_projection.core import constraint_types, energy_types
from guided_projection.plot_utils import save_solver_plots

# Four bars meeting at a raised node above four supports
POINTS = np.array([
    [40.18845, 37.668301, 0.0],
    [21.769007, 34.606365, 0.0],
    [29.82111, 57.56171, 0.0],
    [25.025793, 45.277184, 11.96329],
    [4.629511, 52.466801, 0.0],
])
BARS = [(0, 3), (1, 3), (2, 3), (3, 4)]
LOAD = np.array([0.0, 0.0, -1.0])


def build_problem(solver, points, bars, load, q_init=-1.0, upper_bound=0.0):
    """
    Register force-density variables, slack variables, equilibrium energies and
    upper-bound constraints. Returns the force-density VariableSet.

    Supports are the nodes lying on z = 0.
    """
    logger = get_logger(__name__)
    bar_count = len(bars)
    is_support = points[:, 2] == 0.0

    force_densities = solver.add_variable_set(1, bar_count)
    for _ in range(bar_count):
        force_densities.add_variable(q_init)

    # q = bound - slack^2, so the slack starts where the bound is satisfied
    slacks = solver.add_variable_set(1, bar_count)
    for _ in range(bar_count):
        slacks.add_variable(np.sqrt(max(upper_bound - q_init, 0.0)))

    for node, point in enumerate(points):
        if is_support[node]:
            continue
        adjacent, bar_indices = [], []
        for b, (start, end) in enumerate(bars):
            if start == node:
                adjacent.append(end)
                bar_indices.append(b)
            elif end == node:
                adjacent.append(start)
                bar_indices.append(b)
        if not adjacent:
            logger.warning(f"Free node {node} has no bars, skipping")
            continue
        for axis in range(3):
            energy = energy_types.NodeEquilibrium(point[axis], points[adjacent, axis], load[axis])
            solver.add_energy(energy, [(force_densities, b) for b in bar_indices])

    for b in range(bar_count):
        solver.add_constraint(constraint_types.UpperBound(upper_bound), [force_densities[b], slacks[b]])

    logger.info(f"Registered {solver.energy_count} equilibrium energies and {solver.constraint_count} bound constraints")
    return force_densities


def equilibrium_residuals(points, bars, q, load):
    """Out-of-balance force at every free node."""
    residuals = {}
    for node, point in enumerate(points):
        if point[2] == 0.0:
            continue
        force = np.zeros(3)
        for b, (start, end) in enumerate(bars):
            if node in (start, end):
                other = end if start == node else start
                force += q[b] * (point - points[other])
        residuals[node] = force - load
    return residuals


def main():
    parser = argparse.ArgumentParser(description='Force-density fit with guided projection')
    parser.add_argument('--input', type=str, help='Path to input YAML file with solver parameters')
    parser.add_argument('--output-dir', type=str, default='results', help='Directory for solution files')
    parser.add_argument('--upper-bound', type=float, default=0.0, help='Upper bound on every force density')
    parser.add_argument('--damped', action='store_true', help='Use damped steps')
    parser.add_argument('--plots', action='store_true', help='Save convergence and sparsity plots')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level')
    args = parser.parse_args()

    setup_logging(log_level=args.log_level, log_to_console=True, log_to_file=False)
    logger = get_logger(__name__)

    timestamp = datetime.datetime.now().strftime('%Y%m%d_%H%M%S')
    outdir = os.path.join(args.output_dir, f"fdfit_{timestamp}")
    os.makedirs(outdir, exist_ok=True)

    defaults = {'max_iteration': 50, 'tolerance': 1e-10, 'results_dir': outdir, 'run_name': 'fdfit'}
    if args.input:
        logger.info(f"Loading parameters from {args.input}")
        config = Config.from_yaml(args.input, defaults=defaults)
    else:
        config = Config(defaults)

    solver = GuidedProjectionAlgorithm(config=config)
    force_densities = build_problem(solver, POINTS, BARS, LOAD, upper_bound=args.upper_bound)
    solver.initialise_x()
    logger.info(f"Initial force densities: {force_densities.values().ravel()}")

    solver.solve(damped=args.damped)

    q = force_densities.values().ravel()
    residuals = equilibrium_residuals(POINTS, BARS, q, LOAD)
    for b, value in enumerate(q):
        logger.info(f"  bar {BARS[b]}: q = {value:.6f}")
    for node, residual in residuals.items():
        logger.info(f"  node {node}: out-of-balance force {np.linalg.norm(residual):.3e}")

    solution_path = os.path.join(outdir, 'force_densities.h5')
    with h5py.File(solution_path, 'w') as f:
        f.create_dataset('q', data=q)
        f.create_dataset('points', data=POINTS)
        f.create_dataset('bars', data=np.array(BARS), dtype='i4')
        f.create_dataset('load', data=LOAD)
        f.attrs['upper_bound'] = args.upper_bound
        f.attrs['iterations'] = solver.iteration
    logger.info(f"Solution file saved: {solution_path}")

    if args.plots:
        save_solver_plots(solver, output_dir=outdir, prefix='fdfit')

    meta = {
        'input_parameters': dict(vars(config)),
        'upper_bound': args.upper_bound,
        'damped': args.damped,
        'iterations': int(solver.iteration),
        'residual_norm': float(solver.residual_norm()),
        'energy_norm': float(solver.energy_norm()),
        'converged': bool(solver.converged),
        'force_densities': [float(v) for v in q],
        'datetime': timestamp,
        'user': getpass.getuser(),
        'hostname': socket.gethostname(),
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'solution_path': solution_path,
    }
    with open(os.path.join(outdir, 'metadata.yaml'), 'w') as f:
        yaml.dump(meta, f)

    print(f"Results saved in: {outdir}")


if __name__ == "__main__":
    main()
