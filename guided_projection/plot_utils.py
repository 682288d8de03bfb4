import os

import numpy as np
import matplotlib.pyplot as plt

from .logging_config import get_logger

logger = get_logger(__name__)


def plot_convergence(history, figsize=(10, 6), title="Guided Projection Convergence"):
    """
    Plot residual, energy and step norms per iteration on a log scale.

    Parameters:
    -----------
    history : IterationHistory or dict
        Recorded run, or the dict returned by `load_history`
    figsize : tuple
        Figure size
    title : str
        Plot title
    """
    log = history.log if hasattr(history, 'log') else history
    iterations = np.asarray(log['iterations'])

    fig, ax = plt.subplots(figsize=figsize)

    # Zero norms cannot be drawn on a log axis
    floor = np.finfo(float).tiny
    for key, label, style in (('residual_norm', 'Constraint residual', 'b-o'),
                              ('energy_norm', 'Energy residual', 'g-s'),
                              ('step_norm', 'Step', 'r--')):
        values = np.maximum(np.asarray(log[key], dtype=float), floor)
        ax.semilogy(iterations, values, style, markersize=3, label=label)

    ax.set_title(title)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Norm')
    ax.grid(True, alpha=0.3)
    ax.legend()

    plt.tight_layout()
    return fig, ax


def plot_sparsity(matrix, figsize=(6, 6), title="Global System"):
    """
    Spy plot of a sparse matrix.

    Parameters:
    -----------
    matrix : CompressedMatrix or scipy.sparse matrix
        Matrix to draw, typically the left-hand side from `global_system()`
    """
    scipy_matrix = matrix.to_scipy() if hasattr(matrix, 'to_scipy') else matrix

    fig, ax = plt.subplots(figsize=figsize)
    ax.spy(scipy_matrix, markersize=max(1, 200 // max(1, scipy_matrix.shape[0])))
    ax.set_title(f'{title}\nShape: {scipy_matrix.shape}, nnz: {scipy_matrix.nnz}')
    ax.set_xlabel('Column index')
    ax.set_ylabel('Row index')

    plt.tight_layout()
    return fig, ax


def save_solver_plots(solver, output_dir="visualizations", prefix="guided_projection"):
    """
    Save the convergence plot and, when a system has been assembled, its
    sparsity plot. Returns the list of written files.
    """
    os.makedirs(output_dir, exist_ok=True)
    written = []

    fig, ax = plot_convergence(solver.history)
    path = os.path.join(output_dir, f"{prefix}_convergence.png")
    fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    written.append(path)

    if solver._last_system is not None:
        lhs, _ = solver.global_system()
        fig, ax = plot_sparsity(lhs)
        path = os.path.join(output_dir, f"{prefix}_sparsity.png")
        fig.savefig(path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        written.append(path)

    logger.info(f"Plots saved to {output_dir}/")
    return written
