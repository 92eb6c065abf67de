"""Flat parameter vector <-> (force densities, variable anchors).

``theta`` is ``q`` (one entry per edge) followed by the variable anchor
positions flattened row-major, three coordinates per anchor.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from geometry.problem import OptimizationState, Problem


def pack_parameters(problem: Problem, state: OptimizationState) -> np.ndarray:
    """Pack ``q`` and the variable anchor positions into a single ``theta``."""
    ne = problem.topology.num_edges
    nvar = problem.anchors.num_variable
    q = np.asarray(state.force_densities, dtype=float).reshape(-1)
    if q.size != ne:
        raise ValueError(f"expected {ne} force densities, got {q.size}")
    anchors = np.asarray(state.variable_anchor_positions, dtype=float).reshape(-1, 3)
    if anchors.shape[0] != nvar:
        raise ValueError(f"expected {nvar} variable anchors, got {anchors.shape[0]}")
    return np.concatenate([q, anchors.reshape(-1)])


def unpack_parameters(problem: Problem, theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split ``theta`` into ``q`` and an ``(nvar, 3)`` anchor matrix."""
    ne = problem.topology.num_edges
    nvar = problem.anchors.num_variable
    theta = np.asarray(theta, dtype=float).reshape(-1)
    if theta.size != ne + 3 * nvar:
        raise ValueError(
            f"theta has {theta.size} entries; expected {ne + 3 * nvar}"
        )
    q = theta[:ne].copy()
    anchors = theta[ne:].reshape(nvar, 3).copy()
    return q, anchors


def parameter_bounds(problem: Problem) -> Tuple[np.ndarray, np.ndarray]:
    """Lower/upper bound vectors aligned with ``pack_parameters``."""
    nvar = problem.anchors.num_variable
    lb = np.concatenate([problem.bounds.lower, np.full(3 * nvar, -np.inf)])
    ub = np.concatenate([problem.bounds.upper, np.full(3 * nvar, np.inf)])
    return lb, ub


def finite_indices(v: np.ndarray) -> np.ndarray:
    return np.flatnonzero(np.isfinite(v))


def project_to_bounds(theta: np.ndarray, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    """Clip ``theta`` into the box; infinite bounds leave entries untouched."""
    return np.minimum(np.maximum(np.asarray(theta, dtype=float), lb), ub)


def projected_gradient(
    theta: np.ndarray, grad: np.ndarray, lb: np.ndarray, ub: np.ndarray
) -> np.ndarray:
    """Gradient with components that would leave an active bound zeroed.

    Equals ``P(theta - g) - theta`` up to sign, the usual stationarity
    measure for box-constrained problems.
    """
    step = project_to_bounds(theta - grad, lb, ub)
    return theta - step
