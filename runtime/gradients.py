# runtime/gradients.py
"""Loss and exact gradient with respect to the packed parameter vector.

The chain runs objective partials -> edge vectors -> node positions, then a
single adjoint solve with the forward factorization carries the free-node
sensitivity back to force densities and anchor coordinates:

    A Lambda = dL/dxf
    dL/dq  = explicit - rowsum((Cf Lambda) * U)
    dL/dxn = explicit - Cn^T Q Cf Lambda
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from geometry.problem import Problem
from modules.objectives.base import ObjectiveGradients, softplus_barrier
from runtime.fdm import FdmCache, compute_geometry, solve_fdm
from runtime.packing import unpack_parameters

logger = logging.getLogger("theseus")


def evaluate_objectives(cache: FdmCache, problem: Problem) -> Tuple[float, ObjectiveGradients]:
    """Weighted sum of every objective term at the cached geometry."""
    topo = problem.topology
    grads = ObjectiveGradients.zeros(topo.num_nodes, topo.num_edges)
    loss = 0.0
    for term in problem.objectives:
        loss += float(term.contribute(cache, grads))
    return loss, grads


def bound_barrier(
    q: np.ndarray,
    lb: np.ndarray,
    ub: np.ndarray,
    lb_idx: np.ndarray,
    ub_idx: np.ndarray,
    weight: float,
    sharpness: float,
) -> Tuple[float, np.ndarray]:
    """Smooth penalty keeping ``q`` inside its finite bounds."""
    grad = np.zeros_like(q)
    loss = 0.0
    if weight == 0.0:
        return loss, grad
    if lb_idx.size:
        value, slope = softplus_barrier(lb[lb_idx] - q[lb_idx], sharpness)
        loss += weight * value
        grad[lb_idx] -= weight * slope
    if ub_idx.size:
        value, slope = softplus_barrier(q[ub_idx] - ub[ub_idx], sharpness)
        loss += weight * value
        grad[ub_idx] += weight * slope
    return loss, grad


def _position_gradient(cache: FdmCache, problem: Problem, grads: ObjectiveGradients) -> np.ndarray:
    """Fold length/force/reaction partials into ``dL/dxyz`` and ``grads.q``."""
    topo = problem.topology
    C = topo.incidence
    U = cache.edge_vectors
    q = cache.q
    lengths = cache.member_lengths

    # forces = q * L
    grads.q += grads.forces * lengths
    g_len = grads.lengths + grads.forces * q

    g_u = np.zeros_like(U)
    if np.any(grads.reactions):
        cr = np.asarray(C @ grads.reactions)
        g_u += q[:, None] * cr
        grads.q += np.sum(U * cr, axis=1)

    nonzero = lengths > 0.0
    g_u[nonzero] += (g_len[nonzero] / lengths[nonzero])[:, None] * U[nonzero]

    return grads.xyz + np.asarray(C.T @ g_u)


def value_and_gradient(
    cache: FdmCache,
    problem: Problem,
    theta: np.ndarray,
    lb: np.ndarray,
    ub: np.ndarray,
    lb_idx: np.ndarray,
    ub_idx: np.ndarray,
) -> Tuple[float, np.ndarray]:
    """Forward solve at ``theta``; return the loss and its full gradient.

    Mutates ``cache`` with the geometry of ``theta``. Factorization and
    non-finite solve failures propagate as ``NumericalFailureError``.
    """
    topo = problem.topology
    ne = topo.num_edges
    q, anchors = unpack_parameters(problem, theta)

    solve_fdm(cache, q, problem, anchors)
    compute_geometry(cache, problem)
    loss, grads = evaluate_objectives(cache, problem)

    g_xyz = _position_gradient(cache, problem, grads)

    lam = cache.factorization.solve(g_xyz[topo.free_node_indices])
    if lam.ndim == 1:
        lam = lam.reshape(-1, 3)
    cf_lam = np.asarray(topo.free_incidence @ lam)

    grad = np.zeros(problem.num_parameters)
    grad[:ne] = grads.q - np.sum(cf_lam * cache.edge_vectors, axis=1)

    var = problem.anchors.variable_indices
    if var.size:
        g_xn = g_xyz[topo.fixed_node_indices] - np.asarray(
            topo.fixed_incidence.T @ (q[:, None] * cf_lam)
        )
        grad[ne:] = g_xn[var].reshape(-1)

    solver = problem.solver
    b_loss, b_grad = bound_barrier(
        q,
        lb[:ne],
        ub[:ne],
        lb_idx[lb_idx < ne],
        ub_idx[ub_idx < ne],
        float(solver.get("barrier_weight", 10.0)),
        float(solver.get("barrier_sharpness", 10.0)),
    )
    grad[:ne] += b_grad
    return loss + b_loss, grad


__all__ = ["bound_barrier", "evaluate_objectives", "value_and_gradient"]
