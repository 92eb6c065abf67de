# runtime/fdm.py
"""Force-density forward solve.

Free-node equilibrium ``Cf^T Q C x = P`` is solved as

    A xf = b,   A = Cf^T Q Cf,   b = P - Cf^T Q Cn xn

for the three coordinate columns at once. ``FdmCache`` is the mutable
workspace one sub-search owns; a restart builds a fresh one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import scipy.sparse as sp

from core.exceptions import NumericalFailureError
from geometry.problem import Problem, SolverResult
from runtime.factorization import (
    Factorization,
    FactorizationStrategy,
    factorize_with_fallback,
)

logger = logging.getLogger("theseus")


@dataclass
class FdmCache:
    """Forward-solve workspace: geometry of the most recent solve."""

    strategy: FactorizationStrategy
    xyz: np.ndarray
    q: np.ndarray
    edge_vectors: np.ndarray
    member_lengths: np.ndarray
    member_forces: np.ndarray
    reactions: np.ndarray
    fixed_xyz: np.ndarray
    factorization: Optional[Factorization] = field(default=None, repr=False)
    fallback_count: int = 0
    solve_count: int = 0

    @classmethod
    def new(
        cls,
        problem: Problem,
        strategy: FactorizationStrategy | None = None,
    ) -> "FdmCache":
        topo = problem.topology
        nn, ne = topo.num_nodes, topo.num_edges
        if strategy is None:
            strategy = FactorizationStrategy.from_bounds(problem.bounds)
        xyz = np.zeros((nn, 3))
        xyz[topo.fixed_node_indices] = problem.fixed_node_positions
        return cls(
            strategy=strategy,
            xyz=xyz,
            q=np.zeros(ne),
            edge_vectors=np.zeros((ne, 3)),
            member_lengths=np.zeros(ne),
            member_forces=np.zeros(ne),
            reactions=np.zeros((nn, 3)),
            fixed_xyz=problem.fixed_node_positions.copy(),
        )


def fixed_positions(problem: Problem, anchors: np.ndarray | None) -> np.ndarray:
    """Fixed-node positions with the variable anchors substituted."""
    xn = problem.fixed_node_positions.copy()
    var = problem.anchors.variable_indices
    if var.size:
        if anchors is None:
            raise ValueError("variable anchors present but no anchor positions given")
        xn[var] = np.asarray(anchors, dtype=float).reshape(-1, 3)
    return xn


def assemble_system(problem: Problem, q: np.ndarray, xn: np.ndarray):
    """Return ``(A, b)`` for the free-node equilibrium system."""
    topo = problem.topology
    Q = sp.diags(q)
    Cf = topo.free_incidence
    Cn = topo.fixed_incidence
    A = (Cf.T @ Q @ Cf).tocsc()
    b = problem.free_node_loads - Cf.T @ (Q @ (Cn @ xn))
    return A, np.asarray(b)


def solve_fdm(
    cache: FdmCache,
    q: np.ndarray,
    problem: Problem,
    anchors: np.ndarray | None,
    tol: float | None = None,
) -> None:
    """Solve for free-node positions and write them into ``cache.xyz``."""
    topo = problem.topology
    q = np.asarray(q, dtype=float).reshape(-1)
    if tol is None:
        tol = float(problem.solver.get("solve_tolerance", 1e-12))

    xn = fixed_positions(problem, anchors)
    A, b = assemble_system(problem, q, xn)

    fact, fell_back = factorize_with_fallback(A, cache.strategy, tol)
    if fell_back:
        cache.fallback_count += 1
        logger.debug(
            "Solve %d used LDL fallback (total fallbacks: %d).",
            cache.solve_count + 1,
            cache.fallback_count,
        )

    xf = fact.solve(b).reshape(topo.num_free, 3)
    if not np.all(np.isfinite(xf)):
        raise NumericalFailureError("forward solve produced NaN or Inf node positions")

    cache.factorization = fact
    cache.q = q.copy()
    cache.fixed_xyz = xn
    cache.xyz[topo.free_node_indices] = xf
    cache.xyz[topo.fixed_node_indices] = xn
    cache.solve_count += 1


def compute_geometry(cache: FdmCache, problem: Problem) -> None:
    """Edge vectors, lengths, forces and reactions from ``cache.xyz``."""
    topo = problem.topology
    U = np.asarray(topo.incidence @ cache.xyz)
    lengths = np.linalg.norm(U, axis=1)
    cache.edge_vectors = U
    cache.member_lengths = lengths
    cache.member_forces = cache.q * lengths

    # Residual nodal force C^T Q U; loads are subtracted on free rows so only
    # support reactions remain.
    nodal = np.asarray(topo.incidence.T @ (cache.q[:, None] * U))
    nodal[topo.free_node_indices] -= problem.free_node_loads
    cache.reactions = nodal


def solve_forward(
    problem: Problem,
    q: np.ndarray,
    anchors: np.ndarray | None = None,
) -> SolverResult:
    """Single forward solve without optimization.

    Uses the general symmetric factorization so mixed-sign force densities
    are handled.
    """
    q = np.broadcast_to(
        np.asarray(q, dtype=float), (problem.topology.num_edges,)
    ).copy()
    if anchors is None:
        anchors = problem.anchors.initial_positions()
    cache = FdmCache.new(problem, FactorizationStrategy.LDL)
    solve_fdm(cache, q, problem, anchors)
    compute_geometry(cache, problem)
    return SolverResult(
        q=q,
        anchor_positions=np.asarray(anchors, dtype=float).reshape(-1, 3),
        xyz=cache.xyz.copy(),
        member_lengths=cache.member_lengths.copy(),
        member_forces=cache.member_forces.copy(),
        reactions=cache.reactions.copy(),
        loss_trace=[],
        iterations=1,
        converged=True,
        termination_reason="forward solve",
        restarts=0,
        factorization=FactorizationStrategy.LDL.value,
    )


__all__ = [
    "FdmCache",
    "assemble_system",
    "compute_geometry",
    "fixed_positions",
    "solve_fdm",
    "solve_forward",
]
