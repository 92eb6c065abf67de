"""Problem definition, optimization state and solver result containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Sequence

import numpy as np

from core.exceptions import ProblemDefinitionError
from geometry.network import NetworkTopology
from parameters.solver_options import SolverOptions


@dataclass
class Bounds:
    """Per-edge force-density box ``lower <= q <= upper``."""

    lower: np.ndarray
    upper: np.ndarray

    def __post_init__(self) -> None:
        self.lower = np.asarray(self.lower, dtype=float).reshape(-1)
        self.upper = np.asarray(self.upper, dtype=float).reshape(-1)

    @classmethod
    def uniform(cls, num_edges: int, lower: float, upper: float) -> "Bounds":
        return cls(np.full(num_edges, float(lower)), np.full(num_edges, float(upper)))

    @classmethod
    def unbounded(cls, num_edges: int) -> "Bounds":
        return cls.uniform(num_edges, -np.inf, np.inf)


@dataclass
class AnchorInfo:
    """Which fixed nodes may move during optimization.

    ``variable_indices`` are rows of the fixed-node block (not global node
    ids); their coordinates become optimization variables.
    """

    variable_indices: np.ndarray
    reference_positions: np.ndarray

    def __post_init__(self) -> None:
        self.variable_indices = np.asarray(self.variable_indices, dtype=int).reshape(-1)
        self.reference_positions = np.asarray(
            self.reference_positions, dtype=float
        ).reshape(-1, 3)

    @property
    def num_variable(self) -> int:
        return int(self.variable_indices.size)

    @classmethod
    def all_fixed(cls, fixed_node_positions: np.ndarray) -> "AnchorInfo":
        return cls(np.zeros(0, dtype=int), fixed_node_positions)

    @classmethod
    def from_nodes(
        cls,
        topology: NetworkTopology,
        node_indices: Sequence[int],
        fixed_node_positions: np.ndarray,
    ) -> "AnchorInfo":
        """Build anchor info from global node ids of movable anchors."""
        rows = [topology.fixed_row_of(i) for i in node_indices]
        return cls(np.asarray(rows, dtype=int), fixed_node_positions)

    def initial_positions(self) -> np.ndarray:
        """Reference positions of the variable anchors (``nvar x 3``)."""
        return self.reference_positions[self.variable_indices].copy()


@dataclass
class Problem:
    """Immutable description of one FDM optimization problem."""

    topology: NetworkTopology
    free_node_loads: np.ndarray
    fixed_node_positions: np.ndarray
    anchors: AnchorInfo
    objectives: List[Any]
    bounds: Bounds
    solver: SolverOptions = field(default_factory=SolverOptions)

    def __post_init__(self) -> None:
        self.free_node_loads = np.asarray(self.free_node_loads, dtype=float).reshape(-1, 3)
        self.fixed_node_positions = np.asarray(
            self.fixed_node_positions, dtype=float
        ).reshape(-1, 3)
        if isinstance(self.solver, dict):
            self.solver = SolverOptions(self.solver)
        self.validate()
        for term in self.objectives:
            term.bind(self.topology)

    def validate(self) -> None:
        """Raise ``ProblemDefinitionError`` if any size invariant is violated."""
        topo = self.topology
        ne = topo.num_edges
        if self.free_node_loads.shape != (topo.num_free, 3):
            raise ProblemDefinitionError(
                f"free_node_loads must be ({topo.num_free}, 3); "
                f"got {self.free_node_loads.shape}"
            )
        if self.fixed_node_positions.shape != (topo.num_fixed, 3):
            raise ProblemDefinitionError(
                f"fixed_node_positions must be ({topo.num_fixed}, 3); "
                f"got {self.fixed_node_positions.shape}"
            )
        if self.bounds.lower.size != ne or self.bounds.upper.size != ne:
            raise ProblemDefinitionError(
                f"bounds must have one entry per edge ({ne}); got "
                f"{self.bounds.lower.size} lower / {self.bounds.upper.size} upper"
            )
        if np.any(np.isnan(self.bounds.lower)) or np.any(np.isnan(self.bounds.upper)):
            raise ProblemDefinitionError("bounds must not contain NaN")
        if np.any(self.bounds.lower > self.bounds.upper):
            bad = int(np.flatnonzero(self.bounds.lower > self.bounds.upper)[0])
            raise ProblemDefinitionError(f"lower bound exceeds upper bound on edge {bad}")
        var = self.anchors.variable_indices
        if var.size and (var.min() < 0 or var.max() >= topo.num_fixed):
            raise ProblemDefinitionError("variable anchor index outside the fixed-node block")
        if np.unique(var).size != var.size:
            raise ProblemDefinitionError("variable anchor indices must be unique")
        if not np.all(np.isfinite(self.fixed_node_positions)):
            raise ProblemDefinitionError("fixed node positions must be finite")
        if not np.all(np.isfinite(self.free_node_loads)):
            raise ProblemDefinitionError("free node loads must be finite")

    @property
    def num_parameters(self) -> int:
        return self.topology.num_edges + 3 * self.anchors.num_variable


@dataclass
class OptimizationState:
    """Caller-owned state threaded through one optimization run."""

    force_densities: np.ndarray
    variable_anchor_positions: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 3))
    )
    iterations: int = 0
    loss_trace: List[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.force_densities = np.asarray(self.force_densities, dtype=float).reshape(-1)
        self.variable_anchor_positions = np.asarray(
            self.variable_anchor_positions, dtype=float
        ).reshape(-1, 3)

    @classmethod
    def initial(cls, problem: Problem, q_init) -> "OptimizationState":
        """Initial guess with anchors at their reference positions."""
        q = np.broadcast_to(
            np.asarray(q_init, dtype=float), (problem.topology.num_edges,)
        ).copy()
        return cls(q, problem.anchors.initial_positions())


@dataclass(frozen=True)
class SolverResult:
    q: np.ndarray
    anchor_positions: np.ndarray
    xyz: np.ndarray
    member_lengths: np.ndarray
    member_forces: np.ndarray
    reactions: np.ndarray
    loss_trace: List[float]
    iterations: int
    converged: bool
    termination_reason: str
    restarts: int = 0
    factorization: str = ""

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "q": self.q.tolist(),
            "anchor_positions": self.anchor_positions.tolist(),
            "xyz": self.xyz.tolist(),
            "member_lengths": self.member_lengths.tolist(),
            "member_forces": self.member_forces.tolist(),
            "reactions": self.reactions.tolist(),
            "loss_trace": [float(v) for v in self.loss_trace],
            "iterations": int(self.iterations),
            "converged": bool(self.converged),
            "termination_reason": self.termination_reason,
            "restarts": int(self.restarts),
            "factorization": self.factorization,
        }
