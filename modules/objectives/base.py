"""Shared machinery for objective terms.

Every term reads the geometry of the latest forward solve (an ``FdmCache``)
and returns its weighted loss, accumulating partial derivatives into an
``ObjectiveGradients`` buffer. The oracle chains those partials back to
force densities and anchor positions; terms never see the adjoint.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np
from scipy.special import expit

from core.exceptions import ProblemDefinitionError


@dataclass
class ObjectiveGradients:
    """Partial derivatives of the loss, one buffer per geometric quantity."""

    xyz: np.ndarray
    q: np.ndarray
    lengths: np.ndarray
    forces: np.ndarray
    reactions: np.ndarray

    @classmethod
    def zeros(cls, num_nodes: int, num_edges: int) -> "ObjectiveGradients":
        return cls(
            xyz=np.zeros((num_nodes, 3)),
            q=np.zeros(num_edges),
            lengths=np.zeros(num_edges),
            forces=np.zeros(num_edges),
            reactions=np.zeros((num_nodes, 3)),
        )


def expand_values(values, count: int, name: str = "values") -> np.ndarray:
    """Repeat the last entry of ``values`` until there are ``count`` of them."""
    arr = np.atleast_1d(np.asarray(values, dtype=float)).reshape(-1)
    if arr.size == 0:
        raise ProblemDefinitionError(f"{name} cannot be empty")
    if arr.size >= count:
        return arr[:count].copy()
    return np.concatenate([arr, np.full(count - arr.size, arr[-1])])


def expand_rows(rows, count: int, name: str = "rows") -> np.ndarray:
    """Row-wise variant of ``expand_values`` for ``(k, 3)`` arrays."""
    arr = np.asarray(rows, dtype=float).reshape(-1, 3)
    if arr.shape[0] == 0:
        raise ProblemDefinitionError(f"{name} cannot be empty")
    if arr.shape[0] >= count:
        return arr[:count].copy()
    pad = np.repeat(arr[-1:], count - arr.shape[0], axis=0)
    return np.vstack([arr, pad])


def softplus_barrier(excess: np.ndarray, sharpness: float) -> tuple[float, np.ndarray]:
    """``sum(softplus(k * excess) / k)`` and its derivative w.r.t. ``excess``."""
    k = float(sharpness)
    z = k * excess
    value = float(np.sum(np.logaddexp(0.0, z)) / k)
    return value, expit(z)


class ObjectiveTerm(ABC):
    """Base interface for weighted loss contributors."""

    name = "objective"

    def __init__(self, weight: float = 1.0) -> None:
        self.weight = float(weight)
        if not np.isfinite(self.weight):
            raise ProblemDefinitionError(f"{self.name}: weight must be finite")

    def bind(self, topology) -> None:
        """Resolve default indices against ``topology`` and validate them."""

    @abstractmethod
    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        """Return this term's weighted loss and accumulate into ``grads``."""

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        topology,
        node_positions: np.ndarray | None = None,
    ) -> "ObjectiveTerm":
        kwargs = {k: v for k, v in config.items() if k != "type"}
        try:
            term = cls(**kwargs)
        except TypeError as exc:
            raise ProblemDefinitionError(f"{cls.name}: {exc}") from exc
        term.bind(topology)
        return term

    def __repr__(self) -> str:  # pragma: no cover - simple utility
        return f"{self.__class__.__name__}(weight={self.weight!r})"


class NodeObjective(ObjectiveTerm):
    """Term acting on a set of nodes; ``None`` means every free node.

    Terms with ``uses_target`` take a ``target`` array; when a config omits
    it the input node positions are used, so the term holds the shape.
    """

    uses_target = False

    def __init__(self, weight: float = 1.0, nodes: Sequence[int] | None = None) -> None:
        super().__init__(weight)
        self.nodes = None if nodes is None else np.asarray(nodes, dtype=int).reshape(-1)

    def bind(self, topology) -> None:
        if self.nodes is None or self.nodes.size == 0:
            self.nodes = np.asarray(topology.free_node_indices, dtype=int).copy()
        if self.nodes.size and (
            self.nodes.min() < 0 or self.nodes.max() >= topology.num_nodes
        ):
            raise ProblemDefinitionError(f"{self.name}: node index out of range")

    @classmethod
    def from_config(cls, config, topology, node_positions=None):
        kwargs = {k: v for k, v in config.items() if k != "type"}
        if cls.uses_target and kwargs.get("target") is None:
            if node_positions is None:
                raise ProblemDefinitionError(f"{cls.name}: target positions required")
            nodes = kwargs.get("nodes") or list(topology.free_node_indices)
            kwargs["nodes"] = nodes
            kwargs["target"] = np.asarray(node_positions, dtype=float)[
                np.asarray(nodes, dtype=int)
            ]
        try:
            term = cls(**kwargs)
        except TypeError as exc:
            raise ProblemDefinitionError(f"{cls.name}: {exc}") from exc
        term.bind(topology)
        return term


class EdgeObjective(ObjectiveTerm):
    """Term acting on a set of edges; ``None`` means every edge."""

    def __init__(
        self,
        weight: float = 1.0,
        edges: Sequence[int] | None = None,
        sharpness: float = 20.0,
    ) -> None:
        super().__init__(weight)
        self.edges = None if edges is None else np.asarray(edges, dtype=int).reshape(-1)
        self.sharpness = float(sharpness)
        if self.sharpness <= 0.0:
            raise ProblemDefinitionError(f"{self.name}: sharpness must be positive")

    def bind(self, topology) -> None:
        if self.edges is None or self.edges.size == 0:
            self.edges = np.arange(topology.num_edges)
        if self.edges.min() < 0 or self.edges.max() >= topology.num_edges:
            raise ProblemDefinitionError(f"{self.name}: edge index out of range")


class ThresholdEdgeObjective(EdgeObjective):
    """Edge term with one threshold per edge (short lists repeat the last)."""

    def __init__(
        self,
        weight: float = 1.0,
        thresholds=(),
        edges: Sequence[int] | None = None,
        sharpness: float = 10.0,
    ) -> None:
        super().__init__(weight, edges, sharpness)
        self._raw_thresholds = thresholds
        self.thresholds: np.ndarray | None = None

    def bind(self, topology) -> None:
        super().bind(topology)
        self.thresholds = expand_values(
            self._raw_thresholds, self.edges.size, f"{self.name} thresholds"
        )

    def _barrier(self, values: np.ndarray, grad_out: np.ndarray, sign: float) -> float:
        """Softplus barrier on ``sign * (values - thresholds)``."""
        excess = sign * (values[self.edges] - self.thresholds)
        loss, dloss = softplus_barrier(excess, self.sharpness)
        np.add.at(grad_out, self.edges, self.weight * sign * dloss)
        return self.weight * loss
