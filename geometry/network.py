# network.py

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from core.exceptions import ProblemDefinitionError

logger = logging.getLogger("theseus")


def build_incidence(edges: Sequence[Tuple[int, int]], num_nodes: int) -> sp.csr_matrix:
    """Signed edge-node incidence: -1 at the start node, +1 at the end node."""
    num_edges = len(edges)
    rows = np.repeat(np.arange(num_edges), 2)
    cols = np.asarray(edges, dtype=int).reshape(-1)
    vals = np.tile(np.array([-1.0, 1.0]), num_edges)
    return sp.csr_matrix((vals, (rows, cols)), shape=(num_edges, num_nodes))


@dataclass
class NetworkTopology:
    """Edge/node connectivity split into free and fixed node blocks.

    ``incidence`` is ``C`` (edges x nodes); ``free_incidence`` and
    ``fixed_incidence`` are its column blocks ``Cf`` and ``Cn`` in the order
    of ``free_node_indices`` and ``fixed_node_indices``.
    """

    edges: List[Tuple[int, int]]
    num_nodes: int
    free_node_indices: np.ndarray
    fixed_node_indices: np.ndarray
    incidence: sp.csr_matrix = field(repr=False)
    free_incidence: sp.csr_matrix = field(repr=False)
    fixed_incidence: sp.csr_matrix = field(repr=False)

    @property
    def num_edges(self) -> int:
        return len(self.edges)

    @property
    def num_free(self) -> int:
        return int(self.free_node_indices.size)

    @property
    def num_fixed(self) -> int:
        return int(self.fixed_node_indices.size)

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Sequence[int]],
        num_nodes: int,
        fixed: Iterable[int],
    ) -> "NetworkTopology":
        """Build a topology from ``(start, end)`` pairs and fixed node indices."""
        edge_list = [(int(e[0]), int(e[1])) for e in edges]
        fixed_idx = np.asarray(sorted({int(i) for i in fixed}), dtype=int)

        if num_nodes <= 0:
            raise ProblemDefinitionError("network must contain at least one node")
        if not edge_list:
            raise ProblemDefinitionError("network must contain at least one edge")
        for k, (s, t) in enumerate(edge_list):
            if not (0 <= s < num_nodes and 0 <= t < num_nodes):
                raise ProblemDefinitionError(
                    f"edge {k} ({s}, {t}) references a node outside 0..{num_nodes - 1}"
                )
            if s == t:
                raise ProblemDefinitionError(f"edge {k} is a self-loop on node {s}")
        if fixed_idx.size == 0:
            raise ProblemDefinitionError("network needs at least one fixed node")
        if fixed_idx[0] < 0 or fixed_idx[-1] >= num_nodes:
            raise ProblemDefinitionError("fixed node index out of range")

        is_fixed = np.zeros(num_nodes, dtype=bool)
        is_fixed[fixed_idx] = True
        free_idx = np.flatnonzero(~is_fixed)

        incidence = build_incidence(edge_list, num_nodes)
        incidence_csc = incidence.tocsc()
        free_inc = incidence_csc[:, free_idx].tocsr()
        fixed_inc = incidence_csc[:, fixed_idx].tocsr()

        logger.debug(
            "Built topology: %d nodes (%d free, %d fixed), %d edges",
            num_nodes,
            free_idx.size,
            fixed_idx.size,
            len(edge_list),
        )
        return cls(
            edges=edge_list,
            num_nodes=num_nodes,
            free_node_indices=free_idx,
            fixed_node_indices=fixed_idx,
            incidence=incidence,
            free_incidence=free_inc,
            fixed_incidence=fixed_inc,
        )

    def fixed_row_of(self, node_index: int) -> int:
        """Return the row of ``node_index`` within the fixed-node block."""
        rows = np.flatnonzero(self.fixed_node_indices == int(node_index))
        if rows.size == 0:
            raise ProblemDefinitionError(f"node {node_index} is not a fixed node")
        return int(rows[0])
