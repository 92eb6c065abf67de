"""Support reaction direction objectives.

With ``r_i`` the reaction at anchor ``i`` and ``d_i`` a unit direction,
    L_i = w * (1 - r_i . d_i / |r_i|)
which vanishes when the reaction points along ``d_i``. Reactions with
vanishing magnitude contribute nothing.
"""

from __future__ import annotations

import numpy as np

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import NodeObjective, ObjectiveGradients, expand_rows

_EPS = 1e-12


class ReactionDirection(NodeObjective):
    name = "reaction_direction"

    def __init__(self, weight=1.0, nodes=None, directions=((0.0, 0.0, 1.0),)) -> None:
        super().__init__(weight, nodes)
        self._raw_directions = directions
        self.directions = None

    def bind(self, topology) -> None:
        if self.nodes is None or self.nodes.size == 0:
            self.nodes = np.asarray(topology.fixed_node_indices, dtype=int).copy()
        super().bind(topology)
        d = expand_rows(self._raw_directions, self.nodes.size, f"{self.name} directions")
        norms = np.linalg.norm(d, axis=1)
        if np.any(norms < _EPS):
            raise ProblemDefinitionError(f"{self.name}: directions must be non-zero")
        self.directions = d / norms[:, None]

    def _alignment(self, geometry, grads: ObjectiveGradients):
        r = geometry.reactions[self.nodes]
        m = np.linalg.norm(r, axis=1)
        live = m > _EPS
        r, m, d = r[live], m[live], self.directions[live]
        rd = np.sum(r * d, axis=1)
        loss = self.weight * float(np.sum(1.0 - rd / m))
        g = -self.weight * (d / m[:, None] - (rd / m**3)[:, None] * r)
        np.add.at(grads.reactions, self.nodes[live], g)
        return loss, live, r, m

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        loss, _, _, _ = self._alignment(geometry, grads)
        return loss


OBJECTIVE = ReactionDirection
