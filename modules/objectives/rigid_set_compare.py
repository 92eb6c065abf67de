"""Keep a point set rigid by preserving its pairwise distances.

For every pair ``i < j`` of the selected nodes,
    L_ij = w * (|x_i - x_j| - |t_i - t_j|)^2
"""

from __future__ import annotations

import numpy as np

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import ObjectiveGradients
from modules.objectives.target_xyz import TargetXYZ


class RigidSetCompare(TargetXYZ):
    name = "rigid_set_compare"

    def bind(self, topology) -> None:
        super().bind(topology)
        if self.nodes.size < 2:
            raise ProblemDefinitionError(f"{self.name}: needs at least two nodes")
        self._i, self._j = np.triu_indices(self.nodes.size, k=1)
        t = self.target
        self._rest = np.linalg.norm(t[self._i] - t[self._j], axis=1)

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        x = geometry.xyz[self.nodes]
        vec = x[self._i] - x[self._j]
        dist = np.linalg.norm(vec, axis=1)
        delta = dist - self._rest
        safe = np.where(dist > 1e-15, dist, 1.0)
        coeff = np.where(dist > 1e-15, 2.0 * self.weight * delta / safe, 0.0)
        pair_grad = coeff[:, None] * vec
        local = np.zeros_like(x)
        np.add.at(local, self._i, pair_grad)
        np.add.at(local, self._j, -pair_grad)
        np.add.at(grads.xyz, self.nodes, local)
        return self.weight * float(np.sum(delta * delta))


OBJECTIVE = RigidSetCompare
