"""Target position objective.

Each selected node contributes
    L_i = w * |x_i - t_i|^2
"""

from __future__ import annotations

import numpy as np

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import NodeObjective, ObjectiveGradients


class TargetXYZ(NodeObjective):
    name = "target_xyz"
    uses_target = True
    dims = slice(0, 3)

    def __init__(self, weight=1.0, nodes=None, target=None) -> None:
        super().__init__(weight, nodes)
        if target is None:
            raise ProblemDefinitionError(f"{self.name}: target positions required")
        self.target = np.asarray(target, dtype=float).reshape(-1, 3)

    def bind(self, topology) -> None:
        super().bind(topology)
        if self.target.shape[0] != self.nodes.size:
            raise ProblemDefinitionError(
                f"{self.name}: {self.nodes.size} nodes but "
                f"{self.target.shape[0]} target rows"
            )

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        diff = geometry.xyz[self.nodes, self.dims] - self.target[:, self.dims]
        g = np.zeros((self.nodes.size, 3))
        g[:, self.dims] = 2.0 * self.weight * diff
        np.add.at(grads.xyz, self.nodes, g)
        return self.weight * float(np.sum(diff * diff))


OBJECTIVE = TargetXYZ
