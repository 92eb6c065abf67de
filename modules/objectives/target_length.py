"""Target member length objective.

Each selected edge contributes
    L_e = w * (length_e - target_e)^2
"""

from __future__ import annotations

import numpy as np

from modules.objectives.base import EdgeObjective, ObjectiveGradients, expand_values


class TargetLength(EdgeObjective):
    name = "target_length"

    def __init__(self, weight=1.0, targets=(), edges=None) -> None:
        super().__init__(weight, edges)
        self._raw_targets = targets
        self.targets = None

    def bind(self, topology) -> None:
        super().bind(topology)
        self.targets = expand_values(self._raw_targets, self.edges.size, f"{self.name} targets")

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        delta = geometry.member_lengths[self.edges] - self.targets
        np.add.at(grads.lengths, self.edges, 2.0 * self.weight * delta)
        return self.weight * float(np.sum(delta * delta))


OBJECTIVE = TargetLength
