"""Load-path (structural performance) objective.

    L = w * sum_e |force_e| * length_e
"""

from __future__ import annotations

import numpy as np

from modules.objectives.base import EdgeObjective, ObjectiveGradients


class SumForceLength(EdgeObjective):
    name = "sum_force_length"

    def __init__(self, weight=1.0, edges=None) -> None:
        super().__init__(weight, edges)

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        f = geometry.member_forces[self.edges]
        length = geometry.member_lengths[self.edges]
        np.add.at(grads.forces, self.edges, self.weight * np.sign(f) * length)
        np.add.at(grads.lengths, self.edges, self.weight * np.abs(f))
        return self.weight * float(np.sum(np.abs(f) * length))


OBJECTIVE = SumForceLength
