"""Barrier on member forces below a threshold.

    L = w * sum_e softplus(k * (threshold_e - force_e)) / k
"""

from modules.objectives.base import ObjectiveGradients, ThresholdEdgeObjective


class MinForce(ThresholdEdgeObjective):
    name = "min_force"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        return self._barrier(geometry.member_forces, grads.forces, -1.0)


OBJECTIVE = MinForce
