"""Barrier on member forces above a threshold.

    L = w * sum_e softplus(k * (force_e - threshold_e)) / k
"""

from modules.objectives.base import ObjectiveGradients, ThresholdEdgeObjective


class MaxForce(ThresholdEdgeObjective):
    name = "max_force"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        return self._barrier(geometry.member_forces, grads.forces, 1.0)


OBJECTIVE = MaxForce
