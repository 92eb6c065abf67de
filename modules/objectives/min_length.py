"""Barrier on member lengths below a threshold.

    L = w * sum_e softplus(k * (threshold_e - length_e)) / k
"""

from modules.objectives.base import ObjectiveGradients, ThresholdEdgeObjective


class MinLength(ThresholdEdgeObjective):
    name = "min_length"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        return self._barrier(geometry.member_lengths, grads.lengths, -1.0)


OBJECTIVE = MinLength
