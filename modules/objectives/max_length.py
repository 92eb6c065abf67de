"""Barrier on member lengths above a threshold.

    L = w * sum_e softplus(k * (length_e - threshold_e)) / k
"""

from modules.objectives.base import ObjectiveGradients, ThresholdEdgeObjective


class MaxLength(ThresholdEdgeObjective):
    name = "max_length"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        return self._barrier(geometry.member_lengths, grads.lengths, 1.0)


OBJECTIVE = MaxLength
