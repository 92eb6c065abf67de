"""Member length variation objective.

Penalizes the spread of member lengths with smooth max/min:
    L = w * (smax_k(length) - smin_k(length))
where ``smax_k(v) = logsumexp(k v) / k`` and ``smin_k(v) = -smax_k(-v)``.
"""

from __future__ import annotations

import numpy as np
from scipy.special import logsumexp, softmax

from modules.objectives.base import EdgeObjective, ObjectiveGradients


def smooth_range(values: np.ndarray, sharpness: float) -> tuple[float, np.ndarray]:
    """Smooth ``max - min`` of ``values`` and its gradient."""
    k = float(sharpness)
    z = k * values
    spread = (logsumexp(z) + logsumexp(-z)) / k
    return float(spread), softmax(z) - softmax(-z)


class LengthVariation(EdgeObjective):
    name = "length_variation"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        spread, d = smooth_range(geometry.member_lengths[self.edges], self.sharpness)
        np.add.at(grads.lengths, self.edges, self.weight * d)
        return self.weight * spread


OBJECTIVE = LengthVariation
