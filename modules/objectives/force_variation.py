"""Member force variation objective (smooth max minus smooth min of forces)."""

import numpy as np

from modules.objectives.base import EdgeObjective, ObjectiveGradients
from modules.objectives.length_variation import smooth_range


class ForceVariation(EdgeObjective):
    name = "force_variation"

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        spread, d = smooth_range(geometry.member_forces[self.edges], self.sharpness)
        np.add.at(grads.forces, self.edges, self.weight * d)
        return self.weight * spread


OBJECTIVE = ForceVariation
