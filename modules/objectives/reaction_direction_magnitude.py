"""Reaction direction plus a target magnitude.

Adds ``w * (|r_i| - m_i)^2`` to the direction term of ``ReactionDirection``.
"""

from __future__ import annotations

import numpy as np

from modules.objectives.base import ObjectiveGradients, expand_values
from modules.objectives.reaction_direction import ReactionDirection


class ReactionDirectionMagnitude(ReactionDirection):
    name = "reaction_direction_magnitude"

    def __init__(
        self,
        weight=1.0,
        nodes=None,
        directions=((0.0, 0.0, 1.0),),
        magnitudes=(1.0,),
    ) -> None:
        super().__init__(weight, nodes, directions)
        self._raw_magnitudes = magnitudes
        self.magnitudes = None

    def bind(self, topology) -> None:
        super().bind(topology)
        self.magnitudes = expand_values(
            self._raw_magnitudes, self.nodes.size, f"{self.name} magnitudes"
        )

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        loss, live, r, m = self._alignment(geometry, grads)
        delta = m - self.magnitudes[live]
        g = (2.0 * self.weight * delta / m)[:, None] * r
        np.add.at(grads.reactions, self.nodes[live], g)
        return loss + self.weight * float(np.sum(delta * delta))


OBJECTIVE = ReactionDirectionMagnitude
