"""Pull nodes onto a plane, measuring distance along a direction.

With plane normal ``n``, origin ``o`` and direction ``d`` (default ``n``),
the signed distance of node i along ``d`` is
    s_i = n . (x_i - o) / (n . d)
and each node contributes ``w * s_i^2``.
"""

from __future__ import annotations

import numpy as np

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import NodeObjective, ObjectiveGradients
from modules.objectives.target_plane import plane_frame


class PlanarConstraintAlongDirection(NodeObjective):
    name = "planar_constraint_along_direction"

    def __init__(
        self,
        weight=1.0,
        nodes=None,
        origin=(0.0, 0.0, 0.0),
        x_axis=(1.0, 0.0, 0.0),
        y_axis=(0.0, 1.0, 0.0),
        direction=None,
    ) -> None:
        super().__init__(weight, nodes)
        self.origin = np.asarray(origin, dtype=float).reshape(3)
        _, _, self.normal = plane_frame(x_axis, y_axis)
        d = self.normal if direction is None else np.asarray(direction, dtype=float).reshape(3)
        n_dot_d = float(np.dot(self.normal, d))
        if abs(n_dot_d) < 1e-6:
            raise ProblemDefinitionError(
                f"{self.name}: direction is parallel to the plane"
            )
        self.n_dot_d = n_dot_d

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        s = (geometry.xyz[self.nodes] - self.origin) @ self.normal / self.n_dot_d
        g = np.outer(2.0 * self.weight * s / self.n_dot_d, self.normal)
        np.add.at(grads.xyz, self.nodes, g)
        return self.weight * float(np.sum(s * s))


OBJECTIVE = PlanarConstraintAlongDirection
