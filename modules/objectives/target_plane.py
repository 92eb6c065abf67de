"""Target deviation measured inside a plane.

The plane is spanned by ``x_axis`` and ``y_axis`` (default world XY). With
``d = x_i - t_i``:
    L_i = w * ((d . ex)^2 + (d . ey)^2)
Motion along the plane normal is not penalized.
"""

from __future__ import annotations

import numpy as np

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import ObjectiveGradients
from modules.objectives.target_xyz import TargetXYZ


def plane_frame(x_axis, y_axis) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Orthonormal ``(ex, ey, n)`` from two in-plane axes."""
    ex = np.asarray(x_axis, dtype=float).reshape(3)
    ey = np.asarray(y_axis, dtype=float).reshape(3)
    nx = np.linalg.norm(ex)
    if nx < 1e-12:
        raise ProblemDefinitionError("plane x_axis must be non-zero")
    ex = ex / nx
    ey = ey - np.dot(ey, ex) * ex
    ny = np.linalg.norm(ey)
    if ny < 1e-12:
        raise ProblemDefinitionError("plane axes must not be parallel")
    ey = ey / ny
    return ex, ey, np.cross(ex, ey)


class TargetPlane(TargetXYZ):
    name = "target_plane"

    def __init__(
        self,
        weight=1.0,
        nodes=None,
        target=None,
        x_axis=(1.0, 0.0, 0.0),
        y_axis=(0.0, 1.0, 0.0),
    ) -> None:
        super().__init__(weight, nodes, target)
        self.ex, self.ey, _ = plane_frame(x_axis, y_axis)

    def contribute(self, geometry, grads: ObjectiveGradients) -> float:
        diff = geometry.xyz[self.nodes] - self.target
        a = diff @ self.ex
        b = diff @ self.ey
        g = 2.0 * self.weight * (np.outer(a, self.ex) + np.outer(b, self.ey))
        np.add.at(grads.xyz, self.nodes, g)
        return self.weight * float(np.sum(a * a + b * b))


OBJECTIVE = TargetPlane
