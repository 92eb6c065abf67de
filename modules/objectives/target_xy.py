"""Horizontal target objective (TNA-style); z is free.

    L_i = w * ((x_i - tx_i)^2 + (y_i - ty_i)^2)
"""

from modules.objectives.target_xyz import TargetXYZ


class TargetXY(TargetXYZ):
    name = "target_xy"
    dims = slice(0, 2)


OBJECTIVE = TargetXY
