# runtime/steppers/base.py
"""Abstract base class for box-constrained quasi-Newton searches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


@dataclass
class SearchOutcome:
    """What one sub-search hands back to the driver."""

    x: Optional[np.ndarray]
    fun: float
    nit: int
    status: int
    message: str
    stopped_by_callback: bool = False

    @property
    def success(self) -> bool:
        return self.status == 0 or self.stopped_by_callback


class BaseSearch(ABC):
    """Base interface for a single quasi-Newton sub-search."""

    @abstractmethod
    def run(
        self,
        fun: Callable[[np.ndarray], float],
        jac: Callable[[np.ndarray], np.ndarray],
        x0: np.ndarray,
        lb: np.ndarray,
        ub: np.ndarray,
        max_iter: int,
        callback: Callable[[np.ndarray, float], bool] | None = None,
    ) -> SearchOutcome:
        """Minimize ``fun`` from ``x0`` inside the box ``[lb, ub]``.

        Parameters
        ----------
        fun : Callable[[np.ndarray], float]
            Objective value at a parameter vector.
        jac : Callable[[np.ndarray], np.ndarray]
            Gradient at a parameter vector. Called at the same points as
            ``fun``; callers are expected to memoize.
        x0 : np.ndarray
            Starting point, already inside the box.
        lb, ub : np.ndarray
            Bound vectors; infinite entries are unbounded.
        max_iter : int
            Iteration budget for this sub-search.
        callback : Callable[[np.ndarray, float], bool] | None
            Called after every iteration with the current point and value.
            Returning ``True`` stops the search as converged.

        Returns
        -------
        SearchOutcome
            Final point, value, iteration count and engine status. Exceptions
            raised by ``fun``/``jac``/``callback`` propagate unchanged.
        """

    def __repr__(self) -> str:  # pragma: no cover - simple utility
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{self.__class__.__name__}({params})"
