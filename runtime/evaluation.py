# runtime/evaluation.py
"""Memoized cost/gradient oracle handed to the quasi-Newton engine.

The engine asks for cost and gradient as separate calls at the same point,
so the last ``(theta, loss, grad)`` is kept and returned when ``theta`` is
bit-identical. Each genuine evaluation is appended to the loss trace and may
trigger the progress callback, which is also where cancellation is polled.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

import numpy as np

from core.exceptions import (
    InvalidInputError,
    NumericalFailureError,
    OptimizationCancelled,
)
from geometry.problem import Problem
from runtime.fdm import FdmCache
from runtime.gradients import value_and_gradient
from runtime.packing import finite_indices

logger = logging.getLogger("theseus")

ProgressCallback = Callable[[int, float, np.ndarray, np.ndarray], object]


class EvaluationCache:
    """Single-entry memo around ``value_and_gradient``.

    Parameters
    ----------
    problem : Problem
        Problem being optimized; read only.
    lb, ub : np.ndarray
        Bound vectors aligned with the packed parameters.
    progress_callback : callable, optional
        ``callback(eval_index, loss, xyz, q)``. A return value that is not
        ``None`` but is falsy (``False``, ``0``) requests cancellation.
    report_frequency : int
        Callback period in evaluations; the first evaluation always reports.
    failure_tolerant : bool
        Replace input/numerical failures with a large finite penalty and the
        last good gradient instead of raising.
    fdm_cache : FdmCache, optional
        Forward-solve workspace; a fresh one is created when omitted.
    evaluation_offset : int
        Evaluations already spent by earlier sub-searches; callback indices
        and the report schedule count from there.
    penalty_reference : float
        Best loss seen before this cache existed; the failure penalty scales
        with the lower of it and this cache's own best loss.
    """

    def __init__(
        self,
        problem: Problem,
        lb: np.ndarray,
        ub: np.ndarray,
        progress_callback: Optional[ProgressCallback] = None,
        report_frequency: int = 1,
        failure_tolerant: bool = False,
        fdm_cache: Optional[FdmCache] = None,
        evaluation_offset: int = 0,
        penalty_reference: float = float("inf"),
    ) -> None:
        self.problem = problem
        self.lb = np.asarray(lb, dtype=float)
        self.ub = np.asarray(ub, dtype=float)
        self.lb_idx = finite_indices(self.lb)
        self.ub_idx = finite_indices(self.ub)
        self.progress_callback = progress_callback
        self.report_frequency = max(int(report_frequency or 1), 1)
        self.failure_tolerant = bool(failure_tolerant)
        self.fdm = fdm_cache if fdm_cache is not None else FdmCache.new(problem)
        self.penalty_scale = float(problem.solver.get("penalty_scale", 1e6))
        self.evaluation_offset = int(evaluation_offset)
        self.penalty_reference = float(penalty_reference)

        self.loss_trace: List[float] = []
        self.evaluations = 0
        self.failures = 0
        self.best_loss = float("inf")
        self.best_theta: Optional[np.ndarray] = None

        self._last_theta: Optional[np.ndarray] = None
        self._last_loss = 0.0
        self._last_grad: Optional[np.ndarray] = None
        self._last_good_grad: Optional[np.ndarray] = None

    def _is_cached(self, theta: np.ndarray) -> bool:
        last = self._last_theta
        return (
            last is not None
            and last.shape == theta.shape
            and last.tobytes() == theta.tobytes()
        )

    def _compute(self, theta: np.ndarray) -> Tuple[float, np.ndarray]:
        if not np.all(np.isfinite(theta)):
            bad = int(np.flatnonzero(~np.isfinite(theta))[0])
            raise InvalidInputError(index=bad)
        loss, grad = value_and_gradient(
            self.fdm, self.problem, theta, self.lb, self.ub, self.lb_idx, self.ub_idx
        )
        if not np.isfinite(loss):
            raise NumericalFailureError(f"objective is not finite ({loss})")
        if not np.all(np.isfinite(grad)):
            raise NumericalFailureError("gradient contains NaN or Inf")
        return float(loss), grad

    def _penalty(self, exc: Exception) -> Tuple[float, np.ndarray]:
        self.failures += 1
        reference = min(self.best_loss, self.penalty_reference)
        base = abs(reference) if np.isfinite(reference) else 0.0
        penalty = max(base, 1.0) * self.penalty_scale
        logger.debug("Evaluation failed (%s); returning penalty %.3e.", exc, penalty)
        if self._last_good_grad is not None:
            grad = self._last_good_grad.copy()
        else:
            grad = np.zeros(self.problem.num_parameters)
        return penalty, grad

    def _report(self, loss: float) -> None:
        if self.progress_callback is None:
            return
        index = self.evaluation_offset + self.evaluations
        if index != 1 and index % self.report_frequency != 0:
            return
        keep_going = self.progress_callback(
            index, loss, self.fdm.xyz.copy(), self.fdm.q.copy()
        )
        if keep_going is not None and not keep_going:
            logger.info("Optimization cancelled by callback at evaluation %d.", index)
            raise OptimizationCancelled(index, list(self.loss_trace))

    def evaluate(self, theta) -> Tuple[float, np.ndarray]:
        """Return ``(loss, grad)`` at ``theta``, solving only when it changed."""
        theta = np.array(theta, dtype=float).reshape(-1)
        if self._is_cached(theta):
            return self._last_loss, self._last_grad.copy()

        try:
            loss, grad = self._compute(theta)
        except (InvalidInputError, NumericalFailureError) as exc:
            if not self.failure_tolerant:
                raise
            loss, grad = self._penalty(exc)
        else:
            self.evaluations += 1
            self.loss_trace.append(loss)
            self._last_good_grad = grad.copy()
            if loss < self.best_loss:
                self.best_loss = loss
                self.best_theta = theta.copy()
            self._report(loss)

        self._last_theta = theta
        self._last_loss = loss
        self._last_grad = grad
        return loss, grad.copy()

    def cost(self, theta) -> float:
        return self.evaluate(theta)[0]

    def gradient(self, theta) -> np.ndarray:
        return self.evaluate(theta)[1]

    def __call__(self, theta) -> Tuple[float, np.ndarray]:
        return self.evaluate(theta)
