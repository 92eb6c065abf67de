# runtime/optimizer.py

import logging
from typing import List, Optional

import numpy as np

from core.exceptions import (
    NoSolutionError,
    NumericalFailureError,
    OptimizationCancelled,
)
from geometry.problem import OptimizationState, Problem, SolverResult
from runtime.evaluation import EvaluationCache, ProgressCallback
from runtime.factorization import FactorizationStrategy
from runtime.fdm import FdmCache, compute_geometry, solve_fdm
from runtime.packing import (
    pack_parameters,
    parameter_bounds,
    project_to_bounds,
    projected_gradient,
    unpack_parameters,
)
from runtime.steppers.base import BaseSearch, SearchOutcome
from runtime.steppers.lbfgsb import LBFGSBSearch

logger = logging.getLogger("theseus")

# L-BFGS-B status for a line-search or evaluation breakdown
_STATUS_ABNORMAL = 2

CONVERGED = "converged"
MAX_ITERATIONS = "max iterations reached"


def relative_change(window) -> float:
    """Spread of a loss window relative to its magnitude (floored at one)."""
    values = np.asarray(window, dtype=float)
    scale = max(abs(values[0]), abs(values[-1]), 1.0)
    return float((values.max() - values.min()) / scale)


def restart_point(
    theta: np.ndarray,
    lb: np.ndarray,
    ub: np.ndarray,
    restart: int,
    scale: float,
) -> np.ndarray:
    """Nudge interior, finite-range entries toward their bound midpoint.

    ``x + scale * restart * (mid - x)``; entries sitting on a bound or with an
    infinite side are left alone.
    """
    x = np.array(theta, dtype=float)
    finite = np.isfinite(lb) & np.isfinite(ub)
    interior = finite & (x > lb) & (x < ub)
    mid = np.zeros_like(x)
    mid[finite] = 0.5 * (lb[finite] + ub[finite])
    step = min(scale * restart, 1.0)
    x[interior] += step * (mid[interior] - x[interior])
    return project_to_bounds(x, lb, ub)


class ConstrainedOptimizer:
    """Box-constrained quasi-Newton driver with bounded restarts.

    One call to ``run`` goes through
    ``Initializing -> Searching -> {Converged, MaxIterExceeded,
    NumericalFailure, Cancelled}``, with ``Restarting`` looping back into
    ``Searching`` after a sub-search that neither converged nor was
    cancelled. Every sub-search gets its own forward-solve workspace,
    evaluation cache and quasi-Newton memory; the global best point and the
    cumulative iteration count live here and survive restarts.
    """

    def __init__(
        self,
        problem: Problem,
        search: Optional[BaseSearch] = None,
        progress_callback: Optional[ProgressCallback] = None,
        report_frequency: Optional[int] = None,
    ) -> None:
        self.problem = problem
        opts = problem.solver
        self.search = search or LBFGSBSearch(memory=int(opts.get("lbfgs_memory", 10)))
        self.progress_callback = progress_callback
        if report_frequency is None:
            report_frequency = opts.get("report_frequency", 1)
        self.report_frequency = max(int(report_frequency or 1), 1)

        self.max_iterations = int(opts.get("max_iterations", 500))
        self.abs_tol = float(opts.get("absolute_tolerance", 1e-6))
        self.rel_tol = float(opts.get("relative_tolerance", 1e-6))
        self.max_restarts = int(opts.get("max_restarts", 3))
        self.min_iterations = int(opts.get("min_iterations", 10))
        self.window = max(int(opts.get("convergence_window", 5)), 1)
        self.min_restart_budget = int(opts.get("min_restart_budget", 5))
        self.perturbation_scale = float(opts.get("perturbation_scale", 0.01))

        self.strategy = FactorizationStrategy.from_bounds(problem.bounds)
        self.lb, self.ub = parameter_bounds(problem)

        self.best_loss = float("inf")
        self.best_theta: Optional[np.ndarray] = None
        self.best_history: List[float] = []
        self.loss_trace: List[float] = []
        self.total_iterations = 0
        self.total_evaluations = 0
        self.restarts = 0
        self.fallbacks = 0

    def __repr__(self):
        msg = f"""### OPTIMIZER ###
STRATEGY:\t {self.strategy.value}
SEARCH:\t {self.search}
MAX ITERATIONS:\t {self.max_iterations}
MAX RESTARTS:\t {self.max_restarts}
############"""
        return msg

    # ------------------------------------------------------------------
    # Convergence
    # ------------------------------------------------------------------
    def _is_converged(self, cache: EvaluationCache, theta: np.ndarray, local_iter: int) -> bool:
        if self.total_iterations + local_iter < self.min_iterations:
            return False
        trace = cache.loss_trace
        if len(trace) < self.window:
            return False
        grad = cache.gradient(theta)
        pg_norm = float(np.linalg.norm(projected_gradient(theta, grad, self.lb, self.ub)))
        if pg_norm > self.abs_tol:
            return False
        rel = relative_change(trace[-self.window:])
        if rel > self.rel_tol:
            return False
        logger.debug(
            "Convergence test passed: |pg|=%.3e rel=%.3e after %d iterations.",
            pg_norm,
            rel,
            self.total_iterations + local_iter,
        )
        return True

    # ------------------------------------------------------------------
    # Sub-search bookkeeping
    # ------------------------------------------------------------------
    def _absorb(self, cache: EvaluationCache) -> None:
        """Merge one sub-search's trace and best point into the global state."""
        for loss in cache.loss_trace:
            self.best_history.append(min(loss, self.best_history[-1]) if self.best_history else loss)
        self.loss_trace.extend(cache.loss_trace)
        self.total_evaluations += cache.evaluations
        self.fallbacks += cache.fdm.fallback_count
        if cache.best_theta is not None and cache.best_loss < self.best_loss:
            self.best_loss = cache.best_loss
            self.best_theta = cache.best_theta.copy()

    def _sub_search(self, x0: np.ndarray, budget: int):
        fdm = FdmCache.new(self.problem, self.strategy)
        cache = EvaluationCache(
            self.problem,
            self.lb,
            self.ub,
            progress_callback=self.progress_callback,
            report_frequency=self.report_frequency,
            failure_tolerant=True,
            fdm_cache=fdm,
            evaluation_offset=self.total_evaluations,
            penalty_reference=self.best_loss,
        )
        counter = {"iter": 0}

        def _check(theta, _fun):
            counter["iter"] += 1
            return self._is_converged(cache, theta, counter["iter"])

        try:
            outcome = self.search.run(
                cache.cost, cache.gradient, x0, self.lb, self.ub, budget, _check
            )
            # The engine may stop on its own (status 0); test that point too.
            converged = outcome.stopped_by_callback or (
                outcome.status == 0
                and outcome.x is not None
                and self._is_converged(cache, np.asarray(outcome.x, dtype=float), outcome.nit)
            )
        except OptimizationCancelled as exc:
            self._absorb(cache)
            self.total_iterations += counter["iter"]
            raise OptimizationCancelled(exc.evaluation, list(self.loss_trace)) from exc
        self._absorb(cache)
        return outcome, cache, converged

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------
    def run(self, state: OptimizationState) -> SolverResult:
        """Optimize from ``state`` and commit the best point back into it."""
        problem = self.problem
        theta = project_to_bounds(pack_parameters(problem, state), self.lb, self.ub)
        logger.info(
            "Starting optimization: %d parameters, %s factorization, budget %d iterations.",
            theta.size,
            self.strategy.value,
            self.max_iterations,
        )

        converged = False
        failure_message: Optional[str] = None
        outcome: Optional[SearchOutcome] = None

        while True:
            budget = self.max_iterations - self.total_iterations
            outcome, cache, converged = self._sub_search(theta, budget)
            self.total_iterations += outcome.nit

            if converged:
                failure_message = None
                break

            if outcome.status == _STATUS_ABNORMAL or cache.best_theta is None:
                failure_message = outcome.message
                logger.warning(
                    "Sub-search %d ended abnormally: %s (%d failed evaluations).",
                    self.restarts,
                    outcome.message,
                    cache.failures,
                )
            else:
                failure_message = None
                logger.info(
                    "Sub-search %d stopped without convergence after %d iterations: %s",
                    self.restarts,
                    outcome.nit,
                    outcome.message,
                )

            remaining = self.max_iterations - self.total_iterations
            if self.restarts >= self.max_restarts or remaining < self.min_restart_budget:
                break

            self.restarts += 1
            start = self.best_theta if self.best_theta is not None else theta
            theta = restart_point(
                start, self.lb, self.ub, self.restarts, self.perturbation_scale
            )
            logger.info(
                "Restart %d/%d from best loss %.6e (%d iterations left).",
                self.restarts,
                self.max_restarts,
                self.best_loss,
                remaining,
            )

        if self.best_theta is None:
            if self.total_evaluations == 0 and outcome is not None and outcome.x is None:
                raise NoSolutionError("quasi-Newton search produced no point at all")
            raise NumericalFailureError(
                "every evaluation failed; no finite objective value was found"
                + (f" ({failure_message})" if failure_message else "")
            )

        if converged:
            reason = CONVERGED
        elif failure_message is not None:
            reason = f"numerical failure: {failure_message}"
        else:
            reason = MAX_ITERATIONS

        result = self._finalize(state, converged, reason)
        logger.info(
            "Optimization finished (%s): loss %.6e after %d iterations, %d restarts.",
            reason,
            self.best_loss,
            self.total_iterations,
            self.restarts,
        )
        return result

    def _finalize(self, state: OptimizationState, converged: bool, reason: str) -> SolverResult:
        problem = self.problem
        q, anchors = unpack_parameters(problem, self.best_theta)
        fdm = FdmCache.new(problem, self.strategy)
        solve_fdm(fdm, q, problem, anchors)
        compute_geometry(fdm, problem)
        if fdm.fallback_count:
            logger.debug("Final solve used the LDL fallback.")

        state.force_densities = q.copy()
        state.variable_anchor_positions = anchors.copy()
        state.iterations = self.total_iterations
        state.loss_trace = list(self.loss_trace)

        return SolverResult(
            q=q,
            anchor_positions=anchors,
            xyz=fdm.xyz.copy(),
            member_lengths=fdm.member_lengths.copy(),
            member_forces=fdm.member_forces.copy(),
            reactions=fdm.reactions.copy(),
            loss_trace=list(self.loss_trace),
            iterations=self.total_iterations,
            converged=converged,
            termination_reason=reason,
            restarts=self.restarts,
            factorization=self.strategy.value,
        )


def optimize(
    problem: Problem,
    state: OptimizationState,
    progress_callback: Optional[ProgressCallback] = None,
    report_frequency: Optional[int] = None,
) -> SolverResult:
    """Run the constrained optimizer on ``problem`` starting from ``state``.

    ``state`` is updated in place with the best point found. Raises
    ``OptimizationCancelled`` if the callback stops the run, and
    ``NumericalFailureError``/``NoSolutionError`` when no usable point
    exists.
    """
    optimizer = ConstrainedOptimizer(
        problem,
        progress_callback=progress_callback,
        report_frequency=report_frequency,
    )
    return optimizer.run(state)


__all__ = ["ConstrainedOptimizer", "optimize", "relative_change", "restart_point"]
