# runtime/steppers/lbfgsb.py

import logging

import numpy as np
from scipy.optimize import Bounds, minimize

from .base import BaseSearch, SearchOutcome

logger = logging.getLogger("theseus")


class LBFGSBSearch(BaseSearch):
    """Limited-memory BFGS with box constraints (SciPy ``L-BFGS-B``).

    The engine's own stopping tests are switched off (``ftol = gtol = 0``);
    the sub-search ends on the iteration budget, on a line-search failure
    reported by the engine, or when ``callback`` returns ``True``.
    """

    def __init__(self, memory: int = 10, max_line_search: int = 20):
        self.memory = int(memory)
        self.max_line_search = int(max_line_search)

    def run(self, fun, jac, x0, lb, ub, max_iter, callback=None):
        x0 = np.asarray(x0, dtype=float)
        max_iter = max(int(max_iter), 1)
        stopped = {"flag": False}

        def _on_iteration(intermediate_result):
            if callback is None:
                return
            if callback(np.asarray(intermediate_result.x), float(intermediate_result.fun)):
                stopped["flag"] = True
                raise StopIteration

        res = minimize(
            fun,
            x0,
            jac=jac,
            method="L-BFGS-B",
            bounds=Bounds(lb, ub),
            callback=_on_iteration,
            options={
                "maxiter": max_iter,
                "maxfun": 20 * max_iter + 20,
                "maxcor": self.memory,
                "maxls": self.max_line_search,
                "ftol": 0.0,
                "gtol": 0.0,
            },
        )
        x = None if res.x is None else np.asarray(res.x, dtype=float)
        fun_val = float(res.fun) if res.fun is not None else float("nan")
        logger.debug(
            "L-BFGS-B sub-search finished: status=%s nit=%s message=%s",
            res.status,
            res.nit,
            res.message,
        )
        return SearchOutcome(
            x=x,
            fun=fun_val,
            nit=int(getattr(res, "nit", 0)),
            status=int(res.status),
            message=str(res.message),
            stopped_by_callback=stopped["flag"],
        )
