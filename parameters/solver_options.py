# solver_options.py

from core.exceptions import ProblemDefinitionError


_INT_KEYS = (
    "max_iterations",
    "report_frequency",
    "max_restarts",
    "min_iterations",
    "convergence_window",
    "min_restart_budget",
    "lbfgs_memory",
)

_FLOAT_KEYS = (
    "absolute_tolerance",
    "relative_tolerance",
    "barrier_weight",
    "barrier_sharpness",
    "penalty_scale",
    "perturbation_scale",
    "solve_tolerance",
)


class SolverOptions:
    def __init__(self, initial_params=None):
        """
        all options are defined with underscore, _, instead of spaces
        """
        self._params = {
            # Total quasi-Newton iteration budget, shared by every restart.
            "max_iterations": 500,
            # Projected-gradient norm below which the gradient half of the
            # convergence test passes.
            "absolute_tolerance": 1e-6,
            # Relative loss change over the sliding window below which the
            # objective half of the convergence test passes.
            "relative_tolerance": 1e-6,
            # Smooth softplus barrier on finite force-density bounds.
            "barrier_weight": 10.0,
            "barrier_sharpness": 10.0,
            # Invoke the progress callback every N evaluations (0 -> 1).
            "report_frequency": 1,
            "max_restarts": 3,
            # Convergence is never declared before this many cumulative
            # iterations across all restarts.
            "min_iterations": 10,
            "convergence_window": 5,
            # A restart is only attempted while at least this many
            # iterations remain in the budget.
            "min_restart_budget": 5,
            "lbfgs_memory": 10,
            # Failed evaluations report max(|best_loss|, 1) * penalty_scale.
            "penalty_scale": 1e6,
            # Fraction of the distance to the bound midpoint applied per
            # restart when nudging the restart point.
            "perturbation_scale": 0.01,
            # Relative pivot floor used to reject an SPD factorization.
            "solve_tolerance": 1e-12,
        }
        if initial_params:
            self.update(initial_params)

    def __getattr__(self, name):
        """Attribute access for known option keys.

        ``options.max_iterations`` and ``options.get("max_iterations")`` read
        the same underlying ``_params`` entry.
        """
        params = self.__dict__.get("_params")
        if params is not None and name in params:
            return params[name]
        raise AttributeError(
            f"{type(self).__name__!s} object has no attribute {name!r}"
        )

    def __setattr__(self, name, value):
        if name == "_params":
            object.__setattr__(self, name, value)
            return
        params = self.__dict__.get("_params")
        if params is not None and name in params:
            params[name] = value
            return
        object.__setattr__(self, name, value)

    def get(self, key, default=None):
        """Retrieve an option value, or return a default if not found."""
        return self._params.get(key, default)

    def set(self, key, value):
        """Set or update an option."""
        self._params[key] = value

    def update(self, params):
        """Update multiple options at once, coercing numeric strings."""
        for key, value in dict(params).items():
            self._params[key] = _coerce(key, value)

    def __contains__(self, key):
        return key in self._params

    def __repr__(self):
        return f"SolverOptions({self._params})"

    def to_dict(self):
        """Convert the options to a dictionary for serialization."""
        return self._params


def _as_number(key, value):
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ProblemDefinitionError(
                f"solver.{key} should be numeric; got {value!r}"
            ) from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProblemDefinitionError(f"solver.{key} should be numeric; got {value!r}")
    return value


def _coerce(key, value):
    """Coerce numeric options that may parse as strings in YAML.

    PyYAML reads ``1e3`` as a string, so integer options accept any numeric
    string with an integral value.
    """
    if key in _INT_KEYS:
        number = _as_number(key, value)
        if isinstance(number, int):
            return number
        if not float(number).is_integer():
            raise ProblemDefinitionError(
                f"solver.{key} should be an integer; got {value!r}"
            )
        return int(number)
    if key in _FLOAT_KEYS:
        return float(_as_number(key, value))
    return value
