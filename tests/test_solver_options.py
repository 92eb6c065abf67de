import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import ProblemDefinitionError
from parameters.solver_options import SolverOptions


def test_defaults():
    opts = SolverOptions()
    assert opts.max_iterations == 500
    assert opts.get("absolute_tolerance") == 1e-6
    assert opts.min_iterations == 10
    assert opts.convergence_window == 5
    assert opts.max_restarts == 3
    assert opts.penalty_scale == 1e6
    assert "lbfgs_memory" in opts


def test_update_coerces_numeric_strings():
    opts = SolverOptions({"max_iterations": "250", "relative_tolerance": "1e-8"})
    assert opts.max_iterations == 250
    assert opts.relative_tolerance == 1e-8


def test_integer_options_accept_exponent_notation():
    # PyYAML loads ``max_iterations: 1e3`` as the string "1e3".
    opts = SolverOptions({"max_iterations": "1e3", "max_restarts": 2.0})
    assert opts.max_iterations == 1000
    assert isinstance(opts.max_iterations, int)
    assert opts.max_restarts == 2
    assert isinstance(opts.max_restarts, int)


@pytest.mark.parametrize(
    "params",
    [
        {"max_iterations": "2.5e1x"},
        {"max_iterations": "12.5"},
        {"min_iterations": True},
        {"barrier_weight": "heavy"},
        {"absolute_tolerance": None},
    ],
)
def test_bad_numeric_value_is_a_definition_error(params):
    with pytest.raises(ProblemDefinitionError) as excinfo:
        SolverOptions(params)
    assert next(iter(params)) in str(excinfo.value)


def test_attribute_and_dict_views_agree():
    opts = SolverOptions()
    opts.max_restarts = 7
    opts.set("custom_flag", True)
    assert opts.get("max_restarts") == 7
    assert opts.to_dict()["custom_flag"] is True
    assert opts.get("missing", 42) == 42
