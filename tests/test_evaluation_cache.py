import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import (
    InvalidInputError,
    NumericalFailureError,
    OptimizationCancelled,
)
from modules.objectives.base import ObjectiveTerm
from modules.objectives.target_xyz import TargetXYZ
from runtime.evaluation import EvaluationCache
from runtime.packing import pack_parameters, parameter_bounds
from sample_networks import grid_nodes, grid_problem, initial_state

FREE = [1, 2, 4, 5, 6, 7, 8, 9, 10, 11, 13, 14]


class NanObjective(ObjectiveTerm):
    name = "nan"

    def contribute(self, geometry, grads):
        return float("nan")


def _setup(objectives=None, **kwargs):
    if objectives is None:
        objectives = [TargetXYZ(target=grid_nodes(4)[FREE] + [0.0, 0.0, -1.0])]
    problem = grid_problem(4, objectives=objectives)
    lb, ub = parameter_bounds(problem)
    cache = EvaluationCache(problem, lb, ub, **kwargs)
    theta = pack_parameters(problem, initial_state(problem, 1.0))
    return problem, cache, theta


def test_identical_theta_is_solved_once():
    _, cache, theta = _setup()
    loss = cache.cost(theta)
    grad = cache.gradient(theta.copy())
    assert cache.evaluations == 1
    assert cache.fdm.solve_count == 1
    assert cache.loss_trace == [loss]
    assert grad.shape == theta.shape

    cache.evaluate(theta * 1.01)
    assert cache.evaluations == 2
    assert len(cache.loss_trace) == 2


def test_returned_gradient_is_a_copy():
    _, cache, theta = _setup()
    g1 = cache.gradient(theta)
    g1[:] = 0.0
    assert np.any(cache.gradient(theta) != 0.0)


def test_non_finite_input_is_rejected_before_solving():
    _, cache, theta = _setup()
    theta[3] = np.nan
    with pytest.raises(InvalidInputError) as excinfo:
        cache.evaluate(theta)
    assert excinfo.value.index == 3
    assert cache.fdm.solve_count == 0
    assert cache.loss_trace == []


def test_non_finite_output_raises_numerical_failure():
    _, cache, theta = _setup(objectives=[NanObjective()])
    with pytest.raises(NumericalFailureError):
        cache.evaluate(theta)
    assert cache.loss_trace == []


def test_failure_tolerant_penalty_scales_with_best_loss():
    _, cache, theta = _setup(failure_tolerant=True)
    bad = theta.copy()
    bad[0] = np.inf

    penalty, grad = cache.evaluate(bad)
    assert penalty == pytest.approx(1e6)
    np.testing.assert_array_equal(grad, 0.0)

    loss, good_grad = cache.evaluate(theta)
    penalty, grad = cache.evaluate(bad)
    assert penalty == pytest.approx(max(abs(loss), 1.0) * 1e6)
    np.testing.assert_array_equal(grad, good_grad)
    assert cache.failures == 2
    assert cache.loss_trace == [loss]
    assert cache.best_loss == loss
    np.testing.assert_array_equal(cache.best_theta, theta)


def test_penalty_uses_best_loss_from_earlier_searches():
    _, cache, theta = _setup(failure_tolerant=True, penalty_reference=250.0)
    bad = theta.copy()
    bad[0] = np.nan

    penalty, _ = cache.evaluate(bad)
    assert penalty == pytest.approx(250.0 * 1e6)
    assert cache.best_theta is None

    loss = cache.cost(theta)
    assert loss < 250.0
    penalty, _ = cache.evaluate(bad)
    assert penalty == pytest.approx(max(abs(loss), 1.0) * 1e6)


def test_callback_schedule_follows_report_frequency():
    calls = []

    def callback(index, loss, xyz, q):
        calls.append(index)
        assert xyz.shape == (16, 3)
        assert q.shape == (24,)

    _, cache, theta = _setup(progress_callback=callback, report_frequency=3)
    for k in range(7):
        cache.evaluate(theta * (1.0 + 0.01 * k))
    assert calls == [1, 3, 6]


def test_callback_receives_copies():
    seen = []

    def callback(index, loss, xyz, q):
        xyz[:] = 0.0
        seen.append(index)
        return None

    _, cache, theta = _setup(progress_callback=callback)
    cache.evaluate(theta)
    assert np.any(cache.fdm.xyz != 0.0)
    assert seen == [1]


@pytest.mark.parametrize("stop_value", [False, 0])
def test_falsy_callback_return_cancels(stop_value):
    def callback(index, loss, xyz, q):
        return stop_value if index == 2 else True

    _, cache, theta = _setup(progress_callback=callback, failure_tolerant=True)
    cache.evaluate(theta)
    with pytest.raises(OptimizationCancelled) as excinfo:
        cache.evaluate(theta * 1.1)
    assert excinfo.value.evaluation == 2
    assert len(excinfo.value.loss_trace) == 2


def test_evaluation_offset_shifts_callback_index():
    calls = []
    _, cache, theta = _setup(
        progress_callback=lambda i, *_: calls.append(i),
        report_frequency=2,
        evaluation_offset=5,
    )
    cache.evaluate(theta)
    cache.evaluate(theta * 1.1)
    assert calls == [6]
