import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import (
    FactorizationError,
    InvalidInputError,
    NoSolutionError,
    NumericalFailureError,
    OptimizationCancelled,
    ProblemDefinitionError,
    TheseusError,
)


@pytest.mark.parametrize(
    "exc_type",
    [
        ProblemDefinitionError,
        InvalidInputError,
        NumericalFailureError,
        NoSolutionError,
    ],
)
def test_everything_derives_from_theseus_error(exc_type):
    assert issubclass(exc_type, TheseusError)


def test_factorization_error_is_a_numerical_failure():
    exc = FactorizationError("pivot", strategy="cholesky")
    assert isinstance(exc, NumericalFailureError)
    assert exc.strategy == "cholesky"


def test_invalid_input_message_names_the_index():
    assert "index 4" in str(InvalidInputError(index=4))
    assert InvalidInputError("custom").index is None


def test_cancellation_carries_evaluation_and_trace():
    exc = OptimizationCancelled(7, [3.0, 2.0])
    assert exc.evaluation == 7
    assert exc.loss_trace == [3.0, 2.0]
    assert "evaluation 7" in str(exc)
    assert not isinstance(exc, NumericalFailureError)
