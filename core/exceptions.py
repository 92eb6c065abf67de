"""Custom exception types for the Theseus FDM optimizer."""

from __future__ import annotations

from typing import Sequence


class TheseusError(Exception):
    """Base class for domain-specific errors."""


class ProblemDefinitionError(TheseusError):
    """Raised when a problem's topology, bounds or objectives are inconsistent."""


class InvalidInputError(TheseusError):
    """Raised when a parameter vector contains NaN or Inf."""

    def __init__(self, message: str | None = None, *, index: int | None = None) -> None:
        if message is None:
            message = "theta contains NaN or Inf"
            if index is not None:
                message = f"{message} (first offending entry at index {index})"
        super().__init__(message)
        self.index = index


class NumericalFailureError(TheseusError):
    """Raised when the forward/adjoint solve produces unusable numbers."""


class FactorizationError(NumericalFailureError):
    """Raised when the equilibrium matrix cannot be factorized."""

    def __init__(self, message: str, *, strategy: str | None = None) -> None:
        super().__init__(message)
        self.strategy = strategy


class OptimizationCancelled(TheseusError):
    """Raised when the progress callback asks the optimizer to stop."""

    def __init__(
        self,
        evaluation: int,
        loss_trace: Sequence[float] = (),
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"cancelled by progress callback at evaluation {evaluation}"
        super().__init__(message)
        self.evaluation = evaluation
        self.loss_trace = list(loss_trace)


class NoSolutionError(TheseusError):
    """Raised when the quasi-Newton search returns no best point at all."""


__all__ = [
    "TheseusError",
    "ProblemDefinitionError",
    "InvalidInputError",
    "NumericalFailureError",
    "FactorizationError",
    "OptimizationCancelled",
    "NoSolutionError",
]
