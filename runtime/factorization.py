"""Choice and construction of the equilibrium-matrix factorization.

``A = Cf^T Q Cf`` is symmetric; it is positive definite whenever every
force density is strictly positive. The strategy is picked once from the
problem bounds; a failing SPD factorization degrades to the general path for
that call only.
"""

from __future__ import annotations

import enum
import logging

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import splu

from core.exceptions import FactorizationError
from geometry.problem import Bounds

logger = logging.getLogger("theseus")


class FactorizationStrategy(enum.Enum):
    CHOLESKY = "cholesky"
    LDL = "ldl"

    @classmethod
    def from_bounds(cls, bounds: Bounds) -> "FactorizationStrategy":
        """SPD when every lower bound is strictly positive, general otherwise."""
        lower = np.asarray(bounds.lower, dtype=float)
        if lower.size and np.all(lower > 0.0):
            return cls.CHOLESKY
        return cls.LDL


class Factorization:
    """A factorized system ready for repeated solves."""

    def __init__(self, lu, strategy: FactorizationStrategy, size: int) -> None:
        self._lu = lu
        self.strategy = strategy
        self.size = size

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        rhs = np.asarray(rhs, dtype=float)
        if self.size == 0:
            return np.zeros_like(rhs)
        return self._lu.solve(rhs)


def _factorize_spd(A: sp.csc_matrix, tol: float) -> Factorization:
    # Symmetric-mode LU without pivoting: U's diagonal holds the LDL^T pivots,
    # all positive iff A is positive definite.
    try:
        lu = splu(
            A,
            permc_spec="MMD_AT_PLUS_A",
            diag_pivot_thresh=0.0,
            options={"SymmetricMode": True},
        )
    except RuntimeError as exc:
        raise FactorizationError(
            f"SPD factorization failed: {exc}", strategy="cholesky"
        ) from exc

    if not np.array_equal(lu.perm_r, lu.perm_c):
        raise FactorizationError(
            "SPD factorization needed off-diagonal pivoting", strategy="cholesky"
        )
    pivots = lu.U.diagonal()
    scale = float(np.max(np.abs(pivots))) if pivots.size else 0.0
    if not np.all(np.isfinite(pivots)) or scale == 0.0:
        raise FactorizationError("SPD factorization produced invalid pivots", strategy="cholesky")
    if np.any(pivots <= tol * scale):
        raise FactorizationError(
            f"matrix is not positive definite (min pivot {pivots.min():.3e})",
            strategy="cholesky",
        )
    return Factorization(lu, FactorizationStrategy.CHOLESKY, A.shape[0])


def _factorize_general(A: sp.csc_matrix) -> Factorization:
    try:
        lu = splu(A, permc_spec="COLAMD")
    except RuntimeError as exc:
        raise FactorizationError(
            f"symmetric-indefinite factorization failed: {exc}", strategy="ldl"
        ) from exc
    return Factorization(lu, FactorizationStrategy.LDL, A.shape[0])


def factorize(
    A: sp.spmatrix,
    strategy: FactorizationStrategy,
    tol: float = 1e-12,
) -> Factorization:
    """Factorize ``A`` with the requested strategy; no fallback here."""
    A = sp.csc_matrix(A)
    n = A.shape[0]
    if n == 0:
        return Factorization(None, strategy, 0)
    if strategy is FactorizationStrategy.CHOLESKY:
        return _factorize_spd(A, tol)
    return _factorize_general(A)


def factorize_with_fallback(
    A: sp.spmatrix,
    strategy: FactorizationStrategy,
    tol: float = 1e-12,
) -> tuple[Factorization, bool]:
    """Factorize, retrying with the general path if the SPD path fails.

    Returns the factorization and whether the fallback was used.
    """
    if strategy is FactorizationStrategy.LDL:
        return factorize(A, strategy, tol), False
    try:
        return factorize(A, strategy, tol), False
    except FactorizationError as exc:
        logger.debug("Cholesky path rejected (%s); retrying with LDL.", exc)
        return factorize(A, FactorizationStrategy.LDL, tol), True
