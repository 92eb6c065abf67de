"""Package utilities for theseus-fdm.

The optimizer itself lives in top-level packages like `geometry/`,
`modules/`, and `runtime/`. This package carries the distribution version and
re-exports the entry points most callers need.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from runtime.fdm import solve_forward
from runtime.optimizer import optimize

try:
    __version__ = version("theseus-fdm")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__", "optimize", "solve_forward"]
