"""Quasi-Newton searches used by the optimization driver."""

from .base import BaseSearch, SearchOutcome
from .lbfgsb import LBFGSBSearch

__all__ = ["BaseSearch", "LBFGSBSearch", "SearchOutcome"]
