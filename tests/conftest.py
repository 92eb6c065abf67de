"""Pytest configuration and test categorization.

Tests stay in one flat `tests/` directory; markers derived from file names
(`unit`, `regression`, `e2e`, `benchmark`) let CI run targeted subsets.
"""

from __future__ import annotations

import os
import pathlib
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

_MARKERS = {
    "unit": "fast, isolated checks of one component",
    "regression": "pins previously fixed numerical behavior",
    "e2e": "runs the command-line driver in a subprocess",
    "benchmark": "timing-oriented runs, excluded by default in CI",
}


def pytest_configure(config: pytest.Config) -> None:
    for name, text in _MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {text}")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Auto-apply test category markers based on filename conventions."""
    for item in items:
        name = pathlib.Path(str(item.fspath)).name.lower()

        if "benchmark" in name:
            item.add_marker(pytest.mark.benchmark)
        elif "e2e" in name or "end_to_end" in name:
            item.add_marker(pytest.mark.e2e)
        elif "regression" in name:
            item.add_marker(pytest.mark.regression)
        else:
            item.add_marker(pytest.mark.unit)
