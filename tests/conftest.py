"""Shared fixtures for z-score strategy tests."""

import os
import sys

import pandas
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


def make_price_frame(close_list, start: str = "2024-01-01 00:00:00") -> pandas.DataFrame:
    """Return hourly bars with the given closes."""
    return pandas.DataFrame(
        {
            "time": pandas.date_range(start, periods=len(close_list), freq="h", tz="UTC"),
            "close": [float(value) for value in close_list],
        }
    )


@pytest.fixture
def scenario_price_frame() -> pandas.DataFrame:
    """Return the five bar price series used in the scenario checks."""
    return make_price_frame([100, 102, 101, 105, 99])


@pytest.fixture
def oscillating_price_frame() -> pandas.DataFrame:
    """Return a noisy oscillating series long enough for several trades."""
    close_list = []
    for bar_index in range(240):
        cycle_offset = (bar_index % 24) - 12
        close_list.append(100.0 + 3.0 * cycle_offset / 12 + ((bar_index * 7) % 5) * 0.3)
    return make_price_frame(close_list)
