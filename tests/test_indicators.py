"""Tests for rolling z-score statistics."""

import math

import numpy
import pandas
import pytest

from zscore_strategy.errors import DataUnavailableError, InvalidParameterError
from zscore_strategy.indicators import add_zscore_columns, latest_zscore, rolling_zscore


def test_rolling_zscore_matches_scenario_values(scenario_price_frame) -> None:
    result_frame = rolling_zscore(scenario_price_frame["close"], window_size=3)
    assert result_frame["zscore"].iloc[:2].isna().all()
    assert result_frame["mean"].iloc[:2].isna().all()
    assert result_frame["mean"].iloc[2] == pytest.approx(101.0)
    assert result_frame["std"].iloc[2] == pytest.approx(math.sqrt(2.0 / 3.0))
    assert result_frame["std"].iloc[2] == pytest.approx(0.8165, abs=1e-4)
    assert result_frame["zscore"].iloc[2] == pytest.approx(0.0)


def test_rolling_zscore_uses_population_standard_deviation() -> None:
    price_series = pandas.Series([1.0, 2.0, 3.0, 4.0, 10.0])
    result_frame = rolling_zscore(price_series, window_size=4)
    expected_std = numpy.std([2.0, 3.0, 4.0, 10.0])
    expected_mean = numpy.mean([2.0, 3.0, 4.0, 10.0])
    assert result_frame["std"].iloc[4] == pytest.approx(expected_std)
    assert result_frame["zscore"].iloc[4] == pytest.approx((10.0 - expected_mean) / expected_std)


def test_rolling_zscore_constant_series_has_zero_std_and_zscore() -> None:
    price_series = pandas.Series([0.1] * 10)
    result_frame = rolling_zscore(price_series, window_size=4)
    full_window_frame = result_frame.iloc[3:]
    assert (full_window_frame["std"] == 0.0).all()
    assert (full_window_frame["zscore"] == 0.0).all()
    assert not full_window_frame["zscore"].isna().any()


def test_rolling_zscore_window_of_one_yields_zero_zscores() -> None:
    price_series = pandas.Series([5.0, 7.0, 6.0])
    result_frame = rolling_zscore(price_series, window_size=1)
    assert list(result_frame["zscore"]) == [0.0, 0.0, 0.0]
    assert list(result_frame["mean"]) == [5.0, 7.0, 6.0]


def test_rolling_zscore_shorter_than_window_is_all_undefined() -> None:
    result_frame = rolling_zscore(pandas.Series([1.0, 2.0]), window_size=5)
    assert result_frame["zscore"].isna().all()
    assert len(result_frame) == 2


def test_rolling_zscore_rejects_non_positive_window() -> None:
    with pytest.raises(InvalidParameterError):
        rolling_zscore(pandas.Series([1.0, 2.0]), window_size=0)


def test_latest_zscore_reproduces_batch_value(oscillating_price_frame) -> None:
    """Recomputing over a trailing slice yields the batch value for the last bar."""
    window_size = 20
    batch_frame = rolling_zscore(oscillating_price_frame["close"], window_size)
    for end_index in (window_size, 57, 130, len(oscillating_price_frame)):
        trailing_series = oscillating_price_frame["close"].iloc[
            max(0, end_index - window_size - 10):end_index
        ]
        mean_value, std_value, zscore_value = latest_zscore(trailing_series, window_size)
        assert mean_value == pytest.approx(batch_frame["mean"].iloc[end_index - 1], abs=1e-12)
        assert std_value == pytest.approx(batch_frame["std"].iloc[end_index - 1], abs=1e-12)
        assert zscore_value == pytest.approx(batch_frame["zscore"].iloc[end_index - 1], abs=1e-9)


def test_latest_zscore_raises_when_history_is_short() -> None:
    with pytest.raises(DataUnavailableError):
        latest_zscore(pandas.Series([1.0, 2.0, 3.0]), window_size=4)


def test_add_zscore_columns_keeps_input_unchanged(scenario_price_frame) -> None:
    original_columns = list(scenario_price_frame.columns)
    scored_frame = add_zscore_columns(scenario_price_frame, window_size=3)
    assert list(scenario_price_frame.columns) == original_columns
    assert list(scored_frame.columns) == ["time", "close", "mean", "std", "zscore"]


def test_rolling_zscore_blocks_match_single_pass(monkeypatch: pytest.MonkeyPatch) -> None:
    """Block boundaries do not change the per-window statistics."""
    import zscore_strategy.indicators as indicators_module

    random_generator = numpy.random.default_rng(7)
    price_series = pandas.Series(100.0 + random_generator.normal(size=300).cumsum())
    single_pass_frame = rolling_zscore(price_series, window_size=20)
    monkeypatch.setattr(indicators_module, "WINDOW_BLOCK_ROWS", 16)
    blocked_frame = rolling_zscore(price_series, window_size=20)
    pandas.testing.assert_frame_equal(blocked_frame, single_pass_frame)
    for end_index in (34, 35, 36, 300):
        mean, std, zscore = latest_zscore(price_series.iloc[:end_index], 20)
        assert blocked_frame["mean"].iloc[end_index - 1] == pytest.approx(mean, abs=1e-12)
        assert blocked_frame["std"].iloc[end_index - 1] == pytest.approx(std, abs=1e-12)
        assert blocked_frame["zscore"].iloc[end_index - 1] == pytest.approx(zscore, abs=1e-9)


def test_rolling_zscore_memory_stays_bounded_for_long_history() -> None:
    """Years of hourly bars with the largest window fit in modest memory."""
    import tracemalloc

    random_generator = numpy.random.default_rng(11)
    price_series = pandas.Series(30000.0 + random_generator.normal(size=42000).cumsum())
    tracemalloc.start()
    try:
        result_frame = rolling_zscore(price_series, window_size=1000)
        _, peak_bytes = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    assert peak_bytes < 50_000_000
    assert result_frame["zscore"].iloc[:999].isna().all()
    assert not result_frame["zscore"].iloc[999:].isna().any()
