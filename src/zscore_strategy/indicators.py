"""Rolling statistics used to score prices against their recent history.

Each bar's mean and standard deviation are computed directly from the closes
inside its own window rather than from a running sum. The value for a bar
therefore depends only on that window, and recomputing it over a trailing
slice of the series yields the identical float.
"""

from __future__ import annotations

from typing import Tuple

import numpy
import pandas
from numpy.lib.stride_tricks import sliding_window_view

from .errors import DataUnavailableError, InvalidParameterError

WINDOW_BLOCK_ROWS = 1024


def _validate_window(window_size: int) -> None:
    if int(window_size) != window_size or window_size < 1:
        raise InvalidParameterError(
            f"window_size must be a positive integer, got {window_size!r}"
        )


def rolling_zscore(price_series: pandas.Series, window_size: int) -> pandas.DataFrame:
    """Calculate the rolling mean, standard deviation and z-score.

    Parameters
    ----------
    price_series: pandas.Series
        Closing prices ordered from oldest to newest.
    window_size: int
        Number of bars in each lookback window.

    Returns
    -------
    pandas.DataFrame
        Data frame with ``mean``, ``std`` and ``zscore`` columns aligned to
        ``price_series``. The first ``window_size - 1`` rows are ``NaN``.
        The standard deviation uses the population denominator
        (``window_size``). When it is zero the z-score is ``0.0``.
        Windows are reduced in blocks of ``WINDOW_BLOCK_ROWS`` rows, so
        memory grows with the series length rather than with
        ``bars x window_size``.
    """
    _validate_window(window_size)
    window_size = int(window_size)
    close_values = price_series.to_numpy(dtype=float)
    bar_count = len(close_values)
    mean_values = numpy.full(bar_count, numpy.nan)
    std_values = numpy.full(bar_count, numpy.nan)
    zscore_values = numpy.full(bar_count, numpy.nan)

    if bar_count >= window_size:
        windows = sliding_window_view(close_values, window_size)
        # Reductions run over blocks of windows so temporaries stay bounded
        # by WINDOW_BLOCK_ROWS x window_size.
        for block_start in range(0, len(windows), WINDOW_BLOCK_ROWS):
            block_stop = min(block_start + WINDOW_BLOCK_ROWS, len(windows))
            window_block = windows[block_start:block_stop]
            block_means = window_block.mean(axis=1)
            block_stds = window_block.std(axis=1)
            # A flat window has no dispersion even if the mean rounds away
            # from the closes.
            flat_window_mask = window_block.max(axis=1) == window_block.min(axis=1)
            block_stds = numpy.where(flat_window_mask, 0.0, block_stds)
            output_slice = slice(window_size - 1 + block_start, window_size - 1 + block_stop)
            latest_closes = close_values[output_slice]
            with numpy.errstate(divide="ignore", invalid="ignore"):
                block_zscores = numpy.where(
                    block_stds != 0,
                    (latest_closes - block_means) / block_stds,
                    0.0,
                )
            mean_values[output_slice] = block_means
            std_values[output_slice] = block_stds
            zscore_values[output_slice] = block_zscores

    return pandas.DataFrame(
        {"mean": mean_values, "std": std_values, "zscore": zscore_values},
        index=price_series.index,
    )


def latest_zscore(
    price_series: pandas.Series, window_size: int
) -> Tuple[float, float, float]:
    """Return ``(mean, std, zscore)`` for the last bar of ``price_series``.

    Raises
    ------
    DataUnavailableError
        If fewer than ``window_size`` closes are available.
    """
    _validate_window(window_size)
    if len(price_series) < window_size:
        raise DataUnavailableError(
            f"Not enough data for z-score calculation: {len(price_series)} bars, "
            f"window {window_size}"
        )
    trailing_frame = rolling_zscore(price_series.iloc[-int(window_size):], window_size)
    last_row = trailing_frame.iloc[-1]
    return float(last_row["mean"]), float(last_row["std"]), float(last_row["zscore"])


def add_zscore_columns(price_frame: pandas.DataFrame, window_size: int) -> pandas.DataFrame:
    """Return ``price_frame`` extended with ``mean``, ``std`` and ``zscore``."""
    statistics_frame = rolling_zscore(price_frame["close"], window_size)
    return price_frame.assign(
        mean=statistics_frame["mean"],
        std=statistics_frame["std"],
        zscore=statistics_frame["zscore"],
    )
