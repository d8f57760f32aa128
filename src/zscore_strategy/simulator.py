"""Simulation utilities for turning positions into returns and drawdowns."""

from __future__ import annotations

import pandas


def simulate_positions(positioned_frame: pandas.DataFrame) -> pandas.DataFrame:
    """Simulate the profit and loss of a position series.

    A position held at the close of one bar earns the following bar's price
    change. No fees or slippage are deducted.

    Parameters
    ----------
    positioned_frame: pandas.DataFrame
        Data frame with ``close`` and ``position`` columns ordered by time.

    Returns
    -------
    pandas.DataFrame
        Copy of ``positioned_frame`` with the additional columns
        ``previous_position``, ``price_change_percentage``, ``trades``,
        ``pnl``, ``cumulative_pnl``, ``running_peak`` and ``drawdown``. The
        running peak starts at ``0`` before the first bar, so ``drawdown`` is
        never positive.
    """
    close_series = positioned_frame["close"].astype(float)
    position_series = positioned_frame["position"].astype("int64")

    previous_close_series = close_series.shift(1)
    price_change_series = (
        (close_series - previous_close_series) / previous_close_series
    ).fillna(0.0)
    previous_position_series = position_series.shift(1, fill_value=0).astype("int64")
    trade_series = (position_series - previous_position_series).abs().astype(float)
    pnl_series = previous_position_series * price_change_series
    cumulative_pnl_series = pnl_series.cumsum()
    running_peak_series = cumulative_pnl_series.cummax().clip(lower=0.0)
    drawdown_series = cumulative_pnl_series - running_peak_series

    return positioned_frame.assign(
        previous_position=previous_position_series,
        price_change_percentage=price_change_series,
        trades=trade_series,
        pnl=pnl_series,
        cumulative_pnl=cumulative_pnl_series,
        running_peak=running_peak_series,
        drawdown=drawdown_series,
    )
