"""CSV export of per-bar backtest results."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import pandas

from .backtest import BacktestParameters

LOGGER = logging.getLogger(__name__)

REPORT_COLUMNS: List[str] = [
    "time",
    "close",
    "mean",
    "std",
    "zscore",
    "position",
    "trades",
    "pnl",
    "cumulative_pnl",
    "drawdown",
]
NUMERIC_REPORT_COLUMNS: List[str] = REPORT_COLUMNS[1:]
REPORT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_report_file_name(parameters: BacktestParameters) -> str:
    """Return the report file name, for example ``trend_long_130_2.0_-2.0_zscorebacktest.csv``."""
    return (
        f"{parameters.logic}_{parameters.side}_{parameters.window}_"
        f"{parameters.entry_threshold}_{parameters.exit_threshold}_zscorebacktest.csv"
    )


def build_report_frame(simulated_frame: pandas.DataFrame) -> pandas.DataFrame:
    """Select and order the exported columns.

    Times are rendered in UTC as ``YYYY-MM-DD HH:MM:SS`` strings.
    """
    time_series = pandas.to_datetime(simulated_frame["time"], utc=True)
    report_frame = simulated_frame.loc[:, REPORT_COLUMNS].copy()
    report_frame["time"] = time_series.dt.strftime(REPORT_TIME_FORMAT)
    return report_frame.reset_index(drop=True)


def write_backtest_report(simulated_frame: pandas.DataFrame, output_path: Path) -> Path:
    """Write the per-bar report to ``output_path`` as CSV.

    Undefined numeric values are written as empty fields.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report_frame = build_report_frame(simulated_frame)
    with output_path.open("w", encoding="utf-8", newline="") as file_handle:
        report_frame.to_csv(file_handle, index=False, na_rep="")
    LOGGER.info("Backtest report written to %s", output_path)
    return output_path


def read_backtest_report(report_path: Path) -> pandas.DataFrame:
    """Load a report written by :func:`write_backtest_report`.

    Numeric columns are parsed as floats with empty fields as ``NaN`` and
    ``time`` is parsed back into UTC timestamps.
    """
    report_frame = pandas.read_csv(report_path, dtype={"time": str})
    report_frame["time"] = pandas.to_datetime(
        report_frame["time"], format=REPORT_TIME_FORMAT, utc=True
    )
    for column_name in NUMERIC_REPORT_COLUMNS:
        report_frame[column_name] = pandas.to_numeric(
            report_frame[column_name], errors="coerce"
        ).astype(float)
    return report_frame
