"""Tests for the per-bar CSV report."""

import pandas
import pytest

from zscore_strategy.backtest import BacktestParameters, run_backtest
from zscore_strategy.report import (
    REPORT_COLUMNS,
    build_report_file_name,
    build_report_frame,
    read_backtest_report,
    write_backtest_report,
)


def test_report_file_name_includes_parameters() -> None:
    parameters = BacktestParameters(window=130, entry_threshold=2.0, exit_threshold=-2.0, logic="trend", side="long")
    assert build_report_file_name(parameters) == "trend_long_130_2.0_-2.0_zscorebacktest.csv"


def test_report_frame_orders_columns_and_formats_time(scenario_price_frame) -> None:
    simulated_frame = run_backtest(scenario_price_frame, BacktestParameters(window=3, entry_threshold=1.0, exit_threshold=-1.0))
    report_frame = build_report_frame(simulated_frame)
    assert list(report_frame.columns) == REPORT_COLUMNS
    assert report_frame["time"].iloc[1] == "2024-01-01 01:00:00"


def test_written_report_leaves_undefined_fields_empty(tmp_path, scenario_price_frame) -> None:
    simulated_frame = run_backtest(scenario_price_frame, BacktestParameters(window=3, entry_threshold=1.0, exit_threshold=-1.0))
    output_path = write_backtest_report(simulated_frame, tmp_path / "reports" / "report.csv")
    line_list = output_path.read_text(encoding="utf-8").splitlines()
    assert line_list[0] == "time,close,mean,std,zscore,position,trades,pnl,cumulative_pnl,drawdown"
    assert line_list[1].startswith("2024-01-01 00:00:00,100.0,,,,0,")
    assert len(line_list) == len(scenario_price_frame) + 1


def test_report_round_trip_reproduces_numeric_columns(tmp_path, oscillating_price_frame) -> None:
    simulated_frame = run_backtest(
        oscillating_price_frame,
        BacktestParameters(window=12, entry_threshold=0.8, exit_threshold=-0.8, logic="trend", side="both"),
    )
    output_path = write_backtest_report(simulated_frame, tmp_path / "report.csv")
    parsed_frame = read_backtest_report(output_path)
    for column_name in REPORT_COLUMNS[1:]:
        pandas.testing.assert_series_equal(
            parsed_frame[column_name],
            simulated_frame[column_name].astype(float),
            check_names=False,
            rtol=1e-12,
            atol=1e-15,
        )
    assert (parsed_frame["time"] == simulated_frame["time"]).all()
