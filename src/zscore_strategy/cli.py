"""Command line interface for running z-score strategy backtests.

Price data is downloaded from Bybit unless ``--input-csv`` points to a local
file with ``time`` and ``close`` columns.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import config, data_loader, report
from .backtest import BacktestParameters, BacktestReport, run_strategy_report
from .errors import DataUnavailableError, InvalidParameterError
from .signals import LOGIC_CHOICES, SIDE_CHOICES

LOGGER = logging.getLogger(__name__)

# Bybit interval identifiers mapped to the annualization labels.
INTERVAL_LABELS = {
    "1": "1m",
    "5": "5m",
    "15": "15m",
    "30": "30m",
    "60": "1h",
    "240": "4h",
    "D": "1d",
}


def configure_logging(log_path: Path | None = None) -> None:
    """Configure logging to emit to stdout and optionally to a log file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root_logger.handlers.clear()
    root_logger.addHandler(stream_handler)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the command line interface."""
    parser = argparse.ArgumentParser(
        description="Backtest a z-score strategy and evaluate its performance."
    )
    parser.add_argument("--logic", choices=LOGIC_CHOICES, default=config.DEFAULT_LOGIC)
    parser.add_argument("--side", choices=SIDE_CHOICES, default=config.DEFAULT_SIDE)
    parser.add_argument(
        "--window", type=int, default=config.DEFAULT_WINDOW, help="Lookback window in bars."
    )
    parser.add_argument(
        "--entry-threshold", type=float, default=config.DEFAULT_ENTRY_THRESHOLD
    )
    parser.add_argument(
        "--exit-threshold", type=float, default=config.DEFAULT_EXIT_THRESHOLD
    )
    parser.add_argument("--symbol", default=config.DEFAULT_SYMBOL)
    parser.add_argument(
        "--interval",
        default=config.DEFAULT_INTERVAL,
        choices=sorted(INTERVAL_LABELS),
        help="Bybit candle interval. Defaults to '60' (hourly).",
    )
    parser.add_argument(
        "--start",
        default=config.DEFAULT_HISTORY_START,
        help="Start of the price history (ISO timestamp, UTC).",
    )
    parser.add_argument(
        "--end", default=None, help="End of the price history. Defaults to now."
    )
    parser.add_argument(
        "--input-csv",
        type=Path,
        help="Optional local CSV with time and close columns used instead of downloading.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for the per-bar CSV report. A directory receives the default file name.",
    )
    return parser


def format_report_summary(backtest_report: BacktestReport) -> str:
    """Return a plain text summary of metrics and the evaluation."""
    line_list: List[str] = [f"Data points: {backtest_report.data_points}"]
    for label, value in backtest_report.metrics.to_dict().items():
        line_list.append(f"{label}: {value}")
    recommendation = (
        "RECOMMENDED - This strategy meets all evaluation criteria"
        if backtest_report.verdict.recommended
        else "NOT RECOMMENDED - This strategy does not meet all evaluation criteria"
    )
    line_list.append(recommendation)
    line_list.extend(backtest_report.verdict.reason_texts)
    return "\n".join(line_list)


def run_cli(argument_list: Optional[List[str]] = None) -> int:
    """Parse command line arguments, run the backtest and print the summary.

    Returns the process exit status.
    """
    parser = create_parser()
    parsed_arguments = parser.parse_args(argument_list)
    parameters = BacktestParameters(
        window=parsed_arguments.window,
        entry_threshold=parsed_arguments.entry_threshold,
        exit_threshold=parsed_arguments.exit_threshold,
        logic=parsed_arguments.logic,
        side=parsed_arguments.side,
    )
    try:
        parameters.validate()
    except InvalidParameterError as parameter_error:
        parser.error(str(parameter_error))

    try:
        if parsed_arguments.input_csv is not None:
            price_frame = data_loader.load_local_history(parsed_arguments.input_csv)
        else:
            price_frame = data_loader.fetch_price_history(
                start=parsed_arguments.start,
                end=parsed_arguments.end,
                symbol=parsed_arguments.symbol,
                interval=parsed_arguments.interval,
            )
        backtest_report = run_strategy_report(
            price_frame,
            parameters,
            interval=INTERVAL_LABELS[parsed_arguments.interval],
        )
    except DataUnavailableError as data_error:
        LOGGER.error("Backtest aborted: %s", data_error)
        return 1

    print(format_report_summary(backtest_report))
    if parsed_arguments.output is not None:
        output_path = parsed_arguments.output
        if output_path.is_dir():
            output_path = output_path / report.build_report_file_name(parameters)
        report.write_backtest_report(backtest_report.results, output_path)
    return 0


def main() -> None:
    configure_logging(config.DEFAULT_LOG_PATH)
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
