"""Batch backtest pipeline.

Data flows one way: price bars are scored with rolling statistics, mapped
to positions, simulated into returns and drawdowns, summarized into metrics
and finally evaluated into a recommendation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import pandas

from . import config
from .errors import DataUnavailableError, InvalidParameterError
from .evaluator import EvaluationThresholds, Verdict, evaluate
from .indicators import add_zscore_columns
from .metrics import MetricsCalculator, StrategyMetrics
from .signals import LOGIC_CHOICES, SIDE_CHOICES, generate_positions
from .simulator import simulate_positions

LOGGER = logging.getLogger(__name__)

MAXIMUM_WINDOW = 1000
MAXIMUM_ABSOLUTE_THRESHOLD = 5.0


@dataclass(frozen=True)
class BacktestParameters:
    """Strategy parameters supplied by a user request."""

    window: int = config.DEFAULT_WINDOW
    entry_threshold: float = config.DEFAULT_ENTRY_THRESHOLD
    exit_threshold: float = config.DEFAULT_EXIT_THRESHOLD
    logic: str = config.DEFAULT_LOGIC
    side: str = config.DEFAULT_SIDE

    def validate(self) -> None:
        """Reject parameters outside their accepted ranges.

        Raises
        ------
        InvalidParameterError
            If the window is not in ``[1, 1000]``, the entry threshold is not
            in ``(0, 5]``, the exit threshold is not in ``[-5, 0)``, or the
            logic or side is not a supported choice.
        """
        if (
            isinstance(self.window, bool)
            or int(self.window) != self.window
            or not 1 <= self.window <= MAXIMUM_WINDOW
        ):
            raise InvalidParameterError("Window size must be between 1 and 1000")
        if (
            math.isnan(self.entry_threshold)
            or not 0 < self.entry_threshold <= MAXIMUM_ABSOLUTE_THRESHOLD
        ):
            raise InvalidParameterError("Entry threshold must be between 0 and 5")
        if (
            math.isnan(self.exit_threshold)
            or not -MAXIMUM_ABSOLUTE_THRESHOLD <= self.exit_threshold < 0
        ):
            raise InvalidParameterError("Exit threshold must be between -5 and 0")
        if self.logic not in LOGIC_CHOICES:
            raise InvalidParameterError(
                f"Logic must be one of {', '.join(LOGIC_CHOICES)}"
            )
        if self.side not in SIDE_CHOICES:
            raise InvalidParameterError(
                f"Side must be one of {', '.join(SIDE_CHOICES)}"
            )


@dataclass
class BacktestReport:
    """Complete outcome of a batch backtest."""

    parameters: BacktestParameters
    results: pandas.DataFrame
    metrics: StrategyMetrics
    verdict: Verdict

    @property
    def data_points(self) -> int:
        return len(self.results)


def run_backtest(
    price_frame: pandas.DataFrame, parameters: BacktestParameters
) -> pandas.DataFrame:
    """Run the signal and simulation stages over ``price_frame``.

    Parameters
    ----------
    price_frame: pandas.DataFrame
        Bars with ``time`` and ``close`` columns in ascending time order.
    parameters: BacktestParameters
        Strategy parameters. They are assumed to be validated already.

    Returns
    -------
    pandas.DataFrame
        One row per bar with the rolling statistics, the position and the
        simulated returns.
    """
    scored_frame = add_zscore_columns(
        price_frame.reset_index(drop=True), parameters.window
    )
    positioned_frame = generate_positions(
        scored_frame,
        parameters.entry_threshold,
        parameters.exit_threshold,
        parameters.logic,
        parameters.side,
    )
    return simulate_positions(positioned_frame)


def run_strategy_report(
    price_frame: pandas.DataFrame,
    parameters: BacktestParameters,
    interval: str = "1h",
    thresholds: EvaluationThresholds | None = None,
) -> BacktestReport:
    """Validate ``parameters``, run the backtest and evaluate the result.

    Raises
    ------
    InvalidParameterError
        If ``parameters`` fail validation. No computation is performed.
    DataUnavailableError
        If ``price_frame`` contains no bars.
    """
    parameters.validate()
    if price_frame.empty:
        raise DataUnavailableError("No price data available for the backtest")

    LOGGER.info(
        "Running %s/%s backtest over %d bars (window %d, entry %s, exit %s)",
        parameters.logic,
        parameters.side,
        len(price_frame),
        parameters.window,
        parameters.entry_threshold,
        parameters.exit_threshold,
    )
    results = run_backtest(price_frame, parameters)
    metrics = MetricsCalculator(interval).calculate_all_metrics(
        results, parameters.window
    )
    verdict = evaluate(metrics, thresholds)
    LOGGER.info(
        "Backtest finished: recommended=%s, trades=%d",
        verdict.recommended,
        metrics.number_of_trades,
    )
    return BacktestReport(
        parameters=parameters, results=results, metrics=metrics, verdict=verdict
    )
