"""Performance metrics derived from a simulated backtest."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

import numpy
import pandas

LOGGER = logging.getLogger(__name__)

MINUTES_PER_YEAR = 365 * 24 * 60

# Number of bars per year for each supported bar interval.
ANNUALIZATION_FACTORS: Dict[str, float] = {
    "1m": MINUTES_PER_YEAR,
    "5m": MINUTES_PER_YEAR / 5,
    "10m": MINUTES_PER_YEAR / 10,
    "15m": MINUTES_PER_YEAR / 15,
    "30m": MINUTES_PER_YEAR / 30,
    "60m": 365 * 24,
    "1h": 365 * 24,
    "4h": 365 * 24 / 4,
    "1d": 365,
}
DEFAULT_ANNUALIZATION_FACTOR = 365 * 24

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
NOT_AVAILABLE = "N/A"

DISPLAY_LABELS: Dict[str, str] = {
    "sharpe_ratio": "Sharpe Ratio",
    "calmar_ratio": "Calmar Ratio",
    "maximum_drawdown": "Max Drawdown",
    "annualized_return": "Annualized Return",
    "total_return": "Total Return",
    "number_of_trades": "Number of Trades",
    "trade_frequency_percentage": "Trade Frequency %",
    "win_rate_percentage": "Win Rate %",
    "start_date": "Start Date",
    "end_date": "End Date",
    "period_days": "Period (days)",
}


@dataclass(frozen=True)
class StrategyMetrics:
    """Aggregate metrics describing backtest performance.

    Ratio fields are rounded to four decimal places and the win rate to two.
    ``sharpe_ratio`` and ``calmar_ratio`` are ``NaN`` when undefined.
    """

    sharpe_ratio: float
    calmar_ratio: float
    maximum_drawdown: float
    annualized_return: float
    total_return: float
    number_of_trades: int
    trade_frequency_percentage: float
    win_rate_percentage: float
    start_date: str
    end_date: str
    period_days: int

    def to_dict(self) -> Dict[str, Any]:
        """Return the metrics keyed by their display labels."""
        return {
            DISPLAY_LABELS[field_name]: value
            for field_name, value in asdict(self).items()
        }


def _round_preserving_nan(value: float, decimals: int) -> float:
    if math.isnan(value):
        return math.nan
    return round(float(value), decimals)


def _format_timestamp(timestamp: pandas.Timestamp) -> str:
    timestamp = pandas.Timestamp(timestamp)
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC")
    return timestamp.strftime(DATE_FORMAT)


class MetricsCalculator:
    """Derive risk-adjusted metrics from simulated bars.

    Parameters
    ----------
    interval: str
        Bar interval label such as ``"1h"`` or ``"1d"``. It selects the
        annualization factor; unknown labels fall back to hourly bars.
    """

    def __init__(self, interval: str = "1h") -> None:
        if interval not in ANNUALIZATION_FACTORS:
            LOGGER.warning(
                "Unknown interval %s; using hourly annualization", interval
            )
        self.interval = interval
        self.annualizer = float(
            ANNUALIZATION_FACTORS.get(interval, DEFAULT_ANNUALIZATION_FACTOR)
        )

    @staticmethod
    def empty_metrics() -> StrategyMetrics:
        """Return the metrics record used when no bars can be evaluated."""
        return StrategyMetrics(
            sharpe_ratio=math.nan,
            calmar_ratio=math.nan,
            maximum_drawdown=0.0,
            annualized_return=0.0,
            total_return=0.0,
            number_of_trades=0,
            trade_frequency_percentage=0.0,
            win_rate_percentage=0.0,
            start_date=NOT_AVAILABLE,
            end_date=NOT_AVAILABLE,
            period_days=0,
        )

    @staticmethod
    def calculate_win_rate(simulated_frame: pandas.DataFrame) -> float:
        """Return the percentage of closed round trips that made money.

        A round trip closes on a bar where the position returns to exactly
        ``0`` after being non-zero. Its profit is the change in cumulative
        PnL from the first bar of the closed run to the closing bar. A direct
        flip from long to short does not close a round trip.
        """
        position_list: List[int] = [int(value) for value in simulated_frame["position"]]
        cumulative_pnl_list: List[float] = [
            float(value) for value in simulated_frame["cumulative_pnl"]
        ]

        trade_end_index_list: List[int] = []
        previous_position = 0
        for bar_index, current_position in enumerate(position_list):
            if previous_position != 0 and current_position == 0:
                trade_end_index_list.append(bar_index)
            previous_position = current_position

        if not trade_end_index_list:
            return 0.0

        winning_trade_count = 0
        for end_index in trade_end_index_list:
            held_position = position_list[end_index - 1]
            start_index = end_index - 1
            while start_index >= 0 and position_list[start_index] == held_position:
                start_index -= 1
            start_index += 1
            if start_index < end_index:
                trade_pnl = cumulative_pnl_list[end_index] - cumulative_pnl_list[start_index]
                if trade_pnl > 0:
                    winning_trade_count += 1

        return winning_trade_count / len(trade_end_index_list) * 100

    def calculate_all_metrics(
        self, simulated_frame: pandas.DataFrame, window_size: int
    ) -> StrategyMetrics:
        """Compute the full metrics record for ``simulated_frame``.

        Only bars with a defined ``pnl`` are considered. When none remain, or
        the frame is shorter than ``window_size`` so no position could ever be
        taken, :meth:`empty_metrics` is returned.
        """
        if simulated_frame.empty or "pnl" not in simulated_frame.columns:
            return self.empty_metrics()
        valid_frame = simulated_frame.loc[simulated_frame["pnl"].notna()]
        if valid_frame.empty or len(simulated_frame) < window_size:
            return self.empty_metrics()

        pnl_values = valid_frame["pnl"].to_numpy(dtype=float)
        bar_count = len(pnl_values)
        mean_pnl = float(numpy.mean(pnl_values))
        standard_deviation_pnl = float(numpy.std(pnl_values))
        if bar_count > 1 and standard_deviation_pnl != 0:
            sharpe_ratio = mean_pnl / standard_deviation_pnl * math.sqrt(self.annualizer)
        else:
            sharpe_ratio = math.nan

        maximum_drawdown = float(valid_frame["drawdown"].min())
        annualized_return = mean_pnl * self.annualizer
        if maximum_drawdown != 0:
            calmar_ratio = annualized_return / abs(maximum_drawdown)
        else:
            calmar_ratio = math.nan
        total_return = float(valid_frame["cumulative_pnl"].iloc[-1])
        number_of_trades = int(math.floor(float(valid_frame["trades"].sum())))
        effective_period_count = bar_count - window_size
        if effective_period_count > 0:
            trade_frequency = number_of_trades / effective_period_count * 100
        else:
            trade_frequency = 0.0
        win_rate = self.calculate_win_rate(valid_frame)

        start_timestamp = pandas.Timestamp(valid_frame["time"].iloc[0])
        end_timestamp = pandas.Timestamp(valid_frame["time"].iloc[-1])
        period_days = int(
            math.floor((end_timestamp - start_timestamp) / pandas.Timedelta(days=1))
        )

        LOGGER.debug(
            "Computed metrics over %d bars (annualizer %s)", bar_count, self.annualizer
        )
        return StrategyMetrics(
            sharpe_ratio=_round_preserving_nan(sharpe_ratio, 4),
            calmar_ratio=_round_preserving_nan(calmar_ratio, 4),
            maximum_drawdown=_round_preserving_nan(maximum_drawdown, 4),
            annualized_return=_round_preserving_nan(annualized_return, 4),
            total_return=_round_preserving_nan(total_return, 4),
            number_of_trades=number_of_trades,
            trade_frequency_percentage=_round_preserving_nan(trade_frequency, 4),
            win_rate_percentage=_round_preserving_nan(win_rate, 2),
            start_date=_format_timestamp(start_timestamp),
            end_date=_format_timestamp(end_timestamp),
            period_days=period_days,
        )
