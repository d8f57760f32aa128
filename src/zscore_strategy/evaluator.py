"""Pass/fail evaluation of backtest metrics."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List

from .metrics import StrategyMetrics

PASS_MARK = "✓"
FAIL_MARK = "✗"


@dataclass(frozen=True)
class EvaluationThresholds:
    """Minimum requirements a strategy must meet to be recommended."""

    minimum_sharpe_ratio: float = 1.0
    minimum_calmar_ratio: float = 1.0
    maximum_drawdown_floor: float = -0.3
    minimum_trades: int = 10


@dataclass(frozen=True)
class EvaluationReason:
    """Outcome of a single evaluation rule."""

    passed: bool
    text: str


@dataclass
class Verdict:
    """Overall recommendation with one reason per rule.

    Reasons are ordered Sharpe ratio, Calmar ratio, maximum drawdown and
    number of trades.
    """

    recommended: bool
    reasons: List[EvaluationReason] = field(default_factory=list)

    @property
    def reason_texts(self) -> List[str]:
        return [reason.text for reason in self.reasons]


def _format_ratio(value: float) -> str:
    return "N/A" if math.isnan(value) else f"{value:.2f}"


def _check_minimum_ratio(label: str, value: float, minimum: float) -> EvaluationReason:
    passed = not math.isnan(value) and value >= minimum
    if passed:
        return EvaluationReason(True, f"{PASS_MARK} {label} ({_format_ratio(value)}) >= {minimum}")
    return EvaluationReason(False, f"{FAIL_MARK} {label} ({_format_ratio(value)}) < {minimum}")


def evaluate(
    metrics: StrategyMetrics, thresholds: EvaluationThresholds | None = None
) -> Verdict:
    """Evaluate ``metrics`` against ``thresholds``.

    All four rules are always checked. A ``NaN`` metric fails its rule. The
    strategy is recommended only when every rule passes.
    """
    if thresholds is None:
        thresholds = EvaluationThresholds()

    reasons: List[EvaluationReason] = [
        _check_minimum_ratio(
            "Sharpe Ratio", metrics.sharpe_ratio, thresholds.minimum_sharpe_ratio
        ),
        _check_minimum_ratio(
            "Calmar Ratio", metrics.calmar_ratio, thresholds.minimum_calmar_ratio
        ),
    ]

    maximum_drawdown = metrics.maximum_drawdown
    drawdown_text = "N/A" if math.isnan(maximum_drawdown) else f"{maximum_drawdown:.4f}"
    if not math.isnan(maximum_drawdown) and maximum_drawdown >= thresholds.maximum_drawdown_floor:
        reasons.append(
            EvaluationReason(
                True,
                f"{PASS_MARK} Max Drawdown ({drawdown_text}) >= {thresholds.maximum_drawdown_floor}",
            )
        )
    else:
        reasons.append(
            EvaluationReason(
                False,
                f"{FAIL_MARK} Max Drawdown ({drawdown_text}) < {thresholds.maximum_drawdown_floor}",
            )
        )

    number_of_trades = metrics.number_of_trades
    if number_of_trades >= thresholds.minimum_trades:
        reasons.append(
            EvaluationReason(
                True,
                f"{PASS_MARK} Number of Trades ({number_of_trades}) >= {thresholds.minimum_trades}",
            )
        )
    else:
        reasons.append(
            EvaluationReason(
                False,
                f"{FAIL_MARK} Number of Trades ({number_of_trades}) < {thresholds.minimum_trades}",
            )
        )

    return Verdict(
        recommended=all(reason.passed for reason in reasons), reasons=reasons
    )


class StrategyEvaluator:
    """Keep a set of thresholds and evaluate metrics against them."""

    def __init__(self, thresholds: EvaluationThresholds | None = None) -> None:
        self.thresholds = thresholds or EvaluationThresholds()

    def evaluate(self, metrics: StrategyMetrics) -> Verdict:
        return evaluate(metrics, self.thresholds)
