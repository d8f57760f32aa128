"""Tests for the strategy evaluator."""

import math
from dataclasses import replace

from zscore_strategy.evaluator import EvaluationThresholds, StrategyEvaluator, evaluate
from zscore_strategy.metrics import MetricsCalculator, StrategyMetrics


def _metrics(**overrides) -> StrategyMetrics:
    base_metrics = StrategyMetrics(
        sharpe_ratio=1.2,
        calmar_ratio=0.5,
        maximum_drawdown=-0.1,
        annualized_return=0.05,
        total_return=0.2,
        number_of_trades=15,
        trade_frequency_percentage=1.0,
        win_rate_percentage=55.0,
        start_date="2024-01-01 00:00:00",
        end_date="2024-02-01 00:00:00",
        period_days=31,
    )
    return replace(base_metrics, **overrides)


def test_only_calmar_check_fails_in_scenario() -> None:
    verdict = evaluate(_metrics())
    assert verdict.recommended is False
    assert len(verdict.reasons) == 4
    assert [reason.passed for reason in verdict.reasons] == [True, False, True, True]
    assert verdict.reason_texts == [
        "✓ Sharpe Ratio (1.20) >= 1.0",
        "✗ Calmar Ratio (0.50) < 1.0",
        "✓ Max Drawdown (-0.1000) >= -0.3",
        "✓ Number of Trades (15) >= 10",
    ]


def test_all_checks_pass_recommends_strategy() -> None:
    verdict = evaluate(_metrics(calmar_ratio=2.0))
    assert verdict.recommended is True
    assert all(reason.passed for reason in verdict.reasons)


def test_thresholds_are_inclusive() -> None:
    verdict = evaluate(
        _metrics(sharpe_ratio=1.0, calmar_ratio=1.0, maximum_drawdown=-0.3, number_of_trades=10)
    )
    assert verdict.recommended is True


def test_nan_ratios_fail_their_checks() -> None:
    verdict = evaluate(_metrics(sharpe_ratio=math.nan, calmar_ratio=math.nan))
    assert [reason.passed for reason in verdict.reasons] == [False, False, True, True]
    assert verdict.reason_texts[0] == "✗ Sharpe Ratio (N/A) < 1.0"
    assert verdict.reason_texts[1] == "✗ Calmar Ratio (N/A) < 1.0"


def test_empty_metrics_produce_four_failing_or_passing_reasons() -> None:
    verdict = evaluate(MetricsCalculator.empty_metrics())
    assert verdict.recommended is False
    assert [reason.passed for reason in verdict.reasons] == [False, False, True, False]


def test_custom_thresholds_are_applied() -> None:
    thresholds = EvaluationThresholds(
        minimum_sharpe_ratio=2.0,
        minimum_calmar_ratio=0.4,
        maximum_drawdown_floor=-0.05,
        minimum_trades=20,
    )
    verdict = StrategyEvaluator(thresholds).evaluate(_metrics())
    assert [reason.passed for reason in verdict.reasons] == [False, True, False, False]
    assert verdict.reason_texts[3] == "✗ Number of Trades (15) < 20"
