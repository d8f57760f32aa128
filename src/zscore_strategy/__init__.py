"""zscore_strategy package.

Expose the batch pipeline and its building blocks for convenience."""

from .backtest import BacktestParameters, BacktestReport, run_backtest, run_strategy_report
from .evaluator import EvaluationThresholds, Verdict, evaluate
from .indicators import rolling_zscore
from .metrics import MetricsCalculator, StrategyMetrics
from .signals import generate_positions
from .simulator import simulate_positions

__all__ = [
    "BacktestParameters",
    "BacktestReport",
    "EvaluationThresholds",
    "MetricsCalculator",
    "StrategyMetrics",
    "Verdict",
    "evaluate",
    "generate_positions",
    "rolling_zscore",
    "run_backtest",
    "run_strategy_report",
    "simulate_positions",
]
