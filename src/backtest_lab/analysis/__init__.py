"""Performance and risk analysis."""

from backtest_lab.analysis.aggregate import average_metrics, stability_score
from backtest_lab.analysis.metrics import PerformanceMetrics, calculate_performance
from backtest_lab.analysis.risk import RiskMetrics, calculate_risk_metrics

__all__ = [
    "PerformanceMetrics",
    "RiskMetrics",
    "average_metrics",
    "calculate_performance",
    "calculate_risk_metrics",
    "stability_score",
]
