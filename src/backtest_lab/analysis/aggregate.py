"""Aggregation of metrics across runs."""

from __future__ import annotations

import math
from dataclasses import fields
from typing import Iterable

from backtest_lab.analysis.metrics import PerformanceMetrics


def average_metrics(results: Iterable[PerformanceMetrics]) -> PerformanceMetrics:
    """Field-wise mean. Integer counters are averaged as floats."""
    results_list = list(results)
    total = len(results_list)
    if total == 0:
        return PerformanceMetrics.empty()
    values = {
        item.name: sum(getattr(result, item.name) for result in results_list) / total
        for item in fields(PerformanceMetrics)
    }
    return PerformanceMetrics(**values)


def stability_score(values: Iterable[float]) -> float:
    """Mean over population standard deviation; 0 for fewer than two samples or no spread."""
    values_list = list(values)
    if len(values_list) < 2:
        return 0.0
    mean = sum(values_list) / len(values_list)
    variance = sum((value - mean) ** 2 for value in values_list) / len(values_list)
    if variance <= 0:
        return 0.0
    return mean / math.sqrt(variance)
