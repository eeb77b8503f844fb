"""Moving-average, deviation, anomaly and trend statistics over reading history.

All functions are pure. Sequences are ordered oldest to newest, so "the last
N values" are the N most recent observations. History may be given as
Reading objects or as plain numbers.
"""
import math

from models.enums import TrendDirection


def _values(history):
    return [float(getattr(h, "value", h)) for h in history]


def moving_average(values, window=7):
    """Mean of the last `window` values, or None when fewer are available."""
    values = _values(values)
    if window < 1 or len(values) < window:
        return None
    return sum(values[-window:]) / window


def standard_deviation(values):
    """Sample standard deviation (n - 1); 0 for fewer than two points."""
    values = _values(values)
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / (len(values) - 1)
    return math.sqrt(variance)


def lower_bound(history, window, multiplier):
    """avg - multiplier * stddev over the last `window` points, or None."""
    values = _values(history)
    avg = moving_average(values, window)
    if avg is None:
        return None
    return avg - multiplier * standard_deviation(values[-window:])


def detect_anomaly(history, current, window=7, multiplier=2.0, enabled=True):
    """True when `current` falls strictly below the moving lower bound.

    Only drops are flagged: the monitored series are health percentages, so an
    upward spike is never an anomaly. Cold starts (history shorter than the
    window) never fire.
    """
    if not enabled:
        return False
    if len(history) < window:
        return False
    bound = lower_bound(history, window, multiplier)
    if bound is None:
        return False
    return current < bound


def calculate_comparison(current, history, window=7):
    """Percent difference between `current` and the moving average of history.

    Returns {"diffPercent", "label"} or None. Informational only.
    """
    if not history:
        return None
    avg = moving_average(history, window)
    if avg is None or avg == 0:
        return None
    return {
        "diffPercent": (current - avg) / avg * 100,
        "label": f"vs média {window} dias",
    }


def calculate_trend(current, previous):
    """Two-point trend: compare the current value to the previous one."""
    if previous is None:
        return TrendDirection.STABLE
    variation = current - previous
    if variation > 0:
        return TrendDirection.UP
    if variation < 0:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def detect_consecutive_drop_trend(history, current, consecutive_periods=3, enabled=True):
    """True when each of the last N steps of history + [current] strictly decreases."""
    if not enabled:
        return False
    values = _values(history)
    if consecutive_periods < 1 or len(values) < consecutive_periods:
        return False
    series = values + [float(current)]
    for i in range(consecutive_periods):
        idx = len(series) - 1 - i
        if series[idx] >= series[idx - 1]:
            return False
    return True
