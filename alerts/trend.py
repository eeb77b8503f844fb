"""Trend detection strategies behind a single interface.

The live path historically compared only the last two readings, while the
N-consecutive-drop test honors trend_consecutive_periods. Which one governs
trend alerts is chosen by the `alerts.trend_strategy` config key.
"""
import logging
from typing import Protocol, runtime_checkable

from alerts.statistics import calculate_trend, detect_consecutive_drop_trend
from models.enums import TrendDirection, TrendStrategy

logger = logging.getLogger("slamonitor.alerts.trend")


@runtime_checkable
class TrendDetector(Protocol):
    name: str

    def is_negative(self, history, current, settings) -> bool: ...


class TwoPointTrendDetector:
    """Negative when the current value is strictly below the previous one."""

    name = TrendStrategy.TWO_POINT.value

    def is_negative(self, history, current, settings):
        if not settings.trend_enabled or not history:
            return False
        previous = getattr(history[-1], "value", history[-1])
        return calculate_trend(current, previous) == TrendDirection.DOWN


class ConsecutiveDropTrendDetector:
    """Negative after `trend_consecutive_periods` strictly decreasing steps."""

    name = TrendStrategy.CONSECUTIVE_DROP.value

    def is_negative(self, history, current, settings):
        return detect_consecutive_drop_trend(
            history, current,
            consecutive_periods=settings.trend_consecutive_periods,
            enabled=settings.trend_enabled,
        )


_DETECTORS = {
    TrendStrategy.TWO_POINT.value: TwoPointTrendDetector,
    TrendStrategy.CONSECUTIVE_DROP.value: ConsecutiveDropTrendDetector,
}


def get_trend_detector(strategy=TrendStrategy.TWO_POINT.value):
    key = strategy.value if isinstance(strategy, TrendStrategy) else str(strategy)
    if key not in _DETECTORS:
        raise ValueError(f"Unknown trend strategy: {strategy}")
    logger.debug(f"Using trend strategy: {key}")
    return _DETECTORS[key]()
