"""Tests for display formatters and logging setup."""
import pytest
from datetime import datetime, timedelta, timezone

from utils.formatters import format_percentual, format_pct, format_timestamp, time_ago


def test_format_percentual():
    assert format_percentual(97.5) == "97.50%"
    assert format_percentual(80, decimals=0) == "80%"
    assert format_percentual(None) == "N/A"


def test_format_pct():
    assert format_pct(5.4) == "+5.40%"
    assert format_pct(-12.5) == "-12.50%"
    assert format_pct(0) == "+0.00%"
    assert format_pct(None) == "N/A"


def test_format_pct_color():
    assert format_pct(-3, with_color=True) == "[red]-3.00%[/red]"
    assert format_pct(3, with_color=True) == "[green]+3.00%[/green]"


def test_format_timestamp():
    ts = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
    assert format_timestamp(ts) == "2025-03-01 09:30 UTC"
    assert format_timestamp("2025-03-01") == "2025-03-01"
    assert format_timestamp(None) == "N/A"


def test_time_ago():
    now = datetime.now(timezone.utc)
    assert time_ago(now - timedelta(hours=3, minutes=5)) == "3h ago"
    assert time_ago(now - timedelta(days=2, hours=1)) == "2d ago"
    assert time_ago(now - timedelta(minutes=5, seconds=10)) == "5m ago"
    assert time_ago(None) == "N/A"


def test_setup_logging():
    from rich.logging import RichHandler
    from utils.logger import setup_logging
    logger = setup_logging("debug")
    assert logger.name == "slamonitor"
    assert logger.level == 10
    assert any(isinstance(h, RichHandler) for h in logger.handlers)
    assert setup_logging("INFO") is logger
