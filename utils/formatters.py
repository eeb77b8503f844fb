"""Formatting utilities for display."""
from datetime import datetime, timezone


def _as_datetime(ts):
    if isinstance(ts, str):
        ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_percentual(value, decimals=2):
    """97.5 -> '97.50%'."""
    if value is None:
        return "N/A"
    return f"{float(value):.{decimals}f}%"


def format_pct(value, decimals=2, with_color=False):
    """Signed change, e.g. '+1.25%'. Optionally wrapped in rich color markup."""
    if value is None:
        return "N/A"
    text = f"{float(value):+.{decimals}f}%"
    if not with_color:
        return text
    color = "red" if float(value) < 0 else "green"
    return f"[{color}]{text}[/{color}]"


def format_timestamp(ts):
    """Datetimes render as 'YYYY-MM-DD HH:MM UTC'; strings pass through."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return _as_datetime(ts).astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt):
    """Coarse age of a timestamp: '45s ago', '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    seconds = int((datetime.now(timezone.utc) - _as_datetime(dt)).total_seconds())
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit} ago"
    return f"{max(seconds, 0)}s ago"
