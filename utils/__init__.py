"""Utility modules for the SLA alert monitor."""
from utils.logger import setup_logging
from utils.formatters import format_percentual, format_pct, format_timestamp, time_ago
