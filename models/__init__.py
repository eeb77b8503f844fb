"""Data models."""
from models.enums import MonitoringType, AlertType, Severity, TrendDirection, TrendStrategy, ThresholdStatus
from models.alerts import Reading, AlertSettings, ItemThreshold, AlertCandidate, Alert, DEFAULT_ALERT_SETTINGS
