"""Alert system module."""
from alerts.engine import EvaluationCycle, ItemSeries, ItemStatus
from alerts.persister import AlertPersister, PersistenceError
from alerts.settings_store import AlertSettingsStore
from alerts.thresholds import ThresholdResolver
from alerts.trend import get_trend_detector, TwoPointTrendDetector, ConsecutiveDropTrendDetector
from alerts.channels import ConsoleChannel, FileChannel
