"""Alert backfill from stored reading history.

Reconstructs the *current* alert state of every item, not a timeline: each
item's history is walked newest first and only the latest reading is
classified, against the previous reading (trend), its threshold (limit) and
the readings just before it (anomaly). Existing active alerts are kept.

Usage:
  orchestrator = BackfillOrchestrator(provider, settings_store, persister, thresholds)
  result = orchestrator.run(progress_callback=fn)
"""
import logging
from dataclasses import dataclass, field

from alerts.persister import PersistenceError
from alerts.statistics import detect_anomaly
from alerts.trend import get_trend_detector
from models.alerts import AlertCandidate
from models.enums import AlertType, MonitoringType, Severity, TrendDirection, TrendStrategy
from monitor.history import HistoryFetchError

logger = logging.getLogger("slamonitor.backfill")


@dataclass
class BackfillResult:
    items_processed: int = 0
    alerts_created: dict = field(default_factory=dict)
    types_processed: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def total_created(self):
        return sum(self.alerts_created.values())


class BackfillOrchestrator:
    def __init__(self, history_provider, settings_store, persister, thresholds,
                 trend_strategy=TrendStrategy.TWO_POINT.value):
        self.history_provider = history_provider
        self.settings_store = settings_store
        self.persister = persister
        self.thresholds = thresholds
        self.trend_detector = get_trend_detector(trend_strategy)

    def candidates_for(self, monitoring_type, item, readings, settings):
        """Alert candidates implied by the newest reading of `readings` (newest first)."""
        if not readings:
            return []
        current = readings[0].value
        window = settings.anomaly_moving_avg_days
        candidates = []

        if len(readings) > 1:
            # Trend looks at the prior readings oldest to newest
            prior = [r.value for r in reversed(readings[1:1 + max(window, settings.trend_consecutive_periods)])]
            if self.trend_detector.is_negative(prior, current, settings):
                candidates.append(AlertCandidate(
                    monitoring_type, item, AlertType.TENDENCIA.value, Severity.WARNING.value,
                    current, {"trend": TrendDirection.DOWN.value, "backfill": True},
                ))

        threshold = self.thresholds.resolve(monitoring_type, item)
        if current < threshold.meta_atencao:
            candidates.append(AlertCandidate(
                monitoring_type, item, AlertType.LIMITE.value, Severity.CRITICAL.value,
                current, {"reason": f"Abaixo de {threshold.meta_atencao:g}%", "backfill": True},
            ))

        history = [r.value for r in reversed(readings[1:1 + window])]
        if len(history) >= window and detect_anomaly(
                history, current, window,
                settings.anomaly_stddev_multiplier, settings.anomaly_enabled):
            candidates.append(AlertCandidate(
                monitoring_type, item, AlertType.ANOMALIA.value, Severity.CRITICAL.value,
                current, {"anomaly": True, "backfill": True},
            ))
        return candidates

    def run(self, monitoring_types=None, progress_callback=None):
        """One linear pass over all items. Not meant to overlap with the live loop."""
        result = BackfillResult()
        types = [MonitoringType(t).value for t in (monitoring_types or [t.value for t in MonitoringType])]

        for mt in types:
            logger.info(f"Processing {mt} alerts...")
            settings = self.settings_store.get(mt)
            try:
                items = self.history_provider.list_items(mt)
            except HistoryFetchError as e:
                err = f"{mt}: {e}"
                logger.error(f"Error fetching {mt} items: {e}")
                result.errors.append(err)
                continue

            for item in items:
                try:
                    readings = self.history_provider.get_history(mt, item)
                except HistoryFetchError as e:
                    logger.error(f"Error fetching history for [{mt}] {item}: {e}")
                    result.errors.append(f"{mt}/{item}: {e}")
                    continue

                for candidate in self.candidates_for(mt, item, readings, settings):
                    try:
                        if self.persister.persist_alert(candidate) is not None:
                            result.alerts_created[candidate.alert_type] = \
                                result.alerts_created.get(candidate.alert_type, 0) + 1
                    except PersistenceError as e:
                        logger.warning(f"Backfill insert failed for {candidate.key}: {e}")
                        result.errors.append(f"{mt}/{item}/{candidate.alert_type}: {e}")

                result.items_processed += 1
                if progress_callback:
                    progress_callback(result.items_processed, mt)

            result.types_processed.append(mt)

        logger.info(f"Backfill complete: {result.items_processed} items, "
                    f"{result.total_created} alerts created, {len(result.errors)} errors")
        return result
