"""Evaluation cycle: classify each item's newest reading and persist alerts."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from alerts.persister import PersistenceError
from alerts.statistics import calculate_comparison, calculate_trend, detect_anomaly
from alerts.thresholds import status_for
from alerts.trend import get_trend_detector
from models.alerts import AlertCandidate, ItemThreshold
from models.enums import AlertType, MonitoringType, Severity, TrendDirection, TrendStrategy

logger = logging.getLogger("slamonitor.alerts.engine")


@dataclass
class ItemSeries:
    """History for one item, most recent first.

    `current_value`/`previous_value` are authoritative values enriched by the
    data source; when set they take precedence over the first two readings.
    """
    identificador_item: str
    readings: list = field(default_factory=list)
    current_value: Optional[float] = None
    previous_value: Optional[float] = None


@dataclass
class ItemStatus:
    tipo_monitoramento: str
    identificador_item: str
    percentual: float
    previous: Optional[float] = None
    variation: float = 0.0
    trend: TrendDirection = TrendDirection.STABLE
    is_anomaly: bool = False
    comparison: Optional[dict] = None
    threshold: ItemThreshold = field(default_factory=ItemThreshold)
    status: str = ""
    reading_at: Optional[datetime] = None
    display_trend: TrendDirection = TrendDirection.STABLE
    display_anomaly: bool = False
    active_alerts: list = field(default_factory=list)
    created: list = field(default_factory=list)
    resolved: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self):
        return {
            "tipo_monitoramento": self.tipo_monitoramento,
            "identificador_item": self.identificador_item,
            "percentual": round(self.percentual, 2),
            "previous": self.previous,
            "variation": round(self.variation, 2),
            "trend": self.display_trend.value,
            "anomaly": self.display_anomaly,
            "comparison": self.comparison,
            "meta_excelente": self.threshold.meta_excelente,
            "meta_atencao": self.threshold.meta_atencao,
            "custom_threshold": self.threshold.custom,
            "status": self.status,
            "reading_at": self.reading_at.isoformat() if self.reading_at else None,
            "active_alerts": self.active_alerts,
            "created": self.created,
            "resolved": self.resolved,
            "errors": self.errors,
        }


class EvaluationCycle:
    def __init__(self, history_provider, settings_store, persister, thresholds,
                 trend_strategy=TrendStrategy.TWO_POINT.value, history_limit=30):
        self.history_provider = history_provider
        self.settings_store = settings_store
        self.persister = persister
        self.thresholds = thresholds
        self.trend_detector = get_trend_detector(trend_strategy)
        self.history_limit = history_limit

    def _fetch_limit(self, settings):
        return max(self.history_limit,
                   settings.anomaly_moving_avg_days + 1,
                   settings.trend_consecutive_periods + 1)

    def load_series(self, monitoring_type, settings):
        """Fetch every item's history up front. HistoryFetchError propagates."""
        limit = self._fetch_limit(settings)
        series = []
        for item in self.history_provider.list_items(monitoring_type):
            readings = self.history_provider.get_history(monitoring_type, item, limit=limit)
            series.append(ItemSeries(identificador_item=item, readings=readings))
        return series

    def run(self, monitoring_type, series=None):
        """Evaluate every item of a monitoring type.

        History for the whole batch is loaded before any alert is written, so
        a fetch failure aborts the cycle without partial writes.
        """
        mt = MonitoringType(monitoring_type).value
        settings = self.settings_store.get(mt)
        if series is None:
            series = self.load_series(mt, settings)

        results = []
        for s in series:
            status = self.evaluate_item(mt, s, settings)
            if status is not None:
                results.append(status)

        created = sum(len(r.created) for r in results)
        resolved = sum(len(r.resolved) for r in results)
        failed = sum(1 for r in results if r.errors)
        logger.info(f"[{mt}] evaluated {len(results)} items: {created} alerts created, "
                    f"{resolved} auto-resolved, {failed} with errors")
        return results

    def evaluate_item(self, monitoring_type, series, settings):
        readings = series.readings
        if series.current_value is not None:
            current = float(series.current_value)
        elif readings:
            current = readings[0].value
        else:
            logger.debug(f"[{monitoring_type}] {series.identificador_item}: no readings")
            return None

        if series.previous_value is not None:
            previous = float(series.previous_value)
        elif len(readings) > 1:
            previous = readings[1].value
        else:
            previous = None

        # Oldest to newest, excluding the current reading
        history = [r.value for r in reversed(readings[1:])]
        if previous is not None:
            if history:
                history[-1] = previous
            else:
                history = [previous]

        reading_at = readings[0].timestamp if readings else None
        reading_key = reading_at.isoformat() if reading_at else None

        window = settings.anomaly_moving_avg_days
        trend = calculate_trend(current, previous)
        is_anomaly = detect_anomaly(history, current, window,
                                    settings.anomaly_stddev_multiplier, settings.anomaly_enabled)
        comparison = calculate_comparison(current, history, window)
        trend_negative = self.trend_detector.is_negative(history, current, settings)
        threshold = self.thresholds.resolve(monitoring_type, series.identificador_item)

        status = ItemStatus(
            tipo_monitoramento=monitoring_type,
            identificador_item=series.identificador_item,
            percentual=current,
            previous=previous,
            variation=current - previous if previous is not None else 0.0,
            trend=trend,
            is_anomaly=is_anomaly,
            comparison=comparison,
            threshold=threshold,
            status=status_for(current, threshold).value,
            reading_at=reading_at,
        )

        conditions = {
            AlertType.ANOMALIA.value: (is_anomaly, Severity.CRITICAL.value, {"comparison": comparison}),
            AlertType.TENDENCIA.value: (trend_negative, Severity.WARNING.value,
                                        {"trend": TrendDirection.DOWN.value,
                                         "strategy": self.trend_detector.name}),
            AlertType.LIMITE.value: (current < threshold.meta_atencao, Severity.CRITICAL.value,
                                     {"reason": f"Percentual abaixo da meta de atenção de "
                                                f"{threshold.meta_atencao:g}%"}),
        }

        try:
            active = {a.alert_type: a for a in
                      self.persister.get_active_alerts(monitoring_type, series.identificador_item)}
        except PersistenceError as e:
            logger.warning(f"[{monitoring_type}] {series.identificador_item}: skipping item, {e}")
            status.errors.append(str(e))
            return status

        for alert_type, (fires, severity, contexto) in conditions.items():
            try:
                self._apply_condition(status, alert_type, fires, severity, contexto,
                                      active.get(alert_type), reading_key, settings)
            except PersistenceError as e:
                logger.warning(f"[{monitoring_type}] {series.identificador_item} {alert_type}: {e}")
                status.errors.append(f"{alert_type}: {e}")

        self._merge_display_state(status, monitoring_type)
        return status

    def _apply_condition(self, status, alert_type, fires, severity, contexto,
                         active_alert, reading_key, settings):
        if fires:
            if active_alert is not None:
                self.persister.reset_clean_readings(active_alert, reading_key)
                return
            candidate = AlertCandidate(
                tipo_monitoramento=status.tipo_monitoramento,
                identificador_item=status.identificador_item,
                alert_type=alert_type,
                severity=severity,
                percentual_atual=status.percentual,
                contexto=contexto,
            )
            if self.persister.persist_alert(candidate) is not None:
                status.created.append(alert_type)
        elif active_alert is not None:
            if self.persister.record_clean_reading(active_alert, reading_key, settings):
                status.resolved.append(alert_type)

    def _merge_display_state(self, status, monitoring_type):
        """Card flags come from the repository's active set, not this cycle's flags."""
        try:
            active = self.persister.get_active_alerts(monitoring_type, status.identificador_item)
        except PersistenceError as e:
            status.errors.append(str(e))
            active = []
        types = {a.alert_type for a in active}
        status.active_alerts = sorted(types)
        status.display_anomaly = AlertType.ANOMALIA.value in types
        if AlertType.TENDENCIA.value in types:
            status.display_trend = TrendDirection.DOWN
        elif status.trend == TrendDirection.DOWN:
            status.display_trend = TrendDirection.STABLE
        else:
            status.display_trend = status.trend
