"""Deduplicating alert persistence and alert lifecycle transitions."""
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from models.alerts import Alert

logger = logging.getLogger("slamonitor.alerts.persister")

AUTO_RESOLVE_USER = "auto-resolve"


class PersistenceError(Exception):
    """Alert repository operation failed after retries."""
    def __init__(self, message, operation=None):
        super().__init__(message)
        self.operation = operation


class AlertPersister:
    """Creates at most one active alert per (monitoring type, item, alert type).

    Check-then-insert runs under a per-key lock, and the repository's partial
    unique index is the backstop for writers in other processes: a conflict on
    insert means the alert already exists.
    """

    def __init__(self, db, channels=None, max_retries=3, retry_delay=0.5):
        self.db = db
        self.channels = channels or []
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._locks = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _key_lock(self, key):
        """Hold the lock for `key`. Entries are dropped once no caller holds or waits on them."""
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _with_retry(self, operation, func, *args):
        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                return func(*args)
            except sqlite3.OperationalError as e:
                last_error = e
                logger.warning(f"{operation} failed: {e} (attempt {attempt + 1})")
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay * (attempt + 1))
        raise PersistenceError(f"{operation} failed after {self.max_retries + 1} attempts: {last_error}",
                               operation=operation) from last_error

    def persist_alert(self, candidate):
        """Insert `candidate` unless an active alert with its key exists.

        Returns the new Alert, or None when the condition is already tracked.
        An existing alert is left untouched.
        """
        with self._key_lock(candidate.key):
            existing = self._with_retry("existence check", self.db.find_active_alert, *candidate.key)
            if existing:
                logger.debug(f"Active alert already open: {candidate.key}")
                return None

            alert = Alert(
                tipo_monitoramento=candidate.tipo_monitoramento,
                identificador_item=candidate.identificador_item,
                alert_type=candidate.alert_type,
                severity=candidate.severity,
                percentual_atual=round(float(candidate.percentual_atual), 2),
                contexto=candidate.contexto or {},
                detected_at=datetime.now(timezone.utc),
            )
            try:
                alert.id = self._with_retry("insert", self.db.insert_alert, alert)
            except sqlite3.IntegrityError:
                logger.debug(f"Concurrent insert won for {candidate.key}, skipping")
                return None

        logger.info(
            f"Creating alert: [{alert.tipo_monitoramento}] {alert.identificador_item} - "
            f"{alert.alert_type} ({alert.percentual_atual:.2f}%)"
        )
        self._dispatch(alert)
        return alert

    def treat_alert(self, alert_id, comment, treated_by=None):
        """Explicit human resolution. A non-blank comment is required."""
        if not comment or not comment.strip():
            raise ValueError("A comment is required to treat an alert")
        alert = self.db.get_alert(alert_id)
        if alert is None:
            raise LookupError(f"Alert {alert_id} not found")
        if alert.tratado:
            raise LookupError(f"Alert {alert_id} is already treated")
        if not self.db.treat_alert(alert_id, comment.strip(), treated_by=treated_by):
            raise LookupError(f"Alert {alert_id} is already treated")
        logger.info(f"Alert {alert_id} treated by {treated_by or 'unknown'}")
        return self.db.get_alert(alert_id)

    # --- Auto-resolve ---

    def record_clean_reading(self, alert, reading_key, settings):
        """Count a reading that would not re-trigger `alert`.

        Each distinct reading is counted once, so repeated polls over the same
        data do not advance the counter. Returns True when the alert resolved.
        """
        if not settings.auto_resolve_enabled or reading_key is None:
            return False
        if alert.last_evaluated_reading == reading_key:
            return False

        count = alert.clean_readings + 1
        if count >= settings.auto_resolve_consecutive_readings:
            comment = f"Resolvido automaticamente após {count} leituras normais consecutivas"
            resolved = self._with_retry("auto-resolve", self.db.treat_alert,
                                        alert.id, comment, AUTO_RESOLVE_USER)
            if resolved:
                alert.tratado = True
                alert.comentario_tratamento = comment
                logger.info(f"Auto-resolved alert {alert.id} ({alert.alert_type}) for {alert.identificador_item}")
            return resolved

        self._with_retry("clean reading update", self.db.update_clean_readings,
                         alert.id, count, reading_key)
        alert.clean_readings = count
        alert.last_evaluated_reading = reading_key
        return False

    def reset_clean_readings(self, alert, reading_key):
        """The condition fired again: restart the clean-reading count."""
        if alert.clean_readings == 0 and alert.last_evaluated_reading == reading_key:
            return
        self._with_retry("clean reading reset", self.db.update_clean_readings, alert.id, 0, reading_key)
        alert.clean_readings = 0
        alert.last_evaluated_reading = reading_key

    # --- Queries ---

    def get_active_alerts(self, monitoring_type, item=None):
        return self._with_retry("active alerts", self.db.get_active_alerts, monitoring_type, item)

    def list_alerts(self, monitoring_type=None, active_only=False, limit=100):
        return self.db.list_alerts(monitoring_type, active_only, limit)

    def alert_summary(self, today=None):
        raw = self.db.get_alert_summary(today)
        durations = []
        for detected_at, treated_at in raw["treated"]:
            start = datetime.fromisoformat(detected_at)
            end = datetime.fromisoformat(treated_at)
            durations.append((end - start).total_seconds())
        avg_minutes = round(sum(durations) / len(durations) / 60) if durations else 0
        by_type = {"limite": 0, "anomalia": 0, "tendencia": 0}
        by_type.update(raw["by_type"])
        return {
            "active": raw["active"],
            "critical": raw["critical"],
            "treated_today": raw["treated_today"],
            "by_type": by_type,
            "avg_resolution_minutes": avg_minutes,
        }

    def _dispatch(self, alert):
        for channel in self.channels:
            try:
                channel.send(alert)
            except Exception as e:
                logger.warning(f"Channel dispatch error: {e}")
