"""Metric history providers and raw-source percentage conversions."""
import logging
import sqlite3
from typing import Protocol, runtime_checkable

logger = logging.getLogger("slamonitor.history")


class HistoryFetchError(Exception):
    """History could not be fetched; the evaluation cycle for the batch aborts."""
    def __init__(self, message, monitoring_type=None, item=None):
        super().__init__(message)
        self.monitoring_type = monitoring_type
        self.item = item


@runtime_checkable
class MetricHistoryProvider(Protocol):
    def list_items(self, monitoring_type) -> list: ...

    def get_history(self, monitoring_type, item, limit=None) -> list: ...


def mps_percentual(total_base, total_sem_monitoramento):
    """Share of the installed base that is being monitored."""
    base = int(total_base or 0)
    sem = int(total_sem_monitoramento or 0)
    if base <= 0:
        return 0.0
    return round((base - sem) / base * 100, 2)


def sla_percentual(dentro, fora):
    """Share of tickets handled inside SLA."""
    dentro = int(dentro or 0)
    total = dentro + int(fora or 0)
    if total <= 0:
        return 0.0
    return round(dentro / total * 100, 2)


class DatabaseHistoryProvider:
    """Reads the `readings` table. History is returned most recent first."""

    def __init__(self, db):
        self.db = db

    def list_items(self, monitoring_type):
        try:
            return self.db.list_items(monitoring_type)
        except sqlite3.Error as e:
            raise HistoryFetchError(f"Could not list items for {monitoring_type}: {e}",
                                    monitoring_type=monitoring_type) from e

    def get_history(self, monitoring_type, item, limit=None):
        try:
            return self.db.get_readings(monitoring_type, item, limit=limit)
        except sqlite3.Error as e:
            raise HistoryFetchError(f"Could not fetch history for [{monitoring_type}] {item}: {e}",
                                    monitoring_type=monitoring_type, item=item) from e
