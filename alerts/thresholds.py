"""Attention/excellent threshold resolution with per-item overrides."""
import logging
import sqlite3

from models.alerts import ItemThreshold
from models.enums import MonitoringType, ThresholdStatus

logger = logging.getLogger("slamonitor.alerts.thresholds")

DEFAULT_META_EXCELENTE = 98.0
DEFAULT_META_ATENCAO = 80.0


def validate_threshold(meta_excelente, meta_atencao):
    if not (0 <= meta_atencao <= meta_excelente <= 100):
        raise ValueError(
            f"Thresholds must satisfy 0 <= meta_atencao ({meta_atencao}) "
            f"<= meta_excelente ({meta_excelente}) <= 100"
        )


def status_for(value, threshold):
    if value >= threshold.meta_excelente:
        return ThresholdStatus.EXCELENTE
    if value >= threshold.meta_atencao:
        return ThresholdStatus.ATENCAO
    return ThresholdStatus.CRITICO


class ThresholdResolver:
    def __init__(self, db, config=None):
        self.db = db
        self.config = config or {}
        self._defaults = self.config.get("thresholds", {})

    def default_for(self, monitoring_type):
        mt = MonitoringType(monitoring_type).value
        cfg = self._defaults.get(mt, {})
        return ItemThreshold(
            meta_excelente=float(cfg.get("meta_excelente", DEFAULT_META_EXCELENTE)),
            meta_atencao=float(cfg.get("meta_atencao", DEFAULT_META_ATENCAO)),
            custom=False,
        )

    def resolve(self, monitoring_type, item):
        """Item override when configured, else the type default."""
        default = self.default_for(monitoring_type)
        try:
            row = self.db.get_item_threshold(MonitoringType(monitoring_type).value, item)
        except sqlite3.Error as e:
            logger.warning(f"Could not load threshold override for {item}: {e}")
            return default
        if row is None:
            return default
        return ItemThreshold(
            meta_excelente=float(row["meta_excelente"]),
            meta_atencao=float(row["meta_atencao"]),
            custom=True,
        )

    def set_override(self, monitoring_type, item, meta_excelente, meta_atencao):
        mt = MonitoringType(monitoring_type).value
        validate_threshold(meta_excelente, meta_atencao)
        self.db.upsert_item_threshold(mt, item, float(meta_excelente), float(meta_atencao))
        logger.info(f"Threshold override for [{mt}] {item}: {meta_atencao}/{meta_excelente}")
        return ItemThreshold(float(meta_excelente), float(meta_atencao), custom=True)

    def clear_override(self, monitoring_type, item):
        return self.db.delete_item_threshold(MonitoringType(monitoring_type).value, item)
