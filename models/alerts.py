"""Dataclasses for readings, alert settings, thresholds and alert records."""
import json
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from models.enums import MonitoringType


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Reading:
    """A single percentage observation for one monitored item."""
    timestamp: datetime
    value: float

    @classmethod
    def from_dict(cls, d):
        return cls(timestamp=_parse_ts(d["timestamp"]), value=float(d["value"]))


_FLAG_FIELDS = ("anomaly_enabled", "trend_enabled", "auto_resolve_enabled")
_COUNT_FIELDS = ("anomaly_moving_avg_days", "trend_consecutive_periods",
                 "auto_resolve_consecutive_readings")


@dataclass
class AlertSettings:
    tipo_monitoramento: str = MonitoringType.MPS.value
    anomaly_enabled: bool = True
    anomaly_moving_avg_days: int = 7
    anomaly_stddev_multiplier: float = 2.0
    trend_enabled: bool = True
    trend_consecutive_periods: int = 3
    auto_resolve_enabled: bool = True
    auto_resolve_consecutive_readings: int = 2

    def validate(self):
        """Raise ValueError when the record breaks the settings invariants.

        Nothing is coerced, so a string "false" or a window of 7.9 is rejected.
        """
        valid_types = {t.value for t in MonitoringType}
        if self.tipo_monitoramento not in valid_types:
            raise ValueError(f"Unknown monitoring type: {self.tipo_monitoramento}")
        for name in _FLAG_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be true or false, got {getattr(self, name)!r}")
        for name in _COUNT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ValueError(f"{name} must be >= 1")
        multiplier = self.anomaly_stddev_multiplier
        if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
            raise ValueError(f"anomaly_stddev_multiplier must be a number, got {multiplier!r}")
        if not math.isfinite(multiplier):
            raise ValueError("anomaly_stddev_multiplier must be finite")
        if multiplier < 0:
            raise ValueError("anomaly_stddev_multiplier must be >= 0")
        self.anomaly_stddev_multiplier = float(multiplier)
        return self

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d):
        defaults = cls(tipo_monitoramento=d["tipo_monitoramento"])
        return cls(**{name: d.get(name, getattr(defaults, name)) for name in defaults.to_dict()})


def default_settings(monitoring_type):
    """Hard-coded fallback record for a monitoring type."""
    mt = MonitoringType(monitoring_type)
    return AlertSettings(tipo_monitoramento=mt.value)


DEFAULT_ALERT_SETTINGS = {t.value: default_settings(t) for t in MonitoringType}


@dataclass
class ItemThreshold:
    meta_excelente: float = 98.0
    meta_atencao: float = 80.0
    custom: bool = False


@dataclass
class AlertCandidate:
    tipo_monitoramento: str
    identificador_item: str
    alert_type: str
    severity: str
    percentual_atual: float
    contexto: dict = field(default_factory=dict)

    @property
    def key(self):
        return (self.tipo_monitoramento, self.identificador_item, self.alert_type)


@dataclass
class Alert:
    id: Optional[int] = None
    tipo_monitoramento: str = ""
    identificador_item: str = ""
    alert_type: str = ""
    severity: str = "info"
    percentual_atual: float = 0.0
    contexto: dict = field(default_factory=dict)
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tratado: bool = False
    tratado_em: Optional[datetime] = None
    tratado_por: Optional[str] = None
    comentario_tratamento: Optional[str] = None
    clean_readings: int = 0
    last_evaluated_reading: Optional[str] = None

    @property
    def key(self):
        return (self.tipo_monitoramento, self.identificador_item, self.alert_type)

    @property
    def is_active(self):
        return not self.tratado

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        contexto = d.get("contexto")
        if isinstance(contexto, str):
            contexto = json.loads(contexto) if contexto else {}
        return cls(
            id=d["id"],
            tipo_monitoramento=d["tipo_monitoramento"],
            identificador_item=d["identificador_item"],
            alert_type=d["alert_type"],
            severity=d["severity"],
            percentual_atual=d["percentual_atual"],
            contexto=contexto or {},
            detected_at=_parse_ts(d["detected_at"]),
            tratado=bool(d["tratado"]),
            tratado_em=_parse_ts(d.get("tratado_em")),
            tratado_por=d.get("tratado_por"),
            comentario_tratamento=d.get("comentario_tratamento"),
            clean_readings=d.get("clean_readings") or 0,
            last_evaluated_reading=d.get("last_evaluated_reading"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "tipo_monitoramento": self.tipo_monitoramento,
            "identificador_item": self.identificador_item,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "percentual_atual": self.percentual_atual,
            "contexto": self.contexto,
            "detected_at": self.detected_at.isoformat() if self.detected_at else None,
            "tratado": self.tratado,
            "tratado_em": self.tratado_em.isoformat() if self.tratado_em else None,
            "tratado_por": self.tratado_por,
            "comentario_tratamento": self.comentario_tratamento,
        }
