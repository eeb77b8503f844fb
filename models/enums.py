"""Enums for monitoring types, alert types, severity and trend direction."""
from enum import Enum


class MonitoringType(str, Enum):
    MPS = "mps"
    SLA_FILA = "sla_fila"
    SLA_PROJETO = "sla_projeto"


class AlertType(str, Enum):
    LIMITE = "limite"
    ANOMALIA = "anomalia"
    TENDENCIA = "tendencia"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class TrendStrategy(str, Enum):
    TWO_POINT = "two_point"
    CONSECUTIVE_DROP = "consecutive_drop"


class ThresholdStatus(str, Enum):
    EXCELENTE = "excelente"
    ATENCAO = "atencao"
    CRITICO = "critico"
