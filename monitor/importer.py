"""CSV reader that loads percentage readings into the readings table.

Rows carry `tipo_monitoramento`, `identificador_item`, `timestamp` and either
a precomputed `value` or the raw counters of the source system
(`total_base`/`total_sem_monitoramento` for mps, `dentro`/`fora` for SLA).
"""
import csv
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from models.enums import MonitoringType
from monitor.history import mps_percentual, sla_percentual

logger = logging.getLogger("slamonitor.importer")


@dataclass
class ImportResult:
    rows_read: int = 0
    readings_saved: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)


class ReadingImporter:
    def __init__(self, db):
        self.db = db

    def parse_row(self, row):
        """Convert one CSV row into a reading record. Raises ValueError if invalid."""
        tipo = (row.get("tipo_monitoramento") or "").strip()
        MonitoringType(tipo)
        item = (row.get("identificador_item") or "").strip()
        if not item:
            raise ValueError("missing identificador_item")

        ts = datetime.fromisoformat((row.get("timestamp") or "").strip().replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)

        raw_value = (row.get("value") or "").strip()
        if raw_value:
            value = float(raw_value)
        elif tipo == MonitoringType.MPS.value:
            value = mps_percentual(row.get("total_base"), row.get("total_sem_monitoramento"))
        else:
            value = sla_percentual(row.get("dentro"), row.get("fora"))

        if math.isnan(value) or math.isinf(value) or value < 0:
            raise ValueError(f"invalid value: {value}")

        return {
            "tipo_monitoramento": tipo,
            "identificador_item": item,
            "timestamp": ts,
            "value": value,
        }

    def import_csv(self, csv_path):
        result = ImportResult()
        path = Path(csv_path)
        if not path.exists():
            raise FileNotFoundError(f"CSV not found: {path}")

        records = []
        with open(path, newline="") as f:
            reader = csv.DictReader(f)
            for line_no, row in enumerate(reader, start=2):
                result.rows_read += 1
                try:
                    records.append(self.parse_row(row))
                except (ValueError, TypeError) as e:
                    result.skipped += 1
                    result.errors.append(f"line {line_no}: {e}")
                    logger.warning(f"Skipping line {line_no} of {path.name}: {e}")

        if records:
            self.db.save_readings(records)
        result.readings_saved = len(records)
        logger.info(f"Imported {len(records)} readings from {path.name} ({result.skipped} skipped)")
        return result
