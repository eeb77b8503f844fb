"""Tests for history providers, percentage conversions and CSV import."""
import sqlite3
import pytest
from unittest.mock import MagicMock

from monitor.history import (
    DatabaseHistoryProvider, HistoryFetchError, MetricHistoryProvider, mps_percentual, sla_percentual,
)
from monitor.importer import ReadingImporter

CSV_HEADER = "tipo_monitoramento,identificador_item,timestamp,value,total_base,total_sem_monitoramento,dentro,fora\n"


def test_mps_percentual():
    assert mps_percentual(200, 50) == 75.0
    assert mps_percentual(3, 1) == 66.67
    assert mps_percentual(0, 0) == 0.0
    assert mps_percentual(None, None) == 0.0


def test_sla_percentual():
    assert sla_percentual(9, 1) == 90.0
    assert sla_percentual("2", "1") == 66.67
    assert sla_percentual(0, 0) == 0.0


class TestDatabaseHistoryProvider:
    def test_reads_readings(self, temp_db, seed_readings):
        seed_readings("mps", "Acme", [90, 91, 92])
        provider = DatabaseHistoryProvider(temp_db)
        assert isinstance(provider, MetricHistoryProvider)
        assert provider.list_items("mps") == ["Acme"]
        assert [r.value for r in provider.get_history("mps", "Acme", limit=2)] == [92, 91]

    def test_wraps_database_errors(self):
        db = MagicMock()
        db.get_readings.side_effect = sqlite3.OperationalError("disk I/O error")
        db.list_items.side_effect = sqlite3.OperationalError("disk I/O error")
        provider = DatabaseHistoryProvider(db)
        with pytest.raises(HistoryFetchError) as exc:
            provider.get_history("mps", "Acme")
        assert exc.value.item == "Acme"
        with pytest.raises(HistoryFetchError):
            provider.list_items("mps")


class TestReadingImporter:
    def test_parse_value_row(self, temp_db):
        record = ReadingImporter(temp_db).parse_row({
            "tipo_monitoramento": "sla_fila", "identificador_item": " N1 ",
            "timestamp": "2025-03-01T09:00:00Z", "value": "97.5",
        })
        assert record["identificador_item"] == "N1"
        assert record["value"] == 97.5
        assert record["timestamp"].tzinfo is not None

    def test_parse_raw_counters(self, temp_db):
        importer = ReadingImporter(temp_db)
        mps = importer.parse_row({"tipo_monitoramento": "mps", "identificador_item": "Acme",
                                  "timestamp": "2025-03-01", "total_base": "200",
                                  "total_sem_monitoramento": "10"})
        assert mps["value"] == 95.0
        sla = importer.parse_row({"tipo_monitoramento": "sla_projeto", "identificador_item": "P1",
                                  "timestamp": "2025-03-01", "dentro": "3", "fora": "1"})
        assert sla["value"] == 75.0

    @pytest.mark.parametrize("row", [
        {"tipo_monitoramento": "uptime", "identificador_item": "A", "timestamp": "2025-03-01", "value": "90"},
        {"tipo_monitoramento": "mps", "identificador_item": "", "timestamp": "2025-03-01", "value": "90"},
        {"tipo_monitoramento": "mps", "identificador_item": "A", "timestamp": "yesterday", "value": "90"},
        {"tipo_monitoramento": "mps", "identificador_item": "A", "timestamp": "2025-03-01", "value": "-1"},
        {"tipo_monitoramento": "mps", "identificador_item": "A", "timestamp": "2025-03-01", "value": "nan"},
    ])
    def test_parse_invalid(self, temp_db, row):
        with pytest.raises(ValueError):
            ReadingImporter(temp_db).parse_row(row)

    def test_import_csv(self, temp_db, tmp_path):
        path = tmp_path / "readings.csv"
        path.write_text(
            CSV_HEADER
            + "mps,Acme,2025-03-01T09:00:00+00:00,,200,20,,\n"
            + "mps,Acme,2025-03-02T09:00:00+00:00,85.5,,,,\n"
            + "sla_fila,N1,2025-03-01T09:00:00+00:00,,,,18,2\n"
            + "uptime,X,2025-03-01T09:00:00+00:00,99,,,,\n"
        )
        result = ReadingImporter(temp_db).import_csv(str(path))
        assert result.rows_read == 4
        assert result.readings_saved == 3
        assert result.skipped == 1
        assert "line 5" in result.errors[0]
        assert [r.value for r in temp_db.get_readings("mps", "Acme")] == [85.5, 90.0]
        assert temp_db.get_readings("sla_fila", "N1")[0].value == 90.0

    def test_missing_file(self, temp_db, tmp_path):
        with pytest.raises(FileNotFoundError):
            ReadingImporter(temp_db).import_csv(str(tmp_path / "nope.csv"))
