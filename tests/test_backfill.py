"""Tests for alert-state backfill from stored history."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from models.alerts import AlertSettings, ItemThreshold, Reading
from monitor.backfill import BackfillOrchestrator, BackfillResult
from monitor.history import HistoryFetchError

TS = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _newest_first(values):
    return [Reading(TS + timedelta(days=i), float(v)) for i, v in enumerate(values)][::-1]


class TestCandidates:
    def setup_method(self):
        self.thresholds = MagicMock()
        self.thresholds.resolve.return_value = ItemThreshold(98, 80)
        self.orchestrator = BackfillOrchestrator(MagicMock(), MagicMock(), MagicMock(), self.thresholds)
        self.settings = AlertSettings(tipo_monitoramento="mps")

    def test_sharp_drop(self):
        candidates = self.orchestrator.candidates_for("mps", "Acme", _newest_first([100] * 7 + [70]),
                                                      self.settings)
        assert [c.alert_type for c in candidates] == ["tendencia", "limite", "anomalia"]
        assert all(c.contexto["backfill"] for c in candidates)
        assert candidates[1].contexto["reason"] == "Abaixo de 80%"

    def test_healthy_item(self):
        assert self.orchestrator.candidates_for("mps", "Acme", _newest_first([99] * 8), self.settings) == []

    def test_single_reading_only_checks_limit(self):
        candidates = self.orchestrator.candidates_for("mps", "Acme", _newest_first([60]), self.settings)
        assert [c.alert_type for c in candidates] == ["limite"]

    def test_empty_history(self):
        assert self.orchestrator.candidates_for("mps", "Acme", [], self.settings) == []

    def test_uses_item_threshold(self):
        self.thresholds.resolve.return_value = ItemThreshold(90, 70, custom=True)
        assert self.orchestrator.candidates_for("mps", "Acme", _newest_first([75] * 8), self.settings) == []

    def test_honors_enabled_flags(self):
        settings = AlertSettings(tipo_monitoramento="mps", anomaly_enabled=False, trend_enabled=False)
        candidates = self.orchestrator.candidates_for("mps", "Acme", _newest_first([100] * 7 + [70]), settings)
        assert [c.alert_type for c in candidates] == ["limite"]


class TestBackfillRun:
    def test_creates_current_state(self, components, seed_readings):
        seed_readings("mps", "Acme", [100] * 7 + [70])
        seed_readings("sla_fila", "N1", [75] * 3)
        seed_readings("sla_projeto", "P1", [99] * 3)

        progress = []
        result = components["backfill"].run(progress_callback=lambda n, mt: progress.append((n, mt)))
        assert isinstance(result, BackfillResult)
        assert result.items_processed == 3
        assert result.alerts_created == {"tendencia": 1, "limite": 2, "anomalia": 1}
        assert result.total_created == 4
        assert result.types_processed == ["mps", "sla_fila", "sla_projeto"]
        assert progress == [(1, "mps"), (2, "sla_fila"), (3, "sla_projeto")]

    def test_rerun_keeps_existing_alerts(self, components, seed_readings):
        seed_readings("mps", "Acme", [75] * 3)
        components["backfill"].run(["mps"])
        again = components["backfill"].run(["mps"])
        assert again.total_created == 0
        assert len(components["persister"].list_alerts()) == 1

    def test_history_error_is_recorded_and_run_continues(self):
        provider = MagicMock()
        provider.list_items.return_value = ["A", "B"]
        provider.get_history.side_effect = [HistoryFetchError("boom"), _newest_first([60])]
        settings_store = MagicMock()
        settings_store.get.return_value = AlertSettings(tipo_monitoramento="mps")
        thresholds = MagicMock()
        thresholds.resolve.return_value = ItemThreshold(98, 80)
        persister = MagicMock()

        result = BackfillOrchestrator(provider, settings_store, persister, thresholds).run(["mps"])
        assert result.items_processed == 1
        assert len(result.errors) == 1
        assert persister.persist_alert.call_count == 1

    def test_unknown_type(self, components):
        with pytest.raises(ValueError):
            components["backfill"].run(["uptime"])
