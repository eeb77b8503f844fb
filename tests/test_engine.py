"""Tests for the evaluation cycle."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from alerts.engine import EvaluationCycle, ItemSeries
from alerts.persister import PersistenceError
from models.alerts import AlertSettings, ItemThreshold, Reading
from models.enums import TrendDirection
from monitor.history import HistoryFetchError

TS = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _readings(values):
    """Newest-first readings from chronological values."""
    return [Reading(TS + timedelta(days=i), float(v)) for i, v in enumerate(values)][::-1]


def _active_types(components, tipo, item):
    return sorted(a.alert_type for a in components["persister"].get_active_alerts(tipo, item))


class TestEvaluationCycle:
    def test_stable_item_creates_nothing(self, components, seed_readings):
        seed_readings("mps", "Acme", [99] * 8)
        statuses = components["cycle"].run("mps")
        assert len(statuses) == 1
        s = statuses[0]
        assert s.created == []
        assert s.status == "excelente"
        assert s.display_trend == TrendDirection.STABLE
        assert s.comparison["diffPercent"] == pytest.approx(0.0)

    def test_limit_alert_and_threshold_override(self, components, seed_readings):
        seed_readings("mps", "Acme", [75] * 8)
        seed_readings("mps", "Globex", [75] * 8)
        components["thresholds"].set_override("mps", "Globex", 90, 70)

        statuses = {s.identificador_item: s for s in components["cycle"].run("mps")}
        assert statuses["Acme"].created == ["limite"]
        assert statuses["Acme"].status == "critico"
        assert statuses["Globex"].created == []
        assert statuses["Globex"].status == "atencao"
        assert statuses["Globex"].threshold.custom is True

        alert = components["persister"].get_active_alerts("mps", "Acme")[0]
        assert alert.severity == "critical"
        assert alert.contexto["reason"] == "Percentual abaixo da meta de atenção de 80%"

    def test_repeated_cycles_are_idempotent(self, components, seed_readings):
        seed_readings("sla_fila", "N1", [75] * 8)
        first = components["cycle"].run("sla_fila")
        second = components["cycle"].run("sla_fila")
        assert first[0].created == ["limite"]
        assert second[0].created == []
        assert len(components["persister"].list_alerts("sla_fila")) == 1

    def test_sharp_drop_fires_all_three(self, components, seed_readings):
        seed_readings("mps", "Acme", [100] * 7 + [70])
        s = components["cycle"].run("mps")[0]
        assert s.created == ["anomalia", "tendencia", "limite"]
        assert s.display_anomaly is True
        assert s.display_trend == TrendDirection.DOWN
        assert s.variation == pytest.approx(-30.0)

        anomaly = [a for a in components["persister"].get_active_alerts("mps", "Acme")
                   if a.alert_type == "anomalia"][0]
        assert anomaly.contexto["comparison"]["diffPercent"] == pytest.approx(-30.0)
        trend = [a for a in components["persister"].get_active_alerts("mps", "Acme")
                 if a.alert_type == "tendencia"][0]
        assert trend.severity == "warning"

    def test_open_alerts_stay_displayed_after_recovery(self, components, seed_readings):
        components["settings_store"].update("mps", auto_resolve_enabled=False)
        next_ts = seed_readings("mps", "Acme", [100] * 7 + [70])
        components["cycle"].run("mps")

        seed_readings("mps", "Acme", [100], start=next_ts)
        s = components["cycle"].run("mps")[0]
        assert s.created == []
        assert s.trend == TrendDirection.UP
        assert s.is_anomaly is False
        # Card keeps showing the conditions that are still open
        assert s.display_trend == TrendDirection.DOWN
        assert s.display_anomaly is True
        assert s.active_alerts == ["anomalia", "limite", "tendencia"]
        assert s.to_dict()["trend"] == "down"

    def test_downward_trend_without_alert_displays_stable(self, components, seed_readings):
        components["settings_store"].update("mps", trend_enabled=False)
        seed_readings("mps", "Acme", [99, 98.5])
        s = components["cycle"].run("mps")[0]
        assert s.trend == TrendDirection.DOWN
        assert s.display_trend == TrendDirection.STABLE
        assert s.created == []

    def test_upward_trend_displayed(self, components, seed_readings):
        seed_readings("mps", "Acme", [98.5, 99])
        s = components["cycle"].run("mps")[0]
        assert s.display_trend == TrendDirection.UP

    def test_anomaly_disabled(self, components, seed_readings):
        components["settings_store"].update("mps", anomaly_enabled=False)
        seed_readings("mps", "Acme", [100] * 7 + [70])
        s = components["cycle"].run("mps")[0]
        assert "anomalia" not in s.created
        assert s.display_anomaly is False

    def test_auto_resolve_after_clean_readings(self, components, seed_readings):
        next_ts = seed_readings("mps", "Acme", [75] * 8)
        components["cycle"].run("mps")
        assert _active_types(components, "mps", "Acme") == ["limite"]

        next_ts = seed_readings("mps", "Acme", [90], start=next_ts)
        s = components["cycle"].run("mps")[0]
        assert s.resolved == []
        # Same reading polled again does not count twice
        s = components["cycle"].run("mps")[0]
        assert s.resolved == []
        alert = components["persister"].get_active_alerts("mps", "Acme")[0]
        assert alert.clean_readings == 1

        seed_readings("mps", "Acme", [90], start=next_ts)
        s = components["cycle"].run("mps")[0]
        assert s.resolved == ["limite"]
        assert _active_types(components, "mps", "Acme") == []
        treated = components["persister"].list_alerts("mps")[0]
        assert treated.tratado_por == "auto-resolve"

    def test_refire_resets_clean_count(self, components, seed_readings):
        next_ts = seed_readings("mps", "Acme", [75] * 8)
        components["cycle"].run("mps")
        next_ts = seed_readings("mps", "Acme", [90], start=next_ts)
        components["cycle"].run("mps")
        seed_readings("mps", "Acme", [75], start=next_ts)
        s = components["cycle"].run("mps")[0]
        assert "tendencia" in s.created
        limite = [a for a in components["persister"].get_active_alerts("mps", "Acme")
                  if a.alert_type == "limite"][0]
        assert limite.clean_readings == 0

    def test_consecutive_drop_strategy(self, components, seed_readings):
        cycle = EvaluationCycle(components["provider"], components["settings_store"],
                                components["persister"], components["thresholds"],
                                trend_strategy="consecutive_drop")
        seed_readings("mps", "Acme", [99, 99, 99.5, 99])
        assert "tendencia" not in cycle.run("mps")[0].created
        seed_readings("mps", "Globex", [99.9, 99.5, 99.2, 99])
        statuses = {s.identificador_item: s for s in cycle.run("mps")}
        assert statuses["Globex"].created == ["tendencia"]

    def test_types_are_isolated(self, components, seed_readings):
        seed_readings("mps", "Acme", [75] * 8)
        assert components["cycle"].run("sla_projeto") == []
        assert components["persister"].list_alerts() == []


class TestEvaluateItemUnit:
    def setup_method(self):
        self.provider = MagicMock()
        self.settings_store = MagicMock()
        self.settings_store.get.return_value = AlertSettings(tipo_monitoramento="mps")
        self.persister = MagicMock()
        self.persister.get_active_alerts.return_value = []
        self.thresholds = MagicMock()
        self.thresholds.resolve.return_value = ItemThreshold(98, 80)
        self.cycle = EvaluationCycle(self.provider, self.settings_store, self.persister, self.thresholds)

    def test_history_error_propagates_before_writes(self):
        self.provider.list_items.return_value = ["A", "B"]
        self.provider.get_history.side_effect = [
            _readings([75] * 8), HistoryFetchError("timeout", "mps", "B"),
        ]
        with pytest.raises(HistoryFetchError):
            self.cycle.run("mps")
        self.persister.persist_alert.assert_not_called()

    def test_persistence_error_isolated_per_item(self):
        def persist(candidate):
            if candidate.identificador_item == "A":
                raise PersistenceError("locked", "insert")
            return MagicMock()

        self.persister.persist_alert.side_effect = persist
        series = [ItemSeries("A", _readings([75] * 8)), ItemSeries("B", _readings([75] * 8))]
        statuses = {s.identificador_item: s for s in self.cycle.run("mps", series=series)}
        assert statuses["A"].created == []
        assert statuses["A"].errors
        assert statuses["B"].created == ["limite"]
        assert statuses["B"].errors == []

    def test_item_without_readings_is_skipped(self):
        assert self.cycle.run("mps", series=[ItemSeries("A", [])]) == []

    def test_enriched_values_take_precedence(self):
        series = ItemSeries("A", _readings([99] * 8), current_value=50.0, previous_value=99.0)
        status = self.cycle.run("mps", series=[series])[0]
        assert status.percentual == 50.0
        assert status.previous == 99.0
        created_types = [c.args[0].alert_type for c in self.persister.persist_alert.call_args_list]
        assert created_types == ["anomalia", "tendencia", "limite"]

    def test_fetch_limit_covers_window(self):
        self.settings_store.get.return_value = AlertSettings(tipo_monitoramento="mps",
                                                             anomaly_moving_avg_days=60)
        self.provider.list_items.return_value = ["A"]
        self.provider.get_history.return_value = _readings([99] * 3)
        self.cycle.run("mps")
        assert self.provider.get_history.call_args.kwargs["limit"] == 61

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            self.cycle.run("uptime")
