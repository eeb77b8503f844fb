"""
Flask JSON API for the SLA Alert Monitor.

API endpoints:
  GET  /api/status/<type>                 — Item cards for a monitoring type (cached refresh)
  POST /api/refresh                       — Run an evaluation cycle now
  GET  /api/alerts                        — Alert records (?type=&active=1&limit=)
  GET  /api/alerts/summary                — Active / critical / treated-today counts
  POST /api/alerts/<id>/treat             — Treat an active alert {comment, treated_by}
  GET  /api/settings/<type>               — Effective alert settings
  PUT  /api/settings/<type>               — Update alert settings
  GET  /api/thresholds/<type>/<item>      — Effective item threshold
  PUT  /api/thresholds/<type>/<item>      — Set item threshold override
  DELETE /api/thresholds/<type>/<item>    — Remove item threshold override

Started via: python main.py web [--port 5000] [--host 0.0.0.0]
"""
import logging
from dataclasses import asdict

from flask import Flask, jsonify, request

from models.enums import MonitoringType
from monitor.history import HistoryFetchError

logger = logging.getLogger("slamonitor.web.app")

_TYPES = {t.value for t in MonitoringType}


def create_app(config: dict, engines: dict, scheduler=None) -> Flask:
    """
    Factory function. Receives initialized components from main.py CLI or wsgi.py.

    Args:
        config: Application config dict
        engines: dict of initialized components (db, monitor, persister,
                 settings_store, thresholds)
        scheduler: optional running MonitorScheduler, used for manual refresh
    """
    app = Flask(__name__)

    def _unknown_type(monitoring_type):
        if monitoring_type not in _TYPES:
            return jsonify({"error": f"Unknown monitoring type: {monitoring_type}"}), 404
        return None

    # ─── Status ──────────────────────────────────────────

    @app.route("/api/status/<monitoring_type>")
    def api_status(monitoring_type):
        err = _unknown_type(monitoring_type)
        if err:
            return err
        monitor = engines["monitor"]
        try:
            statuses = monitor.get_status(monitoring_type)
        except HistoryFetchError as e:
            logger.error(f"Status for {monitoring_type} failed: {e}")
            return jsonify({"error": str(e)}), 500
        last = monitor.last_refresh
        return jsonify({
            "tipo_monitoramento": monitoring_type,
            "items": [s.to_dict() for s in statuses],
            "count": len(statuses),
            "last_refresh": last.isoformat() if last else None,
        })

    @app.route("/api/refresh", methods=["POST"])
    def api_refresh():
        body = request.get_json(silent=True) or {}
        types = body.get("types")
        if types is not None:
            bad = [t for t in types if t not in _TYPES]
            if bad:
                return jsonify({"error": f"Unknown monitoring type(s): {bad}"}), 400
        try:
            if scheduler is not None and types is None:
                results = scheduler.trigger_refresh()
                if results is None:
                    return jsonify({"error": "Refresh failed"}), 500
            else:
                results = engines["monitor"].refresh(types)
        except HistoryFetchError as e:
            logger.error(f"Manual refresh failed: {e}")
            return jsonify({"error": str(e)}), 500
        return jsonify({
            "refreshed": sorted(results),
            "created": sum(len(s.created) for statuses in results.values() for s in statuses),
            "resolved": sum(len(s.resolved) for statuses in results.values() for s in statuses),
        })

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts")
    def api_alerts():
        monitoring_type = request.args.get("type")
        if monitoring_type and monitoring_type not in _TYPES:
            return jsonify({"error": f"Unknown monitoring type: {monitoring_type}"}), 400
        try:
            limit = min(int(request.args.get("limit", 50)), 500)
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400
        active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
        alerts = engines["persister"].list_alerts(monitoring_type, active_only, limit)
        return jsonify({"alerts": [a.to_dict() for a in alerts], "count": len(alerts)})

    @app.route("/api/alerts/summary")
    def api_alerts_summary():
        return jsonify(engines["persister"].alert_summary())

    @app.route("/api/alerts/<int:alert_id>/treat", methods=["POST"])
    def api_treat_alert(alert_id):
        body = request.get_json(silent=True) or {}
        try:
            alert = engines["persister"].treat_alert(
                alert_id, body.get("comment", ""), body.get("treated_by"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except LookupError as e:
            return jsonify({"error": str(e)}), 404
        return jsonify(alert.to_dict())

    # ─── Settings ────────────────────────────────────────

    @app.route("/api/settings/<monitoring_type>", methods=["GET", "PUT"])
    def api_settings(monitoring_type):
        err = _unknown_type(monitoring_type)
        if err:
            return err
        store = engines["settings_store"]
        if request.method == "GET":
            return jsonify(store.get(monitoring_type).to_dict())

        body = request.get_json(silent=True) or {}
        body.pop("tipo_monitoramento", None)
        try:
            saved = store.update(monitoring_type, **body)
        except (ValueError, TypeError) as e:
            return jsonify({"error": str(e)}), 400
        if saved is None:
            return jsonify({"error": "Could not save settings"}), 500
        return jsonify(saved.to_dict())

    # ─── Thresholds ──────────────────────────────────────

    @app.route("/api/thresholds/<monitoring_type>/<path:item>", methods=["GET", "PUT", "DELETE"])
    def api_threshold(monitoring_type, item):
        err = _unknown_type(monitoring_type)
        if err:
            return err
        resolver = engines["thresholds"]
        if request.method == "PUT":
            body = request.get_json(silent=True) or {}
            try:
                resolver.set_override(monitoring_type, item,
                                      float(body["meta_excelente"]), float(body["meta_atencao"]))
            except KeyError as e:
                return jsonify({"error": f"Missing field: {e.args[0]}"}), 400
            except (TypeError, ValueError) as e:
                return jsonify({"error": str(e)}), 400
        elif request.method == "DELETE":
            if not resolver.clear_override(monitoring_type, item):
                return jsonify({"error": f"No override for {item}"}), 404
        threshold = resolver.resolve(monitoring_type, item)
        return jsonify({"tipo_monitoramento": monitoring_type, "identificador_item": item,
                        **asdict(threshold)})

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Unhandled error: {e}")
        return jsonify({"error": "Internal server error"}), 500

    return app
