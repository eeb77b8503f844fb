"""SQLite database for readings, alert settings, alerts and item thresholds."""
import json
import sqlite3
import threading
import logging
from datetime import datetime, timezone
from pathlib import Path

from models.alerts import Alert, Reading

logger = logging.getLogger("slamonitor.db")


def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return str(value)


class Database:
    def __init__(self, db_path="data/sla_monitor.db"):
        self.db_path = db_path
        self.conn = None
        # Serializes writes and their commit or rollback on the shared connection
        self._write_lock = threading.Lock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS readings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tipo_monitoramento TEXT NOT NULL,
                identificador_item TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                value REAL NOT NULL,
                UNIQUE (tipo_monitoramento, identificador_item, timestamp)
            );

            CREATE INDEX IF NOT EXISTS idx_readings_item
                ON readings(tipo_monitoramento, identificador_item, timestamp);

            CREATE TABLE IF NOT EXISTS monitoring_alert_settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tipo_monitoramento TEXT NOT NULL UNIQUE,
                anomaly_enabled INTEGER NOT NULL DEFAULT 1,
                anomaly_moving_avg_days INTEGER NOT NULL DEFAULT 7,
                anomaly_stddev_multiplier REAL NOT NULL DEFAULT 2.0,
                trend_enabled INTEGER NOT NULL DEFAULT 1,
                trend_consecutive_periods INTEGER NOT NULL DEFAULT 3,
                auto_resolve_enabled INTEGER NOT NULL DEFAULT 1,
                auto_resolve_consecutive_readings INTEGER NOT NULL DEFAULT 2,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS monitoring_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tipo_monitoramento TEXT NOT NULL,
                identificador_item TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                percentual_atual REAL NOT NULL,
                contexto TEXT,
                detected_at TEXT NOT NULL,
                tratado INTEGER NOT NULL DEFAULT 0,
                tratado_em TEXT,
                tratado_por TEXT,
                comentario_tratamento TEXT,
                clean_readings INTEGER NOT NULL DEFAULT 0,
                last_evaluated_reading TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_detected
                ON monitoring_alerts(detected_at);

            -- At most one active alert per (type, item, alert_type)
            CREATE UNIQUE INDEX IF NOT EXISTS idx_alerts_one_active
                ON monitoring_alerts(tipo_monitoramento, identificador_item, alert_type)
                WHERE tratado = 0;

            CREATE TABLE IF NOT EXISTS item_thresholds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tipo_monitoramento TEXT NOT NULL,
                identificador_item TEXT NOT NULL,
                meta_excelente REAL NOT NULL,
                meta_atencao REAL NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (tipo_monitoramento, identificador_item)
            );
        """)
        self.conn.commit()

    def _write(self, sql, params=()):
        """Execute one write statement and commit it. Rolls back on failure."""
        with self._write_lock:
            try:
                cur = self.conn.execute(sql, params)
            except sqlite3.Error:
                self.conn.rollback()
                raise
            self.conn.commit()
            return cur

    # --- Readings ---

    def save_readings(self, records):
        """Insert or replace readings; each record has type, item, timestamp, value."""
        rows = [(r["tipo_monitoramento"], r["identificador_item"], _iso(r["timestamp"]),
                 float(r["value"])) for r in records]
        with self._write_lock:
            self.conn.executemany("""
                INSERT OR REPLACE INTO readings
                (tipo_monitoramento, identificador_item, timestamp, value)
                VALUES (?, ?, ?, ?)
            """, rows)
            self.conn.commit()
        logger.debug(f"Saved {len(records)} readings")

    def get_readings(self, tipo_monitoramento, identificador_item, limit=None):
        """Readings for one item, most recent first."""
        query = """
            SELECT timestamp, value FROM readings
            WHERE tipo_monitoramento = ? AND identificador_item = ?
            ORDER BY timestamp DESC
        """
        params = [tipo_monitoramento, identificador_item]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        rows = self.conn.execute(query, params).fetchall()
        return [Reading.from_dict(dict(r)) for r in rows]

    def list_items(self, tipo_monitoramento):
        rows = self.conn.execute("""
            SELECT DISTINCT identificador_item FROM readings
            WHERE tipo_monitoramento = ? ORDER BY identificador_item
        """, (tipo_monitoramento,)).fetchall()
        return [r["identificador_item"] for r in rows]

    def get_reading_count(self, tipo_monitoramento=None):
        if tipo_monitoramento:
            row = self.conn.execute(
                "SELECT COUNT(*) as cnt FROM readings WHERE tipo_monitoramento = ?",
                (tipo_monitoramento,),
            ).fetchone()
        else:
            row = self.conn.execute("SELECT COUNT(*) as cnt FROM readings").fetchone()
        return row["cnt"]

    # --- Alert Settings ---

    def get_alert_settings(self, tipo_monitoramento):
        row = self.conn.execute(
            "SELECT * FROM monitoring_alert_settings WHERE tipo_monitoramento = ?",
            (tipo_monitoramento,),
        ).fetchone()
        if row is None:
            return None
        settings = dict(row)
        # Flags are stored as INTEGER 0/1
        for name in ("anomaly_enabled", "trend_enabled", "auto_resolve_enabled"):
            if settings.get(name) in (0, 1):
                settings[name] = bool(settings[name])
        return settings

    def upsert_alert_settings(self, settings):
        now = datetime.now(timezone.utc).isoformat()
        self._write("""
            INSERT INTO monitoring_alert_settings
            (tipo_monitoramento, anomaly_enabled, anomaly_moving_avg_days,
             anomaly_stddev_multiplier, trend_enabled, trend_consecutive_periods,
             auto_resolve_enabled, auto_resolve_consecutive_readings, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tipo_monitoramento) DO UPDATE SET
                anomaly_enabled = excluded.anomaly_enabled,
                anomaly_moving_avg_days = excluded.anomaly_moving_avg_days,
                anomaly_stddev_multiplier = excluded.anomaly_stddev_multiplier,
                trend_enabled = excluded.trend_enabled,
                trend_consecutive_periods = excluded.trend_consecutive_periods,
                auto_resolve_enabled = excluded.auto_resolve_enabled,
                auto_resolve_consecutive_readings = excluded.auto_resolve_consecutive_readings,
                updated_at = excluded.updated_at
        """, (
            settings.tipo_monitoramento, int(settings.anomaly_enabled),
            settings.anomaly_moving_avg_days, settings.anomaly_stddev_multiplier,
            int(settings.trend_enabled), settings.trend_consecutive_periods,
            int(settings.auto_resolve_enabled), settings.auto_resolve_consecutive_readings,
            now, now,
        ))

    # --- Alerts ---

    def find_active_alert(self, tipo_monitoramento, identificador_item, alert_type):
        row = self.conn.execute("""
            SELECT * FROM monitoring_alerts
            WHERE tipo_monitoramento = ? AND identificador_item = ?
              AND alert_type = ? AND tratado = 0
            LIMIT 1
        """, (tipo_monitoramento, identificador_item, alert_type)).fetchone()
        return Alert.from_row(row) if row else None

    def insert_alert(self, alert):
        """Insert an active alert. Raises sqlite3.IntegrityError if one is already open."""
        cur = self._write("""
            INSERT INTO monitoring_alerts
            (tipo_monitoramento, identificador_item, alert_type, severity,
             percentual_atual, contexto, detected_at, tratado)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0)
        """, (
            alert.tipo_monitoramento, alert.identificador_item, alert.alert_type,
            alert.severity, alert.percentual_atual, json.dumps(alert.contexto or {}),
            _iso(alert.detected_at),
        ))
        return cur.lastrowid

    def get_alert(self, alert_id):
        row = self.conn.execute(
            "SELECT * FROM monitoring_alerts WHERE id = ?", (alert_id,)
        ).fetchone()
        return Alert.from_row(row) if row else None

    def get_active_alerts(self, tipo_monitoramento, identificador_item=None):
        query = "SELECT * FROM monitoring_alerts WHERE tipo_monitoramento = ? AND tratado = 0"
        params = [tipo_monitoramento]
        if identificador_item is not None:
            query += " AND identificador_item = ?"
            params.append(identificador_item)
        query += " ORDER BY detected_at DESC"
        return [Alert.from_row(r) for r in self.conn.execute(query, params).fetchall()]

    def list_alerts(self, tipo_monitoramento=None, active_only=False, limit=100):
        query = "SELECT * FROM monitoring_alerts WHERE 1=1"
        params = []
        if tipo_monitoramento:
            query += " AND tipo_monitoramento = ?"
            params.append(tipo_monitoramento)
        if active_only:
            query += " AND tratado = 0"
        query += " ORDER BY detected_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return [Alert.from_row(r) for r in self.conn.execute(query, params).fetchall()]

    def treat_alert(self, alert_id, comment, treated_by=None, treated_at=None):
        """Mark an active alert as treated. Returns True if a row changed."""
        treated_at = treated_at or datetime.now(timezone.utc)
        cur = self._write("""
            UPDATE monitoring_alerts
            SET tratado = 1, tratado_em = ?, tratado_por = ?, comentario_tratamento = ?
            WHERE id = ? AND tratado = 0
        """, (_iso(treated_at), treated_by, comment, alert_id))
        return cur.rowcount > 0

    def update_clean_readings(self, alert_id, clean_readings, last_evaluated_reading):
        self._write("""
            UPDATE monitoring_alerts
            SET clean_readings = ?, last_evaluated_reading = ?
            WHERE id = ? AND tratado = 0
        """, (clean_readings, last_evaluated_reading, alert_id))

    def get_alert_summary(self, today=None):
        """Counts for the alert summary cards."""
        today = (today or datetime.now(timezone.utc).date()).isoformat()
        row = self.conn.execute("""
            SELECT
                SUM(CASE WHEN tratado = 0 THEN 1 ELSE 0 END) as active,
                SUM(CASE WHEN tratado = 0 AND severity = 'critical' THEN 1 ELSE 0 END) as critical,
                SUM(CASE WHEN tratado = 1 AND substr(tratado_em, 1, 10) = ? THEN 1 ELSE 0 END)
                    as treated_today
            FROM monitoring_alerts
        """, (today,)).fetchone()
        by_type_rows = self.conn.execute("""
            SELECT alert_type, COUNT(*) as count FROM monitoring_alerts
            WHERE tratado = 0 GROUP BY alert_type
        """).fetchall()
        treated = self.conn.execute("""
            SELECT detected_at, tratado_em FROM monitoring_alerts
            WHERE tratado = 1 AND tratado_em IS NOT NULL
        """).fetchall()
        return {
            "active": row["active"] or 0,
            "critical": row["critical"] or 0,
            "treated_today": row["treated_today"] or 0,
            "by_type": {r["alert_type"]: r["count"] for r in by_type_rows},
            "treated": [(r["detected_at"], r["tratado_em"]) for r in treated],
        }

    # --- Item Thresholds ---

    def get_item_threshold(self, tipo_monitoramento, identificador_item):
        row = self.conn.execute("""
            SELECT * FROM item_thresholds
            WHERE tipo_monitoramento = ? AND identificador_item = ?
        """, (tipo_monitoramento, identificador_item)).fetchone()
        return dict(row) if row else None

    def upsert_item_threshold(self, tipo_monitoramento, identificador_item, meta_excelente, meta_atencao):
        self._write("""
            INSERT INTO item_thresholds
            (tipo_monitoramento, identificador_item, meta_excelente, meta_atencao, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(tipo_monitoramento, identificador_item) DO UPDATE SET
                meta_excelente = excluded.meta_excelente,
                meta_atencao = excluded.meta_atencao,
                updated_at = excluded.updated_at
        """, (tipo_monitoramento, identificador_item, meta_excelente, meta_atencao,
              datetime.now(timezone.utc).isoformat()))

    def delete_item_threshold(self, tipo_monitoramento, identificador_item):
        cur = self._write("""
            DELETE FROM item_thresholds
            WHERE tipo_monitoramento = ? AND identificador_item = ?
        """, (tipo_monitoramento, identificador_item))
        return cur.rowcount > 0

    def list_item_thresholds(self, tipo_monitoramento=None):
        query = "SELECT * FROM item_thresholds"
        params = []
        if tipo_monitoramento:
            query += " WHERE tipo_monitoramento = ?"
            params.append(tipo_monitoramento)
        query += " ORDER BY tipo_monitoramento, identificador_item"
        return [dict(r) for r in self.conn.execute(query, params).fetchall()]
