"""Per monitoring-type alert settings with safe defaults."""
import logging
import sqlite3

from models.alerts import AlertSettings, default_settings
from models.enums import MonitoringType

logger = logging.getLogger("slamonitor.alerts.settings")


class AlertSettingsStore:
    def __init__(self, db):
        self.db = db

    def get(self, monitoring_type):
        """Stored settings for the type, or its hard-coded defaults.

        Read failures and invalid stored rows never block evaluation; they
        are logged and the defaults apply.
        """
        fallback = default_settings(monitoring_type)
        try:
            row = self.db.get_alert_settings(fallback.tipo_monitoramento)
        except sqlite3.Error as e:
            logger.warning(f"Could not load alert settings for {monitoring_type}, using defaults: {e}")
            return fallback
        if row is None:
            return fallback
        try:
            return AlertSettings.from_dict(row).validate()
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Invalid stored settings for {monitoring_type}, using defaults: {e}")
            return fallback

    def get_all(self):
        return {t.value: self.get(t.value) for t in MonitoringType}

    def save(self, settings):
        """Upsert keyed by monitoring type. Returns False on failure."""
        try:
            settings.validate()
            self.db.upsert_alert_settings(settings)
        except (ValueError, sqlite3.Error) as e:
            logger.warning(f"Error saving alert settings for {settings.tipo_monitoramento}: {e}")
            return False
        logger.info(f"Saved alert settings for {settings.tipo_monitoramento}")
        return True

    def update(self, monitoring_type, **changes):
        """Apply field changes on top of the current settings and save them."""
        current = self.get(monitoring_type).to_dict()
        unknown = set(changes) - set(current)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")
        current.update({k: v for k, v in changes.items() if v is not None})
        settings = AlertSettings.from_dict(current)
        settings.validate()
        if not self.save(settings):
            return None
        return settings
