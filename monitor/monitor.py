"""SLAMonitor - runs evaluation cycles for every monitoring type."""
import logging
import threading
from datetime import datetime, timezone

from models.enums import MonitoringType

logger = logging.getLogger("slamonitor.monitor")


class SLAMonitor:
    def __init__(self, cycle, config=None):
        self.cycle = cycle
        self.config = config or {}
        self.last_refresh = None
        self._last_results = {}
        self._results_lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    def refresh(self, monitoring_types=None):
        """Run one evaluation cycle per monitoring type.

        Used by both the scheduled tick and a manual refresh. A history fetch
        failure propagates and fails the whole refresh.
        """
        types = [MonitoringType(t).value for t in (monitoring_types or [t.value for t in MonitoringType])]
        results = {}
        # Timer ticks and manual refreshes never overlap
        with self._refresh_lock:
            for mt in types:
                results[mt] = self.cycle.run(mt)

        with self._results_lock:
            self._last_results.update(results)
            self.last_refresh = datetime.now(timezone.utc)
        return results

    def get_status(self, monitoring_type):
        """Item statuses from the last refresh, running one if none exists yet."""
        mt = MonitoringType(monitoring_type).value
        with self._results_lock:
            cached = self._last_results.get(mt)
        if cached is None:
            logger.info(f"No evaluation for {mt} yet, refreshing...")
            cached = self.refresh([mt])[mt]
        return cached
