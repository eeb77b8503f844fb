"""Background scheduler for periodic alert evaluation."""
import logging
import threading
import schedule

logger = logging.getLogger("slamonitor.scheduler")


class MonitorScheduler:
    def __init__(self, monitor, interval_seconds=300):
        self.monitor = monitor
        self.interval = interval_seconds
        self._thread = None
        self._stop_event = threading.Event()
        self._scheduler = schedule.Scheduler()
        self._callbacks = []
        self._consecutive_failures = 0

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def on_refresh(self, callback):
        """Register callback called with the results of each successful refresh."""
        self._callbacks.append(callback)

    def start(self):
        """Start background evaluation."""
        if self.running:
            return
        self._stop_event.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self._refresh_job)

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self, timeout=5):
        """Signal cancellation and wait for the loop to exit."""
        self._stop_event.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # Loop still finishing a refresh; start() stays a no-op until it exits
                logger.warning(f"Scheduler loop did not exit within {timeout}s")
                return
            self._thread = None
        logger.info("Scheduler stopped")

    def trigger_refresh(self):
        """Manual refresh outside the timer; runs in the caller's thread."""
        return self._refresh_job()

    def _run_loop(self):
        # Do an initial evaluation immediately
        self._refresh_job()
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(1)

    def _refresh_job(self):
        try:
            results = self.monitor.refresh()
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Refresh failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive refresh failures!")
            return None

        self._consecutive_failures = 0
        for cb in self._callbacks:
            try:
                cb(results)
            except Exception as e:
                logger.warning(f"Callback error: {e}")
        return results
