"""Periodic execution of the monitoring cycle."""
import logging
import threading
import schedule
import time

logger = logging.getLogger("guardian.scheduler")


class MonitorScheduler:
    """Runs ``cycle.run_once`` every ``interval_seconds`` on a background thread.

    Each run is a finite batch; a run that is still in flight when the next
    tick comes due simply delays it, runs never overlap.
    """

    def __init__(self, cycle, interval_seconds=300):
        self.cycle = cycle
        self.interval = interval_seconds
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._callbacks = []
        self._consecutive_failures = 0
        self.last_summary = None

    def on_cycle(self, callback):
        """Register callback called with the CycleSummary after each run."""
        self._callbacks.append(callback)

    def start(self):
        """Start background monitoring."""
        if self._running:
            return
        self._running = True
        self.cycle.resume()

        self._scheduler.every(self.interval).seconds.do(self.run_job)

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self, timeout=5):
        """Stop background monitoring; an in-flight cycle ends after its current asset.

        Returns False while the worker thread is still running after ``timeout``
        seconds (``None`` waits for it).
        """
        self._running = False
        self.cycle.stop()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread still running a cycle")
                return False
            self._thread = None
        logger.info("Scheduler stopped")
        return True

    def _run_loop(self):
        # Run once immediately, then on schedule
        self.run_job()
        while self._running:
            self._scheduler.run_pending()
            time.sleep(1)

    def run_job(self):
        try:
            summary = self.cycle.run_once()
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Cycle crashed ({self._consecutive_failures} consecutive): {e}")
            return None

        self.last_summary = summary
        if summary.total and summary.succeeded == 0 and summary.failed:
            self._consecutive_failures += 1
            logger.error(f"Every asset failed ({self._consecutive_failures} consecutive cycles)")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive failed cycles!")
        else:
            self._consecutive_failures = 0

        for cb in self._callbacks:
            try:
                cb(summary)
            except Exception as e:
                logger.warning(f"Callback error: {e}")
        return summary
