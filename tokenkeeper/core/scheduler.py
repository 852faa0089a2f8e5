"""Background reaper for abandoned authorization attempts."""
import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tokenkeeper.core.clock import Clock, utcnow
from tokenkeeper.store import CredentialStore

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """Periodically delete pending authorizations past their expiry.

    One instance is created per process and started explicitly; calling
    ``start`` while it is running does nothing.
    """

    def __init__(
        self,
        store: CredentialStore,
        interval_minutes: int = 5,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.interval_minutes = interval_minutes
        self.clock = clock
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def sweep(self) -> int:
        """Delete every pending authorization expiring at or before now."""
        removed = self.store.delete_expired_pending(self.clock())
        if removed:
            logger.info(f"Reaped {removed} expired pending authorizations")
        return removed

    def run_sweep(self) -> None:
        """Scheduled job. A failed sweep is retried on the next interval."""
        try:
            self.sweep()
        except Exception as e:
            logger.error(f"Expired authorization cleanup failed: {e}")

    def start(self) -> None:
        """Start the background scheduler."""
        with self._lock:
            if self.running:
                return
            scheduler = BackgroundScheduler(timezone="UTC")
            scheduler.add_job(
                self.run_sweep,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id="pending_authorization_reaper",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
        logger.info(f"Reaper started, sweeping every {self.interval_minutes} minutes")

    def stop(self) -> None:
        """Graceful shutdown."""
        with self._lock:
            if not self.running:
                return
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Reaper shut down")
