"""Daily refresh job anchored to a fixed UTC time of day."""

from __future__ import annotations

import threading
from datetime import datetime

from fx_anchor.config import Settings
from fx_anchor.updater import RateUpdater
from fx_anchor.utils.dates import Clock, SystemClock, next_run_after
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Scheduler:
    """Owns one background thread that force-refreshes the anchor rates once a day.

    Failed runs are retried ``schedule_max_attempts`` times in total with a
    fixed ``schedule_retry_delay`` between attempts. A run that would overlap
    one still in flight is skipped. :meth:`stop` interrupts any wait,
    including retry delays, but never an upsert already in progress.
    """

    def __init__(
        self,
        updater: RateUpdater,
        settings: Settings | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.updater = updater
        self.settings = settings or updater.settings
        self.clock: Clock = clock or SystemClock()
        self._stop_event = threading.Event()
        self._in_flight = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_run_after(self, moment: datetime | None = None) -> datetime:
        return next_run_after(moment or self.clock.now(), self.settings.schedule_time)

    def start(self) -> None:
        if self.is_running:
            if self._stop_event.is_set():
                LOGGER.warning("Previous scheduler thread is still finishing; not starting another")
            else:
                LOGGER.debug("Scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_forever, name="fx-anchor-scheduler", daemon=True
        )
        self._thread.start()
        LOGGER.info(
            "Exchange rate scheduler started (daily at %s UTC)", self.settings.schedule_time
        )

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        if thread is not None and thread.is_alive():
            LOGGER.warning("Scheduler thread is still finishing an update; it will exit afterwards")
            return
        self._thread = None
        LOGGER.info("Exchange rate scheduler stopped")

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def run_once(self) -> bool:
        """Run one guarded refresh with retries; ``False`` when skipped or failed."""

        if not self._in_flight.acquire(blocking=False):
            LOGGER.warning("Previous exchange rate refresh still running; skipping this run")
            return False
        try:
            return self._refresh_with_retries()
        finally:
            self._in_flight.release()

    def _run_forever(self) -> None:
        while not self._stop_event.is_set():
            now = self.clock.now()
            next_run = self.next_run_after(now)
            wait_seconds = max((next_run - now).total_seconds(), 0.0)
            LOGGER.info(
                "Next exchange rate update scheduled for %s (in %s minutes)",
                next_run.isoformat(),
                round(wait_seconds / 60),
            )
            if self._stop_event.wait(wait_seconds):
                break
            self.run_once()

    def _refresh_with_retries(self) -> bool:
        max_attempts = self.settings.schedule_max_attempts
        delay = self.settings.schedule_retry_delay
        LOGGER.info("Performing daily exchange rate update")
        for attempt in range(1, max_attempts + 1):
            try:
                if self.updater.refresh(self.settings.anchor_currency, force=True):
                    LOGGER.info("Daily exchange rate update completed successfully")
                    return True
                LOGGER.warning("Daily update attempt %s/%s failed", attempt, max_attempts)
            except Exception:
                LOGGER.exception("Daily update attempt %s/%s raised", attempt, max_attempts)
            if attempt < max_attempts:
                LOGGER.info(
                    "Retrying in %s seconds (attempt %s/%s)", delay, attempt + 1, max_attempts
                )
                if self._stop_event.wait(delay):
                    LOGGER.info("Scheduler stopping; abandoning remaining retries")
                    return False
        LOGGER.error("All daily update attempts failed. Manual intervention may be required.")
        return False


__all__ = ["Scheduler"]
