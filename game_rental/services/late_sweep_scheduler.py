from __future__ import annotations

import logging
import threading
from datetime import datetime, time, timedelta

from services.rental_service import check_for_late_rentals

SCHEDULER_LOGGER = logging.getLogger("game_rental.scheduler")


def parse_run_at(raw: str | None) -> time:
    value = (raw or "00:00").strip()
    try:
        hours, minutes = value.split(":", 1)
        return time(hour=int(hours), minute=int(minutes))
    except ValueError as exc:
        raise ValueError(f"Invalid sweep time {value!r}; expected HH:MM.") from exc


def seconds_until_next_run(now: datetime, run_at: time) -> float:
    """Seconds from ``now`` to the next ``run_at``; a full day when they coincide."""
    target = datetime.combine(now.date(), run_at, tzinfo=now.tzinfo)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class LateRentalScheduler:
    """Runs the late sweep once a day on a daemon thread."""

    def __init__(self, session_factory, run_at: str = "00:00", clock=datetime.now):
        self._session_factory = session_factory
        self._run_at = parse_run_at(run_at)
        self._clock = clock
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="late-rental-sweep", daemon=True)
            self._thread.start()
        SCHEDULER_LOGGER.info("Late sweep scheduled daily at %s", self._run_at.strftime("%H:%M"))

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is not None:
            thread.join(timeout)
            SCHEDULER_LOGGER.info("Late sweep stopped")

    def run_once(self) -> int | None:
        SCHEDULER_LOGGER.info("Late sweep started")
        try:
            return check_for_late_rentals(self._session_factory)
        except Exception:
            SCHEDULER_LOGGER.exception("Late sweep failed")
            return None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            delay = seconds_until_next_run(self._clock(), self._run_at)
            if self._stop_event.wait(delay):
                break
            self.run_once()
