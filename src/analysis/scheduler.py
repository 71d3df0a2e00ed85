"""Background scheduling of analysis runs.

Three triggers drive the orchestrator:

- an hourly tick that runs whatever ``run_due()`` says is due (and re-probes
  the model first if it was marked unavailable);
- a daily timer at ``daily_time`` that runs the daily analysis;
- a weekly timer on ``weekly_day`` at ``weekly_time`` that runs the weekly
  analysis when the content thresholds hold, ignoring the cooldown.

The calendar timers are one-shot ``threading.Timer``s that reschedule
themselves after firing.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, time, timedelta

from fishbowl.analysis.models import AnalysisEvent, AnalysisKind
from fishbowl.analysis.orchestrator import AnalysisOrchestrator
from fishbowl.config import ScheduleConfig

logger = logging.getLogger(__name__)


def next_daily_run(now: datetime, at: time) -> datetime:
    """The next occurrence of *at* strictly after *now*."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_weekly_run(now: datetime, weekday: int, at: time) -> datetime:
    """The next *weekday* (Monday = 0) at *at*, strictly after *now*."""
    days_ahead = (weekday - now.weekday()) % 7
    candidate = (now + timedelta(days=days_ahead)).replace(
        hour=at.hour, minute=at.minute, second=0, microsecond=0
    )
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


class AnalysisScheduler:
    """Owns the tick thread and the calendar timers for one orchestrator."""

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        config: ScheduleConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.config = config or ScheduleConfig()
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._tick_thread: threading.Thread | None = None
        self._timers: dict[str, threading.Timer] = {}

    @property
    def is_running(self) -> bool:
        return self._tick_thread is not None and self._tick_thread.is_alive()

    # -- Triggers ------------------------------------------------------------

    def tick(self) -> list[AnalysisEvent]:
        """One periodic check: re-probe if needed, then run what is due."""
        gateway = self.orchestrator.gateway
        if gateway.is_available is False:
            logger.info("Model marked unavailable, re-probing")
            gateway.probe()
        return self.orchestrator.run_due()

    def trigger(self, kind: AnalysisKind) -> AnalysisEvent:
        """Run one kind now, without checking whether it is due."""
        if kind == AnalysisKind.DAILY:
            return self.orchestrator.run_daily()
        if kind == AnalysisKind.WEEKLY:
            return self.orchestrator.run_weekly()
        if kind == AnalysisKind.THEME_DISCOVERY:
            return self.orchestrator.run_theme_discovery()
        raise ValueError(f"{kind} analysis cannot be triggered without a theme name")

    def run_daily_timer(self) -> AnalysisEvent:
        return self.orchestrator.run_daily()

    def run_weekly_timer(self) -> AnalysisEvent | None:
        if not self.orchestrator.has_weekly_content():
            logger.info("Weekly timer fired but there is not enough content yet")
            return None
        return self.orchestrator.run_weekly()

    # -- Lifecycle -----------------------------------------------------------

    def _tick_loop(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduled analysis check failed")
            if self._stop.wait(self.config.tick_seconds):
                return

    def _schedule(self, name: str, when: datetime, action: Callable[[], object]) -> None:
        def fire() -> None:
            try:
                action()
            except Exception:
                logger.exception("%s timer failed", name.capitalize())
            finally:
                self._reschedule(name)

        delay = max((when - self._clock()).total_seconds(), 0.0)
        with self._lock:
            if self._stop.is_set():
                return
            timer = threading.Timer(delay, fire)
            timer.name = f"fishbowl-{name}"
            timer.daemon = True
            self._timers[name] = timer
            timer.start()
        logger.debug("Next %s analysis at %s", name, when.isoformat())

    def _reschedule(self, name: str) -> None:
        now = self._clock()
        if name == "daily":
            self._schedule(name, next_daily_run(now, self.config.daily_time), self.run_daily_timer)
        else:
            self._schedule(
                name,
                next_weekly_run(now, self.config.weekly_day, self.config.weekly_time),
                self.run_weekly_timer,
            )

    def start(self) -> None:
        """Run an initial due check in the background and arm every timer."""
        if self.is_running:
            return
        self._stop.clear()
        self._tick_thread = threading.Thread(
            target=self._tick_loop, name="fishbowl-scheduler", daemon=True
        )
        self._tick_thread.start()
        self._reschedule("daily")
        self._reschedule("weekly")
        logger.info("Scheduler started")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if self._tick_thread is not None:
            self._tick_thread.join(timeout)
            self._tick_thread = None
        logger.info("Scheduler stopped")
