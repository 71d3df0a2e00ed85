"""Analysis Orchestrator: due checks, context assembly, and committed runs.

Each analysis kind runs through the same sequence: gather entries, build a
prompt, call the gateway, decode, then commit. Nothing is written until the
decode succeeds, and a write that fails partway through a commit undoes the
writes before it, so a failed run leaves every store as it was. Failures are
reported to the error sink and returned as ``AnalysisFailed`` events; they
never propagate out of a run method.

The run methods do not re-check whether a run is due. Callers that want
gating use ``run_due()`` or the ``is_*_due`` predicates first.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime, timedelta

from fishbowl import codec
from fishbowl.analysis.models import (
    AnalysisCadenceState,
    AnalysisCompleted,
    AnalysisEvent,
    AnalysisFailed,
    AnalysisKind,
    AnalysisSkipped,
    AnalysisStatus,
    DailyAnalysisResult,
    DeepThemeAnalysis,
    WeeklyAnalyticsResult,
)
from fishbowl.analysis.prompts import (
    build_daily_prompt,
    build_deep_theme_prompt,
    build_theme_discovery_prompt,
    build_weekly_prompt,
)
from fishbowl.analysis.store import AnalysisResultStore
from fishbowl.config import AnalysisConfig, FishbowlConfig, ModelConfig
from fishbowl.entries import Entry, EntryStore, FileEntryStore
from fishbowl.errors import ErrorSink, FishbowlError, LoggingErrorSink, as_fishbowl_error
from fishbowl.gateway import BackoffMode, ModelGateway
from fishbowl.themes import Theme, ThemeIndex

logger = logging.getLogger(__name__)

DISCOVERY_SEPARATOR = "\n\n---\n\n"
THEME_MENTION_NOTE = "Mentioned in today's thoughts"
DEEP_KEY_DATES = 5

AnalysisListener = Callable[[AnalysisEvent], None]


class NothingToAnalyze(Exception):
    """Raised inside a run when there is no input; becomes ``AnalysisSkipped``."""


class AnalysisOrchestrator:
    """Decides when to analyze and commits the results."""

    def __init__(
        self,
        gateway: ModelGateway,
        entries: EntryStore,
        themes: ThemeIndex,
        results: AnalysisResultStore,
        *,
        config: AnalysisConfig | None = None,
        model_config: ModelConfig | None = None,
        error_sink: ErrorSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.entries = entries
        self.themes = themes
        self.results = results
        self.config = config or AnalysisConfig()
        self.model_config = model_config or gateway.config
        self.error_sink: ErrorSink = error_sink or LoggingErrorSink()
        self._clock = clock or (lambda: datetime.now().astimezone())

        self.cadence = results.load_cadence()
        self.latest_deep_analysis: DeepThemeAnalysis | None = None
        self._cadence_lock = threading.Lock()
        self._run_locks = {kind: threading.Lock() for kind in AnalysisKind}
        self._listeners: list[AnalysisListener] = []

    @classmethod
    def from_config(
        cls,
        config: FishbowlConfig,
        error_sink: ErrorSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> AnalysisOrchestrator:
        """Wire the file-backed stores and the HTTP gateway from *config*."""
        storage = config.storage
        themes = ThemeIndex(
            storage.theme_index_path,
            storage.theme_archive_path,
            max_tracked=config.themes.max_tracked,
            min_mentions=config.themes.min_mentions,
            active_days=config.themes.active_days,
            key_dates_limit=config.themes.key_dates_limit,
            clock=clock,
        )
        return cls(
            ModelGateway(config.model),
            FileEntryStore(storage.thoughts_dir, clock=clock),
            themes,
            AnalysisResultStore(storage.analysis_dir),
            config=config.analysis,
            model_config=config.model,
            error_sink=error_sink,
            clock=clock,
        )

    # -- Events --------------------------------------------------------------

    def subscribe(self, listener: AnalysisListener) -> None:
        self._listeners.append(listener)

    def _publish(self, event: AnalysisEvent) -> AnalysisEvent:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Analysis listener failed for %s", event.kind)
        return event

    # -- Context assembly ----------------------------------------------------

    def daily_context(self, now: datetime | None = None) -> str:
        """Text of entries written in the trailing window, oldest first.

        Scans several day files so entries written just before midnight are
        still picked up.
        """
        now = now or self._clock()
        window_start = now - timedelta(hours=self.config.daily_window_hours)
        today = now.date()
        start = today - timedelta(days=self.config.daily_lookback_days - 1)
        texts = [
            e.text
            for e in self.entries.read_range(start, today)
            if e.timestamp is not None and window_start <= e.timestamp <= now
        ]
        return "\n\n".join(texts)

    def accumulated_entries(self, now: datetime | None = None) -> list[Entry]:
        """Walk back day by day until both weekly thresholds are met.

        Returns:
            Non-empty entries, oldest first.
        """
        now = now or self._clock()
        days: list[list[Entry]] = []
        count = 0
        words = 0
        for offset in range(self.config.max_lookback_days):
            day_entries = [
                e for e in self.entries.read_day(now.date() - timedelta(days=offset))
                if e.text.strip()
            ]
            days.append(day_entries)
            count += len(day_entries)
            words += sum(e.word_count for e in day_entries)
            if count >= self.config.weekly_min_entries and words >= self.config.weekly_min_words:
                break
        return [e for day_entries in reversed(days) for e in day_entries]

    def has_weekly_content(self, now: datetime | None = None) -> bool:
        entries = self.accumulated_entries(now)
        words = sum(e.word_count for e in entries)
        return (
            len(entries) >= self.config.weekly_min_entries
            and words >= self.config.weekly_min_words
        )

    # -- Due checks ----------------------------------------------------------

    def is_daily_due(self, now: datetime | None = None) -> bool:
        """No daily run recorded on today's local calendar date."""
        now = now or self._clock()
        last = self.cadence.last_daily_analysis
        return last is None or _local_date(last, now) != now.date()

    def is_weekly_due(self, now: datetime | None = None) -> bool:
        now = now or self._clock()
        if not _elapsed(self.cadence.last_weekly_analysis, now, self.config.weekly_cooldown_days):
            return False
        return self.has_weekly_content(now)

    def is_discovery_due(self, now: datetime | None = None) -> bool:
        now = now or self._clock()
        return _elapsed(
            self.cadence.last_theme_discovery, now, self.config.discovery_cooldown_days
        )

    # -- Runs ----------------------------------------------------------------

    def _run(self, kind: AnalysisKind, work: Callable[[], object]) -> AnalysisEvent:
        lock = self._run_locks[kind]
        if not lock.acquire(blocking=False):
            logger.info("Skipping %s analysis: already running", kind)
            return self._publish(AnalysisSkipped(kind=kind, reason="already running"))

        try:
            event: AnalysisEvent = AnalysisCompleted(kind=kind, result=work())
            logger.info("%s analysis completed", kind)
        except NothingToAnalyze as exc:
            logger.info("Skipping %s analysis: %s", kind, exc)
            event = AnalysisSkipped(kind=kind, reason=str(exc))
        except Exception as exc:
            error = as_fishbowl_error(exc)
            if not isinstance(exc, FishbowlError):
                logger.exception("Unexpected failure in %s analysis", kind)
            self.error_sink.report(error, context=f"{kind} analysis")
            event = AnalysisFailed(kind=kind, error=error)
        finally:
            lock.release()
        return self._publish(event)

    def _commit_cadence(self, **changes: datetime) -> AnalysisCadenceState:
        """Save and adopt the updated cadence; returns the state it replaced."""
        with self._cadence_lock:
            previous = self.cadence
            updated = previous.model_copy(update=changes)
            self.results.save_cadence(updated)
            self.cadence = updated
            return previous

    def _restore_cadence(self, previous: AnalysisCadenceState) -> None:
        with self._cadence_lock:
            self.results.save_cadence(previous)
            self.cadence = previous

    def run_daily(self) -> AnalysisEvent:
        return self._run(AnalysisKind.DAILY, self._daily)

    def _daily(self) -> DailyAnalysisResult:
        now = self._clock()
        text = self.daily_context(now)
        if not text.strip():
            raise NothingToAnalyze("no entries in the last 24 hours")

        relevant = self.themes.find_relevant(text)
        raw = self.gateway.execute(
            build_daily_prompt(text, relevant),
            timeout=self.model_config.timeout,
            backoff=BackoffMode.FIXED,
        )
        result = codec.decode_daily(raw)

        # Cadence, then the day's results, then the single theme write. A
        # failure undoes the steps that already landed.
        day = now.date()
        previous_results = self.results.daily_results(day)
        previous_cadence = self._commit_cadence(last_daily_analysis=now)
        try:
            self.results.append_daily(result, day)
            try:
                self.themes.touch_themes(result.themes_today, THEME_MENTION_NOTE)
            except Exception:
                self.results.save_daily(day, previous_results)
                raise
        except Exception:
            logger.warning("Rolling back daily analysis for %s", day)
            self._restore_cadence(previous_cadence)
            raise
        return result

    def run_weekly(self) -> AnalysisEvent:
        return self._run(AnalysisKind.WEEKLY, self._weekly)

    def _weekly(self) -> WeeklyAnalyticsResult:
        now = self._clock()
        entries = self.accumulated_entries(now)
        if not entries:
            raise NothingToAnalyze("no entries to analyze")

        top = self.themes.get_top_themes(self.config.top_themes)
        raw = self.gateway.execute(
            build_weekly_prompt(top, [e.text for e in entries]),
            timeout=self.model_config.timeout,
            backoff=BackoffMode.FIXED,
        )
        result = codec.decode_weekly(raw)

        previous_cadence = self._commit_cadence(last_weekly_analysis=now)
        try:
            self.results.save_weekly(result)
        except Exception:
            self._restore_cadence(previous_cadence)
            raise
        return result

    def run_theme_discovery(self) -> AnalysisEvent:
        return self._run(AnalysisKind.THEME_DISCOVERY, self._discover)

    def _discover(self) -> list[Theme]:
        now = self._clock()
        entries = self.accumulated_entries(now)
        if not entries:
            raise NothingToAnalyze("no entries to analyze")

        content = DISCOVERY_SEPARATOR.join(e.text for e in entries)
        raw = self.gateway.execute(
            build_theme_discovery_prompt(content),
            timeout=self.model_config.discovery_timeout,
            backoff=BackoffMode.EXPONENTIAL,
        )
        candidates = codec.decode_themes(raw, now)

        previous_cadence = self._commit_cadence(last_theme_discovery=now)
        try:
            return self.themes.merge_discovered(candidates)
        except Exception:
            self._restore_cadence(previous_cadence)
            raise

    def run_due(self) -> list[AnalysisEvent]:
        """Run every kind whose due check passes: discovery, daily, weekly."""
        now = self._clock()
        events: list[AnalysisEvent] = []
        if self.is_discovery_due(now):
            events.append(self.run_theme_discovery())
        if self.is_daily_due(now):
            events.append(self.run_daily())
        if self.is_weekly_due(now):
            events.append(self.run_weekly())
        return events

    def analyze_text(self, text: str) -> AnalysisEvent:
        """Daily-style analysis of arbitrary text; nothing is persisted."""

        def work() -> DailyAnalysisResult:
            if not text.strip():
                raise NothingToAnalyze("no text to analyze")
            raw = self.gateway.execute(
                build_daily_prompt(text, self.themes.find_relevant(text)),
                timeout=self.model_config.timeout,
                backoff=BackoffMode.FIXED,
            )
            return codec.decode_daily(raw)

        return self._run(AnalysisKind.DAILY, work)

    def theme_entries(self, theme: Theme, now: datetime | None = None) -> list[str]:
        """Day texts related to *theme*: its recent key dates plus recent mentions."""
        now = now or self._clock()
        days: list[date] = [_local_date(d, now) for d in theme.key_dates[-DEEP_KEY_DATES:]]
        needle = theme.name.lower()
        for day in self.entries.list_days()[: self.config.max_lookback_days]:
            if any(needle in e.text.lower() for e in self.entries.read_day(day)):
                days.append(day)

        texts: list[str] = []
        seen: set[date] = set()
        for day in days:
            if day in seen:
                continue
            seen.add(day)
            content = "\n\n".join(e.text for e in self.entries.read_day(day))
            if content:
                texts.append(content)
        return texts

    def analyze_theme_in_depth(self, name: str) -> AnalysisEvent:
        """On-demand deep look at one active theme, kept only in memory."""

        def work() -> DeepThemeAnalysis:
            theme = self.themes.get(name)
            if theme is None:
                raise NothingToAnalyze(f"no active theme named {name!r}")
            raw = self.gateway.execute(
                build_deep_theme_prompt(theme, self.theme_entries(theme)),
                timeout=self.model_config.timeout,
                backoff=BackoffMode.FIXED,
            )
            result = codec.decode_deep_theme(raw)
            self.latest_deep_analysis = result
            return result

        return self._run(AnalysisKind.DEEP_THEME, work)

    # -- Readers -------------------------------------------------------------

    def suggestions(self) -> list[str]:
        """Today's insights, weekly actions and deep-theme ideas, deduplicated."""
        today = self._clock().date()
        items: list[str] = []
        daily = self.results.latest_daily(today)
        if daily is not None:
            items.extend(daily.key_insights)
        weekly = self.results.load_weekly()
        if weekly is not None:
            items.extend(weekly.personalized_actions)
        if self.latest_deep_analysis is not None:
            items.extend(self.latest_deep_analysis.specific_suggestions)
        return list(dict.fromkeys(items))

    def status(self) -> AnalysisStatus:
        now = self._clock()
        return AnalysisStatus(
            cadence=self.cadence.model_copy(),
            daily_due=self.is_daily_due(now),
            weekly_due=self.is_weekly_due(now),
            discovery_due=self.is_discovery_due(now),
            running=[kind for kind, lock in self._run_locks.items() if lock.locked()],
            has_daily=self.results.latest_daily(now.date()) is not None,
            has_weekly=self.results.load_weekly() is not None,
            active_theme_count=len(self.themes.active_themes()),
        )


def _local_date(moment: datetime, now: datetime) -> date:
    """Calendar date of *moment* in the time zone of *now*."""
    if moment.tzinfo is not None and now.tzinfo is not None:
        return moment.astimezone(now.tzinfo).date()
    return moment.date()


def _elapsed(last: datetime | None, now: datetime, days: int) -> bool:
    return last is None or now - last >= timedelta(days=days)
