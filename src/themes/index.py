"""Persistent, time-decaying index of recurring themes.

The active set lives in one JSON file and an append-only archive in another.
Themes leave the active set when they go quiet for ``active_days`` or fall
off the end of the ``max_tracked`` cut; either way they are appended to the
archive, never deleted.

Every mutation runs under a single re-entrant lock and the active file is
atomically replaced before the lock is released. Readers get copies.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from fishbowl.errors import PersistenceError
from fishbowl.shared.storage import load_model_list, save_model_list
from fishbowl.themes.models import Theme, extend_evolution

logger = logging.getLogger(__name__)


class ThemeIndex:
    """Single-writer owner of the theme lifecycle."""

    def __init__(
        self,
        index_path: Path,
        archive_path: Path,
        *,
        max_tracked: int = 10,
        min_mentions: int = 2,
        active_days: int = 14,
        key_dates_limit: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._index_path = index_path
        self._archive_path = archive_path
        self.max_tracked = max_tracked
        self.min_mentions = min_mentions
        self.active_days = active_days
        self.key_dates_limit = key_dates_limit
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._lock = threading.RLock()
        self._pending_archive: list[Theme] = []
        self._themes = self._load()

    # -- Persistence ---------------------------------------------------------

    def _load(self) -> list[Theme]:
        now = self._clock()
        themes = load_model_list(self._index_path, Theme)
        active = [t for t in themes if t.is_active(now, self.active_days)]
        # Stale records found on disk are archived with the next save.
        self._pending_archive = [t for t in themes if not t.is_active(now, self.active_days)]
        logger.debug("Loaded %d active themes from %s", len(active), self._index_path)
        return _sorted(active)

    def _commit(self, themes: list[Theme], archive: list[Theme] | None = None) -> None:
        """Persist *themes* as the active set and append *archive* to the archive.

        In-memory state only changes once both files are written. If the
        index write fails after the archive was extended, the archive is put
        back the way it was.
        """
        to_archive = self._pending_archive + (archive or [])
        previous: list[Theme] | None = None
        if to_archive:
            previous = load_model_list(self._archive_path, Theme)
            save_model_list(self._archive_path, previous + to_archive)
        try:
            save_model_list(self._index_path, themes)
        except PersistenceError:
            if previous is not None:
                save_model_list(self._archive_path, previous)
            raise
        self._themes = themes
        self._pending_archive = []
        if to_archive:
            logger.info(
                "Archived %d themes: %s", len(to_archive), ", ".join(t.name for t in to_archive)
            )

    # -- Reads ---------------------------------------------------------------

    def _find(self, name: str) -> int | None:
        key = name.strip().casefold()
        for i, theme in enumerate(self._themes):
            if theme.key == key:
                return i
        return None

    def get(self, name: str) -> Theme | None:
        """Look up an active theme by case-insensitive name."""
        with self._lock:
            i = self._find(name)
            return self._themes[i].model_copy() if i is not None else None

    def active_themes(self) -> list[Theme]:
        """Themes still active now, by descending frequency."""
        now = self._clock()
        with self._lock:
            return [t.model_copy() for t in self._themes if t.is_active(now, self.active_days)]

    def snapshot(self) -> list[Theme]:
        """Everything currently in the active file, without re-checking decay."""
        with self._lock:
            return [t.model_copy() for t in self._themes]

    def archived_themes(self) -> list[Theme]:
        with self._lock:
            return load_model_list(self._archive_path, Theme) + list(self._pending_archive)

    def get_top_themes(self, n: int = 5) -> list[Theme]:
        return self.active_themes()[:n]

    def find_relevant(self, text: str) -> list[Theme]:
        """Active themes with any name word appearing in *text* (case-insensitive)."""
        lowered = text.lower()
        relevant: list[Theme] = []
        for theme in self.active_themes():
            words = [w for w in theme.name.lower().split() if w]
            if any(w in lowered for w in words):
                relevant.append(theme)
        return relevant

    # -- Mutations -----------------------------------------------------------

    def merge_discovered(self, candidates: Iterable[Theme]) -> list[Theme]:
        """Fold a discovery pass into the active set.

        Candidates below ``min_mentions`` are ignored. A candidate matching an
        active theme (case-insensitively) replaces its summary, raises its
        frequency to the larger of the two and extends its evolution; new
        names are inserted. Afterwards inactive themes and anything past the
        ``max_tracked`` cut are archived.

        Returns:
            The new active set, by descending frequency.
        """
        with self._lock:
            now = self._clock()
            working = list(self._themes)
            merged = 0
            for candidate in candidates:
                if candidate.frequency < self.min_mentions:
                    logger.debug(
                        "Ignoring theme %r with %d mentions", candidate.name, candidate.frequency
                    )
                    continue
                key = candidate.key
                match = next((i for i, t in enumerate(working) if t.key == key), None)
                if match is None:
                    working.append(candidate.model_copy(update={"last_mentioned": now}))
                else:
                    existing = working[match]
                    working[match] = existing.model_copy(
                        update={
                            "summary": candidate.summary,
                            "frequency": max(existing.frequency, candidate.frequency),
                            "evolution": extend_evolution(
                                existing.evolution, candidate.evolution
                            ),
                            "last_mentioned": now,
                            "key_dates": self._bounded(existing.key_dates + [now]),
                        }
                    )
                merged += 1

            active = [t for t in working if t.is_active(now, self.active_days)]
            inactive = [t for t in working if not t.is_active(now, self.active_days)]
            active = _sorted(active)
            overflow = active[self.max_tracked :]
            self._commit(active[: self.max_tracked], inactive + overflow)
            logger.info(
                "Merged %d discovered themes; %d active, %d archived",
                merged,
                len(self._themes),
                len(inactive) + len(overflow),
            )
            return [t.model_copy() for t in self._themes]

    def touch_theme(self, name: str, note: str) -> Theme | None:
        """Record a fresh mention of an active theme.

        Returns:
            The updated theme, or ``None`` if no active theme has that name.
        """
        updated = self.touch_themes([name], note)
        return updated[0] if updated else None

    def touch_themes(self, names: Iterable[str], note: str) -> list[Theme]:
        """Record a mention of each named theme in a single write.

        Unknown names are skipped. Either every known theme is updated or,
        if the write fails, none is.
        """
        with self._lock:
            now = self._clock()
            working = list(self._themes)
            touched: list[str] = []
            for name in names:
                key = name.strip().casefold()
                i = next((j for j, t in enumerate(working) if t.key == key), None)
                if i is None:
                    logger.debug("No active theme named %r to update", name)
                    continue
                theme = working[i]
                working[i] = theme.model_copy(
                    update={
                        "frequency": theme.frequency + 1,
                        "evolution": extend_evolution(theme.evolution, note),
                        "last_mentioned": now,
                        "key_dates": self._bounded(theme.key_dates + [now]),
                    }
                )
                touched.append(key)
            if not touched:
                return []
            self._commit(_sorted(working))
            by_key = {t.key: t for t in self._themes}
            return [by_key[key].model_copy() for key in dict.fromkeys(touched)]

    def add_manual(self, name: str, description: str) -> Theme:
        """Start tracking a theme by hand.

        Raises:
            ValueError: If the name is empty or already tracked.
        """
        name = name.strip()
        if not name:
            raise ValueError("Theme name is empty")
        with self._lock:
            if self._find(name) is not None:
                raise ValueError(f"Theme already tracked: {name}")
            now = self._clock()
            theme = Theme(
                name=name,
                summary=description,
                frequency=1,
                evolution=description,
                last_mentioned=now,
                key_dates=[now],
            )
            self._commit(_sorted(self._themes + [theme]))
            return theme.model_copy()

    def remove(self, name: str) -> bool:
        with self._lock:
            i = self._find(name)
            if i is None:
                return False
            removed = self._themes[i]
            self._commit(self._themes[:i] + self._themes[i + 1 :])
            logger.info("Removed theme %r", removed.name)
            return True

    def reset(self) -> None:
        """Drop the whole active set. The archive is untouched."""
        with self._lock:
            self._commit([])

    def _bounded(self, dates: list[datetime]) -> list[datetime]:
        return dates[-self.key_dates_limit :]


def _sorted(themes: list[Theme]) -> list[Theme]:
    return sorted(themes, key=lambda t: t.frequency, reverse=True)
