"""File-backed entry store: one text file per calendar day.

A day's file is a sequence of entries, each written as the separator, an
ISO-8601 timestamp line, and the entry text. The store is append-only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Protocol

from fishbowl.entries.models import (
    ENTRY_SEPARATOR,
    Entry,
    format_timestamp,
    parse_timestamp,
)
from fishbowl.errors import PersistenceError, PersistenceErrorKind

logger = logging.getLogger(__name__)

MAX_ENTRY_CHARS = 50_000


class EntryStore(Protocol):
    """What the analysis pipeline needs from the journal."""

    def append(self, text: str, at: datetime | None = None) -> Entry: ...

    def read_day(self, day: date) -> list[Entry]: ...

    def read_range(self, start: date, end: date) -> list[Entry]: ...

    def list_days(self) -> list[date]: ...


def validate_entry_text(text: str) -> str:
    """Strip control characters and enforce length limits.

    Raises:
        ValueError: If the entry is empty after cleaning or too long.
    """
    cleaned = "".join(ch for ch in text if ch in "\n\t" or ord(ch) >= 32)
    if len(cleaned) > MAX_ENTRY_CHARS:
        raise ValueError(f"Entry too long: {len(cleaned)} characters (max {MAX_ENTRY_CHARS})")
    if not cleaned.strip():
        raise ValueError("Entry is empty")
    return cleaned


def parse_day_content(content: str) -> list[Entry]:
    """Split a day file into entries, lifting the leading timestamp line."""
    entries: list[Entry] = []
    for chunk in content.split(ENTRY_SEPARATOR):
        if not chunk.strip():
            continue
        lines = chunk.split("\n")
        timestamp = parse_timestamp(lines[0]) if lines else None
        body_lines = lines[1:] if timestamp is not None else lines
        body = "\n".join(body_lines).strip()
        if body:
            entries.append(Entry(text=body, timestamp=timestamp))
    return entries


class FileEntryStore:
    """Entry store over a directory of ``YYYY-MM-DD.txt`` files."""

    def __init__(
        self,
        thoughts_dir: Path,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._dir = thoughts_dir
        self._clock = clock or (lambda: datetime.now().astimezone())

    def day_path(self, day: date) -> Path:
        return self._dir / f"{day.isoformat()}.txt"

    def append(self, text: str, at: datetime | None = None) -> Entry:
        """Append one entry to the file for its calendar day."""
        cleaned = validate_entry_text(text)
        moment = at or self._clock()
        path = self.day_path(moment.date())
        record = f"{ENTRY_SEPARATOR}{format_timestamp(moment)}\n{cleaned}"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(record)
        except OSError as exc:
            raise PersistenceError(PersistenceErrorKind.WRITE_FAILED, path, str(exc)) from exc
        logger.debug("Appended %d chars to %s", len(cleaned), path.name)
        return Entry(text=cleaned.strip(), timestamp=moment)

    def read_day(self, day: date) -> list[Entry]:
        path = self.day_path(day)
        if not path.exists():
            return []
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error reading thoughts from %s: %s", path.name, exc)
            return []
        return parse_day_content(content)

    def read_range(self, start: date, end: date) -> list[Entry]:
        """Entries from *start* through *end* inclusive, oldest day first."""
        entries: list[Entry] = []
        day = start
        while day <= end:
            entries.extend(self.read_day(day))
            day += timedelta(days=1)
        return entries

    def list_days(self) -> list[date]:
        """Days that have a file, newest first."""
        if not self._dir.exists():
            return []
        days: list[date] = []
        for path in self._dir.glob("*.txt"):
            try:
                days.append(date.fromisoformat(path.stem))
            except ValueError:
                continue
        return sorted(days, reverse=True)
