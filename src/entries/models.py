"""Pure data models for journal entries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

ENTRY_SEPARATOR = "\n\n---\n"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


class Entry(BaseModel):
    """One journal entry. Entries without a parseable timestamp keep ``None``."""

    model_config = ConfigDict(frozen=True)

    text: str
    timestamp: datetime | None = None

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(line: str) -> datetime | None:
    """Parse an ISO-8601 timestamp line, or return None if it is not one."""
    try:
        return datetime.strptime(line.strip(), TIMESTAMP_FORMAT)
    except ValueError:
        return None
