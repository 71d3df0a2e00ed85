"""Date-partitioned journal entries: the authoritative input to analysis."""

from fishbowl.entries.models import ENTRY_SEPARATOR, Entry
from fishbowl.entries.store import (
    EntryStore,
    FileEntryStore,
    parse_day_content,
    validate_entry_text,
)

__all__ = [
    "ENTRY_SEPARATOR",
    "Entry",
    "EntryStore",
    "FileEntryStore",
    "parse_day_content",
    "validate_entry_text",
]
