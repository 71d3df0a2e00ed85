"""Pure data models for the theme index."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

EVOLUTION_SEPARATOR = " → "


class Theme(BaseModel):
    """A recurring topic tracked across journal entries.

    ``name`` is the identity and compares case-insensitively. ``summary`` is
    a snapshot replaced by each discovery pass; ``frequency`` and
    ``evolution`` accumulate.
    """

    name: str
    summary: str
    frequency: int = Field(default=1, ge=0)
    evolution: str = ""
    last_mentioned: datetime
    key_dates: list[datetime] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return self.name.casefold()

    def is_active(self, now: datetime, active_days: int = 14) -> bool:
        """Mentioned within *active_days* of *now*, or dated in the future."""
        if self.last_mentioned > now:
            return True
        return now - self.last_mentioned <= timedelta(days=active_days)

    @property
    def activity_level(self) -> str:
        if self.frequency >= 10:
            return "Very Active"
        if self.frequency >= 5:
            return "Active"
        return "Emerging"


def extend_evolution(current: str, addition: str) -> str:
    if not current:
        return addition
    if not addition:
        return current
    return f"{current}{EVOLUTION_SEPARATOR}{addition}"
