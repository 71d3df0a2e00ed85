"""Pure data models for analysis results, cadence state and run events.

No I/O here; the result store and orchestrator import from this module.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from fishbowl.errors import FishbowlError


class AnalysisKind(StrEnum):
    """The independently gated kinds of analysis run."""

    DAILY = "daily"
    WEEKLY = "weekly"
    THEME_DISCOVERY = "theme_discovery"
    DEEP_THEME = "deep_theme"


class DailyAnalysisResult(BaseModel):
    """What the model found in the last 24 hours of entries."""

    themes_today: list[str] = Field(default_factory=list)
    overarching_areas: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)


class WeeklyAnalyticsResult(BaseModel):
    """Patterns across the accumulated entry window."""

    theme_evolution: list[str] = Field(default_factory=list)
    patterns_discovered: list[str] = Field(default_factory=list)
    breakthroughs: list[str] = Field(default_factory=list)
    obstacles: list[str] = Field(default_factory=list)
    productivity_insights: list[str] = Field(default_factory=list)
    emotional_patterns: list[str] = Field(default_factory=list)
    personalized_actions: list[str] = Field(default_factory=list)


class DeepThemeAnalysis(BaseModel):
    """On-demand look at a single theme; never persisted."""

    evolution_analysis: str = ""
    triggers: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    discovered_solutions: list[str] = Field(default_factory=list)
    stuck_points: list[str] = Field(default_factory=list)
    specific_suggestions: list[str] = Field(default_factory=list)


class AnalysisCadenceState(BaseModel):
    """When each kind of analysis last completed successfully."""

    last_daily_analysis: datetime | None = None
    last_weekly_analysis: datetime | None = None
    last_theme_discovery: datetime | None = None


# ---------------------------------------------------------------------------
# Run events
# ---------------------------------------------------------------------------


class AnalysisEvent(BaseModel):
    """Base for the discrete outcome of one run."""

    model_config = {"arbitrary_types_allowed": True}

    kind: AnalysisKind


class AnalysisCompleted(AnalysisEvent):
    result: object = None


class AnalysisFailed(AnalysisEvent):
    error: FishbowlError


class AnalysisSkipped(AnalysisEvent):
    reason: str


class AnalysisStatus(BaseModel):
    """Read-only snapshot for UI readers."""

    cadence: AnalysisCadenceState
    daily_due: bool
    weekly_due: bool
    discovery_due: bool
    running: list[AnalysisKind] = Field(default_factory=list)
    has_daily: bool = False
    has_weekly: bool = False
    active_theme_count: int = 0
