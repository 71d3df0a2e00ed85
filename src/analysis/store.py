"""Analysis Result Store: daily result lists, the weekly result, cadence.

Layout under ``analysis_dir``::

    daily_analysis_YYYY-MM-DD.json   list of DailyAnalysisResult, appended
    weekly_analysis.json             single WeeklyAnalyticsResult, overwritten
    cadence_state.json               AnalysisCadenceState
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from fishbowl.analysis.models import (
    AnalysisCadenceState,
    DailyAnalysisResult,
    WeeklyAnalyticsResult,
)
from fishbowl.shared.storage import load_model, load_model_list, save_model, save_model_list

logger = logging.getLogger(__name__)

WEEKLY_FILENAME = "weekly_analysis.json"
CADENCE_FILENAME = "cadence_state.json"


class AnalysisResultStore:
    """JSON files holding everything the orchestrator commits."""

    def __init__(self, analysis_dir: Path) -> None:
        self.analysis_dir = analysis_dir

    def daily_path(self, day: date) -> Path:
        return self.analysis_dir / f"daily_analysis_{day.isoformat()}.json"

    @property
    def weekly_path(self) -> Path:
        return self.analysis_dir / WEEKLY_FILENAME

    @property
    def cadence_path(self) -> Path:
        return self.analysis_dir / CADENCE_FILENAME

    # -- Daily ---------------------------------------------------------------

    def daily_results(self, day: date) -> list[DailyAnalysisResult]:
        return load_model_list(self.daily_path(day), DailyAnalysisResult)

    def latest_daily(self, day: date) -> DailyAnalysisResult | None:
        """The most recently appended result for *day*, if any."""
        results = self.daily_results(day)
        return results[-1] if results else None

    def append_daily(self, result: DailyAnalysisResult, day: date) -> int:
        """Append *result* to the day's list.

        Returns:
            How many results the day now holds.
        """
        results = self.daily_results(day)
        results.append(result)
        save_model_list(self.daily_path(day), results)
        logger.debug("Saved daily analysis #%d for %s", len(results), day)
        return len(results)

    def save_daily(self, day: date, results: list[DailyAnalysisResult]) -> None:
        """Replace the day's whole list, e.g. to undo an append."""
        save_model_list(self.daily_path(day), results)

    # -- Weekly --------------------------------------------------------------

    def load_weekly(self) -> WeeklyAnalyticsResult | None:
        return load_model(self.weekly_path, WeeklyAnalyticsResult, lambda: None)

    def save_weekly(self, result: WeeklyAnalyticsResult) -> None:
        save_model(self.weekly_path, result)

    # -- Cadence -------------------------------------------------------------

    def load_cadence(self) -> AnalysisCadenceState:
        return load_model(self.cadence_path, AnalysisCadenceState, AnalysisCadenceState)

    def save_cadence(self, state: AnalysisCadenceState) -> None:
        save_model(self.cadence_path, state)
