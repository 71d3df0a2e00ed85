"""Analysis pipeline: due checks, model runs, committed results, scheduling."""

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
from fishbowl.analysis.orchestrator import AnalysisOrchestrator, NothingToAnalyze
from fishbowl.analysis.scheduler import AnalysisScheduler, next_daily_run, next_weekly_run
from fishbowl.analysis.store import AnalysisResultStore

__all__ = [
    "AnalysisCadenceState",
    "AnalysisCompleted",
    "AnalysisEvent",
    "AnalysisFailed",
    "AnalysisKind",
    "AnalysisOrchestrator",
    "AnalysisResultStore",
    "AnalysisScheduler",
    "AnalysisSkipped",
    "AnalysisStatus",
    "DailyAnalysisResult",
    "DeepThemeAnalysis",
    "NothingToAnalyze",
    "WeeklyAnalyticsResult",
    "next_daily_run",
    "next_weekly_run",
]
