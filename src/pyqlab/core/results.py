"""Presentation helpers for stored test results."""

from __future__ import annotations

from typing import Iterable, Literal, TypeVar

from pyqlab.db.results_repository import TestResultRecord

ResultCategory = Literal["all", "previous_year", "proficiency", "exam"]
ScoreBand = Literal["high", "medium", "low", "unknown"]

RESULT_CATEGORIES: tuple[ResultCategory, ...] = ("all", "previous_year", "proficiency", "exam")
HIGH_SCORE_THRESHOLD = 70
MEDIUM_SCORE_THRESHOLD = 40

GRADING_STATUS_LABELS = {
    "pending": "Pending",
    "ai_graded": "AI Graded",
    "graded": "Graded",
}

R = TypeVar("R", bound=TestResultRecord)


def filter_results(results: Iterable[R], category: ResultCategory = "all") -> list[R]:
    """Keep the results of one paper category ("all" keeps everything).

    Raises:
        ValueError: If the category is unknown
    """
    if category not in RESULT_CATEGORIES:
        raise ValueError(f"Unknown result category: {category}")
    if category == "all":
        return list(results)
    return [r for r in results if r.paper_category == category]


def category_counts(results: Iterable[TestResultRecord]) -> dict[str, int]:
    """Number of results per category, including "all"."""
    items = list(results)
    counts = {category: 0 for category in RESULT_CATEGORIES}
    counts["all"] = len(items)
    for result in items:
        if result.paper_category in counts:
            counts[result.paper_category] += 1
    return counts


def score_band(percentage: float | None) -> ScoreBand:
    """Classify a percentage: >=70 high, >=40 medium, else low."""
    if percentage is None:
        return "unknown"
    if percentage >= HIGH_SCORE_THRESHOLD:
        return "high"
    if percentage >= MEDIUM_SCORE_THRESHOLD:
        return "medium"
    return "low"


def format_duration(seconds: int | None) -> str:
    """Format a test duration: "N/A", "{m}m {s}s", or "{h}h {m}m" past 60 minutes."""
    if not seconds:
        return "N/A"
    minutes, secs = divmod(int(seconds), 60)
    if minutes > 60:
        hours, remaining_minutes = divmod(minutes, 60)
        return f"{hours}h {remaining_minutes}m"
    return f"{minutes}m {secs}s"


def grading_status_label(grading_status: str) -> str:
    return GRADING_STATUS_LABELS.get(grading_status, grading_status)
