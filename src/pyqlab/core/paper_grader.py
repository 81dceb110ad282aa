"""Grading of submitted paper tests.

Responsibilities:
- Grade objective answers against the key (single/multiple choice, true/false)
- Grade numeric answers with the math normalizer, then an optional AI batch
- Leave written answers pending for manual review
- Summarize score, percentage and marks; derive the grading status
- Persist the graded test to the test_results table

Output structure (JSON):
- grade_report_v1 schema with per-question results and summary
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal

import structlog

from pyqlab.config.app_config import load_app_config
from pyqlab.core.answer_comparator import (
    AnswerComparisonError,
    ComparisonItem,
    ComparisonResult,
)
from pyqlab.core.math_normalizer import is_math_equivalent
from pyqlab.core.test_session import TestSubmission, is_written_answer_question
from pyqlab.db.papers_repository import PaperRecord
from pyqlab.db.questions_repository import QuestionRecord
from pyqlab.db.results_repository import submit_test_result

logger = structlog.get_logger(__name__)

# =============================================================================
# TYPES
# =============================================================================

AnswerStatus = Literal["correct", "incorrect", "unanswered", "pending"]
GradingPath = Literal["key", "normalizer", "ai", "manual"]
GradingStatus = Literal["pending", "graded", "ai_graded"]

Comparator = Callable[[list[ComparisonItem]], ComparisonResult]

KEY_FORMATS = ("single_choice", "true_false")
NUMERIC_FORMATS = ("integer", "numeric")
OPTION_LETTER = re.compile(r"[A-Z]")


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class QuestionGrade:
    """Grade for a single question."""

    question_id: str
    question_format: str
    status: AnswerStatus
    given_answer: str | None
    correct_answer: str | None
    marks: int
    marks_awarded: int = 0
    grading_path: GradingPath = "key"

    @property
    def is_correct(self) -> bool | None:
        if self.status == "pending":
            return None
        return self.status == "correct"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "question_id": self.question_id,
            "question_format": self.question_format,
            "status": self.status,
            "is_correct": self.is_correct,
            "given_answer": self.given_answer,
            "correct_answer": self.correct_answer,
            "marks": self.marks,
            "marks_awarded": self.marks_awarded,
            "grading_path": self.grading_path,
        }


@dataclass
class GradeSummary:
    """Summary of grading results."""

    score: int
    total_questions: int
    percentage: float | None
    marks_obtained: int
    max_marks: int
    pending_count: int
    passed: bool | None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "score": self.score,
            "total_questions": self.total_questions,
            "percentage": self.percentage,
            "marks_obtained": self.marks_obtained,
            "max_marks": self.max_marks,
            "pending_count": self.pending_count,
            "passed": self.passed,
        }


@dataclass
class GradeReport:
    """Complete grade report for a submitted test."""

    paper_id: str
    paper_category: str
    results: list[QuestionGrade]
    summary: GradeSummary
    grading_status: GradingStatus
    graded_at: str | None
    warnings: list[str] = field(default_factory=list)

    def answers_payload(self) -> dict[str, dict[str, Any]]:
        """Per-question answers as stored in test_results.answers."""
        return {
            grade.question_id: {
                "answer": grade.given_answer,
                "status": grade.status,
                "is_correct": grade.is_correct,
                "grading_path": grade.grading_path,
            }
            for grade in self.results
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": "grade_report_v1",
            "paper_id": self.paper_id,
            "paper_category": self.paper_category,
            "grading_status": self.grading_status,
            "graded_at": self.graded_at,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
            "warnings": self.warnings,
        }


# =============================================================================
# ANSWER COMPARISON
# =============================================================================


def _same_key(given: str, correct: str) -> bool:
    return given.strip().lower() == correct.strip().lower()


def _option_set(answer: str) -> set[str]:
    return set(OPTION_LETTER.findall(answer.upper()))


def _grade_question(
    paper: PaperRecord, question: QuestionRecord, given: str | None
) -> QuestionGrade:
    """Grade one question without AI help."""
    given = (given or "").strip() or None
    grade = QuestionGrade(
        question_id=question.question_id,
        question_format=question.question_format,
        status="incorrect",
        given_answer=given,
        correct_answer=question.correct_answer,
        marks=question.marks,
    )

    if is_written_answer_question(paper, question) or not question.correct_answer:
        grade.status = "pending"
        grade.grading_path = "manual"
        return grade

    if given is None:
        grade.status = "unanswered"
        return grade

    if question.question_format == "multiple_choice":
        correct = _option_set(given) == _option_set(question.correct_answer)
    elif question.question_format in NUMERIC_FORMATS:
        grade.grading_path = "normalizer"
        correct = is_math_equivalent(given, question.correct_answer)
    else:
        correct = _same_key(given, question.correct_answer)

    if correct:
        grade.status = "correct"
        grade.marks_awarded = question.marks
    return grade


def _apply_ai_comparison(
    grades: list[QuestionGrade], comparator: Comparator, warnings: list[str]
) -> bool:
    """Send unmatched numeric answers to the comparator in one batch.

    Returns:
        True if the comparator decided at least one answer
    """
    candidates = [
        g
        for g in grades
        if g.grading_path == "normalizer" and g.status == "incorrect" and g.given_answer
    ]
    if not candidates:
        return False

    items = [
        ComparisonItem(id=g.question_id, user_answer=g.given_answer or "", correct_answer=g.correct_answer or "")
        for g in candidates
    ]

    try:
        comparison = comparator(items)
    except AnswerComparisonError as e:
        logger.warning("paper_grader.ai_comparison_failed", error=str(e), count=len(items))
        warnings.append(f"AI comparison unavailable, {len(items)} numeric answer(s) graded lexically: {e}")
        return False

    decided = False
    for grade in candidates:
        if grade.question_id not in comparison.equivalences:
            continue
        decided = True
        grade.grading_path = "ai"
        if comparison.is_equivalent(grade.question_id):
            grade.status = "correct"
            grade.marks_awarded = grade.marks

    if comparison.missing_ids:
        warnings.append(
            f"AI comparison returned no verdict for {len(comparison.missing_ids)} answer(s)"
        )

    return decided


# =============================================================================
# GRADING
# =============================================================================


def grade_submission(
    paper: PaperRecord,
    questions: list[QuestionRecord],
    answers: dict[str, str],
    comparator: Comparator | None = None,
) -> GradeReport:
    """Grade a submitted test.

    Args:
        paper: Paper the test was taken on
        questions: Questions that were part of the test
        answers: question_id -> answer text
        comparator: Optional batch AI comparator for numeric answers the
            normalizer could not match

    Returns:
        GradeReport with per-question grades and summary
    """
    logger.info(
        "paper_grader.start",
        paper_id=paper.paper_id,
        questions=len(questions),
        answered=len(answers),
    )

    warnings: list[str] = []
    grades = [_grade_question(paper, q, answers.get(q.question_id)) for q in questions]

    ai_decided = False
    if comparator is not None:
        ai_decided = _apply_ai_comparison(grades, comparator, warnings)

    gradable = [g for g in grades if g.status != "pending"]
    score = sum(1 for g in gradable if g.status == "correct")
    pending_count = len(grades) - len(gradable)

    percentage = None
    passed = None
    if gradable:
        percentage = round(score / len(gradable) * 100, 1)
        passed = percentage >= load_app_config().grading.passing_percentage

    summary = GradeSummary(
        score=score,
        total_questions=len(grades),
        percentage=percentage,
        marks_obtained=sum(g.marks_awarded for g in gradable),
        max_marks=sum(g.marks for g in gradable),
        pending_count=pending_count,
        passed=passed,
    )

    if pending_count:
        grading_status: GradingStatus = "pending"
    elif ai_decided:
        grading_status = "ai_graded"
    else:
        grading_status = "graded"

    graded_at = None
    if grading_status != "pending":
        graded_at = datetime.now(timezone.utc).isoformat()

    logger.info(
        "paper_grader.done",
        paper_id=paper.paper_id,
        score=score,
        percentage=percentage,
        grading_status=grading_status,
        warnings=len(warnings),
    )

    return GradeReport(
        paper_id=paper.paper_id,
        paper_category=paper.paper_category,
        results=grades,
        summary=summary,
        grading_status=grading_status,
        graded_at=graded_at,
        warnings=warnings,
    )


def record_test_result(
    report: GradeReport,
    submission: TestSubmission,
    student_id: str | None = None,
) -> str:
    """Persist a graded test to test_results.

    Returns:
        The new result_id
    """
    result_id = submit_test_result(
        paper_id=report.paper_id,
        paper_category=report.paper_category,
        score=report.summary.score,
        total_questions=report.summary.total_questions,
        percentage=report.summary.percentage,
        marks_obtained=report.summary.marks_obtained,
        max_marks=report.summary.max_marks,
        time_taken_seconds=submission.time_taken_seconds,
        answers=report.answers_payload(),
        grading_status=report.grading_status,
        submitted_at=submission.submitted_at,
        graded_at=report.graded_at,
        student_id=student_id,
    )

    logger.info("paper_grader.result_recorded", result_id=result_id, paper_id=report.paper_id)
    return result_id
