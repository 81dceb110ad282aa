"""Repository functions for test_results table."""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from pyqlab.db.database import get_db

logger = structlog.get_logger(__name__)


@dataclass
class TestResultRecord:
    """Stored result of one submitted test."""

    __test__ = False  # not a pytest test class

    result_id: str
    paper_id: str
    student_id: str | None
    paper_category: str
    score: int
    total_questions: int
    percentage: float | None
    marks_obtained: int
    max_marks: int
    time_taken_seconds: int | None
    answers: dict[str, Any] = field(default_factory=dict)
    grading_status: str = "graded"
    submitted_at: str | None = None
    graded_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "result_id": self.result_id,
            "paper_id": self.paper_id,
            "student_id": self.student_id,
            "paper_category": self.paper_category,
            "score": self.score,
            "total_questions": self.total_questions,
            "percentage": self.percentage,
            "marks_obtained": self.marks_obtained,
            "max_marks": self.max_marks,
            "time_taken_seconds": self.time_taken_seconds,
            "answers": self.answers,
            "grading_status": self.grading_status,
            "submitted_at": self.submitted_at,
            "graded_at": self.graded_at,
        }


def submit_test_result(
    paper_id: str,
    paper_category: str,
    score: int,
    total_questions: int,
    percentage: float | None,
    marks_obtained: int,
    max_marks: int,
    time_taken_seconds: int | None,
    answers: dict[str, Any],
    grading_status: str,
    submitted_at: str,
    graded_at: str | None = None,
    student_id: str | None = None,
) -> str:
    """Insert a test result.

    Returns:
        Generated result_id

    Raises:
        sqlite3.IntegrityError: If paper_id doesn't exist or a CHECK fails
    """
    result_id = str(uuid.uuid4())

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO test_results (
                result_id, paper_id, student_id, paper_category, score,
                total_questions, percentage, marks_obtained, max_marks,
                time_taken_seconds, answers, grading_status, submitted_at, graded_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result_id,
                paper_id,
                student_id,
                paper_category,
                score,
                total_questions,
                percentage,
                marks_obtained,
                max_marks,
                time_taken_seconds,
                json.dumps(answers, ensure_ascii=False),
                grading_status,
                submitted_at,
                graded_at,
            ),
        )

    logger.debug("test_results.inserted", result_id=result_id, paper_id=paper_id)
    return result_id


def get_result_by_id(result_id: str) -> TestResultRecord | None:
    """Get a result by ID."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM test_results WHERE result_id = ?", (result_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def get_results(
    paper_id: str | None = None,
    student_id: str | None = None,
) -> list[TestResultRecord]:
    """Get results, most recent submission first."""
    query = "SELECT * FROM test_results"
    clauses = []
    params: list[Any] = []
    if paper_id:
        clauses.append("paper_id = ?")
        params.append(paper_id)
    if student_id:
        clauses.append("student_id = ?")
        params.append(student_id)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY submitted_at DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> TestResultRecord:
    """Convert database row to TestResultRecord."""
    return TestResultRecord(
        result_id=row["result_id"],
        paper_id=row["paper_id"],
        student_id=row["student_id"],
        paper_category=row["paper_category"],
        score=row["score"],
        total_questions=row["total_questions"],
        percentage=row["percentage"],
        marks_obtained=row["marks_obtained"],
        max_marks=row["max_marks"],
        time_taken_seconds=row["time_taken_seconds"],
        answers=json.loads(row["answers"]) if row["answers"] else {},
        grading_status=row["grading_status"],
        submitted_at=row["submitted_at"],
        graded_at=row["graded_at"],
    )
