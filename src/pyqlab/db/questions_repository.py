"""Repository functions for questions table."""

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
class QuestionRecord:
    """Question record from database.

    ``options`` maps option letters to ``{"text": ...}`` dicts.
    """

    question_id: str
    paper_id: str | None
    topic_id: str | None
    question_number: int | None
    question_text: str
    question_format: str
    question_type: str
    options: dict[str, dict[str, Any]] = field(default_factory=dict)
    correct_answer: str | None = None
    explanation: str | None = None
    difficulty: str = "Medium"
    marks: int = 1
    is_important: bool = False
    created_at: str | None = None

    def to_dict(self, include_answer: bool = True) -> dict[str, Any]:
        """Convert to dictionary; the key and explanation can be withheld."""
        result = {
            "question_id": self.question_id,
            "paper_id": self.paper_id,
            "topic_id": self.topic_id,
            "question_number": self.question_number,
            "question_text": self.question_text,
            "question_format": self.question_format,
            "question_type": self.question_type,
            "options": self.options,
            "difficulty": self.difficulty,
            "marks": self.marks,
            "is_important": self.is_important,
        }
        if include_answer:
            result["correct_answer"] = self.correct_answer
            result["explanation"] = self.explanation
        return result


def insert_questions(rows: list[dict[str, Any]]) -> list[str]:
    """Insert question rows in a single transaction.

    Each row needs ``question_text``; every other column is optional.

    Returns:
        Generated question_ids, in input order

    Raises:
        sqlite3.IntegrityError: If a row violates a constraint (nothing is inserted)
    """
    question_ids = []
    params = []
    for row in rows:
        question_id = row.get("question_id") or str(uuid.uuid4())
        question_ids.append(question_id)
        params.append(
            (
                question_id,
                row.get("paper_id"),
                row.get("topic_id"),
                row.get("question_number"),
                row["question_text"],
                row.get("question_format", "single_choice"),
                row.get("question_type", "objective"),
                json.dumps(row.get("options") or {}, ensure_ascii=False),
                row.get("correct_answer"),
                row.get("explanation"),
                row.get("difficulty", "Medium"),
                int(row.get("marks", 1)),
                1 if row.get("is_important") else 0,
            )
        )

    with get_db() as conn:
        conn.executemany(
            """
            INSERT INTO questions (
                question_id, paper_id, topic_id, question_number, question_text,
                question_format, question_type, options, correct_answer,
                explanation, difficulty, marks, is_important
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            params,
        )

    logger.debug("questions.inserted", count=len(question_ids))
    return question_ids


def get_questions_for_paper(
    paper_id: str, important_only: bool = False
) -> list[QuestionRecord]:
    """Get a paper's questions ordered by question number."""
    query = "SELECT * FROM questions WHERE paper_id = ?"
    if important_only:
        query += " AND is_important = 1"
    query += " ORDER BY question_number IS NULL, question_number, created_at"

    with get_db() as conn:
        rows = conn.execute(query, (paper_id,)).fetchall()

    return [_row_to_record(row) for row in rows]


def get_question_by_id(question_id: str) -> QuestionRecord | None:
    """Get question by ID."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM questions WHERE question_id = ?", (question_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def delete_questions_for_paper(paper_id: str) -> int:
    """Delete all questions of a paper.

    Returns:
        Number of deleted rows
    """
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM questions WHERE paper_id = ?", (paper_id,)
        )

    logger.debug("questions.deleted", paper_id=paper_id, count=cursor.rowcount)
    return cursor.rowcount


def _row_to_record(row: sqlite3.Row) -> QuestionRecord:
    """Convert database row to QuestionRecord."""
    return QuestionRecord(
        question_id=row["question_id"],
        paper_id=row["paper_id"],
        topic_id=row["topic_id"],
        question_number=row["question_number"],
        question_text=row["question_text"],
        question_format=row["question_format"],
        question_type=row["question_type"],
        options=json.loads(row["options"]) if row["options"] else {},
        correct_answer=row["correct_answer"],
        explanation=row["explanation"],
        difficulty=row["difficulty"],
        marks=row["marks"],
        is_important=bool(row["is_important"]),
        created_at=row["created_at"],
    )
