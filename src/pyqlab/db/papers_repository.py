"""Repository functions for papers table.

Provides CRUD operations for the papers table.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from typing import Any

import structlog

from pyqlab.db.database import get_db

logger = structlog.get_logger(__name__)


@dataclass
class PaperRecord:
    """Paper record from database."""

    paper_id: str
    paper_uuid: str | None
    exam_name: str
    year: int
    paper_type: str | None
    subject_id: str | None
    chapter_id: str | None
    topic_id: str | None
    document_type: str
    paper_category: str
    language: str | None
    source_file: str | None
    source_path: str | None
    sha256: str | None
    total_questions: int
    imported_at: str
    paper_json_path: str
    status: str

    @property
    def has_written_answers(self) -> bool:
        """Practice and proficiency papers are answered in free text."""
        return self.document_type in ("practice", "proficiency")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_COLUMNS = (
    "paper_uuid",
    "exam_name",
    "year",
    "paper_type",
    "subject_id",
    "chapter_id",
    "topic_id",
    "document_type",
    "paper_category",
    "language",
    "source_file",
    "source_path",
    "sha256",
    "paper_json_path",
    "status",
)


def insert_paper(paper_id: str, **fields: Any) -> None:
    """Insert a new paper record.

    Args:
        paper_id: Paper slug identifier
        **fields: Column values (see _COLUMNS); unknown keys are rejected

    Raises:
        ValueError: If an unknown column is passed
        sqlite3.IntegrityError: If paper_id or sha256 already exists
    """
    unknown = set(fields) - set(_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown paper columns: {sorted(unknown)}")

    columns = ["paper_id", *fields.keys()]
    placeholders = ", ".join("?" for _ in columns)

    with get_db() as conn:
        conn.execute(
            f"INSERT INTO papers ({', '.join(columns)}) VALUES ({placeholders})",
            (paper_id, *fields.values()),
        )

    logger.debug("papers.inserted", paper_id=paper_id)


def update_paper(paper_id: str, **fields: Any) -> None:
    """Update an existing paper record (for --force reimport).

    Raises:
        ValueError: If paper_id doesn't exist or an unknown column is passed
    """
    unknown = set(fields) - set(_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown paper columns: {sorted(unknown)}")
    if not fields:
        return

    assignments = ", ".join(f"{name} = ?" for name in fields)

    with get_db() as conn:
        cursor = conn.execute(
            f"UPDATE papers SET {assignments}, imported_at = datetime('now') "
            "WHERE paper_id = ?",
            (*fields.values(), paper_id),
        )

        if cursor.rowcount == 0:
            raise ValueError(f"Paper not found: {paper_id}")

    logger.debug("papers.updated", paper_id=paper_id)


def get_paper_by_id(paper_id: str) -> PaperRecord | None:
    """Get paper by ID.

    Returns:
        PaperRecord if found, None otherwise
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM papers WHERE paper_id = ?", (paper_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def get_paper_by_sha256(sha256: str) -> PaperRecord | None:
    """Get paper by SHA256 hash of its source PDF."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM papers WHERE sha256 = ?", (sha256,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def get_all_papers(
    paper_category: str | None = None,
    subject_id: str | None = None,
) -> list[PaperRecord]:
    """Get papers, newest year first, optionally filtered."""
    query = "SELECT * FROM papers"
    clauses = []
    params: list[Any] = []
    if paper_category:
        clauses.append("paper_category = ?")
        params.append(paper_category)
    if subject_id:
        clauses.append("subject_id = ?")
        params.append(subject_id)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY year DESC, paper_id"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_record(row) for row in rows]


def update_paper_status(paper_id: str, status: str) -> None:
    """Update paper status."""
    with get_db() as conn:
        conn.execute(
            "UPDATE papers SET status = ? WHERE paper_id = ?",
            (status, paper_id),
        )

    logger.debug("papers.status_updated", paper_id=paper_id, status=status)


def update_paper_language(paper_id: str, language: str) -> None:
    """Store the detected language of a paper."""
    with get_db() as conn:
        conn.execute(
            "UPDATE papers SET language = ? WHERE paper_id = ?",
            (language, paper_id),
        )


def refresh_total_questions(paper_id: str) -> int:
    """Recount the questions attached to a paper and store the total.

    Returns:
        The new total
    """
    with get_db() as conn:
        total = conn.execute(
            "SELECT COUNT(*) FROM questions WHERE paper_id = ?", (paper_id,)
        ).fetchone()[0]
        conn.execute(
            "UPDATE papers SET total_questions = ? WHERE paper_id = ?",
            (total, paper_id),
        )

    logger.debug("papers.total_questions", paper_id=paper_id, total=total)
    return total


def delete_paper(paper_id: str) -> bool:
    """Delete paper by ID (questions and results cascade).

    Returns:
        True if deleted, False if not found
    """
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM papers WHERE paper_id = ?", (paper_id,)
        )

    deleted = cursor.rowcount > 0
    if deleted:
        logger.debug("papers.deleted", paper_id=paper_id)

    return deleted


def _row_to_record(row: sqlite3.Row) -> PaperRecord:
    """Convert database row to PaperRecord."""
    return PaperRecord(
        paper_id=row["paper_id"],
        paper_uuid=row["paper_uuid"],
        exam_name=row["exam_name"],
        year=row["year"],
        paper_type=row["paper_type"],
        subject_id=row["subject_id"],
        chapter_id=row["chapter_id"],
        topic_id=row["topic_id"],
        document_type=row["document_type"],
        paper_category=row["paper_category"],
        language=row["language"],
        source_file=row["source_file"],
        source_path=row["source_path"],
        sha256=row["sha256"],
        total_questions=row["total_questions"],
        imported_at=row["imported_at"],
        paper_json_path=row["paper_json_path"],
        status=row["status"],
    )
