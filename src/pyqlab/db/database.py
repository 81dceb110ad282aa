"""SQLite database connection and schema management.

Provides connection management and schema initialization for papers,
questions and test results.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

from pyqlab.config.app_config import load_app_config

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("data/db/pyqlab.db")

# Current connection (module-level for simplicity in CLI context)
_db_path: Path | None = None


def db_path_for(data_dir: Path) -> Path:
    """Database file inside a data directory (``paths.db_path`` in app config)."""
    relative = load_app_config().paths.get("db_path", "db/pyqlab.db")
    return Path(data_dir) / relative


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to data/db/pyqlab.db
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.debug("database.initialized", path=str(_db_path))


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM papers").fetchall()
    """
    db_path = _db_path or DEFAULT_DB_PATH

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- papers: one row per previous-year / proficiency / exam paper
        -- sha256 is UNIQUE when present: a PDF belongs to a single paper_id
        CREATE TABLE IF NOT EXISTS papers (
            paper_id TEXT PRIMARY KEY,
            paper_uuid TEXT UNIQUE,
            exam_name TEXT NOT NULL,
            year INTEGER NOT NULL,
            paper_type TEXT,
            subject_id TEXT,
            chapter_id TEXT,
            topic_id TEXT,
            document_type TEXT NOT NULL DEFAULT 'mcq'
                CHECK(document_type IN ('mcq', 'practice', 'proficiency')),
            paper_category TEXT NOT NULL DEFAULT 'previous_year'
                CHECK(paper_category IN ('previous_year', 'proficiency', 'exam')),
            language TEXT,
            source_file TEXT,
            source_path TEXT,
            sha256 TEXT UNIQUE,
            total_questions INTEGER NOT NULL DEFAULT 0,
            imported_at TEXT NOT NULL DEFAULT (datetime('now')),
            paper_json_path TEXT NOT NULL,
            status TEXT DEFAULT 'imported'
                CHECK(status IN ('imported', 'extracted', 'questions_ready'))
        );

        -- questions: paper_id is NULL for question-bank rows imported without a paper
        CREATE TABLE IF NOT EXISTS questions (
            question_id TEXT PRIMARY KEY,
            paper_id TEXT REFERENCES papers(paper_id) ON DELETE CASCADE,
            topic_id TEXT,
            question_number INTEGER,
            question_text TEXT NOT NULL,
            question_format TEXT NOT NULL DEFAULT 'single_choice'
                CHECK(question_format IN (
                    'single_choice', 'multiple_choice', 'true_false', 'integer', 'subjective'
                )),
            question_type TEXT NOT NULL DEFAULT 'objective',
            options TEXT NOT NULL DEFAULT '{}',
            correct_answer TEXT,
            explanation TEXT,
            difficulty TEXT NOT NULL DEFAULT 'Medium'
                CHECK(difficulty IN ('Low', 'Medium', 'Intermediate', 'Advanced')),
            marks INTEGER NOT NULL DEFAULT 1,
            is_important INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- test_results: one row per submitted test
        CREATE TABLE IF NOT EXISTS test_results (
            result_id TEXT PRIMARY KEY,
            paper_id TEXT NOT NULL REFERENCES papers(paper_id) ON DELETE CASCADE,
            student_id TEXT,
            paper_category TEXT NOT NULL
                CHECK(paper_category IN ('previous_year', 'proficiency', 'exam')),
            score INTEGER NOT NULL DEFAULT 0,
            total_questions INTEGER NOT NULL DEFAULT 0,
            percentage REAL,
            marks_obtained INTEGER NOT NULL DEFAULT 0,
            max_marks INTEGER NOT NULL DEFAULT 0,
            time_taken_seconds INTEGER,
            answers TEXT NOT NULL DEFAULT '{}',
            grading_status TEXT NOT NULL DEFAULT 'graded'
                CHECK(grading_status IN ('pending', 'graded', 'ai_graded')),
            submitted_at TEXT NOT NULL DEFAULT (datetime('now')),
            graded_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_papers_sha256 ON papers(sha256);
        CREATE INDEX IF NOT EXISTS idx_questions_paper ON questions(paper_id);
        CREATE INDEX IF NOT EXISTS idx_results_paper ON test_results(paper_id);
        CREATE INDEX IF NOT EXISTS idx_results_category ON test_results(paper_category);
        """
    )
