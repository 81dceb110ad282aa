"""Record builders shared by the grading and session tests."""

import pytest

from pyqlab.db.papers_repository import PaperRecord
from pyqlab.db.questions_repository import QuestionRecord


def _paper_record(document_type: str = "mcq", paper_category: str = "previous_year") -> PaperRecord:
    return PaperRecord(
        paper_id="jee-main-2023",
        paper_uuid=None,
        exam_name="JEE Main",
        year=2023,
        paper_type=None,
        subject_id=None,
        chapter_id=None,
        topic_id=None,
        document_type=document_type,
        paper_category=paper_category,
        language="en",
        source_file=None,
        source_path=None,
        sha256=None,
        total_questions=0,
        imported_at="2024-01-01 00:00:00",
        paper_json_path="paper.json",
        status="questions_ready",
    )


def _question_record(
    question_id: str,
    question_format: str = "single_choice",
    correct_answer: str | None = "A",
    marks: int = 4,
    options: dict | None = None,
    is_important: bool = False,
) -> QuestionRecord:
    if options is None and question_format in ("single_choice", "multiple_choice"):
        options = {k: {"text": k.lower()} for k in "ABCD"}
    return QuestionRecord(
        question_id=question_id,
        paper_id="jee-main-2023",
        topic_id=None,
        question_number=None,
        question_text=f"Question {question_id}",
        question_format=question_format,
        question_type="objective",
        options=options or {},
        correct_answer=correct_answer,
        marks=marks,
        is_important=is_important,
    )


@pytest.fixture
def paper_record():
    """Factory for in-memory PaperRecord objects."""
    return _paper_record


@pytest.fixture
def question_record():
    """Factory for in-memory QuestionRecord objects."""
    return _question_record
