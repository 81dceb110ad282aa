"""Tests for the SQLite schema and repositories (F2)."""

import sqlite3

import pytest

from pyqlab.db.database import get_db
from pyqlab.db.papers_repository import (
    delete_paper,
    get_all_papers,
    get_paper_by_id,
    insert_paper,
    refresh_total_questions,
    update_paper,
    update_paper_status,
)
from pyqlab.db.questions_repository import (
    delete_questions_for_paper,
    get_question_by_id,
    get_questions_for_paper,
)
from pyqlab.db.results_repository import get_result_by_id, get_results, submit_test_result


def _submit(paper_id, category="previous_year", submitted_at="2024-01-01T10:00:00+00:00", **overrides):
    fields = {
        "paper_id": paper_id,
        "paper_category": category,
        "score": 3,
        "total_questions": 4,
        "percentage": 75.0,
        "marks_obtained": 12,
        "max_marks": 16,
        "time_taken_seconds": 600,
        "answers": {"q1": {"answer": "A", "status": "correct"}},
        "grading_status": "graded",
        "submitted_at": submitted_at,
        "graded_at": submitted_at,
    }
    fields.update(overrides)
    return submit_test_result(**fields)


class TestSchema:
    """Tests for schema constraints."""

    def test_tables_created(self, data_dir):
        with get_db() as conn:
            names = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {"papers", "questions", "test_results"} <= names

    def test_document_type_check(self, data_dir):
        with pytest.raises(sqlite3.IntegrityError):
            insert_paper("bad", exam_name="X", year=2020, document_type="essay", paper_json_path="paper.json")

    def test_question_format_check(self, make_paper, make_questions):
        paper_id = make_paper()
        with pytest.raises(sqlite3.IntegrityError):
            make_questions(paper_id, [{"question_text": "Q", "question_format": "essay"}])


class TestPapersRepository:
    """Tests for papers_repository."""

    def test_insert_and_get(self, make_paper):
        paper_id = make_paper(paper_type="Shift 1")
        record = get_paper_by_id(paper_id)
        assert record.exam_name == "JEE Main"
        assert record.paper_type == "Shift 1"
        assert record.status == "imported"
        assert record.total_questions == 0

    def test_unknown_column_rejected(self, data_dir):
        with pytest.raises(ValueError):
            insert_paper("p", exam_name="X", year=2020, colour="red")

    def test_update_missing_paper(self, data_dir):
        with pytest.raises(ValueError):
            update_paper("missing", exam_name="X")

    def test_list_filters_and_order(self, make_paper):
        make_paper("neet-2021", exam_name="NEET", year=2021)
        make_paper("neet-2023", exam_name="NEET", year=2023)
        make_paper("school-2024", exam_name="School", year=2024, paper_category="proficiency",
                   document_type="proficiency")

        assert [p.paper_id for p in get_all_papers()] == ["school-2024", "neet-2023", "neet-2021"]
        assert [p.paper_id for p in get_all_papers(paper_category="proficiency")] == ["school-2024"]

    def test_status_update(self, make_paper):
        paper_id = make_paper()
        update_paper_status(paper_id, "questions_ready")
        assert get_paper_by_id(paper_id).status == "questions_ready"

    def test_refresh_total_questions(self, make_paper, make_questions):
        paper_id = make_paper()
        make_questions(paper_id, [{"question_text": "Q1"}, {"question_text": "Q2"}])
        assert refresh_total_questions(paper_id) == 2
        assert get_paper_by_id(paper_id).total_questions == 2

    def test_delete_cascades(self, make_paper, make_questions):
        paper_id = make_paper()
        (question_id,) = make_questions(paper_id, [{"question_text": "Q1"}])
        result_id = _submit(paper_id)

        assert delete_paper(paper_id) is True
        assert get_question_by_id(question_id) is None
        assert get_result_by_id(result_id) is None
        assert delete_paper(paper_id) is False


class TestQuestionsRepository:
    """Tests for questions_repository."""

    def test_round_trip_fields(self, make_paper, make_questions):
        paper_id = make_paper()
        options = {"A": {"text": "1"}, "B": {"text": "2"}}
        (question_id,) = make_questions(
            paper_id,
            [{"question_text": "1 + 1?", "options": options, "correct_answer": "B",
              "difficulty": "Low", "marks": 4, "is_important": True}],
        )

        question = get_question_by_id(question_id)
        assert question.options == options
        assert question.correct_answer == "B"
        assert question.marks == 4
        assert question.is_important is True

    def test_ordered_by_number_and_important_filter(self, make_paper, make_questions):
        paper_id = make_paper()
        make_questions(
            paper_id,
            [
                {"question_text": "third", "question_number": 3},
                {"question_text": "first", "question_number": 1, "is_important": True},
                {"question_text": "second", "question_number": 2},
            ],
        )

        texts = [q.question_text for q in get_questions_for_paper(paper_id)]
        assert texts == ["first", "second", "third"]
        important = get_questions_for_paper(paper_id, important_only=True)
        assert [q.question_text for q in important] == ["first"]

    def test_to_dict_without_answer(self, make_paper, make_questions):
        paper_id = make_paper()
        (question_id,) = make_questions(paper_id, [{"question_text": "Q", "correct_answer": "A"}])
        data = get_question_by_id(question_id).to_dict(include_answer=False)
        assert "correct_answer" not in data
        assert "explanation" not in data

    def test_bank_question_without_paper(self, data_dir, make_questions):
        (question_id,) = make_questions(None, [{"question_text": "Loose question"}])
        assert get_question_by_id(question_id).paper_id is None

    def test_delete_for_paper(self, make_paper, make_questions):
        paper_id = make_paper()
        make_questions(paper_id, [{"question_text": "Q1"}, {"question_text": "Q2"}])
        assert delete_questions_for_paper(paper_id) == 2
        assert get_questions_for_paper(paper_id) == []


class TestResultsRepository:
    """Tests for results_repository."""

    def test_submit_and_get(self, make_paper):
        paper_id = make_paper()
        result_id = _submit(paper_id)

        result = get_result_by_id(result_id)
        assert result.percentage == 75.0
        assert result.answers == {"q1": {"answer": "A", "status": "correct"}}
        assert result.grading_status == "graded"

    def test_results_newest_first_and_filtered(self, make_paper):
        first = make_paper("a-2020", year=2020)
        second = make_paper("b-2021", year=2021)
        old = _submit(first, submitted_at="2024-01-01T10:00:00+00:00")
        new = _submit(second, submitted_at="2024-02-01T10:00:00+00:00", student_id="stu1")

        assert [r.result_id for r in get_results()] == [new, old]
        assert [r.result_id for r in get_results(paper_id=first)] == [old]
        assert [r.result_id for r in get_results(student_id="stu1")] == [new]

    def test_unknown_paper_rejected(self, data_dir):
        with pytest.raises(sqlite3.IntegrityError):
            _submit("missing")

    def test_grading_status_check(self, make_paper):
        paper_id = make_paper()
        with pytest.raises(sqlite3.IntegrityError):
            _submit(paper_id, grading_status="maybe")
