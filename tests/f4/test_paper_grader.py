"""Tests for grading submitted tests (F4)."""

from unittest.mock import MagicMock

from pyqlab.core.answer_comparator import AnswerComparisonError, ComparisonResult
from pyqlab.core.paper_grader import grade_submission, record_test_result
from pyqlab.core.test_session import TestSubmission
from pyqlab.db.results_repository import get_result_by_id


def _grades_by_id(report):
    return {g.question_id: g for g in report.results}


class TestObjectiveGrading:
    """Tests for answer-key grading."""

    def test_single_choice(self, paper_record, question_record):
        questions = [question_record("q1", correct_answer="B"), question_record("q2", correct_answer="C")]

        report = grade_submission(paper_record(), questions, {"q1": "b", "q2": "A"})

        grades = _grades_by_id(report)
        assert grades["q1"].status == "correct"
        assert grades["q1"].marks_awarded == 4
        assert grades["q2"].status == "incorrect"
        assert grades["q2"].marks_awarded == 0
        assert report.summary.score == 1
        assert report.summary.percentage == 50.0
        assert report.summary.marks_obtained == 4
        assert report.summary.max_marks == 8
        assert report.grading_status == "graded"
        assert report.graded_at is not None

    def test_multiple_choice_compares_sets(self, paper_record, question_record):
        questions = [
            question_record("q1", question_format="multiple_choice", correct_answer="A,C"),
            question_record("q2", question_format="multiple_choice", correct_answer="A,C"),
        ]

        report = grade_submission(paper_record(), questions, {"q1": "c a", "q2": "A"})

        grades = _grades_by_id(report)
        assert grades["q1"].is_correct is True
        assert grades["q2"].is_correct is False

    def test_true_false(self, paper_record, question_record):
        questions = [question_record("q1", question_format="true_false", correct_answer="True", options={})]
        report = grade_submission(paper_record(), questions, {"q1": "true"})
        assert report.results[0].status == "correct"

    def test_unanswered(self, paper_record, question_record):
        questions = [question_record("q1"), question_record("q2")]

        report = grade_submission(paper_record(), questions, {"q1": "A", "q2": "   "})

        grades = _grades_by_id(report)
        assert grades["q2"].status == "unanswered"
        assert grades["q2"].is_correct is False
        assert report.summary.percentage == 50.0

    def test_percentage_rounded(self, paper_record, question_record):
        questions = [question_record(f"q{i}") for i in range(3)]
        report = grade_submission(paper_record(), questions, {"q0": "A"})
        assert report.summary.percentage == 33.3

    def test_passing_threshold(self, paper_record, question_record):
        questions = [question_record(f"q{i}") for i in range(5)]
        assert grade_submission(paper_record(), questions, {"q0": "A", "q1": "A"}).summary.passed is True
        assert grade_submission(paper_record(), questions, {"q0": "A"}).summary.passed is False


class TestNumericGrading:
    """Tests for normalizer and AI comparison of numeric answers."""

    def test_normalizer_match(self, paper_record, question_record):
        questions = [question_record("q1", question_format="integer", correct_answer="$25$", options={})]

        report = grade_submission(paper_record(), questions, {"q1": " 25 "})

        assert report.results[0].status == "correct"
        assert report.results[0].grading_path == "normalizer"
        assert report.grading_status == "graded"

    def test_comparator_decides_unmatched(self, paper_record, question_record):
        questions = [
            question_record("q1", question_format="integer", correct_answer="0.5", options={}),
            question_record("q2", question_format="integer", correct_answer="3", options={}),
            question_record("q3", question_format="integer", correct_answer="7", options={}),
        ]
        comparator = MagicMock(return_value=ComparisonResult(equivalences={"q1": True, "q2": False}))

        report = grade_submission(
            paper_record(), questions, {"q1": "1/2", "q2": "4", "q3": "7"}, comparator=comparator
        )

        (items,) = comparator.call_args.args
        assert [item.id for item in items] == ["q1", "q2"]
        grades = _grades_by_id(report)
        assert grades["q1"].status == "correct"
        assert grades["q1"].grading_path == "ai"
        assert grades["q2"].status == "incorrect"
        assert grades["q3"].grading_path == "normalizer"
        assert report.grading_status == "ai_graded"
        assert report.summary.score == 2

    def test_comparator_not_called_when_everything_matches(self, paper_record, question_record):
        questions = [question_record("q1", question_format="integer", correct_answer="7", options={})]
        comparator = MagicMock()

        report = grade_submission(paper_record(), questions, {"q1": "7"}, comparator=comparator)

        comparator.assert_not_called()
        assert report.grading_status == "graded"

    def test_comparator_failure_keeps_lexical_grade(self, paper_record, question_record):
        questions = [question_record("q1", question_format="integer", correct_answer="0.5", options={})]
        comparator = MagicMock(side_effect=AnswerComparisonError("offline"))

        report = grade_submission(paper_record(), questions, {"q1": "1/2"}, comparator=comparator)

        assert report.results[0].status == "incorrect"
        assert report.grading_status == "graded"
        assert len(report.warnings) == 1
        assert "offline" in report.warnings[0]

    def test_missing_verdicts_are_warned(self, paper_record, question_record):
        questions = [question_record("q1", question_format="integer", correct_answer="0.5", options={})]
        comparator = MagicMock(return_value=ComparisonResult(missing_ids=["q1"]))

        report = grade_submission(paper_record(), questions, {"q1": "1/2"}, comparator=comparator)

        assert report.results[0].status == "incorrect"
        assert report.grading_status == "graded"
        assert report.warnings


class TestPendingGrading:
    """Tests for written answers that need manual review."""

    def test_written_paper_is_pending(self, paper_record, question_record):
        questions = [question_record("q1", question_format="subjective", options={}, correct_answer=None)]

        report = grade_submission(paper_record("practice"), questions, {"q1": "An essay"})

        assert report.results[0].status == "pending"
        assert report.results[0].is_correct is None
        assert report.summary.percentage is None
        assert report.summary.passed is None
        assert report.grading_status == "pending"
        assert report.graded_at is None

    def test_mixed_paper_percentage_over_gradable(self, paper_record, question_record):
        questions = [
            question_record("q1"),
            question_record("q2", question_format="subjective", options={}, correct_answer=None),
        ]

        report = grade_submission(paper_record(), questions, {"q1": "A", "q2": "text"})

        assert report.summary.percentage == 100.0
        assert report.summary.pending_count == 1
        assert report.grading_status == "pending"


class TestReport:
    """Tests for report serialization and storage."""

    def test_to_dict(self, paper_record, question_record):
        report = grade_submission(paper_record(), [question_record("q1")], {"q1": "A"})
        data = report.to_dict()
        assert data["$schema"] == "grade_report_v1"
        assert data["summary"]["score"] == 1
        assert data["results"][0]["is_correct"] is True

    def test_record_test_result(self, make_paper, make_questions):
        from pyqlab.db.papers_repository import get_paper_by_id
        from pyqlab.db.questions_repository import get_questions_for_paper

        paper_id = make_paper()
        make_questions(paper_id, [{"question_text": "Q", "correct_answer": "A", "marks": 4}])
        paper = get_paper_by_id(paper_id)
        questions = get_questions_for_paper(paper_id)
        qid = questions[0].question_id

        report = grade_submission(paper, questions, {qid: "A"})
        submission = TestSubmission(
            paper_id=paper_id,
            question_ids=[qid],
            answers={qid: "A"},
            flagged=[],
            started_at="2024-01-01T10:00:00+00:00",
            submitted_at="2024-01-01T10:05:00+00:00",
            time_taken_seconds=300,
        )

        result_id = record_test_result(report, submission, student_id="stu1")

        stored = get_result_by_id(result_id)
        assert stored.score == 1
        assert stored.percentage == 100.0
        assert stored.time_taken_seconds == 300
        assert stored.student_id == "stu1"
        assert stored.answers[qid]["status"] == "correct"
        assert stored.grading_status == "graded"
