"""Tests for spreadsheet question import (F3)."""

import openpyxl
import pytest

from pyqlab.core.question_importer import (
    TEMPLATE_COLUMNS,
    QuestionImportError,
    import_questions_from_xlsx,
    write_question_template,
)
from pyqlab.db.papers_repository import get_paper_by_id
from pyqlab.db.questions_repository import get_question_by_id, get_questions_for_paper


@pytest.fixture
def make_workbook(tmp_path):
    """Factory writing rows (first row is the header) to an xlsx file."""

    def _make(rows: list[list], name: str = "questions.xlsx"):
        path = tmp_path / name
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        for row in rows:
            sheet.append(row)
        workbook.save(path)
        return path

    return _make


HEADER = ["question_text", "question_format", "option_a", "option_b", "option_c",
          "option_d", "correct_answer", "difficulty", "marks"]


class TestImportQuestionsFromXlsx:
    """Tests for import_questions_from_xlsx."""

    def test_imports_valid_rows(self, data_dir, make_workbook):
        path = make_workbook([
            HEADER,
            ["SI unit of force?", "single_choice", "Newton", "Joule", "Watt", "Pascal", "a", "easy", 2],
            ["2 + 2 = ?", "integer", None, None, None, None, "4", "hard", None],
        ])

        result = import_questions_from_xlsx(path, data_dir=data_dir)

        assert result.success
        assert result.imported_count == 2
        assert result.skipped_count == 0

        first = get_question_by_id(result.question_ids[0])
        assert first.options["A"] == {"text": "Newton"}
        assert first.correct_answer == "A"
        assert first.difficulty == "Low"
        assert first.marks == 2
        assert first.paper_id is None

        second = get_question_by_id(result.question_ids[1])
        assert second.question_format == "integer"
        assert second.options == {}
        assert second.difficulty == "Advanced"
        assert second.marks == 1

    def test_attaches_to_paper(self, data_dir, make_paper, make_workbook):
        paper_id = make_paper()
        path = make_workbook([HEADER, ["Q1", "single_choice", "x", "y", "", "", "B", "medium", 4]])

        result = import_questions_from_xlsx(path, paper_id=paper_id, topic_id="optics", data_dir=data_dir)

        assert result.imported_count == 1
        (question,) = get_questions_for_paper(paper_id)
        assert question.topic_id == "optics"
        assert get_paper_by_id(paper_id).total_questions == 1

    def test_invalid_rows_are_reported(self, data_dir, make_workbook):
        path = make_workbook([
            HEADER,
            [None, "single_choice", "x", "y", None, None, "A", "easy", 1],
            ["Bad format", "essay", None, None, None, None, None, None, None],
            ["Bad marks", "single_choice", "x", "y", None, None, "A", "easy", "four"],
            ["Good", None, "x", "y", None, None, "A", None, None],
        ])

        result = import_questions_from_xlsx(path, data_dir=data_dir)

        assert result.imported_count == 1
        assert result.skipped_count == 3
        assert result.errors == [
            "Row 2: missing question_text",
            "Row 3: invalid question_format 'essay'",
            "Row 4: invalid marks 'four'",
        ]

    def test_infinite_marks_reported_per_row(self, data_dir, make_workbook):
        path = make_workbook([
            HEADER,
            ["Endless", "single_choice", "x", "y", None, None, "A", None, "inf"],
            ["Good", None, "x", "y", None, None, "A", None, 2],
        ])

        result = import_questions_from_xlsx(path, data_dir=data_dir)

        assert result.imported_count == 1
        assert result.errors == ["Row 2: invalid marks 'inf'"]

    def test_blank_rows_ignored(self, data_dir, make_workbook):
        path = make_workbook([HEADER, [None] * len(HEADER), ["Q", None, None, None, None, None, None, None, None]])
        result = import_questions_from_xlsx(path, data_dir=data_dir)
        assert result.imported_count == 1
        assert result.errors == []

    def test_empty_sheet(self, data_dir, make_workbook):
        path = make_workbook([HEADER])
        with pytest.raises(QuestionImportError, match="empty"):
            import_questions_from_xlsx(path, data_dir=data_dir)

    def test_missing_question_text_column(self, data_dir, make_workbook):
        path = make_workbook([["text", "answer"], ["Q", "A"]])
        with pytest.raises(QuestionImportError, match="question_text"):
            import_questions_from_xlsx(path, data_dir=data_dir)

    def test_unknown_paper(self, data_dir, make_workbook):
        path = make_workbook([HEADER, ["Q"]])
        with pytest.raises(QuestionImportError, match="Paper not found"):
            import_questions_from_xlsx(path, paper_id="nope", data_dir=data_dir)

    def test_missing_file(self, data_dir, tmp_path):
        with pytest.raises(QuestionImportError, match="File not found"):
            import_questions_from_xlsx(tmp_path / "missing.xlsx", data_dir=data_dir)

    def test_unreadable_file(self, data_dir, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip archive")
        with pytest.raises(QuestionImportError, match="Cannot read"):
            import_questions_from_xlsx(path, data_dir=data_dir)


class TestWriteQuestionTemplate:
    """Tests for the import template."""

    def test_template_round_trips_through_import(self, data_dir, tmp_path):
        path = write_question_template(tmp_path / "out" / "template.xlsx")

        workbook = openpyxl.load_workbook(path)
        sheet = workbook.active
        assert sheet.title == "Questions"
        assert [cell.value for cell in sheet[1]] == TEMPLATE_COLUMNS
        workbook.close()

        result = import_questions_from_xlsx(path, data_dir=data_dir)
        assert result.imported_count == 1
