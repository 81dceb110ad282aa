"""Spreadsheet (xlsx) question import.

Reads the first sheet of a workbook whose header row names the question
columns, validates each row, and stores the valid ones in the questions
table (optionally attached to a paper). Also writes the template sheet
operators fill in.
"""

from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import openpyxl
import structlog
from openpyxl.utils.exceptions import InvalidFileException

from pyqlab.core.question_extractor import QUESTION_FORMATS, map_difficulty
from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import get_paper_by_id, refresh_total_questions
from pyqlab.db.questions_repository import insert_questions

logger = structlog.get_logger(__name__)

DATA_DIR = Path("data")

TEMPLATE_COLUMNS = [
    "question_text",
    "question_format",
    "option_a",
    "option_b",
    "option_c",
    "option_d",
    "correct_answer",
    "explanation",
    "difficulty",
    "marks",
    "question_type",
]

TEMPLATE_EXAMPLE_ROW = [
    "What is the SI unit of force?",
    "single_choice",
    "Newton",
    "Joule",
    "Watt",
    "Pascal",
    "A",
    "Force is measured in newtons (kg·m/s²).",
    "easy",
    1,
    "objective",
]

OPTION_COLUMNS = {"option_a": "A", "option_b": "B", "option_c": "C", "option_d": "D"}


@dataclass
class QuestionImportResult:
    """Result of a spreadsheet import."""

    success: bool
    imported_count: int
    skipped_count: int
    message: str
    errors: list[str] = field(default_factory=list)
    question_ids: list[str] = field(default_factory=list)


class QuestionImportError(Exception):
    """Raised when a spreadsheet cannot be imported at all."""

    pass


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_row(values: dict[str, Any], row_number: int) -> tuple[dict[str, Any] | None, str | None]:
    """Validate one sheet row.

    Returns:
        (question_row, None) when valid, (None, error_message) otherwise
    """
    text = _cell_text(values.get("question_text"))
    if not text:
        return None, f"Row {row_number}: missing question_text"

    question_format = _cell_text(values.get("question_format")).lower() or "single_choice"
    if question_format not in QUESTION_FORMATS:
        return None, f"Row {row_number}: invalid question_format '{question_format}'"

    raw_marks = values.get("marks")
    if raw_marks is None or _cell_text(raw_marks) == "":
        marks = 1
    else:
        try:
            marks = int(float(_cell_text(raw_marks)))
        except (ValueError, OverflowError):
            return None, f"Row {row_number}: invalid marks '{raw_marks}'"
        if marks < 0:
            return None, f"Row {row_number}: invalid marks '{raw_marks}'"

    options = {}
    for column, letter in OPTION_COLUMNS.items():
        option = _cell_text(values.get(column))
        if option:
            options[letter] = {"text": option}

    return {
        "question_text": text,
        "question_format": question_format,
        "question_type": _cell_text(values.get("question_type")) or "objective",
        "options": options,
        "correct_answer": _cell_text(values.get("correct_answer")).upper() or None,
        "explanation": _cell_text(values.get("explanation")) or None,
        "difficulty": map_difficulty(_cell_text(values.get("difficulty")) or "medium"),
        "marks": marks,
    }, None


def import_questions_from_xlsx(
    file_path: Path,
    paper_id: str | None = None,
    topic_id: str | None = None,
    data_dir: Path | None = None,
) -> QuestionImportResult:
    """Import questions from the first sheet of an xlsx workbook.

    Args:
        file_path: Path to the .xlsx file
        paper_id: Optional paper to attach the questions to
        topic_id: Optional topic reference
        data_dir: Base data directory (defaults to 'data')

    Returns:
        QuestionImportResult with counts and per-row errors

    Raises:
        QuestionImportError: If the file is unreadable, empty, lacks a
            question_text column, or paper_id is unknown
    """
    base_dir = data_dir or DATA_DIR
    file_path = Path(file_path)
    if not file_path.exists():
        raise QuestionImportError(f"File not found: {file_path}")

    init_db(db_path_for(base_dir))
    if paper_id is not None and get_paper_by_id(paper_id) is None:
        raise QuestionImportError(f"Paper not found: {paper_id}")

    logger.info("question_importer.start", file=str(file_path), paper_id=paper_id)

    try:
        workbook = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as e:
        raise QuestionImportError(f"Cannot read spreadsheet {file_path.name}: {e}") from e

    try:
        sheet = workbook.worksheets[0]
        rows = [
            row
            for row in sheet.iter_rows(values_only=True)
            if any(_cell_text(cell) for cell in row)
        ]
    finally:
        workbook.close()

    if len(rows) < 2:
        raise QuestionImportError("The spreadsheet is empty")

    header = [_cell_text(cell).lower() for cell in rows[0]]
    if "question_text" not in header:
        raise QuestionImportError("The spreadsheet has no 'question_text' column")

    parsed_rows = []
    errors = []
    for row_number, row in enumerate(rows[1:], start=2):
        values = {name: value for name, value in zip(header, row) if name}
        question, error = _parse_row(values, row_number)
        if error:
            errors.append(error)
            continue
        question["paper_id"] = paper_id
        question["topic_id"] = topic_id
        parsed_rows.append(question)

    question_ids = insert_questions(parsed_rows) if parsed_rows else []
    if paper_id is not None:
        refresh_total_questions(paper_id)

    logger.info(
        "question_importer.done",
        imported=len(question_ids),
        skipped=len(errors),
    )

    return QuestionImportResult(
        success=bool(question_ids),
        imported_count=len(question_ids),
        skipped_count=len(errors),
        message=f"Imported {len(question_ids)} questions ({len(errors)} rows skipped)",
        errors=errors,
        question_ids=question_ids,
    )


def write_question_template(file_path: Path) -> Path:
    """Write the import template: header row plus one example row."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Questions"
    sheet.append(TEMPLATE_COLUMNS)
    sheet.append(TEMPLATE_EXAMPLE_ROW)
    workbook.save(file_path)

    logger.debug("question_importer.template_written", path=str(file_path))
    return file_path
