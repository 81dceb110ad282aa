"""Pytest configuration for phased testing.

Tests are organized by phase (f1, f2, ..., f6).
Only tests for the current phase and completed phases should run.
Future phase tests are automatically skipped.

Shared fixtures build an isolated data directory with its own database.
"""

from pathlib import Path

import pytest

from pyqlab.config.app_config import clear_config_cache
from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import insert_paper
from pyqlab.db.questions_repository import insert_questions

# Current implementation phase
CURRENT_PHASE = 6

SAMPLE_PAGE_TEXT = (
    "1. A block of mass two kilograms slides down a smooth inclined plane. "
    "Which of the following statements about its acceleration is correct? "
    "(A) It is zero (B) It is constant (C) It increases (D) It decreases. "
    "2. The unit of electric charge in the international system is the coulomb."
)


def pytest_collection_modifyitems(config, items):
    """Skip tests from phases that haven't been implemented yet."""
    for item in items:
        # Extract phase from path (tests/f2/... -> 2)
        parts = item.fspath.strpath.split("/")
        for part in parts:
            if part.startswith("f") and part[1:].isdigit():
                test_phase = int(part[1:])
                if test_phase > CURRENT_PHASE:
                    item.add_marker(
                        pytest.mark.skip(
                            reason=f"Phase F{test_phase} not yet implemented (current: F{CURRENT_PHASE})"
                        )
                    )
                break


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test starts from the built-in config defaults."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Isolated data directory with an initialized database."""
    data = tmp_path / "data"
    data.mkdir()
    init_db(db_path_for(data))
    return data


@pytest.fixture
def make_pdf(tmp_path):
    """Factory writing a small text PDF and returning its path."""
    import fitz

    def _make(name: str = "paper.pdf", pages: int = 1, text: str = SAMPLE_PAGE_TEXT) -> Path:
        pdf_path = tmp_path / name
        doc = fitz.open()
        for _ in range(pages):
            page = doc.new_page()
            page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=11)
        doc.save(str(pdf_path))
        doc.close()
        return pdf_path

    return _make


@pytest.fixture
def make_paper(data_dir):
    """Factory registering a paper row directly in the database."""

    def _make(
        paper_id: str = "jee-main-2023-shift-1",
        exam_name: str = "JEE Main",
        year: int = 2023,
        document_type: str = "mcq",
        paper_category: str = "previous_year",
        **fields,
    ) -> str:
        insert_paper(
            paper_id,
            exam_name=exam_name,
            year=year,
            document_type=document_type,
            paper_category=paper_category,
            paper_json_path="paper.json",
            **fields,
        )
        return paper_id

    return _make


@pytest.fixture
def make_questions():
    """Factory inserting questions for a paper; returns their ids."""

    def _make(paper_id: str | None, rows: list[dict]) -> list[str]:
        prepared = []
        for number, row in enumerate(rows, start=1):
            prepared.append({"paper_id": paper_id, "question_number": number, **row})
        return insert_questions(prepared)

    return _make
