"""Tests for paper text extraction (F2)."""

import json

import pytest

from pyqlab.core.paper_importer import import_paper
from pyqlab.core.pdf_extractor import (
    PdfExtractionError,
    SourcePdfNotFoundError,
    extract_paper_text,
    load_paper_content,
)
from pyqlab.db.papers_repository import get_paper_by_id


@pytest.fixture
def imported_paper(data_dir, make_pdf):
    """A paper imported with a two-page text PDF."""
    result = import_paper(
        make_pdf(pages=2), exam_name="JEE Main", year=2023, data_dir=data_dir
    )
    return result.paper_id


class TestExtractPaperText:
    """Tests for extract_paper_text."""

    def test_writes_pages_and_content(self, data_dir, imported_paper):
        result = extract_paper_text(imported_paper, data_dir=data_dir)

        assert result.success
        raw_dir = data_dir / "papers" / imported_paper / "raw"
        assert (raw_dir / "pages" / "0001.txt").exists()
        assert (raw_dir / "pages" / "0002.txt").exists()
        assert "inclined" in (raw_dir / "content.txt").read_text(encoding="utf-8")
        assert result.content_path == raw_dir / "content.txt"

    def test_metrics(self, data_dir, imported_paper):
        result = extract_paper_text(imported_paper, data_dir=data_dir)

        assert result.metrics.total_pages == 2
        assert result.metrics.pages_with_text == 2
        assert result.metrics.empty_pages_count == 0
        assert result.metrics.is_likely_scanned is False
        assert result.metrics.detected_language == "en"

    def test_updates_paper_json_and_status(self, data_dir, imported_paper):
        extract_paper_text(imported_paper, data_dir=data_dir)

        paper_json = json.loads(
            (data_dir / "papers" / imported_paper / "paper.json").read_text(encoding="utf-8")
        )
        assert paper_json["total_pages"] == 2
        assert paper_json["extraction"]["pages_with_text"] == 2

        record = get_paper_by_id(imported_paper)
        assert record.status == "extracted"
        assert record.language == "en"

    def test_blank_pdf_looks_scanned(self, data_dir, make_pdf):
        pdf = make_pdf("blank.pdf", pages=2, text="")
        paper_id = import_paper(pdf, exam_name="Blank", year=2020, data_dir=data_dir).paper_id

        result = extract_paper_text(paper_id, data_dir=data_dir)

        assert result.metrics.is_likely_scanned is True
        assert result.metrics.detected_language is None
        assert "scanned" in result.message

    def test_paper_without_pdf(self, data_dir):
        paper_id = import_paper(None, exam_name="NEET", year=2022, data_dir=data_dir).paper_id

        with pytest.raises(SourcePdfNotFoundError):
            extract_paper_text(paper_id, data_dir=data_dir)

    def test_unknown_paper(self, data_dir):
        with pytest.raises(SourcePdfNotFoundError):
            extract_paper_text("does-not-exist", data_dir=data_dir)


class TestLoadPaperContent:
    """Tests for load_paper_content."""

    def test_loads_extracted_text(self, data_dir, imported_paper):
        extract_paper_text(imported_paper, data_dir=data_dir)
        assert "coulomb" in load_paper_content(imported_paper, data_dir)

    def test_not_extracted_yet(self, data_dir, imported_paper):
        with pytest.raises(PdfExtractionError):
            load_paper_content(imported_paper, data_dir)
