"""Paper PDF text extraction.

Reads the selectable text of a registered paper's source PDF with PyMuPDF and
lays it out for the question extractor:

    data/papers/{paper_id}/raw/pages/0001.txt   one file per page
    data/papers/{paper_id}/raw/content.txt      pages with text, joined

Question papers scanned from print have little or no text layer; they are
flagged (more than half the pages under 100 characters) so the operator can
OCR them before running AI extraction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import fitz
import structlog
from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import (
    get_paper_by_id,
    update_paper_language,
    update_paper_status,
)

logger = structlog.get_logger(__name__)

# langdetect is random unless seeded
DetectorFactory.seed = 0

DATA_DIR = Path("data")
MIN_CHARS_PER_PAGE = 100
SCANNED_PDF_THRESHOLD = 0.5
LANGUAGE_SAMPLE_CHARS = 10000

PDF_METADATA_KEYS = {
    "title": "title",
    "author": "author",
    "subject": "subject",
    "creator": "creator",
    "producer": "producer",
    "creationDate": "creation_date",
}


@dataclass
class ExtractionMetrics:
    """Text-layer statistics of one paper PDF."""

    total_pages: int
    pages_with_text: int
    empty_pages_count: int
    total_chars: int
    avg_chars_per_page: float
    detected_language: str | None = None
    is_likely_scanned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages_with_text": self.pages_with_text,
            "empty_pages_count": self.empty_pages_count,
            "total_chars": self.total_chars,
            "avg_chars_per_page": round(self.avg_chars_per_page, 1),
            "detected_language": self.detected_language,
            "is_likely_scanned": self.is_likely_scanned,
        }


@dataclass
class ExtractionResult:
    """Outcome of extract_paper_text."""

    success: bool
    metrics: ExtractionMetrics
    message: str
    content_path: Path | None = None
    pdf_metadata: dict[str, str] = field(default_factory=dict)


class PdfExtractionError(Exception):
    """Base exception for PDF extraction errors."""

    pass


class ProtectedPdfError(PdfExtractionError):
    """Raised when PDF is password-protected."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        super().__init__(f"PDF is password-protected: {file_path.name}")


class SourcePdfNotFoundError(PdfExtractionError):
    """Raised when the paper has no source PDF to extract."""

    pass


def _source_pdf(paper_id: str, paper_path: Path) -> Path:
    """Locate the stored PDF of a registered paper."""
    paper = get_paper_by_id(paper_id)
    if paper is None:
        raise SourcePdfNotFoundError(f"Paper not found: {paper_id}")
    if not paper.source_path:
        raise SourcePdfNotFoundError(
            f"Paper '{paper_id}' was registered without a PDF. Re-import it with the file."
        )

    pdf_path = paper_path / paper.source_path
    if not pdf_path.exists():
        raise SourcePdfNotFoundError(f"Source PDF missing: {pdf_path}")
    return pdf_path


def _read_pages(pdf_path: Path) -> tuple[list[str], dict[str, str]]:
    """Text of every page plus the non-empty embedded metadata."""
    with fitz.open(pdf_path) as doc:
        if doc.is_encrypted:
            raise ProtectedPdfError(pdf_path)

        raw_metadata = doc.metadata or {}
        metadata = {
            name: raw_metadata[key]
            for key, name in PDF_METADATA_KEYS.items()
            if raw_metadata.get(key)
        }
        pages = [page.get_text() for page in doc]

    return pages, metadata


def _detect_language(text: str) -> str | None:
    """ISO 639-1 code of the text, or None if langdetect cannot tell."""
    try:
        return detect(text[:LANGUAGE_SAMPLE_CHARS])
    except LangDetectException as e:
        logger.debug("pdf_extractor.language_detection_failed", error=str(e))
        return None


def _measure(pages: list[str], content: str) -> ExtractionMetrics:
    char_counts = [len(text.strip()) for text in pages]
    total_pages = len(pages)
    empty_pages = sum(1 for count in char_counts if count < MIN_CHARS_PER_PAGE)

    return ExtractionMetrics(
        total_pages=total_pages,
        pages_with_text=total_pages - empty_pages,
        empty_pages_count=empty_pages,
        total_chars=sum(char_counts),
        avg_chars_per_page=sum(char_counts) / total_pages if total_pages else 0.0,
        detected_language=_detect_language(content) if content.strip() else None,
        is_likely_scanned=bool(total_pages) and empty_pages / total_pages > SCANNED_PDF_THRESHOLD,
    )


def _record_in_paper_json(
    paper_path: Path, metrics: ExtractionMetrics, pdf_metadata: dict[str, str]
) -> None:
    paper_json_path = paper_path / "paper.json"
    if not paper_json_path.exists():
        logger.warning("pdf_extractor.paper_json_missing", path=str(paper_json_path))
        return

    paper_data = json.loads(paper_json_path.read_text(encoding="utf-8"))
    paper_data["total_pages"] = metrics.total_pages
    paper_data["extraction"] = metrics.to_dict()
    if pdf_metadata:
        paper_data["pdf_metadata"] = pdf_metadata

    paper_json_path.write_text(
        json.dumps(paper_data, indent=2, ensure_ascii=False), encoding="utf-8"
    )


def extract_paper_text(paper_id: str, data_dir: Path | None = None) -> ExtractionResult:
    """Extract the text of a paper's PDF into raw/.

    Args:
        paper_id: Paper identifier (slug)
        data_dir: Base data directory (defaults to 'data')

    Returns:
        ExtractionResult with metrics; the paper's status becomes "extracted"

    Raises:
        SourcePdfNotFoundError: If the paper or its PDF does not exist
        ProtectedPdfError: If the PDF is password-protected
    """
    base_dir = data_dir or DATA_DIR
    init_db(db_path_for(base_dir))

    paper_path = base_dir / "papers" / paper_id
    pdf_path = _source_pdf(paper_id, paper_path)
    logger.info("pdf_extractor.start", paper_id=paper_id, pdf=pdf_path.name)

    pages, pdf_metadata = _read_pages(pdf_path)

    pages_dir = paper_path / "raw" / "pages"
    pages_dir.mkdir(parents=True, exist_ok=True)
    for number, text in enumerate(pages, start=1):
        (pages_dir / f"{number:04d}.txt").write_text(text, encoding="utf-8")

    # Near-empty pages still carry answer keys or short questions
    content = "\n\n".join(text for text in pages if text.strip())
    content_path = paper_path / "raw" / "content.txt"
    content_path.write_text(content, encoding="utf-8")

    metrics = _measure(pages, content)
    logger.info(
        "pdf_extractor.done",
        paper_id=paper_id,
        total_pages=metrics.total_pages,
        pages_with_text=metrics.pages_with_text,
        language=metrics.detected_language,
        scanned=metrics.is_likely_scanned,
    )

    _record_in_paper_json(paper_path, metrics, pdf_metadata)
    update_paper_status(paper_id, "extracted")
    if metrics.detected_language:
        update_paper_language(paper_id, metrics.detected_language)

    message = f"Extracted {metrics.total_pages} pages ({metrics.pages_with_text} with text)"
    if metrics.is_likely_scanned:
        logger.warning("pdf_extractor.likely_scanned", paper_id=paper_id)
        message += " - PDF looks scanned, consider OCR"

    return ExtractionResult(
        success=True,
        metrics=metrics,
        message=message,
        content_path=content_path,
        pdf_metadata=pdf_metadata,
    )


def load_paper_content(paper_id: str, data_dir: Path | None = None) -> str:
    """Read the extracted raw/content.txt of a paper.

    Raises:
        PdfExtractionError: If the paper has not been extracted yet
    """
    content_file = (data_dir or DATA_DIR) / "papers" / paper_id / "raw" / "content.txt"
    if not content_file.exists():
        raise PdfExtractionError(
            f"Paper '{paper_id}' has no extracted text. Run extract-text first."
        )
    return content_file.read_text(encoding="utf-8")
