"""Paper import orchestrator.

Responsibilities:
- Validate the paper PDF (magic bytes)
- Calculate SHA256 for deduplication
- Derive the paper_id slug from exam name, year and paper type
- Copy the PDF to data/papers/{paper_id}/source/
- Write paper.json with metadata
- Register the paper in SQLite
"""

from __future__ import annotations

import hashlib
import json
import re
import shutil
import unicodedata
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

import structlog

from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import (
    PaperRecord,
    get_paper_by_id,
    get_paper_by_sha256,
    insert_paper,
    update_paper,
)

logger = structlog.get_logger(__name__)

# Constants
DATA_DIR = Path("data")
DocumentType = Literal["mcq", "practice", "proficiency"]
PaperCategory = Literal["previous_year", "proficiency", "exam"]
DOCUMENT_TYPES = ("mcq", "practice", "proficiency")
PAPER_CATEGORIES = ("previous_year", "proficiency", "exam")
MIN_YEAR = 1950
MAX_YEAR = 2100


@dataclass
class PaperImportResult:
    """Result of paper import operation."""

    success: bool
    paper_id: str | None
    paper_uuid: str | None
    paper_path: Path | None
    message: str
    sha256: str | None = None


class PaperImportError(Exception):
    """Base exception for paper import errors."""

    pass


class DuplicatePaperError(PaperImportError):
    """Raised when trying to import a PDF that is already registered."""

    def __init__(self, sha256: str, existing_paper_id: str):
        self.sha256 = sha256
        self.existing_paper_id = existing_paper_id
        super().__init__(
            f"This PDF is already imported as '{existing_paper_id}'. "
            f"Use --force to re-import."
        )


class InvalidPaperFileError(PaperImportError):
    """Raised when the source file is not a PDF."""

    def __init__(self, file_path: Path, detected: str | None = None):
        self.file_path = file_path
        self.detected = detected
        msg = f"Unsupported file: {file_path.name}"
        if detected:
            msg += f" ({detected})"
        super().__init__(msg)


class PaperFileNotFoundError(PaperImportError):
    """Raised when source file doesn't exist."""

    pass


class InvalidPaperMetadataError(PaperImportError):
    """Raised when exam name, year or category values are invalid."""

    pass


def import_paper(
    file_path: Path | None,
    exam_name: str,
    year: int,
    paper_type: str | None = None,
    subject_id: str | None = None,
    chapter_id: str | None = None,
    topic_id: str | None = None,
    document_type: DocumentType = "mcq",
    paper_category: PaperCategory = "previous_year",
    force: bool = False,
    data_dir: Path | None = None,
) -> PaperImportResult:
    """Register a paper, optionally with its source PDF.

    Args:
        file_path: Path to the paper PDF, or None to register without a file
        exam_name: Exam name, e.g. "JEE Main"
        year: Exam year
        paper_type: Optional shift/set label, e.g. "Shift 1"
        subject_id: Opaque subject reference
        chapter_id: Opaque chapter reference
        topic_id: Opaque topic reference
        document_type: mcq | practice | proficiency
        paper_category: previous_year | proficiency | exam
        force: Re-import a PDF that is already registered
        data_dir: Base data directory (defaults to 'data')

    Returns:
        PaperImportResult with the assigned paper_id

    Raises:
        PaperFileNotFoundError: If source file doesn't exist
        InvalidPaperFileError: If the file is not a PDF
        InvalidPaperMetadataError: If metadata values are invalid
        DuplicatePaperError: If the PDF is already registered and force=False
    """
    base_dir = data_dir or DATA_DIR
    papers_dir = base_dir / "papers"

    _validate_metadata(exam_name, year, document_type, paper_category)

    init_db(db_path_for(base_dir))

    sha256 = None
    if file_path is not None:
        file_path = Path(file_path).resolve()
        if not file_path.exists():
            raise PaperFileNotFoundError(f"File not found: {file_path}")
        _validate_pdf(file_path)
        sha256 = _calculate_sha256(file_path)
        logger.debug("import_paper.sha256", sha256=sha256[:16] + "...")

    logger.info(
        "import_paper.start",
        file=str(file_path) if file_path else None,
        exam_name=exam_name,
        year=year,
        force=force,
    )

    paper_id = generate_paper_id(exam_name, year, paper_type)
    is_reimport = False

    existing_by_sha = get_paper_by_sha256(sha256) if sha256 else None
    if existing_by_sha:
        if not force:
            raise DuplicatePaperError(sha256, existing_by_sha.paper_id)
        # Force reimport keeps the existing paper_id
        is_reimport = True
        paper_id = existing_by_sha.paper_id
        logger.info("import_paper.reimport", paper_id=paper_id)
    elif get_paper_by_id(paper_id) is not None or (papers_dir / paper_id).exists():
        paper_id = _ensure_unique_paper_id(paper_id, papers_dir)

    paper_uuid = str(uuid.uuid4())
    paper_path = _create_paper_structure(paper_id, papers_dir)

    source_file = None
    source_path = None
    if file_path is not None:
        source_dir = paper_path / "source"
        for stale in source_dir.glob("*.pdf"):
            stale.unlink()
        shutil.copy2(file_path, source_dir / file_path.name)
        source_file = file_path.name
        source_path = f"source/{file_path.name}"
        logger.debug("import_paper.source_copied", dest=str(source_dir / file_path.name))

    paper_json = _create_paper_json(
        paper_id=paper_id,
        paper_uuid=paper_uuid,
        exam_name=exam_name,
        year=year,
        paper_type=paper_type,
        subject_id=subject_id,
        chapter_id=chapter_id,
        topic_id=topic_id,
        document_type=document_type,
        paper_category=paper_category,
        source_file=source_file,
        sha256=sha256,
    )

    with open(paper_path / "paper.json", "w", encoding="utf-8") as f:
        json.dump(paper_json, f, indent=2, ensure_ascii=False)

    fields = {
        "paper_uuid": paper_uuid,
        "exam_name": exam_name.strip(),
        "year": year,
        "paper_type": paper_type,
        "subject_id": subject_id,
        "chapter_id": chapter_id,
        "topic_id": topic_id,
        "document_type": document_type,
        "paper_category": paper_category,
        "source_file": source_file,
        "source_path": source_path,
        "sha256": sha256,
        "paper_json_path": "paper.json",
        "status": "imported",
    }
    if is_reimport:
        update_paper(paper_id, **fields)
    else:
        insert_paper(paper_id, **fields)

    logger.info("import_paper.success", paper_id=paper_id, paper_path=str(paper_path))

    return PaperImportResult(
        success=True,
        paper_id=paper_id,
        paper_uuid=paper_uuid,
        paper_path=paper_path,
        message=f"Paper imported: {paper_id}",
        sha256=sha256,
    )


def load_paper(paper_id: str, data_dir: Path | None = None) -> PaperRecord | None:
    """Look up a registered paper in the data directory's database."""
    init_db(db_path_for(data_dir or DATA_DIR))
    return get_paper_by_id(paper_id)


def generate_paper_id(exam_name: str, year: int, paper_type: str | None = None) -> str:
    """Generate slug: exam-year[-paper_type].

    Normalized: lowercase, no accents, only alphanumeric and hyphens.

    Returns:
        Slug like "jee-main-2023-shift-1"
    """
    parts = [_slugify(exam_name) or "paper", str(year)]
    if paper_type:
        type_slug = _slugify(paper_type)
        if type_slug:
            parts.append(type_slug)
    return "-".join(parts)


def _slugify(text: str) -> str:
    """Normalize text to slug-friendly format."""
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")


def _validate_metadata(
    exam_name: str, year: int, document_type: str, paper_category: str
) -> None:
    if not exam_name or not exam_name.strip():
        raise InvalidPaperMetadataError("Exam name is required")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPaperMetadataError(f"Year out of range: {year}")
    if document_type not in DOCUMENT_TYPES:
        raise InvalidPaperMetadataError(
            f"Invalid document type '{document_type}' (expected one of {', '.join(DOCUMENT_TYPES)})"
        )
    if paper_category not in PAPER_CATEGORIES:
        raise InvalidPaperMetadataError(
            f"Invalid paper category '{paper_category}' "
            f"(expected one of {', '.join(PAPER_CATEGORIES)})"
        )


def _validate_pdf(file_path: Path) -> None:
    """Check extension and magic bytes.

    Raises:
        InvalidPaperFileError: If the file is not a PDF
    """
    if file_path.suffix.lower() != ".pdf":
        raise InvalidPaperFileError(file_path)

    with open(file_path, "rb") as f:
        header = f.read(8)

    if not header.startswith(b"%PDF"):
        raise InvalidPaperFileError(file_path, "not a valid PDF")


def _calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 hash of file."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def _ensure_unique_paper_id(paper_id: str, papers_dir: Path) -> str:
    """Append -2, -3, ... until neither the database nor the data dir has the id."""
    counter = 2
    while (
        get_paper_by_id(f"{paper_id}-{counter}") is not None
        or (papers_dir / f"{paper_id}-{counter}").exists()
    ):
        counter += 1
    return f"{paper_id}-{counter}"


def _create_paper_structure(paper_id: str, papers_dir: Path) -> Path:
    """Create folder structure for a paper.

    Creates:
        data/papers/{paper_id}/source/
        data/papers/{paper_id}/raw/pages/
        data/papers/{paper_id}/artifacts/
    """
    paper_path = papers_dir / paper_id

    (paper_path / "source").mkdir(parents=True, exist_ok=True)
    (paper_path / "raw" / "pages").mkdir(parents=True, exist_ok=True)
    (paper_path / "artifacts").mkdir(parents=True, exist_ok=True)

    logger.debug("import_paper.structure_created", paper_path=str(paper_path))

    return paper_path


def _create_paper_json(
    paper_id: str,
    paper_uuid: str,
    exam_name: str,
    year: int,
    paper_type: str | None,
    subject_id: str | None,
    chapter_id: str | None,
    topic_id: str | None,
    document_type: str,
    paper_category: str,
    source_file: str | None,
    sha256: str | None,
) -> dict:
    """Create paper.json content (paper_v1 schema)."""
    return {
        "$schema": "paper_v1",
        "paper_id": paper_id,
        "paper_uuid": paper_uuid,
        "exam_name": exam_name.strip(),
        "year": year,
        "paper_type": paper_type,
        "document_type": document_type,
        "paper_category": paper_category,
        "subject_id": subject_id,
        "chapter_id": chapter_id,
        "topic_id": topic_id,
        "source_file": source_file,
        "sha256": sha256,
        "import_date": datetime.now(timezone.utc).isoformat(),
        "total_pages": None,
    }
