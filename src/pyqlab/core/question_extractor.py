"""AI question extraction from parsed paper text.

Responsibilities:
- Split paper text into line-aligned chunks
- Ask the LLM for the MCQs in each chunk
- Recover questions from malformed JSON (LaTeX escapes, truncated arrays)
- Normalize options, answer keys and defaults; de-duplicate by number
- Write a reviewable preview to artifacts/extraction.json
- Persist a reviewed preview to the questions table in batches

Output structure (JSON):
- extraction_v1 schema with questions, chunk count and errors
"""

from __future__ import annotations

import json
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from pyqlab.config.app_config import load_app_config
from pyqlab.core.pdf_extractor import load_paper_content
from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import (
    get_paper_by_id,
    refresh_total_questions,
    update_paper_status,
)
from pyqlab.db.questions_repository import insert_questions
from pyqlab.llm.client import LLMClient, LLMError, LLMQuotaError, LLMRateLimitError
from pyqlab.utils.text_utils import strip_code_fences, strip_think

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

DATA_DIR = Path("data")
OPTION_KEYS = ("A", "B", "C", "D")
NUMERIC_ANSWER_MAP = {"1": "A", "2": "B", "3": "C", "4": "D"}
# Keys of two or more characters shaped like a number mark an integer-type question
INTEGER_ANSWER_PATTERN = re.compile(r"^-?\d+\.?\d*$")
QUESTION_FORMATS = ("single_choice", "multiple_choice", "true_false", "integer", "subjective")

# LaTeX commands whose single backslash breaks JSON string parsing
LATEX_COMMANDS = [
    "frac", "sqrt", "times", "div", "pm", "mp", "cdot", "ldots", "cdots",
    "alpha", "beta", "gamma", "delta", "epsilon", "theta", "lambda", "mu", "pi",
    "sigma", "omega", "Delta", "Gamma", "Lambda", "Omega", "Phi", "Pi", "Sigma",
    "Theta", "sin", "cos", "tan", "log", "ln", "exp", "lim", "sum", "prod", "int",
    "left", "right", "begin", "end", "text", "mathrm", "mathbf", "mathit",
    "leq", "geq", "neq", "approx", "equiv", "propto",
    "rightarrow", "leftarrow", "Rightarrow", "Leftarrow",
    "infty", "partial", "nabla", "prime", "over", "under", "hat", "bar", "vec",
    "dot", "circ", "degree", "angle", "perp", "parallel",
    "quad", "qquad", "hspace", "vspace", "boxed", "cancel", "bcancel",
]

_LATEX_PATTERNS = [
    (re.compile(r"(?<!\\)\\" + command), "\\\\" + command) for command in LATEX_COMMANDS
]
_STRAY_ESCAPES = [
    (re.compile(r"(?<!\\)\\n(?!ew|abla|eq|u)"), r"\\\\n"),
    (re.compile(r"(?<!\\)\\t(?!ext|imes|an|heta)"), r"\\\\t"),
    (re.compile(r"(?<!\\)\\r(?!ight|arrow)"), r"\\\\r"),
    (re.compile(r"(?<!\\)\\([{}])"), r"\\\\\1"),
]

# =============================================================================
# PROMPTS
# =============================================================================

SYSTEM_PROMPT_EXTRACT = (
    "You are an MCQ extraction expert. Return ONLY valid JSON arrays. "
    "For LaTeX, always use double backslashes (\\\\). No markdown formatting, "
    "no explanatory text - just the JSON array."
)

USER_PROMPT_EXTRACT = """You are an expert at extracting Multiple Choice Questions (MCQs) from exam papers.

Analyze this content and extract ALL multiple choice questions with their correct answers.{chunk_context}

CRITICAL JSON FORMATTING RULES:
1. Return ONLY a valid JSON array - no markdown, no explanation
2. For LaTeX math: use DOUBLE backslashes (e.g., "\\\\frac{{1}}{{2}}", "\\\\sqrt{{x}}")
3. Escape quotes inside strings with backslash
4. Every question MUST have all required fields

GUIDELINES:
1. Extract EVERY MCQ you find
2. Match questions to answers from answer keys if present
3. Normalize options to A, B, C, D format
4. Determine difficulty: easy (basic recall), medium (single concept), hard (multi-step)

Required JSON format for each question:
{{
  "question_number": 1,
  "question_text": "Complete question text",
  "options": {{
    "A": {{ "text": "First option" }},
    "B": {{ "text": "Second option" }},
    "C": {{ "text": "Third option" }},
    "D": {{ "text": "Fourth option" }}
  }},
  "correct_answer": "A",
  "explanation": "Explanation or empty string",
  "difficulty": "medium",
  "marks": {default_marks}
}}

EXAM: {exam_name} {year} {paper_type}

Content:
{chunk}"""


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class QuestionExtractionResult:
    """Result of an extraction run over a paper's text."""

    success: bool
    questions: list[dict[str, Any]] = field(default_factory=list)
    chunks_processed: int = 0
    errors: list[str] = field(default_factory=list)
    partial: bool = False
    error_code: str | None = None
    message: str = ""

    @property
    def questions_count(self) -> int:
        return len(self.questions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "questions": self.questions,
            "questions_count": self.questions_count,
            "chunks_processed": self.chunks_processed,
            "errors": self.errors,
            "partial": self.partial,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class SaveQuestionsResult:
    """Result of persisting extracted questions."""

    paper_id: str
    inserted_count: int
    total_questions: int
    message: str


class QuestionExtractionError(Exception):
    """Base exception for question extraction errors."""

    pass


class PreviewNotFoundError(QuestionExtractionError):
    """Raised when a paper has no extraction preview to save."""

    def __init__(self, paper_id: str, path: Path):
        self.paper_id = paper_id
        self.path = path
        super().__init__(
            f"No extraction preview for '{paper_id}' ({path}). Run extract-questions first."
        )


class QuestionSaveError(QuestionExtractionError):
    """Raised when a batch cannot be stored; earlier batches stay saved."""

    def __init__(self, paper_id: str, inserted_count: int, reason: str):
        self.paper_id = paper_id
        self.inserted_count = inserted_count
        super().__init__(
            f"Failed to save questions for '{paper_id}' after {inserted_count} rows: {reason}"
        )


# =============================================================================
# CHUNKING AND PARSING
# =============================================================================


def chunk_content(content: str, max_size: int = 50000) -> list[str]:
    """Split content into chunks of at most ``max_size`` chars on line boundaries.

    A single line longer than ``max_size`` is hard-split.
    """
    if len(content) <= max_size:
        return [content]

    chunks: list[str] = []
    current = ""
    for line in content.split("\n"):
        while len(line) > max_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:max_size])
            line = line[max_size:]

        if current and len(current) + len(line) + 1 > max_size:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line

    if current:
        chunks.append(current)

    return chunks


def fix_latex_escaping(text: str) -> str:
    """Double single backslashes before LaTeX commands so the JSON parses."""
    fixed = text
    for pattern, replacement in _LATEX_PATTERNS:
        fixed = pattern.sub(lambda _m, r=replacement: r, fixed)
    for pattern, replacement in _STRAY_ESCAPES:
        fixed = pattern.sub(replacement, fixed)
    return fixed


def _loads_list(text: str) -> list[Any] | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def _extract_json_array(text: str) -> list[Any] | None:
    """Parse the outermost [...] slice, with and without LaTeX repair."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None

    candidate = text[start : end + 1]
    parsed = _loads_list(candidate)
    if parsed is None:
        parsed = _loads_list(fix_latex_escaping(candidate))
    return parsed


def _iter_object_candidates(text: str):
    """Yield each top-level {...} object, closing a truncated last one."""
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = depth > 0
        elif char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]

    if depth > 0 and start >= 0:
        yield text[start:] + "}" * depth


def _extract_objects_individually(text: str) -> list[dict[str, Any]]:
    """Recover question objects one by one when the array as a whole is broken."""
    questions = []
    for candidate in _iter_object_candidates(text):
        if '"question_text"' not in candidate:
            continue
        for attempt in (candidate, fix_latex_escaping(candidate)):
            try:
                obj = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict) and obj.get("question_text"):
                questions.append(obj)
            break
    return questions


def parse_questions_response(response: str) -> list[Any]:
    """Parse raw LLM output into a list of raw question objects.

    Tries, in order: direct parse, outermost array slice, LaTeX repair,
    per-object recovery. Returns an empty list when everything fails.
    """
    cleaned = strip_code_fences(strip_think(response))

    parsed = _loads_list(cleaned)
    if parsed is not None:
        return parsed

    extracted = _extract_json_array(cleaned)
    if extracted:
        return extracted

    parsed = _loads_list(fix_latex_escaping(cleaned))
    if parsed is not None:
        return parsed

    recovered = _extract_objects_individually(cleaned)
    if recovered:
        logger.info("question_extractor.recovered_objects", count=len(recovered))
        return recovered

    logger.warning("question_extractor.parse_failed", preview=cleaned[:200])
    return []


# =============================================================================
# NORMALIZATION
# =============================================================================


def _option_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get("text") or value)
    return str(value)


def _normalize_options(raw_options: Any) -> dict[str, dict[str, str]]:
    options: dict[str, dict[str, str]] = {}
    if isinstance(raw_options, list):
        for key, value in zip(OPTION_KEYS, raw_options):
            options[key] = {"text": _option_text(value)}
    elif isinstance(raw_options, dict):
        for key, value in raw_options.items():
            normalized_key = str(key).upper().replace("(", "").replace(")", "").strip()
            if normalized_key in OPTION_KEYS:
                options[normalized_key] = {"text": _option_text(value)}
    return options


def _classify_answer(raw_answer: Any, has_options: bool) -> tuple[str, str, str]:
    """Return (question_format, question_type, correct_answer) from the key's shape.

    A multi-character numeric key makes an integer question and is kept as
    written. Otherwise questions with options are single choice with a letter
    key (1-4 map to A-D); questions without options are subjective.
    """
    cleaned = "" if raw_answer is None else str(raw_answer).replace("(", "").replace(")", "").strip()
    if len(cleaned) > 1 and INTEGER_ANSWER_PATTERN.match(cleaned):
        return "integer", "integer", cleaned
    if has_options:
        answer = cleaned.upper()
        return "single_choice", "objective", NUMERIC_ANSWER_MAP.get(answer, answer)
    return "subjective", "subjective", cleaned


def _coerce_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number or default


def normalize_questions(
    raw_questions: list[Any], default_marks: int = 4
) -> list[dict[str, Any]]:
    """Normalize raw LLM question objects.

    Options become ``{"A": {"text": ...}, ...}`` (A-D only). The format and
    type follow from the answer key (see ``_classify_answer``). Missing
    numbers, marks and difficulty get defaults. Questions without text are
    dropped.
    """
    normalized = []
    for index, raw in enumerate(raw_questions):
        if not isinstance(raw, dict):
            continue

        text = str(raw.get("question_text") or raw.get("question") or "")
        if not text.strip():
            continue

        options = _normalize_options(raw.get("options"))
        question_format, question_type, answer = _classify_answer(
            raw.get("correct_answer") or raw.get("answer"), bool(options)
        )

        normalized.append(
            {
                "question_number": _coerce_int(raw.get("question_number"), index + 1),
                "question_text": text,
                "question_format": question_format,
                "question_type": question_type,
                "options": options,
                "correct_answer": answer,
                "explanation": str(raw.get("explanation") or ""),
                "difficulty": str(raw.get("difficulty") or "medium"),
                "marks": _coerce_int(raw.get("marks"), default_marks),
            }
        )
    return normalized


def deduplicate_questions(questions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the first question per number and sort by number."""
    seen: set[int] = set()
    unique = []
    for question in questions:
        number = question["question_number"]
        if number in seen:
            continue
        seen.add(number)
        unique.append(question)
    return sorted(unique, key=lambda q: q["question_number"])


def map_difficulty(difficulty: str | None) -> str:
    """Map free-form difficulty labels to Low | Medium | Intermediate | Advanced."""
    value = (difficulty or "medium").lower()
    if "easy" in value or "simple" in value or value == "low":
        return "Low"
    if "hard" in value or "difficult" in value or value == "advanced":
        return "Advanced"
    if "intermediate" in value:
        return "Intermediate"
    return "Medium"


# =============================================================================
# EXTRACTION
# =============================================================================


def extract_questions(
    content: str,
    exam_name: str,
    year: int,
    paper_type: str | None,
    client: LLMClient,
    chunk_size: int | None = None,
    default_marks: int | None = None,
) -> QuestionExtractionResult:
    """Extract MCQs from paper text, one LLM call per chunk.

    Rate limits and exhausted credits stop the run early and return what was
    gathered so far with ``partial=True``; other chunk failures are collected
    in ``errors`` and the run continues.

    Args:
        content: Extracted paper text
        exam_name: Exam name, included in the prompt
        year: Exam year
        paper_type: Optional shift/set label
        client: LLM client
        chunk_size: Max chunk size (defaults to extraction.chunk_size in config)
        default_marks: Marks for questions without marks (config default)

    Returns:
        QuestionExtractionResult
    """
    extraction_config = load_app_config().extraction
    chunk_size = chunk_size or extraction_config.chunk_size
    default_marks = default_marks or extraction_config.default_marks

    chunks = chunk_content(content, chunk_size)
    logger.info(
        "question_extractor.start",
        exam_name=exam_name,
        year=year,
        chars=len(content),
        chunks=len(chunks),
    )

    raw_questions: list[Any] = []
    errors: list[str] = []

    for index, chunk in enumerate(chunks):
        chunk_context = ""
        if len(chunks) > 1:
            chunk_context = f"\n\nNote: This is part {index + 1} of {len(chunks)} of the document."

        user_message = USER_PROMPT_EXTRACT.format(
            chunk_context=chunk_context,
            default_marks=default_marks,
            exam_name=exam_name,
            year=year,
            paper_type=paper_type or "",
            chunk=chunk,
        )

        try:
            response = client.simple_chat(SYSTEM_PROMPT_EXTRACT, user_message)
        except (LLMRateLimitError, LLMQuotaError) as e:
            rate_limited = isinstance(e, LLMRateLimitError)
            error_code = "RATE_LIMIT" if rate_limited else "CREDITS_EXHAUSTED"
            logger.warning(
                "question_extractor.stopped",
                chunk=index + 1,
                error_code=error_code,
                collected=len(raw_questions),
            )
            questions = deduplicate_questions(normalize_questions(raw_questions, default_marks))
            message = (
                "Rate limit exceeded, please try again later"
                if rate_limited
                else "API credits exhausted, please add credits"
            )
            return QuestionExtractionResult(
                success=False,
                questions=questions,
                chunks_processed=index,
                errors=errors + [f"Chunk {index + 1}: {e}"],
                partial=True,
                error_code=error_code,
                message=message,
            )
        except LLMError as e:
            logger.error("question_extractor.chunk_failed", chunk=index + 1, error=str(e))
            errors.append(f"Chunk {index + 1}: {e}")
            continue

        chunk_questions = parse_questions_response(response)
        logger.info(
            "question_extractor.chunk_done",
            chunk=index + 1,
            total_chunks=len(chunks),
            questions=len(chunk_questions),
        )
        raw_questions.extend(chunk_questions)

    questions = deduplicate_questions(normalize_questions(raw_questions, default_marks))

    logger.info(
        "question_extractor.done",
        questions=len(questions),
        errors=len(errors),
    )

    if not questions:
        return QuestionExtractionResult(
            success=False,
            chunks_processed=len(chunks),
            errors=errors,
            error_code="NO_QUESTIONS",
            message="No questions could be extracted from this paper",
        )

    return QuestionExtractionResult(
        success=True,
        questions=questions,
        chunks_processed=len(chunks),
        errors=errors,
        message=f"Extracted {len(questions)} questions from {len(chunks)} chunk(s)",
    )


def _preview_path(paper_id: str, data_dir: Path) -> Path:
    return data_dir / "papers" / paper_id / "artifacts" / "extraction.json"


def extract_paper_questions(
    paper_id: str,
    client: LLMClient,
    data_dir: Path | None = None,
) -> QuestionExtractionResult:
    """Extract questions from an imported paper and write the preview artifact.

    Raises:
        QuestionExtractionError: If the paper is not registered
        PdfExtractionError: If the paper text has not been extracted
    """
    base_dir = data_dir or DATA_DIR
    init_db(db_path_for(base_dir))

    paper = get_paper_by_id(paper_id)
    if paper is None:
        raise QuestionExtractionError(f"Paper not found: {paper_id}")

    content = load_paper_content(paper_id, base_dir)
    result = extract_questions(
        content=content,
        exam_name=paper.exam_name,
        year=paper.year,
        paper_type=paper.paper_type,
        client=client,
    )

    preview = {
        "$schema": "extraction_v1",
        "paper_id": paper_id,
        "exam_name": paper.exam_name,
        "year": paper.year,
        "paper_type": paper.paper_type,
        "extracted_at": datetime.now(timezone.utc).isoformat(),
        **result.to_dict(),
    }

    preview_path = _preview_path(paper_id, base_dir)
    preview_path.parent.mkdir(parents=True, exist_ok=True)
    with open(preview_path, "w", encoding="utf-8") as f:
        json.dump(preview, f, indent=2, ensure_ascii=False)

    logger.info("question_extractor.preview_written", path=str(preview_path))
    return result


def load_extraction_preview(paper_id: str, data_dir: Path | None = None) -> dict[str, Any]:
    """Load artifacts/extraction.json of a paper.

    Raises:
        PreviewNotFoundError: If no preview exists
    """
    path = _preview_path(paper_id, data_dir or DATA_DIR)
    if not path.exists():
        raise PreviewNotFoundError(paper_id, path)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _format_question_row(
    question: dict[str, Any], paper_id: str, topic_id: str | None
) -> dict[str, Any]:
    question_format = question.get("question_format") or "single_choice"
    if question_format not in QUESTION_FORMATS:
        question_format = "single_choice"

    return {
        "paper_id": paper_id,
        "topic_id": topic_id,
        "question_number": question.get("question_number"),
        "question_text": question["question_text"],
        "question_format": question_format,
        "question_type": question.get("question_type") or "objective",
        "options": question.get("options") or {},
        "correct_answer": question.get("correct_answer") or None,
        "explanation": question.get("explanation") or None,
        "difficulty": map_difficulty(question.get("difficulty")),
        "marks": _coerce_int(question.get("marks"), 1),
        "is_important": bool(question.get("is_important", False)),
    }


def save_extracted_questions(
    paper_id: str,
    questions: list[dict[str, Any]] | None = None,
    topic_id: str | None = None,
    data_dir: Path | None = None,
    batch_size: int | None = None,
) -> SaveQuestionsResult:
    """Persist reviewed questions for a paper in batches.

    Args:
        paper_id: Paper the questions belong to
        questions: Normalized questions; loaded from the preview when None
        topic_id: Optional topic reference (defaults to the paper's topic)
        data_dir: Base data directory (defaults to 'data')
        batch_size: Rows per insert (defaults to extraction.batch_size in config)

    Returns:
        SaveQuestionsResult with inserted and total counts

    Raises:
        QuestionExtractionError: If the paper is not registered
        PreviewNotFoundError: If questions is None and there is no preview
        QuestionSaveError: If a batch fails; earlier batches remain stored
    """
    base_dir = data_dir or DATA_DIR
    batch_size = batch_size or load_app_config().extraction.batch_size
    init_db(db_path_for(base_dir))

    paper = get_paper_by_id(paper_id)
    if paper is None:
        raise QuestionExtractionError(f"Paper not found: {paper_id}")

    if questions is None:
        questions = load_extraction_preview(paper_id, base_dir).get("questions", [])

    rows = [
        _format_question_row(q, paper_id, topic_id or paper.topic_id)
        for q in questions
        if str(q.get("question_text") or "").strip()
    ]

    inserted = 0
    for start in range(0, len(rows), batch_size):
        batch = rows[start : start + batch_size]
        try:
            insert_questions(batch)
        except sqlite3.Error as e:
            logger.error(
                "question_extractor.save_failed",
                paper_id=paper_id,
                inserted=inserted,
                error=str(e),
            )
            raise QuestionSaveError(paper_id, inserted, str(e)) from e
        inserted += len(batch)

    total = refresh_total_questions(paper_id)
    if inserted:
        update_paper_status(paper_id, "questions_ready")

    logger.info("question_extractor.saved", paper_id=paper_id, inserted=inserted, total=total)

    return SaveQuestionsResult(
        paper_id=paper_id,
        inserted_count=inserted,
        total_questions=total,
        message=f"Successfully saved {inserted} questions",
    )
