"""Pydantic schemas for the Web API.

Serialization models for papers, questions, test submissions, results and
answer checks.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    data_dir: str
    papers: int


# =============================================================================
# PAPER SCHEMAS
# =============================================================================


class PaperSummary(BaseModel):
    """Paper as shown in the paper list."""

    paper_id: str
    exam_name: str
    year: int
    paper_type: str | None = None
    subject_id: str | None = None
    document_type: str
    paper_category: str
    language: str | None = None
    total_questions: int
    status: str
    has_written_answers: bool = False

    model_config = {"from_attributes": True}


class PaperDetail(PaperSummary):
    """Full paper record."""

    paper_uuid: str | None = None
    chapter_id: str | None = None
    topic_id: str | None = None
    source_file: str | None = None
    imported_at: str


class PaperListResponse(BaseModel):
    """Response for list of papers."""

    papers: list[PaperSummary]
    count: int


class QuestionResponse(BaseModel):
    """A question, with the key only when requested."""

    question_id: str
    paper_id: str | None = None
    question_number: int | None = None
    question_text: str
    question_format: str
    question_type: str
    options: dict[str, dict[str, Any]] = Field(default_factory=dict)
    difficulty: str
    marks: int
    is_important: bool = False
    correct_answer: str | None = None
    explanation: str | None = None


class QuestionListResponse(BaseModel):
    """Response for the questions of a paper."""

    paper_id: str
    questions: list[QuestionResponse]
    count: int


# =============================================================================
# SUBMISSION SCHEMAS
# =============================================================================


class SubmissionRequest(BaseModel):
    """Answers submitted for a test on a paper."""

    answers: dict[str, str] = Field(default_factory=dict)
    question_ids: list[str] | None = Field(
        default=None, description="Questions in the test (defaults to the whole paper)"
    )
    time_taken_seconds: int | None = Field(default=None, ge=0)
    student_id: str | None = None
    use_ai_comparison: bool | None = Field(
        default=None, description="Override grading.use_ai_comparison"
    )


class QuestionGradeResponse(BaseModel):
    """Grade for one question."""

    question_id: str
    question_format: str
    status: str
    is_correct: bool | None
    given_answer: str | None
    correct_answer: str | None
    marks: int
    marks_awarded: int
    grading_path: str


class GradeSummaryResponse(BaseModel):
    """Score summary of a graded test."""

    score: int
    total_questions: int
    percentage: float | None
    marks_obtained: int
    max_marks: int
    pending_count: int
    passed: bool | None


class SubmissionResponse(BaseModel):
    """Graded and stored test."""

    result_id: str
    paper_id: str
    grading_status: str
    graded_at: str | None
    summary: GradeSummaryResponse
    results: list[QuestionGradeResponse]
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# RESULT SCHEMAS
# =============================================================================


class TestResultResponse(BaseModel):
    """A stored test result."""

    result_id: str
    paper_id: str
    student_id: str | None = None
    paper_category: str
    score: int
    total_questions: int
    percentage: float | None
    marks_obtained: int
    max_marks: int
    time_taken_seconds: int | None
    time_taken: str
    score_band: str
    grading_status: str
    grading_status_label: str
    submitted_at: str | None
    graded_at: str | None = None


class ResultListResponse(BaseModel):
    """Results filtered by category, with per-category counts."""

    results: list[TestResultResponse]
    count: int
    category: str
    counts: dict[str, int]


# =============================================================================
# ANSWER SCHEMAS
# =============================================================================


class AnswerCheckRequest(BaseModel):
    """Two answers to compare by canonical form."""

    user_answer: str
    correct_answer: str


class AnswerCheckResponse(BaseModel):
    """Canonical forms and verdict."""

    is_equivalent: bool
    normalized_user: str
    normalized_correct: str


class AnswerCompareItem(BaseModel):
    """One answer pair for AI comparison."""

    id: str = Field(..., min_length=1)
    user_answer: str
    correct_answer: str


class AnswerCompareRequest(BaseModel):
    """Batch of answer pairs."""

    items: list[AnswerCompareItem]


class AnswerCompareResponse(BaseModel):
    """AI verdicts keyed by item id."""

    results: dict[str, bool]
    missing_ids: list[str] = Field(default_factory=list)
