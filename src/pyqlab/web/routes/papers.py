"""Paper endpoints: listing, questions for a test, and test submission."""

from datetime import datetime, timezone
from functools import partial
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from pyqlab.config.app_config import load_app_config
from pyqlab.core.answer_comparator import compare_math_answers
from pyqlab.core.paper_grader import grade_submission, record_test_result
from pyqlab.core.test_session import TestSubmission
from pyqlab.db.papers_repository import PaperRecord, get_all_papers, get_paper_by_id
from pyqlab.db.questions_repository import get_questions_for_paper
from pyqlab.llm.client import LLMClient, LLMConfig
from pyqlab.web.deps import data_dir_dependency
from pyqlab.web.schemas import (
    GradeSummaryResponse,
    PaperDetail,
    PaperListResponse,
    PaperSummary,
    QuestionGradeResponse,
    QuestionListResponse,
    QuestionResponse,
    SubmissionRequest,
    SubmissionResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/papers", tags=["papers"])

PAPER_CATEGORIES = ("previous_year", "proficiency", "exam")


def get_llm_client() -> LLMClient:
    """LLM client used for AI answer comparison."""
    return LLMClient(config=LLMConfig.from_yaml())


def _get_paper_or_404(paper_id: str) -> PaperRecord:
    paper = get_paper_by_id(paper_id)
    if paper is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Paper {paper_id} not found",
        )
    return paper


@router.get("", response_model=PaperListResponse)
async def list_papers(
    category: str | None = Query(None, description="previous_year, proficiency or exam"),
    subject_id: str | None = Query(None),
    data_dir: Path = Depends(data_dir_dependency),
) -> PaperListResponse:
    """List registered papers, newest year first."""
    if category is not None and category not in PAPER_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown paper category: {category}",
        )

    papers = get_all_papers(paper_category=category, subject_id=subject_id)
    logger.info("papers_list", count=len(papers), category=category)

    return PaperListResponse(
        papers=[PaperSummary.model_validate(p) for p in papers],
        count=len(papers),
    )


@router.get("/{paper_id}", response_model=PaperDetail)
async def get_paper(
    paper_id: str, data_dir: Path = Depends(data_dir_dependency)
) -> PaperDetail:
    """Get one paper."""
    return PaperDetail.model_validate(_get_paper_or_404(paper_id))


@router.get("/{paper_id}/questions", response_model=QuestionListResponse)
async def list_paper_questions(
    paper_id: str,
    include_answers: bool = Query(False, description="Include key and explanation"),
    important_only: bool = Query(False),
    data_dir: Path = Depends(data_dir_dependency),
) -> QuestionListResponse:
    """List the questions of a paper. The key is withheld unless requested."""
    _get_paper_or_404(paper_id)
    questions = get_questions_for_paper(paper_id, important_only=important_only)

    return QuestionListResponse(
        paper_id=paper_id,
        questions=[
            QuestionResponse(**q.to_dict(include_answer=include_answers)) for q in questions
        ],
        count=len(questions),
    )


@router.post(
    "/{paper_id}/submissions",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_paper_test(
    paper_id: str,
    request: SubmissionRequest,
    data_dir: Path = Depends(data_dir_dependency),
) -> SubmissionResponse:
    """Grade a submitted test and store the result."""
    paper = _get_paper_or_404(paper_id)
    questions = get_questions_for_paper(paper_id)

    if request.question_ids is not None:
        by_id = {q.question_id: q for q in questions}
        unknown = [qid for qid in request.question_ids if qid not in by_id]
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Questions not in paper {paper_id}: {', '.join(unknown)}",
            )
        questions = [by_id[qid] for qid in request.question_ids]

    if not questions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Paper {paper_id} has no questions to grade",
        )

    test_ids = {q.question_id for q in questions}
    stray = sorted(set(request.answers) - test_ids)
    if stray:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Answers for questions not in the test: {', '.join(stray)}",
        )

    use_ai = request.use_ai_comparison
    if use_ai is None:
        use_ai = load_app_config().grading.use_ai_comparison
    comparator = partial(compare_math_answers, client=get_llm_client()) if use_ai else None

    report = grade_submission(paper, questions, request.answers, comparator=comparator)

    now = datetime.now(timezone.utc).isoformat()
    submission = TestSubmission(
        paper_id=paper_id,
        question_ids=[q.question_id for q in questions],
        answers={k: v for k, v in request.answers.items() if v.strip()},
        flagged=[],
        started_at=now,
        submitted_at=now,
        time_taken_seconds=request.time_taken_seconds or 0,
    )
    result_id = record_test_result(report, submission, student_id=request.student_id)

    logger.info(
        "paper_submission",
        paper_id=paper_id,
        result_id=result_id,
        grading_status=report.grading_status,
    )

    return SubmissionResponse(
        result_id=result_id,
        paper_id=paper_id,
        grading_status=report.grading_status,
        graded_at=report.graded_at,
        summary=GradeSummaryResponse(**report.summary.to_dict()),
        results=[QuestionGradeResponse(**g.to_dict()) for g in report.results],
        warnings=report.warnings,
    )
