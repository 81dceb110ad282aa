"""Test result endpoints."""

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from pyqlab.core.results import (
    category_counts,
    filter_results,
    format_duration,
    grading_status_label,
    score_band,
)
from pyqlab.db.results_repository import TestResultRecord, get_result_by_id, get_results
from pyqlab.web.deps import data_dir_dependency
from pyqlab.web.schemas import ResultListResponse, TestResultResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/results", tags=["results"])


def _to_response(result: TestResultRecord) -> TestResultResponse:
    return TestResultResponse(
        result_id=result.result_id,
        paper_id=result.paper_id,
        student_id=result.student_id,
        paper_category=result.paper_category,
        score=result.score,
        total_questions=result.total_questions,
        percentage=result.percentage,
        marks_obtained=result.marks_obtained,
        max_marks=result.max_marks,
        time_taken_seconds=result.time_taken_seconds,
        time_taken=format_duration(result.time_taken_seconds),
        score_band=score_band(result.percentage),
        grading_status=result.grading_status,
        grading_status_label=grading_status_label(result.grading_status),
        submitted_at=result.submitted_at,
        graded_at=result.graded_at,
    )


@router.get("", response_model=ResultListResponse)
async def list_results(
    category: str = Query("all", description="all, previous_year, proficiency or exam"),
    paper_id: str | None = Query(None),
    student_id: str | None = Query(None),
    data_dir: Path = Depends(data_dir_dependency),
) -> ResultListResponse:
    """List stored results, newest first, filtered by paper category."""
    all_results = get_results(paper_id=paper_id, student_id=student_id)
    try:
        results = filter_results(all_results, category)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("results_list", count=len(results), category=category)

    return ResultListResponse(
        results=[_to_response(r) for r in results],
        count=len(results),
        category=category,
        counts=category_counts(all_results),
    )


@router.get("/{result_id}", response_model=TestResultResponse)
async def get_result(
    result_id: str, data_dir: Path = Depends(data_dir_dependency)
) -> TestResultResponse:
    """Get one stored result."""
    result = get_result_by_id(result_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Result {result_id} not found",
        )
    return _to_response(result)
