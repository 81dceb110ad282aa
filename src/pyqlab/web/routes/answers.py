"""Answer checking endpoints: canonical comparison and AI batch comparison."""

import structlog
from fastapi import APIRouter, HTTPException, status

from pyqlab.core.answer_comparator import (
    AnswerComparisonError,
    ComparisonItem,
    compare_math_answers,
)
from pyqlab.core.math_normalizer import is_math_equivalent, normalize_math_answer
from pyqlab.llm.client import LLMClient, LLMConfig
from pyqlab.web.schemas import (
    AnswerCheckRequest,
    AnswerCheckResponse,
    AnswerCompareRequest,
    AnswerCompareResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/answers", tags=["answers"])


def get_llm_client() -> LLMClient:
    """LLM client used for AI answer comparison."""
    return LLMClient(config=LLMConfig.from_yaml())


@router.post("/check", response_model=AnswerCheckResponse)
async def check_answer(request: AnswerCheckRequest) -> AnswerCheckResponse:
    """Compare two answers by their canonical math form."""
    return AnswerCheckResponse(
        is_equivalent=is_math_equivalent(request.user_answer, request.correct_answer),
        normalized_user=normalize_math_answer(request.user_answer),
        normalized_correct=normalize_math_answer(request.correct_answer),
    )


@router.post("/compare", response_model=AnswerCompareResponse)
def compare_answers(request: AnswerCompareRequest) -> AnswerCompareResponse:
    """Ask the LLM whether each student answer matches its key."""
    if not request.items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No items to compare",
        )

    items = [
        ComparisonItem(id=i.id, user_answer=i.user_answer, correct_answer=i.correct_answer)
        for i in request.items
    ]

    try:
        comparison = compare_math_answers(items, get_llm_client())
    except AnswerComparisonError as e:
        logger.warning("answers_compare_failed", error=str(e), count=len(items))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return AnswerCompareResponse(
        results={item_id: value is True for item_id, value in comparison.equivalences.items()},
        missing_ids=comparison.missing_ids,
    )
