"""AI-assisted math answer comparison.

Used by the grader when the lexical normalizer says two numeric answers
differ: the remaining pairs are sent to the LLM in a single batch, which
judges mathematical equivalence (``1/2`` vs ``0.5``, ``2x`` vs ``x+x``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from pyqlab.llm.client import LLMClient, LLMError

logger = structlog.get_logger(__name__)

# =============================================================================
# PROMPTS
# =============================================================================

SYSTEM_PROMPT_COMPARE = """You are a math answer equivalence checker. Your ONLY job is to determine if two mathematical answers are equivalent.

Rules:
- Treat LaTeX notation and plain text as equivalent (e.g., "$5^2$" equals "5^2" equals "5²" equals "25")
- Treat fractions and decimals as equivalent (e.g., "1/2" equals "0.5")
- Treat different notations as equivalent (e.g., "×" equals "*", "÷" equals "/")
- Ignore whitespace differences
- Ignore case differences for variables
- Consider mathematical equivalence (e.g., "2x" equals "x*2" equals "x+x")
- DO NOT solve problems - only compare the given answers

Respond with a JSON object containing a "results" array with objects having "id" and "is_equivalent" (boolean) for each comparison."""

USER_PROMPT_COMPARE = """Compare each pair of answers and determine if they are mathematically equivalent:

{comparisons}

Respond ONLY with valid JSON in this exact format:
{{"results": [{{"id": "...", "is_equivalent": true/false}}, ...]}}"""

COMPARE_TEMPERATURE = 0.1


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class ComparisonItem:
    """A pair of answers to compare."""

    id: str
    user_answer: str
    correct_answer: str


@dataclass
class ComparisonResult:
    """Outcome of a batch comparison."""

    equivalences: dict[str, bool] = field(default_factory=dict)
    missing_ids: list[str] = field(default_factory=list)

    def is_equivalent(self, item_id: str) -> bool:
        """Missing ids count as not equivalent."""
        return self.equivalences.get(item_id, False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [
                {"id": item_id, "is_equivalent": value}
                for item_id, value in self.equivalences.items()
            ],
            "missing_ids": self.missing_ids,
        }


class AnswerComparisonError(Exception):
    """Raised when the AI comparison cannot be performed."""

    pass


# =============================================================================
# COMPARISON
# =============================================================================


def _coerce_items(items: list[Any]) -> list[ComparisonItem]:
    coerced = []
    for item in items:
        if isinstance(item, ComparisonItem):
            coerced.append(item)
        elif isinstance(item, dict):
            coerced.append(
                ComparisonItem(
                    id=str(item["id"]),
                    user_answer=str(item.get("user_answer") or ""),
                    correct_answer=str(item.get("correct_answer") or ""),
                )
            )
        else:
            item_id, user_answer, correct_answer = item
            coerced.append(ComparisonItem(str(item_id), str(user_answer), str(correct_answer)))
    return coerced


def _format_comparisons(items: list[ComparisonItem]) -> str:
    return "\n\n".join(
        f'{idx}. ID: "{item.id}"\n'
        f'   User Answer: "{item.user_answer}"\n'
        f'   Correct Answer: "{item.correct_answer}"'
        for idx, item in enumerate(items, start=1)
    )


def compare_math_answers(items: list[Any], client: LLMClient) -> ComparisonResult:
    """Ask the LLM whether each answer pair is mathematically equivalent.

    Args:
        items: ComparisonItem objects, dicts with id/user_answer/correct_answer,
            or (id, user_answer, correct_answer) tuples.
        client: LLM client used for the single batched request.

    Returns:
        ComparisonResult; ids the model did not answer are listed in
        ``missing_ids`` and treated as not equivalent.

    Raises:
        AnswerComparisonError: If the LLM call fails or returns no results.
    """
    batch = _coerce_items(items)
    if not batch:
        return ComparisonResult()

    logger.info("answer_comparator.start", count=len(batch))

    user_message = USER_PROMPT_COMPARE.format(comparisons=_format_comparisons(batch))

    try:
        response = client.simple_json(
            system_prompt=SYSTEM_PROMPT_COMPARE,
            user_message=user_message,
            temperature=COMPARE_TEMPERATURE,
        )
    except LLMError as e:
        logger.error("answer_comparator.llm_failed", error=str(e))
        raise AnswerComparisonError(f"AI comparison failed: {e}") from e

    raw_results = response.get("results")
    if not isinstance(raw_results, list):
        raise AnswerComparisonError("AI response has no 'results' array")

    requested = {item.id for item in batch}
    result = ComparisonResult()
    for entry in raw_results:
        if not isinstance(entry, dict) or "id" not in entry:
            continue
        entry_id = str(entry["id"])
        if entry_id not in requested:
            continue
        result.equivalences[entry_id] = entry.get("is_equivalent") is True

    result.missing_ids = [item.id for item in batch if item.id not in result.equivalences]

    logger.info(
        "answer_comparator.done",
        count=len(batch),
        equivalent=sum(result.equivalences.values()),
        missing=len(result.missing_ids),
    )

    return result
