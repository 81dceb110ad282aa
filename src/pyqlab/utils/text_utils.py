"""Text processing utilities.

Common clean-up of raw LLM output used across modules.
"""

import re

# Patterns for removing thinking/reasoning blocks from LLM output
THINK_PATTERNS = [
    re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<thinking>.*?</thinking>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<analysis>.*?</analysis>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<reasoning>.*?</reasoning>", re.DOTALL | re.IGNORECASE),
]

CODE_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
CODE_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_think(text: str) -> str:
    """Remove thinking/reasoning tags and prefixes from LLM output.

    Removes:
    - <think>...</think> blocks
    - <thinking>...</thinking> blocks
    - <analysis>...</analysis> blocks
    - <reasoning>...</reasoning> blocks
    - a leading "Thinking..." line

    Args:
        text: Raw LLM output text

    Returns:
        Cleaned text without thinking artifacts
    """
    result = text
    for pattern in THINK_PATTERNS:
        result = pattern.sub("", result)

    lines = result.strip().split("\n")
    if lines and lines[0].strip().lower().startswith("thinking..."):
        lines = lines[1:]

    return "\n".join(lines).strip()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if any."""
    result = text.strip()
    result = CODE_FENCE_OPEN.sub("", result)
    result = CODE_FENCE_CLOSE.sub("", result)
    return result.strip()
