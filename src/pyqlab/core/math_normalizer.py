"""Math answer normalizer.

Reduces a free-text numeric or symbolic answer to a canonical string so that
answers written in different notations (LaTeX markup, Unicode super/subscripts,
operator glyphs, whitespace, letter case) compare equal.

Equivalence is purely lexical: there is no numeric parsing, no tolerance and
no algebraic simplification. ``\\pi`` and ``π`` both become the literal token
``PI``, so ``3.14`` and ``π`` are *not* equivalent.
"""

from __future__ import annotations

import re

# =============================================================================
# TOKEN TABLES
# =============================================================================

# Step 1: math delimiters
_DELIMITER_PATTERN = re.compile(r"\$|\\\(|\\\)|\\\[|\\\]")

# Step 2: layout-only commands (sizing and spacing)
_LAYOUT_PATTERN = re.compile(
    r"\\(?:left|right|displaystyle)(?![a-zA-Z])|\\(?:qquad|quad)(?![a-zA-Z])|\\[,;:!]"
)

# Step 3: text wrappers, unwrapped to their content by _unwrap_text_commands
_WRAPPER_PATTERN = re.compile(r"\\(?:text|mathrm|mathbf)(?![a-zA-Z])")

# Step 4: fraction commands, handled by _rewrite_fractions
_FRACTION_PATTERN = re.compile(r"\\[dt]?frac(?![a-zA-Z])")

# Step 4: plain macro substitutions (order matters: longer names first)
_MACRO_REPLACEMENTS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\\times(?![a-zA-Z])"), "*"),
    (re.compile(r"\\cdot(?![a-zA-Z])"), "*"),
    (re.compile(r"\\div(?![a-zA-Z])"), "/"),
    (re.compile(r"\\leq?(?![a-zA-Z])"), "<="),
    (re.compile(r"\\geq?(?![a-zA-Z])"), ">="),
    (re.compile(r"\\neq?(?![a-zA-Z])"), "!="),
    (re.compile(r"\\lt(?![a-zA-Z])"), "<"),
    (re.compile(r"\\gt(?![a-zA-Z])"), ">"),
    (re.compile(r"\\pm(?![a-zA-Z])"), "+-"),
    (re.compile(r"\\sqrt(?![a-zA-Z])"), "SQRT"),
    (re.compile(r"\\infty(?![a-zA-Z])"), "INF"),
    (re.compile(r"\\pi(?![a-zA-Z])"), "PI"),
]

# Step 7: Unicode super/subscript glyphs
_SUPERSCRIPT_MAP = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻", "0123456789+-")
_SUBSCRIPT_MAP = str.maketrans("₀₁₂₃₄₅₆₇₈₉₊₋", "0123456789+-")
_SUPERSCRIPT_RUN = re.compile(r"[⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻]+")
_SUBSCRIPT_RUN = re.compile(r"[₀₁₂₃₄₅₆₇₈₉₊₋]+")

# Step 8: Unicode operator glyphs. Π is π after uppercasing.
_GLYPH_REPLACEMENTS: dict[str, str] = {
    "×": "*",
    "⋅": "*",
    "÷": "/",
    "−": "-",
    "±": "+-",
    "√": "SQRT",
    "∞": "INF",
    "π": "PI",
    "Π": "PI",
    "≤": "<=",
    "≥": ">=",
    "≠": "!=",
}

_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# HELPERS
# =============================================================================


def _read_group(text: str, start: int) -> tuple[str, int] | None:
    """Read a balanced ``{...}`` group starting at ``start`` (whitespace allowed).

    Returns (inner_text, index_after_group) or None if no group is there.
    """
    i = start
    while i < len(text) and text[i].isspace():
        i += 1
    if i >= len(text) or text[i] != "{":
        return None

    depth = 0
    for j in range(i, len(text)):
        if text[j] == "{":
            depth += 1
        elif text[j] == "}":
            depth -= 1
            if depth == 0:
                return text[i + 1 : j], j + 1
    return None


def _rewrite_fractions(text: str) -> str:
    """Rewrite ``\\frac{a}{b}`` as ``(a)/(b)``, resolving nested fractions first.

    A fraction command without two well-formed groups is left untouched.
    """
    out: list[str] = []
    pos = 0
    while True:
        match = _FRACTION_PATTERN.search(text, pos)
        if match is None:
            out.append(text[pos:])
            break

        numerator = _read_group(text, match.end())
        denominator = _read_group(text, numerator[1]) if numerator else None
        if numerator is None or denominator is None:
            out.append(text[pos : match.end()])
            pos = match.end()
            continue

        out.append(text[pos : match.start()])
        out.append(
            f"({_rewrite_fractions(numerator[0])})/({_rewrite_fractions(denominator[0])})"
        )
        pos = denominator[1]

    return "".join(out)


def _unwrap_text_commands(text: str) -> str:
    """Replace ``\\text{...}``, ``\\mathrm{...}`` and ``\\mathbf{...}`` with their content.

    Content may hold nested groups (``\\mathrm{m/s^{2}}``) or other commands.
    A wrapper without a well-formed group is left untouched.
    """
    out: list[str] = []
    pos = 0
    while True:
        match = _WRAPPER_PATTERN.search(text, pos)
        if match is None:
            out.append(text[pos:])
            break

        group = _read_group(text, match.end())
        if group is None:
            out.append(text[pos : match.end()])
            pos = match.end()
            continue

        out.append(text[pos : match.start()])
        out.append(_unwrap_text_commands(group[0]))
        pos = group[1]

    return "".join(out)


# =============================================================================
# PUBLIC API
# =============================================================================


def normalize_math_answer(text: str | None) -> str:
    """Return the canonical form of a math answer.

    Args:
        text: Raw answer as typed by a student or stored as the key.

    Returns:
        Canonical string (possibly empty). Never raises for str/None input.
    """
    if not text:
        return ""

    result = _DELIMITER_PATTERN.sub("", text)
    result = _LAYOUT_PATTERN.sub("", result)
    result = _unwrap_text_commands(result)

    result = _rewrite_fractions(result)
    for pattern, replacement in _MACRO_REPLACEMENTS:
        result = pattern.sub(replacement, result)

    result = result.replace("{", "").replace("}", "")
    result = result.upper()

    result = _SUPERSCRIPT_RUN.sub(
        lambda m: "^" + m.group(0).translate(_SUPERSCRIPT_MAP), result
    )
    result = _SUBSCRIPT_RUN.sub(
        lambda m: "_" + m.group(0).translate(_SUBSCRIPT_MAP), result
    )

    for glyph, token in _GLYPH_REPLACEMENTS.items():
        result = result.replace(glyph, token)

    return _WHITESPACE.sub("", result)


def is_math_equivalent(user_answer: str | None, correct_answer: str | None) -> bool:
    """Check whether two answers share the same canonical form.

    Empty or missing input on either side is never equivalent, and neither
    are two answers that both reduce to an empty canonical form.
    """
    if not user_answer or not correct_answer:
        return False

    normalized_user = normalize_math_answer(user_answer)
    normalized_correct = normalize_math_answer(correct_answer)

    if not normalized_user or not normalized_correct:
        return False

    return normalized_user == normalized_correct
