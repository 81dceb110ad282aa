"""Tests for math answer normalization and equivalence (F1)."""

import pytest

from pyqlab.core.math_normalizer import is_math_equivalent, normalize_math_answer


class TestNormalizeMathAnswer:
    """Tests for the canonical form."""

    def test_empty_input(self):
        """Empty and None give an empty canonical form."""
        assert normalize_math_answer("") == ""
        assert normalize_math_answer(None) == ""

    def test_strips_dollar_delimiters(self):
        """Inline and display dollar delimiters are removed."""
        assert normalize_math_answer("$5$") == "5"
        assert normalize_math_answer("$$x+1$$") == "X+1"

    def test_strips_paren_and_bracket_delimiters(self):
        r"""\( \) and \[ \] delimiters are removed."""
        assert normalize_math_answer(r"\(42\)") == "42"
        assert normalize_math_answer(r"\[y\]") == "Y"

    def test_strips_layout_commands(self):
        r"""\left, \right and \displaystyle carry no meaning."""
        assert normalize_math_answer(r"\left( a+b \right)") == "(A+B)"
        assert normalize_math_answer(r"\displaystyle 7") == "7"

    def test_unwraps_text_commands(self):
        """Text wrappers keep only their content."""
        assert normalize_math_answer(r"5\text{ cm}") == "5CM"
        assert normalize_math_answer(r"\mathrm{kg}") == "KG"
        assert normalize_math_answer(r"\mathbf{v}") == "V"

    def test_unwraps_wrapper_with_nested_group(self):
        assert normalize_math_answer(r"\mathrm{m/s^{2}}") == "M/S^2"
        assert normalize_math_answer(r"\text{\mathbf{F}}") == "F"

    def test_unwraps_wrapper_around_fraction(self):
        assert normalize_math_answer(r"\text{\frac{1}{2}}") == "(1)/(2)"

    def test_wrapper_without_group_is_kept(self):
        assert normalize_math_answer(r"\text 5") == r"\TEXT5"

    def test_fraction(self):
        r"""\frac{a}{b} becomes (a)/(b)."""
        assert normalize_math_answer(r"\frac{1}{2}") == "(1)/(2)"

    def test_nested_fraction(self):
        """Inner fractions are rewritten too."""
        assert normalize_math_answer(r"\frac{\frac{1}{2}}{3}") == "((1)/(2))/(3)"

    def test_dfrac_is_a_fraction(self):
        assert normalize_math_answer(r"\dfrac{3}{4}") == "(3)/(4)"

    def test_malformed_fraction_does_not_raise(self):
        """A fraction without two groups is left as text."""
        assert normalize_math_answer(r"\frac{1}") == r"\FRAC1"

    @pytest.mark.parametrize(
        "latex,expected",
        [
            (r"2\times3", "2*3"),
            (r"2\cdot3", "2*3"),
            (r"6\div2", "6/2"),
            (r"x\leq2", "X<=2"),
            (r"x\le 2", "X<=2"),
            (r"x\geq 2", "X>=2"),
            (r"x\neq 2", "X!=2"),
            (r"x\lt 2", "X<2"),
            (r"\pm 3", "+-3"),
            (r"\sqrt{2}", "SQRT2"),
            (r"\infty", "INF"),
            (r"2\pi", "2PI"),
        ],
    )
    def test_macros_become_ascii_tokens(self, latex, expected):
        """LaTeX operators map to plain ASCII tokens."""
        assert normalize_math_answer(latex) == expected

    def test_macro_prefix_is_not_rewritten(self):
        r"""\pi inside a longer command name is not a \pi."""
        assert normalize_math_answer(r"\pivot") == r"\PIVOT"

    def test_superscripts(self):
        """Superscript runs become ^ followed by digits."""
        assert normalize_math_answer("x²") == "X^2"
        assert normalize_math_answer("10⁻³") == "10^-3"
        assert normalize_math_answer("2¹⁰") == "2^10"

    def test_subscripts(self):
        """Subscript runs become _ followed by digits."""
        assert normalize_math_answer("H₂O") == "H_2O"

    @pytest.mark.parametrize(
        "glyph_text,expected",
        [
            ("2 × 3", "2*3"),
            ("6 ÷ 2", "6/2"),
            ("5 − 2", "5-2"),
            ("±1", "+-1"),
            ("√2", "SQRT2"),
            ("∞", "INF"),
            ("π", "PI"),
            ("x ≤ 1", "X<=1"),
            ("x ≥ 1", "X>=1"),
            ("x ≠ 1", "X!=1"),
        ],
    )
    def test_unicode_glyphs(self, glyph_text, expected):
        """Operator glyphs map to the same tokens as their LaTeX forms."""
        assert normalize_math_answer(glyph_text) == expected

    def test_whitespace_removed_and_uppercased(self):
        assert normalize_math_answer("  a b\tc\n") == "ABC"


class TestIsMathEquivalent:
    """Tests for the equivalence check."""

    def test_superscript_and_caret(self):
        assert is_math_equivalent("5^2", "5²") is True

    def test_braced_exponent_and_case(self):
        assert is_math_equivalent("x^{2}", "X^2") is True

    def test_fraction_and_parenthesized_division(self):
        assert is_math_equivalent(r"\frac{1}{2}", "(1)/(2)") is True

    def test_no_numeric_evaluation_of_pi(self):
        """π is the literal token PI, never 3.14."""
        assert is_math_equivalent("3.14", "π") is False

    def test_latex_pi_and_glyph(self):
        assert is_math_equivalent(r"2\pi", "2π") is True

    def test_empty_is_never_equivalent(self):
        assert is_math_equivalent("", "5") is False
        assert is_math_equivalent("5", "") is False
        assert is_math_equivalent(None, None) is False

    def test_both_empty_after_normalization(self):
        """Answers that reduce to nothing are not equivalent."""
        assert is_math_equivalent("$$", "$ $") is False

    def test_multiplication_glyph(self):
        assert is_math_equivalent("2 × 3", "2*3") is True

    def test_case_insensitive(self):
        assert is_math_equivalent("abc", "ABC") is True

    def test_delimited_and_plain(self):
        assert is_math_equivalent("$42$", "42") is True

    def test_spaced_unit_with_braced_exponent(self):
        """Units inside \\mathrm match their Unicode spelling."""
        assert is_math_equivalent(r"5\,\mathrm{m/s^{2}}", "5 m/s²") is True

    def test_different_values(self):
        assert is_math_equivalent("42", "24") is False

    def test_symmetric(self):
        """Equivalence does not depend on argument order."""
        pairs = [("5^2", "5²"), ("3.14", "π"), (r"\sqrt{2}", "√2"), ("1", "2")]
        for a, b in pairs:
            assert is_math_equivalent(a, b) == is_math_equivalent(b, a)

    def test_idempotent_normalization(self):
        """Normalizing a canonical form changes nothing."""
        for text in [r"\frac{1}{2}", "x²", "2 × 3", r"\left(a\right)", "H₂O"]:
            once = normalize_math_answer(text)
            assert normalize_math_answer(once) == once
