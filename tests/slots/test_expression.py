"""Tests for the computed-slot expression evaluator."""

import pytest

from prompt_engine.exceptions import ExpressionError
from prompt_engine.slots import evaluate
from prompt_engine.slots.expression import MAX_LENGTH, tokenize


class TestArithmetic:
    """Test numeric evaluation."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("2+2", 4),
            ("2 + 3 * 4", 14),
            ("(2 + 3) * 4", 20),
            ("10 / 4", 2.5),
            ("10 / 5", 2),
            ("7 % 3", 1),
            ("-3 + 5", 2),
            ("--3", 3),
            ("1.5 * 2", 3.0),
            ("1e3", 1000.0),
        ],
    )
    def test_literals(self, source, expected):
        assert evaluate(source) == expected

    def test_integer_division_stays_int(self):
        assert isinstance(evaluate("10 / 5"), int)

    def test_variables(self):
        assert evaluate("a * 10", {"a": 4}) == 40

    def test_division_by_zero(self):
        with pytest.raises(ExpressionError, match="Division by zero"):
            evaluate("1 / 0")

    def test_modulo_by_zero(self):
        with pytest.raises(ExpressionError, match="Modulo by zero"):
            evaluate("1 % 0")

    def test_overflow_is_an_expression_error(self):
        with pytest.raises(ExpressionError, match="Numeric overflow"):
            evaluate("1" + "0" * 400 + " / 7")

    def test_booleans_are_not_numbers(self):
        with pytest.raises(ExpressionError, match="requires numbers"):
            evaluate("true * 2")


class TestStrings:
    """Test string literals and concatenation."""

    def test_concatenation(self):
        assert evaluate("'Hello, ' + name", {"name": "Ada"}) == "Hello, Ada"

    def test_number_concatenated_as_text(self):
        assert evaluate("'v' + 2") == "v2"

    def test_double_quotes_and_escapes(self):
        assert evaluate(r'"say \"hi\""') == 'say "hi"'

    def test_string_subtraction_fails(self):
        with pytest.raises(ExpressionError):
            evaluate("'a' - 'b'")


class TestIndexing:
    """Test field and index access."""

    def test_dot_access(self):
        assert evaluate("data.user.name", {"data": {"user": {"name": "Ada"}}}) == "Ada"

    def test_bracket_access(self):
        assert evaluate("data.items[1]", {"data": {"items": [10, 20, 30]}}) == 20

    def test_numeric_dot_segment(self):
        assert evaluate("data.0", {"data": ["first"]}) == "first"

    def test_missing_key(self):
        with pytest.raises(ExpressionError, match="Key 'missing' not found"):
            evaluate("data.missing", {"data": {}})

    def test_index_out_of_range(self):
        with pytest.raises(ExpressionError, match="Invalid list index"):
            evaluate("data[5]", {"data": [1]})

    def test_infinite_index(self):
        with pytest.raises(ExpressionError, match="Invalid list index"):
            evaluate("data[n]", {"data": [1], "n": float("inf")})

    def test_index_into_scalar(self):
        with pytest.raises(ExpressionError, match="Cannot index"):
            evaluate("n.x", {"n": 3})


class TestRejections:
    """Test that evaluation never reaches ambient state."""

    def test_unknown_variable(self):
        with pytest.raises(ExpressionError, match="Unknown variable 'secret'"):
            evaluate("secret")

    @pytest.mark.parametrize("source", ["__import__('os')", "a; b", "x = 1", "lambda: 1", "a ** 2", "{}"])
    def test_foreign_syntax(self, source):
        with pytest.raises(ExpressionError):
            evaluate(source, {"a": 1, "b": 2, "x": 3})

    def test_empty(self):
        with pytest.raises(ExpressionError, match="Empty expression"):
            evaluate("   ")

    def test_unbalanced_parenthesis(self):
        with pytest.raises(ExpressionError, match="Expected"):
            evaluate("(1 + 2")

    def test_too_long(self):
        with pytest.raises(ExpressionError, match="longer than"):
            evaluate("1+" * MAX_LENGTH + "1")

    def test_nesting_limit(self):
        with pytest.raises(ExpressionError, match="nested too deeply"):
            evaluate("(" * 100 + "1" + ")" * 100)


class TestTokenize:
    def test_tokens(self):
        assert [(t.kind, t.text) for t in tokenize("a + 'b'")] == [("name", "a"), ("op", "+"), ("string", "'b'")]

    def test_bad_character(self):
        with pytest.raises(ExpressionError, match="Unexpected character '@'"):
            tokenize("a @ b")
