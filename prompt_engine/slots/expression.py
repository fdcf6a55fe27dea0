"""Restricted expression evaluator for computed slots.

Grammar (recursive descent, no access to ambient state)::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/" | "%") unary)*
    unary   := ("-" | "+") unary | postfix
    postfix := primary ("." NAME | "[" expr "]")*
    primary := NUMBER | STRING | NAME | "true" | "false" | "(" expr ")"

Names are looked up in the variables mapping passed to ``evaluate``. ``+`` adds
numbers and concatenates when either side is a string. ``.`` and ``[]`` index into
maps and lists (used to extract fields from API responses).
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from prompt_engine.exceptions import ExpressionError
from prompt_engine.values import to_text

MAX_DEPTH = 64
MAX_LENGTH = 4096

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>[-+*/%().\[\]])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    text: str
    pos: int


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(source: str) -> list[_Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionError: On characters outside the grammar.
    """
    tokens: list[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ExpressionError(f"Unexpected character {source[pos]!r} at position {pos}")
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, source: str, variables: Mapping[str, Any]) -> None:
        self._tokens = tokenize(source)
        self._index = 0
        self._variables = variables
        self._depth = 0

    # ── token helpers ─────────────────────────────────────────────────────────

    def _peek(self) -> _Token | None:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in ops:
            self._index += 1
            return token.text
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            token = self._peek()
            where = f"at position {token.pos}" if token else "at end of expression"
            raise ExpressionError(f"Expected {op!r} {where}")

    # ── grammar ──────────────────────────────────────────────────────────────

    def parse(self) -> Any:
        if not self._tokens:
            raise ExpressionError("Empty expression")
        value = self._expr()
        token = self._peek()
        if token is not None:
            raise ExpressionError(f"Unexpected token {token.text!r} at position {token.pos}")
        return value

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_DEPTH:
            raise ExpressionError("Expression nested too deeply")

    def _expr(self) -> Any:
        self._enter()
        value = self._term()
        while (op := self._accept("+", "-")) is not None:
            value = _binary(op, value, self._term())
        self._depth -= 1
        return value

    def _term(self) -> Any:
        value = self._unary()
        while (op := self._accept("*", "/", "%")) is not None:
            value = _binary(op, value, self._unary())
        return value

    def _unary(self) -> Any:
        if (op := self._accept("-", "+")) is not None:
            self._enter()
            operand = self._unary()
            self._depth -= 1
            _require_number(operand, op)
            return -operand if op == "-" else operand
        return self._postfix()

    def _postfix(self) -> Any:
        value = self._primary()
        while True:
            if self._accept(".") is not None:
                token = self._peek()
                if token is None or token.kind not in ("name", "number"):
                    raise ExpressionError("Expected field name after '.'")
                self._index += 1
                value = _index(value, token.text)
            elif self._accept("[") is not None:
                key = self._expr()
                self._expect("]")
                value = _index(value, key)
            else:
                return value

    def _primary(self) -> Any:
        token = self._peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        if token.kind == "op" and token.text == "(":
            self._index += 1
            value = self._expr()
            self._expect(")")
            return value
        self._index += 1
        if token.kind == "number":
            return float(token.text) if any(c in token.text for c in ".eE") else int(token.text)
        if token.kind == "string":
            return _unescape(token.text[1:-1])
        if token.kind == "name":
            if token.text == "true":
                return True
            if token.text == "false":
                return False
            if token.text not in self._variables:
                raise ExpressionError(f"Unknown variable '{token.text}'")
            return self._variables[token.text]
        raise ExpressionError(f"Unexpected token {token.text!r} at position {token.pos}")


def _require_number(value: Any, op: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ExpressionError(f"Operator {op!r} requires numbers, got {type(value).__name__}")


def _binary(op: str, left: Any, right: Any) -> Any:
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        return to_text(left) + to_text(right)
    _require_number(left, op)
    _require_number(right, op)
    try:
        match op:
            case "+":
                return left + right
            case "-":
                return left - right
            case "*":
                return left * right
            case "/":
                if right == 0:
                    raise ExpressionError("Division by zero")
                result = left / right
                return int(result) if result.is_integer() and isinstance(left, int) and isinstance(right, int) else result
            case "%":
                if right == 0:
                    raise ExpressionError("Modulo by zero")
                return left % right
    except OverflowError as e:
        raise ExpressionError(f"Numeric overflow in '{op}': {e}") from e
    raise ExpressionError(f"Unknown operator {op!r}")


def _index(container: Any, key: Any) -> Any:
    if isinstance(container, Mapping):
        name = to_text(key)
        if name not in container:
            raise ExpressionError(f"Key '{name}' not found")
        return container[name]
    if isinstance(container, list):
        try:
            return container[int(key)]
        except (ValueError, TypeError, IndexError, OverflowError):
            raise ExpressionError(f"Invalid list index {key!r}") from None
    raise ExpressionError(f"Cannot index into {type(container).__name__}")


def evaluate(source: str, variables: Mapping[str, Any] | None = None) -> Any:
    """Evaluate ``source`` against ``variables``.

    >>> evaluate("2+2")
    4
    >>> evaluate("a * 10", {"a": 4})
    40
    >>> evaluate("'Hello, ' + name", {"name": "Ada"})
    'Hello, Ada'

    Raises:
        ExpressionError: On syntax errors, unknown names, type errors and division by zero.
    """
    if len(source) > MAX_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_LENGTH} characters")
    return _Parser(source, variables or {}).parse()


__all__ = ["evaluate", "tokenize"]
