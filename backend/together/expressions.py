"""Free-form expression evaluation for ``log(...)`` arguments.

When a ``log`` argument is neither ``time.now`` nor a plain reference it is
evaluated here. The accepted language is deliberately tiny:

- numbers (``3``, ``2.5``, ``1e3``), quoted text (``"a"`` or ``'a'``)
- ``_true_``/``_false_``/``_maybe_`` (and ``true``/``false``/``null``)
- ``[name]`` and ``/name/<i>`` references into the run namespace
- parentheses, unary ``+``/``-`` and binary ``+ - * / %``

``+`` concatenates when either operand is text; every other operator works
on numbers using the same coercions as loose equality. Host-language
``eval`` is never involved: the expression is tokenized and evaluated by a
small recursive-descent parser.
"""

import math
import re
from typing import Any, List, Optional, Tuple

from .errors import ExpressionError
from .values import (
    NAN,
    Namespace,
    integral,
    number_from_text,
    read_list_item,
    read_variable,
    to_number,
    to_text,
)

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"[^"]*"|'[^']*')
  | (?P<listref>/[^/]+/<\d+>)
  | (?P<var>\[[^\[\]]+\])
  | (?P<word>_true_|_false_|_maybe_|true|false|null|Infinity|NaN)
  | (?P<op>[-+*/%()])
    """,
    re.VERBOSE,
)

_WORDS = {
    "_true_": True,
    "true": True,
    "_false_": False,
    "false": False,
    "_maybe_": None,
    "null": None,
    "Infinity": float("inf"),
    "NaN": float("nan"),
}

Token = Tuple[str, str, int]


def tokenize(expr: str) -> List[Token]:
    """Split ``expr`` into (kind, text, column) tokens, dropping whitespace."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(expr):
        m = _TOKEN_RE.match(expr, pos)
        if not m:
            raise ExpressionError(f"Unexpected character {expr[pos]!r}", column=pos + 1, text=expr)
        kind = m.lastgroup or ""
        if kind != "ws":
            tokens.append((kind, m.group(), pos + 1))
        pos = m.end()
    return tokens


class _ExpressionParser:
    def __init__(self, expr: str, namespace: Namespace):
        self.expr = expr
        self.namespace = namespace
        self.tokens = tokenize(expr)
        self.pos = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> ExpressionError:
        column = tok[2] if tok else len(self.expr) + 1
        return ExpressionError(message, column=column, text=self.expr)

    def at_op(self, *ops: str) -> bool:
        tok = self.peek()
        return tok is not None and tok[0] == "op" and tok[1] in ops

    def parse(self) -> Any:
        if not self.tokens:
            raise self.error("Empty expression")
        value = self.expression()
        tok = self.peek()
        if tok is not None:
            raise self.error(f"Unexpected {tok[1]!r}", tok)
        return value

    def expression(self) -> Any:
        left = self.term()
        while self.at_op("+", "-"):
            op = self.advance()[1]
            right = self.term()
            left = add(left, right) if op == "+" else subtract(left, right)
        return left

    def term(self) -> Any:
        left = self.unary()
        while self.at_op("*", "/", "%"):
            op = self.advance()[1]
            right = self.unary()
            if op == "*":
                left = multiply(left, right)
            elif op == "/":
                left = divide(left, right)
            else:
                left = remainder(left, right)
        return left

    def unary(self) -> Any:
        if self.at_op("+", "-"):
            op = self.advance()[1]
            operand = to_number(self.unary())
            return -operand if op == "-" else operand
        return self.atom()

    def atom(self) -> Any:
        tok = self.peek()
        if tok is None:
            raise self.error("Unexpected end of expression")
        kind, text, _ = self.advance()
        if kind == "number":
            return number_from_text(text)
        if kind == "string":
            return text[1:-1]
        if kind == "word":
            return _WORDS[text]
        if kind == "var":
            return read_variable(text[1:-1], self.namespace)
        if kind == "listref":
            name, _, index = text[1:].partition("/<")
            return read_list_item(name, index[:-1], self.namespace)
        if text == "(":
            value = self.expression()
            if not self.at_op(")"):
                raise self.error("Expected ')'", self.peek())
            self.advance()
            return value
        raise self.error(f"Unexpected {text!r}", tok)


def add(left: Any, right: Any) -> Any:
    if isinstance(left, (str, list)) or isinstance(right, (str, list)):
        return to_text(left) + to_text(right)
    return integral(to_number(left) + to_number(right))


def subtract(left: Any, right: Any) -> Any:
    return integral(to_number(left) - to_number(right))


def multiply(left: Any, right: Any) -> Any:
    return integral(to_number(left) * to_number(right))


def divide(left: Any, right: Any) -> Any:
    dividend = to_number(left)
    divisor = to_number(right)
    if divisor == 0:
        if dividend == 0 or math.isnan(dividend):
            return NAN
        # a -0.0 divisor flips the sign of the infinity
        return math.copysign(math.inf, dividend) * math.copysign(1, divisor)
    return integral(dividend / divisor)


def remainder(left: Any, right: Any) -> Any:
    # truncating remainder: the sign follows the dividend
    dividend = to_number(left)
    divisor = to_number(right)
    if divisor == 0 or math.isinf(dividend):
        return NAN
    return integral(math.fmod(dividend, divisor))


def evaluate_expression(expr: str, namespace: Namespace) -> Any:
    """Evaluate a free-form expression against ``namespace``.

    Raises:
        ExpressionError: the text is not a valid expression.
        UndefinedVariable, UndefinedList, IndexOutOfRange: a reference inside
            the expression cannot be resolved.
    """
    text = expr.strip()
    try:
        return _ExpressionParser(text, namespace).parse()
    except (ValueError, OverflowError) as e:
        # arithmetic outside the float range
        raise ExpressionError(str(e), text=text) from e
