"""Arithmetic expression evaluator for the ``calculate`` tool.

Only numbers, ``+ - * /`` (``×`` and ``÷`` are accepted as aliases),
unary signs and parentheses are understood. Anything else is a syntax
error; nothing is ever handed to ``eval``.

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "(" expr ")"
"""

import math
import re
from dataclasses import dataclass

from toolchat.errors import ExpressionError

MAX_LENGTH = 1000
MAX_DEPTH = 100

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)|(?P<op>[-+*/×÷()]))"
)
_ALIASES = {"×": "*", "÷": "/"}


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "op" or "end"
    text: str
    pos: int


def tokenize(expression: str) -> list[Token]:
    tokens = []
    pos = 0
    end = len(expression.rstrip())
    while pos < end:
        match = _TOKEN_RE.match(expression, pos)
        if not match:
            rest = expression[pos:]
            bad_pos = pos + len(rest) - len(rest.lstrip())
            raise ExpressionError(
                f"unexpected character {expression[bad_pos]!r} at position {bad_pos}"
            )
        if match.group("number") is not None:
            tokens.append(Token("number", match.group("number"), match.start("number")))
        else:
            op = match.group("op")
            tokens.append(Token("op", _ALIASES.get(op, op), match.start("op")))
        pos = match.end()
    tokens.append(Token("end", "", end))
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def _expect(self, text: str) -> None:
        token = self.current
        if token.kind != "op" or token.text != text:
            found = token.text or "end of input"
            raise ExpressionError(f"expected {text!r} at position {token.pos}, found {found!r}")
        self._advance()

    def parse(self) -> float:
        value = self.expr()
        if self.current.kind != "end":
            raise ExpressionError(
                f"unexpected {self.current.text!r} at position {self.current.pos}"
            )
        return value

    def expr(self) -> float:
        value = self.term()
        while self.current.kind == "op" and self.current.text in "+-":
            if self._advance().text == "+":
                value += self.term()
            else:
                value -= self.term()
        return value

    def term(self) -> float:
        value = self.unary()
        while self.current.kind == "op" and self.current.text in "*/":
            op = self._advance()
            rhs = self.unary()
            if op.text == "*":
                value *= rhs
            elif rhs == 0:
                raise ExpressionError("Cannot divide by zero")
            else:
                value /= rhs
        return value

    def unary(self) -> float:
        token = self.current
        if token.kind == "op" and token.text in "+-":
            self._advance()
            self._enter(token)
            try:
                value = self.unary()
            finally:
                self.depth -= 1
            return -value if token.text == "-" else value
        return self.primary()

    def primary(self) -> float:
        token = self.current
        if token.kind == "number":
            self._advance()
            return float(token.text)
        if token.kind == "op" and token.text == "(":
            self._advance()
            self._enter(token)
            try:
                value = self.expr()
            finally:
                self.depth -= 1
            self._expect(")")
            return value
        found = token.text or "end of input"
        raise ExpressionError(f"expected a number at position {token.pos}, found {found!r}")

    def _enter(self, token: Token) -> None:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise ExpressionError(f"expression nested too deeply at position {token.pos}")


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression.

    Raises:
        ExpressionError: on syntax errors, division by zero or a
            non-finite result.
    """
    if not expression or not expression.strip():
        raise ExpressionError("empty expression")
    if len(expression) > MAX_LENGTH:
        raise ExpressionError(f"expression longer than {MAX_LENGTH} characters")
    value = _Parser(tokenize(expression)).parse()
    if not math.isfinite(value):
        raise ExpressionError("result is too large")
    return value
