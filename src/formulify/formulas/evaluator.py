"""Stack-based evaluator for postfix token sequences."""

from __future__ import annotations

from typing import Iterable

from formulify.formulas.errors import (
    FormulaError,
    InsufficientOperandsError,
    MalformedExpressionError,
)
from formulify.formulas.lexer import Token, TokenKind


def evaluate_postfix(postfix: Iterable[Token]) -> float:
    """Reduce a postfix token sequence to a single number.

    Args:
        postfix: NUMBER and operator tokens, as produced by ``to_postfix()``.

    Returns:
        The computed value.

    Raises:
        InsufficientOperandsError: An operator found fewer than two values.
        MalformedExpressionError: The stack did not end with exactly one value.
    """
    stack: list[float] = []

    for tok in postfix:
        if tok.kind is TokenKind.NUMBER:
            stack.append(float(tok.text))
            continue

        if len(stack) < 2:
            raise InsufficientOperandsError(tok.text, tok.position)
        b = stack.pop()
        a = stack.pop()

        if tok.kind is TokenKind.PLUS:
            stack.append(a + b)
        elif tok.kind is TokenKind.MINUS:
            stack.append(a - b)
        elif tok.kind is TokenKind.ASTERISK:
            stack.append(a * b)
        else:
            raise FormulaError(f"Unexpected token in postfix: {tok.kind.value}")

    if len(stack) != 1:
        raise MalformedExpressionError(len(stack))
    return stack[0]
