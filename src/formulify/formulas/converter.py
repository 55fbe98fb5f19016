"""Shunting-yard conversion of infix tokens to postfix order.

Identifiers are resolved while converting: a name found in the caller's
variables becomes a NUMBER token directly; a name found in the catalog is
evaluated recursively against the same context and its result becomes a
NUMBER token.  Recursion alone cannot detect cycles, so callers validate
the catalog first; a depth ceiling turns a missed cycle into
``RecursionLimitError``.  ``engine`` fills the resolver's memo in
dependency order before converting, so an acyclic catalog never nests
more than one level deep.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from formulify.formulas.catalog import NamedExpression
from formulify.formulas.errors import (
    ExpressionSyntaxError,
    RecursionLimitError,
    ResolutionError,
    UnboundVariableError,
)
from formulify.formulas.lexer import Token, TokenKind

# All operators are left-associative.
PRECEDENCE: dict[TokenKind, int] = {
    TokenKind.PLUS: 1,
    TokenKind.MINUS: 1,
    TokenKind.ASTERISK: 2,
}

DEFAULT_MAX_DEPTH = 200


class ResolutionContext(BaseModel):
    """Variables and catalog used to resolve identifiers for one call.

    Attributes:
        variables: Caller-supplied values; checked before the catalog.
        catalog: Other named expressions, keyed by name.
        max_depth: Ceiling on nested catalog resolutions.
    """

    model_config = ConfigDict(frozen=True)

    variables: Mapping[str, float] = Field(default_factory=dict)
    catalog: Mapping[str, NamedExpression] = Field(default_factory=dict)
    max_depth: int = DEFAULT_MAX_DEPTH

    @property
    def depth_limit(self) -> int:
        """Catalog size plus one, capped at ``max_depth``."""
        return min(len(self.catalog) + 1, self.max_depth)


def format_number(value: float) -> str:
    """Render a resolved value as NUMBER token text."""
    return repr(float(value))


class Resolver:
    """Per-call identifier resolution with memoized catalog results.

    ``evaluate_text`` is the pipeline used to reduce a catalog entry's
    formula to a number; it receives the resolver so nested lookups share
    the same cache and depth accounting.
    """

    def __init__(
        self,
        context: ResolutionContext,
        evaluate_text: Callable[[str, "Resolver"], float],
    ) -> None:
        self.context = context
        self._evaluate_text = evaluate_text
        self._cache: dict[str, float] = {}
        self._stack: list[str] = []

    def resolve(self, name: str) -> float:
        """Return the numeric value bound to *name*.

        Raises:
            ResolutionError: If *name* is in neither variables nor catalog.
            UnboundVariableError: If *name* is a leaf with no variable value.
            RecursionLimitError: If nesting exceeds the context's limit.
        """
        variables = self.context.variables
        if name in variables:
            return float(variables[name])
        if name in self._cache:
            return self._cache[name]
        expr = self.context.catalog.get(name)
        if expr is None:
            raise ResolutionError(name)
        if expr.is_leaf:
            raise UnboundVariableError(name)

        limit = self.context.depth_limit
        if len(self._stack) >= limit:
            raise RecursionLimitError(name, limit)
        self._stack.append(name)
        try:
            value = self._evaluate_text(expr.formula, self)
        except RecursionError as exc:
            # interpreter stack ran out below the configured ceiling
            raise RecursionLimitError(name, len(self._stack)) from exc
        finally:
            self._stack.pop()
        self._cache[name] = value
        return value


def to_postfix(tokens: Iterable[Token], resolver: Resolver) -> list[Token]:
    """Convert infix *tokens* to postfix, resolving identifiers to numbers.

    Args:
        tokens: Tokens in source order; an EOF token, if present, ends input.
        resolver: Identifier lookup for this call; see ``engine.make_resolver``.

    Returns:
        Postfix token list containing only NUMBER and operator tokens.

    Raises:
        ExpressionSyntaxError: On unmatched parentheses or empty input.
        ResolutionError: On an identifier that cannot be resolved.
    """
    output: list[Token] = []
    stack: list[Token] = []
    seen_any = False

    for tok in tokens:
        if tok.kind is TokenKind.EOF:
            break
        seen_any = True

        if tok.kind is TokenKind.NUMBER:
            output.append(tok)
        elif tok.kind is TokenKind.IDENT:
            value = resolver.resolve(tok.text)
            output.append(
                Token(kind=TokenKind.NUMBER, text=format_number(value), position=tok.position)
            )
        elif tok.kind in PRECEDENCE:
            prec = PRECEDENCE[tok.kind]
            while stack and stack[-1].kind in PRECEDENCE and PRECEDENCE[stack[-1].kind] >= prec:
                output.append(stack.pop())
            stack.append(tok)
        elif tok.kind is TokenKind.LPAREN:
            stack.append(tok)
        elif tok.kind is TokenKind.RPAREN:
            while stack and stack[-1].kind is not TokenKind.LPAREN:
                output.append(stack.pop())
            if not stack:
                raise ExpressionSyntaxError("unmatched ')'", position=tok.position)
            stack.pop()
        else:
            raise ExpressionSyntaxError(f"unexpected token {tok.text!r}", position=tok.position)

    if not seen_any:
        raise ExpressionSyntaxError("empty expression", position=0)

    while stack:
        top = stack.pop()
        if top.kind is TokenKind.LPAREN:
            raise ExpressionSyntaxError("unmatched '('", position=top.position)
        output.append(top)

    return output


def postfix_text(postfix: Iterable[Token]) -> str:
    """Render postfix tokens space-separated (for diagnostics and tests)."""
    return " ".join(tok.text for tok in postfix)
