"""Lark-driven lexer for formula text.

Formulas use a deliberately small alphabet:

- Identifiers: ``[A-Za-z_][A-Za-z0-9_]*`` (longest match)
- Numbers: ``123`` or ``1.5`` (no sign, no exponent, no leading ``.``)
- Operators and punctuation: ``+ - * ( )``
- ASCII spaces are skipped; any other character is an error

Only Lark's lexer is used.  Precedence is handled by the shunting-yard
converter, so the grammar below is just a flat token list.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterator

from lark import Lark
from lark.exceptions import UnexpectedCharacters
from pydantic import BaseModel, ConfigDict

from formulify.formulas.errors import ExpressionSyntaxError, LexError

GRAMMAR = r"""
start: _token*

_token: IDENT | NUMBER | PLUS | MINUS | ASTERISK | LPAREN | RPAREN

IDENT: /[A-Za-z_][A-Za-z0-9_]*/
NUMBER: /[0-9]+(\.[0-9]+)?/
PLUS: "+"
MINUS: "-"
ASTERISK: "*"
LPAREN: "("
RPAREN: ")"

%ignore " "
"""

_lark = Lark(GRAMMAR, parser="lalr", lexer="basic", start="start")

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TokenKind(str, Enum):
    EOF = "EOF"
    IDENT = "IDENT"
    NUMBER = "NUMBER"
    PLUS = "PLUS"
    MINUS = "MINUS"
    ASTERISK = "ASTERISK"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"


OPERATOR_KINDS = frozenset({TokenKind.PLUS, TokenKind.MINUS, TokenKind.ASTERISK})


class Token(BaseModel):
    """One lexeme of formula text.

    ``text`` is the exact source substring (empty for end-of-input) and
    ``position`` its offset in the source.
    """

    model_config = ConfigDict(frozen=True)

    kind: TokenKind
    text: str
    position: int = 0

    @property
    def is_operator(self) -> bool:
        return self.kind in OPERATOR_KINDS


def is_valid_name(name: str) -> bool:
    """Return True if *name* is usable as a formula identifier."""
    return isinstance(name, str) and NAME_RE.match(name) is not None


def lex(text: str) -> Iterator[Token]:
    """Lazily yield the tokens of *text*, ending with a single EOF token.

    Raises:
        LexError: On a character outside the formula alphabet.
        ExpressionSyntaxError: On a number with a dangling ``.``.
    """
    try:
        for tok in _lark.lex(text):
            yield Token(kind=TokenKind(tok.type), text=str(tok), position=tok.start_pos)
    except UnexpectedCharacters as exc:
        pos = exc.pos_in_stream
        if exc.char == "." and pos > 0 and text[pos - 1].isdigit():
            start = pos
            while start > 0 and text[start - 1].isdigit():
                start -= 1
            raise ExpressionSyntaxError(
                f"malformed number {text[start:pos + 1]!r}", position=start
            ) from exc
        raise LexError(exc.char, pos) from exc
    yield Token(kind=TokenKind.EOF, text="", position=len(text))


def tokenize(text: str) -> list[Token]:
    """Run the lexer to completion, dropping the trailing EOF token."""
    return [tok for tok in lex(text) if tok.kind is not TokenKind.EOF]


def extract_names(text: str) -> set[str]:
    """Return every identifier referenced by formula *text*."""
    return {tok.text for tok in tokenize(text) if tok.kind is TokenKind.IDENT}
