"""Tests for shunting-yard conversion and postfix evaluation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from formulify.formulas import (
    ExpressionSyntaxError,
    InsufficientOperandsError,
    MalformedExpressionError,
    NamedExpression,
    ResolutionContext,
    ResolutionError,
    Token,
    TokenKind,
    UnboundVariableError,
    evaluate_postfix,
    make_resolver,
    to_postfix,
    tokenize,
)
from formulify.formulas.converter import postfix_text


def _postfix(text: str, variables: dict | None = None, catalog: dict | None = None) -> str:
    ctx = ResolutionContext(variables=variables or {}, catalog=catalog or {})
    return postfix_text(to_postfix(tokenize(text), make_resolver(ctx)))


def _num(text: str) -> Token:
    return Token(kind=TokenKind.NUMBER, text=text)


def _op(kind: TokenKind, text: str) -> Token:
    return Token(kind=kind, text=text)


PLUS = _op(TokenKind.PLUS, "+")
MINUS = _op(TokenKind.MINUS, "-")
TIMES = _op(TokenKind.ASTERISK, "*")


# ────────────────────────────────────────────────────────────────
# Shunting-yard
# ────────────────────────────────────────────────────────────────


class TestToPostfix:
    def test_precedence(self) -> None:
        assert _postfix("1 + 2 * 3") == "1 2 3 * +"

    def test_left_associative(self) -> None:
        assert _postfix("10 - 3 - 2") == "10 3 - 2 -"

    def test_equal_precedence_mixed(self) -> None:
        assert _postfix("1 - 2 + 3") == "1 2 - 3 +"

    def test_parentheses_override(self) -> None:
        assert _postfix("(1 + 2) * 3") == "1 2 + 3 *"

    def test_nested_parentheses(self) -> None:
        assert _postfix("2 * ((1 + 2) - 3)") == "2 1 2 + 3 - *"

    def test_variable_resolved_to_number(self) -> None:
        assert _postfix("x * 2", variables={"x": 4}) == "4.0 2 *"

    def test_catalog_entry_resolved_recursively(self) -> None:
        catalog = {
            "c": NamedExpression("c", "a + b"),
        }
        assert _postfix("c * 2", variables={"a": 1, "b": 2}, catalog=catalog) == "3.0 2 *"

    def test_variables_take_priority_over_catalog(self) -> None:
        catalog = {"a": NamedExpression("a", "1")}
        assert _postfix("a", variables={"a": 5}, catalog=catalog) == "5.0"

    def test_eof_ends_input(self) -> None:
        tokens = tokenize("1 + 2") + [Token(kind=TokenKind.EOF, text="")]
        resolver = make_resolver(ResolutionContext())
        assert postfix_text(to_postfix(tokens, resolver)) == "1 2 +"

    def test_output_has_no_parentheses(self) -> None:
        postfix = to_postfix(tokenize("((1))"), make_resolver(ResolutionContext()))
        assert all(t.kind in (TokenKind.NUMBER, TokenKind.PLUS, TokenKind.MINUS, TokenKind.ASTERISK) for t in postfix)


class TestToPostfixErrors:
    def test_unknown_name(self) -> None:
        with pytest.raises(ResolutionError) as exc_info:
            _postfix("x + 1")
        assert exc_info.value.ref_name == "x"

    def test_unmatched_right_paren(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match=r"unmatched '\)'") as exc_info:
            _postfix("1 + 2)")
        assert exc_info.value.position == 5

    def test_unmatched_left_paren(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match=r"unmatched '\('"):
            _postfix("(1 + 2")

    def test_empty_expression(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="empty expression"):
            _postfix("   ")


class TestResolutionContext:
    def test_context_is_frozen(self) -> None:
        ctx = ResolutionContext(variables={"a": 1})
        with pytest.raises(ValidationError):
            ctx.max_depth = 5

    def test_depth_limit_bounded_by_catalog(self) -> None:
        catalog = {"a": NamedExpression("a", "1"), "b": NamedExpression("b", "a")}
        ctx = ResolutionContext(catalog=catalog)
        assert ctx.depth_limit == 3

    def test_depth_limit_bounded_by_ceiling(self) -> None:
        catalog = {f"n{i}": NamedExpression(f"n{i}", "1") for i in range(10)}
        ctx = ResolutionContext(catalog=catalog, max_depth=4)
        assert ctx.depth_limit == 4


class TestResolver:
    def test_unbound_leaf_names_variable(self) -> None:
        resolver = make_resolver(ResolutionContext(catalog={"a": NamedExpression("a", "a")}))
        with pytest.raises(UnboundVariableError, match=r'No value supplied for variable "a"') as exc_info:
            resolver.resolve("a")
        assert exc_info.value.ref_name == "a"

    def test_memoised_within_call(self) -> None:
        catalog = {"a": NamedExpression("a", "2"), "b": NamedExpression("b", "a * a")}
        resolver = make_resolver(ResolutionContext(catalog=catalog))
        assert resolver.resolve("b") == 4.0
        assert resolver._cache == {"a": 2.0, "b": 4.0}


# ────────────────────────────────────────────────────────────────
# Postfix evaluation
# ────────────────────────────────────────────────────────────────


class TestEvaluatePostfix:
    def test_single_number(self) -> None:
        assert evaluate_postfix([_num("42")]) == 42.0

    def test_subtraction_operand_order(self) -> None:
        """``5 3 -`` reduces to 5 - 3, not 3 - 5."""
        assert evaluate_postfix([_num("5"), _num("3"), MINUS]) == 2.0

    def test_mixed(self) -> None:
        # 1 2 3 * + = 7
        assert evaluate_postfix([_num("1"), _num("2"), _num("3"), TIMES, PLUS]) == 7.0

    def test_decimal(self) -> None:
        assert evaluate_postfix([_num("0.1"), _num("0.2"), PLUS]) == 0.1 + 0.2

    def test_operator_alone(self) -> None:
        with pytest.raises(InsufficientOperandsError):
            evaluate_postfix([PLUS])

    def test_operator_with_one_operand(self) -> None:
        with pytest.raises(InsufficientOperandsError):
            evaluate_postfix([_num("1"), TIMES])

    def test_dangling_operands(self) -> None:
        with pytest.raises(MalformedExpressionError) as exc_info:
            evaluate_postfix([_num("1"), _num("2")])
        assert exc_info.value.depth == 2

    def test_empty(self) -> None:
        with pytest.raises(MalformedExpressionError):
            evaluate_postfix([])
