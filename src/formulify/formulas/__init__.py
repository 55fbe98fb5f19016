"""Named arithmetic formulas: lexing, shunting-yard conversion, evaluation.

Public API::

    from formulify.formulas import NamedExpression, evaluate, validate
"""

from formulify.formulas.catalog import NamedExpression, as_catalog
from formulify.formulas.converter import ResolutionContext, Resolver, to_postfix
from formulify.formulas.engine import (
    LEAF_PLACEHOLDER_VALUE,
    ValidationResult,
    check_catalog,
    dependencies,
    evaluate,
    evaluate_expression,
    make_resolver,
    probe_formula,
    required_variables,
    validate,
)
from formulify.formulas.errors import (
    ENGINE_ERRORS,
    CyclicDependencyError,
    EvaluationError,
    ExpressionSyntaxError,
    FormulaError,
    InsufficientOperandsError,
    InvalidNameError,
    LexError,
    MalformedExpressionError,
    NotFoundError,
    RecursionLimitError,
    ResolutionError,
    UnboundVariableError,
    UnknownNameError,
)
from formulify.formulas.evaluator import evaluate_postfix
from formulify.formulas.graph import (
    build_dependency_graph,
    has_cycle,
    independent_names,
    topological_order,
)
from formulify.formulas.lexer import (
    Token,
    TokenKind,
    extract_names,
    is_valid_name,
    lex,
    tokenize,
)

__all__ = [
    "ENGINE_ERRORS",
    "LEAF_PLACEHOLDER_VALUE",
    "CyclicDependencyError",
    "EvaluationError",
    "ExpressionSyntaxError",
    "FormulaError",
    "InsufficientOperandsError",
    "InvalidNameError",
    "LexError",
    "MalformedExpressionError",
    "NamedExpression",
    "NotFoundError",
    "RecursionLimitError",
    "ResolutionContext",
    "ResolutionError",
    "Resolver",
    "Token",
    "TokenKind",
    "UnboundVariableError",
    "UnknownNameError",
    "ValidationResult",
    "as_catalog",
    "build_dependency_graph",
    "check_catalog",
    "dependencies",
    "evaluate",
    "evaluate_expression",
    "evaluate_postfix",
    "make_resolver",
    "extract_names",
    "has_cycle",
    "independent_names",
    "is_valid_name",
    "lex",
    "probe_formula",
    "required_variables",
    "to_postfix",
    "tokenize",
    "topological_order",
    "validate",
]
