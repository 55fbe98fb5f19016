"""Error types for formula lexing, conversion, validation and evaluation."""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formula-related errors."""


class InvalidNameError(FormulaError):
    """A formula name does not match identifier syntax."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Invalid formula name: {name!r} "
            "(must match [A-Za-z_][A-Za-z0-9_]*)"
        )


class LexError(FormulaError):
    """Invalid character in formula text.

    Attributes:
        char: The offending character.
        position: Offset of the character in the formula text.
    """

    def __init__(self, char: str, position: int) -> None:
        self.char = char
        self.position = position
        super().__init__(f"Invalid character: {char!r} (at position {position})")


class ExpressionSyntaxError(FormulaError):
    """Unmatched parenthesis, empty expression, or malformed number.

    Attributes:
        position: Best-effort character position of the problem.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Syntax error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class ResolutionError(FormulaError):
    """Identifier not found in the variables or the catalog.

    Attributes:
        ref_name: The unresolved name.
    """

    def __init__(self, ref_name: str, message: str | None = None) -> None:
        self.ref_name = ref_name
        super().__init__(message or f'Unknown name "{ref_name}" found in formula.')


class UnknownNameError(ResolutionError):
    """A name is referenced by the catalog but never defined in it."""


class UnboundVariableError(ResolutionError):
    """A leaf formula was reached with no value supplied for it."""

    def __init__(self, ref_name: str) -> None:
        super().__init__(ref_name, f'No value supplied for variable "{ref_name}".')


class NotFoundError(FormulaError):
    """The formula requested for evaluation is not in the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Formula {name!r} not found")


class CyclicDependencyError(FormulaError):
    """The catalog's dependency graph contains a cycle.

    Attributes:
        names: Names that never reached zero in-degree, sorted.
    """

    def __init__(self, names: list[str] | None = None) -> None:
        self.names = names or []
        msg = "Cyclic dependency detected"
        if self.names:
            msg += f" among: {', '.join(self.names)}"
        super().__init__(msg)


class RecursionLimitError(FormulaError):
    """Recursive resolution went deeper than the configured ceiling."""

    def __init__(self, name: str, limit: int) -> None:
        self.name = name
        self.limit = limit
        super().__init__(
            f"Resolution of {name!r} exceeded the depth limit of {limit}; "
            "the catalog probably contains a cycle"
        )


class EvaluationError(FormulaError):
    """Base class for postfix reduction failures."""


class InsufficientOperandsError(EvaluationError):
    """An operator found fewer than two values on the stack."""

    def __init__(self, operator: str, position: int | None = None) -> None:
        self.operator = operator
        self.position = position
        msg = f"Invalid expression: operator {operator!r} is missing an operand"
        if position is not None:
            msg += f" (at position {position})"
        super().__init__(msg)


class MalformedExpressionError(EvaluationError):
    """The stack did not reduce to exactly one value."""

    def __init__(self, depth: int) -> None:
        self.depth = depth
        super().__init__(
            f"Invalid expression: expected a single result, {depth} value(s) left"
        )


# Catch-all for callers that surface any engine failure verbatim.
ENGINE_ERRORS = (FormulaError,)
