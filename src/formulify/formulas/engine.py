"""Evaluation facade: structural validation and numeric evaluation.

The two phases are separate calls.  ``validate``/``check_catalog`` is
purely structural (unknown names, cycles); ``evaluate`` does not validate
first, and relies on a depth ceiling if a cyclic catalog slips through::

    result = validate(catalog)
    if result.ok:
        value = evaluate("d", {"a": 1, "b": 2}, catalog)
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Mapping

from pydantic import BaseModel, Field

from formulify.formulas.catalog import CatalogLike, NamedExpression, as_catalog
from formulify.formulas.converter import (
    DEFAULT_MAX_DEPTH,
    ResolutionContext,
    Resolver,
    to_postfix,
)
from formulify.formulas.errors import (
    CyclicDependencyError,
    FormulaError,
    NotFoundError,
    UnknownNameError,
)
from formulify.formulas.evaluator import evaluate_postfix
from formulify.formulas.graph import (
    build_dependency_graph,
    cyclic_names,
    has_cycle,
    independent_names,
    topological_order,
)
from formulify.formulas.lexer import extract_names, lex

# Value given to leaf formulas by ``probe_formula`` only.
LEAF_PLACEHOLDER_VALUE = 1.0


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _evaluate_text(text: str, resolver: Resolver) -> float:
    """Lex, convert and reduce *text* using *resolver* for identifiers."""
    return evaluate_postfix(to_postfix(lex(text), resolver))


def make_resolver(context: ResolutionContext) -> Resolver:
    """Build a fresh per-call resolver over *context*."""
    return Resolver(context, _evaluate_text)


def _evaluation_order(roots: Iterable[str], context: ResolutionContext) -> list[str]:
    """Catalog entries reachable from *roots*, each after its dependencies.

    The walk stops at names bound in ``variables``.  Leaves are left out,
    so an unbound one is reported where the formula reaches it.  Entries
    on a cycle are missing from the order, so resolving them still nests
    and meets the depth ceiling.
    """
    catalog = context.catalog
    reachable: dict[str, NamedExpression] = {}
    pending = deque(roots)
    while pending:
        current = pending.popleft()
        if current in reachable or current in context.variables or current not in catalog:
            continue
        expr = catalog[current]
        reachable[current] = expr
        if not expr.is_leaf:
            pending.extend(sorted(extract_names(expr.formula)))
    order = topological_order(build_dependency_graph(reachable))
    return [n for n in order if n in reachable and not reachable[n].is_leaf]


def _run(text: str, context: ResolutionContext) -> float:
    resolver = make_resolver(context)
    for dep in _evaluation_order(sorted(extract_names(text)), context):
        resolver.resolve(dep)
    return _evaluate_text(text, resolver)


def _context(
    variables: Mapping[str, float] | None,
    catalog: Mapping[str, NamedExpression],
    max_depth: int,
) -> ResolutionContext:
    return ResolutionContext(
        variables=dict(variables or {}),
        catalog=catalog,
        max_depth=max_depth,
    )


def evaluate(
    name: str,
    variables: Mapping[str, float] | None,
    catalog: CatalogLike,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> float:
    """Evaluate the catalog entry *name*.

    Args:
        name: Name of the formula to evaluate.
        variables: Caller overrides; unknown keys are ignored.
        catalog: Mapping of name -> NamedExpression (or formula text).
        max_depth: Hard ceiling on nested resolution.

    Returns:
        The formula's value as a float.

    Raises:
        NotFoundError: If *name* is not in the catalog.
        UnboundVariableError: If a leaf it needs has no entry in *variables*.
        FormulaError: Any lexing, syntax, resolution or evaluation failure.
    """
    cat = as_catalog(catalog)
    expr = cat.get(name)
    if expr is None:
        raise NotFoundError(name)
    return _run(expr.formula, _context(variables, cat, max_depth))


def evaluate_expression(
    text: str,
    variables: Mapping[str, float] | None = None,
    catalog: CatalogLike | None = None,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> float:
    """Evaluate ad-hoc formula *text* against *variables* and *catalog*.

    Example::

        >>> evaluate_expression("10 - 3 - 2")
        5.0
    """
    return _run(text, _context(variables, as_catalog(catalog), max_depth))


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


class ValidationResult(BaseModel):
    """Outcome of ``validate()``.

    On success ``order`` is a valid evaluation order and ``independent``
    lists names with no prerequisites.  On failure ``error`` is the error
    class name, ``message`` its text and ``names`` the offending names.
    """

    ok: bool
    error: str | None = None
    message: str = ""
    names: list[str] = Field(default_factory=list)
    order: list[str] = Field(default_factory=list)
    independent: list[str] = Field(default_factory=list)


def check_catalog(catalog: CatalogLike) -> list[str]:
    """Validate *catalog* structurally and return an evaluation order.

    Raises:
        LexError: If a formula contains an invalid character.
        UnknownNameError: If a formula references a name not in the catalog.
        CyclicDependencyError: If the dependency graph has a cycle.
    """
    cat = as_catalog(catalog)
    graph = build_dependency_graph(cat)
    for node in graph:
        if node not in cat:
            raise UnknownNameError(node)
    if has_cycle(graph):
        raise CyclicDependencyError(cyclic_names(graph))
    return topological_order(graph)


def validate(catalog: CatalogLike) -> ValidationResult:
    """Validate *catalog*, returning the first error found as a value."""
    try:
        cat = as_catalog(catalog)
        order = check_catalog(cat)
    except FormulaError as exc:
        return ValidationResult(
            ok=False,
            error=type(exc).__name__,
            message=str(exc),
            names=_offending_names(exc),
        )
    graph = build_dependency_graph(cat)
    return ValidationResult(ok=True, order=order, independent=independent_names(graph))


def _offending_names(exc: FormulaError) -> list[str]:
    if isinstance(exc, CyclicDependencyError):
        return list(exc.names)
    for attr in ("ref_name", "name"):
        value = getattr(exc, attr, None)
        if isinstance(value, str):
            return [value]
    return []


# ---------------------------------------------------------------------------
# Dependency queries
# ---------------------------------------------------------------------------


def dependencies(name: str, catalog: CatalogLike) -> list[str]:
    """Names *name* depends on, transitively, in discovery order.

    Raises:
        NotFoundError: If *name* is not in the catalog.
        UnknownNameError: If a referenced name is not in the catalog.
    """
    cat = as_catalog(catalog)
    if name not in cat:
        raise NotFoundError(name)

    found: list[str] = []
    seen = {name}
    pending = [name]
    while pending:
        current = cat[pending.pop(0)]
        if current.is_leaf:
            continue
        for ref in sorted(extract_names(current.formula)):
            if ref in seen:
                continue
            if ref not in cat:
                raise UnknownNameError(ref)
            seen.add(ref)
            found.append(ref)
            pending.append(ref)
    return found


def required_variables(name: str, catalog: CatalogLike) -> list[str]:
    """Leaf names reachable from *name*: the values a caller must supply."""
    cat = as_catalog(catalog)
    names = dependencies(name, cat)
    if cat[name].is_leaf:
        names = [name] + names
    return [n for n in names if cat[n].is_leaf]


def probe_formula(name: str, catalog: CatalogLike) -> str | None:
    """Check that *name* evaluates at all, without real variable values.

    Every leaf formula reachable from *name* is bound to
    ``LEAF_PLACEHOLDER_VALUE`` for the duration of the probe.  This
    placeholder binding exists only here; ``evaluate`` never defaults a
    leaf.

    Returns:
        ``None`` if the probe evaluates, otherwise the error message.
    """
    try:
        cat = as_catalog(catalog)
        placeholders = {
            leaf: LEAF_PLACEHOLDER_VALUE for leaf in required_variables(name, cat)
        }
        evaluate(name, placeholders, cat)
    except FormulaError as exc:
        return str(exc)
    return None
