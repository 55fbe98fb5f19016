"""Batch evaluation: one formula evaluated once per scenario row.

Scenarios are variable sets loaded from a CSV file into a polars
DataFrame, one column per variable.  A failing row records its error
and never aborts the batch.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from uuid import uuid4

import polars as pl

from formulify.formulas import engine
from formulify.formulas.catalog import CatalogLike, as_catalog
from formulify.formulas.converter import DEFAULT_MAX_DEPTH
from formulify.formulas.errors import FormulaError
from formulify.logging.events import EventLevel, EventType, emit, error_code_for, make_eval_event

RESULT_COLUMN = "result"
ERROR_COLUMN = "error"


def load_scenarios(path: Path) -> pl.DataFrame:
    """Load variable sets from a CSV file (header row = variable names)."""
    return pl.read_csv(Path(path))


def _row_variables(row: dict[str, Any]) -> dict[str, float]:
    """Convert one scenario row to variables, skipping nulls.

    Raises:
        ValueError: If a non-null value is not numeric.
    """
    variables: dict[str, float] = {}
    for key, value in row.items():
        if key in (RESULT_COLUMN, ERROR_COLUMN) or value is None:
            continue
        try:
            variables[key] = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"non-numeric value for {key!r}: {value!r}") from exc
    return variables


def evaluate_batch(
    name: str,
    scenarios: pl.DataFrame,
    catalog: CatalogLike,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> pl.DataFrame:
    """Evaluate *name* once per row of *scenarios*.

    Args:
        name: Catalog entry to evaluate.
        scenarios: One column per variable; nulls are left unbound.
        catalog: Mapping of name -> NamedExpression (or formula text).
        max_depth: Hard ceiling on nested resolution.

    Returns:
        *scenarios* with a Float64 ``result`` column (null on failure) and
        a Utf8 ``error`` column (null on success).
    """
    cat = as_catalog(catalog)
    results: list[float | None] = []
    errors: list[str | None] = []

    for row in scenarios.iter_rows(named=True):
        try:
            variables = _row_variables(row)
            results.append(engine.evaluate(name, variables, cat, max_depth=max_depth))
            errors.append(None)
        except (FormulaError, ValueError) as exc:
            results.append(None)
            errors.append(str(exc))

    return scenarios.with_columns(
        pl.Series(RESULT_COLUMN, results, dtype=pl.Float64),
        pl.Series(ERROR_COLUMN, errors, dtype=pl.Utf8),
    )


def run_batch(workspace: Any, name: str, scenarios: pl.DataFrame) -> dict[str, Any]:
    """Run a batch through a ``Workspace``, recording batch events.

    The catalog is validated once up front when the workspace is
    configured to validate before evaluating.

    Returns:
        Summary dict with batch_id, counts and the result DataFrame.

    Raises:
        FormulaError: If up-front validation fails.  A ``batch_failed``
            event closes the batch log before the error propagates.
    """
    batch_id = uuid4().hex
    total = scenarios.height

    emit(make_eval_event(
        EventType.batch_started,
        EventLevel.info,
        f"Batch started: {total} scenario(s) for {name}",
        eval_id=batch_id,
        formula=name,
        catalog_hash=workspace.catalog_hash,
        extra={"total": total},
    ), eval_id=batch_id)

    try:
        if workspace.config.get("validate_before_evaluate", True):
            engine.check_catalog(workspace.catalog)
        frame = evaluate_batch(name, scenarios, workspace.catalog, max_depth=workspace.max_depth)
    except FormulaError as exc:
        emit(make_eval_event(
            EventType.batch_failed,
            EventLevel.error,
            str(exc),
            eval_id=batch_id,
            formula=name,
            catalog_hash=workspace.catalog_hash,
            error_code=error_code_for(exc),
            extra={"total": total},
        ), eval_id=batch_id)
        raise

    failed = frame.filter(pl.col(ERROR_COLUMN).is_not_null()).height
    ok = total - failed

    emit(make_eval_event(
        EventType.batch_completed,
        EventLevel.info,
        f"Batch completed: {ok} ok, {failed} failed",
        eval_id=batch_id,
        formula=name,
        catalog_hash=workspace.catalog_hash,
        extra={"total": total, "ok": ok, "failed": failed},
    ), eval_id=batch_id)

    return {
        "batch_id": batch_id,
        "total": total,
        "ok": ok,
        "failed": failed,
        "results": frame,
    }
