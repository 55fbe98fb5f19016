"""Project workspace: loads a catalog and runs validated evaluations.

This is the glue a service layer puts around the pure engine: it owns
the catalog snapshot for the project, applies the project config, and
records structured events for every validation and evaluation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping
from uuid import uuid4

from formulify.formulas import engine
from formulify.formulas.catalog import NamedExpression
from formulify.formulas.engine import ValidationResult
from formulify.formulas.errors import FormulaError
from formulify.formulas.graph import build_dependency_graph, independent_names
from formulify.logging.events import (
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_info,
    error_code_for,
    make_eval_event,
    set_project_dir,
)
from formulify.project import load_project_catalog, load_project_config
from formulify.utils.hash import catalog_hash


class Workspace:
    """A formulify project directory with its catalog loaded.

    Usage::

        ws = Workspace(Path("my_project"))
        ws.evaluate("d", {"a": 1, "b": 2})

    Parameters
    ----------
    project_dir : Path
        Directory holding ``formulify.yaml`` and the catalog file.
    catalog : dict[str, NamedExpression] | None
        Use this catalog instead of reading the catalog file.
    """

    def __init__(
        self,
        project_dir: Path,
        catalog: dict[str, NamedExpression] | None = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.config = load_project_config(self.project_dir)
        self.catalog = catalog if catalog is not None else load_project_catalog(self.project_dir, self.config)
        self.catalog_hash = catalog_hash(self.catalog)
        set_project_dir(self.project_dir)

    @property
    def max_depth(self) -> int:
        return int(self.config.get("max_resolution_depth", 200))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        """Structurally validate the catalog and record the outcome."""
        result = engine.validate(self.catalog)
        if result.ok:
            emit_info(
                EventType.validation_passed,
                f"Catalog valid: {len(self.catalog)} formula(s)",
                {"catalog_hash": self.catalog_hash, "order": result.order},
            )
        else:
            emit_error(
                EventType.validation_failed,
                result.message,
                {"catalog_hash": self.catalog_hash, "names": result.names},
                error_code=error_code_for(result.error or ""),
            )
        return result

    def check(self, name: str) -> str | None:
        """Run the leaf-placeholder probe for *name*; see ``engine.probe_formula``."""
        return engine.probe_formula(name, self.catalog)

    def required_variables(self, name: str) -> list[str]:
        """Leaf names a caller must supply to evaluate *name*."""
        return engine.required_variables(name, self.catalog)

    def independent_variables(self) -> list[str]:
        """Names with no prerequisites in the catalog's dependency graph."""
        return independent_names(build_dependency_graph(self.catalog))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, name: str, variables: Mapping[str, float] | None = None) -> float:
        """Evaluate catalog entry *name*, validating the catalog first if configured.

        Raises:
            FormulaError: Validation or evaluation failure.
        """
        return self._run(
            name,
            variables,
            lambda: engine.evaluate(name, variables, self.catalog, max_depth=self.max_depth),
        )

    def evaluate_expression(self, text: str, variables: Mapping[str, float] | None = None) -> float:
        """Evaluate ad-hoc formula *text* against the workspace catalog."""
        return self._run(
            text,
            variables,
            lambda: engine.evaluate_expression(text, variables, self.catalog, max_depth=self.max_depth),
        )

    def _run(self, label: str, variables: Mapping[str, float] | None, fn: Callable[[], float]) -> float:
        eval_id = uuid4().hex
        extra = {"variables": dict(variables or {})}
        emit(make_eval_event(
            EventType.evaluation_started,
            EventLevel.info,
            f"Evaluating {label}",
            eval_id=eval_id,
            formula=label,
            catalog_hash=self.catalog_hash,
            extra=extra,
        ), eval_id=eval_id)

        try:
            if self.config.get("validate_before_evaluate", True):
                engine.check_catalog(self.catalog)
            value = fn()
        except FormulaError as exc:
            emit(make_eval_event(
                EventType.evaluation_failed,
                EventLevel.error,
                str(exc),
                eval_id=eval_id,
                formula=label,
                catalog_hash=self.catalog_hash,
                error_code=error_code_for(exc),
            ), eval_id=eval_id)
            raise

        emit(make_eval_event(
            EventType.evaluation_completed,
            EventLevel.info,
            f"{label} = {value!r}",
            eval_id=eval_id,
            formula=label,
            catalog_hash=self.catalog_hash,
            extra={"result": value},
        ), eval_id=eval_id)
        return value
