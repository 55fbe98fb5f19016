"""Event schema for formulify and the module-level ``emit`` helpers.

Events are pydantic models serialised one per line by ``EventSink``.
Timestamps are UTC ISO-8601 with a ``Z`` suffix.  Nothing in this module
raises into the caller: an event that cannot be written is reported on
stderr (at most once a minute) and dropped.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    validation_passed = "validation_passed"
    validation_failed = "validation_failed"

    evaluation_started = "evaluation_started"
    evaluation_completed = "evaluation_completed"
    evaluation_failed = "evaluation_failed"

    batch_started = "batch_started"
    batch_completed = "batch_completed"
    batch_failed = "batch_failed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

LEX_ERROR = "lex_error"
SYNTAX_ERROR = "syntax_error"
RESOLUTION_ERROR = "resolution_error"
UNKNOWN_NAME = "unknown_name"
CYCLIC_DEPENDENCY = "cyclic_dependency"
EVALUATION_ERROR = "evaluation_error"
NOT_FOUND = "not_found"
RECURSION_LIMIT = "recursion_limit"
INVALID_NAME = "invalid_name"
UNBOUND_VARIABLE = "unbound_variable"

# Keyed by class name; operand and malformed-stack errors fall through to EvaluationError.
_CODE_BY_CLASS = {
    "UnboundVariableError": UNBOUND_VARIABLE,
    "UnknownNameError": UNKNOWN_NAME,
    "ResolutionError": RESOLUTION_ERROR,
    "LexError": LEX_ERROR,
    "ExpressionSyntaxError": SYNTAX_ERROR,
    "CyclicDependencyError": CYCLIC_DEPENDENCY,
    "NotFoundError": NOT_FOUND,
    "RecursionLimitError": RECURSION_LIMIT,
    "InvalidNameError": INVALID_NAME,
    "EvaluationError": EVALUATION_ERROR,
}


def error_code_for(exc: BaseException | str) -> str:
    """Return the event error code for an exception or an error class name.

    An exception is matched along its MRO, so a subclass inherits its
    parent's code.  Anything unrecognised maps to ``evaluation_error``.
    """
    if isinstance(exc, str):
        return _CODE_BY_CLASS.get(exc, EVALUATION_ERROR)
    for klass in type(exc).__mro__:
        code = _CODE_BY_CLASS.get(klass.__name__)
        if code is not None:
            return code
    return EVALUATION_ERROR


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256
_TRUNCATED_MARK = "...[truncated]"


def _clip(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _clip(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clip(v) for v in value]
    if isinstance(value, str) and len(value) > _MAX_VALUE_LEN:
        return value[:_MAX_VALUE_LEN] + _TRUNCATED_MARK
    return value


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy *context*, cutting strings over 256 chars at any nesting depth.

    Formula text and variable names are user input of unbounded length.
    """
    return _clip(dict(context))


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class FormulifyEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def make_eval_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    eval_id: str | None = None,
    formula: str | None = None,
    catalog_hash: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> FormulifyEvent:
    """Build an event whose context attributes it to one evaluation.

    ``eval_id``, ``formula`` and ``catalog_hash`` are only placed in the
    context when given; *extra* is merged on top.
    """
    attribution = {"eval_id": eval_id, "formula": formula, "catalog_hash": catalog_hash}
    context = {k: v for k, v in attribution.items() if v is not None}
    context.update(extra or {})
    return FormulifyEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=context,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Active sink
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Path | str) -> None:
    """Send subsequent events to the logs of *project_dir*.

    Sink options come from the project's ``formulify.yaml``.  Until this is
    called, ``emit()`` discards events.
    """
    global _sink
    from formulify.logging.sink import EventSink
    from formulify.project import CatalogFileError, load_project_config

    root = Path(project_dir)
    try:
        cfg = load_project_config(root)
    except (CatalogFileError, OSError, ValueError) as exc:
        _warn_stderr(f"using default logging options: {exc}")
        cfg = {}
    tail_bytes = cfg.get("logging_tail_bytes")
    _sink = EventSink(
        root,
        fsync=bool(cfg.get("logging_fsync", False)),
        tail_bytes=int(tail_bytes) if tail_bytes is not None else None,
    )


def clear_sink() -> None:
    """Detach the active sink; later events are discarded."""
    global _sink
    _sink = None


# ---------------------------------------------------------------------------
# stderr fallback
# ---------------------------------------------------------------------------

_WARN_INTERVAL_SECS = 60.0
_last_warning_at: float | None = None


def _warn_stderr(msg: str) -> None:
    """Print *msg* to stderr unless a warning went out in the last minute."""
    global _last_warning_at
    now = time.monotonic()
    if _last_warning_at is not None and now - _last_warning_at < _WARN_INTERVAL_SECS:
        return
    _last_warning_at = now
    try:
        print(f"[formulify] {msg}", file=sys.stderr)
    except OSError:
        return


# ---------------------------------------------------------------------------
# emit
# ---------------------------------------------------------------------------


def emit(event: FormulifyEvent, *, eval_id: str | None = None) -> None:
    """Write *event* to the active sink, and to the eval log for *eval_id*.

    **Never raises.**
    """
    sink = _sink
    if sink is None:
        return
    clipped = event.model_copy(update={"context": truncate_context(event.context)})
    try:
        sink.write(clipped, eval_id=eval_id)
    except Exception:
        _warn_stderr(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    eval_id: str | None = None,
) -> None:
    emit(
        FormulifyEvent(level=EventLevel.info, event_type=event_type, message=message, context=context or {}),
        eval_id=eval_id,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    eval_id: str | None = None,
) -> None:
    emit(
        FormulifyEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        eval_id=eval_id,
    )
