"""Structured events for validation, evaluation and batch runs.

The engine itself never logs; ``Workspace`` and ``run_batch`` emit events
through ``emit()`` into the project's NDJSON logs.
"""

from formulify.logging.events import (
    EventLevel,
    EventType,
    FormulifyEvent,
    clear_sink,
    emit,
    emit_error,
    emit_info,
    error_code_for,
    make_eval_event,
    set_project_dir,
    truncate_context,
)
from formulify.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "FormulifyEvent",
    "clear_sink",
    "emit",
    "emit_error",
    "emit_info",
    "error_code_for",
    "make_eval_event",
    "set_project_dir",
    "truncate_context",
]
