"""NDJSON event log files for a formulify project.

Layout under the project directory::

    logs/events.ndjson             every event
    logs/evals/<eval_id>.ndjson    events of one evaluation or batch

Each event is one ``json.dumps(..., sort_keys=True)`` line.  Writers hold
an exclusive ``fcntl.flock`` for the single append and readers a shared
one.  Where ``fcntl`` is unavailable the files are used unlocked.
"""

from __future__ import annotations

import contextlib
import json
import os
import re
from pathlib import Path
from typing import IO, Any, Iterator

from formulify.logging.events import FormulifyEvent

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None  # type: ignore[assignment]

GLOBAL_LOG = "events.ndjson"
EVALS_DIR = "evals"

# eval ids become file names
_EVAL_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
_MAX_READ_LIMIT = 2000


@contextlib.contextmanager
def _locked(path: Path, mode: str) -> Iterator[IO[bytes]]:
    """Open *path* in binary *mode* holding a flock for the duration."""
    with open(path, mode) as fh:
        if fcntl is not None:
            fcntl.flock(fh.fileno(), fcntl.LOCK_SH if mode == "rb" else fcntl.LOCK_EX)
        try:
            yield fh
        finally:
            if fcntl is not None:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


def _matches(record: dict[str, Any], level: str | None, event_type: str | None, formula: str | None) -> bool:
    if level and record.get("level") != level:
        return False
    if event_type and record.get("event_type") != event_type:
        return False
    if formula and record.get("context", {}).get("formula") != formula:
        return False
    return True


class EventSink:
    """Appends events to a project's log files and reads them back.

    Parameters
    ----------
    project_dir : Path
        Project root.  ``logs/`` and ``logs/evals/`` are created under it
        by the first write; reading never creates them.
    fsync : bool
        Force each append to disk before releasing the lock.
    tail_bytes : int | None
        Only this many bytes from the end of a log are read back.
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.evals_dir = self.logs_dir / EVALS_DIR
        self.fsync = fsync
        self.tail_bytes = _DEFAULT_TAIL_BYTES if tail_bytes is None else tail_bytes

    @property
    def global_log(self) -> Path:
        return self.logs_dir / GLOBAL_LOG

    def eval_log(self, eval_id: str) -> Path | None:
        """Path of the per-evaluation log, or None for an unusable id."""
        if not eval_id or not _EVAL_ID_RE.match(eval_id):
            return None
        return self.evals_dir / f"{eval_id}.ndjson"

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write(self, event: FormulifyEvent, *, eval_id: str | None = None) -> None:
        """Append *event* to the global log, and to its eval log if *eval_id* is usable."""
        payload = (json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n").encode("utf-8")
        targets = [self.global_log]
        if eval_id is not None:
            per_eval = self.eval_log(eval_id)
            if per_eval is not None:
                targets.append(per_eval)
        for path in targets:
            path.parent.mkdir(parents=True, exist_ok=True)
            with _locked(path, "ab") as fh:
                fh.write(payload)
                fh.flush()
                if self.fsync:
                    os.fsync(fh.fileno())

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        formula: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Events from the global log matching every given filter, newest first."""
        records = [
            r for r in self._records(self.global_log)
            if _matches(r, level, event_type, formula)
        ]
        records.reverse()
        return records[:min(limit, _MAX_READ_LIMIT)]

    def read_eval_log(self, eval_id: str) -> list[dict[str, Any]]:
        """Events of one evaluation, oldest first."""
        path = self.eval_log(eval_id)
        return [] if path is None else self._records(path)

    def _records(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        records: list[dict[str, Any]] = []
        for raw in self._tail(path).splitlines():
            if not raw.strip():
                continue
            try:
                records.append(json.loads(raw))
            except json.JSONDecodeError:
                # torn or hand-edited line
                continue
        return records

    def _tail(self, path: Path) -> str:
        """The last ``tail_bytes`` of *path*, starting at a line boundary."""
        with _locked(path, "rb") as fh:
            size = os.fstat(fh.fileno()).st_size
            if size <= self.tail_bytes:
                return fh.read().decode("utf-8", errors="replace")
            fh.seek(size - self.tail_bytes)
            data = fh.read()
        newline = data.find(b"\n")
        if newline >= 0:
            data = data[newline + 1:]
        return data.decode("utf-8", errors="replace")
