"""Log sink target: appends every envelope to an append-only JSONL log.

Each line is the verbatim envelope (wire field names) serialized to
canonical JSON.  There is no update or delete.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from auditbus.core.errors import PermissionDenied, StoreUnavailable
from auditbus.core.keys import canonical_json_bytes
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import RuleTarget, TargetKind

logger = logging.getLogger(__name__)


class JsonlLogSink:
    """Append-only event log.

    Parameters
    ----------
    path:
        The log file.  Parent directories are created on demand.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def target_kind(self) -> TargetKind:
        return TargetKind.LOG_SINK

    @property
    def path(self) -> Path:
        return self._path

    def deliver(
        self, envelope: EventEnvelope, target: RuleTarget | None = None, rule_name: str = ""
    ) -> None:
        """Append the envelope as one JSON line."""
        line = canonical_json_bytes(envelope.to_wire()) + b"\n"
        try:
            with self._lock, self._path.open("ab") as fh:
                fh.write(line)
        except PermissionError as exc:
            raise PermissionDenied(f"Cannot append to log {self._path}: {exc}") from exc
        except OSError as exc:
            raise StoreUnavailable(f"Cannot append to log {self._path}: {exc}") from exc
        logger.debug("JsonlLogSink: appended event %s to %s", envelope.id, self._path)

    def read_entries(self) -> list[dict[str, Any]]:
        """Read every logged envelope, oldest first."""
        if not self._path.exists():
            return []
        with self._path.open("rb") as fh:
            return [json.loads(line) for line in fh if line.strip()]

    def find(self, event_id: str) -> dict[str, Any] | None:
        """Return the first logged envelope with *event_id*, or None."""
        for entry in self.read_entries():
            if entry.get("id") == event_id:
                return entry
        return None
