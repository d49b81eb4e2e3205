"""Ingestion workflow: a two-step saga run once per routed event.

    START -> PERSIST_PAYLOAD -> WRITE_INDEX -> DONE
                  |                 |
                  +-----> FAILED <--+

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- PERSIST_PAYLOAD strictly precedes WRITE_INDEX; no index record is written
  unless the payload write completed
- Events without data skip the archive write and index an empty s3Key
- Both steps are idempotent, so a retry re-enters from START safely
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import timezone, tzinfo
from typing import NoReturn

from auditbus.core.blob_archive import BlobArchive
from auditbus.core.errors import AuditBusError
from auditbus.core.keys import derive_key, payload_json_bytes
from auditbus.core.metadata_index import MetadataIndex
from auditbus.models.events import AuditEvent
from auditbus.models.records import IndexRecord
from auditbus.models.workflow import (
    VALID_TRANSITIONS,
    WorkflowResult,
    WorkflowState,
    WorkflowTransition,
)

logger = logging.getLogger(__name__)

PAYLOAD_CONTENT_TYPE = "application/json"


class InvalidTransitionError(AuditBusError):
    """Raised when a requested state transition is not valid."""


class WorkflowTimeoutError(AuditBusError):
    """Raised when a workflow run exceeds its time budget before a step."""

    retryable = True


class WorkflowFailedError(AuditBusError):
    """A workflow run ended in FAILED.

    Carries the event id and the failing step so the failure can be
    inspected and, when ``retryable``, re-run from START.
    """

    def __init__(
        self,
        event_id: str,
        step: WorkflowState,
        cause: BaseException,
        transitions: tuple[WorkflowTransition, ...] = (),
    ) -> None:
        self.event_id = event_id
        self.step = step
        self.cause = cause
        self.transitions = transitions
        self.retryable = bool(getattr(cause, "retryable", False))
        super().__init__(
            f"Workflow for event {event_id} failed in {step.value}: "
            f"{type(cause).__name__}: {cause}"
        )


class _WorkflowRun:
    """Per-invocation state holder; never shared between events."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        self.state = WorkflowState.START
        self.transitions: list[WorkflowTransition] = []

    def transition(self, target: WorkflowState, reason: str = "") -> None:
        allowed = VALID_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition workflow for {self.event_id} from "
                f"{self.state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        self.transitions.append(
            WorkflowTransition(from_state=self.state, to_state=target, reason=reason)
        )
        logger.debug(
            "Workflow %s: %s -> %s", self.event_id, self.state.value, target.value
        )
        self.state = target


class IngestionWorkflow:
    """Archives an event payload, then indexes the event's metadata.

    Parameters
    ----------
    archive:
        Blob Archive receiving the JSON payload.
    index:
        Metadata Index receiving one record per event.
    tz:
        Reference zone for key derivation.
    timeout_seconds:
        Time budget for one run; checked before each step.  ``None``
        disables the check.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        archive: BlobArchive,
        index: MetadataIndex,
        *,
        tz: tzinfo = timezone.utc,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._archive = archive
        self._index = index
        self._tz = tz
        self._timeout = timeout_seconds
        self._clock = clock

    @property
    def archive(self) -> BlobArchive:
        return self._archive

    @property
    def index(self) -> MetadataIndex:
        return self._index

    def key_for(self, event: AuditEvent) -> str:
        """Return the archive key this workflow uses for *event*."""
        return derive_key(event.id, event.ts, self._tz)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, event: AuditEvent) -> WorkflowResult:
        """Execute the saga for one event.

        Returns the WorkflowResult on DONE.

        Raises
        ------
        WorkflowFailedError
            If either step fails or the time budget runs out.  The run is
            then in FAILED and no later step was attempted.
        """
        run = _WorkflowRun(event.id)
        started = self._clock()

        run.transition(WorkflowState.PERSIST_PAYLOAD)
        try:
            self._check_deadline(started, run)
            s3_key = self._persist_payload(event)
        except Exception as exc:
            self._fail(run, exc)

        run.transition(WorkflowState.WRITE_INDEX, reason=s3_key or "no payload")
        try:
            self._check_deadline(started, run)
            record = self._write_index(event, s3_key)
        except Exception as exc:
            self._fail(run, exc)

        run.transition(WorkflowState.DONE)
        return WorkflowResult(
            event_id=event.id,
            state=run.state,
            s3_key=s3_key,
            record=record,
            transitions=tuple(run.transitions),
        )

    def _persist_payload(self, event: AuditEvent) -> str:
        if not event.has_data:  # nothing to archive upon delete
            return ""
        key = self.key_for(event)
        self._archive.put(key, payload_json_bytes(event.data), PAYLOAD_CONTENT_TYPE)
        return key

    def _write_index(self, event: AuditEvent, s3_key: str) -> IndexRecord:
        record = IndexRecord.from_event(event, s3_key)
        self._index.put_record(record)
        return record

    def _check_deadline(self, started: float, run: _WorkflowRun) -> None:
        if self._timeout is None:
            return
        elapsed = self._clock() - started
        if elapsed > self._timeout:
            raise WorkflowTimeoutError(
                f"Workflow for {run.event_id} exceeded {self._timeout}s "
                f"before {run.state.value} ({elapsed:.3f}s elapsed)"
            )

    def _fail(self, run: _WorkflowRun, exc: Exception) -> NoReturn:
        step = run.state
        run.transition(WorkflowState.FAILED, reason=f"{type(exc).__name__}: {exc}")
        logger.error(
            "Workflow for event %s failed in %s: %s", run.event_id, step.value, exc
        )
        raise WorkflowFailedError(run.event_id, step, exc, tuple(run.transitions)) from exc
