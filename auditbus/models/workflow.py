"""Ingestion workflow state models: deterministic transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from auditbus.models.records import IndexRecord


class WorkflowState(str, Enum):
    """States of one ingestion saga run."""

    START = "start"
    PERSIST_PAYLOAD = "persist_payload"
    WRITE_INDEX = "write_index"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by IngestionWorkflow.
# DONE and FAILED are terminal for one invocation; a retry starts a new run.
VALID_TRANSITIONS: dict[WorkflowState, set[WorkflowState]] = {
    WorkflowState.START: {WorkflowState.PERSIST_PAYLOAD, WorkflowState.FAILED},
    WorkflowState.PERSIST_PAYLOAD: {WorkflowState.WRITE_INDEX, WorkflowState.FAILED},
    WorkflowState.WRITE_INDEX: {WorkflowState.DONE, WorkflowState.FAILED},
    WorkflowState.DONE: set(),
    WorkflowState.FAILED: set(),
}


class WorkflowTransition(BaseModel):
    """Records a single state transition of a workflow run."""

    model_config = ConfigDict(frozen=True)

    from_state: WorkflowState
    to_state: WorkflowState
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    reason: str = ""


class WorkflowResult(BaseModel):
    """Outcome of a successful workflow run."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    state: WorkflowState
    s3_key: str = ""
    record: IndexRecord
    transitions: tuple[WorkflowTransition, ...] = ()
    attempts: int = 1
