"""Auditbus data models: all Pydantic v2, all frozen (immutable)."""

from auditbus.models.events import STATE_CHANGE_DETAIL_TYPE, AuditEvent, EventEnvelope
from auditbus.models.records import ArchiveRecord, IndexRecord
from auditbus.models.rules import DispatchInstruction, MatchRule, RuleTarget, TargetKind
from auditbus.models.workflow import (
    VALID_TRANSITIONS,
    WorkflowResult,
    WorkflowState,
    WorkflowTransition,
)

__all__ = [
    # events
    "STATE_CHANGE_DETAIL_TYPE",
    "AuditEvent",
    "EventEnvelope",
    # records
    "ArchiveRecord",
    "IndexRecord",
    # rules
    "DispatchInstruction",
    "MatchRule",
    "RuleTarget",
    "TargetKind",
    # workflow
    "VALID_TRANSITIONS",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowTransition",
]
