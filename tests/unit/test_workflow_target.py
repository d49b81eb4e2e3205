"""Tests for WorkflowTarget retry behaviour."""

from __future__ import annotations

import pytest

from auditbus.core.errors import EventValidationError, PermissionDenied, StoreUnavailable
from auditbus.core.retry import RetryPolicy
from auditbus.core.workflow import IngestionWorkflow, WorkflowFailedError
from auditbus.models.events import EventEnvelope
from auditbus.models.workflow import WorkflowState
from auditbus.routing.targets.workflow import WorkflowTarget


class _FlakyArchive:
    """Archive that raises the queued errors before succeeding."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.objects: dict[str, bytes] = {}

    def put(self, key, body, content_type="application/json"):
        if self.errors:
            raise self.errors.pop(0)
        self.objects[key] = body

    def get(self, key):
        return self.objects[key]


@pytest.fixture
def sleeps() -> list[float]:
    return []


def _target(archive, index, sleeps, **policy) -> WorkflowTarget:
    workflow = IngestionWorkflow(archive, index)
    return WorkflowTarget(workflow, RetryPolicy(**policy), sleep=sleeps.append)


def test_success_first_attempt(index, sleeps, make_envelope):
    target = _target(_FlakyArchive(), index, sleeps, max_attempts=3)
    result = target.deliver(EventEnvelope.model_validate(make_envelope()))
    assert result.state == WorkflowState.DONE
    assert result.attempts == 1
    assert sleeps == []


def test_transient_failure_retried(index, sleeps, make_envelope):
    archive = _FlakyArchive(StoreUnavailable("blip"), StoreUnavailable("blip"))
    target = _target(
        archive, index, sleeps,
        max_attempts=3, backoff_strategy="exponential", backoff_base_seconds=0.5,
    )

    result = target.deliver(EventEnvelope.model_validate(make_envelope()))

    assert result.attempts == 3
    assert sleeps == [0.5, 1.0]
    assert index.get("E1") is not None


def test_retries_exhausted(index, sleeps, make_envelope):
    archive = _FlakyArchive(*[StoreUnavailable("down")] * 5)
    target = _target(archive, index, sleeps, max_attempts=2, backoff_strategy="none")

    with pytest.raises(WorkflowFailedError) as exc_info:
        target.deliver(EventEnvelope.model_validate(make_envelope()))

    assert exc_info.value.step == WorkflowState.PERSIST_PAYLOAD
    assert sleeps == [0.0]
    assert index.get("E1") is None


def test_permanent_failure_not_retried(index, sleeps, make_envelope):
    archive = _FlakyArchive(PermissionDenied("no"))
    target = _target(archive, index, sleeps, max_attempts=5)

    with pytest.raises(WorkflowFailedError) as exc_info:
        target.deliver(EventEnvelope.model_validate(make_envelope()))

    assert exc_info.value.retryable is False
    assert sleeps == []


def test_malformed_detail_rejected(index, sleeps, make_envelope):
    raw = make_envelope(ts="yesterday")
    target = _target(_FlakyArchive(), index, sleeps)
    with pytest.raises(EventValidationError, match="E1"):
        target.deliver(EventEnvelope.model_validate(raw))


def test_default_policy_is_single_attempt(index, make_envelope):
    archive = _FlakyArchive(StoreUnavailable("blip"))
    target = WorkflowTarget(IngestionWorkflow(archive, index))
    with pytest.raises(WorkflowFailedError):
        target.deliver(EventEnvelope.model_validate(make_envelope()))
