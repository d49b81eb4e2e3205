"""Workflow target: runs the Ingestion Workflow for routed events.

Acts as the upstream delivery mechanism for the saga: a retryable failure
re-runs the whole workflow from START according to the RetryPolicy;
non-retryable failures are raised immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from auditbus.core.retry import RetryPolicy
from auditbus.core.workflow import IngestionWorkflow, WorkflowFailedError
from auditbus.models.events import AuditEvent, EventEnvelope
from auditbus.models.rules import RuleTarget, TargetKind
from auditbus.models.workflow import WorkflowResult

logger = logging.getLogger(__name__)


class WorkflowTarget:
    """Parses the typed event and executes the saga with retries.

    Parameters
    ----------
    workflow:
        The IngestionWorkflow to execute.
    retry_policy:
        Retry/backoff configuration.  Defaults to a single attempt.
    sleep:
        Sleeper used between attempts, injectable for tests.
    """

    def __init__(
        self,
        workflow: IngestionWorkflow,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._workflow = workflow
        self._policy = retry_policy or RetryPolicy(max_attempts=1)
        self._sleep = sleep

    @property
    def target_kind(self) -> TargetKind:
        return TargetKind.WORKFLOW

    @property
    def workflow(self) -> IngestionWorkflow:
        return self._workflow

    def deliver(
        self, envelope: EventEnvelope, target: RuleTarget | None = None, rule_name: str = ""
    ) -> WorkflowResult:
        """Run the workflow for *envelope* until DONE or out of attempts."""
        event = AuditEvent.from_envelope(envelope)
        attempt = 1
        while True:
            try:
                result = self._workflow.run(event)
            except WorkflowFailedError as exc:
                if not exc.retryable or not self._policy.should_retry(attempt):
                    raise
                delay = self._policy.compute_backoff_delay(attempt)
                logger.warning(
                    "Retrying workflow for event %s (attempt %d/%d) in %.2fs after %s failure",
                    event.id,
                    attempt + 1,
                    self._policy.max_attempts,
                    delay,
                    exc.step.value,
                )
                self._sleep(delay)
                attempt += 1
                continue
            return result.model_copy(update={"attempts": attempt})
