"""TargetDispatcher: executes routing instructions against targets.

Each (rule, target) instruction is executed independently.  A failure in
one target is logged and recorded but does not prevent delivery to the
remaining targets; the caller receives a DispatchReport naming every
failure with its event id.  Contract violations (a notification template
referencing an absent field) are re-raised once the other instructions
have run.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from auditbus.core.errors import ConfigurationError, FormatError
from auditbus.core.workflow import WorkflowFailedError
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import DispatchInstruction, TargetKind
from auditbus.routing.targets import BaseTarget

logger = logging.getLogger(__name__)


class DispatchOutcome(BaseModel):
    """A successfully executed instruction."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    rule_name: str
    target_id: str
    kind: TargetKind
    result: Any = None


class DispatchFailure(BaseModel):
    """A failed instruction, with enough context for manual inspection."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    rule_name: str
    target_id: str
    kind: TargetKind
    error_type: str
    error: str
    retryable: bool = False
    step: str = ""  # failing workflow step, when the target is the workflow


class DispatchReport(BaseModel):
    """Everything that happened to one event."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    delivered: tuple[DispatchOutcome, ...] = ()
    failures: tuple[DispatchFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures

    def results_for(self, kind: TargetKind) -> list[Any]:
        return [o.result for o in self.delivered if o.kind == kind]


class TargetDispatcher:
    """Routes dispatch instructions to the target registered for their kind.

    Usage
    -----
    >>> dispatcher = TargetDispatcher()
    >>> dispatcher.register_target(log_sink)
    >>> dispatcher.register_target(workflow_target)
    >>> report = dispatcher.dispatch(envelope, engine.route(envelope))
    """

    def __init__(self) -> None:
        self._targets: dict[TargetKind, BaseTarget] = {}

    # ------------------------------------------------------------------
    # Target management
    # ------------------------------------------------------------------

    def register_target(self, target: BaseTarget) -> None:
        """Register the implementation for one target kind.

        Registering a second implementation for a kind replaces the first.
        """
        self._targets[target.target_kind] = target
        logger.info("Registered target: %s", target.target_kind.value)

    def unregister_target(self, kind: TargetKind) -> None:
        """Remove the implementation registered for *kind*, if any."""
        if self._targets.pop(kind, None) is not None:
            logger.info("Unregistered target: %s", kind.value)

    @property
    def registered_targets(self) -> dict[TargetKind, BaseTarget]:
        """Return a copy of the registered target map."""
        return dict(self._targets)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, envelope: EventEnvelope, instruction: DispatchInstruction) -> Any:
        """Execute one instruction, propagating any failure."""
        kind = instruction.target.kind
        target = self._targets.get(kind)
        if target is None:
            raise ConfigurationError(f"No target registered for kind {kind.value!r}")
        logger.debug(
            "Dispatching event %s to %s via rule %s",
            envelope.id,
            instruction.target.target_id,
            instruction.rule_name,
        )
        return target.deliver(envelope, instruction.target, instruction.rule_name)

    def dispatch(
        self, envelope: EventEnvelope, instructions: list[DispatchInstruction]
    ) -> DispatchReport:
        """Execute every instruction for *envelope* and report the outcome.

        Raises
        ------
        FormatError
            After all other instructions ran, if a notification template
            could not be filled.
        """
        event_id = envelope.id or ""
        delivered: list[DispatchOutcome] = []
        failures: list[DispatchFailure] = []
        contract_violation: FormatError | None = None

        if not instructions:
            logger.debug("Event %s matched no rules", event_id)

        for instruction in instructions:
            target = instruction.target
            try:
                result = self.execute(envelope, instruction)
            except Exception as exc:  # noqa: BLE001
                step = exc.step.value if isinstance(exc, WorkflowFailedError) else ""
                logger.error(
                    "Target %s failed for event %s (rule %s): %s",
                    target.target_id,
                    event_id,
                    instruction.rule_name,
                    exc,
                )
                failures.append(
                    DispatchFailure(
                        event_id=event_id,
                        rule_name=instruction.rule_name,
                        target_id=target.target_id,
                        kind=target.kind,
                        error_type=type(exc).__name__,
                        error=str(exc),
                        retryable=bool(getattr(exc, "retryable", False)),
                        step=step,
                    )
                )
                if isinstance(exc, FormatError) and contract_violation is None:
                    contract_violation = exc
                continue
            delivered.append(
                DispatchOutcome(
                    rule_name=instruction.rule_name,
                    target_id=target.target_id,
                    kind=target.kind,
                    result=result,
                )
            )

        if contract_violation is not None:
            raise contract_violation

        if failures:
            logger.warning(
                "Event %s: %d/%d dispatches succeeded, %d failed",
                event_id,
                len(delivered),
                len(instructions),
                len(failures),
            )

        return DispatchReport(
            event_id=event_id, delivered=tuple(delivered), failures=tuple(failures)
        )
