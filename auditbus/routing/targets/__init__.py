"""Target protocol for auditbus event routing.

All targets implement the ``BaseTarget`` protocol: a ``target_kind``
property and a ``deliver(envelope, target, rule_name)`` method.  The
dispatcher calls ``deliver`` once per dispatch instruction.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from auditbus.models.events import EventEnvelope
from auditbus.models.rules import RuleTarget, TargetKind


@runtime_checkable
class BaseTarget(Protocol):
    """Protocol that every routing target must implement.

    Attributes
    ----------
    target_kind : TargetKind
        The kind of rule target this implementation serves.
    """

    @property
    def target_kind(self) -> TargetKind:
        """Return the kind of rule target this implementation serves."""
        ...

    def deliver(
        self, envelope: EventEnvelope, target: RuleTarget, rule_name: str = ""
    ) -> Any:
        """Deliver one envelope for one (rule, target) pair.

        Failures propagate; the dispatcher records them and continues
        with the remaining instructions.

        Parameters
        ----------
        envelope:
            The received envelope (id already assigned by the bus).
        target:
            The rule target being fired, e.g. carrying a template.
        rule_name:
            The rule that matched, for diagnostics.
        """
        ...
