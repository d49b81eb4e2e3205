"""RoutingEngine: evaluates static match rules against inbound events.

Every rule is evaluated independently.  An event matching several rules
yields one dispatch instruction per (rule, target) pair; targets shared
by different rules are not deduplicated across rules, but a rule never
fires the same target twice.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from auditbus.core.errors import ConfigurationError
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import DispatchInstruction, MatchRule, TargetKind
from auditbus.routing.patterns import CompiledPattern, compile_pattern
from auditbus.routing.targets.notification import NotificationFormatter

logger = logging.getLogger(__name__)


def _validate_targets(rule: MatchRule) -> None:
    if not rule.targets:
        raise ConfigurationError(f"Rule {rule.name!r} has no targets")
    seen: set[tuple[TargetKind, str]] = set()
    for target in rule.targets:
        ident = (target.kind, target.target_id)
        if ident in seen:
            raise ConfigurationError(
                f"Rule {rule.name!r} lists target {target.target_id!r} more than once"
            )
        seen.add(ident)
        if target.kind == TargetKind.NOTIFICATION:
            if not target.template:
                raise ConfigurationError(
                    f"Rule {rule.name!r}: notification target {target.target_id!r} needs a template"
                )
            NotificationFormatter(target.template)


class RoutingEngine:
    """Routes events to targets according to a static rule list.

    The rule list is compiled on construction; any malformed rule raises
    ``ConfigurationError`` so a bad configuration never reaches runtime.

    Usage
    -----
    >>> engine = RoutingEngine(default_rules(config))
    >>> for instruction in engine.route(envelope):
    ...     dispatcher.execute(envelope, instruction)
    """

    def __init__(self, rules: Iterable[MatchRule]) -> None:
        compiled: list[tuple[MatchRule, CompiledPattern]] = []
        names: set[str] = set()
        for rule in rules:
            if not rule.name:
                raise ConfigurationError("Every rule needs a name")
            if rule.name in names:
                raise ConfigurationError(f"Duplicate rule name: {rule.name!r}")
            names.add(rule.name)
            _validate_targets(rule)
            compiled.append((rule, compile_pattern(rule.pattern, rule_name=rule.name)))
        self._compiled = tuple(compiled)
        logger.info("Loaded %d routing rules", len(self._compiled))

    @property
    def rules(self) -> tuple[MatchRule, ...]:
        return tuple(rule for rule, _ in self._compiled)

    def describe(self, rule_name: str) -> str:
        """Return a readable rendering of a rule's predicate."""
        for rule, pattern in self._compiled:
            if rule.name == rule_name:
                return pattern.describe()
        raise KeyError(rule_name)

    # ------------------------------------------------------------------
    # Evaluation (pure, never raises for a well-formed rule set)
    # ------------------------------------------------------------------

    def matching_rules(self, event: EventEnvelope | dict[str, Any]) -> list[MatchRule]:
        """Return the rules whose predicate the event satisfies, in rule order."""
        wire = event.to_wire() if isinstance(event, EventEnvelope) else event
        return [rule for rule, pattern in self._compiled if pattern.matches(wire)]

    def route(self, event: EventEnvelope | dict[str, Any]) -> list[DispatchInstruction]:
        """Return one dispatch instruction per (matching rule, target)."""
        instructions = [
            DispatchInstruction(rule_name=rule.name, target=target)
            for rule in self.matching_rules(event)
            for target in rule.targets
        ]
        event_id = event.id if isinstance(event, EventEnvelope) else event.get("id")
        logger.debug(
            "Event %s matched %d dispatch instructions", event_id, len(instructions)
        )
        return instructions
