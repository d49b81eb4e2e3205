"""Rule set loading: the built-in audit rules and JSON rule files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from auditbus.config import AuditConfig
from auditbus.core.errors import ConfigurationError
from auditbus.models.events import STATE_CHANGE_DETAIL_TYPE
from auditbus.models.rules import MatchRule, RuleTarget, TargetKind
from auditbus.routing.targets.notification import DELETED_ENTITY_TEMPLATE


def default_rules(config: AuditConfig | None = None) -> tuple[MatchRule, ...]:
    """Return the standard audit rule set, named for the logical environment.

    1. state-change events -> Ingestion Workflow
    2. every event (empty source prefix) -> log sink
    3. state-change deletions -> deletion notification
    """
    env = (config or AuditConfig()).logical_env
    return (
        MatchRule(
            name=f"{env}-audit-events-rule",
            description="Rule matching audit events",
            pattern={"detail-type": [STATE_CHANGE_DETAIL_TYPE]},
            targets=(RuleTarget(kind=TargetKind.WORKFLOW),),
        ),
        MatchRule(
            name=f"{env}-all-events-rule",
            description="Rule matching all events",
            pattern={"source": [{"prefix": ""}]},
            targets=(RuleTarget(kind=TargetKind.LOG_SINK),),
        ),
        MatchRule(
            name=f"{env}-deleted-entities-rule",
            description="Rule matching audit events for delete operations",
            pattern={
                "detail-type": [STATE_CHANGE_DETAIL_TYPE],
                "detail": {"operation": ["delete"]},
            },
            targets=(
                RuleTarget(
                    kind=TargetKind.NOTIFICATION,
                    template=DELETED_ENTITY_TEMPLATE,
                ),
            ),
        ),
    )


def parse_rules(raw: Any) -> tuple[MatchRule, ...]:
    """Validate a list of rule dicts into MatchRule models.

    Raises ``ConfigurationError`` on any shape error.  Pattern and target
    semantics are checked when the rules are handed to RoutingEngine.
    """
    if not isinstance(raw, list):
        raise ConfigurationError(
            f"Rule file must contain a JSON array, got {type(raw).__name__}"
        )
    rules: list[MatchRule] = []
    for position, item in enumerate(raw):
        try:
            rules.append(MatchRule.model_validate(item))
        except ValidationError as exc:
            raise ConfigurationError(f"Rule #{position} is malformed: {exc}") from exc
    return tuple(rules)


def load_rules(path: Path | str) -> tuple[MatchRule, ...]:
    """Load a rule set from a JSON file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Rule file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Rule file {path} is not valid JSON: {exc}") from exc
    return parse_rules(raw)
