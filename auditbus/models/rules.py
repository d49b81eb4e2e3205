"""Routing rule models, loaded once at startup."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class TargetKind(str, Enum):
    """The downstream targets a rule can dispatch to."""

    WORKFLOW = "workflow"
    LOG_SINK = "log_sink"
    NOTIFICATION = "notification"


class RuleTarget(BaseModel):
    """One target of a rule.

    ``template`` is required for notification targets and ignored by the
    others.  ``id`` distinguishes two targets of the same kind within one
    rule; it defaults to the kind name.
    """

    model_config = ConfigDict(frozen=True)

    kind: TargetKind
    id: str = ""
    template: str | None = None

    @property
    def target_id(self) -> str:
        return self.id or self.kind.value


class MatchRule(BaseModel):
    """A named content pattern and the ordered targets it fans out to.

    ``pattern`` uses the content-filter dialect::

        {"detail-type": ["Object State Change"],
         "detail": {"operation": ["delete"]},
         "source": [{"prefix": ""}]}
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    pattern: dict[str, Any] = {}
    targets: tuple[RuleTarget, ...] = ()


class DispatchInstruction(BaseModel):
    """A single (rule, target) pair produced by the routing engine."""

    model_config = ConfigDict(frozen=True)

    rule_name: str
    target: RuleTarget
