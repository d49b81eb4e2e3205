"""Notification target: builds deletion notification messages.

This module turns matched events into human-readable text for a topic.
Actual push delivery to subscribers is an external collaborator; this
target only builds the messages and buffers them for the transport layer.

Templates use ``${path}`` placeholders over the envelope, e.g.
``${detail.entity-id}``.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

from pydantic import BaseModel, ConfigDict

from auditbus.core.errors import ConfigurationError, FormatError
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import RuleTarget, TargetKind
from auditbus.routing.patterns import resolve_path, is_missing

logger = logging.getLogger(__name__)

DELETED_ENTITY_TEMPLATE = (
    "Entity with id ${detail.entity-id} has been deleted by ${detail.author}"
)

_PLACEHOLDER = re.compile(r"\$\{([^{}]*)\}")


class Notification(BaseModel):
    """A formatted message bound for a notification topic."""

    model_config = ConfigDict(frozen=True)

    topic: str
    message: str
    event_id: str = ""
    rule_name: str = ""


class NotificationFormatter:
    """Substitutes envelope fields into a fixed text template.

    Parameters
    ----------
    template:
        Text with ``${dotted.path}`` placeholders.  Validated on
        construction; a malformed template is a ``ConfigurationError``.
    """

    def __init__(self, template: str) -> None:
        self._template = template
        self._paths = self._parse(template)

    @staticmethod
    def _parse(template: str) -> tuple[tuple[str, ...], ...]:
        paths: list[tuple[str, ...]] = []
        for match in _PLACEHOLDER.finditer(template):
            raw = match.group(1).strip()
            segments = tuple(raw.split(".")) if raw else ()
            if not segments or any(not s for s in segments):
                raise ConfigurationError(
                    f"Malformed placeholder {match.group(0)!r} in template {template!r}"
                )
            paths.append(segments)
        if "${" in _PLACEHOLDER.sub("", template):
            raise ConfigurationError(f"Unterminated placeholder in template {template!r}")
        return tuple(paths)

    @property
    def template(self) -> str:
        return self._template

    @property
    def fields(self) -> list[str]:
        """Dotted paths the template substitutes."""
        return [".".join(p) for p in self._paths]

    def format(self, envelope: EventEnvelope | dict[str, Any]) -> str:
        """Return the message for *envelope*.

        Raises
        ------
        FormatError
            If a substituted field is absent or null.  No partially
            templated message is ever returned.
        """
        wire = envelope.to_wire() if isinstance(envelope, EventEnvelope) else envelope

        def _substitute(match: re.Match[str]) -> str:
            path = tuple(match.group(1).strip().split("."))
            value = resolve_path(wire, path)
            if is_missing(value) or value is None:
                raise FormatError(
                    f"Template field {'.'.join(path)!r} is absent from event "
                    f"{wire.get('id', '<no id>')}"
                )
            return str(value)

        return _PLACEHOLDER.sub(_substitute, self._template)


class NotificationTarget:
    """Builds notifications for a topic and buffers them (no delivery).

    The buffer is unbounded.  The owner drains it with ``flush()`` and
    hands the messages to the delivery channel.

    Parameters
    ----------
    topic:
        Name of the topic the notifications are bound for.
    """

    def __init__(self, topic: str) -> None:
        self._topic = topic
        self._formatters: dict[str, NotificationFormatter] = {}
        self._pending: list[Notification] = []
        self._lock = threading.Lock()

    @property
    def target_kind(self) -> TargetKind:
        return TargetKind.NOTIFICATION

    @property
    def topic(self) -> str:
        return self._topic

    def _formatter(self, template: str) -> NotificationFormatter:
        formatter = self._formatters.get(template)
        if formatter is None:
            formatter = self._formatters[template] = NotificationFormatter(template)
        return formatter

    def deliver(
        self, envelope: EventEnvelope, target: RuleTarget, rule_name: str = ""
    ) -> Notification:
        """Format the message for *envelope* and queue it."""
        if not target.template:
            raise ConfigurationError(f"Notification target {target.target_id!r} has no template")
        notification = Notification(
            topic=self._topic,
            message=self._formatter(target.template).format(envelope),
            event_id=envelope.id or "",
            rule_name=rule_name,
        )
        with self._lock:
            self._pending.append(notification)
        logger.debug(
            "NotificationTarget: queued notification for event %s on %s",
            envelope.id,
            self._topic,
        )
        return notification

    def flush(self) -> list[Notification]:
        """Return and clear all pending notifications."""
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        return pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)
