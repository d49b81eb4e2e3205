"""Inbound event models.

``EventEnvelope`` is the wire shape carried by the bus.  It is lenient:
any ``detail`` object is accepted, because the catch-all rule forwards
every event regardless of its domain.  ``AuditEvent`` is the strict,
typed view of an "Object State Change" detail block that the Ingestion
Workflow consumes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from auditbus.core.errors import EventValidationError

STATE_CHANGE_DETAIL_TYPE = "Object State Change"


class EventEnvelope(BaseModel):
    """The full inbound message: routing metadata plus the ``detail`` block.

    ``id`` and ``time`` are assigned by the bus on ingress when the producer
    did not supply them.  Unknown top-level fields are preserved so the log
    sink can forward the envelope verbatim.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str | None = None
    detail_type: str = Field(alias="detail-type")
    source: str
    time: str | None = None
    detail: dict[str, Any] = {}

    def to_wire(self) -> dict[str, Any]:
        """Return the envelope as its JSON wire dict (``detail-type`` etc.)."""
        wire = self.model_dump(mode="json", by_alias=True)
        for key in ("id", "time"):
            if wire.get(key) is None:
                wire.pop(key, None)
        return wire


class AuditEvent(BaseModel):
    """Typed, immutable view of a domain state-change event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    entity_type: str = Field(alias="entity-type")
    entity_id: str = Field(alias="entity-id")
    operation: str
    author: str
    ts: int  # epoch millis, producer-supplied
    data: Any = None
    source_system: str = ""

    @field_validator("ts", mode="before")
    @classmethod
    def _parse_ts(cls, value: Any) -> int:
        # The wire carries ts as a numeric string.
        if isinstance(value, bool):
            raise ValueError("ts must be epoch milliseconds, not a boolean")
        if isinstance(value, str):
            text = value.strip()
            if not text.lstrip("-").isdigit():
                raise ValueError(f"ts must be integer epoch milliseconds, got {value!r}")
            return int(text)
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"ts must be integer epoch milliseconds, got {value!r}")
        return value

    @property
    def has_data(self) -> bool:
        """Whether the event carries a payload eligible for archival.

        Null and falsy scalars (``""``, ``0``, ``false``) count as absent;
        any object or array, even an empty one, is archived.
        """
        if isinstance(self.data, (dict, list)):
            return True
        return bool(self.data)

    @classmethod
    def from_envelope(cls, envelope: EventEnvelope) -> AuditEvent:
        """Parse the typed event out of an envelope's detail block.

        Raises
        ------
        EventValidationError
            If the envelope has no id or the detail block is malformed.
        """
        if not envelope.id:
            raise EventValidationError("Envelope has no id; was it received by the bus?")
        values = dict(envelope.detail)
        values["id"] = envelope.id
        values["source_system"] = envelope.source
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise EventValidationError(
                f"Event {envelope.id} has a malformed detail block: {exc}"
            ) from exc
