"""Durable record models: archive objects and index records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from auditbus.models.events import AuditEvent


class ArchiveRecord(BaseModel):
    """A raw payload object held by the Blob Archive."""

    model_config = ConfigDict(frozen=True)

    key: str
    body: bytes = b""
    content_type: str = "application/json"
    size_bytes: int = 0


class IndexRecord(BaseModel):
    """Searchable summary of one ingested event.

    ``s3_key`` points at the archived payload, or is empty when the event
    carried no data.  Serialized with camelCase names (``eventId``,
    ``s3Key``) for external reporting.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    event_id: str
    entity_type: str
    entity_id: str
    operation: str
    s3_key: str = ""
    author: str
    ts: int

    @classmethod
    def from_event(cls, event: AuditEvent, s3_key: str) -> IndexRecord:
        return cls(
            event_id=event.id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            operation=event.operation,
            s3_key=s3_key,
            author=event.author,
            ts=event.ts,
        )
