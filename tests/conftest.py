"""Shared test fixtures for auditbus."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from auditbus.config import AuditConfig
from auditbus.core.blob_archive import FileBlobArchive
from auditbus.core.metadata_index import SqliteMetadataIndex
from auditbus.core.workflow import IngestionWorkflow
from auditbus.models.events import AuditEvent, EventEnvelope
from auditbus.service import AuditService


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test stores."""
    return tmp_path


@pytest.fixture
def config(tmp_dir: Path) -> AuditConfig:
    """Provide a config rooted in the temp directory with instant retries."""
    return AuditConfig(
        data_dir=tmp_dir / "data",
        logical_env="test",
        retry_backoff_strategy="none",
    )


@pytest.fixture
def archive(tmp_dir: Path) -> FileBlobArchive:
    """Provide a fresh FileBlobArchive in a temp directory."""
    return FileBlobArchive(tmp_dir / "archive")


@pytest.fixture
def index(tmp_dir: Path) -> SqliteMetadataIndex:
    """Provide a fresh SqliteMetadataIndex backed by a temp database."""
    return SqliteMetadataIndex(tmp_dir / "index.db")


@pytest.fixture
def workflow(archive: FileBlobArchive, index: SqliteMetadataIndex) -> IngestionWorkflow:
    """Provide an IngestionWorkflow wired to the test stores."""
    return IngestionWorkflow(archive, index)


@pytest.fixture
def service(config: AuditConfig) -> AuditService:
    """Provide a fully wired AuditService that never sleeps between retries."""
    return AuditService(config, sleep=lambda _seconds: None)


# ---------------------------------------------------------------------------
# Event factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_envelope() -> Callable[..., dict[str, Any]]:
    """Factory fixture: build a wire envelope dict with sensible defaults.

    Pass ``data=None`` to omit the payload, as producers do for deletions.
    """

    def _factory(
        event_id: str | None = "E1",
        *,
        detail_type: str = "Object State Change",
        source: str = "custom.books-api",
        operation: str = "insert",
        entity_id: str = "B1",
        author: str = "a@x",
        ts: int | str = 1700000000000,
        data: Any = {"name": "x"},
        **detail_overrides: Any,
    ) -> dict[str, Any]:
        detail: dict[str, Any] = {
            "entity-type": "book",
            "entity-id": entity_id,
            "operation": operation,
            "author": author,
            "ts": str(ts),
        }
        if data is not None:
            detail["data"] = data
        detail.update(detail_overrides)
        envelope: dict[str, Any] = {
            "detail-type": detail_type,
            "source": source,
            "detail": detail,
        }
        if event_id is not None:
            envelope["id"] = event_id
        return envelope

    return _factory


@pytest.fixture
def make_audit_event(
    make_envelope: Callable[..., dict[str, Any]],
) -> Callable[..., AuditEvent]:
    """Factory fixture: build a typed AuditEvent through its envelope."""

    def _factory(event_id: str = "E1", **kwargs: Any) -> AuditEvent:
        envelope = EventEnvelope.model_validate(make_envelope(event_id, **kwargs))
        return AuditEvent.from_envelope(envelope)

    return _factory
