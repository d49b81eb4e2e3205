"""Tests for AuditService: ingress, publish, batch publish and payload lookup."""

from __future__ import annotations

import json

import pytest

from auditbus.config import AuditConfig
from auditbus.core.errors import ConfigurationError, EventValidationError, StoreUnavailable
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import TargetKind
from auditbus.service import AuditService


class _DownArchive:
    """Archive whose writes always fail transiently."""

    def __init__(self) -> None:
        self.attempts = 0

    def put(self, key, body, content_type="application/json"):
        self.attempts += 1
        raise StoreUnavailable("bucket unreachable")

    def get(self, key):
        raise StoreUnavailable("bucket unreachable")


class TestReceive:
    def test_assigns_id_and_time(self, service: AuditService, make_envelope):
        envelope = service.receive(make_envelope(event_id=None))
        assert envelope.id
        assert envelope.time.endswith("Z")

    def test_keeps_producer_id(self, service: AuditService, make_envelope):
        raw = make_envelope("PRODUCER-1")
        raw["time"] = "2023-11-14T22:13:20Z"
        envelope = service.receive(raw)
        assert envelope.id == "PRODUCER-1"
        assert envelope.time == "2023-11-14T22:13:20Z"

    def test_accepts_json_text_and_bytes(self, service: AuditService, make_envelope):
        text = json.dumps(make_envelope())
        assert service.receive(text).id == "E1"
        assert service.receive(text.encode()).id == "E1"

    def test_passes_envelope_through(self, service: AuditService, make_envelope):
        envelope = EventEnvelope.model_validate(make_envelope())
        assert service.receive(envelope).detail == envelope.detail

    def test_invalid_json(self, service: AuditService):
        with pytest.raises(EventValidationError, match="Invalid JSON"):
            service.receive("{broken")

    def test_undecodable_bytes(self, service: AuditService):
        with pytest.raises(EventValidationError, match="UTF-8"):
            service.receive(b"\xff\xfe{")

    def test_non_object(self, service: AuditService):
        with pytest.raises(EventValidationError, match="list"):
            service.receive("[1, 2]")

    def test_missing_source(self, service: AuditService):
        with pytest.raises(EventValidationError):
            service.receive({"detail-type": "Object State Change", "detail": {}})


class TestPublish:
    def test_insert_is_archived_indexed_and_logged(self, service: AuditService, make_envelope):
        report = service.publish(make_envelope())

        assert report.ok
        record = service.index.get("E1")
        assert record.s3_key == "2023/11/14/E1"
        assert service.fetch_payload("E1") == {"name": "x"}
        assert service.log_sink.find("E1") is not None

    def test_delete_notifies(self, service: AuditService, make_envelope):
        report = service.publish(make_envelope("D1", operation="delete", data=None))

        [notification] = report.results_for(TargetKind.NOTIFICATION)
        assert notification.topic == "test-deleted-entities"
        assert notification.message == "Entity with id B1 has been deleted by a@x"
        assert service.index.get("D1").s3_key == ""
        assert service.fetch_payload("D1") is None

    def test_notifications_queue_until_flushed(self, service: AuditService, make_envelope):
        reports = [
            service.publish(make_envelope(f"D{i}", operation="delete", data=None))
            for i in range(3)
        ]

        assert service.notifier.pending_count == 3
        flushed = service.notifier.flush()
        assert [n.event_id for n in flushed] == ["D0", "D1", "D2"]
        assert flushed == [r.results_for(TargetKind.NOTIFICATION)[0] for r in reports]
        assert service.notifier.pending_count == 0

    def test_archive_failure_reported_and_not_indexed(self, config: AuditConfig, make_envelope):
        archive = _DownArchive()
        service = AuditService(config, archive=archive, sleep=lambda _seconds: None)

        report = service.publish(make_envelope())

        [failure] = report.failures
        assert failure.event_id == "E1"
        assert failure.kind == TargetKind.WORKFLOW
        assert failure.step == "persist_payload"
        assert failure.retryable is True
        assert archive.attempts == config.retry_max_attempts
        assert service.index.get("E1") is None
        assert service.log_sink.find("E1") is not None

    def test_republish_is_idempotent(self, service: AuditService, make_envelope):
        service.publish(make_envelope())
        service.publish(make_envelope())
        assert service.index.count() == 1
        assert service.archive.list_keys() == ["2023/11/14/E1"]


class TestPublishBatch:
    def test_reports_in_input_order(self, service: AuditService, make_envelope):
        raws = [make_envelope(f"E{i}", entity_id="B1", ts=1700000000000 + i) for i in range(10)]

        reports = service.publish_batch(raws, max_workers=4)

        assert [r.event_id for r in reports] == [f"E{i}" for i in range(10)]
        assert all(r.ok for r in reports)
        assert [r.event_id for r in service.index.query_by_entity("B1")] == [
            f"E{i}" for i in range(10)
        ]

    def test_validates_before_dispatch(self, service: AuditService, make_envelope):
        with pytest.raises(EventValidationError):
            service.publish_batch([make_envelope("E1"), "{broken"])
        assert service.index.get("E1") is None


class TestConstruction:
    def test_rules_path(self, tmp_dir, make_envelope):
        rules_path = tmp_dir / "rules.json"
        rules_path.write_text(json.dumps([
            {"name": "log-only", "pattern": {}, "targets": [{"kind": "log_sink"}]}
        ]))
        config = AuditConfig(data_dir=tmp_dir / "data", rules_path=rules_path)
        service = AuditService(config)

        service.publish(make_envelope())

        assert service.index.get("E1") is None
        assert service.log_sink.find("E1") is not None

    def test_bad_rules_fail_fast(self, tmp_dir):
        rules_path = tmp_dir / "rules.json"
        rules_path.write_text(json.dumps([{"name": "x", "targets": []}]))
        with pytest.raises(ConfigurationError):
            AuditService(AuditConfig(data_dir=tmp_dir / "data", rules_path=rules_path))
