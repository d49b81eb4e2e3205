"""Tests for NotificationFormatter and NotificationTarget."""

from __future__ import annotations

import pytest

from auditbus.core.errors import ConfigurationError, FormatError
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import RuleTarget, TargetKind
from auditbus.routing.targets import BaseTarget
from auditbus.routing.targets.notification import (
    DELETED_ENTITY_TEMPLATE,
    NotificationFormatter,
    NotificationTarget,
)


class TestNotificationFormatter:
    def test_deleted_entity_message(self, make_envelope):
        envelope = EventEnvelope.model_validate(
            make_envelope(operation="delete", data=None, entity_id="B7", author="ann@x")
        )
        text = NotificationFormatter(DELETED_ENTITY_TEMPLATE).format(envelope)
        assert text == "Entity with id B7 has been deleted by ann@x"

    def test_fields(self):
        assert NotificationFormatter(DELETED_ENTITY_TEMPLATE).fields == [
            "detail.entity-id",
            "detail.author",
        ]

    def test_missing_field_fails_loudly(self, make_envelope):
        raw = make_envelope(operation="delete", data=None)
        del raw["detail"]["author"]
        with pytest.raises(FormatError, match="detail.author"):
            NotificationFormatter(DELETED_ENTITY_TEMPLATE).format(raw)

    def test_null_field_fails_loudly(self, make_envelope):
        raw = make_envelope(operation="delete", data=None)
        raw["detail"]["entity-id"] = None
        with pytest.raises(FormatError):
            NotificationFormatter(DELETED_ENTITY_TEMPLATE).format(raw)

    def test_plain_text_template(self, make_envelope):
        assert NotificationFormatter("static").format(make_envelope()) == "static"

    @pytest.mark.parametrize("template", ["${}", "${detail.}", "open ${detail.author"])
    def test_malformed_template(self, template):
        with pytest.raises(ConfigurationError):
            NotificationFormatter(template)


class TestNotificationTarget:
    def test_deliver_and_flush(self, make_envelope):
        target = NotificationTarget("test-deleted-entities")
        envelope = EventEnvelope.model_validate(make_envelope("D1", operation="delete", data=None))
        rule_target = RuleTarget(kind=TargetKind.NOTIFICATION, template=DELETED_ENTITY_TEMPLATE)

        notification = target.deliver(envelope, rule_target, "deleted-rule")

        assert notification.topic == "test-deleted-entities"
        assert notification.event_id == "D1"
        assert notification.rule_name == "deleted-rule"
        assert target.pending_count == 1
        assert target.flush() == [notification]
        assert target.pending_count == 0

    def test_missing_template_rejected(self, make_envelope):
        target = NotificationTarget("t")
        envelope = EventEnvelope.model_validate(make_envelope())
        with pytest.raises(ConfigurationError):
            target.deliver(envelope, RuleTarget(kind=TargetKind.NOTIFICATION))

    def test_protocol_compliance(self):
        target = NotificationTarget("t")
        assert isinstance(target, BaseTarget)
        assert target.target_kind == TargetKind.NOTIFICATION
