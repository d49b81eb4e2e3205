"""AuditService: the central coordinator of the ingestion pipeline.

Wires the configuration, Blob Archive, Metadata Index, RoutingEngine,
TargetDispatcher and the three targets (Ingestion Workflow, log sink,
notification topic) together, and provides the bus ingress: validating
inbound envelopes and assigning their id and ingestion time.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from auditbus.config import AuditConfig
from auditbus.core.blob_archive import BlobArchive, FileBlobArchive
from auditbus.core.errors import EventValidationError, ObjectNotFound
from auditbus.core.metadata_index import SqliteMetadataIndex
from auditbus.core.retry import RetryPolicy
from auditbus.core.workflow import IngestionWorkflow
from auditbus.models.events import EventEnvelope
from auditbus.models.rules import MatchRule
from auditbus.routing.dispatcher import DispatchReport, TargetDispatcher
from auditbus.routing.engine import RoutingEngine
from auditbus.routing.rules import default_rules, load_rules
from auditbus.routing.targets.log_sink import JsonlLogSink
from auditbus.routing.targets.notification import NotificationTarget
from auditbus.routing.targets.workflow import WorkflowTarget

logger = logging.getLogger(__name__)

RawEvent = EventEnvelope | dict[str, Any] | str | bytes


class AuditService:
    """The assembled pipeline.

    Every collaborator can be injected; anything omitted is built from
    *config*.

    Notifications are queued on ``notifier`` until the transport drains
    them.  Callers must call ``notifier.flush()`` after publishing, or the
    queue keeps growing.  Each report also carries its own notifications
    (``report.results_for(TargetKind.NOTIFICATION)``).

    Parameters
    ----------
    config:
        Immutable runtime configuration.  Uses defaults if not provided.
    archive, index:
        Store implementations for the Ingestion Workflow.
    log_sink, notifier:
        Log and notification targets.
    rules:
        Rule set.  Defaults to ``config.rules_path`` if set, otherwise the
        built-in audit rules.
    sleep:
        Sleeper used between workflow retries.
    """

    def __init__(
        self,
        config: AuditConfig | None = None,
        *,
        archive: BlobArchive | None = None,
        index: SqliteMetadataIndex | None = None,
        log_sink: JsonlLogSink | None = None,
        notifier: NotificationTarget | None = None,
        rules: Iterable[MatchRule] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or AuditConfig()
        cfg = self.config

        # Stores
        self.archive = archive or FileBlobArchive(cfg.resolved_archive_path)
        self.index = index or SqliteMetadataIndex(cfg.resolved_index_path)

        # Routing fails fast on a malformed rule set
        if rules is None:
            rules = load_rules(cfg.rules_path) if cfg.rules_path else default_rules(cfg)
        self.engine = RoutingEngine(rules)

        # Targets
        self.workflow = IngestionWorkflow(
            self.archive,
            self.index,
            tz=cfg.tz,
            timeout_seconds=cfg.workflow_timeout_seconds,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=cfg.retry_max_attempts,
            backoff_strategy=cfg.retry_backoff_strategy,
            backoff_base_seconds=cfg.retry_backoff_base_seconds,
        )
        self.log_sink = log_sink or JsonlLogSink(cfg.resolved_log_sink_path)
        self.notifier = notifier or NotificationTarget(cfg.topic_name)

        self.dispatcher = TargetDispatcher()
        self.dispatcher.register_target(
            WorkflowTarget(self.workflow, self.retry_policy, sleep=sleep)
        )
        self.dispatcher.register_target(self.log_sink)
        self.dispatcher.register_target(self.notifier)

    # ------------------------------------------------------------------
    # Bus ingress
    # ------------------------------------------------------------------

    def receive(self, raw: RawEvent) -> EventEnvelope:
        """Validate an inbound envelope and assign its id and time.

        Producer-supplied ids are kept, so a redelivered event keeps its
        identity and re-ingests idempotently.
        """
        if isinstance(raw, EventEnvelope):
            envelope = raw
        else:
            if isinstance(raw, bytes):
                try:
                    raw = raw.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise EventValidationError(f"Envelope is not UTF-8 text: {exc}") from exc
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise EventValidationError(f"Invalid JSON: {exc}") from exc
            if not isinstance(raw, dict):
                raise EventValidationError(
                    f"Envelope must be a JSON object, got {type(raw).__name__}"
                )
            try:
                envelope = EventEnvelope.model_validate(raw)
            except ValidationError as exc:
                raise EventValidationError(f"Envelope validation failed: {exc}") from exc

        update: dict[str, str] = {}
        if not envelope.id:
            update["id"] = str(uuid.uuid4())
        if not envelope.time:
            update["time"] = (
                datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
            )
        return envelope.model_copy(update=update) if update else envelope

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def publish(self, raw: RawEvent) -> DispatchReport:
        """Receive, route and dispatch one event.

        Notifications produced for the event stay queued on ``notifier``
        until flushed.
        """
        envelope = self.receive(raw)
        instructions = self.engine.route(envelope)
        report = self.dispatcher.dispatch(envelope, instructions)
        logger.info(
            "Event %s (%s from %s): %d delivered, %d failed",
            envelope.id,
            envelope.detail_type,
            envelope.source,
            len(report.delivered),
            len(report.failures),
        )
        return report

    def publish_batch(
        self, raws: Iterable[RawEvent], *, max_workers: int | None = None
    ) -> list[DispatchReport]:
        """Publish independent events concurrently.

        Every envelope is validated before any is dispatched.  Reports are
        returned in input order.
        """
        envelopes = [self.receive(raw) for raw in raws]
        workers = max_workers or self.config.max_workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="auditbus") as pool:
            return list(pool.map(self.publish, envelopes))

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def fetch_payload(self, event_id: str) -> Any | None:
        """Return the archived payload of an indexed event.

        Returns None when the event is not indexed or carried no data.
        A blob without an index record is never returned: only indexed
        events count as archived.
        """
        record = self.index.get(event_id)
        if record is None or not record.s3_key:
            return None
        try:
            return json.loads(self.archive.get(record.s3_key))
        except ObjectNotFound:
            logger.warning(
                "Index record %s references missing archive key %s",
                event_id,
                record.s3_key,
            )
            return None
