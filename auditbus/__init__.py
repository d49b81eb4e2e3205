"""Auditbus: audit-event ingestion pipeline.

Producers publish "object state changed" events onto the bus.  Each event
is evaluated against a static set of content-based match rules and fanned
out to the rule targets:

  - the Ingestion Workflow (archive payload, then index metadata)
  - the append-only log sink (verbatim envelope)
  - the deletion notification topic (formatted text)
"""

__version__ = "0.2.0"
__description__ = (
    "Audit-event ingestion pipeline with content-based routing and durable archival"
)

from auditbus.config import AuditConfig
from auditbus.routing.engine import RoutingEngine
from auditbus.service import AuditService

__all__ = ["AuditConfig", "AuditService", "RoutingEngine", "__version__"]
