"""Error taxonomy shared by the stores, the router and the workflow.

Every error carries a ``retryable`` flag.  The upstream delivery
mechanism retries only retryable failures; everything else is surfaced
for manual inspection.
"""

from __future__ import annotations


class AuditBusError(RuntimeError):
    """Base class for every auditbus failure."""

    retryable: bool = False


class ConfigurationError(AuditBusError, ValueError):
    """Raised at load time for a malformed rule set or target definition."""


class EventValidationError(AuditBusError, ValueError):
    """Raised when an inbound envelope or its detail block is malformed."""


class FormatError(AuditBusError):
    """Raised when a notification template references an absent field.

    The rule predicate should have excluded such an event, so this is a
    contract violation and is never recovered from.
    """


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class StoreError(AuditBusError):
    """Base class for Blob Archive and Metadata Index failures."""


class StoreUnavailable(StoreError):
    """Transient infrastructure failure.  Safe to retry."""

    retryable = True


class PermissionDenied(StoreError):
    """The store refused the operation.  Not retried automatically."""


class ConstraintViolation(StoreError):
    """The index rejected a record.  Not retried automatically."""


class ObjectNotFound(StoreError):
    """No archive object exists under the requested key.

    An expected outcome for payload lookups, not an ingestion failure.
    """


class InvalidKey(StoreError, ValueError):
    """The key does not name exactly one archive object.  Not retried."""
