"""Runtime configuration: env-driven, immutable once loaded.

Centralized config using pydantic-settings. Reads from a .env file and
AUDITBUS_* environment variables. The resulting object is frozen and is
injected into the service at startup.
"""

from __future__ import annotations

from datetime import timezone, tzinfo
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def resolve_timezone(name: str) -> tzinfo:
    """Return the tzinfo for *name*; ``UTC`` never needs the tz database."""
    if name.upper() in {"UTC", "Z", "ETC/UTC"}:
        return timezone.utc
    return ZoneInfo(name)


class AuditConfig(BaseSettings):
    """Process-wide configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export AUDITBUS_LOGICAL_ENV=staging
        export AUDITBUS_LOG_LEVEL=DEBUG
        export AUDITBUS_INDEX_PATH=/data/audit-index.db

    Or via .env file::

        AUDITBUS_LOGICAL_ENV=prod
        AUDITBUS_ACCOUNT_ID=123456789012
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AUDITBUS_",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Environment
    logical_env: str = "dev"
    account_id: str = "local"
    log_level: str = "INFO"

    # Storage
    data_dir: Path = Path(".auditbus")
    archive_path: Path | None = None
    index_path: Path | None = None
    log_sink_path: Path | None = None
    rules_path: Path | None = None

    # Key derivation reference zone (write and read paths must agree)
    key_timezone: str = "UTC"

    # Workflow execution
    workflow_timeout_seconds: float = Field(default=30.0, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_strategy: Literal["none", "fixed", "exponential"] = "exponential"
    retry_backoff_base_seconds: float = Field(default=0.2, ge=0)
    max_workers: int = Field(default=8, ge=1)

    @field_validator("key_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            resolve_timezone(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value!r}") from exc
        return value

    @field_validator("logical_env")
    @classmethod
    def _check_env(cls, value: str) -> str:
        if not value or not value.replace("-", "").isalnum():
            raise ValueError(
                f"logical_env must be non-empty alphanumeric (dashes allowed), got {value!r}"
            )
        return value

    # ------------------------------------------------------------------
    # Resolved storage locations
    # ------------------------------------------------------------------

    @property
    def resolved_archive_path(self) -> Path:
        return self.archive_path or self.data_dir / "archive"

    @property
    def resolved_index_path(self) -> Path:
        return self.index_path or self.data_dir / "index.db"

    @property
    def resolved_log_sink_path(self) -> Path:
        return self.log_sink_path or self.data_dir / "events.log.jsonl"

    @property
    def tz(self) -> tzinfo:
        """The reference zone used by key derivation."""
        return resolve_timezone(self.key_timezone)

    # ------------------------------------------------------------------
    # Resource names, all scoped by the logical environment
    # ------------------------------------------------------------------

    @property
    def bus_name(self) -> str:
        return f"{self.logical_env}-audit-event-bus"

    @property
    def bucket_name(self) -> str:
        return f"{self.logical_env}-audit-events-{self.account_id}"

    @property
    def table_name(self) -> str:
        return f"{self.logical_env}-audit-events"

    @property
    def log_group_name(self) -> str:
        return f"/aws/events/{self.logical_env}-audit-events"

    @property
    def topic_name(self) -> str:
        return f"{self.logical_env}-deleted-entities"

    @property
    def workflow_name(self) -> str:
        return f"{self.logical_env}-log-audit-event"

    def resource_names(self) -> dict[str, str]:
        """Return every derived resource name keyed by resource kind."""
        return {
            "bus": self.bus_name,
            "bucket": self.bucket_name,
            "table": self.table_name,
            "log_group": self.log_group_name,
            "topic": self.topic_name,
            "workflow": self.workflow_name,
        }
