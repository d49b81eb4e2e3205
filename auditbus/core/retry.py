"""Retry-with-backoff policy for re-running failed workflow instances."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BackoffStrategy = Literal["none", "fixed", "exponential"]


class RetryPolicy(BaseModel):
    """How many times a failed workflow is re-run, and how long to wait.

    Only failures flagged ``retryable`` are re-run.  Every attempt starts
    the saga from ``START``.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_strategy: BackoffStrategy = "exponential"
    backoff_base_seconds: float = Field(default=0.2, ge=0)

    def should_retry(self, attempt: int) -> bool:
        """Return whether another attempt is permitted after *attempt*."""
        return attempt < self.max_attempts

    def compute_backoff_delay(self, retry_count: int) -> float:
        """Seconds to wait before retry number *retry_count* (1-based)."""
        if retry_count <= 0:
            raise ValueError("retry_count must be >= 1.")
        if self.backoff_strategy == "none":
            return 0.0
        if self.backoff_strategy == "fixed":
            return self.backoff_base_seconds
        return self.backoff_base_seconds * (2 ** (retry_count - 1))
