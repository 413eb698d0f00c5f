"""Retry and cleanup policies for propagation jobs."""

from pydantic import BaseModel, Field, model_validator


class RetryPolicy(BaseModel):
    """
    Policy for re-attempting transient job failures.

    Only transient failures (backend outages, attempt timeouts) are retried.
    Delays grow exponentially from ``backoff_seconds`` and are capped at
    ``max_backoff_seconds``.
    """
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    max_backoff_seconds: float = Field(default=30.0, ge=0)
    attempt_timeout: float = Field(default=60.0, gt=0)  # Per attempt, in seconds

    @model_validator(mode='after')
    def validate_backoff_cap(self):
        """Ensure the cap is not below the initial delay."""
        if self.max_backoff_seconds < self.backoff_seconds:
            raise ValueError("max_backoff_seconds must be >= backoff_seconds")
        return self

    def delay_for(self, attempt: int) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based)

        Returns:
            Seconds to wait before re-attempting
        """
        delay = self.backoff_seconds * (self.backoff_factor ** max(attempt - 1, 0))
        return min(delay, self.max_backoff_seconds)

    def should_retry(self, attempt: int) -> bool:
        """Check if another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_attempts


class CleanupPolicy(BaseModel):
    """
    Policy for removing staged files.

    Staged files are removed as soon as every required backend has a catalog
    row. The periodic sweep removes files older than ``grace_seconds`` that
    have at least one catalog row; files nothing has stored yet are kept.
    """
    grace_seconds: float = Field(default=3600.0, ge=0)
    remove_on_success: bool = True
