"""Service layer types for blob-propagator."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorKind
from .storage_models import BlobReference, BlobStorage


class JobState(str, Enum):
    """Lifecycle of one (blob, backend) propagation job."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"  # Terminal: reference recorded in the catalog
    FAILED = "failed"        # Transient: eligible for another attempt
    DEAD = "dead"            # Terminal: needs operator intervention

    @property
    def terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.DEAD)


class PropagationJob(BaseModel):
    """Request to store one blob's bytes in one backend.

    Accepts the wire payload ``{"versionedHash": ...}``.
    """
    model_config = ConfigDict(populate_by_name=True)

    versioned_hash: str = Field(alias="versionedHash")
    storage: BlobStorage
    attempts: int = 0
    state: JobState = JobState.PENDING


class JobOutcome(BaseModel):
    """Typed result of a job, whatever happened inside it."""
    versioned_hash: str
    storage: BlobStorage
    state: JobState
    attempts: int
    reference: Optional[BlobReference] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.SUCCEEDED


class SweepReport(BaseModel):
    """Result of a staging sweep."""
    examined: int
    removed: List[str] = Field(default_factory=list)
    retained_unstored: List[str] = Field(default_factory=list)  # No backend has it yet
    retained_recent: List[str] = Field(default_factory=list)    # Within grace period
