"""Storage-related data models for blob propagation.

This module contains the backend identifier enumeration, the reference value
produced by workers, and the row models of the reference catalog.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BlobStorage(str, Enum):
    """Durable backend a blob's bytes can be propagated to."""
    OBJECT_STORE = "object-store"  # Cloud object storage (Azure Blob Storage)
    RELATIONAL = "relational"      # Bytes kept in a relational column
    SWARM = "swarm"                # Peer-to-peer content network
    FILESYSTEM = "filesystem"      # Local directory store

    @classmethod
    def parse(cls, value: str) -> "BlobStorage":
        """Parse a backend name, accepting enum values or member names."""
        try:
            return cls(value.lower())
        except ValueError:
            pass
        try:
            return cls[value.upper().replace("-", "_")]
        except KeyError:
            names = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown blob storage {value!r} (expected one of: {names})")


class BlobReference(BaseModel):
    """Where a blob's bytes can be read back from."""
    model_config = ConfigDict(frozen=True)

    storage: BlobStorage
    reference: str  # Opaque, backend-specific

    @field_validator("reference")
    @classmethod
    def validate_reference(cls, v: str) -> str:
        if not v:
            raise ValueError("reference cannot be empty")
        return v


class Blob(BaseModel):
    """Blob row: one per versioned hash."""
    versioned_hash: str
    commitment: str
    size: int
    first_block_number: Optional[int] = None  # Known only once included in a block
    inserted_at: datetime
    updated_at: datetime


class BlobDataStorageReference(BaseModel):
    """Catalog row: unique per (blob_hash, blob_storage)."""
    blob_hash: str
    blob_storage: BlobStorage
    data_reference: str

    def to_reference(self) -> BlobReference:
        return BlobReference(storage=self.blob_storage, reference=self.data_reference)


class StoreBlobResult(BaseModel):
    """Per-backend outcome of a synchronous store across all backends.

    A partial failure is a normal result: every backend's success is
    independently useful.
    """
    versioned_hash: str
    references: List[BlobReference] = Field(default_factory=list)
    failures: Dict[BlobStorage, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True when every backend stored the blob."""
        return not self.failures

    @property
    def partial(self) -> bool:
        return bool(self.references) and bool(self.failures)

    def reference_for(self, storage: BlobStorage) -> Optional[BlobReference]:
        for ref in self.references:
            if ref.storage == storage:
                return ref
        return None
