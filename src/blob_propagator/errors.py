"""Custom exceptions for blob-propagator.

Every error carries an ``ErrorKind`` plus the structured context it was
raised with (hash, storage, reference). Callers classify failures by kind;
the message string is derived from the context and is informational.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Discrete classification of propagation failures."""
    STAGING_FILE_MISSING = "staging-file-missing"
    BACKEND_UNAVAILABLE = "backend-unavailable"
    REFERENCE_NOT_FOUND = "reference-not-found"
    UNKNOWN_BACKEND = "unknown-backend"
    REFERENCE_CONFLICT = "reference-conflict"
    INVALID_HASH = "invalid-hash"
    CONFIG = "config"
    TIMEOUT = "timeout"
    CATALOG_UNAVAILABLE = "catalog-unavailable"
    INTERNAL = "internal"


class PropagatorError(RuntimeError):
    """Base class for all propagation errors."""
    kind: ErrorKind = ErrorKind.INTERNAL

    # Only transient errors are re-attempted by the dispatcher
    transient: bool = False


# Staging Errors
class StagingFileMissingError(PropagatorError):
    """Staged blob data is absent at read time."""
    kind = ErrorKind.STAGING_FILE_MISSING

    def __init__(self, versioned_hash: str):
        self.versioned_hash = versioned_hash
        super().__init__(
            f"couldn't read blob {versioned_hash} data file: file is missing"
        )


class InvalidHashError(PropagatorError, ValueError):
    """Hash cannot be used as a staging or catalog key."""
    kind = ErrorKind.INVALID_HASH

    def __init__(self, versioned_hash: str):
        self.versioned_hash = versioned_hash
        super().__init__(f"Invalid blob hash: {versioned_hash!r}")


# Backend Errors
class BackendError(PropagatorError):
    """Base class for errors raised by a storage backend."""

    def __init__(self, storage: str, message: str):
        self.storage = storage
        super().__init__(message)


class BackendUnavailableError(BackendError):
    """Transient network or backend outage."""
    kind = ErrorKind.BACKEND_UNAVAILABLE
    transient = True

    def __init__(self, storage: str, detail: str = ""):
        self.detail = detail
        message = f"{storage} storage unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(storage, message)


class ReferenceNotFoundError(BackendError):
    """Reference is invalid or missing at the backend."""
    kind = ErrorKind.REFERENCE_NOT_FOUND

    def __init__(self, storage: str, reference: str):
        self.reference = reference
        super().__init__(storage, f"Blob reference not found in {storage} storage: {reference}")


class UnknownBackendError(PropagatorError):
    """Reference names a backend with no configured driver."""
    kind = ErrorKind.UNKNOWN_BACKEND

    def __init__(self, storage: str):
        self.storage = storage
        super().__init__(f"No driver configured for {storage} storage")


# Integrity Errors
class ReferenceConflictError(PropagatorError):
    """Catalog already holds a different reference for (hash, storage).

    Indicates a non-idempotent driver. The existing row is never overwritten.
    """
    kind = ErrorKind.REFERENCE_CONFLICT

    def __init__(self, versioned_hash: str, storage: str, existing: str, new: str):
        self.versioned_hash = versioned_hash
        self.storage = storage
        self.existing = existing
        self.new = new
        super().__init__(
            f"Reference conflict for blob {versioned_hash} in {storage} storage\n"
            f"  Recorded: {existing}\n"
            f"  Got:      {new}\n"
            f"The {storage} driver returned a different reference for the same blob."
        )


class JobTimeoutError(PropagatorError):
    """A job attempt exceeded the dispatcher's attempt timeout."""
    kind = ErrorKind.TIMEOUT
    transient = True

    def __init__(self, versioned_hash: str, storage: str, timeout: float):
        self.versioned_hash = versioned_hash
        self.storage = storage
        self.timeout = timeout
        super().__init__(
            f"Propagation of blob {versioned_hash} to {storage} storage "
            f"timed out after {timeout:g}s"
        )


# Catalog Errors
class CatalogUnavailableError(PropagatorError):
    """Catalog database is locked or unreachable."""
    kind = ErrorKind.CATALOG_UNAVAILABLE
    transient = True

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Catalog unavailable: {detail}")


# Configuration Errors
class ConfigError(PropagatorError):
    """Invalid or incomplete configuration."""
    kind = ErrorKind.CONFIG


class MissingCredentialsError(ConfigError):
    """Backend credentials not present in the environment."""

    def __init__(self, storage: str, env_var: str):
        self.storage = storage
        self.env_var = env_var
        super().__init__(
            f"Set {env_var} to enable {storage} storage"
        )


def error_kind(exc: BaseException) -> ErrorKind:
    """Classify any exception into an ErrorKind."""
    if isinstance(exc, PropagatorError):
        return exc.kind
    return ErrorKind.INTERNAL


def is_transient(exc: Optional[BaseException]) -> bool:
    """Check whether an exception should be re-attempted."""
    return isinstance(exc, PropagatorError) and exc.transient
