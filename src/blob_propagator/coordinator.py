"""Propagation coordinator: records worker results and cleans up staging.

The coordinator bridges worker output to the reference catalog. It does not
retry workers; re-attempts are the dispatcher's responsibility.
"""

import logging
from typing import Iterable, Optional

from .catalog import BlobCatalog
from .errors import StagingFileMissingError
from .policy import CleanupPolicy
from .service_types import PropagationJob, SweepReport
from .staging import BlobFileManager
from .storage_models import BlobDataStorageReference, BlobReference, BlobStorage
from .workers import StorageWorker

logger = logging.getLogger(__name__)


class PropagationCoordinator:
    """Upserts references into the catalog and removes fully propagated staged files."""

    def __init__(
        self,
        catalog: BlobCatalog,
        staging: BlobFileManager,
        required: Iterable[BlobStorage],
        cleanup: Optional[CleanupPolicy] = None,
    ):
        """
        Args:
            catalog: Reference catalog
            staging: Staging file store
            required: Backends that must all hold a blob before its staged
                file is removed
            cleanup: Cleanup policy (defaults to CleanupPolicy())
        """
        self.catalog = catalog
        self.staging = staging
        self.required = list(required)
        self.cleanup = cleanup or CleanupPolicy()

    def record(self, versioned_hash: str, reference: BlobReference) -> BlobDataStorageReference:
        """
        Upsert the (hash, backend) -> reference catalog row.

        Raises:
            ReferenceConflictError: If a different reference is already
                recorded; the recorded one is kept
        """
        row, created = self.catalog.upsert_reference(
            versioned_hash, reference.storage, reference.reference
        )
        if created:
            logger.info(
                "Recorded blob %s in %s storage: %s",
                versioned_hash, reference.storage.value, reference.reference,
            )
        else:
            logger.debug(
                "Blob %s already recorded in %s storage", versioned_hash, reference.storage.value
            )
        return row

    def propagate(self, worker: StorageWorker, job: PropagationJob) -> BlobReference:
        """
        Run one worker on a job and record its result.

        Returns:
            Reference produced by the worker

        Raises:
            Whatever the worker or the catalog raises; nothing is recorded
            when the worker fails
        """
        reference = worker.process(job)
        self.record(job.versioned_hash, reference)
        if self.cleanup.remove_on_success:
            self.maybe_cleanup(job.versioned_hash)
        return reference

    def is_fully_propagated(self, versioned_hash: str) -> bool:
        """Check whether every required backend has a catalog row for the blob."""
        if not self.required:
            return False
        recorded = {row.blob_storage for row in self.catalog.list_references(versioned_hash)}
        return all(storage in recorded for storage in self.required)

    def maybe_cleanup(self, versioned_hash: str) -> bool:
        """
        Remove the staged file once all required backends have confirmed.

        Returns:
            True if the staged file was removed by this call
        """
        if not self.is_fully_propagated(versioned_hash):
            return False
        removed = self.staging.remove(versioned_hash)
        if removed:
            logger.info("Blob %s fully propagated; removed staged file", versioned_hash)
        return removed

    def sweep(self, grace_seconds: Optional[float] = None) -> SweepReport:
        """
        Periodic staging cleanup.

        Fully propagated files are removed. Files stored by at least one
        backend are removed once older than the grace period, so a
        permanently failing backend can't pin them forever. Files no backend
        has stored are always kept.

        Args:
            grace_seconds: Overrides the policy's grace period
        """
        grace = self.cleanup.grace_seconds if grace_seconds is None else grace_seconds
        hashes = self.staging.list_hashes()
        report = SweepReport(examined=len(hashes))

        for versioned_hash in hashes:
            rows = self.catalog.list_references(versioned_hash)
            if not rows:
                report.retained_unstored.append(versioned_hash)
                continue

            recorded = {row.blob_storage for row in rows}
            complete = bool(self.required) and all(s in recorded for s in self.required)
            if not complete:
                try:
                    age = self.staging.age_seconds(versioned_hash)
                except StagingFileMissingError:
                    continue
                if age < grace:
                    report.retained_recent.append(versioned_hash)
                    continue
                logger.warning(
                    "Removing staged blob %s after %.0fs with only %s storage confirmed",
                    versioned_hash, age, ", ".join(sorted(s.value for s in recorded)),
                )

            if self.staging.remove(versioned_hash):
                report.removed.append(versioned_hash)

        if report.retained_unstored:
            logger.warning(
                "%d staged blob(s) not stored by any backend yet", len(report.retained_unstored)
            )
        logger.info(
            "Staging sweep: examined %d, removed %d", report.examined, len(report.removed)
        )
        return report
