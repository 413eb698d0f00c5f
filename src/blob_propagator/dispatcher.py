"""In-process job dispatcher.

Delivers propagation jobs to the worker for their backend with at-least-once
semantics:

- Each job runs inside its own fault boundary. Whatever happens inside a
  job, including unexpected exceptions, ends up as a typed JobOutcome; the
  pool and sibling jobs are unaffected.
- Transient failures (backend outages, attempt timeouts) are re-attempted
  with exponential backoff, bounded by RetryPolicy.max_attempts.
- Each worker attempt runs on its own thread and is awaited with
  RetryPolicy.attempt_timeout, so a hung backend never takes capacity from
  another. A timed out attempt is left running; drivers are idempotent so
  the retried store converges to the same reference.
- A redelivered job whose staged file is gone but whose reference is
  already recorded succeeds without touching the backend or the catalog.
- The catalog write is retried on its own, without repeating the backend
  call that already succeeded.
"""

import concurrent.futures
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .coordinator import PropagationCoordinator
from .errors import (
    ErrorKind,
    JobTimeoutError,
    PropagatorError,
    StagingFileMissingError,
    UnknownBackendError,
    error_kind,
    is_transient,
)
from .policy import RetryPolicy
from .service_types import JobOutcome, JobState, PropagationJob
from .storage_models import BlobReference, BlobStorage
from .workers import StorageWorker

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Thread-pool dispatcher for propagation jobs."""

    def __init__(
        self,
        workers: Mapping[BlobStorage, StorageWorker],
        coordinator: PropagationCoordinator,
        retry: Optional[RetryPolicy] = None,
        max_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            workers: One worker per configured backend
            coordinator: Records successful results in the catalog
            retry: Retry policy (defaults to RetryPolicy())
            max_workers: Concurrent jobs
            sleep: Backoff sleep function (injectable for tests)
        """
        self.workers: Dict[BlobStorage, StorageWorker] = dict(workers)
        self.coordinator = coordinator
        self.retry = retry or RetryPolicy()
        self.sleep = sleep
        self._jobs = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="propagation-job")

    def __enter__(self) -> "JobDispatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self, wait: bool = True) -> None:
        """Shut down the job pool. Abandoned attempts finish on their own threads."""
        self._jobs.shutdown(wait=wait)

    # === Submission ===

    def submit(self, job: PropagationJob) -> "Future[JobOutcome]":
        """Queue a job. The future always resolves to a JobOutcome."""
        return self._jobs.submit(self.run, job)

    def dispatch(self, jobs: Iterable[PropagationJob]) -> List[JobOutcome]:
        """Run jobs concurrently and wait for all outcomes, in submission order."""
        futures = [self.submit(job) for job in jobs]
        return [future.result() for future in futures]

    def jobs_for_blob(
        self, versioned_hash: str, storages: Optional[Iterable[BlobStorage]] = None
    ) -> List[PropagationJob]:
        """One job per target backend (all configured backends by default)."""
        targets = list(storages) if storages is not None else list(self.workers)
        return [PropagationJob(versioned_hash=versioned_hash, storage=s) for s in targets]

    def propagate_blob(
        self, versioned_hash: str, storages: Optional[Iterable[BlobStorage]] = None
    ) -> List[JobOutcome]:
        """Propagate one staged blob to its target backends and wait."""
        return self.dispatch(self.jobs_for_blob(versioned_hash, storages))

    # === Execution ===

    def run(self, job: PropagationJob) -> JobOutcome:
        """
        Execute a job to a terminal state inside a fault boundary.

        Never raises (except BaseExceptions like KeyboardInterrupt).
        """
        try:
            return self._run(job)
        except Exception as e:
            # Bug in the dispatch path itself; still a typed outcome
            logger.exception("Unexpected failure propagating blob %s", job.versioned_hash)
            return self._dead(job, e)

    def _run(self, job: PropagationJob) -> JobOutcome:
        worker = self.workers.get(job.storage)
        if worker is None:
            return self._dead(job, UnknownBackendError(job.storage.value))

        while True:
            job.attempts += 1
            job.state = JobState.RUNNING
            logger.debug(
                "Propagating blob %s to %s storage (attempt %d/%d)",
                job.versioned_hash, job.storage.value, job.attempts, self.retry.max_attempts,
            )
            try:
                reference = self._attempt(worker, job)
            except StagingFileMissingError as e:
                recorded = self._recorded_reference(job)
                if recorded is None:
                    return self._dead(job, e)
                # Redelivery of a job whose staged file was already cleaned up
                logger.info(
                    "Blob %s already recorded in %s storage; nothing to do",
                    job.versioned_hash, job.storage.value,
                )
                return self._succeeded(job, recorded)
            except Exception as e:
                if not self._should_retry(job, e):
                    return self._dead(job, e)
                continue

            try:
                self._record(job, reference)
            except Exception as e:
                return self._dead(job, e)
            self._cleanup(job)

            logger.info(
                "Propagated blob %s to %s storage", job.versioned_hash, job.storage.value
            )
            return self._succeeded(job, reference)

    def _recorded_reference(self, job: PropagationJob) -> Optional[BlobReference]:
        """Reference already in the catalog for the job's (hash, storage), if any."""
        try:
            row = self.coordinator.catalog.get_reference(job.versioned_hash, job.storage)
        except PropagatorError as e:
            logger.warning(
                "Could not look up blob %s in catalog: %s", job.versioned_hash, e
            )
            return None
        return row.to_reference() if row is not None else None

    def _succeeded(self, job: PropagationJob, reference: BlobReference) -> JobOutcome:
        job.state = JobState.SUCCEEDED
        return JobOutcome(
            versioned_hash=job.versioned_hash,
            storage=job.storage,
            state=job.state,
            attempts=job.attempts,
            reference=reference,
        )

    def _attempt(self, worker: StorageWorker, job: PropagationJob) -> BlobReference:
        """Run the worker once on a dedicated thread, bounded by the attempt timeout.

        The thread starts immediately, so the timeout measures the attempt
        itself. A timed out attempt keeps its own thread and never delays
        attempts for other backends.
        """
        future: "Future[BlobReference]" = Future()

        def target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(worker.process(job))
            except Exception as e:
                future.set_exception(e)

        thread = threading.Thread(
            target=target,
            name=f"propagation-attempt-{job.storage.value}",
            daemon=True,
        )
        thread.start()
        try:
            return future.result(timeout=self.retry.attempt_timeout)
        except concurrent.futures.TimeoutError:
            raise JobTimeoutError(
                job.versioned_hash, job.storage.value, self.retry.attempt_timeout
            ) from None

    def _record(self, job: PropagationJob, reference: BlobReference) -> None:
        """Record the reference, re-attempting transient catalog failures only."""
        attempt = 0
        while True:
            attempt += 1
            try:
                self.coordinator.record(job.versioned_hash, reference)
                break
            except Exception as e:
                if not (is_transient(e) and self.retry.should_retry(attempt)):
                    raise
                delay = self.retry.delay_for(attempt)
                logger.warning(
                    "Recording blob %s in catalog failed (%s); retrying in %.1fs",
                    job.versioned_hash, e, delay,
                )
                self.sleep(delay)

    def _cleanup(self, job: PropagationJob) -> None:
        """Remove the staged file if the blob is now fully propagated."""
        if not self.coordinator.cleanup.remove_on_success:
            return
        try:
            self.coordinator.maybe_cleanup(job.versioned_hash)
        except (OSError, PropagatorError) as e:
            # Left for the periodic sweep
            logger.warning("Could not clean up staged blob %s: %s", job.versioned_hash, e)

    def _should_retry(self, job: PropagationJob, error: Exception) -> bool:
        """Decide FAILED (retry) vs DEAD after an attempt failed."""
        if not is_transient(error):
            return False
        if not self.retry.should_retry(job.attempts):
            logger.error(
                "Giving up on blob %s in %s storage after %d attempts",
                job.versioned_hash, job.storage.value, job.attempts,
            )
            return False

        job.state = JobState.FAILED
        delay = self.retry.delay_for(job.attempts)
        logger.warning(
            "Attempt %d for blob %s in %s storage failed: %s; retrying in %.1fs",
            job.attempts, job.versioned_hash, job.storage.value, error, delay,
        )
        self.sleep(delay)
        return True

    def _dead(self, job: PropagationJob, error: Exception) -> JobOutcome:
        job.state = JobState.DEAD
        kind = error_kind(error)
        if kind == ErrorKind.INTERNAL:
            logger.error(
                "Blob %s propagation to %s storage crashed: %r",
                job.versioned_hash, job.storage.value, error,
            )
        else:
            logger.error(
                "Blob %s propagation to %s storage is dead (%s): %s",
                job.versioned_hash, job.storage.value, kind.value, error,
            )
        return JobOutcome(
            versioned_hash=job.versioned_hash,
            storage=job.storage,
            state=job.state,
            attempts=job.attempts,
            error_kind=kind,
            error=str(error) or type(error).__name__,
        )
