"""Background proof jobs.

A job is created ``pending`` and moves exactly once to ``done`` or ``error``.
The job table is one map shared by the request handlers and the worker
threads, guarded by a reader/writer lock; job records are immutable and are
replaced, never edited, on transition.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Callable, Iterator
from uuid import uuid4

from domain.ledger import TaxInput
from services.prover import ProofArtifacts, ProvingBackend

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "proof timed out"


class JobStatus(StrEnum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


@dataclass(frozen=True)
class Job:
    id: str
    status: JobStatus
    created_at: float
    result: ProofArtifacts | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.PENDING


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writing or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class JobStore:
    def __init__(
        self,
        *,
        pending_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = ReadWriteLock()
        self._pending_timeout = pending_timeout_seconds
        self._clock = clock

    def create(self) -> Job:
        job = Job(id=uuid4().hex, status=JobStatus.PENDING, created_at=self._clock())
        with self._lock.write():
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Job:
        job = self._read(job_id)
        if job.status == JobStatus.PENDING and self._expired(job):
            self.fail(job_id, TIMEOUT_MESSAGE)
            job = self._read(job_id)
        return job

    def complete(self, job_id: str, result: ProofArtifacts) -> bool:
        return self._transition(job_id, JobStatus.DONE, result=result)

    def fail(self, job_id: str, message: str) -> bool:
        return self._transition(job_id, JobStatus.ERROR, error=message)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._jobs)

    def _read(self, job_id: str) -> Job:
        with self._lock.read():
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _expired(self, job: Job) -> bool:
        if self._pending_timeout is None:
            return False
        return self._clock() - job.created_at > self._pending_timeout

    def _transition(
        self,
        job_id: str,
        status: JobStatus,
        *,
        result: ProofArtifacts | None = None,
        error: str | None = None,
    ) -> bool:
        with self._lock.write():
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                logger.warning("Ignoring %s for job %s already in state %s", status, job_id, job.status)
                return False
            self._jobs[job_id] = replace(job, status=status, result=result, error=error)
        return True


class AttestationJobRunner:
    def __init__(
        self,
        prover: ProvingBackend,
        store: JobStore,
        executor: Executor | None = None,
        *,
        max_workers: int = 2,
    ) -> None:
        self.prover = prover
        self.store = store
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="prover")

    def submit(self, tax_input: TaxInput) -> str:
        job = self.store.create()
        try:
            self._executor.submit(self._run, job.id, tax_input)
        except RuntimeError as exc:
            self.store.fail(job.id, f"could not schedule proof: {exc}")
            raise
        logger.info("Queued proof job %s rows=%d", job.id, len(tax_input.ledger))
        return job.id

    def status(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def prove_now(self, tax_input: TaxInput) -> ProofArtifacts:
        return self.prover.prove(tax_input)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job_id: str, tax_input: TaxInput) -> None:
        job = self.store.get(job_id)
        if job.is_terminal:
            logger.warning("Skipping proof job %s, already %s", job_id, job.status)
            return
        started = time.perf_counter()
        try:
            artifacts = self.prover.prove(tax_input)
        except Exception as exc:
            logger.exception("Proof job %s failed", job_id)
            self.store.fail(job_id, str(exc) or type(exc).__name__)
            return

        if self.store.complete(job_id, artifacts):
            logger.info("Proof job %s done in %.2fs", job_id, time.perf_counter() - started)
        else:
            logger.warning("Discarded late result for proof job %s", job_id)


__all__ = ["AttestationJobRunner", "Job", "JobNotFoundError", "JobStatus", "JobStore", "ReadWriteLock"]
