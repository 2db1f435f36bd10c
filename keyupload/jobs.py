"""Job scheduling for periodic and deferred background work.

:class:`JobScheduler` is the interface the cover traffic scheduler consumes: a
unique periodic job and a unique one-shot delayed job, each enqueued under an
existing-work policy. :class:`AsyncioJobScheduler` runs them in-process on the
event loop.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable

import structlog

from keyupload.connectivity import Connectivity
from keyupload.executors import UploadExecutors

logger = structlog.get_logger(__name__)


class JobResult(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class ExistingWorkPolicy(str, Enum):
    # Leave a pending job with the same name alone and drop the new request.
    KEEP = "KEEP"
    # Cancel a pending job with the same name and enqueue the new one.
    REPLACE = "REPLACE"


class JobStatus:
    ENQUEUED = "ENQUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


JobFn = Callable[[], Awaitable[JobResult]]


@dataclass
class JobRecord:
    name: str
    periodic: bool
    delay: timedelta
    requires_network: bool = False
    status: str = JobStatus.ENQUEUED
    runs: int = 0
    last_result: JobResult | None = None
    enqueued_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return self.task is not None and not self.task.done()


class JobScheduler(ABC):
    @abstractmethod
    def enqueue_unique_periodic_work(
        self,
        name: str,
        interval: timedelta,
        job: JobFn,
        *,
        policy: ExistingWorkPolicy = ExistingWorkPolicy.KEEP,
        requires_network: bool = False,
    ) -> JobRecord:
        """Run ``job`` every ``interval`` until cancelled."""

    @abstractmethod
    def enqueue_unique_work(
        self,
        name: str,
        job: JobFn,
        *,
        delay: timedelta = timedelta(0),
        policy: ExistingWorkPolicy = ExistingWorkPolicy.KEEP,
        requires_network: bool = False,
    ) -> JobRecord:
        """Run ``job`` once after ``delay``."""


class AsyncioJobScheduler(JobScheduler):
    """In-process scheduler backed by asyncio tasks.

    Must be used from within a running event loop. Connectivity checks block,
    so they run on the background pool of ``executors``, or on the loop's
    default executor when none is given.
    """

    def __init__(
        self,
        connectivity: Connectivity | None = None,
        executors: UploadExecutors | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        constraint_poll_seconds: float = 60.0,
    ):
        self._connectivity = connectivity
        self._executors = executors
        self._sleep = sleep
        self._constraint_poll_seconds = constraint_poll_seconds
        self._jobs: dict[str, JobRecord] = {}

    def get(self, name: str) -> JobRecord | None:
        return self._jobs.get(name)

    def list_jobs(self) -> list[JobRecord]:
        return list(self._jobs.values())

    def enqueue_unique_periodic_work(
        self,
        name: str,
        interval: timedelta,
        job: JobFn,
        *,
        policy: ExistingWorkPolicy = ExistingWorkPolicy.KEEP,
        requires_network: bool = False,
    ) -> JobRecord:
        existing = self._existing(name, policy)
        if existing:
            return existing
        record = JobRecord(name=name, periodic=True, delay=interval, requires_network=requires_network)
        record.task = asyncio.get_running_loop().create_task(self._run_periodic(record, job), name=name)
        self._jobs[name] = record
        logger.info("jobs.periodic_enqueued", name=name, interval_seconds=interval.total_seconds())
        return record

    def enqueue_unique_work(
        self,
        name: str,
        job: JobFn,
        *,
        delay: timedelta = timedelta(0),
        policy: ExistingWorkPolicy = ExistingWorkPolicy.KEEP,
        requires_network: bool = False,
    ) -> JobRecord:
        existing = self._existing(name, policy)
        if existing:
            return existing
        record = JobRecord(name=name, periodic=False, delay=delay, requires_network=requires_network)
        record.task = asyncio.get_running_loop().create_task(self._run_once(record, job), name=name)
        self._jobs[name] = record
        logger.info("jobs.one_time_enqueued", name=name, delay_seconds=delay.total_seconds())
        return record

    async def wait(self, name: str) -> JobRecord | None:
        """Wait for a one-shot job to finish; returns its record."""
        record = self._jobs.get(name)
        if record and record.task:
            await asyncio.gather(record.task, return_exceptions=True)
        return record

    def cancel(self, name: str) -> None:
        record = self._jobs.get(name)
        if record and record.pending:
            record.task.cancel()
            record.status = JobStatus.CANCELLED

    async def shutdown(self) -> None:
        tasks = [record.task for record in self._jobs.values() if record.pending]
        for name in list(self._jobs):
            self.cancel(name)
        await asyncio.gather(*tasks, return_exceptions=True)

    def _existing(self, name: str, policy: ExistingWorkPolicy) -> JobRecord | None:
        record = self._jobs.get(name)
        if not record or not record.pending:
            return None
        if policy == ExistingWorkPolicy.KEEP:
            logger.info("jobs.kept_existing", name=name)
            return record
        self.cancel(name)
        logger.info("jobs.replaced_existing", name=name)
        return None

    async def _network_available(self) -> bool:
        if self._connectivity is None:
            return True
        if self._executors is not None:
            return await self._executors.run_background(self._connectivity.has_internet)
        return await asyncio.get_running_loop().run_in_executor(None, self._connectivity.has_internet)

    async def _run_once(self, record: JobRecord, job: JobFn) -> None:
        await self._sleep(record.delay.total_seconds())
        while record.requires_network and not await self._network_available():
            await self._sleep(self._constraint_poll_seconds)
        await self._execute(record, job)
        record.completed_at = time.time()

    async def _run_periodic(self, record: JobRecord, job: JobFn) -> None:
        while True:
            if record.requires_network and not await self._network_available():
                logger.info("jobs.constraint_unmet", name=record.name)
            else:
                await self._execute(record, job)
            await self._sleep(record.delay.total_seconds())

    async def _execute(self, record: JobRecord, job: JobFn) -> None:
        record.status = JobStatus.RUNNING
        record.runs += 1
        try:
            result = await job()
        except Exception as exc:
            logger.error("jobs.job_raised", name=record.name, error=str(exc), exc_info=True)
            result = JobResult.FAILURE
        record.last_result = result
        record.status = JobStatus.SUCCEEDED if result == JobResult.SUCCESS else JobStatus.FAILED
        if record.periodic:
            record.status = JobStatus.ENQUEUED
        logger.info("jobs.job_finished", name=record.name, result=result.value, runs=record.runs)
