"""Synthetic upload traffic that camouflages genuine key uploads.

A periodic job drives the same :class:`~keyupload.controller.UploadController`
as real uploads, with ``is_cover_traffic`` set, so a network observer cannot
tell from request shape or timing whether a user is really uploading keys.
Each tick moves through::

    IDLE -> MAYBE_SKIP -> CHAIN_RUNNING -> SHORT_DELAY_PENDING | LONG_DELAY_DEFERRED -> DONE

Most ticks stop at MAYBE_SKIP so fake uploads do not swamp real ones. Expected
early aborts report success; only unexpected exceptions report failure, so the
job outcome does not correlate with how far the fake chain got.
"""

from __future__ import annotations

import random
from datetime import timedelta
from enum import Enum
from typing import Protocol

import structlog

from keyupload.clock import Clock, SystemClock, today
from keyupload.config import KeyUploadSettings
from keyupload.controller import UploadController
from keyupload.crypto import new_nonce, random_base64_data
from keyupload.executors import UploadExecutors
from keyupload.jobs import ExistingWorkPolicy, JobRecord, JobResult, JobScheduler
from keyupload.models import KEY_SIZE_BYTES, MAX_TRANSMISSION_RISK, DiagnosisKey, Upload, UserReportUpload

logger = structlog.get_logger(__name__)

WORKER_NAME = "UploadCoverTrafficWorker"
DEFERRED_WORKER_NAME = "UploadCoverTrafficDeferredWorker"
FAKE_REGIONS = ("US", "CA")


class CoverTrafficState(str, Enum):
    IDLE = "IDLE"
    MAYBE_SKIP = "MAYBE_SKIP"
    CHAIN_RUNNING = "CHAIN_RUNNING"
    SHORT_DELAY_PENDING = "SHORT_DELAY_PENDING"
    LONG_DELAY_DEFERRED = "LONG_DELAY_DEFERRED"
    DONE = "DONE"


class ExposureApiStatus(Protocol):
    """Whether the exposure notification API is enabled on this device."""

    async def is_enabled(self) -> bool: ...


class StaticExposureApiStatus:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    async def is_enabled(self) -> bool:
        return self.enabled


class FakeUploadFactory:
    """Builds synthetic requests shaped like genuine ones.

    The size of the random blobs does not matter much, since every request is
    padded to a consistent size anyway.
    """

    def __init__(self, rng: random.Random, clock: Clock, key_count: int = 14):
        self.rng = rng
        self.clock = clock
        self.key_count = key_count

    def _digits(self, count: int) -> str:
        return "".join(str(self.rng.randrange(10)) for _ in range(count))

    def keys(self) -> tuple[DiagnosisKey, ...]:
        """A realistic daily batch of keys with CSPRNG key material."""
        interval = DiagnosisKey.instant_to_interval(self.clock.now())
        return tuple(
            DiagnosisKey(
                key_bytes=self.rng.randbytes(KEY_SIZE_BYTES),
                interval_number=interval,
                transmission_risk=i % MAX_TRANSMISSION_RISK,
            )
            for i in range(self.key_count)
        )

    def user_report(self) -> UserReportUpload:
        report = UserReportUpload.new(
            phone_number="+1" + self._digits(10),
            nonce_base64=new_nonce(self.rng),
            test_date=today(self.clock) - timedelta(days=self.rng.randrange(14)),
        )
        return report.evolve(is_cover_traffic=True)

    def code_upload(self) -> Upload:
        return Upload.new(self._digits(8), rng=self.rng, is_cover_traffic=True)

    def cert_upload(self) -> Upload:
        return Upload.new(
            self._digits(8),
            rng=self.rng,
            is_cover_traffic=True,
            keys=self.keys(),
            long_term_token=random_base64_data(100, self.rng),
        )

    def key_upload(self) -> Upload:
        return Upload.new(
            self._digits(8),
            rng=self.rng,
            is_cover_traffic=True,
            keys=self.keys(),
            regions=frozenset(FAKE_REGIONS),
            long_term_token=random_base64_data(100, self.rng),
            certificate=random_base64_data(100, self.rng),
            symptom_onset=today(self.clock) - timedelta(days=self.rng.randrange(1, 15)),
        )


async def finish_chain(controller: UploadController, fakes: FakeUploadFactory) -> None:
    """Fake certificate request followed by a fake key upload."""
    await controller.submit_keys_for_cert(fakes.cert_upload())
    await controller.upload(fakes.key_upload())


class CoverTrafficDeferredWorker:
    """Second half of a long-delay chain, run as a one-shot job.

    Always reports success, whatever the outcome of the fake requests.
    """

    def __init__(self, controller: UploadController, fakes: FakeUploadFactory):
        self.controller = controller
        self.fakes = fakes

    async def run(self) -> JobResult:
        try:
            await finish_chain(self.controller, self.fakes)
            logger.info("cover_traffic.deferred_chain_finished")
        except Exception as exc:
            logger.info("cover_traffic.deferred_chain_failed", error=str(exc), error_type=type(exc).__name__)
        return JobResult.SUCCESS


class CoverTrafficWorker:
    """The periodic cover traffic job."""

    def __init__(
        self,
        controller: UploadController,
        exposure_api: ExposureApiStatus,
        job_scheduler: JobScheduler,
        executors: UploadExecutors,
        settings: KeyUploadSettings,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ):
        self.controller = controller
        self.exposure_api = exposure_api
        self.job_scheduler = job_scheduler
        self.executors = executors
        self.settings = settings
        self.rng = rng or random.SystemRandom()
        self.fakes = FakeUploadFactory(self.rng, clock or SystemClock(), settings.cover_traffic_fake_key_count)
        self.state = CoverTrafficState.IDLE
        self.last_state = CoverTrafficState.IDLE

    async def run(self) -> JobResult:
        self.state = CoverTrafficState.MAYBE_SKIP
        try:
            await self._run_chain()
        except Exception as exc:
            logger.error(
                "cover_traffic.failed",
                state=self.state.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return JobResult.FAILURE
        finally:
            self.last_state = self.state
            self.state = CoverTrafficState.IDLE
        return JobResult.SUCCESS

    async def _run_chain(self) -> None:
        if self.rng.random() >= self.settings.cover_traffic_execution_probability:
            logger.debug("cover_traffic.skipped", reason="probability")
            self.state = CoverTrafficState.DONE
            return

        # Cover traffic must not run when the feature itself is off.
        if not await self.exposure_api.is_enabled():
            logger.debug("cover_traffic.skipped", reason="exposure_api_disabled")
            self.state = CoverTrafficState.DONE
            return

        self.state = CoverTrafficState.CHAIN_RUNNING
        if self.rng.random() < self.settings.cover_traffic_request_code_probability:
            await self.controller.request_code(self.fakes.user_report())
        await self.controller.submit_code(self.fakes.code_upload())

        if self.rng.random() < self.settings.cover_traffic_short_delay_probability:
            # Mimic a user continuing straight away.
            self.state = CoverTrafficState.SHORT_DELAY_PENDING
            delay = self.rng.uniform(0, self.settings.cover_traffic_max_short_delay_seconds)
            await self.executors.sleep(delay)
            await finish_chain(self.controller, self.fakes)
            logger.info("cover_traffic.chain_finished", delay_seconds=delay)
        else:
            self.state = CoverTrafficState.LONG_DELAY_DEFERRED
            delay_seconds = round(self.rng.random() * self.settings.cover_traffic_max_long_delay_seconds)
            if delay_seconds > self.settings.cover_traffic_long_delay_threshold_seconds:
                logger.info("cover_traffic.chain_abandoned", delay_seconds=delay_seconds)
            else:
                self.job_scheduler.enqueue_unique_work(
                    DEFERRED_WORKER_NAME,
                    CoverTrafficDeferredWorker(self.controller, self.fakes).run,
                    delay=timedelta(seconds=delay_seconds),
                    policy=ExistingWorkPolicy.KEEP,
                    requires_network=True,
                )
                logger.info("cover_traffic.chain_deferred", delay_seconds=delay_seconds)
        self.state = CoverTrafficState.DONE


def schedule_cover_traffic(job_scheduler: JobScheduler, worker: CoverTrafficWorker) -> JobRecord:
    """Enqueue the periodic cover traffic job, keeping an already scheduled one."""
    logger.info("cover_traffic.scheduling")
    return job_scheduler.enqueue_unique_periodic_work(
        WORKER_NAME,
        timedelta(hours=worker.settings.cover_traffic_interval_hours),
        worker.run,
        policy=ExistingWorkPolicy.KEEP,
        requires_network=True,
    )
