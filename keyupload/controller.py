"""Facade sequencing the verification and key upload steps.

A full upload is four steps, each fed by the previous step's output:

1. ``request_code`` (self-report flow only): the verification server texts a code.
2. ``submit_code``: the code is exchanged for a long-term token.
3. ``submit_keys_for_cert``: the verification server signs the key digest.
4. ``upload``: the keys and certificate are published to the key server.

The controller holds no state between calls. Callers persist the evolving
:class:`~keyupload.models.Upload` between steps (for example across wizard
pages) and must not run two steps of the same attempt concurrently.
"""

from __future__ import annotations

import httpx
import structlog

from keyupload.clients import JsonRpcTransport, KeyUploadClient, VerificationClient
from keyupload.config import KeyUploadSettings, get_settings
from keyupload.connectivity import Connectivity, SocketConnectivity
from keyupload.core.exceptions import ConfigurationError, NoInternetException
from keyupload.executors import UploadExecutors
from keyupload.models import Upload, UserReportUpload

logger = structlog.get_logger(__name__)


class UploadController:
    def __init__(
        self,
        verification_client: VerificationClient,
        key_upload_client: KeyUploadClient,
        connectivity: Connectivity,
        executors: UploadExecutors,
    ):
        self.verification_client = verification_client
        self.key_upload_client = key_upload_client
        self.connectivity = connectivity
        self.executors = executors

    async def request_code(self, report: UserReportUpload) -> UserReportUpload:
        """Request a verification code by SMS for a self-reported test."""
        await self._require_internet("request_code")
        logger.info("controller.requesting_code", is_cover_traffic=report.is_cover_traffic)
        return await self.verification_client.request_code(report)

    async def submit_code(self, upload: Upload) -> Upload:
        """Exchange a short-lived verification code for a long-lived token.

        Called first, prior to :meth:`submit_keys_for_cert`.
        """
        await self._require_internet("submit_code")
        logger.info("controller.submitting_code", is_cover_traffic=upload.is_cover_traffic)
        return await self.verification_client.submit_code(upload)

    async def submit_keys_for_cert(self, upload: Upload) -> Upload:
        """Request the verification server to sign our diagnosis keys.

        Called after :meth:`submit_code` and before :meth:`upload`, with an
        upload holding the long-term token and the keys to certify.
        """
        await self._require_internet("submit_keys_for_cert")
        logger.info(
            "controller.submitting_keys_for_cert",
            key_count=len(upload.keys),
            is_cover_traffic=upload.is_cover_traffic,
        )
        return await self.verification_client.submit_keys_for_cert(upload)

    async def upload(self, upload: Upload) -> Upload:
        """Publish the certified keys and metadata to the key server.

        Between :meth:`submit_keys_for_cert` and this call the caller may add
        user-supplied metadata such as symptom onset and travel status, but not
        change the keys.
        """
        await self._require_internet("upload")
        logger.info("controller.uploading", key_count=len(upload.keys), is_cover_traffic=upload.is_cover_traffic)
        return await self.key_upload_client.upload(upload)

    async def _require_internet(self, step: str) -> None:
        if not await self.executors.run_background(self.connectivity.has_internet):
            logger.warning("controller.no_internet", step=step)
            raise NoInternetException(step)


def build_upload_controller(
    settings: KeyUploadSettings | None = None,
    *,
    connectivity: Connectivity | None = None,
    executors: UploadExecutors | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> UploadController:
    """Wire an :class:`UploadController` from settings."""
    settings = settings or get_settings()
    required = {
        "verification_code_url": settings.verification_code_url,
        "verification_cert_url": settings.verification_cert_url,
        "user_report_url": settings.user_report_url,
        "key_upload_url": settings.key_upload_url,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigurationError(
            message="Server URLs not configured",
            error_code="missing_config",
            details={"required_env": [f"KEYUPLOAD_{name.upper()}" for name in missing]},
        )

    executors = executors or UploadExecutors.create(settings.background_workers, settings.lightweight_workers)
    transport = JsonRpcTransport(
        timeout=settings.rpc_timeout_seconds,
        padding_target=settings.padding_target_bytes,
        http_transport=http_transport,
    )
    connectivity = connectivity or SocketConnectivity(
        settings.connectivity_probe_host,
        settings.connectivity_probe_port,
        settings.connectivity_probe_timeout_seconds,
    )
    return UploadController(
        verification_client=VerificationClient(
            code_url=settings.verification_code_url,
            cert_url=settings.verification_cert_url,
            user_report_url=settings.user_report_url,
            api_key=settings.verification_api_key,
            transport=transport,
            executors=executors,
        ),
        key_upload_client=KeyUploadClient(
            upload_url=settings.key_upload_url,
            health_authority_id=settings.health_authority_id,
            transport=transport,
            executors=executors,
        ),
        connectivity=connectivity,
        executors=executors,
    )
