"""Client for the diagnosis key server's publish endpoint."""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Any

import structlog

from keyupload.api_constants import UploadV1
from keyupload.clients.transport import JsonRpcTransport, RpcCallType
from keyupload.core.exceptions import (
    KeysSubmitFailureException,
    KeysSubmitServerFailureException,
    RevisionTokenMissingError,
    RpcError,
    UploadException,
)
from keyupload.errors import error_code_from_body
from keyupload.executors import UploadExecutors
from keyupload.models import DiagnosisKey, Upload

logger = structlog.get_logger(__name__)

SERVER_ERROR_STATUS = 500


def onset_interval(upload: Upload) -> int | None:
    if upload.symptom_onset is None:
        return None
    midnight = datetime.combine(upload.symptom_onset, time.min, tzinfo=timezone.utc)
    return DiagnosisKey.instant_to_interval(midnight)


def publish_request_body(upload: Upload, health_authority_id: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        UploadV1.KEYS: [
            {
                UploadV1.KEY: key.key_base64,
                UploadV1.ROLLING_START_NUM: key.interval_number,
                UploadV1.ROLLING_PERIOD: key.rolling_period,
                UploadV1.TRANSMISSION_RISK: key.transmission_risk,
            }
            for key in upload.keys
        ],
        UploadV1.REGIONS: sorted(upload.regions),
        UploadV1.APP_PACKAGE: health_authority_id,
        UploadV1.HMAC_KEY: upload.hmac_key_base64,
        UploadV1.VERIFICATION_CERT: upload.certificate,
        UploadV1.TRAVELER: upload.has_traveled,
    }

    onset = onset_interval(upload)
    if onset is not None:
        payload[UploadV1.ONSET] = onset

    # We have a revision token only on second and subsequent uploads.
    if upload.revision_token is not None:
        payload[UploadV1.REVISION_TOKEN] = upload.revision_token

    return payload


def capture_revision_token(upload: Upload, response: dict[str, Any]) -> Upload:
    """Store the key server's revision token on the upload.

    Raises:
        RevisionTokenMissingError: If a real upload's response lacks the token.
    """
    if upload.is_cover_traffic:
        return upload
    token = response.get(UploadV1.REVISION_TOKEN)
    if not isinstance(token, str) or not token:
        raise RevisionTokenMissingError(status_code=200)
    return upload.evolve(revision_token=token)


class KeyUploadClient:
    """Uploads certified diagnosis keys to the key server.

    All keys are uploaded for all of the user's relevant regions at once; for
    most users there is a single region.
    """

    def __init__(
        self,
        upload_url: str,
        health_authority_id: str,
        transport: JsonRpcTransport,
        executors: UploadExecutors,
    ):
        self.upload_url = upload_url
        self.health_authority_id = health_authority_id
        self.transport = transport
        self.executors = executors

    async def upload(self, upload: Upload) -> Upload:
        """Publish the upload's keys, signed earlier by the verification server.

        Returns the upload unchanged when it has no keys, without contacting the server.
        """
        if not upload.keys:
            logger.info("keyupload.skipped_no_keys", is_cover_traffic=upload.is_cover_traffic)
            return upload

        logger.info(
            "keyupload.uploading",
            key_count=len(upload.keys),
            is_revision=upload.revision_token is not None,
            is_cover_traffic=upload.is_cover_traffic,
        )
        body = await self.executors.run_lightweight(publish_request_body, upload, self.health_authority_id)
        try:
            response = await self.transport.post(
                self.upload_url,
                body,
                rpc_type=RpcCallType.KEYS_UPLOAD,
                is_cover_traffic=upload.is_cover_traffic,
            )
        except RpcError as exc:
            raise self._failure(exc) from exc

        try:
            result = await self.executors.run_lightweight(capture_revision_token, upload, response)
        except RevisionTokenMissingError:
            logger.error("keyupload.revision_token_missing", response_fields=sorted(response))
            raise

        logger.info(
            "keyupload.uploaded",
            key_count=len(upload.keys),
            inserted_exposures=response.get(UploadV1.NUM_INSERTED_EXPOSURES),
            is_cover_traffic=upload.is_cover_traffic,
        )
        return result

    @staticmethod
    def _failure(error: RpcError) -> UploadException:
        server_error_code = error_code_from_body(error.body)
        exc_type: type[UploadException]
        if error.status_code is not None and error.status_code >= SERVER_ERROR_STATUS:
            exc_type = KeysSubmitServerFailureException
        else:
            exc_type = KeysSubmitFailureException
        failure = exc_type.from_rpc_error(f"Key server error: {error.message}", error, server_error_code)
        logger.error(
            "keyupload.upload_failed",
            status_code=error.status_code,
            server_error_code=server_error_code,
            upload_error=failure.upload_error.value,
            failure=exc_type.__name__,
        )
        return failure
