"""Client for the diagnosis verification server.

The verification server attests that a positive diagnosis is genuine: it trades
a short-lived verification code for a long-term token, then signs an HMAC
digest of the user's keys. The key server trusts that signature when
publishing the keys.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import structlog

from keyupload.api_constants import VerifyV1
from keyupload.clients.transport import JsonRpcTransport, RpcCallType
from keyupload.core.exceptions import (
    RpcError,
    UploadException,
    VerificationFailureException,
    VerificationServerFailureException,
)
from keyupload.crypto import key_digest
from keyupload.errors import UploadError, error_code_from_body
from keyupload.executors import UploadExecutors
from keyupload.models import SUPPORTED_TEST_TYPES, Upload, UserReportUpload

logger = structlog.get_logger(__name__)

SERVER_ERROR_STATUS = 500


def _non_empty(response: dict[str, Any], field: str) -> str | None:
    value = response.get(field)
    if isinstance(value, str) and value:
        return value
    return None


def verification_code_request_body(upload: Upload) -> dict[str, Any]:
    return {
        VerifyV1.VERIFICATION_CODE: upload.verification_code,
        VerifyV1.ACCEPT_TEST_TYPES: list(SUPPORTED_TEST_TYPES),
    }


def cert_request_body(upload: Upload) -> dict[str, Any]:
    return {
        VerifyV1.VERIFICATION_TOKEN: upload.long_term_token,
        VerifyV1.HMAC_KEY: key_digest(upload.keys, upload.hmac_key_base64),
    }


def user_report_request_body(report: UserReportUpload) -> dict[str, Any]:
    return {
        VerifyV1.PHONE: report.phone_number,
        VerifyV1.TEST_DATE: report.test_date.isoformat(),
        VerifyV1.TZ_OFFSET: report.tz_offset_min,
        VerifyV1.NONCE: report.nonce_base64,
        VerifyV1.ACCEPT_TEST_TYPES: list(SUPPORTED_TEST_TYPES),
    }


def capture_verification_code_response(upload: Upload, response: dict[str, Any]) -> Upload:
    """Copy the long-term token, test type and symptom onset onto the upload.

    Raises:
        VerificationFailureException: If ``symptomDate`` is not an ISO-8601 date.
    """
    if upload.is_cover_traffic:
        return upload
    changes: dict[str, Any] = {}
    test_type = _non_empty(response, VerifyV1.TEST_TYPE) or _non_empty(response, VerifyV1.TEST_TYPE_ALT)
    if test_type:
        changes["test_type"] = test_type
    token = _non_empty(response, VerifyV1.VERIFICATION_TOKEN)
    if token:
        changes["long_term_token"] = token
    onset = _non_empty(response, VerifyV1.ONSET_DATE)
    if onset:
        # The server returns symptomDate as an ISO-8601 date, YYYY-MM-DD.
        try:
            changes["symptom_onset"] = date.fromisoformat(onset)
        except ValueError as exc:
            raise VerificationFailureException(
                f"Verification server returned an invalid symptom date: {exc}",
                UploadError.APP_ERROR,
                status_code=200,
            ) from exc
    return upload.evolve(**changes)


def capture_cert_response(upload: Upload, response: dict[str, Any]) -> Upload:
    if upload.is_cover_traffic:
        return upload
    certificate = _non_empty(response, VerifyV1.CERT)
    if certificate:
        return upload.evolve(certificate=certificate)
    return upload


def capture_user_report_response(report: UserReportUpload, response: dict[str, Any]) -> UserReportUpload:
    if report.is_cover_traffic:
        return report
    changes: dict[str, Any] = {}
    expires_at = _non_empty(response, VerifyV1.EXPIRY_STR)
    if expires_at:
        changes["expires_at"] = expires_at
    timestamp = response.get(VerifyV1.EXPIRY_TIMESTAMP)
    if isinstance(timestamp, int) and not isinstance(timestamp, bool):
        changes["expires_at_timestamp_sec"] = timestamp
    return report.evolve(**changes)


class VerificationClient:
    """Async client for the verification server's code, certificate and user-report endpoints."""

    def __init__(
        self,
        code_url: str,
        cert_url: str,
        user_report_url: str,
        api_key: str,
        transport: JsonRpcTransport,
        executors: UploadExecutors,
    ):
        self.code_url = code_url
        self.cert_url = cert_url
        self.user_report_url = user_report_url
        self.api_key = api_key
        self.transport = transport
        self.executors = executors

    async def request_code(self, report: UserReportUpload) -> UserReportUpload:
        """Ask the verification server to send a verification code to the user's phone."""
        body = await self.executors.run_lightweight(user_report_request_body, report)
        response = await self._post(self.user_report_url, body, report.is_cover_traffic, RpcCallType.USER_REPORT)
        result = await self.executors.run_lightweight(capture_user_report_response, report, response)
        logger.info(
            "verification.code_requested",
            is_cover_traffic=report.is_cover_traffic,
            expires_at_timestamp_sec=result.expires_at_timestamp_sec,
        )
        return result

    async def submit_code(self, upload: Upload) -> Upload:
        """Exchange a short-lived verification code for a long-term token."""
        body = await self.executors.run_lightweight(verification_code_request_body, upload)
        response = await self._post(self.code_url, body, upload.is_cover_traffic, RpcCallType.VERIFICATION)
        result = await self.executors.run_lightweight(capture_verification_code_response, upload, response)
        logger.info(
            "verification.code_submitted",
            is_cover_traffic=upload.is_cover_traffic,
            test_type=result.test_type,
            has_symptom_onset=result.symptom_onset is not None,
        )
        return result

    async def submit_keys_for_cert(self, upload: Upload) -> Upload:
        """Have the verification server sign the HMAC digest of the upload's keys.

        Raises:
            KeyDigestError: If the digest cannot be computed; nothing is sent.
        """
        body = await self.executors.run_lightweight(cert_request_body, upload)
        response = await self._post(self.cert_url, body, upload.is_cover_traffic, RpcCallType.VERIFICATION)
        result = await self.executors.run_lightweight(capture_cert_response, upload, response)
        logger.info(
            "verification.certificate_obtained",
            is_cover_traffic=upload.is_cover_traffic,
            key_count=len(upload.keys),
            has_certificate=result.certificate is not None,
        )
        return result

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        is_cover_traffic: bool,
        rpc_type: RpcCallType,
    ) -> dict[str, Any]:
        try:
            return await self.transport.post(
                url,
                body,
                rpc_type=rpc_type,
                is_cover_traffic=is_cover_traffic,
                headers={VerifyV1.API_KEY_HEADER: self.api_key},
            )
        except RpcError as exc:
            raise self._failure(exc) from exc

    @staticmethod
    def _failure(error: RpcError) -> UploadException:
        server_error_code = error_code_from_body(error.body)
        exc_type: type[UploadException]
        if error.status_code is not None and error.status_code >= SERVER_ERROR_STATUS:
            exc_type = VerificationServerFailureException
        else:
            exc_type = VerificationFailureException
        failure = exc_type.from_rpc_error(f"Verification server error: {error.message}", error, server_error_code)
        logger.error(
            "verification.request_failed",
            status_code=error.status_code,
            server_error_code=server_error_code,
            upload_error=failure.upload_error.value,
            failure=exc_type.__name__,
        )
        return failure
