"""Classification of verification server and key server failures.

Many distinct server error codes collapse into the same :class:`UploadError`
because the remedy offered to the user is the same, not because the causes
are. The mapping is kept as data so it can be audited against server API
changes.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from keyupload.api_constants import UploadV1, VerifyV1


class UploadError(str, Enum):
    UNKNOWN = "UNKNOWN"
    # Show "invalid code" to the user.
    CODE_INVALID = "CODE_INVALID"
    # Show "code expired" to the user. An expired long term token means starting over with a new code.
    CODE_EXPIRED = "CODE_EXPIRED"
    UNSUPPORTED_TEST_TYPE = "UNSUPPORTED_TEST_TYPE"
    APP_ERROR = "APP_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    # Perhaps a revoked verification server API key.
    UNAUTHORIZED_CLIENT = "UNAUTHORIZED_CLIENT"


BAD_REQUEST = 400

# 400 responses, refined by the server error code. Codes not listed are APP_ERROR.
BAD_REQUEST_CLASSIFICATIONS: dict[str, UploadError] = {
    # Key server faults caused by health authority misconfiguration. A bad
    # certificate came from the verification server, so it is not the app's fault either.
    UploadV1.Error.UNKNOWN_APP: UploadError.SERVER_ERROR,
    UploadV1.Error.HA_CONFIG_LOAD_FAIL: UploadError.SERVER_ERROR,
    UploadV1.Error.HA_REGION_CONFIG: UploadError.SERVER_ERROR,
    UploadV1.Error.CERT_INVALID: UploadError.SERVER_ERROR,
    UploadV1.Error.INTERNAL_ERROR: UploadError.SERVER_ERROR,
    UploadV1.Error.BAD_REQUEST: UploadError.APP_ERROR,
    UploadV1.Error.MISSING_REVISION_TOKEN: UploadError.APP_ERROR,
    UploadV1.Error.INVALID_REVISION_TOKEN: UploadError.APP_ERROR,
    UploadV1.Error.KEY_ALREADY_REVISED: UploadError.APP_ERROR,
    UploadV1.Error.INVALID_REVISION_TRANSITION: UploadError.APP_ERROR,
    VerifyV1.Error.CODE_INVALID: UploadError.CODE_INVALID,
    VerifyV1.Error.CODE_NOT_FOUND: UploadError.CODE_INVALID,
    VerifyV1.Error.CODE_USER_UNAUTHORIZED: UploadError.CODE_INVALID,
    VerifyV1.Error.TOKEN_INVALID: UploadError.CODE_INVALID,
    VerifyV1.Error.CODE_EXPIRED: UploadError.CODE_EXPIRED,
    VerifyV1.Error.TOKEN_EXPIRED: UploadError.CODE_EXPIRED,
    VerifyV1.Error.UNSUPPORTED_TEST_TYPE: UploadError.UNSUPPORTED_TEST_TYPE,
    VerifyV1.Error.INVALID_TEST_TYPE: UploadError.APP_ERROR,
    VerifyV1.Error.HMAC_INVALID: UploadError.APP_ERROR,
    VerifyV1.Error.MISSING_DATE: UploadError.APP_ERROR,
    VerifyV1.Error.INVALID_DATE: UploadError.APP_ERROR,
    VerifyV1.Error.MISSING_PHONE: UploadError.APP_ERROR,
    VerifyV1.Error.MISSING_NONCE: UploadError.APP_ERROR,
}

STATUS_CLASSIFICATIONS: dict[int, UploadError] = {
    401: UploadError.UNAUTHORIZED_CLIENT,
    403: UploadError.APP_ERROR,
    404: UploadError.APP_ERROR,
    405: UploadError.APP_ERROR,
    429: UploadError.RATE_LIMITED,
    500: UploadError.SERVER_ERROR,
}

DEFAULT_ERROR_MESSAGE = "Call failed, unknown reason."


def classify(status_code: int | None, error_code: str = "") -> UploadError:
    """Map an HTTP status and server error code to an :class:`UploadError`.

    ``status_code`` is None when no HTTP response was received (timeout,
    connection failure), which classifies as ``UNKNOWN``.
    """
    if status_code is None:
        return UploadError.UNKNOWN
    if status_code == BAD_REQUEST:
        return BAD_REQUEST_CLASSIFICATIONS.get(error_code or "", UploadError.APP_ERROR)
    return STATUS_CLASSIFICATIONS.get(status_code, UploadError.UNKNOWN)


def error_body_without_padding(body: bytes | str | None) -> dict[str, Any]:
    """Parse an error response body, dropping the padding field.

    Returns an empty dict when the body is absent, not JSON, or not a JSON object.
    """
    if not body:
        return {}
    try:
        parsed = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    # Both servers use the same key for padding.
    parsed.pop(VerifyV1.PADDING, None)
    return parsed


def error_code_from_body(body: bytes | str | None) -> str:
    """Extract the server error code; the two servers use different JSON keys for it."""
    parsed = error_body_without_padding(body)
    if VerifyV1.ERR_CODE in parsed:
        value = parsed[VerifyV1.ERR_CODE]
    else:
        value = parsed.get(UploadV1.ERR_CODE, "")
    return value if isinstance(value, str) else ""


def error_message_from_body(body: bytes | str | None) -> str:
    # The two servers happen to share the key for the error message.
    value = error_body_without_padding(body).get(VerifyV1.ERR_MESSAGE)
    return value if isinstance(value, str) and value else DEFAULT_ERROR_MESSAGE


def classify_response(status_code: int | None, body: bytes | str | None) -> UploadError:
    """Classify a failed response from either server."""
    return classify(status_code, error_code_from_body(body))
