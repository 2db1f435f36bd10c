from keyupload.core.exceptions import (
    KeysSubmitFailureException,
    KeysSubmitServerFailureException,
    KeyUploadException,
    NoInternetException,
    RevisionTokenMissingError,
    RpcError,
    UploadException,
    VerificationException,
    VerificationFailureException,
    VerificationServerFailureException,
)
from keyupload.errors import UploadError


def test_base_exception_defaults_error_code_to_class_name():
    exc = KeyUploadException("boom")

    assert exc.error_code == "KeyUploadException"
    assert exc.to_dict() == {"error": "KeyUploadException", "message": "boom", "details": None}


def test_upload_exception_carries_classification():
    exc = VerificationFailureException(
        "rejected", UploadError.CODE_EXPIRED, status_code=400, server_error_code="code_expired"
    )

    assert isinstance(exc, VerificationException)
    assert isinstance(exc, UploadException)
    assert exc.upload_error is UploadError.CODE_EXPIRED
    assert exc.to_dict()["error"] == "CODE_EXPIRED"
    assert exc.to_dict()["details"] == {"status_code": 400, "server_error_code": "code_expired"}


def test_from_rpc_error_classifies():
    error = RpcError("HTTP 400", kind="http", status_code=400, body=b"{}")

    exc = KeysSubmitFailureException.from_rpc_error("Key server error", error, "key_already_revised")

    assert isinstance(exc, KeysSubmitFailureException)
    assert exc.upload_error is UploadError.APP_ERROR
    assert exc.status_code == 400


def test_from_rpc_error_without_response_is_unknown():
    error = RpcError("timed out", kind="timeout")

    exc = VerificationServerFailureException.from_rpc_error("Verification server error", error)

    assert exc.upload_error is UploadError.UNKNOWN
    assert exc.status_code is None
    assert error.error_code == "rpc_timeout"


def test_revision_token_missing_is_an_app_error_failure():
    exc = RevisionTokenMissingError(status_code=200)

    assert isinstance(exc, KeysSubmitFailureException)
    assert not isinstance(exc, KeysSubmitServerFailureException)
    assert exc.upload_error is UploadError.APP_ERROR


def test_no_internet_is_not_an_upload_exception():
    exc = NoInternetException("upload")

    assert not isinstance(exc, UploadException)
    assert exc.step == "upload"
    assert exc.error_code == "no_internet"
