"""Exceptions raised by the key upload engine.

Failures carry two independent dimensions: *which leg failed* (verification
server or key server, each with a client-attributable and a server-attributable
variant) and the coarse :class:`~keyupload.errors.UploadError` classification
that drives the user-facing remedy.

Exception Hierarchy:
    KeyUploadException (base)
    ├── UploadException
    │   ├── VerificationException
    │   │   ├── VerificationFailureException
    │   │   └── VerificationServerFailureException
    │   └── KeysSubmitException
    │       ├── KeysSubmitFailureException
    │       │   └── RevisionTokenMissingError
    │       └── KeysSubmitServerFailureException
    ├── NoInternetException
    ├── KeyDigestError
    ├── RpcError
    └── ConfigurationError

``NoInternetException`` and ``KeyDigestError`` sit outside
``UploadException``: they mean the request was never sent, as opposed to sent
and rejected.
"""

from __future__ import annotations

from typing import Any

from keyupload.errors import UploadError, classify


class KeyUploadException(Exception):
    """Base exception for all key upload domain errors.

    Attributes:
        message: Descriptive error message
        error_code: Machine-readable error identifier
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to a dictionary suitable for structured logs."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details if self.details else None,
        }


# ============================================================================
# TRANSPORT ERRORS
# ============================================================================


class RpcError(KeyUploadException):
    """Raised by the JSON transport when an RPC does not yield a usable response.

    ``kind`` is one of ``"http"`` (non-2xx status), ``"timeout"``, ``"network"``
    (no HTTP response at all) or ``"parse"`` (2xx with an unparseable body).
    The clients translate this into the leg-specific :class:`UploadException`.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        status_code: int | None = None,
        body: bytes | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=f"rpc_{kind}",
            details={"status_code": status_code},
        )
        self.kind = kind
        self.status_code = status_code
        self.body = body


# ============================================================================
# UPLOAD ERRORS (sent and rejected)
# ============================================================================


class UploadException(KeyUploadException):
    """Base class for failures reported by the verification server or the key server.

    Attributes:
        upload_error: Coarse classification of the failure
        status_code: HTTP status, or None when no response was received
        server_error_code: Server-defined error code, or "" when absent
    """

    def __init__(
        self,
        message: str,
        upload_error: UploadError,
        *,
        status_code: int | None = None,
        server_error_code: str = "",
    ) -> None:
        super().__init__(
            message,
            error_code=upload_error.value,
            details={"status_code": status_code, "server_error_code": server_error_code},
        )
        self.upload_error = upload_error
        self.status_code = status_code
        self.server_error_code = server_error_code

    @classmethod
    def from_rpc_error(cls, message: str, error: RpcError, server_error_code: str = "") -> UploadException:
        """Build the exception from a transport failure, classifying it on the way."""
        return cls(
            message,
            classify(error.status_code, server_error_code),
            status_code=error.status_code,
            server_error_code=server_error_code,
        )


class VerificationException(UploadException):
    """A verification server RPC failed."""


class VerificationFailureException(VerificationException):
    """The verification server rejected the request, or no response was received."""


class VerificationServerFailureException(VerificationException):
    """The verification server failed with an HTTP 5xx status."""


class KeysSubmitException(UploadException):
    """A key server RPC failed."""


class KeysSubmitFailureException(KeysSubmitException):
    """The key server rejected the upload, or no response was received."""


class KeysSubmitServerFailureException(KeysSubmitException):
    """The key server failed with an HTTP 5xx status."""


class RevisionTokenMissingError(KeysSubmitFailureException):
    """The key server accepted the upload but returned no revision token.

    Without the token a later revision of the same keys cannot be correlated
    server-side, so the upload counts as failed.
    """

    def __init__(self, status_code: int | None = None) -> None:
        super().__init__(
            "Key server response did not contain a revision token",
            UploadError.APP_ERROR,
            status_code=status_code,
        )


# ============================================================================
# LOCAL ERRORS (never sent)
# ============================================================================


class NoInternetException(KeyUploadException):
    """Raised before an RPC is attempted when the device has no connectivity."""

    def __init__(self, step: str) -> None:
        super().__init__(
            f"No internet connection, not attempting {step}",
            error_code="no_internet",
            details={"step": step},
        )
        self.step = step


class KeyDigestError(KeyUploadException):
    """Raised when the HMAC key digest cannot be computed.

    Example:
        >>> try:
        ...     key_digest(keys, "not base64!")
        ... except KeyDigestError as exc:
        ...     exc.error_code
        'hmac_failed'
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_code="hmac_failed", details=details)


class ConfigurationError(KeyUploadException):
    """Raised when configuration is invalid or missing.

    Example:
        >>> if not settings.key_upload_url:
        ...     raise ConfigurationError(
        ...         message="Key server URL not configured",
        ...         error_code="missing_config",
        ...         details={"required_env": "KEYUPLOAD_KEY_UPLOAD_URL"}
        ...     )
    """
