"""HTTP clients for the verification server and the key server."""

from .key_upload_client import KeyUploadClient
from .transport import JsonRpcTransport, RpcCallResult, RpcCallType
from .verification_client import VerificationClient

__all__ = ["JsonRpcTransport", "KeyUploadClient", "RpcCallResult", "RpcCallType", "VerificationClient"]
