"""HMAC key digest and random data helpers.

The key digest binds a specific key set to a certificate request: the
verification server signs the digest, and the key server later recomputes it
from the uploaded keys and the HMAC key to check the certificate.
"""

from __future__ import annotations

import base64
import binascii
import random
from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, hmac

from keyupload.core.exceptions import KeyDigestError

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from keyupload.models import DiagnosisKey

logger = structlog.get_logger(__name__)

HMAC_KEY_LEN_BYTES = 256 // 8
# The verification server requires exactly 256 bytes of nonce.
NONCE_LEN_BYTES = 256

_system_random = random.SystemRandom()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def new_hmac_key(rng: random.Random | None = None) -> str:
    """Generate a random base64 HMAC key, once per upload attempt."""
    return _b64((rng or _system_random).randbytes(HMAC_KEY_LEN_BYTES))


def new_nonce(rng: random.Random | None = None) -> str:
    """Generate the base64 nonce tying a code request to the device that later submits the code."""
    return _b64((rng or _system_random).randbytes(NONCE_LEN_BYTES))


def random_base64_data(approximate_length: int, rng: random.Random | None = None) -> str:
    """Random base64 text of roughly ``approximate_length`` characters."""
    # Approximate the base64 blowup.
    num_bytes = int(approximate_length * 0.75)
    return _b64((rng or _system_random).randbytes(num_bytes))


def key_segment(key: DiagnosisKey) -> str:
    return f"{_b64(key.key_bytes)}.{key.interval_number}.{key.rolling_period}.{key.transmission_risk}"


def key_digest(keys: Iterable[DiagnosisKey], hmac_key_base64: str | None) -> str:
    """Compute the base64 HMAC-SHA256 digest over a key set.

    Segments are sorted before joining, so the digest does not depend on the
    order in which the keys were obtained.

    Raises:
        KeyDigestError: If the HMAC key is missing or malformed, or the crypto
            backend cannot provide HMAC-SHA256.
    """
    segments = sorted(key_segment(key) for key in keys)
    cleartext = ",".join(segments)
    logger.debug("crypto.keys_hashed", key_count=len(segments))

    if not hmac_key_base64:
        raise KeyDigestError("HMAC key is required to compute the key digest")
    try:
        secret = base64.b64decode(hmac_key_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyDigestError("HMAC key is not valid base64", details={"error": str(exc)}) from exc
    if not secret:
        raise KeyDigestError("HMAC key is empty")

    try:
        mac = hmac.HMAC(secret, hashes.SHA256())
        mac.update(cleartext.encode("utf-8"))
        return _b64(mac.finalize())
    except UnsupportedAlgorithm as exc:
        raise KeyDigestError("HMAC-SHA256 is not available", details={"error": str(exc)}) from exc
