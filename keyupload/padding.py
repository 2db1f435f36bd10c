"""Request padding.

Without padding the body size alone tells a passive observer how many keys are
being uploaded, or whether optional fields are present, even under TLS. Every
request is padded to a consistent size; the exact size does not matter, only
that it is the same from request to request.
"""

from __future__ import annotations

import json
import random
from typing import Any

from keyupload.api_constants import UploadV1
from keyupload.crypto import random_base64_data

TARGET_PAYLOAD_SIZE_BYTES = 5000


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Canonical wire serialization; padding is measured against exactly these bytes."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def add_padding(
    payload: dict[str, Any],
    target_size: int = TARGET_PAYLOAD_SIZE_BYTES,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Return a copy of ``payload`` padded to at least ``target_size`` serialized bytes.

    Must be called after every real field is set. A payload that is already
    large enough is returned without a padding field.
    """
    padded = dict(payload)
    padded.pop(UploadV1.PADDING, None)
    current_size = len(serialize_payload(padded))
    if current_size >= target_size:
        return padded

    padded[UploadV1.PADDING] = ""
    overhead = len(serialize_payload(padded))
    # Start from the estimated length and scale up until we reach the target size.
    padding_length = max(1, target_size - overhead)
    while current_size < target_size:
        padded[UploadV1.PADDING] = random_base64_data(padding_length, rng)
        current_size = len(serialize_payload(padded))
        padding_length += 1
    return padded
