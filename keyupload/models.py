"""Immutable value objects threaded through the verification and upload steps.

Each protocol step returns a new object via copy-on-write (``evolve``); no
instance is ever mutated in place.
"""

from __future__ import annotations

import base64
import random
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from keyupload.clock import Clock
from keyupload.crypto import new_hmac_key

KEY_SIZE_BYTES = 16
# The number of 10-minute intervals a key is valid for.
DEFAULT_ROLLING_PERIOD = 144
INTERVAL_SECONDS = 600
MAX_TRANSMISSION_RISK = 7


class TestResult(str, Enum):
    """Test types understood by the verification server."""

    __test__ = False

    CONFIRMED = "confirmed"
    LIKELY = "likely"
    NEGATIVE = "negative"

    def to_api_type(self) -> str:
        return self.value


SUPPORTED_TEST_TYPES: tuple[str, ...] = tuple(result.to_api_type() for result in TestResult)


class DiagnosisKey(BaseModel):
    """A temporary exposure key, either from the exposure API or randomly generated for cover traffic."""

    model_config = ConfigDict(frozen=True)

    key_bytes: bytes = Field(..., description="16 bytes of key material")
    interval_number: int = Field(..., ge=0, description="10-minute interval the key starts at")
    rolling_period: int = Field(default=DEFAULT_ROLLING_PERIOD, gt=0)
    transmission_risk: int = Field(default=0, ge=0, le=MAX_TRANSMISSION_RISK)

    @field_validator("key_bytes")
    @classmethod
    def _check_key_size(cls, value: bytes) -> bytes:
        if len(value) != KEY_SIZE_BYTES:
            raise ValueError(f"key must be {KEY_SIZE_BYTES} bytes, got {len(value)}")
        return value

    @property
    def key_base64(self) -> str:
        return base64.b64encode(self.key_bytes).decode("ascii")

    @classmethod
    def from_base64(cls, key: str, interval_number: int, **kwargs: Any) -> DiagnosisKey:
        return cls(key_bytes=base64.b64decode(key), interval_number=interval_number, **kwargs)

    @staticmethod
    def instant_to_interval(instant: datetime) -> int:
        """Convert an instant to its 10-minute interval number since the epoch."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return int(instant.timestamp()) // INTERVAL_SECONDS

    def __repr__(self) -> str:
        # Key material stays out of reprs, which end up in logs.
        return (
            f"DiagnosisKey(interval_number={self.interval_number}, "
            f"rolling_period={self.rolling_period}, transmission_risk={self.transmission_risk})"
        )


class Upload(BaseModel):
    """Request/response carrier for the code, certificate and upload steps.

    Fields are populated incrementally as the protocol advances:
    ``test_type`` and ``long_term_token`` after the code is verified,
    ``certificate`` after the keys are certified, and ``revision_token`` after
    a successful upload. A revision token must be sent along with any later
    re-upload of the same diagnosis.
    """

    model_config = ConfigDict(frozen=True)

    verification_code: str
    hmac_key_base64: str
    keys: tuple[DiagnosisKey, ...] = ()
    regions: frozenset[str] = frozenset()
    symptom_onset: Optional[date] = None
    has_traveled: bool = False
    test_type: Optional[str] = None
    long_term_token: Optional[str] = None
    certificate: Optional[str] = None
    revision_token: Optional[str] = None
    is_cover_traffic: bool = False

    @classmethod
    def new(cls, verification_code: str, rng: random.Random | None = None, **fields: Any) -> Upload:
        """Start an upload attempt with a freshly generated HMAC key."""
        if "hmac_key_base64" not in fields:
            fields["hmac_key_base64"] = new_hmac_key(rng)
        return cls(verification_code=verification_code, **fields)

    def evolve(self, **changes: Any) -> Upload:
        """Return a copy with ``changes`` applied.

        Raises:
            ValueError: If the keys would change after a certificate was obtained;
                the certificate signs the digest of the current keys.
        """
        if "keys" in changes:
            changes["keys"] = tuple(changes["keys"])
            if self.certificate and changes["keys"] != self.keys:
                raise ValueError("keys cannot change once a certificate has been obtained")
        if "regions" in changes:
            changes["regions"] = frozenset(changes["regions"])
        return self.model_copy(update=changes)

    def __repr__(self) -> str:
        # Tokens, codes and keys are secrets; only report progress.
        return (
            f"Upload(keys={len(self.keys)}, regions={sorted(self.regions)}, "
            f"test_type={self.test_type!r}, has_token={self.long_term_token is not None}, "
            f"has_certificate={self.certificate is not None}, "
            f"has_revision_token={self.revision_token is not None}, "
            f"is_cover_traffic={self.is_cover_traffic})"
        )


class UserReportUpload(BaseModel):
    """Carrier for the self-report request that asks the verification server to text a code."""

    model_config = ConfigDict(frozen=True)

    phone_number: str = Field(..., description="E.164 phone number to send the code to")
    nonce_base64: str = Field(..., description="256 bytes of random data, base64 encoded")
    test_date: date
    tz_offset_min: int = 0
    expires_at: Optional[str] = Field(default=None, description="RFC 1123 expiry of the requested code")
    expires_at_timestamp_sec: int = 0
    is_cover_traffic: bool = False

    @classmethod
    def new(cls, phone_number: str, nonce_base64: str, test_date: date, tz_offset_min: int = 0) -> UserReportUpload:
        return cls(
            phone_number=phone_number,
            nonce_base64=nonce_base64,
            test_date=test_date,
            tz_offset_min=tz_offset_min,
        )

    def evolve(self, **changes: Any) -> UserReportUpload:
        return self.model_copy(update=changes)

    def is_expired(self, clock: Clock) -> bool:
        if not self.expires_at_timestamp_sec:
            return False
        return clock.now().timestamp() >= self.expires_at_timestamp_sec

    def __repr__(self) -> str:
        return (
            f"UserReportUpload(test_date={self.test_date}, tz_offset_min={self.tz_offset_min}, "
            f"expires_at_timestamp_sec={self.expires_at_timestamp_sec}, "
            f"is_cover_traffic={self.is_cover_traffic})"
        )
