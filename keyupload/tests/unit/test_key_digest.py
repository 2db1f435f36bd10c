import base64
import hashlib
import hmac as std_hmac
import random

import pytest

from keyupload.core.exceptions import KeyDigestError
from keyupload.crypto import (
    HMAC_KEY_LEN_BYTES,
    NONCE_LEN_BYTES,
    key_digest,
    key_segment,
    new_hmac_key,
    new_nonce,
    random_base64_data,
)
from keyupload.models import DiagnosisKey


def test_key_segment_format():
    key = DiagnosisKey(key_bytes=b"\x01" * 16, interval_number=2650000, transmission_risk=3)

    assert key_segment(key) == "AQEBAQEBAQEBAQEBAQEBAQ==.2650000.144.3"


def test_digest_matches_reference_hmac(sample_keys, hmac_key):
    """Digest is HMAC-SHA256 over the sorted, comma-joined key segments."""
    cleartext = ",".join(sorted(key_segment(key) for key in sample_keys))
    expected = std_hmac.new(base64.b64decode(hmac_key), cleartext.encode(), hashlib.sha256).digest()

    assert key_digest(sample_keys, hmac_key) == base64.b64encode(expected).decode()


def test_digest_is_independent_of_key_order(sample_keys, hmac_key):
    shuffled = list(sample_keys)
    random.Random(7).shuffle(shuffled)

    assert key_digest(shuffled, hmac_key) == key_digest(sample_keys, hmac_key)
    assert key_digest(reversed(sample_keys), hmac_key) == key_digest(sample_keys, hmac_key)


def test_digest_changes_with_key_set(sample_keys, hmac_key):
    assert key_digest(sample_keys[:-1], hmac_key) != key_digest(sample_keys, hmac_key)


def test_digest_changes_with_hmac_key(sample_keys, hmac_key):
    other_key = base64.b64encode(b"\x01" * 32).decode()

    assert key_digest(sample_keys, other_key) != key_digest(sample_keys, hmac_key)


def test_digest_of_empty_key_set_is_defined(hmac_key):
    expected = std_hmac.new(base64.b64decode(hmac_key), b"", hashlib.sha256).digest()

    assert key_digest([], hmac_key) == base64.b64encode(expected).decode()


@pytest.mark.parametrize("bad_key", [None, "", "not base64!", "===="])
def test_invalid_hmac_key_raises_digest_error(sample_keys, bad_key):
    with pytest.raises(KeyDigestError) as exc_info:
        key_digest(sample_keys, bad_key)

    assert exc_info.value.error_code == "hmac_failed"


def test_new_hmac_key_is_256_bits():
    key = new_hmac_key()

    assert len(base64.b64decode(key)) == HMAC_KEY_LEN_BYTES == 32


def test_new_hmac_key_is_fresh_each_time():
    assert new_hmac_key() != new_hmac_key()


def test_nonce_is_256_bytes():
    assert len(base64.b64decode(new_nonce())) == NONCE_LEN_BYTES == 256


def test_random_base64_data_approximates_length():
    data = random_base64_data(100, random.Random(1))

    # 75 random bytes encode to exactly 100 base64 characters.
    assert len(data) == 100
    assert base64.b64decode(data)
