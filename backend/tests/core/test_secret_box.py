"""Tests for SecretBox authenticated encryption."""

import pytest

from app.core.exceptions import ConfigurationError, DecryptionError
from app.core.secret_box import NONCE_BYTES, TAG_BYTES, SecretBox
from app.core.tokens import b64url_decode, b64url_encode

pytestmark = pytest.mark.unit


@pytest.fixture(scope="module")
def box():
    return SecretBox.from_secret("secret-box-test-key")


@pytest.mark.parametrize("plaintext", ["", "api-key-123", "日本語のキー 🔑", "x" * 4096])
def test_round_trip(box, plaintext):
    assert box.decrypt(box.encrypt(plaintext)) == plaintext


def test_layout_and_fresh_nonce(box):
    first = box.encrypt("same")
    second = box.encrypt("same")

    assert first != second
    assert "=" not in first
    assert len(b64url_decode(first)) == NONCE_BYTES + TAG_BYTES + len("same")


def test_same_secret_derives_same_key(box):
    assert SecretBox.from_secret("secret-box-test-key").decrypt(box.encrypt("k")) == "k"


def test_wrong_key_fails(box):
    other = SecretBox.from_secret("a-different-key")
    with pytest.raises(DecryptionError):
        other.decrypt(box.encrypt("k"))


def test_any_tampered_byte_fails(box):
    raw = bytearray(b64url_decode(box.encrypt("tamper me")))
    for i in range(len(raw)):
        tampered = bytearray(raw)
        tampered[i] ^= 0x01
        with pytest.raises(DecryptionError):
            box.decrypt(b64url_encode(bytes(tampered)))


@pytest.mark.parametrize("blob", ["", "not base64!", b64url_encode(b"\x00" * (NONCE_BYTES + TAG_BYTES - 1))])
def test_malformed_or_short_blobs(box, blob):
    with pytest.raises(DecryptionError):
        box.decrypt(blob)


def test_error_message_does_not_echo_input(box):
    blob = box.encrypt("super-secret-value")
    tampered = blob[:-2] + ("A" if blob[-2] != "A" else "B") + blob[-1]
    with pytest.raises(DecryptionError) as exc_info:
        box.decrypt(tampered)
    assert "super-secret-value" not in str(exc_info.value)
    assert tampered not in str(exc_info.value)


def test_missing_secret_is_configuration_error():
    with pytest.raises(ConfigurationError):
        SecretBox.from_secret("")
    with pytest.raises(ConfigurationError):
        SecretBox(b"short")
