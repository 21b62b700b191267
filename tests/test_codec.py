"""Tests for note content encryption."""
import pytest

from scribe_store.codec import (
    BLOB_PREFIX,
    decrypt_text,
    encrypt_text,
    looks_encrypted,
)
from scribe_store.exceptions import CodecError, ErrorCode

COST = 4
KEY = "s3cret passphrase"


class TestEncryptDecrypt:
    """Tests for the encrypt/decrypt pair."""

    def test_round_trip_preserves_text(self):
        plaintext = "Grocery list:\n  - café\n  - 日本茶\n\n"
        blob = encrypt_text(plaintext, KEY, cost=COST)
        assert plaintext not in blob
        assert decrypt_text(blob, KEY) == plaintext

    def test_blob_is_self_describing(self):
        blob = encrypt_text("hello", KEY, cost=COST)
        parts = blob.split("$")
        assert parts[0] == BLOB_PREFIX
        assert parts[1] == str(COST)
        assert len(parts) == 5

    def test_fresh_salt_and_nonce_per_call(self):
        """The same plaintext never encrypts to the same blob twice."""
        assert encrypt_text("same", KEY, cost=COST) != encrypt_text("same", KEY, cost=COST)

    def test_empty_plaintext(self):
        assert decrypt_text(encrypt_text("", KEY, cost=COST), KEY) == ""


class TestCodecErrors:
    """Tests for codec failure modes."""

    def test_encrypt_requires_key(self):
        with pytest.raises(CodecError) as exc_info:
            encrypt_text("text", "", cost=COST)
        assert exc_info.value.code == ErrorCode.CODEC_KEY_MISSING

    def test_decrypt_requires_key(self):
        blob = encrypt_text("text", KEY, cost=COST)
        with pytest.raises(CodecError) as exc_info:
            decrypt_text(blob, "")
        assert exc_info.value.code == ErrorCode.CODEC_KEY_MISSING

    def test_wrong_key(self):
        blob = encrypt_text("text", KEY, cost=COST)
        with pytest.raises(CodecError) as exc_info:
            decrypt_text(blob, "not the key")
        assert exc_info.value.code == ErrorCode.CODEC_DECRYPT_FAILED

    def test_tampered_ciphertext(self):
        blob = encrypt_text("text", KEY, cost=COST)
        head, ct = blob.rsplit("$", 1)
        flipped = ("A" if ct[0] != "A" else "B") + ct[1:]
        with pytest.raises(CodecError):
            decrypt_text(f"{head}${flipped}", KEY)

    @pytest.mark.parametrize(
        "blob",
        [
            "plain text note",
            "scribe1$4$abc",
            "other1$4$AAAA$AAAA$AAAA",
            "scribe1$four$AAAA$AAAA$AAAA",
            "scribe1$4$abc$def$ghi",
            "scribe1$99$AAAAAAAAAAAAAAAAAAAAAA==$AAAAAAAAAAAAAAAA$AAAA",
        ],
    )
    def test_malformed_blob(self, blob):
        with pytest.raises(CodecError) as exc_info:
            decrypt_text(blob, KEY)
        assert exc_info.value.code == ErrorCode.CODEC_MALFORMED


class TestLooksEncrypted:
    """Tests for the structural blob check."""

    def test_detects_blob(self):
        assert looks_encrypted(encrypt_text("x", KEY, cost=COST))

    def test_plain_text(self):
        assert not looks_encrypted("")
        assert not looks_encrypted("just a note")
        assert not looks_encrypted("price is $5 or $6")
