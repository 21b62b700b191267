"""Symmetric encryption of note content.

Content is sealed with AES-256-GCM under a key derived from the caller's
passphrase with scrypt. Every call draws a fresh salt and nonce, and both
travel inside the returned blob together with the scrypt cost, so a blob can
be opened with nothing but the passphrase::

    scribe1$<cost>$<salt>$<nonce>$<ciphertext>

The codec is stateless and never keeps the passphrase or derived keys.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from scribe_store.exceptions import CodecError, ErrorCode

logger = logging.getLogger(__name__)

BLOB_PREFIX = "scribe1"
DEFAULT_COST = 14  # scrypt N = 2**14
SALT_BYTES = 16
NONCE_BYTES = 12  # AESGCM recommended nonce size
KEY_BYTES = 32  # AES-256

# Shown in place of content that could not be decrypted
DECRYPTION_FAILED_PLACEHOLDER = "[Encrypted - Decryption Failed]"


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


def derive_key(passphrase: str, salt: bytes, cost: int = DEFAULT_COST) -> bytes:
    """passphrase + salt -> 32 byte AES key."""
    if not passphrase:
        raise CodecError("Encryption key is empty", code=ErrorCode.CODEC_KEY_MISSING)
    kdf = Scrypt(salt=salt, length=KEY_BYTES, n=2**cost, r=8, p=1)
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_text(plaintext: str, key: str, cost: int = DEFAULT_COST) -> str:
    """Encrypt ``plaintext`` and return a self-describing blob.

    Raises:
        CodecError: If ``key`` is empty.
    """
    if not key:
        raise CodecError("Encryption key is empty", code=ErrorCode.CODEC_KEY_MISSING)

    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    aesgcm = AESGCM(derive_key(key, salt, cost))
    ct = aesgcm.encrypt(nonce, (plaintext or "").encode("utf-8"), associated_data=None)
    return "$".join([BLOB_PREFIX, str(cost), _b64e(salt), _b64e(nonce), _b64e(ct)])


def decrypt_text(blob: str, key: str) -> str:
    """Open a blob produced by :func:`encrypt_text`.

    Raises:
        CodecError: If the key is empty, the blob is malformed, or the key
            does not match (authentication failure).
    """
    if not key:
        raise CodecError("Encryption key is empty", code=ErrorCode.CODEC_KEY_MISSING)

    parts = (blob or "").split("$")
    if len(parts) != 5 or parts[0] != BLOB_PREFIX:
        raise CodecError("Invalid encrypted data format", code=ErrorCode.CODEC_MALFORMED)

    try:
        cost = int(parts[1])
        salt = _b64d(parts[2])
        nonce = _b64d(parts[3])
        ct = _b64d(parts[4])
    except (ValueError, binascii.Error) as e:
        raise CodecError(
            "Invalid encrypted data format",
            code=ErrorCode.CODEC_MALFORMED,
            original_error=e,
        ) from e

    if len(salt) != SALT_BYTES or len(nonce) != NONCE_BYTES or not 1 <= cost <= 20:
        raise CodecError("Invalid encrypted data format", code=ErrorCode.CODEC_MALFORMED)

    try:
        pt = AESGCM(derive_key(key, salt, cost)).decrypt(nonce, ct, associated_data=None)
    except InvalidTag as e:
        raise CodecError(
            "Failed to decrypt data (wrong key or corrupted content)",
            original_error=e,
        ) from e

    try:
        return pt.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CodecError("Decrypted content is not valid UTF-8", original_error=e) from e


def looks_encrypted(text: str) -> bool:
    """Structural check only: does ``text`` have the shape of a blob?"""
    if not text:
        return False
    parts = text.split("$")
    return len(parts) == 5 and parts[0] == BLOB_PREFIX and parts[1].isdigit()
