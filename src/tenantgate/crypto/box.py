"""
AES-256-GCM sealing of opaque byte payloads.

Wire format: ``{b64(nonce)}:{b64(ciphertext)}:{b64(tag)}``
- 96-bit nonce, fresh from the OS CSPRNG on every seal
- 128-bit authentication tag
- each segment standard base64, ``:`` never occurs in the alphabet
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tenantgate.common.exceptions import AuthenticationFailure, InvalidKey

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16
SEPARATOR = ":"


def random_bytes(n: int) -> bytes:
    """Cryptographically secure random bytes."""
    return os.urandom(n)


def generate_key() -> bytes:
    """Generate a new 256-bit AES key."""
    return random_bytes(KEY_LEN)


def encode_key(key: bytes) -> str:
    return base64.b64encode(key).decode("ascii")


def decode_key(encoded: str) -> bytes:
    """Decode a base64 key, raising InvalidKey unless it is 32 bytes."""
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKey("Key must be base64-encoded") from exc
    _check_key(key)
    return key


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LEN:
        raise InvalidKey(f"Key must be {KEY_LEN} bytes, got {len(key)}")


def _b64decode_segment(segment: str) -> bytes:
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AuthenticationFailure("Encrypted payload segment is not valid base64") from exc


def seal(key: bytes, plaintext: bytes) -> str:
    """
    Encrypt and authenticate a payload.

    Args:
        key: 32-byte AES key
        plaintext: bytes to protect

    Returns:
        ``nonce:ciphertext:tag`` with every segment base64-encoded
    """
    _check_key(key)
    nonce = random_bytes(NONCE_LEN)
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    ciphertext, tag = sealed[:-TAG_LEN], sealed[-TAG_LEN:]
    return SEPARATOR.join(
        base64.b64encode(part).decode("ascii") for part in (nonce, ciphertext, tag)
    )


def open(key: bytes, payload: str) -> bytes:
    """
    Verify and decrypt a payload produced by :func:`seal`.

    Raises:
        InvalidKey: key is not 32 bytes
        AuthenticationFailure: payload is malformed or the tag does not verify
    """
    _check_key(key)
    if not isinstance(payload, str):
        raise AuthenticationFailure("Encrypted payload must be text")
    parts = payload.split(SEPARATOR)
    if len(parts) != 3:
        raise AuthenticationFailure(
            "Invalid encrypted payload format, expected 'nonce:ciphertext:tag'"
        )
    nonce, ciphertext, tag = (_b64decode_segment(p) for p in parts)
    if len(nonce) != NONCE_LEN or len(tag) != TAG_LEN:
        raise AuthenticationFailure("Encrypted payload has a bad nonce or tag length")
    try:
        return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise AuthenticationFailure(
            "Decryption failed, data may be corrupted or sealed with a different key"
        ) from exc
