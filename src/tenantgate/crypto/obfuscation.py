"""
Keyed, reversible masking of tenant UUIDs for external display.

The version nibble and the two variant bits stay in cleartext so the token
still reads as an ordinary UUID. The remaining 122 bits go through a 6-round
balanced Feistel network (two 61-bit halves) whose round function is
HMAC-SHA256 keyed by the tenant's two 64-bit key halves. A Feistel network is
a permutation for any round function, so every 128-bit value round-trips and
no two ids collide under the same key.
"""

import hashlib
import hmac
import uuid
from typing import Union

from tenantgate.common.exceptions import InvalidToken
from tenantgate.crypto.box import random_bytes

ROUNDS = 6
HALF_BITS = 61
HALF_MASK = (1 << HALF_BITS) - 1
KEY_MAX = (1 << 64) - 1

# Bit positions counted from the least significant bit of the 128-bit value
_VERSION_SHIFT = 76
_VARIANT_SHIFT = 62
_FIXED_MASK = (0xF << _VERSION_SHIFT) | (0x3 << _VARIANT_SHIFT)


def new_key() -> tuple[int, int]:
    """Draw a fresh (k0, k1) key pair from the CSPRNG."""
    raw = random_bytes(16)
    return int.from_bytes(raw[:8], "big"), int.from_bytes(raw[8:], "big")


def key_to_hex(half: int) -> str:
    return f"{half:016x}"


def key_from_hex(value: str) -> int:
    try:
        half = int(value, 16)
    except (TypeError, ValueError) as exc:
        raise InvalidToken("Obfuscation key half must be hexadecimal") from exc
    _check_key_half(half)
    return half


def _check_key_half(half: int) -> None:
    if not 0 <= half <= KEY_MAX:
        raise InvalidToken("Obfuscation key halves must be unsigned 64-bit integers")


def _hmac_key(k0: int, k1: int) -> bytes:
    _check_key_half(k0)
    _check_key_half(k1)
    return k0.to_bytes(8, "big") + k1.to_bytes(8, "big")


def _round(key: bytes, index: int, half: int) -> int:
    digest = hmac.new(key, bytes([index]) + half.to_bytes(8, "big"), hashlib.sha256).digest()
    return int.from_bytes(digest[:8], "big") & HALF_MASK


def _pack(value: int) -> int:
    """Collect the 122 non-fixed bits into one contiguous integer."""
    high = value >> 80  # 48 bits above the version nibble
    mid = (value >> 64) & 0xFFF  # 12 bits between version and variant
    low = value & ((1 << 62) - 1)  # 62 bits below the variant
    return (high << 74) | (mid << 62) | low


def _unpack(packed: int, fixed: int) -> int:
    high = packed >> 74
    mid = (packed >> 62) & 0xFFF
    low = packed & ((1 << 62) - 1)
    return (high << 80) | fixed | (mid << 64) | low


def _permute(packed: int, key: bytes) -> int:
    left, right = packed >> HALF_BITS, packed & HALF_MASK
    for i in range(ROUNDS):
        left, right = right, left ^ _round(key, i, right)
    return (left << HALF_BITS) | right


def _unpermute(packed: int, key: bytes) -> int:
    left, right = packed >> HALF_BITS, packed & HALF_MASK
    for i in reversed(range(ROUNDS)):
        left, right = right ^ _round(key, i, left), left
    return (left << HALF_BITS) | right


def obfuscate(tenant_id: Union[uuid.UUID, str], k0: int, k1: int) -> str:
    """
    Mask a tenant id for external display.

    Args:
        tenant_id: the internal 128-bit id (UUID or its text form)
        k0, k1: the tenant's 64-bit key halves

    Returns:
        the masked id in canonical UUID text form
    """
    if not isinstance(tenant_id, uuid.UUID):
        try:
            tenant_id = uuid.UUID(str(tenant_id))
        except ValueError as exc:
            raise InvalidToken("Tenant id is not a valid UUID") from exc
    value = tenant_id.int
    masked = _permute(_pack(value), _hmac_key(k0, k1))
    return str(uuid.UUID(int=_unpack(masked, value & _FIXED_MASK)))


def deobfuscate(token: str, k0: int, k1: int) -> uuid.UUID:
    """Recover the internal id from a token produced by :func:`obfuscate`."""
    try:
        value = uuid.UUID(token).int
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidToken() from exc
    original = _unpermute(_pack(value), _hmac_key(k0, k1))
    return uuid.UUID(int=_unpack(original, value & _FIXED_MASK))
