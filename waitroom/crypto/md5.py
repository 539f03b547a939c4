"""
Pure-Python MD5 (RFC 1321)

Used only as the building block of the legacy passphrase key derivation.
Inputs here are a few dozen bytes, so the digest is computed in one shot
over the fully padded message.
"""

import math
import struct

_MASK = 0xFFFFFFFF

# Registers A, B, C, D before the first block
_INITIAL_STATE = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)

# Left-rotate amounts, one row of four per round quarter
_SHIFTS = (
    (7, 12, 17, 22) * 4
    + (5, 9, 14, 20) * 4
    + (4, 11, 16, 23) * 4
    + (6, 10, 15, 21) * 4
)

# K[i] = floor(|sin(i + 1)| * 2^32)
_CONSTANTS = tuple(int(abs(math.sin(i + 1)) * 2**32) & _MASK for i in range(64))


def _rotate_left(value: int, amount: int) -> int:
    return ((value << amount) | (value >> (32 - amount))) & _MASK


def _pad(message: bytes) -> bytes:
    """Append 0x80, zero fill to 56 mod 64, then the 64-bit LE bit length."""
    bit_length = (len(message) * 8) & 0xFFFFFFFFFFFFFFFF
    zeros = (55 - len(message)) % 64
    return message + b"\x80" + b"\x00" * zeros + struct.pack("<Q", bit_length)


def _compress(state: tuple, block: bytes) -> tuple:
    """Run the 64 rounds over one 64-byte block."""
    words = struct.unpack("<16I", block)
    a, b, c, d = state

    for i in range(64):
        if i < 16:
            f = (b & c) | (~b & d)
            g = i
        elif i < 32:
            f = (d & b) | (~d & c)
            g = (5 * i + 1) % 16
        elif i < 48:
            f = b ^ c ^ d
            g = (3 * i + 5) % 16
        else:
            f = c ^ (b | (~d & _MASK))
            g = (7 * i) % 16

        f = (f + a + _CONSTANTS[i] + words[g]) & _MASK
        a, d, c = d, c, b
        b = (b + _rotate_left(f, _SHIFTS[i])) & _MASK

    return (
        (state[0] + a) & _MASK,
        (state[1] + b) & _MASK,
        (state[2] + c) & _MASK,
        (state[3] + d) & _MASK,
    )


def md5_digest(data: bytes) -> bytes:
    """
    Compute the 16-byte MD5 digest of data.

    Args:
        data: Message bytes

    Returns:
        Digest as the four final registers, little-endian
    """
    padded = _pad(bytes(data))
    state = _INITIAL_STATE
    for offset in range(0, len(padded), 64):
        state = _compress(state, padded[offset:offset + 64])
    return struct.pack("<4I", *state)


def md5_hexdigest(data: bytes) -> str:
    """Hex form of md5_digest"""
    return md5_digest(data).hex()
