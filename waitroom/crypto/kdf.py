"""
Legacy passphrase key derivation (OpenSSL EVP_BytesToKey with MD5, one round)
"""

from dataclasses import dataclass, field

from .md5 import md5_digest

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16   # one AES block

# MD5 yields 16 bytes per iteration; 48 bytes of material takes exactly 3
_MAX_ITERATIONS = 16


@dataclass(frozen=True)
class DerivedKeyMaterial:
    """Cipher key and IV derived for one token. Never persisted."""

    key: bytes = field(repr=False)
    iv: bytes = field(repr=False)


def derive_key_material(
    passphrase: bytes,
    salt: bytes,
    key_len: int = KEY_LENGTH,
    iv_len: int = IV_LENGTH,
) -> DerivedKeyMaterial:
    """
    Stretch passphrase + salt into a key and IV.

    D_1 = MD5(passphrase || salt), D_i = MD5(D_{i-1} || passphrase || salt),
    concatenated until key_len + iv_len bytes are available.

    Args:
        passphrase: Secret passphrase bytes
        salt: 8-byte salt taken from the token
        key_len: Key length in bytes
        iv_len: IV length in bytes

    Returns:
        DerivedKeyMaterial with the first key_len bytes as key, next iv_len as IV

    Raises:
        RuntimeError: If the bounded loop cannot produce enough material
    """
    needed = key_len + iv_len
    material = b""
    previous = b""

    for _ in range(_MAX_ITERATIONS):
        if len(material) >= needed:
            break
        previous = md5_digest(previous + passphrase + salt)
        material += previous
    else:
        if len(material) < needed:
            raise RuntimeError(
                f"Key derivation produced {len(material)} of {needed} bytes"
            )

    return DerivedKeyMaterial(
        key=material[:key_len],
        iv=material[key_len:needed],
    )
