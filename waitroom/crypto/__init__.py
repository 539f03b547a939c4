"""
Waiting-room token cryptography

Provides:
- A pure-Python MD5 digest
- Legacy passphrase key derivation (MD5-based EVP_BytesToKey)
- Decryption of "Salted__" AES-256-CBC token containers
"""

from .md5 import md5_digest, md5_hexdigest
from .kdf import DerivedKeyMaterial, derive_key_material
from .token_cipher import (
    TokenDecryptor,
    DecryptError,
    FormatError,
    CryptoError,
    MalformedEncoding,
    UnrecognizedFormat,
    InvalidCiphertextLength,
    PaddingInvalid,
    InvalidUtf8,
)

__all__ = [
    "md5_digest",
    "md5_hexdigest",
    "DerivedKeyMaterial",
    "derive_key_material",
    "TokenDecryptor",
    "DecryptError",
    "FormatError",
    "CryptoError",
    "MalformedEncoding",
    "UnrecognizedFormat",
    "InvalidCiphertextLength",
    "PaddingInvalid",
    "InvalidUtf8",
]
