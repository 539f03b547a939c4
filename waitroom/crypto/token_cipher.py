"""
Decryption of waiting-room tokens

Tokens are produced by an external tool in the OpenSSL / CryptoJS
passphrase container format:

    base64( "Salted__" | salt[8] | AES-256-CBC(PKCS#7(plaintext)) )

with key and IV derived from the passphrase by the legacy MD5 scheme.
"""

import base64
import binascii

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .kdf import derive_key_material

SALTED_MAGIC = b"Salted__"
HEADER_LENGTH = 16
BLOCK_SIZE = 16


class DecryptError(Exception):
    """Base exception for token decryption failures"""

    code = "decrypt_error"


class FormatError(DecryptError):
    """The token is not a well-formed encrypted container"""

    code = "format_error"


class MalformedEncoding(FormatError):
    """Raised when the token is not valid base64"""

    code = "malformed_encoding"


class UnrecognizedFormat(FormatError):
    """Raised when the magic marker is missing"""

    code = "unrecognized_format"


class InvalidCiphertextLength(FormatError):
    """Raised when the ciphertext is empty or not whole blocks"""

    code = "invalid_ciphertext_length"


class CryptoError(DecryptError):
    """The container parsed but did not decrypt to a token"""

    code = "crypto_error"


class PaddingInvalid(CryptoError):
    """Raised when PKCS#7 padding does not verify (usually a wrong passphrase)"""

    code = "padding_invalid"


class InvalidUtf8(CryptoError):
    """Raised when the plaintext is not UTF-8 text"""

    code = "invalid_utf8"


class TokenDecryptor:
    """
    Decrypts encrypted tokens with a single configured passphrase.

    The passphrase is passed in explicitly and held privately; it is never
    logged or included in error messages.
    """

    def __init__(self, passphrase: str):
        self._passphrase = passphrase.encode("utf-8")

    def __repr__(self) -> str:
        return "TokenDecryptor(passphrase=***)"

    def decrypt(self, encrypted_token: str) -> str:
        """
        Decrypt a token to its plaintext identifier.

        Args:
            encrypted_token: Base64 container text

        Returns:
            Plaintext token string

        Raises:
            MalformedEncoding, UnrecognizedFormat, InvalidCiphertextLength,
            PaddingInvalid, InvalidUtf8
        """
        raw = self._decode(encrypted_token)

        if raw[:2] != SALTED_MAGIC[:2]:
            raise UnrecognizedFormat("Token does not start with the salted marker")

        ciphertext = raw[HEADER_LENGTH:]
        if len(raw) < HEADER_LENGTH or not ciphertext or len(ciphertext) % BLOCK_SIZE:
            raise InvalidCiphertextLength(
                f"Ciphertext must be a nonzero multiple of {BLOCK_SIZE} bytes"
            )

        salt = raw[8:HEADER_LENGTH]
        material = derive_key_material(self._passphrase, salt)

        decryptor = Cipher(algorithms.AES(material.key), modes.CBC(material.iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise PaddingInvalid("Token padding is invalid") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUtf8("Decrypted token is not valid UTF-8") from e

    @staticmethod
    def _decode(encrypted_token: str) -> bytes:
        if not isinstance(encrypted_token, str):
            raise MalformedEncoding("Token must be a string")
        compact = "".join(encrypted_token.split())
        if not compact:
            raise MalformedEncoding("Token is empty")
        try:
            return base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedEncoding(f"Token is not valid base64: {e}") from e
