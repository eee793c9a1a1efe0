"""
Credential Cipher for Supplier and Marketplace Credentials

Encrypts API keys, passwords and tokens into a self-describing hex envelope:

- current:  nonce_hex:tag_hex:ciphertext_hex  (AES-256-GCM, 96-bit nonce)
- legacy:   iv_hex:ciphertext_hex             (AES-256-CBC, PKCS7, decrypt only)

The symmetric key is derived once per process from the master key with scrypt
and a static deployment salt.
"""

import functools
import json
import logging
import re
import secrets
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from CatalogBridge.config import Settings
from CatalogBridge.exceptions import (
    ConfigurationError,
    DecryptionError,
    InvalidFormatError,
    SerializationError,
)

logger = logging.getLogger(__name__)

DEV_FALLBACK_SECRET = "dev-insecure-key"
DEFAULT_KDF_SALT = "catalogbridge.salt"

KEY_LENGTH = 32  # 256 bits
NONCE_LENGTH = 12  # 96 bits for GCM
TAG_LENGTH = 16
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

_HEX_SEGMENT = re.compile(r"[0-9a-f]+", re.IGNORECASE)

Secret = Union[str, Dict[str, Any], list]


@functools.lru_cache(maxsize=8)
def _derive_key(master_key: str, salt: str) -> bytes:
    kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(master_key.encode("utf-8"))


class CredentialCipher:
    """
    Encrypts and decrypts credential payloads.

    Structured values (dicts, lists) are JSON-serialized before encryption and
    come back as the same structure from decrypt().
    """

    def __init__(self, master_key: str, salt: str = DEFAULT_KDF_SALT):
        if not master_key:
            raise ConfigurationError("Master encryption key not provided", config_field="ENCRYPTION_KEY")

        self.logger = logging.getLogger(f"{__name__}.CredentialCipher")
        self.algorithm = "AES-256-GCM"
        self.legacy_algorithm = "AES-256-CBC"
        self._salt = salt
        self._key = _derive_key(master_key, salt)

    # ========== Envelope Operations ==========

    def encrypt(self, secret: Any) -> str:
        """
        Encrypt a secret into the current envelope format.

        Args:
            secret: Plain string, or any JSON-serializable value

        Returns:
            nonce_hex:tag_hex:ciphertext_hex
        """
        if isinstance(secret, str):
            plaintext = secret
        else:
            try:
                plaintext = json.dumps(secret, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise SerializationError(f"Secret is not JSON-serializable: {e}")

        nonce = secrets.token_bytes(NONCE_LENGTH)
        encryptor = Cipher(algorithms.AES(self._key), modes.GCM(nonce)).encryptor()
        ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()

        return f"{nonce.hex()}:{encryptor.tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> Secret:
        """
        Decrypt an envelope produced by encrypt() or by the legacy CBC scheme.

        Raises:
            InvalidFormatError: envelope is not a string of 2 or 3 hex segments
            DecryptionError: authentication failed or the payload is corrupt
        """
        if not isinstance(envelope, str) or not envelope:
            raise InvalidFormatError("Encrypted data must be a non-empty string")

        segments = envelope.split(":")
        if len(segments) not in (2, 3):
            raise InvalidFormatError(f"Expected 2 or 3 envelope segments, got {len(segments)}")
        raw = [self._unhex(segment) for segment in segments]

        if len(raw) == 3:
            plaintext_bytes = self._decrypt_gcm(*raw)
        else:
            plaintext_bytes = self._decrypt_legacy_cbc(*raw)

        try:
            plaintext = plaintext_bytes.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted payload is not valid UTF-8")

        return self._parse_plaintext(plaintext)

    def is_encrypted(self, value: Any) -> bool:
        """Structural check only: 2 or 3 colon-separated hex segments."""
        if not isinstance(value, str) or not value:
            return False
        segments = value.split(":")
        if len(segments) not in (2, 3):
            return False
        return all(_HEX_SEGMENT.fullmatch(segment) for segment in segments)

    def get_encryption_info(self) -> Dict[str, Any]:
        """Get information about the encryption configuration"""
        return {
            "algorithm": self.algorithm,
            "legacy_algorithm": self.legacy_algorithm,
            "key_length": KEY_LENGTH,
            "nonce_length": NONCE_LENGTH,
            "tag_length": TAG_LENGTH,
            "kdf": {"name": "scrypt", "n": SCRYPT_N, "r": SCRYPT_R, "p": SCRYPT_P},
        }

    # ========== Internals ==========

    @staticmethod
    def _unhex(segment: str) -> bytes:
        if not _HEX_SEGMENT.fullmatch(segment):
            raise InvalidFormatError("Envelope segments must be hexadecimal")
        try:
            return bytes.fromhex(segment)
        except ValueError:
            raise InvalidFormatError("Envelope segment has an odd number of hex digits")

    def _decrypt_gcm(self, nonce: bytes, tag: bytes, ciphertext: bytes) -> bytes:
        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.GCM(nonce, tag)).decryptor()
            return decryptor.update(ciphertext) + decryptor.finalize()
        except (InvalidTag, ValueError) as e:
            self.logger.warning("Credential envelope failed authentication")
            raise DecryptionError(f"Failed to decrypt data: {type(e).__name__}")

    def _decrypt_legacy_cbc(self, iv: bytes, ciphertext: bytes) -> bytes:
        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError(f"Failed to decrypt legacy data: {e}")

    @staticmethod
    def _parse_plaintext(plaintext: str) -> Secret:
        try:
            parsed = json.loads(plaintext)
        except ValueError:
            return plaintext
        # Scalars stay strings so encrypt("123") round-trips as "123"
        if isinstance(parsed, (dict, list)):
            return parsed
        return plaintext


def create_credential_cipher(settings: Settings) -> CredentialCipher:
    """
    Build the process-wide cipher from settings.

    Outside production a missing ENCRYPTION_KEY falls back to a fixed
    development secret so local databases stay readable across restarts.
    """
    master_key: Optional[str] = settings.encryption_key
    if not master_key:
        if settings.is_production:
            raise ConfigurationError("ENCRYPTION_KEY must be set in production", config_field="ENCRYPTION_KEY")
        logger.warning(
            "No ENCRYPTION_KEY found in environment. Using the insecure development key; "
            "set ENCRYPTION_KEY before storing real credentials."
        )
        master_key = DEV_FALLBACK_SECRET

    return CredentialCipher(master_key, salt=settings.credential_kdf_salt)
