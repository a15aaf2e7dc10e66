import os
import re
from typing import Optional
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from storesync.utils.exceptions import ConfigError

ENCRYPTED_PATTERN = re.compile(r'^[0-9a-f]{32}:[0-9a-f]+$', re.IGNORECASE)
HEX_KEY_PATTERN = re.compile(r'^[0-9a-f]{64}$', re.IGNORECASE)

class CredentialVault:
    """
    AES-256-CBC encryption for stored access tokens.

    Ciphertext is stored as "<iv hex>:<ciphertext hex>". Values without that shape are
    treated as legacy plaintext and pass through decrypt unchanged.
    """

    def __init__(self, secret: str, logger: 'CustomLogger'): # type: ignore
        if not secret:
            raise ConfigError("ENCRYPTION_KEY is not configured")
        self.key = self._derive_key(secret)
        self.logger = logger

    @staticmethod
    def _derive_key(secret: str) -> bytes:
        if HEX_KEY_PATTERN.match(secret):
            return bytes.fromhex(secret)
        # Padded and cut as characters, then encoded
        key = secret.ljust(32, '0')[:32].encode('utf-8')
        if len(key) != 32:
            raise ConfigError(
                "ENCRYPTION_KEY must be 64 hex characters or a passphrase whose first 32 characters are single-byte",
                key_bytes=len(key)
            )
        return key

    @staticmethod
    def is_probably_encrypted(value: Optional[str]) -> bool:
        return bool(value) and ENCRYPTED_PATTERN.match(value) is not None

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(16)
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not self.is_probably_encrypted(value):
            return value

        try:
            iv_hex, ciphertext_hex = value.split(':', 1)
            decryptor = Cipher(
                algorithms.AES(self.key),
                modes.CBC(bytes.fromhex(iv_hex))
            ).decryptor()
            padded = decryptor.update(bytes.fromhex(ciphertext_hex)) + decryptor.finalize()
            unpadder = padding.PKCS7(128).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode('utf-8')
        except (ValueError, UnicodeDecodeError) as e:
            self.logger.error(f"Failed to decrypt credential: {str(e)}")
            return None
