"""Cache value encryption and key hashing service."""

import hashlib
import hmac
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_BYTES = 12


class EncryptionService:
    """Service for encrypting, decrypting and hashing cache data."""

    def __init__(self, encryption_key: str):
        """Initialize encryption service with encryption key.

        Args:
            encryption_key: 64-character hex string (32 bytes)

        Raises:
            ValueError: If encryption key is not 64 hex characters
        """
        if len(encryption_key) != 64:
            raise ValueError("Encryption key must be 64 hex characters (32 bytes)")

        try:
            self.key = bytes.fromhex(encryption_key)
        except ValueError as e:
            raise ValueError(f"Encryption key must be valid hex string: {e}")

        self._aead = AESGCM(self.key)

    def generate_nonce(self) -> str:
        """Generate a random 96-bit nonce as a hex string."""
        return secrets.token_hex(NONCE_BYTES)

    def encrypt(self, plaintext: str, nonce: str, associated_data: str) -> str:
        """Encrypt ``plaintext`` with AES-256-GCM.

        ``associated_data`` is authenticated but not encrypted; the cache binds
        each value to its segment and key hash this way, so a ciphertext copied
        to another row fails to decrypt.

        Returns:
            Hex-encoded ciphertext including the authentication tag
        """
        nonce_bytes = self._nonce_bytes(nonce)
        encrypted = self._aead.encrypt(
            nonce_bytes, plaintext.encode(), associated_data.encode()
        )
        return encrypted.hex()

    def decrypt(self, ciphertext: str, nonce: str, associated_data: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            ValueError: If the ciphertext, nonce or associated data do not match
        """
        nonce_bytes = self._nonce_bytes(nonce)
        try:
            decrypted = self._aead.decrypt(
                nonce_bytes, bytes.fromhex(ciphertext), associated_data.encode()
            )
        except InvalidTag:
            raise ValueError("Cache value failed authentication")
        return decrypted.decode()

    def hash_key(self, key: str) -> str:
        """Keyed SHA-256 digest of a cache key, as a 64-character hex string."""
        return hmac.new(self.key, key.encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def _nonce_bytes(nonce: str) -> bytes:
        try:
            nonce_bytes = bytes.fromhex(nonce)
        except ValueError as e:
            raise ValueError(f"Nonce must be valid hex string: {e}")

        if len(nonce_bytes) != NONCE_BYTES:
            raise ValueError(f"Nonce must be {NONCE_BYTES} bytes")
        return nonce_bytes
