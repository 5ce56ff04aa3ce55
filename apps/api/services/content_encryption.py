"""
Content Encryption Service

Encrypts user-written text (reflection notes, AI feedback) at rest with
Fernet symmetric encryption. The key comes from CONTENT_ENCRYPTION_KEY;
outside production a temporary key is generated so local runs work.
"""

from cryptography.fernet import Fernet, InvalidToken
from typing import Optional
import logging
from core.config import settings

logger = logging.getLogger(__name__)


class ContentEncryption:
    """Encrypts and decrypts free-text columns."""

    def __init__(self, key: Optional[str] = None):
        encryption_key = key or settings.CONTENT_ENCRYPTION_KEY

        if not encryption_key:
            if settings.ENVIRONMENT == "production":
                raise RuntimeError(
                    "CONTENT_ENCRYPTION_KEY must be set in production. "
                    "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            logger.warning("CONTENT_ENCRYPTION_KEY not set. Generating temporary key (NOT FOR PRODUCTION)")
            encryption_key = Fernet.generate_key().decode()

        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()

        try:
            self.cipher = Fernet(encryption_key)
        except ValueError as e:
            logger.error(f"Failed to initialize Fernet cipher: {e}")
            raise ValueError(f"Invalid encryption key format: {e}")

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        if not plaintext:
            return None
        return self.cipher.encrypt(plaintext.encode("utf-8")).decode()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """
        Decrypt a stored value.

        Returns None (and logs) when the value cannot be decrypted, e.g.
        after a key rotation without re-encryption.
        """
        if not ciphertext:
            return None
        try:
            return self.cipher.decrypt(ciphertext.encode()).decode("utf-8")
        except InvalidToken:
            logger.error("Content decryption failed: invalid token or wrong key")
            return None


_content_encryption: Optional[ContentEncryption] = None


def get_content_encryption() -> ContentEncryption:
    global _content_encryption
    if _content_encryption is None:
        _content_encryption = ContentEncryption()
    return _content_encryption


def encrypt_text(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return get_content_encryption().encrypt(text)


def decrypt_text(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return get_content_encryption().decrypt(text)
