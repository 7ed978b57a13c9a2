# backend/app/core/encryption.py
"""
Symmetric encryption for credentials at rest
Fernet (AES-128-CBC + HMAC-SHA256) with a PBKDF2-derived key
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
from typing import Optional

from app.core.config import settings
from app.core.exceptions import CredentialError, NotConfiguredError
from app.core.logging import logger


class EncryptionService:
    """Encrypt and decrypt credential blobs"""

    def __init__(self, master_key: Optional[str] = None, salt: Optional[str] = None):
        master_key = master_key or settings.MASTER_ENCRYPTION_KEY
        salt = salt or settings.ENCRYPTION_SALT
        if not master_key:
            raise NotConfiguredError("MASTER_ENCRYPTION_KEY is not set")

        # Derive key from master key + salt
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        self.cipher = Fernet(key)

    def encrypt(self, data: str) -> str:
        return self.cipher.encrypt(data.encode()).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt; a wrong or rotated key fails closed"""
        try:
            return self.cipher.decrypt(encrypted_data.encode()).decode()
        except InvalidToken as e:
            logger.critical("Credential decryption failed, check MASTER_ENCRYPTION_KEY")
            raise CredentialError("Stored credential could not be decrypted") from e
