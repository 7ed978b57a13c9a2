# backend/app/services/credential_store.py
"""
Encrypted key/value store for provider secrets
Values are JSON documents encrypted with the EncryptionService.
"""

import json
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.encryption import EncryptionService
from app.db.models.stored_credential import StoredCredential


class CredentialStore:
    """Opaque put/get of secret documents; reads fail closed on key mismatch"""

    def __init__(self, session: AsyncSession, encryption: Optional[EncryptionService] = None):
        self.session = session
        self._encryption = encryption

    @property
    def encryption(self) -> EncryptionService:
        if self._encryption is None:
            self._encryption = EncryptionService()
        return self._encryption

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        """Stage an encrypted write; the caller commits"""
        ciphertext = self.encryption.encrypt(json.dumps(value))
        row = await self.session.get(StoredCredential, key)
        if row is None:
            self.session.add(StoredCredential(key=key, ciphertext=ciphertext))
        else:
            row.ciphertext = ciphertext
        await self.session.flush()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        row = await self.session.get(StoredCredential, key)
        if row is None:
            return None
        return json.loads(self.encryption.decrypt(row.ciphertext))
