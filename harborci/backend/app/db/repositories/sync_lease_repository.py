# backend/app/db/repositories/sync_lease_repository.py
from datetime import datetime
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.stored_credential import SyncLease
from app.db.repositories.base import BaseRepository


class SyncLeaseRepository(BaseRepository[SyncLease]):
    """Database-backed mutual exclusion per provider account"""

    def __init__(self, session: AsyncSession):
        super().__init__(SyncLease, session)

    async def acquire(self, account_key: str, holder: str, now: datetime, expires_at: datetime) -> bool:
        """Take the lease and commit; False if another holder has a live lease"""
        lease = await self.get(account_key, fresh=True)
        if lease is None:
            self.session.add(SyncLease(account_key=account_key, holder=holder, acquired_at=now, expires_at=expires_at))
            try:
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                return False
            return True

        rows = await self.update_where(
            SyncLease.account_key == account_key,
            SyncLease.expires_at <= now,
            holder=holder,
            acquired_at=now,
            expires_at=expires_at,
        )
        await self.session.commit()
        return rows == 1

    async def release(self, account_key: str, holder: str) -> None:
        await self.session.execute(
            delete(SyncLease).where(SyncLease.account_key == account_key, SyncLease.holder == holder)
        )
        await self.session.commit()
