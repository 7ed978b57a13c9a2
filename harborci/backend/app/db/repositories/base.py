# backend/app/db/repositories/base.py
from typing import Any, Generic, TypeVar, Type, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common operations.

    Repositories never commit; the calling service owns the transaction.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: Any, fresh: bool = False) -> Optional[ModelType]:
        """Get by primary key; fresh=True bypasses the identity map"""
        return await self.session.get(self.model, id, populate_existing=fresh)

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[dict] = None,
        order_by: Any = None,
    ) -> List[ModelType]:
        """Get multiple records"""
        query = select(self.model)

        if filters:
            for key, value in filters.items():
                if value is not None:
                    query = query.where(getattr(self.model, key) == value)

        if order_by is not None:
            query = query.order_by(order_by)

        query = query.offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, obj_in: dict) -> ModelType:
        """Stage a new record and flush it so defaults are populated"""
        db_obj = self.model(**obj_in)
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def update_where(self, *criteria, **values) -> int:
        """Conditional bulk update; returns the number of matched rows"""
        result = await self.session.execute(
            update(self.model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
