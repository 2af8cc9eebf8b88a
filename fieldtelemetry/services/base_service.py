"""Base service class for device-scoped database rows."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldtelemetry.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(Generic[ModelType]):
    """Common operations for models carrying a ``device_id`` column."""

    def __init__(self, db: AsyncSession, model: type[ModelType]):
        self.db = db
        self.model = model

    async def get_by_id(self, id: Any) -> ModelType | None:
        """Get entity by primary key."""
        return await self.db.get(self.model, id)

    async def get_for_device(self, device_id: str, id: Any) -> ModelType | None:
        """Get entity by primary key, only if it belongs to the device."""
        obj = await self.get_by_id(id)
        if obj is None or obj.device_id != device_id:
            return None
        return obj

    async def list_for_device(self, device_id: str) -> list[ModelType]:
        """Get all entities of a device, oldest first."""
        result = await self.db.execute(
            select(self.model)
            .where(self.model.device_id == device_id)
            .order_by(*self.model.__mapper__.primary_key)
        )
        return list(result.scalars().all())

    async def create(self, obj: ModelType) -> ModelType:
        """Create new entity."""
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def update(self, obj: ModelType) -> ModelType:
        """Commit pending changes to an entity."""
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def delete(self, obj: ModelType) -> None:
        """Delete entity."""
        await self.db.delete(obj)
        await self.db.commit()
