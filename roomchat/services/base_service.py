# roomchat/services/base_service.py
"""Base service with soft-delete aware lookups and pagination."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import Select, select, func
from typing import Type, Any, Dict, Optional, TypeVar, Generic

from ..schemas.pagination import PaginatedResponse

# Define generic type
T = TypeVar('T')

class BaseService(Generic[T]):
    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any, include_deleted: bool = False) -> Optional[T]:
        stmt = select(self.model).where(self.model.id == id)
        if not include_deleted:
            stmt = stmt.where(self.model.is_deleted == False)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def paginate(self, stmt: Select, page: int, size: int, transform=None) -> PaginatedResponse:
        """Run a select with offset/limit and a matching count query"""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await self.db.execute(count_stmt)).scalar() or 0

        result = await self.db.execute(stmt.offset((page - 1) * size).limit(size))
        rows = result.all()
        items = [transform(row) for row in rows] if transform else [row[0] for row in rows]
        return PaginatedResponse.build(items=items, total=total, page=page, size=size)

    async def create(self, obj_in: Dict, commit: bool = True) -> T:
        obj = self.model(**obj_in)
        self.db.add(obj)
        if commit:
            await self.db.commit()
            await self.db.refresh(obj)
        else:
            await self.db.flush()
        return obj

