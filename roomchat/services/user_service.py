# roomchat/services/user_service.py
from typing import Optional
from uuid import UUID
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User
from .base_service import BaseService


class UserService(BaseService[User]):
    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_by_email(self, email: str, include_deleted: bool = False) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower().strip())
        if not include_deleted:
            stmt = stmt.where(User.is_deleted == False)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_conflict(self, email: str, username: str) -> Optional[str]:
        """Name of the unique field already taken, if any"""
        result = await self.db.execute(
            select(User.email, User.username).where(or_(User.email == email, User.username == username))
        )
        for existing_email, existing_username in result.all():
            if existing_email == email:
                return "email"
            if existing_username == username:
                return "username"
        return None

    async def get_public(self, user_id: UUID) -> Optional[dict]:
        user = await self.get(user_id)
        return user.to_public() if user else None
