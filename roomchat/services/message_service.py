# roomchat/services/message_service.py
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.message import Message
from .base_service import BaseService


class MessageService(BaseService[Message]):
    """Write path for chat messages. Store errors propagate to the caller."""

    def __init__(self, db: AsyncSession):
        super().__init__(Message, db)

    async def create_message(self, room_id: UUID, sender_id: UUID, content: str) -> Message:
        return await self.create({
            "room_id": room_id,
            "sender_id": sender_id,
            "content": content,
        })

    async def get_in_room(self, message_id: UUID, room_id: UUID) -> Optional[Message]:
        result = await self.db.execute(
            select(Message).where(
                and_(
                    Message.id == message_id,
                    Message.room_id == room_id,
                    Message.is_deleted == False,
                )
            )
        )
        return result.scalar_one_or_none()

    async def filter_room_message_ids(self, room_id: UUID, message_ids: List[UUID]) -> List[UUID]:
        """Keep only the ids of live messages that belong to the room"""
        if not message_ids:
            return []
        result = await self.db.execute(
            select(Message.id).where(
                and_(
                    Message.id.in_(message_ids),
                    Message.room_id == room_id,
                    Message.is_deleted == False,
                )
            )
        )
        return list(result.scalars().all())
