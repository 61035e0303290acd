# roomchat/services/receipt_service.py
"""Delivery and read receipts for room messages.

Receipts never break the message path: store failures are logged and a
neutral value (nothing, False, 0, empty) is returned.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.message import Message, MessageReceipt
from ..models.room import RoomMember
from ..models.user import User

logger = logging.getLogger(__name__)


def compute_read_status(total_recipients: int, read_count: int) -> str:
    if total_recipients == 0:
        return "no_recipients"
    if read_count == total_recipients:
        return "all_read"
    if read_count > 0:
        return "partially_read"
    return "unread"


class ReceiptService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert_ignoring_duplicates(self, rows: List[dict]):
        dialect = self.db.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        return (
            insert(MessageReceipt.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["message_id", "recipient_id"])
        )

    async def create_delivery_receipts(self, message_id: UUID, room_id: UUID, sender_id: UUID):
        """One receipt per active member other than the sender; repeat calls add nothing."""
        try:
            result = await self.db.execute(
                select(RoomMember.member_id).where(
                    and_(
                        RoomMember.room_id == room_id,
                        RoomMember.member_id != sender_id,
                        RoomMember.is_deleted == False,
                    )
                )
            )
            recipient_ids = [member_id for member_id in result.scalars().all() if member_id != sender_id]
            if not recipient_ids:
                logger.debug(f"No recipients for message {message_id} in room {room_id}")
                return

            rows = [{"message_id": message_id, "recipient_id": recipient_id} for recipient_id in recipient_ids]
            await self.db.execute(self._insert_ignoring_duplicates(rows))
            await self.db.commit()
            logger.debug(f"Created receipts for message {message_id}: {len(rows)} recipients")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create receipts for message {message_id} in room {room_id}: {e}")

    async def mark_as_read(self, message_id: UUID, user_id: UUID) -> bool:
        """Stamp read_at; re-marking an already read receipt still counts as updated."""
        try:
            result = await self.db.execute(
                update(MessageReceipt)
                .where(
                    and_(
                        MessageReceipt.message_id == message_id,
                        MessageReceipt.recipient_id == user_id,
                    )
                )
                .values(read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to mark message {message_id} read for user {user_id}: {e}")
            return False

    async def mark_multiple_as_read(self, message_ids: List[UUID], user_id: UUID) -> int:
        """Returns how many receipts moved from unread to read."""
        if not message_ids:
            return 0
        try:
            result = await self.db.execute(
                update(MessageReceipt)
                .where(
                    and_(
                        MessageReceipt.message_id.in_(message_ids),
                        MessageReceipt.recipient_id == user_id,
                        MessageReceipt.read_at.is_(None),
                    )
                )
                .values(read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            logger.debug(f"Marked {result.rowcount} messages read for user {user_id}")
            return result.rowcount
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to bulk mark messages read for user {user_id}: {e}")
            return 0

    async def get_message_receipts(self, message_id: UUID) -> List[dict]:
        try:
            result = await self.db.execute(
                select(MessageReceipt, User)
                .join(User, User.id == MessageReceipt.recipient_id)
                .where(MessageReceipt.message_id == message_id)
                .order_by(User.username)
            )
            return [
                {
                    "messageId": str(receipt.message_id),
                    "recipientId": str(receipt.recipient_id),
                    "read": receipt.read_at is not None,
                    "readAt": receipt.read_at.isoformat() if receipt.read_at else None,
                    "recipient": user.to_public(),
                }
                for receipt, user in result.all()
            ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to get receipts for message {message_id}: {e}")
            return []

    async def get_messages_with_receipts(self, message_ids: List[UUID]) -> Dict[str, dict]:
        """Per-message receipt summary keyed by message id string."""
        if not message_ids:
            return {}
        try:
            result = await self.db.execute(
                select(
                    MessageReceipt.message_id,
                    func.count(MessageReceipt.id),
                    func.count(MessageReceipt.read_at),
                )
                .where(MessageReceipt.message_id.in_(message_ids))
                .group_by(MessageReceipt.message_id)
            )
            counts = {message_id: (total, read) for message_id, total, read in result.all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to summarise receipts for messages {message_ids}: {e}")
            return {}

        summaries = {}
        for message_id in message_ids:
            total, read = counts.get(message_id, (0, 0))
            summaries[str(message_id)] = {
                "totalRecipients": total,
                "readCount": read,
                "readStatus": compute_read_status(total, read),
            }
        return summaries

    async def get_unread_messages(self, user_id: UUID, room_id: Optional[UUID] = None) -> List[UUID]:
        try:
            stmt = select(MessageReceipt.message_id).where(
                and_(
                    MessageReceipt.recipient_id == user_id,
                    MessageReceipt.read_at.is_(None),
                )
            )
            if room_id:
                stmt = stmt.join(Message, Message.id == MessageReceipt.message_id).where(
                    and_(Message.room_id == room_id, Message.is_deleted == False)
                )
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to get unread messages for user {user_id} in room {room_id}: {e}")
            return []
