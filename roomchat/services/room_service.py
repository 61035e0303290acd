# roomchat/services/room_service.py
"""Room lifecycle, membership and the read side of room history."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings
from ..core.exceptions import AuthenticationError, AuthorizationError, ConflictError, NotFoundError
from ..core.security import create_invite_token, verify_invite_token
from ..models.message import Message
from ..models.room import Room, RoomMember, RoomRole
from ..models.user import User
from ..schemas.pagination import PaginatedResponse
from ..schemas.room_schemas import CreateRoomRequest
from .base_service import BaseService
from .presence_service import PresenceService
from .receipt_service import ReceiptService

logger = logging.getLogger(__name__)


def _room_to_dict(room: Room) -> dict:
    return {
        "id": str(room.id),
        "name": room.name,
        "description": room.description,
        "is_private": room.is_private,
        "created_at": room.created_at,
    }


class RoomService(BaseService[Room]):
    def __init__(self, db: AsyncSession, presence: PresenceService, settings: Settings):
        super().__init__(Room, db)
        self.presence = presence
        self.settings = settings
        self.receipts = ReceiptService(db)

    async def get_membership(self, user_id: UUID, room_id: UUID) -> Optional[RoomMember]:
        result = await self.db.execute(
            select(RoomMember).where(
                and_(
                    RoomMember.room_id == room_id,
                    RoomMember.member_id == user_id,
                    RoomMember.is_deleted == False,
                )
            )
        )
        return result.scalars().first()

    async def is_member(self, user_id: UUID, room_id: UUID) -> bool:
        return await self.get_membership(user_id, room_id) is not None

    async def verify_room_membership(self, user_id: UUID, room_id: UUID):
        if not await self.is_member(user_id, room_id):
            logger.info(f"User {user_id} is not a member of room {room_id}")
            raise AuthorizationError("You are not a member of this room")

    async def _add_member(self, room_id: UUID, user_id: UUID, role: RoomRole = RoomRole.MEMBER):
        """Insert a membership unless one is already active.

        The partial unique index on active memberships settles concurrent joins.
        """
        if await self.is_member(user_id, room_id):
            return
        try:
            self.db.add(RoomMember(room_id=room_id, member_id=user_id, role=role))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Concurrent join of room {room_id} by user {user_id} already recorded")

    async def create_room(self, user_id: UUID, request: CreateRoomRequest) -> dict:
        owner = await self.db.get(User, user_id)
        if not owner or owner.is_deleted:
            raise NotFoundError("User not found")

        room = Room(name=request.name, description=request.description or None, is_private=request.is_private)
        self.db.add(room)
        await self.db.flush()
        self.db.add(RoomMember(room_id=room.id, member_id=owner.id, role=RoomRole.OWNER))
        await self.db.commit()
        await self.db.refresh(room)

        logger.info(f"Room {room.id} created by {owner.id} (private={room.is_private})")
        return _room_to_dict(room)

    async def list_user_rooms(self, user_id: UUID, page: int = 1, page_size: int = 20) -> dict:
        stmt = (
            select(Room)
            .join(RoomMember, RoomMember.room_id == Room.id)
            .where(
                and_(
                    RoomMember.member_id == user_id,
                    RoomMember.is_deleted == False,
                    Room.is_deleted == False,
                )
            )
            .order_by(Room.created_at.desc())
        )
        result = await self.paginate(stmt, page, page_size, transform=lambda row: _room_to_dict(row[0]))
        return result.model_dump()

    async def invite_user_to_room(self, user_id: UUID, room_id: UUID, invitee_id: UUID) -> dict:
        room = await self.get(room_id)
        if not room:
            raise NotFoundError("Room not found")

        await self.verify_room_membership(user_id, room_id)

        invitee = await self.db.get(User, invitee_id)
        if not invitee or invitee.is_deleted:
            raise NotFoundError("Invitee not found")

        if await self.is_member(invitee_id, room_id):
            raise ConflictError("Invitee is already a member of the room")

        logger.info(f"User {user_id} invited {invitee_id} to room {room_id}")
        return {"invite": create_invite_token(self.settings, str(invitee_id), str(room_id))}

    async def join_room(self, user_id: UUID, room_id: UUID, invite: Optional[str] = None) -> dict:
        room = await self.get(room_id)
        if not room:
            raise NotFoundError("Room not found")

        if room.is_private:
            if not invite:
                raise AuthenticationError("Invite required")
            claims = verify_invite_token(self.settings, invite)
            if not claims or claims.get("u") != str(user_id) or claims.get("r") != str(room_id):
                logger.info(f"Rejected invite for room {room_id} presented by user {user_id}")
                raise AuthenticationError("Invalid invite")

        await self._add_member(room_id, user_id)
        logger.info(f"User {user_id} joined room {room_id}")
        return {"roomId": str(room_id)}

    async def get_room_messages(self, user_id: UUID, room_id: UUID, page: int = 1, page_size: int = 20) -> dict:
        """Newest first; fetching a page marks its messages read for the caller."""
        await self.verify_room_membership(user_id, room_id)

        stmt = (
            select(Message, User)
            .join(User, User.id == Message.sender_id)
            .where(and_(Message.room_id == room_id, Message.is_deleted == False))
            .order_by(Message.created_at.desc())
        )
        result = await self.paginate(stmt, page, page_size, transform=tuple)

        message_ids = [message.id for message, _ in result.items]
        summaries = await self.receipts.get_messages_with_receipts(message_ids)
        marked = await self.receipts.mark_multiple_as_read(message_ids, user_id)
        logger.debug(f"Fetched {len(message_ids)} messages of room {room_id}, marked {marked} read")

        items = []
        for message, sender in result.items:
            receipts = summaries.get(str(message.id)) or {
                "totalRecipients": 0,
                "readCount": 0,
                "readStatus": "no_recipients",
            }
            items.append({
                "id": str(message.id),
                "content": message.content,
                "created_at": message.created_at,
                "timestamp": message.created_at.isoformat(),
                "sender": sender.to_public(),
                "receipts": receipts,
            })

        return PaginatedResponse.build(items=items, total=result.total, page=page, size=page_size).model_dump()

    async def get_room_members(self, user_id: UUID, room_id: UUID) -> list:
        await self.verify_room_membership(user_id, room_id)

        result = await self.db.execute(
            select(RoomMember, User)
            .join(User, User.id == RoomMember.member_id)
            .where(and_(RoomMember.room_id == room_id, RoomMember.is_deleted == False))
            .order_by(RoomMember.created_at.asc())
        )
        rows = result.all()

        presences = await self.presence.get_multiple_user_presence([str(user.id) for _, user in rows])
        by_user = {presence.user_id: presence for presence in presences}

        members = []
        for membership, user in rows:
            presence = by_user.get(str(user.id))
            members.append({
                "id": str(membership.id),
                "role": membership.role.value,
                "joinedAt": membership.created_at.isoformat(),
                "user": {
                    **user.to_public(),
                    "presence": {
                        "status": presence.status if presence else "offline",
                        "lastSeen": presence.last_seen if presence else None,
                    },
                },
            })
        return members

    async def get_room_presence(self, user_id: UUID, room_id: UUID) -> dict:
        await self.verify_room_membership(user_id, room_id)

        presences = await self.presence.get_room_presence(str(room_id))
        online = sum(1 for presence in presences if presence.status == "online")
        return {
            "data": [presence.model_dump(by_alias=True, exclude_none=True) for presence in presences],
            "summary": {
                "totalUsers": len(presences),
                "onlineUsers": online,
                "offlineUsers": len(presences) - online,
            },
        }

    async def get_message_receipts(self, user_id: UUID, room_id: UUID, message_id: UUID) -> dict:
        await self.verify_room_membership(user_id, room_id)

        result = await self.db.execute(
            select(Message, User)
            .join(User, User.id == Message.sender_id)
            .where(
                and_(
                    Message.id == message_id,
                    Message.room_id == room_id,
                    Message.is_deleted == False,
                )
            )
        )
        row = result.first()
        if not row:
            raise NotFoundError("Message not found")
        message, sender = row

        receipts = await self.receipts.get_message_receipts(message_id)
        return {
            "message": {
                "id": str(message.id),
                "content": message.content,
                "createdAt": message.created_at.isoformat(),
                "sender": sender.to_public(),
            },
            "receipts": receipts,
            "summary": {
                "totalRecipients": len(receipts),
                "readCount": sum(1 for receipt in receipts if receipt["read"]),
            },
        }
