# roomchat/models/room.py
import enum
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, Index, Uuid, Enum, text
from sqlalchemy.orm import relationship
from .base import Base


class RoomRole(str, enum.Enum):
    OWNER = "owner"
    MEMBER = "member"


class Room(Base):
    __tablename__ = "rooms"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_private = Column(Boolean, default=False, nullable=False)

    members = relationship("RoomMember", back_populates="room")
    messages = relationship("Message", back_populates="room")


class RoomMember(Base):
    __tablename__ = "room_members"

    room_id = Column(Uuid(as_uuid=True), ForeignKey("rooms.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(
        Enum(RoomRole, name="room_role", values_callable=lambda roles: [r.value for r in roles]),
        default=RoomRole.MEMBER,
        nullable=False,
    )

    room = relationship("Room", back_populates="members")
    member = relationship("User", back_populates="memberships")

    # One active membership per (room, member); soft-deleted rows may repeat
    __table_args__ = (
        Index(
            "uq_room_members_active",
            "room_id",
            "member_id",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )
