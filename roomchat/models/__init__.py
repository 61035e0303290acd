from .base import Base
from .user import User
from .room import Room, RoomMember, RoomRole
from .message import Message, MessageReceipt

__all__ = ["Base", "User", "Room", "RoomMember", "RoomRole", "Message", "MessageReceipt"]
