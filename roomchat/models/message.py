# roomchat/models/message.py
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship
from .base import Base


class Message(Base):
    __tablename__ = "messages"

    room_id = Column(Uuid(as_uuid=True), ForeignKey("rooms.id"), nullable=False, index=True)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    room = relationship("Room", back_populates="messages")
    sender = relationship("User")
    receipts = relationship("MessageReceipt", back_populates="message")

    __table_args__ = (
        Index('idx_messages_room_time', 'room_id', 'created_at'),
    )


class MessageReceipt(Base):
    __tablename__ = "message_receipts"

    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id"), nullable=False, index=True)
    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    delivered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    message = relationship("Message", back_populates="receipts")
    recipient = relationship("User")

    __table_args__ = (
        UniqueConstraint('message_id', 'recipient_id', name='uq_message_receipts_message_recipient'),
        Index('idx_message_receipts_unread', 'recipient_id', 'read_at'),
    )
