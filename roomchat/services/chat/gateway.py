# roomchat/services/chat/gateway.py
"""Socket event handling for live rooms.

Every inbound event goes through the same steps: rate limit, payload
validation, membership check against the database, the effect itself, then
fan-out to the room. Handlers share the signature ``(ctx, payload)`` and are
looked up in ``SocketGateway.handlers``.

A connection may be attached to several rooms at once: ``join_room`` does not
detach from the previously joined room, it only moves ``current_room_id``.
Disconnect cleanup and the send/typing/read checks use ``current_room_id``.
"""
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from fastapi import WebSocket
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...core.config import Settings
from ...core.rate_limiter import (
    JOIN_ROOM_RATE_LIMIT,
    LEAVE_ROOM_RATE_LIMIT,
    MESSAGE_RATE_LIMIT,
    RECEIPT_RATE_LIMIT,
    TYPING_RATE_LIMIT,
    RateLimiter,
)
from ...core.responses import utc_now_iso
from ...core.security import TokenAuthenticator, extract_bearer_token
from ..message_service import MessageService
from ..presence_service import PresenceService
from ..receipt_service import ReceiptService
from ..room_service import RoomService
from ..user_service import UserService
from ..validation_service import (
    MessageValidationOptions,
    sanitize_message,
    validate_join_room_data,
    validate_leave_room_data,
    validate_mark_messages_read_data,
    validate_message,
    validate_message_read_data,
    validate_room_id,
    validate_typing_data,
)
from .connection_manager import ConnectionContext, ConnectionManager

logger = logging.getLogger(__name__)

Handler = Callable[[ConnectionContext, Any], Awaitable[None]]

# Close code for a rejected handshake (policy violation)
UNAUTHORIZED_CLOSE_CODE = 1008


def _room_key(room_id: str) -> str:
    return str(UUID(room_id))


class SocketGateway:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        connections: ConnectionManager,
        presence: PresenceService,
        rate_limiter: RateLimiter,
        authenticator: TokenAuthenticator,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.connections = connections
        self.presence = presence
        self.rate_limiter = rate_limiter
        self.authenticator = authenticator
        self.settings = settings
        self.message_options = MessageValidationOptions(
            max_length=settings.message_max_length,
            blocked_words=list(settings.blocked_words),
        )
        self.handlers: Dict[str, Handler] = {
            "join_room": self.handle_join_room,
            "send_message": self.handle_send_message,
            "typing": self.handle_typing,
            "message_read": self.handle_message_read,
            "mark_messages_read": self.handle_mark_messages_read,
            "leave_room": self.handle_leave_room,
        }

    # Connection lifecycle

    async def connect(self, websocket: WebSocket) -> Optional[ConnectionContext]:
        """Authenticate the handshake and register the socket, or close it unaccepted."""
        token = websocket.query_params.get("token") or extract_bearer_token(
            websocket.headers.get("authorization")
        )
        user = await self.authenticator.authenticate(token)

        profile = None
        if user:
            async with self.session_factory() as db:
                profile = await UserService(db).get_public(user.uuid)

        if not user or not profile:
            logger.info("Rejected socket handshake: token is missing, invalid or revoked")
            await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Unauthorized")
            return None

        await websocket.accept()
        ctx = ConnectionContext(
            connection_id=uuid.uuid4().hex,
            user=user,
            websocket=websocket,
            profile=profile,
        )
        self.connections.register(ctx)
        await self.presence.set_user_online(user.id, ctx.connection_id)
        ctx.heartbeat = self.presence.start_heartbeat(user.id)

        await self.connections.send(ctx, "connected", {
            "user_id": user.id,
            "connection_id": ctx.connection_id,
            "timestamp": utc_now_iso(),
        })
        logger.info(f"Authenticated socket connected: {ctx.connection_id} (user {user.id})")
        return ctx

    async def dispatch(self, ctx: ConnectionContext, event: Any, payload: Any):
        handler = self.handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            await self.connections.send(ctx, "error", {"message": f"Unknown event: {event}"})
            return
        await handler(ctx, payload)

    async def disconnect(self, ctx: ConnectionContext):
        """Runs for every closed socket, clean or not.

        The user only goes offline with their last socket; a room is only left
        once none of their remaining sockets is attached to it.
        """
        if ctx.heartbeat:
            ctx.heartbeat.cancel()
            ctx.heartbeat = None

        self.connections.unregister(ctx)
        remaining = self.connections.user_connections(ctx.user.id)
        room_id = ctx.current_room_id
        if room_id and any(room_id in other.rooms for other in remaining):
            room_id = None

        if remaining:
            await self.presence.set_user_online(ctx.user.id, remaining[0].connection_id)
            if room_id:
                await self.presence.remove_user_from_room(room_id, ctx.user.id)
        else:
            await self.presence.handle_user_disconnect(ctx.user.id, room_id)

        if room_id:
            now = utc_now_iso()
            await self.connections.broadcast(room_id, "user_left", {
                "user_id": ctx.user.id,
                **self._identity(ctx),
                "timestamp": now,
            })
            if not remaining:
                await self.connections.broadcast(room_id, "user_status", {
                    "user_id": ctx.user.id,
                    **self._identity(ctx),
                    "status": "offline",
                    "last_seen": now,
                    "timestamp": now,
                })

        logger.info(f"Authenticated socket disconnected: {ctx.connection_id} (user {ctx.user.id})")

    # Helpers

    @staticmethod
    def _identity(ctx: ConnectionContext) -> dict:
        return {
            "username": ctx.profile.get("username"),
            "first_name": ctx.profile.get("first_name"),
            "last_name": ctx.profile.get("last_name"),
        }

    async def _emit(self, ctx: ConnectionContext, event: str, data: dict):
        await self.connections.send(ctx, event, data)

    # Event handlers

    async def handle_join_room(self, ctx: ConnectionContext, payload: Any):
        limit = await self.rate_limiter.check_rate_limit(ctx.user.id, JOIN_ROOM_RATE_LIMIT)
        if not limit.allowed:
            await self._emit(ctx, "join_room_error", {
                "message": "Too many join attempts. Please try again later.",
                "retryAfter": limit.retry_after,
            })
            return

        validation = validate_join_room_data(payload)
        if not validation.is_valid:
            await self._emit(ctx, "join_room_error", {
                "message": "Invalid request data",
                "errors": validation.errors,
            })
            return

        room_id = _room_key(payload["roomId"])
        try:
            async with self.session_factory() as db:
                rooms = RoomService(db, self.presence, self.settings)
                room = await rooms.get(UUID(room_id))
                if not room:
                    await self._emit(ctx, "join_room_error", {"message": "Room not found"})
                    return

                if not await rooms.is_member(ctx.user.uuid, room.id):
                    if room.is_private:
                        message = "This is a private room. You need an invitation to join."
                    else:
                        message = "You are not a member of this room"
                    await self._emit(ctx, "join_room_error", {"message": message})
                    return

                self.connections.join(ctx, room_id)
                ctx.current_room_id = room_id
                await self.presence.add_user_to_room(room_id, ctx.user.id)

                presence = await self.presence.get_user_presence(ctx.user.id)
                now = utc_now_iso()
                await self.connections.broadcast(room_id, "user_joined", {
                    "user_id": ctx.user.id,
                    **self._identity(ctx),
                    "status": presence.status,
                    "timestamp": now,
                }, exclude=ctx)
                await self.connections.broadcast(room_id, "user_status", {
                    "user_id": ctx.user.id,
                    **self._identity(ctx),
                    "status": "online",
                    "last_seen": presence.last_seen,
                    "timestamp": now,
                }, exclude=ctx)

                room_presence = await self.presence.get_room_presence(room_id)

                receipts = ReceiptService(db)
                unread = await receipts.get_unread_messages(ctx.user.uuid, room.id)
                if unread:
                    marked = await receipts.mark_multiple_as_read(unread, ctx.user.uuid)
                    if marked > 0:
                        await self.connections.broadcast(room_id, "messages_read", {
                            "recipient_id": ctx.user.id,
                            **self._identity(ctx),
                            "message_count": marked,
                            "timestamp": utc_now_iso(),
                        })

            await self._emit(ctx, "joined_room", {
                "roomId": room_id,
                "presence": [
                    {"user_id": p.user_id, "status": p.status, "last_seen": p.last_seen}
                    for p in room_presence
                ],
                "unreadCount": len(unread),
                "timestamp": utc_now_iso(),
            })
            logger.info(f"User {ctx.user.id} joined room {room_id} on {ctx.connection_id}")
        except Exception:
            logger.exception(f"Failed to join room {room_id} for user {ctx.user.id}")
            await self._emit(ctx, "join_room_error", {"message": "Failed to join room"})

    async def handle_send_message(self, ctx: ConnectionContext, payload: Any):
        config = MESSAGE_RATE_LIMIT
        limit = await self.rate_limiter.check_rate_limit(ctx.user.id, config)
        if not limit.allowed:
            await self._emit(ctx, "message_error", {
                "message": (
                    f"Rate limit exceeded. You can send {config.max_requests} messages "
                    f"per {config.window_seconds} seconds."
                ),
                "retryAfter": limit.retry_after,
                "remaining": limit.remaining,
            })
            return

        if not isinstance(payload, dict):
            await self._emit(ctx, "message_error", {"message": "Invalid request data"})
            return

        if not payload.get("roomId"):
            await self._emit(ctx, "message_error", {"message": "Room ID is required"})
            return

        room_check = validate_room_id(payload["roomId"])
        if not room_check.is_valid:
            await self._emit(ctx, "message_error", {
                "message": "Invalid room ID format",
                "errors": room_check.errors,
            })
            return

        content_check = validate_message(payload.get("content"), self.message_options)
        if not content_check.is_valid:
            await self._emit(ctx, "message_error", {
                "message": "Invalid message content",
                "errors": content_check.errors,
            })
            return

        content = sanitize_message(payload["content"])
        if not content:
            await self._emit(ctx, "message_error", {
                "message": "Message content cannot be empty after sanitization",
            })
            return

        room_id = _room_key(payload["roomId"])
        if ctx.current_room_id != room_id:
            await self._emit(ctx, "message_error", {
                "message": "You must join the room before sending messages",
            })
            return

        try:
            async with self.session_factory() as db:
                rooms = RoomService(db, self.presence, self.settings)
                if not await rooms.is_member(ctx.user.uuid, UUID(room_id)):
                    await self._emit(ctx, "message_error", {"message": "You are not a member of this room"})
                    return

                message = await MessageService(db).create_message(UUID(room_id), ctx.user.uuid, content)
                await ReceiptService(db).create_delivery_receipts(message.id, message.room_id, ctx.user.uuid)

            await self.connections.broadcast(room_id, "receive_message", {
                "id": str(message.id),
                "room_id": room_id,
                "content": message.content,
                "timestamp": message.created_at.isoformat(),
                "sender": {"id": ctx.user.id, **self._identity(ctx)},
            })
            logger.info(f"Message {message.id} sent to room {room_id} by {ctx.user.id}")
        except Exception:
            logger.exception(f"Failed to send message to room {room_id} for user {ctx.user.id}")
            await self._emit(ctx, "message_error", {"message": "Failed to send message"})

    async def handle_typing(self, ctx: ConnectionContext, payload: Any):
        """Typing indicators are fire-and-forget: every rejection is silent."""
        limit = await self.rate_limiter.check_rate_limit(ctx.user.id, TYPING_RATE_LIMIT)
        if not limit.allowed:
            return

        if not validate_typing_data(payload).is_valid:
            return

        room_id = _room_key(payload["roomId"])
        if ctx.current_room_id != room_id:
            return

        try:
            async with self.session_factory() as db:
                if not await RoomService(db, self.presence, self.settings).is_member(ctx.user.uuid, UUID(room_id)):
                    return
        except Exception:
            logger.exception(f"Typing membership check failed for user {ctx.user.id} in room {room_id}")
            return

        await self.connections.broadcast(room_id, "typing", {
            "user_id": ctx.user.id,
            **self._identity(ctx),
            "is_typing": payload["isTyping"],
            "timestamp": utc_now_iso(),
        }, exclude=ctx)

    async def _check_receipt_request(self, ctx: ConnectionContext, payload: Any, validator) -> Optional[str]:
        """Shared gate for read receipt events. Returns the room id when the event may proceed."""
        limit = await self.rate_limiter.check_rate_limit(ctx.user.id, RECEIPT_RATE_LIMIT)
        if not limit.allowed:
            await self._emit(ctx, "receipt_error", {
                "message": "Too many read receipts. Please try again later.",
                "retryAfter": limit.retry_after,
            })
            return None

        validation = validator(payload)
        if not validation.is_valid:
            await self._emit(ctx, "receipt_error", {
                "message": "Invalid request data",
                "errors": validation.errors,
            })
            return None

        room_id = _room_key(payload["roomId"])
        if ctx.current_room_id != room_id:
            await self._emit(ctx, "receipt_error", {
                "message": "You must join the room before updating read receipts",
            })
            return None
        return room_id

    async def handle_message_read(self, ctx: ConnectionContext, payload: Any):
        room_id = await self._check_receipt_request(ctx, payload, validate_message_read_data)
        if not room_id:
            return

        message_id = UUID(payload["messageId"])
        try:
            async with self.session_factory() as db:
                if not await RoomService(db, self.presence, self.settings).is_member(ctx.user.uuid, UUID(room_id)):
                    await self._emit(ctx, "receipt_error", {"message": "You are not a member of this room"})
                    return
                if not await MessageService(db).get_in_room(message_id, UUID(room_id)):
                    await self._emit(ctx, "receipt_error", {"message": "Message not found"})
                    return

                updated = await ReceiptService(db).mark_as_read(message_id, ctx.user.uuid)
        except Exception:
            logger.exception(f"Failed to mark message {message_id} read for user {ctx.user.id}")
            await self._emit(ctx, "receipt_error", {"message": "Failed to update read receipt"})
            return

        if updated:
            await self.connections.broadcast(room_id, "message_receipt", {
                "message_id": str(message_id),
                "recipient_id": ctx.user.id,
                **self._identity(ctx),
                "status": "read",
                "timestamp": utc_now_iso(),
            })

    async def handle_mark_messages_read(self, ctx: ConnectionContext, payload: Any):
        room_id = await self._check_receipt_request(ctx, payload, validate_mark_messages_read_data)
        if not room_id:
            return

        requested = [UUID(message_id) for message_id in payload["messageIds"]]
        try:
            async with self.session_factory() as db:
                if not await RoomService(db, self.presence, self.settings).is_member(ctx.user.uuid, UUID(room_id)):
                    await self._emit(ctx, "receipt_error", {"message": "You are not a member of this room"})
                    return

                message_ids = await MessageService(db).filter_room_message_ids(UUID(room_id), requested)
                marked = await ReceiptService(db).mark_multiple_as_read(message_ids, ctx.user.uuid)
        except Exception:
            logger.exception(f"Failed to mark messages read for user {ctx.user.id} in room {room_id}")
            await self._emit(ctx, "receipt_error", {"message": "Failed to update read receipts"})
            return

        if marked > 0:
            await self.connections.broadcast(room_id, "messages_read", {
                "recipient_id": ctx.user.id,
                **self._identity(ctx),
                "message_count": marked,
                "timestamp": utc_now_iso(),
            })

    async def handle_leave_room(self, ctx: ConnectionContext, payload: Any):
        limit = await self.rate_limiter.check_rate_limit(ctx.user.id, LEAVE_ROOM_RATE_LIMIT)
        if not limit.allowed:
            await self._emit(ctx, "leave_room_error", {
                "message": "Too many leave attempts. Please try again later.",
                "retryAfter": limit.retry_after,
            })
            return

        validation = validate_leave_room_data(payload)
        if not validation.is_valid:
            await self._emit(ctx, "leave_room_error", {
                "message": "Invalid request data",
                "errors": validation.errors,
            })
            return

        room_id = _room_key(payload["roomId"])
        self.connections.leave(ctx, room_id)
        if ctx.current_room_id == room_id:
            ctx.current_room_id = None
        await self.presence.remove_user_from_room(room_id, ctx.user.id)

        now = utc_now_iso()
        await self.connections.broadcast(room_id, "user_left", {
            "user_id": ctx.user.id,
            **self._identity(ctx),
            "timestamp": now,
        })
        await self.connections.broadcast(room_id, "user_status", {
            "user_id": ctx.user.id,
            **self._identity(ctx),
            "status": "offline",
            "last_seen": now,
            "timestamp": now,
        })
        await self._emit(ctx, "left_room", {"roomId": room_id, "timestamp": now})
        logger.info(f"User {ctx.user.id} left room {room_id} on {ctx.connection_id}")
