# roomchat/services/chat/connection_manager.py
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from ...core.security import AuthenticatedUser

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """Per-socket state, owned by the gateway and discarded on disconnect."""
    connection_id: str
    user: AuthenticatedUser
    websocket: WebSocket
    profile: Dict[str, Any]
    current_room_id: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)
    heartbeat: Optional[asyncio.Task] = None


class ConnectionManager:
    """Live sockets of this process and the broadcast channels they are attached to."""

    def __init__(self):
        # Store active connections: {connection_id: ConnectionContext}
        self.active_connections: Dict[str, ConnectionContext] = {}
        # Store room subscriptions: {room_id: {connection_ids}}
        self.room_subscriptions: Dict[str, Set[str]] = {}

    def register(self, ctx: ConnectionContext):
        self.active_connections[ctx.connection_id] = ctx
        logger.info(f"Connection {ctx.connection_id} registered for user {ctx.user.id}")

    def unregister(self, ctx: ConnectionContext):
        """Remove connection and clean up subscriptions"""
        for room_id in list(ctx.rooms):
            self.leave(ctx, room_id)
        if self.active_connections.pop(ctx.connection_id, None):
            logger.info(f"Connection {ctx.connection_id} of user {ctx.user.id} unregistered")

    def join(self, ctx: ConnectionContext, room_id: str):
        self.room_subscriptions.setdefault(room_id, set()).add(ctx.connection_id)
        ctx.rooms.add(room_id)

    def leave(self, ctx: ConnectionContext, room_id: str):
        ctx.rooms.discard(room_id)
        subscribers = self.room_subscriptions.get(room_id)
        if subscribers is None:
            return
        subscribers.discard(ctx.connection_id)
        if not subscribers:
            del self.room_subscriptions[room_id]

    def user_connections(self, user_id: str) -> List[ConnectionContext]:
        return [ctx for ctx in self.active_connections.values() if ctx.user.id == user_id]

    def room_connections(self, room_id: str) -> List[ConnectionContext]:
        return [
            self.active_connections[connection_id]
            for connection_id in self.room_subscriptions.get(room_id, set())
            if connection_id in self.active_connections
        ]

    async def send(self, ctx: ConnectionContext, event: str, data: Dict[str, Any]) -> bool:
        """Send one event frame to a single connection"""
        try:
            await ctx.websocket.send_text(json.dumps({"event": event, "data": data}, default=str))
            return True
        except Exception as e:
            logger.error(f"Error sending {event} to connection {ctx.connection_id}: {e}")
            return False

    async def broadcast(
        self,
        room_id: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[ConnectionContext] = None,
    ) -> int:
        """Send an event to every connection attached to the room"""
        sent_count = 0
        failed = []
        for ctx in self.room_connections(room_id):
            if exclude is not None and ctx.connection_id == exclude.connection_id:
                continue
            if await self.send(ctx, event, data):
                sent_count += 1
            else:
                failed.append(ctx)

        # Dead sockets stop receiving; their own receive loop runs the full disconnect
        for ctx in failed:
            self.leave(ctx, room_id)

        logger.debug(f"Broadcast {event} to room {room_id}: sent to {sent_count} connections")
        return sent_count
