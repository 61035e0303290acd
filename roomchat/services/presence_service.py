# roomchat/services/presence_service.py
"""Online/offline presence and per-room live membership, kept in Redis.

Presence is best effort: every method logs backend failures and falls back to
an offline or empty answer instead of raising.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Literal, Optional

import redis.asyncio as redis
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

PRESENCE_KEY_PREFIX = "presence:user:"
ROOM_PRESENCE_KEY_PREFIX = "room:presence:"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserPresence(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    status: Literal["online", "offline"]
    last_seen: str = Field(alias="lastSeen")
    socket_id: Optional[str] = Field(None, alias="socketId")

    @classmethod
    def offline(cls, user_id: str, last_seen: Optional[str] = None) -> "UserPresence":
        return cls(user_id=user_id, status="offline", last_seen=last_seen or _now_iso())

    def to_cache(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class PresenceService:
    def __init__(
        self,
        redis_client: redis.Redis,
        online_ttl: int = 30,
        offline_ttl: int = 24 * 60 * 60,
        room_ttl: int = 24 * 60 * 60,
        heartbeat_interval: float = 15.0,
    ):
        self.redis = redis_client
        self.online_ttl = online_ttl
        self.offline_ttl = offline_ttl
        self.room_ttl = room_ttl
        self.heartbeat_interval = heartbeat_interval

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"{PRESENCE_KEY_PREFIX}{user_id}"

    @staticmethod
    def _room_key(room_id: str) -> str:
        return f"{ROOM_PRESENCE_KEY_PREFIX}{room_id}"

    async def set_user_online(self, user_id: str, socket_id: str):
        presence = UserPresence(user_id=user_id, status="online", last_seen=_now_iso(), socket_id=socket_id)
        try:
            await self.redis.setex(self._user_key(user_id), self.online_ttl, presence.to_cache())
            logger.debug(f"User {user_id} set online on socket {socket_id}")
        except Exception as e:
            logger.error(f"Failed to set user {user_id} online: {e}")

    async def set_user_offline(self, user_id: str, last_seen: Optional[str] = None):
        """Record the user as offline, keeping last-seen around for a day."""
        presence = UserPresence.offline(user_id, last_seen)
        try:
            await self.redis.setex(self._user_key(user_id), self.offline_ttl, presence.to_cache())
            logger.debug(f"User {user_id} set offline")
        except Exception as e:
            logger.error(f"Failed to set user {user_id} offline: {e}")

    async def update_last_seen(self, user_id: str):
        """Heartbeat: refresh last-seen and the TTL, leaving status untouched."""
        key = self._user_key(user_id)
        try:
            data = await self.redis.get(key)
            if not data:
                return
            presence = UserPresence.model_validate_json(data)
            presence.last_seen = _now_iso()
            ttl = self.online_ttl if presence.status == "online" else self.offline_ttl
            await self.redis.setex(key, ttl, presence.to_cache())
        except Exception as e:
            logger.error(f"Failed to update last seen for user {user_id}: {e}")

    async def get_user_presence(self, user_id: str) -> UserPresence:
        key = self._user_key(user_id)
        try:
            data = await self.redis.get(key)
            if not data:
                return UserPresence.offline(user_id)

            presence = UserPresence.model_validate_json(data)
            if presence.status == "online":
                ttl = await self.redis.ttl(key)
                if ttl <= 0:
                    await self.set_user_offline(user_id, presence.last_seen)
                    return UserPresence.offline(user_id, presence.last_seen)

            return presence
        except Exception as e:
            logger.error(f"Failed to get presence for user {user_id}: {e}")
            return UserPresence.offline(user_id)

    async def get_multiple_user_presence(self, user_ids: List[str]) -> List[UserPresence]:
        if not user_ids:
            return []

        try:
            results = await self.redis.mget([self._user_key(user_id) for user_id in user_ids])
        except Exception as e:
            logger.error(f"Failed to get presence for users {user_ids}: {e}")
            return [UserPresence.offline(user_id) for user_id in user_ids]

        presences = []
        for user_id, data in zip(user_ids, results):
            if not data:
                presences.append(UserPresence.offline(user_id))
                continue
            try:
                presences.append(UserPresence.model_validate_json(data))
            except ValidationError:
                logger.warning(f"Discarding unreadable presence record for user {user_id}")
                presences.append(UserPresence.offline(user_id))
        return presences

    async def add_user_to_room(self, room_id: str, user_id: str):
        key = self._room_key(room_id)
        try:
            await self.redis.sadd(key, user_id)
            await self.redis.expire(key, self.room_ttl)
            logger.debug(f"User {user_id} added to room presence {room_id}")
        except Exception as e:
            logger.error(f"Failed to add user {user_id} to room presence {room_id}: {e}")

    async def remove_user_from_room(self, room_id: str, user_id: str):
        try:
            await self.redis.srem(self._room_key(room_id), user_id)
            logger.debug(f"User {user_id} removed from room presence {room_id}")
        except Exception as e:
            logger.error(f"Failed to remove user {user_id} from room presence {room_id}: {e}")

    async def get_room_users(self, room_id: str) -> List[str]:
        try:
            return sorted(await self.redis.smembers(self._room_key(room_id)))
        except Exception as e:
            logger.error(f"Failed to get users of room {room_id}: {e}")
            return []

    async def get_room_presence(self, room_id: str) -> List[UserPresence]:
        user_ids = await self.get_room_users(room_id)
        return await self.get_multiple_user_presence(user_ids)

    def start_heartbeat(self, user_id: str) -> asyncio.Task:
        """Keep the user online while a connection lives. Cancel the task to stop."""
        return asyncio.create_task(self._heartbeat(user_id), name=f"presence-heartbeat-{user_id}")

    async def _heartbeat(self, user_id: str):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.update_last_seen(user_id)

    async def handle_user_disconnect(self, user_id: str, room_id: Optional[str] = None):
        """Single cleanup path for socket teardown. The caller stops the heartbeat."""
        await self.set_user_offline(user_id)
        if room_id:
            await self.remove_user_from_room(room_id, user_id)
        logger.debug(f"Disconnect handled for user {user_id} (room {room_id})")
