# roomchat/core/security.py
"""Password hashing, access tokens, server-side sessions and invite tokens."""
import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import jwt
import redis.asyncio as redis
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .config import Settings

logger = logging.getLogger(__name__)

_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def session_key(user_id: str, last_login: int) -> str:
    return f"users:{user_id}:session-{last_login}"


def create_access_token(
    settings: Settings,
    user_id: str,
    email: str,
    last_login: int,
    remember_me: bool = False,
) -> str:
    if remember_me:
        expires = timedelta(days=settings.remember_me_session_ttl_days)
    else:
        expires = timedelta(minutes=settings.access_token_minutes)
    payload = {
        "sub": user_id,
        "email": email,
        "type": "access",
        "lastLogin": last_login,
        "rememberMe": remember_me,
        "exp": datetime.now(timezone.utc) + expires,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> Optional[dict]:
    """Verify the signature only; expiry is enforced by the session key TTL."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": False},
        )
    except jwt.PyJWTError:
        return None
    if payload.get("type") != "access" or not isinstance(payload.get("lastLogin"), int):
        return None
    try:
        UUID(str(payload.get("sub")))
    except ValueError:
        return None
    return payload


def create_invite_token(settings: Settings, invitee_id: str, room_id: str) -> str:
    payload = {
        "u": invitee_id,
        "r": room_id,
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.invite_token_days),
    }
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return base64.urlsafe_b64encode(token.encode("utf-8")).decode("ascii")


def verify_invite_token(settings: Settings, invite: str) -> Optional[dict]:
    try:
        token = base64.urlsafe_b64decode(invite.encode("ascii")).decode("utf-8")
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except (binascii.Error, UnicodeError, ValueError, jwt.PyJWTError):
        return None


@dataclass
class AuthenticatedUser:
    id: str
    email: str
    last_login: int
    remember_me: bool = False

    @property
    def uuid(self) -> UUID:
        return UUID(self.id)


class TokenAuthenticator:
    """Resolves bearer tokens against the server-side session store."""

    def __init__(self, redis_client: redis.Redis, settings: Settings):
        self.redis = redis_client
        self.settings = settings

    async def authenticate(self, token: Optional[str]) -> Optional[AuthenticatedUser]:
        if not token:
            return None

        payload = decode_access_token(self.settings, token)
        if not payload:
            return None

        key = session_key(payload["sub"], payload["lastLogin"])
        try:
            ttl = await self.redis.ttl(key)
            if ttl <= 0:
                return None

            remember_me = bool(payload.get("rememberMe"))
            days = self.settings.remember_me_session_ttl_days if remember_me else self.settings.session_ttl_days
            await self.redis.expire(key, days * 24 * 60 * 60)
        except redis.RedisError as e:
            logger.error(f"Session lookup failed for user {payload['sub']}: {e}")
            return None

        return AuthenticatedUser(
            id=payload["sub"],
            email=payload.get("email", ""),
            last_login=payload["lastLogin"],
            remember_me=remember_me,
        )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
