# roomchat/services/auth_service.py
import logging
import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import CacheManager
from ..core.config import Settings
from ..core.exceptions import AuthenticationError, ConflictError, NotFoundError, UnprocessableError
from ..core.security import (
    AuthenticatedUser,
    create_access_token,
    hash_password,
    session_key,
    verify_password,
)
from ..schemas.auth_schemas import LoginRequest, RegisterRequest
from .user_service import UserService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession, cache: CacheManager, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings
        self.users = UserService(db)

    async def register(self, request: RegisterRequest) -> dict:
        conflict = await self.users.find_conflict(request.email, request.username)
        if conflict:
            logger.info(f"Registration rejected, {conflict} already in use")
            raise ConflictError("Oops! An account with this email/username already exists")

        try:
            user = await self.users.create({
                "first_name": request.first_name,
                "last_name": request.last_name,
                "username": request.username,
                "email": request.email,
                "password_hash": hash_password(request.password),
            })
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email/username
            await self.db.rollback()
            raise ConflictError("Oops! An account with this email/username already exists")

        logger.info(f"Registered user {user.id}")
        return {**user.to_public(), "email": user.email}

    async def login(self, request: LoginRequest) -> dict:
        user = await self.users.get_by_email(request.email, include_deleted=True)
        if not user or not verify_password(user.password_hash, request.password):
            logger.info("Login rejected: invalid credentials")
            raise UnprocessableError("Invalid login credentials")

        if user.is_deleted:
            raise AuthenticationError("Account has been de-activated. Contact an administrator")

        last_login = int(time.time() * 1000)
        token = create_access_token(
            self.settings,
            user_id=str(user.id),
            email=user.email,
            last_login=last_login,
            remember_me=request.remember_me,
        )
        await self.cache.client.set(
            session_key(str(user.id), last_login),
            token,
            ex=self.settings.session_initial_ttl_seconds,
        )
        logger.info(f"User {user.id} logged in")
        return {**user.to_public(), "email": user.email, "token": token}

    async def logout(self, current_user: AuthenticatedUser):
        await self.cache.client.delete(session_key(current_user.id, current_user.last_login))
        logger.info(f"User {current_user.id} logged out")

    async def logout_all(self, current_user: AuthenticatedUser) -> int:
        deleted = await self.cache.delete_pattern(f"users:{current_user.id}:*")
        logger.info(f"User {current_user.id} logged out of {deleted} sessions")
        return deleted

    async def get_me(self, current_user: AuthenticatedUser) -> dict:
        user = await self.users.get(current_user.uuid)
        if not user:
            raise NotFoundError("User not found")
        return {**user.to_public(), "email": user.email}
