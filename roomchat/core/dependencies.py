# roomchat/core/dependencies.py
"""FastAPI dependencies that hand out the objects built in the app lifespan."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .database import get_db
from .exceptions import AuthenticationError
from .security import AuthenticatedUser
from ..services.presence_service import PresenceService
from ..services.room_service import RoomService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_presence_service(request: Request) -> PresenceService:
    return request.app.state.presence


def get_current_user(request: Request) -> AuthenticatedUser:
    user = getattr(request.state, "user", None)
    if not user:
        raise AuthenticationError()
    return user


def get_room_service(
    db: AsyncSession = Depends(get_db),
    presence: PresenceService = Depends(get_presence_service),
    settings: Settings = Depends(get_app_settings),
) -> RoomService:
    return RoomService(db, presence, settings)
