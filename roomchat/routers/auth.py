# roomchat/routers/auth.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import CacheManager, get_cache
from ..core.config import Settings
from ..core.database import get_db
from ..core.dependencies import get_app_settings, get_current_user
from ..core.responses import success_response
from ..core.security import AuthenticatedUser
from ..schemas.auth_schemas import LoginRequest, RegisterRequest
from ..services.auth_service import AuthService

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(db, cache, settings)


@router.post("/register", status_code=201)
async def register(request: Request, body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    user = await service.register(body)
    return success_response(request, user, "User created", 201)


@router.post("/login")
async def login(request: Request, body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    data = await service.login(body)
    return success_response(request, data, "Login successful")


@router.post("/logout")
async def logout(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    await service.logout(current_user)
    return success_response(request, None, "Logged out")


@router.post("/logout-all")
async def logout_all(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """End every session of the caller"""
    sessions = await service.logout_all(current_user)
    return success_response(request, {"sessions": sessions}, "Logged out of all sessions")


@router.get("/me")
async def get_me(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    user = await service.get_me(current_user)
    return success_response(request, user, "User fetched")
