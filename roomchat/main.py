from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Callable, Optional
import logging

from .core.cache import CacheManager
from .core.config import Settings, get_settings
from .core.database import build_engine, build_session_factory, create_tables
from .core.error_handlers import register_exception_handlers
from .core.logging import setup_logging
from .core.middleware import RateLimitMiddleware, TokenExtractionMiddleware, request_context_middleware
from .core.rate_limiter import RateLimiter
from .core.security import TokenAuthenticator
from .routers import auth, health, rooms, websocket_router
from .services.chat.connection_manager import ConnectionManager
from .services.chat.gateway import SocketGateway
from .services.presence_service import PresenceService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, redis_factory: Optional[Callable] = None) -> FastAPI:
    """Build the API. ``redis_factory`` replaces the Redis client built from ``redis_url``."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} ({settings.environment})")

        engine = build_engine(settings)
        if settings.auto_create_tables:
            await create_tables(engine)
        session_factory = build_session_factory(engine)

        cache = CacheManager(settings.redis_url, client_factory=redis_factory)
        redis_client = await cache.connect()
        logger.info("Cache initialized")

        presence = PresenceService(
            redis_client,
            online_ttl=settings.presence_online_ttl,
            offline_ttl=settings.presence_offline_ttl,
            room_ttl=settings.room_presence_ttl,
            heartbeat_interval=settings.heartbeat_interval,
        )
        rate_limiter = RateLimiter(redis_client)
        authenticator = TokenAuthenticator(redis_client, settings)
        connections = ConnectionManager()

        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.cache = cache
        app.state.presence = presence
        app.state.rate_limiter = rate_limiter
        app.state.authenticator = authenticator
        app.state.connections = connections
        app.state.gateway = SocketGateway(
            session_factory, connections, presence, rate_limiter, authenticator, settings
        )

        yield

        logger.info(f"Shutting down {settings.app_name}")
        await cache.disconnect()
        await engine.dispose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Room Chat API",
        description="Real-time room chat with presence, typing indicators and read receipts",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Last added runs first: CORS, request context, token extraction, rate limiting
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(TokenExtractionMiddleware)
    app.middleware("http")(request_context_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(rooms.router)
    app.include_router(websocket_router.router)

    @app.get("/")
    async def root():
        return {
            "message": f"{settings.app_name} API v{settings.app_version}",
            "version": settings.app_version,
            "features": ["Rooms", "Real-time Messaging", "Presence", "Typing Indicators", "Read Receipts"],
            "status": "active",
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("roomchat.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
