from . import auth, health, rooms, websocket_router

__all__ = [
    "auth",
    "health",
    "rooms",
    "websocket_router",
]
