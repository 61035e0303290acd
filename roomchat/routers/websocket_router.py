# roomchat/routers/websocket_router.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import json
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for live rooms"""
    gateway = websocket.app.state.gateway
    ctx = await gateway.connect(websocket)
    if ctx is None:
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await gateway.connections.send(ctx, "error", {"message": "Malformed frame: expected JSON"})
                continue

            if not isinstance(frame, dict) or "event" not in frame:
                await gateway.connections.send(ctx, "error", {"message": "Malformed frame: missing event"})
                continue

            await gateway.dispatch(ctx, frame["event"], frame.get("data"))

    except WebSocketDisconnect:
        logger.info(f"Socket {ctx.connection_id} closed by client")
    except Exception as e:
        logger.error(f"WebSocket error on {ctx.connection_id}: {e}")
    finally:
        await gateway.disconnect(ctx)
