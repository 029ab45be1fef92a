"""WebSocket stream pushing snapshots to dashboard clients."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from harborwatch.services import metrics
from harborwatch.services.settings_service import SettingsService
from harborwatch.services.snapshot_publisher import snapshot_publisher
from harborwatch.utils.origin import is_origin_allowed
from harborwatch.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def stream_snapshots(websocket: WebSocket):
    """Push the current snapshot once per push interval until the client leaves.

    The handshake is refused unless the Origin header passes the allow-list.
    Every subscriber runs on its own timer and only reads the publisher, so
    a slow client never delays collection or other clients.
    """
    origin = websocket.headers.get("origin")
    if not is_origin_allowed(origin, SettingsService.get_list("allowed_origins")):
        logger.warning(f"Rejected stream connection from origin {sanitize_log_message(origin)!r}")
        metrics.stream_rejections_total.inc()
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    metrics.stream_clients.inc()
    interval = SettingsService.get_float("push_interval", 1.0)
    if interval <= 0:
        interval = 1.0
    logger.info(f"Stream client connected from {sanitize_log_message(origin)}")

    loop = asyncio.get_running_loop()

    try:
        while True:
            await websocket.send_json(snapshot_publisher.current().to_wire())

            # Client frames are read and dropped; only the deadline triggers a push
            deadline = loop.time() + interval
            while (remaining := deadline - loop.time()) > 0:
                try:
                    message = await asyncio.wait_for(websocket.receive(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                if message["type"] == "websocket.disconnect":
                    return
    except WebSocketDisconnect as e:
        logger.debug(f"Stream client went away: {e.code}")
    except (RuntimeError, OSError) as e:
        # Sending on a socket the server already closed
        logger.debug(f"Stream send failed: {sanitize_log_message(str(e))}")
    finally:
        metrics.stream_clients.dec()
        logger.info(f"Stream client disconnected from {sanitize_log_message(origin)}")
