"""Development-only live reload socket.

The browser script in ``static/js/livereload.js`` holds a connection open;
when the dev server restarts the socket drops and the page reloads once the
server answers again. Nothing is ever sent over the socket.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/livereload")
async def livereload(websocket: WebSocket):
    await websocket.accept()
    logger.debug("Live reload client connected")
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live reload client disconnected")
