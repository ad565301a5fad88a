import logging
from typing import List, Union

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


# Broadcast center for WebSockets: every message goes to every connection
class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("A user connected: %s", websocket.client)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("User disconnected: %s", websocket.client)

    async def broadcast(self, message: Union[str, bytes]):
        for ws in list(self.active_connections):
            try:
                if isinstance(message, bytes):
                    await ws.send_bytes(message)
                else:
                    await ws.send_text(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning("Dropping connection %s after failed send: %s", ws.client, e)
                self.disconnect(ws)


manager = ConnectionManager()
