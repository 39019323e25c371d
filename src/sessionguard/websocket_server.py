import json
import logging
from fastapi import WebSocket, WebSocketDisconnect
from sessionguard.service.live_channel import LiveChannelRegistry
from sessionguard.service.session_registry import SessionRegistry
from sessionguard.utils.errors import AuthError

logger = logging.getLogger(__name__)

UNAUTHORIZED_CLOSE_CODE = 4401


class LiveConnection:
    """Hashable handle around one open socket, keyed by identity"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_text(self, data: str):
        await self.websocket.send_text(data)

    @property
    def remote_address(self):
        return self.websocket.client


class LiveChannelServer:
    """
    WebSocket endpoint clients hold open after login.

    The first message must be {"token": ...} for a live session. From then on
    the server may push {"action": "logout"} when that session is revoked.
    """

    def __init__(self, registry: LiveChannelRegistry, sessions: SessionRegistry):
        self.registry = registry
        self.sessions = sessions

    async def handle_connection(self, websocket: WebSocket):
        """Handle new WebSocket connection"""
        await websocket.accept()
        connection = LiveConnection(websocket)
        try:
            init_msg = await websocket.receive_text()
            if not await self._register(connection, init_msg):
                await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Unauthorized")
                return

            logger.info(
                f"Live channel opened from {connection.remote_address}. "
                f"Total registered: {len(self.registry)}"
            )

            while True:
                message = await websocket.receive_text()
                await self._handle_message(connection, message)

        except WebSocketDisconnect:
            logger.info("Live channel closed")
        except Exception as e:
            logger.error(f"Error handling live channel: {e}")
        finally:
            self._cleanup_connection(connection)

    async def _register(self, connection: LiveConnection, message: str) -> bool:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON message received")
            return False

        token = data.get("token") if isinstance(data, dict) else None
        try:
            # A verified signature is not enough; the session row must still exist
            self.sessions.validate(token)
        except AuthError as e:
            logger.warning(f"Live channel rejected: {e.message}")
            return False

        self.registry.register(token, connection)
        return True

    async def _handle_message(self, connection: LiveConnection, message: str):
        """Handle messages after registration"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.error("Invalid JSON message received")
            return

        if not isinstance(data, dict):
            logger.warning("Unexpected live channel message")
        elif data.get("type") == "ping":
            await connection.send_text(json.dumps({"type": "pong"}))
        elif "token" in data:
            if not await self._register(connection, message):
                logger.warning("Ignoring re-registration with invalid token")
        else:
            logger.warning(f"Unknown message type: {data.get('type')}")

    def _cleanup_connection(self, connection: LiveConnection):
        """Drop the connection's registration, if it still has one"""
        self.registry.unregister(connection)
        logger.info(f"Connection cleaned up. Total registered: {len(self.registry)}")
