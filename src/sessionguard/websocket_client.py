import asyncio
import websockets
import json
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class LiveChannelClient:
    """WebSocket client that waits for a server-pushed logout"""

    def __init__(
        self,
        token: str,
        server_url: str = "ws://localhost:3002/ws",
        on_logout: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.server_url = server_url
        self.token = token
        self.on_logout = on_logout
        self.websocket = None
        self.logged_out = False

    async def connect(self):
        """Connect to the server and present the session token"""
        try:
            # Configure WebSocket client with ping/pong settings
            self.websocket = await websockets.connect(
                self.server_url,
                ping_interval=20,  # Send ping every 20 seconds
                ping_timeout=10,  # Wait 10 seconds for pong response
                close_timeout=10,  # Wait 10 seconds for close
            )

            await self.websocket.send(json.dumps({"token": self.token}))
            logger.info(f"Connected to {self.server_url}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            return False

    async def listen(self):
        """Listen until the server logs this session out or the socket closes"""
        if not self.websocket:
            logger.error("Not connected to server")
            return False

        try:
            async for message in self.websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON server message")
                    continue

                if data.get("action") == "logout":
                    logger.info("Session revoked by server")
                    self.logged_out = True
                    if self.on_logout:
                        await self.on_logout()
                    break
                elif data.get("type") == "pong":
                    logger.debug("Received pong from server")

        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            await self.disconnect()

        return self.logged_out

    async def ping(self):
        if self.websocket:
            await self.websocket.send(json.dumps({"type": "ping"}))

    async def disconnect(self):
        """Disconnect from the server"""
        if self.websocket:
            await self.websocket.close()
            self.websocket = None
            logger.info("Disconnected from server")


async def main(token: str, server_url: str = "ws://localhost:3002/ws"):
    client = LiveChannelClient(token, server_url)
    if await client.connect():
        await client.listen()


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) < 2:
        print("usage: python -m sessionguard.websocket_client TOKEN [URL]")
        sys.exit(1)
    asyncio.run(main(sys.argv[1], *sys.argv[2:3]))
