import json
import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOGOUT_EVENT = {"action": "logout"}


class LiveChannelRegistry:
    """
    Process-wide token <-> connection map used to push logout events.

    Both directions are updated together under one lock, so a closed
    connection never leaves a token pointing at it. Connections only need an
    async ``send_text(str)`` method. Nothing here is persisted: sessions
    survive a restart, channel registrations do not.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_token: Dict[str, Any] = {}
        self._by_connection: Dict[Any, str] = {}

    def register(self, token: str, connection) -> None:
        """Map token to connection; the newest registration wins"""
        with self._lock:
            previous_token = self._by_connection.pop(connection, None)
            if previous_token is not None and previous_token != token:
                self._by_token.pop(previous_token, None)

            previous_connection = self._by_token.get(token)
            if previous_connection is not None and previous_connection is not connection:
                self._by_connection.pop(previous_connection, None)

            self._by_token[token] = connection
            self._by_connection[connection] = token

    def unregister(self, connection) -> Optional[str]:
        """Drop whatever token the connection holds; returns that token"""
        with self._lock:
            token = self._by_connection.pop(connection, None)
            if token is not None and self._by_token.get(token) is connection:
                del self._by_token[token]
            return token

    def _pop(self, token: str):
        with self._lock:
            connection = self._by_token.pop(token, None)
            if connection is not None:
                self._by_connection.pop(connection, None)
            return connection

    async def push_logout(self, token: str) -> bool:
        """
        Send a logout event to the connection registered for token, if any.

        The mapping is removed before sending. Returns True when an event was
        delivered; a missing connection is a silent no-op.
        """
        connection = self._pop(token)
        if connection is None:
            return False

        try:
            await connection.send_text(json.dumps(LOGOUT_EVENT))
            logger.info("Pushed logout event to live channel")
            return True
        except Exception as e:
            logger.warning(f"Failed to push logout event: {e}")
            return False

    def is_registered(self, token: str) -> bool:
        with self._lock:
            return token in self._by_token

    def connection_for(self, token: str):
        with self._lock:
            return self._by_token.get(token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_token)
