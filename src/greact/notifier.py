"""Live-reload notifier: websocket endpoint broadcasting "refresh" to browsers.

Any number of browser tabs may be connected. Inbound messages are read and
discarded only to notice disconnects. A broadcast with nobody connected is
dropped, never queued.
"""

import asyncio
import logging
from threading import Lock

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.frames import CloseCode

logger = logging.getLogger(__name__)

REFRESH_MESSAGE = "refresh"


class ConnectionRegistry:
    """Thread-safe set of live websocket connections."""

    def __init__(self):
        self._lock = Lock()
        self._connections: set = set()

    def add(self, connection) -> None:
        with self._lock:
            self._connections.add(connection)

    def discard(self, connection) -> None:
        with self._lock:
            self._connections.discard(connection)

    def snapshot(self) -> list:
        """Copy of the current connections, safe to iterate while others mutate."""
        with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)


class LiveReloadNotifier:
    """Websocket push endpoint for live reload."""

    def __init__(self, host: str = "localhost", port: int = 1501, path: str = "/ws"):
        """Initialize notifier.

        Args:
            host: Interface to bind
            port: Port to bind (0 picks a free one)
            path: Path advertised to the browser script
        """
        self.host = host
        self.path = path
        self.connections = ConnectionRegistry()
        self._requested_port = port
        self._server = None

    @property
    def port(self) -> int:
        """Bound port once started, otherwise the configured one."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._requested_port

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{self.path}"

    async def start(self) -> None:
        """Bind the endpoint and start accepting connections."""
        if self._server is not None:
            logger.warning("Live reload endpoint already started")
            return

        self._server = await websockets.serve(self._handle_connection, self.host, self._requested_port)
        logger.info(f"live reload listening on {self.url}")

    async def stop(self) -> None:
        """Close the endpoint and every open connection."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.debug("Live reload endpoint stopped")

    async def _handle_connection(self, websocket) -> None:
        if websocket.request.path != self.path:
            logger.debug(f"Rejecting live reload client on {websocket.request.path}")
            await websocket.close(CloseCode.POLICY_VIOLATION, f"live reload is served on {self.path}")
            return

        self.connections.add(websocket)
        logger.debug(f"Live reload client connected ({len(self.connections)} total)")
        try:
            async for _ in websocket:
                pass
        except ConnectionClosed as e:
            logger.debug(f"Live reload client went away: {e}")
        except Exception as e:
            logger.error(f"error reading from live reload client: {e}")
        finally:
            self.connections.discard(websocket)
            logger.debug(f"Live reload client disconnected ({len(self.connections)} left)")

    async def broadcast(self, message: str = REFRESH_MESSAGE) -> int:
        """Send ``message`` to every connected client.

        Args:
            message: Text frame to send

        Returns:
            Number of clients the message was delivered to
        """
        connections = self.connections.snapshot()
        if not connections:
            logger.debug(f"No live reload clients, dropping '{message}'")
            return 0

        results = await asyncio.gather(*(ws.send(message) for ws in connections), return_exceptions=True)

        delivered = 0
        for ws, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.error(f"error sending {message} to live reload client: {result}")
                self.connections.discard(ws)
            else:
                delivered += 1

        logger.info(f"sent {message} to {delivered} client(s)")
        return delivered
