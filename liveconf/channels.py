"""
External notification channels for ChangeBroadcaster.

- WebSocketHub: pushes updates to connected WebSocket clients of the API.
- RedisChannel: PUBLISH to a Redis pub/sub topic for other processes.
- FanoutChannel: several channels behind one publish().
"""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Iterable

import redis
import structlog
from fastapi import WebSocket
from redis.exceptions import RedisError

from liveconf.errors import NotificationDeliveryFailure

logger = structlog.get_logger(__name__)


class WebSocketHub:
    """Connected WebSocket clients; publish() is safe to call from reload worker threads."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        """Event loop that owns the WebSocket connections (set by the app lifespan)."""
        self._loop = loop

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        with self._lock:
            self._clients.add(websocket)
        logger.info("websocket_client_connected", clients=len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        with self._lock:
            self._clients.discard(websocket)

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or not self._clients:
            return
        message = {"topic": topic, **payload}
        asyncio.run_coroutine_threadsafe(self._broadcast(message), loop)

    async def _broadcast(self, message: dict[str, Any]) -> None:
        with self._lock:
            clients = list(self._clients)
        for ws in clients:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.info("websocket_client_dropped", error=str(e))
                self.disconnect(ws)


class RedisChannel:
    """Redis pub/sub publisher. Payload is sent as JSON."""

    def __init__(self, url: str, client: redis.Redis | None = None, timeout: float = 5.0):
        self.url = url
        if client is None:
            # An unreachable server fails the publish after `timeout` seconds
            client = redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
        self._client = client

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self._client.publish(topic, json.dumps(payload, default=str))
        except RedisError as e:
            raise NotificationDeliveryFailure(f"redis publish to {topic} failed: {e}") from e

    def close(self) -> None:
        self._client.close()


class FanoutChannel:
    """Publish to every channel; raise once at the end if any of them failed."""

    def __init__(self, channels: Iterable[Any]):
        self.channels = list(channels)

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        failures = []
        for channel in self.channels:
            try:
                channel.publish(topic, payload)
            except Exception as e:
                failures.append(f"{type(channel).__name__}: {e}")
        if failures:
            raise NotificationDeliveryFailure("; ".join(failures))

    def close(self) -> None:
        for channel in self.channels:
            close = getattr(channel, "close", None)
            if close is not None:
                close()
