"""
ChangeBroadcaster: fan a successful reload out to listeners and an external channel.

Best effort. A failing listener or channel is logged and never undoes the
published snapshot. A slow channel delays only its own messages, not reloads.
"""

from __future__ import annotations

import queue
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Protocol

import structlog
from pydantic import BaseModel

from liveconf.documents import document_to_dict
from liveconf.domains import Domain

if TYPE_CHECKING:
    from liveconf.events import ReloadOutcome

logger = structlog.get_logger(__name__)

DEFAULT_TOPIC = "/topic/config-updates"
DEFAULT_OUTBOX_SIZE = 256

_STOP = object()

Listener = Callable[["ReloadOutcome"], None]


class NotificationChannel(Protocol):
    """External fire-and-forget publisher (WebSocket hub, Redis, ...)."""

    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class ConfigUpdateMessage(BaseModel):
    """Payload pushed to external subscribers after a reload."""

    type: str
    version: int
    config: dict[str, Any]
    timestamp: int
    changes: list[str] = []

    @classmethod
    def from_outcome(cls, outcome: "ReloadOutcome") -> "ConfigUpdateMessage":
        snap = outcome.current
        return cls(
            type=outcome.domain.value,
            version=snap.source_version,
            config=document_to_dict(snap.document),
            timestamp=int(snap.loaded_at.timestamp() * 1000),
            changes=list(outcome.changes),
        )


class ChangeBroadcaster:
    """
    Delivers reload outcomes to in-process listeners and one external channel.

    Listeners run synchronously in announce(). Channel messages go through a
    bounded FIFO outbox drained by one sender thread, so a slow or hung channel
    never holds a domain in Reloading. Messages leave in announce order, which
    per domain is publish order.
    """

    def __init__(
        self,
        channel: NotificationChannel | None = None,
        topic: str = DEFAULT_TOPIC,
        queue_size: int = DEFAULT_OUTBOX_SIZE,
    ):
        self.channel = channel
        self.topic = topic
        self._listeners: tuple[tuple[Listener, frozenset[Domain] | None], ...] = ()
        self._lock = threading.Lock()
        self._outbox: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self._sender: threading.Thread | None = None
        self._closed = False

    def subscribe(self, listener: Listener, domains: Iterable[Domain] | None = None) -> Callable[[], None]:
        """
        Register a listener for reloads of the given domains (all when None).

        Returns:
            Callable that removes this registration.
        """
        entry = (listener, frozenset(domains) if domains is not None else None)
        with self._lock:
            self._listeners = (*self._listeners, entry)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners = tuple(e for e in self._listeners if e is not entry)

        return unsubscribe

    def announce(self, outcome: "ReloadOutcome") -> None:
        if outcome.current is None:
            return
        domain = outcome.domain
        for listener, domains in self._listeners:
            if domains is not None and domain not in domains:
                continue
            try:
                listener(outcome)
            except Exception:
                logger.exception("listener_failed", domain=domain.value, listener=getattr(listener, "__name__", repr(listener)))
        if self.channel is None:
            return
        self._enqueue(ConfigUpdateMessage.from_outcome(outcome))

    def _enqueue(self, message: ConfigUpdateMessage) -> None:
        with self._lock:
            if self._closed:
                logger.debug("notification_skipped_closed", domain=message.type, version=message.version)
                return
            if self._sender is None:
                self._sender = threading.Thread(target=self._send_loop, name="liveconf-notify", daemon=True)
                self._sender.start()
            try:
                self._outbox.put_nowait(message)
            except queue.Full:
                logger.warning("notification_dropped", domain=message.type, version=message.version, queue_size=self._outbox.maxsize)

    def _send_loop(self) -> None:
        while True:
            message = self._outbox.get()
            if message is _STOP:
                return
            self._deliver(message)

    def _deliver(self, message: ConfigUpdateMessage) -> None:
        try:
            self.channel.publish(self.topic, message.model_dump())
            logger.info("clients_notified", domain=message.type, version=message.version, topic=self.topic)
        except Exception as e:
            logger.error("notification_delivery_failed", domain=message.type, topic=self.topic, error=str(e))

    def close(self, timeout: float | None = None) -> None:
        """Deliver what is already queued, then stop the sender. Later announcements skip the channel."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sender = self._sender
        if sender is None:
            return
        try:
            self._outbox.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("notification_sender_stuck", pending=self._outbox.qsize())
            return
        sender.join(timeout)
        if sender.is_alive():
            logger.warning("notification_sender_stuck", pending=self._outbox.qsize())
