"""Stream transport interface and the in-process event bus."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Callable

    from podtrail.models import LogTarget

logger = logging.getLogger(__name__)


class LogBatch(BaseModel):
    """Payload of a `log-data-<id>` event."""

    lines: list[str]


def log_data_channel(session_id: str) -> str:
    return f"log-data-{session_id}"


def log_ended_channel(session_id: str) -> str:
    return f"log-ended-{session_id}"


class EventBus:
    """Named push channels. Handlers run synchronously, in subscription order."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}

    def subscribe(self, channel: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register a handler; returns an idempotent unsubscribe callable."""
        self._handlers.setdefault(channel, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(channel)
            if handlers is None or handler not in handlers:
                return
            handlers.remove(handler)
            if not handlers:
                del self._handlers[channel]

        return unsubscribe

    def emit(self, channel: str, payload: Any = None) -> None:  # noqa: ANN401
        """Deliver a payload to every handler on a channel. Handler errors are logged."""
        for handler in list(self._handlers.get(channel, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("handler on %s failed", channel)

    def has_subscribers(self, channel: str) -> bool:
        return bool(self._handlers.get(channel))


class StreamTransport(ABC):
    """Opens and closes push subscriptions for line-oriented sources.

    After `open_stream`, further batches are emitted on the bus as
    `log-data-<session_id>` (a LogBatch) and end-of-stream as
    `log-ended-<session_id>`.
    """

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    @abstractmethod
    async def open_stream(
        self,
        session_id: str,
        target: LogTarget,
        *,
        container: str | None = None,
        tail_lines: int | None = None,
        since_seconds: int | None = None,
    ) -> list[str]:
        """Start streaming and return the first batch of lines.

        Raises StreamError if the source cannot be opened.
        """

    @abstractmethod
    def close_stream(self, session_id: str) -> None:
        """Stop a subscription. Must be safe to call for unknown or closed ids."""

    def emit_lines(self, session_id: str, lines: list[str]) -> None:
        if lines:
            self.bus.emit(log_data_channel(session_id), LogBatch(lines=lines))

    def emit_ended(self, session_id: str) -> None:
        self.bus.emit(log_ended_channel(session_id))
