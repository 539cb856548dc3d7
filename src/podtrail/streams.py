"""Binding between a registry log session and a stream transport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from podtrail.errors import StreamError
from podtrail.transports import LogBatch, log_data_channel, log_ended_channel

if TYPE_CHECKING:
    from collections.abc import Callable

    from podtrail.registry import SessionRegistry
    from podtrail.transports import EventBus, StreamTransport

logger = logging.getLogger(__name__)


class LogStream:
    """Feeds one log session from a transport until closed.

    Listeners are attached before the stream is opened so no batch is missed.
    Once closed, late deliveries are dropped and the transport is told to stop
    exactly once.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: StreamTransport,
        session_id: str,
        *,
        tail_lines: int | None = None,
        since_seconds: int | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.session_id = session_id
        self.tail_lines = tail_lines
        self.since_seconds = since_seconds
        self._unsubscribers: list[Callable[[], None]] = []
        self._cancelled = False
        self._opened = False
        registry.attach_teardown(session_id, self.close)

    @property
    def bus(self) -> EventBus:
        return self.transport.bus

    @property
    def closed(self) -> bool:
        return self._cancelled

    async def start(self) -> None:
        """Subscribe to the session channels, then open the source."""
        session = self.registry.get(self.session_id)
        if session is None or session.target is None or self._cancelled:
            return

        self._unsubscribers.append(self.bus.subscribe(log_data_channel(self.session_id), self._on_data))
        self._unsubscribers.append(self.bus.subscribe(log_ended_channel(self.session_id), self._on_ended))

        try:
            initial = await self.transport.open_stream(
                self.session_id,
                session.target,
                container=session.selected_container,
                tail_lines=self.tail_lines,
                since_seconds=self.since_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            reason = exc.reason if isinstance(exc, StreamError) else str(exc)
            logger.warning("log stream %s failed to start: %s", self.session_id, reason)
            if not self._cancelled:
                self.registry.append(self.session_id, [f"[Error starting log stream: {reason}]"])
                self.registry.set_streaming(self.session_id, False)
            return

        self._opened = True
        if self._cancelled:
            # Closed while opening: the source is up now, take it down
            self._teardown_source()
            return
        self.registry.append(self.session_id, initial)

    async def restart(self, container: str | None) -> None:
        """Reopen the stream for another container of the same target."""
        self._teardown_source()
        self._cancelled = False
        self.registry.clear(self.session_id)
        self.registry.set_selected_container(self.session_id, container)
        self.registry.set_streaming(self.session_id, True)
        self.registry.attach_teardown(self.session_id, self.close)
        await self.start()

    def close(self) -> None:
        """Stop delivery and tear down the transport subscription. Idempotent."""
        self._cancelled = True
        self._teardown_source()

    def _teardown_source(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._opened:
            self._opened = False
            self.transport.close_stream(self.session_id)

    def _on_data(self, payload: Any) -> None:  # noqa: ANN401
        if self._cancelled:
            return
        batch = payload if isinstance(payload, LogBatch) else LogBatch.model_validate(payload)
        self.registry.append(self.session_id, batch.lines)

    def _on_ended(self, _payload: Any) -> None:  # noqa: ANN401
        if self._cancelled:
            return
        self.registry.set_streaming(self.session_id, False)
