"""Session registry: per-tab log buffers and interactive sessions."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from typing import TYPE_CHECKING

from podtrail.models import MAX_LOG_LINES, InteractiveTarget, LogTarget, Session, SessionKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

_TERMINAL_CONTEXT_CHARS = 20


class SessionRegistry:
    """Owns every open session and its line buffer.

    Mutations addressed to an unknown session id are ignored.
    """

    def __init__(self, max_lines: int = MAX_LOG_LINES) -> None:
        self.max_lines = max_lines
        self._sessions: dict[str, Session] = {}
        self._teardowns: dict[str, Callable[[], object]] = {}
        self.active_id: str | None = None
        self.is_open: bool = False

    @property
    def sessions(self) -> list[Session]:
        """Open sessions in the order they were opened."""
        return list(self._sessions.values())

    @property
    def active(self) -> Session | None:
        return self._sessions.get(self.active_id) if self.active_id is not None else None

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def toggle_panel(self) -> None:
        self.is_open = not self.is_open

    # --- Lifecycle ---

    def open_log_session(
        self,
        target: LogTarget,
        *,
        title: str | None = None,
        container: str | None = None,
    ) -> str:
        """Allocate a streaming, following log session with an empty buffer."""
        session = self._new_session(SessionKind.LOGS, title or target.name)
        session.target = target
        session.selected_container = container
        session.is_following = True
        session.is_streaming = True
        session.lines = deque(maxlen=self.max_lines)
        return self._register(session)

    def open_interactive_session(
        self,
        kind: SessionKind,
        target: InteractiveTarget | None = None,
        *,
        title: str | None = None,
    ) -> str:
        """Allocate a shell or terminal session. No buffer semantics apply."""
        if kind == SessionKind.LOGS:
            msg = "log sessions are opened with open_log_session()"
            raise ValueError(msg)
        target = target or InteractiveTarget()
        if title is None:
            title = self._terminal_title(target) if kind == SessionKind.TERMINAL else _shell_title(target)
        session = self._new_session(kind, title)
        session.interactive = target
        return self._register(session)

    def close(self, session_id: str) -> None:
        """Remove a session and tear down its source exactly once."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        teardown = self._teardowns.pop(session_id, None)
        if teardown is not None:
            try:
                teardown()
            except Exception:
                logger.exception("teardown of session %s failed", session_id)
        if self.active_id == session_id:
            remaining = list(self._sessions)
            self.active_id = remaining[-1] if remaining else None
        self.is_open = bool(self._sessions)

    def attach_teardown(self, session_id: str, teardown: Callable[[], object]) -> None:
        """Register the callback that stops a session's external source on close."""
        if session_id in self._sessions:
            self._teardowns[session_id] = teardown

    def set_active(self, session_id: str) -> None:
        if session_id in self._sessions:
            self.active_id = session_id

    # --- Buffer ---

    def append(self, session_id: str, lines: Iterable[str]) -> None:
        """Append lines, evicting the oldest beyond the buffer cap."""
        session = self._log_session(session_id)
        if session is None:
            return
        before = len(session.lines)
        batch = list(lines)
        session.lines.extend(batch)
        session.evicted += before + len(batch) - len(session.lines)

    def clear(self, session_id: str) -> None:
        """Empty the buffer; streaming and following flags are left alone."""
        session = self._log_session(session_id)
        if session is None:
            return
        session.lines.clear()
        session.evicted = 0
        session.generation += 1

    # --- Field mutations ---

    def set_following(self, session_id: str, following: bool) -> None:
        if session := self._log_session(session_id):
            session.is_following = following

    def set_streaming(self, session_id: str, streaming: bool) -> None:
        if session := self._log_session(session_id):
            session.is_streaming = streaming

    def set_search_query(self, session_id: str, query: str) -> None:
        if session := self._log_session(session_id):
            session.search_query = query

    def set_selected_container(self, session_id: str, container: str | None) -> None:
        if session := self._log_session(session_id):
            session.selected_container = container

    def set_available_containers(self, session_id: str, containers: list[str]) -> None:
        if session := self._log_session(session_id):
            session.available_containers = list(containers)

    # --- Internals ---

    def _new_session(self, kind: SessionKind, title: str) -> Session:
        return Session(id=str(uuid.uuid4()), kind=kind, title=title)

    def _register(self, session: Session) -> str:
        self._sessions[session.id] = session
        self.active_id = session.id
        self.is_open = True
        logger.debug("opened %s session %s (%s)", session.kind, session.id, session.title)
        return session.id

    def _log_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None or session.kind != SessionKind.LOGS:
            return None
        return session

    def _terminal_title(self, target: InteractiveTarget) -> str:
        number = sum(1 for s in self._sessions.values() if s.kind == SessionKind.TERMINAL) + 1
        if not target.context:
            return f"Terminal {number}"
        return f"Terminal {number} ({target.context[-_TERMINAL_CONTEXT_CHARS:]})"


def _shell_title(target: InteractiveTarget) -> str:
    if target.pod and target.container:
        return f"shell: {target.pod}/{target.container}"
    return f"shell: {target.pod or 'pod'}"
