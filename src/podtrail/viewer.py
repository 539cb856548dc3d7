"""Windowed log viewer: level/text filtering, newest-end windowing, backscroll paging."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from itertools import islice
from typing import TYPE_CHECKING

from podtrail.ansi import strip_ansi
from podtrail.classifier import DEFAULT_CONFIG, classify_many
from podtrail.markup import render_markup
from podtrail.models import ALL_LOG_LEVELS, LogLevel, ParsedLine

if TYPE_CHECKING:
    from podtrail.models import ClassifierConfig, Session
    from podtrail.registry import SessionRegistry

PAGE_SIZE = 500
# Distance from the bottom (px) still treated as "at bottom"
FOLLOW_TOLERANCE_PX = 30
# Distance from the top (px) that triggers loading another page
LOAD_MORE_THRESHOLD_PX = 50


@dataclass(slots=True, frozen=True)
class WindowSnapshot:
    """One computed view of a session's buffer."""

    lines: list[ParsedLine]
    level_counts: dict[LogLevel, int]
    total_filtered: int
    total: int
    query: str

    @property
    def shows_all(self) -> bool:
        return len(self.lines) >= self.total_filtered


@dataclass(slots=True, frozen=True)
class RenderedLine:
    html: str
    level: LogLevel


@dataclass(slots=True, frozen=True)
class ScrollAnchor:
    """Scroll state captured just before the window grew upwards."""

    scroll_height: int
    scroll_top: int

    def restore(self, new_scroll_height: int) -> int:
        """Scroll offset that keeps the previously visible lines in place."""
        return new_scroll_height - self.scroll_height + self.scroll_top


class _ParseCache:
    """Classified lines aligned with a session buffer, updated incrementally.

    Positions are absolute: `offset` is the number of lines evicted from the
    buffer before the first cached line.
    """

    def __init__(self) -> None:
        self.lines: deque[ParsedLine] = deque()
        self.offset = 0
        self.generation = -1
        self.config: ClassifierConfig | None = None

    def sync(self, session: Session, config: ClassifierConfig) -> list[ParsedLine]:
        if session.generation != self.generation or config is not self.config:
            self.lines.clear()
            self.offset = session.evicted
            self.generation = session.generation
            self.config = config

        start = session.evicted
        end = start + len(session.lines)
        while self.lines and self.offset < start:
            self.lines.popleft()
            self.offset += 1
        if not self.lines:
            self.offset = max(self.offset, start)

        cached_end = self.offset + len(self.lines)
        if cached_end < end:
            self.lines.extend(classify_many(islice(session.lines, cached_end - start, None), config))
        return list(self.lines)


class LogWindow:
    """View state for one log session.

    Reads the session buffer through the registry and only mutates the session
    through registry calls (follow flag, container, clear).
    """

    def __init__(
        self,
        registry: SessionRegistry,
        session_id: str,
        config: ClassifierConfig = DEFAULT_CONFIG,
        *,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.registry = registry
        self.session_id = session_id
        self.config = config
        self.page_size = page_size
        self.visible_count = page_size
        self.active_levels: set[LogLevel] = set(ALL_LOG_LEVELS)
        self.user_scrolling = False
        self._cache = _ParseCache()
        self._was_following = self.is_following

    @property
    def session(self) -> Session | None:
        return self.registry.get(self.session_id)

    @property
    def is_following(self) -> bool:
        session = self.session
        return session is not None and session.is_following

    def parsed_lines(self) -> list[ParsedLine]:
        """Every buffered line, classified. Only lines not seen before are classified."""
        session = self.session
        if session is None:
            return []
        return self._cache.sync(session, self.config)

    def snapshot(self) -> WindowSnapshot:
        self._sync_follow()
        parsed = self.parsed_lines()
        session = self.session
        query = session.search_query if session is not None else ""

        counts = dict.fromkeys(ALL_LOG_LEVELS, 0)
        for line in parsed:
            counts[line.level] += 1

        filtered = [line for line in parsed if self.accepts(line, query)]
        total_filtered = len(filtered)
        if total_filtered > self.visible_count:
            filtered = filtered[total_filtered - self.visible_count :]
        return WindowSnapshot(
            lines=filtered,
            level_counts=counts,
            total_filtered=total_filtered,
            total=len(parsed),
            query=query,
        )

    def accepts(self, line: ParsedLine, query: str) -> bool:
        """Level toggle and case-insensitive substring match on the escape-stripped line."""
        if line.level not in self.active_levels:
            return False
        return not query or query.lower() in strip_ansi(line.raw).lower()

    def filtered_count(self) -> int:
        """Number of buffered lines passing the current level and search filters."""
        session = self.session
        query = session.search_query if session is not None else ""
        return sum(1 for line in self.parsed_lines() if self.accepts(line, query))

    def render(self, snapshot: WindowSnapshot | None = None) -> list[RenderedLine]:
        """HTML for each windowed line, with search matches highlighted."""
        snapshot = snapshot or self.snapshot()
        return [RenderedLine(html=render_markup(line.raw, snapshot.query), level=line.level) for line in snapshot.lines]

    # --- Interaction ---

    def toggle_level(self, level: LogLevel) -> None:
        if level in self.active_levels:
            self.active_levels.discard(level)
        else:
            self.active_levels.add(level)

    def set_search_query(self, query: str) -> None:
        self.registry.set_search_query(self.session_id, query)

    def on_scroll(self, scroll_top: int, scroll_height: int, client_height: int) -> ScrollAnchor | None:
        """Handle a scroll event.

        Leaving the bottom turns follow mode off. Reaching the top grows the
        window by a page; the returned anchor maps the new content height to
        the scroll offset that keeps the user's place.
        """
        self._sync_follow()
        at_bottom = scroll_height - scroll_top - client_height < FOLLOW_TOLERANCE_PX
        self.user_scrolling = not at_bottom
        if not at_bottom and self.is_following:
            self.registry.set_following(self.session_id, False)
            self._was_following = False

        total_filtered = self.filtered_count()
        if scroll_top < LOAD_MORE_THRESHOLD_PX and self.visible_count < total_filtered:
            self.visible_count = min(self.visible_count + self.page_size, total_filtered)
            return ScrollAnchor(scroll_height=scroll_height, scroll_top=scroll_top)
        return None

    def should_autoscroll(self) -> bool:
        """Whether the view should jump to the newest line after new output."""
        return self.is_following and not self.user_scrolling

    def follow(self) -> None:
        """Re-enable follow mode: back to one page, pinned to the bottom."""
        self.registry.set_following(self.session_id, True)
        self.visible_count = self.page_size
        self.user_scrolling = False
        self._was_following = True

    def _sync_follow(self) -> None:
        # Follow turned back on through the registry since the last look
        following = self.is_following
        if following and not self._was_following:
            self.visible_count = self.page_size
            self.user_scrolling = False
        self._was_following = following

    def switch_container(self, container: str) -> None:
        self.registry.clear(self.session_id)
        self.registry.set_selected_container(self.session_id, container)
        self.registry.set_streaming(self.session_id, True)
        self.visible_count = self.page_size

    def clear(self) -> None:
        self.registry.clear(self.session_id)
        self.visible_count = self.page_size
