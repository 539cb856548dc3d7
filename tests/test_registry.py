"""Tests for the session registry and bounded buffers."""

from __future__ import annotations

import pytest

from podtrail.models import InteractiveTarget, LogTarget, SessionKind, TargetKind
from podtrail.registry import SessionRegistry


def _open(registry: SessionRegistry, name: str = "api-0") -> str:
    return registry.open_log_session(LogTarget(name=name))


class TestOpen:
    def test_log_session_defaults(self, registry: SessionRegistry) -> None:
        sid = registry.open_log_session(LogTarget(kind=TargetKind.DEPLOYMENT, name="api"), container="app")
        session = registry.get(sid)
        assert session is not None
        assert session.kind == SessionKind.LOGS
        assert session.title == "api"
        assert session.is_following
        assert session.is_streaming
        assert list(session.lines) == []
        assert session.selected_container == "app"
        assert registry.active_id == sid
        assert registry.is_open

    def test_interactive_session(self, registry: SessionRegistry) -> None:
        sid = registry.open_interactive_session(SessionKind.SHELL, InteractiveTarget(pod="api-0", container="app"))
        session = registry.get(sid)
        assert session is not None
        assert session.title == "shell: api-0/app"
        assert session.target is None

    def test_terminal_titles_are_numbered(self, registry: SessionRegistry) -> None:
        first = registry.open_interactive_session(SessionKind.TERMINAL)
        second = registry.open_interactive_session(
            SessionKind.TERMINAL, InteractiveTarget(context="arn:aws:eks:eu-west-1:123:cluster/prod")
        )
        assert registry.get(first).title == "Terminal 1"  # type: ignore[union-attr]
        assert registry.get(second).title == "Terminal 2 (t-1:123:cluster/prod)"  # type: ignore[union-attr]

    def test_interactive_rejects_logs_kind(self, registry: SessionRegistry) -> None:
        with pytest.raises(ValueError, match="open_log_session"):
            registry.open_interactive_session(SessionKind.LOGS)


class TestBuffer:
    def test_append_preserves_order(self, registry: SessionRegistry) -> None:
        sid = _open(registry)
        registry.append(sid, ["a", "b"])
        registry.append(sid, ["c"])
        assert list(registry.get(sid).lines) == ["a", "b", "c"]  # type: ignore[union-attr]

    def test_cap_evicts_oldest_first(self) -> None:
        registry = SessionRegistry(max_lines=5)
        sid = _open(registry)
        registry.append(sid, [str(i) for i in range(4)])
        registry.append(sid, [str(i) for i in range(4, 8)])
        session = registry.get(sid)
        assert session is not None
        assert list(session.lines) == ["3", "4", "5", "6", "7"]
        assert session.evicted == 3

    def test_default_cap(self, registry: SessionRegistry) -> None:
        sid = _open(registry)
        registry.append(sid, [f"line {i}" for i in range(50_010)])
        session = registry.get(sid)
        assert session is not None
        assert len(session.lines) == 50_000
        assert session.lines[0] == "line 10"
        assert session.lines[-1] == "line 50009"

    def test_clear_keeps_flags(self, registry: SessionRegistry) -> None:
        sid = _open(registry)
        registry.append(sid, ["a"])
        registry.set_following(sid, False)
        registry.clear(sid)
        session = registry.get(sid)
        assert session is not None
        assert list(session.lines) == []
        assert session.is_streaming
        assert not session.is_following
        assert session.generation == 1

    def test_interactive_sessions_have_no_buffer_semantics(self, registry: SessionRegistry) -> None:
        sid = registry.open_interactive_session(SessionKind.TERMINAL)
        registry.append(sid, ["ignored"])
        assert list(registry.get(sid).lines) == []  # type: ignore[union-attr]


class TestMutations:
    def test_unknown_ids_are_noops(self, registry: SessionRegistry) -> None:
        registry.append("missing", ["x"])
        registry.clear("missing")
        registry.set_following("missing", True)
        registry.set_streaming("missing", True)
        registry.set_search_query("missing", "q")
        registry.set_selected_container("missing", "c")
        registry.set_available_containers("missing", ["c"])
        registry.close("missing")
        assert len(registry) == 0

    def test_field_mutations(self, registry: SessionRegistry) -> None:
        sid = _open(registry)
        registry.set_streaming(sid, False)
        registry.set_search_query(sid, "timeout")
        registry.set_selected_container(sid, "sidecar")
        registry.set_available_containers(sid, ["app", "sidecar"])
        session = registry.get(sid)
        assert session is not None
        assert not session.is_streaming
        assert session.search_query == "timeout"
        assert session.selected_container == "sidecar"
        assert session.available_containers == ["app", "sidecar"]


class TestClose:
    def test_activation_falls_to_most_recent(self, registry: SessionRegistry) -> None:
        first = _open(registry, "a")
        second = _open(registry, "b")
        third = _open(registry, "c")
        registry.set_active(second)
        registry.close(second)
        assert registry.active_id == third
        registry.close(third)
        assert registry.active_id == first
        registry.close(first)
        assert registry.active_id is None
        assert not registry.is_open

    def test_closing_inactive_keeps_active(self, registry: SessionRegistry) -> None:
        first = _open(registry, "a")
        second = _open(registry, "b")
        registry.close(first)
        assert registry.active_id == second
        assert first not in registry

    def test_teardown_runs_once(self, registry: SessionRegistry) -> None:
        sid = _open(registry)
        calls: list[str] = []
        registry.attach_teardown(sid, lambda: calls.append(sid))
        registry.close(sid)
        registry.close(sid)
        assert calls == [sid]

    def test_failing_teardown_still_removes(self, registry: SessionRegistry) -> None:
        sid = _open(registry)

        def boom() -> None:
            raise RuntimeError("kill failed")

        registry.attach_teardown(sid, boom)
        registry.close(sid)
        assert sid not in registry

    def test_toggle_panel(self, registry: SessionRegistry) -> None:
        assert not registry.is_open
        registry.toggle_panel()
        assert registry.is_open
