"""Tests for FetcherRegistry bookkeeping."""

from waypoint.navigation.fetchers import FetcherRegistry
from waypoint.navigation.state import FetcherState, Status


class TestFetcherRegistry:
    def test_generated_keys(self) -> None:
        registry = FetcherRegistry("f")
        assert registry.next_key() == "f-1"
        assert registry.next_key() == "f-2"

    def test_unknown_key_reads_idle(self) -> None:
        registry = FetcherRegistry()
        state = registry.get("ghost")
        assert state == FetcherState(key="ghost")
        assert "ghost" not in registry

    def test_begin_supersedes_same_key_only(self) -> None:
        registry = FetcherRegistry()
        first = registry.begin("a")
        other = registry.begin("b")
        second = registry.begin("a")
        assert first.aborted
        assert not other.aborted
        assert registry.is_current("a", second)
        assert not registry.is_current("a", first)

    def test_release_idle_removes(self) -> None:
        registry = FetcherRegistry()
        registry.acquire("a")
        assert "a" in registry
        assert registry.release("a") is True
        assert "a" not in registry

    def test_release_keeps_while_other_subscribers_remain(self) -> None:
        registry = FetcherRegistry()
        registry.acquire("a")
        registry.acquire("a")
        assert registry.release("a") is False
        assert "a" in registry

    def test_release_while_running_removes_on_finish(self) -> None:
        registry = FetcherRegistry()
        registry.acquire("a")
        signal = registry.begin("a")
        registry.update("a", FetcherState(key="a", status=Status.LOADING))
        assert registry.release("a") is False
        assert "a" in registry
        registry.update("a", FetcherState(key="a", data=1))
        assert registry.finish("a", signal) is True
        assert "a" not in registry

    def test_finish_keeps_watched_fetchers(self) -> None:
        registry = FetcherRegistry()
        registry.acquire("a")
        signal = registry.begin("a")
        registry.update("a", FetcherState(key="a", data=1))
        assert registry.finish("a", signal) is False
        assert registry.get("a").data == 1
        assert not registry.is_running("a")

    def test_delete_aborts(self) -> None:
        registry = FetcherRegistry()
        signal = registry.begin("a")
        registry.update("a", FetcherState(key="a", status=Status.LOADING))
        registry.delete("a")
        assert signal.aborted
        assert "a" not in registry

    def test_abort_all(self) -> None:
        registry = FetcherRegistry()
        signals = [registry.begin("a"), registry.begin("b")]
        registry.abort_all()
        assert all(s.aborted for s in signals)

    def test_snapshot_is_a_copy(self) -> None:
        registry = FetcherRegistry()
        registry.acquire("a")
        snapshot = registry.snapshot()
        registry.delete("a")
        assert "a" in snapshot
