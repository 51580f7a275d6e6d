"""Tests for the waypoint.testing helpers."""

import anyio
import pytest

from waypoint.history import MemoryHistory
from waypoint.navigation.deferred import defer
from waypoint.navigation.router import Router
from waypoint.navigation.state import Status
from waypoint.responses import Redirect
from waypoint.routing.route import Route
from waypoint.testing import ControlledCall, ControlledHandler, Harness


class TestControlledHandler:
    @pytest.mark.anyio
    async def test_resolves_oldest_pending_call(self) -> None:
        handler = ControlledHandler("h")
        results: list[object] = []

        async def call(arg: str) -> None:
            results.append(await handler(arg))

        async with anyio.create_task_group() as tg:
            tg.start_soon(call, "first")
            tg.start_soon(call, "second")
            await anyio.wait_all_tasks_blocked()
            assert [c.args for c in handler.pending] == ["first", "second"]
            await handler.resolve(1)
            await handler.resolve(2)
        assert results == [1, 2]
        assert handler.call_count == 2

    @pytest.mark.anyio
    async def test_reject_and_redirect_raise(self) -> None:
        handler = ControlledHandler()
        errors: list[BaseException] = []

        async def call() -> None:
            try:
                await handler(None)
            except (LookupError, Redirect) as exc:
                errors.append(exc)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            tg.start_soon(call)
            await anyio.wait_all_tasks_blocked()
            await handler.reject(LookupError("x"))
            await handler.redirect("/login")
        assert isinstance(errors[0], LookupError)
        assert errors[1] == Redirect("/login")

    @pytest.mark.anyio
    async def test_no_pending_call(self) -> None:
        with pytest.raises(LookupError):
            await ControlledHandler().resolve()

    def test_settle_twice(self) -> None:
        call = ControlledCall(None)
        call.resolve(1)
        with pytest.raises(RuntimeError):
            call.resolve(2)


class TestHarness:
    @pytest.mark.anyio
    async def test_records_statuses(self) -> None:
        loader = ControlledHandler("a")
        routes = [Route("/", id="root", children=(Route("a", id="a", loader=loader),))]
        async with Harness(routes) as harness:
            await harness.start(harness.router.navigate, "/a")
            await loader.resolve("A")
        assert harness.statuses == [Status.LOADING, Status.IDLE]

    @pytest.mark.anyio
    async def test_exit_cancels_parked_intents(self) -> None:
        loader = ControlledHandler("a")
        routes = [Route("/", id="root", children=(Route("a", id="a", loader=loader),))]
        with anyio.fail_after(1):
            async with Harness(routes) as harness:
                await harness.start(harness.router.navigate, "/a")
        assert loader.calls[0].cancelled
        assert harness.state.location.pathname == "/"


class TestRouterLifecycle:
    @pytest.mark.anyio
    async def test_enter_twice(self) -> None:
        router = Router([Route("/", id="root")], MemoryHistory())
        async with router:
            assert router.running
            with pytest.raises(RuntimeError):
                await router.__aenter__()
        assert not router.running

    @pytest.mark.anyio
    async def test_deferred_requires_running_router(self) -> None:
        async def later() -> int:
            return 1

        routes = [Route("/", id="root", children=(
            Route("a", id="a", loader=lambda args: {"x": defer(later())}),
        ))]
        router = Router(routes, MemoryHistory())
        with pytest.raises(RuntimeError, match="running router"):
            await router.navigate("/a")
        state = router.state
        assert state.location.pathname == "/"
        assert state.status is Status.IDLE
        assert state.navigation is None
        assert "a" not in state.loader_data
        assert [e.pathname for e in router.history.entries] == ["/"]
