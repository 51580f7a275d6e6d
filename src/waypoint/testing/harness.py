"""Harness: a running router plus a record of every state it published.

Usage::

    async with Harness(routes, ["/"]) as harness:
        await harness.start(harness.router.navigate, "/users/1")
        assert harness.router.state.status is Status.LOADING
        await loader.resolve({"name": "Ada"})
        assert harness.statuses == [Status.LOADING, Status.IDLE]
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import anyio
from anyio.abc import TaskGroup

from waypoint.config import RouterConfig
from waypoint.history import MemoryHistory
from waypoint.http.location import Location
from waypoint.navigation.router import Router
from waypoint.navigation.state import HydrationState, NavigationState, Status
from waypoint.routing.route import Route


class Harness:
    """Drive a ``Router`` over a ``MemoryHistory`` from tests.

    ``start()`` launches an intent in the background and returns once
    every task is blocked, i.e. once the loaders it called are parked.
    Leaving the harness cancels intents still parked, then stops the router.
    """

    def __init__(
        self,
        routes: Sequence[Route | Mapping[str, Any]],
        initial_entries: Sequence[str | Location] = ("/",),
        *,
        config: RouterConfig | None = None,
        hydration_data: HydrationState | None = None,
    ) -> None:
        self.history = MemoryHistory(initial_entries)
        self.router = Router(routes, self.history, config=config, hydration_data=hydration_data)
        self.states: list[NavigationState] = []
        self.router.subscribe(self.states.append)
        self._task_group: TaskGroup | None = None

    async def __aenter__(self) -> "Harness":
        await self.router.__aenter__()
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        task_group.cancel_scope.cancel()
        try:
            await task_group.__aexit__(exc_type, exc, tb)
        finally:
            await self.router.__aexit__(exc_type, exc, tb)

    async def start(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Run ``fn(*args)`` in the background and wait until it blocks."""
        if self._task_group is None:
            msg = "Harness is not running; use 'async with Harness(...)'."
            raise RuntimeError(msg)
        self._task_group.start_soon(fn, *args)
        await anyio.wait_all_tasks_blocked()

    async def settle(self) -> None:
        """Wait until every task (deferred settlements included) is blocked."""
        await anyio.wait_all_tasks_blocked()

    @property
    def state(self) -> NavigationState:
        return self.router.state

    @property
    def statuses(self) -> list[Status]:
        """``status`` of every published state, consecutive repeats collapsed."""
        collapsed: list[Status] = []
        for state in self.states:
            if not collapsed or collapsed[-1] is not state.status:
                collapsed.append(state.status)
        return collapsed
