"""The navigation state machine.

A ``Router`` owns one authoritative ``NavigationState`` and the protocol
for replacing it:

    idle ──GET──────────────> loading ──settled──> idle
    any  ──mutating submit──> submitting ──action settled──> loading ──> idle
    any  ──redirect─────────> loading (new target, history "replace")

Every intent takes a new sequence number and aborts the signal of the
one before it.  A round's results are committed only if its sequence is
still the latest when it settles, so the last *issued* navigation wins,
not the last to finish.

Usage::

    history = MemoryHistory(["/"])
    async with Router(routes, history) as router:
        unsubscribe = router.subscribe(print)
        await router.navigate("/users/42")
        await router.submit("/users/42", {"name": "Ada"})
        key = await router.fetch("user", "/users/42")
"""

import dataclasses
import functools
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import anyio
from anyio.abc import TaskGroup

from waypoint._internal.types import Listener
from waypoint.config import RouterConfig
from waypoint.errors import ConfigurationError, NotFound, RedirectLoopError, RouteError
from waypoint.history import History
from waypoint.http.forms import FormData
from waypoint.http.location import Location, create_location
from waypoint.navigation.coordinator import (
    DataError,
    DataFault,
    DataRedirect,
    DataResult,
    call_action,
    call_loader,
    find_action_match,
    find_boundary,
    find_fault,
    find_redirect,
    loader_calls,
    merge_loader_data,
    process_loader_results,
    run_round,
    select_loaders,
)
from waypoint.navigation.deferred import DeferredChannel, DeferredValue, discard_all
from waypoint.navigation.fetchers import FetcherRegistry
from waypoint.navigation.signals import CancellationSignal
from waypoint.navigation.state import (
    FetcherState,
    HistoryAction,
    HydrationState,
    Navigation,
    NavigationKind,
    NavigationState,
    Status,
    Submission,
)
from waypoint.routing.matcher import RouteTree
from waypoint.routing.route import Route, RouteMatch

logger = logging.getLogger("waypoint.router")


@dataclass(frozen=True, slots=True)
class _ActionOutcome:
    """A settled action, committed together with the loaders that follow it."""

    route_id: str
    data: Any
    errors: dict[str, Any] | None
    result: Any


def _is_hash_change_only(a: Location, b: Location) -> bool:
    return a.pathname == b.pathname and a.search == b.search and a.hash != b.hash


def _discard_results(results: Sequence[DataResult | None] | None) -> None:
    for result in results or ():
        deferred = getattr(result, "deferred", None)
        if deferred:
            discard_all(deferred)


class Router:
    """Client-side navigation engine over a ``RouteTree`` and a ``History``.

    Enter the router (``async with router:``) before using deferred
    values, history POP navigations, or fetcher revalidation: those run in
    the router's own task group.  Plain ``navigate()``/``submit()`` calls
    work without it.
    """

    __slots__ = (
        "_deferred",
        "_fetchers",
        "_listeners",
        "_pending",
        "_revalidating",
        "_sequence",
        "_stale",
        "_state",
        "_task_group",
        "_unlisten",
        "config",
        "history",
        "tree",
    )

    def __init__(
        self,
        routes: RouteTree | Sequence[Route | Mapping[str, Any]],
        history: History,
        *,
        config: RouterConfig | None = None,
        hydration_data: HydrationState | None = None,
    ) -> None:
        self.config = config or RouterConfig()
        self.tree = routes if isinstance(routes, RouteTree) else RouteTree(routes, config=self.config)
        self.history = history
        self._listeners: list[Listener] = []
        self._sequence = 0
        self._pending: CancellationSignal | None = None
        self._stale = False
        self._revalidating = False
        self._task_group: TaskGroup | None = None
        self._unlisten: Callable[[], None] | None = None
        self._fetchers = FetcherRegistry(self.config.fetcher_key_prefix)
        self._deferred = DeferredChannel(self._spawn_guarded)
        self._state = self._initial_state(history.current_location(), hydration_data or HydrationState())

    def _initial_state(self, location: Location, hydration: HydrationState) -> NavigationState:
        matches = self.tree.match(location.pathname)
        errors = dict(hydration.errors) if hydration.errors else None
        if not matches:
            matches = self.tree.not_found_branch()
            errors = {self.tree.root.id or "": NotFound(f"No route matches {location.pathname!r}")}
        return NavigationState(
            location=location,
            matches=matches,
            loader_data=merge_loader_data(hydration.loader_data, matches, {}),
            action_data=hydration.action_data,
            errors=errors,
        )

    # -- Lifecycle --

    async def __aenter__(self) -> "Router":
        if self._task_group is not None:
            msg = "Router is already running."
            raise RuntimeError(msg)
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        self._unlisten = self.history.listen(self._on_history_change)
        logger.debug("Router started at %s", self._state.location.href)
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool | None:
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        if self._pending is not None:
            self._pending.abort("closed")
            self._pending = None
        self._deferred.cancel_all()
        self._fetchers.abort_all()
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        task_group.cancel_scope.cancel()
        logger.debug("Router stopped")
        return await task_group.__aexit__(exc_type, exc, tb)

    @property
    def running(self) -> bool:
        return self._task_group is not None

    def _spawn(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
        if self._task_group is None:
            msg = "Router is not running; enter it with 'async with router:' first."
            raise RuntimeError(msg)
        self._task_group.start_soon(fn, *args)

    def _spawn_guarded(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Spawn background work whose failures are logged, not fatal to the group."""
        self._spawn(self._guarded, fn, args)

    async def _guarded(self, fn: Callable[..., Awaitable[Any]], args: tuple[Any, ...]) -> None:
        try:
            await fn(*args)
        except Exception:
            logger.exception("Background task %s failed", getattr(fn, "__name__", fn))

    def _on_history_change(self, location: Location) -> None:
        self._spawn_guarded(self._start_navigation, HistoryAction.POP, location)

    # -- State --

    @property
    def state(self) -> NavigationState:
        return self._state

    def get_state(self) -> NavigationState:
        """Synchronous snapshot of the current state."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every new state; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: NavigationState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _update(self, **changes: Any) -> None:
        self._publish(dataclasses.replace(self._state, **changes))

    # -- Sequencing --

    def _begin(self) -> tuple[int, CancellationSignal]:
        """Supersede whatever is in flight and claim a new sequence number.

        A superseded round that was reloading stale data hands the
        staleness on, so the next round reloads everything instead.
        """
        if self._pending is not None:
            self._pending.abort("superseded")
            self._carry_stale()
        self._sequence += 1
        signal = CancellationSignal()
        self._pending = signal
        return self._sequence, signal

    def _is_current(self, seq: int) -> bool:
        return seq == self._sequence

    def _end(self, signal: CancellationSignal) -> None:
        if self._pending is signal:
            self._pending = None
            self._carry_stale()

    def _carry_stale(self) -> None:
        # Set while a revalidating round is in flight; cleared on commit
        if self._revalidating:
            self._revalidating = False
            self._stale = True

    # -- Public intents --

    async def initialize(self) -> None:
        """Load data for the current location's routes that have none yet."""
        await self._start_navigation(HistoryAction.POP, self._state.location, initial=True)

    async def navigate(
        self,
        to: "str | Location | int",
        *,
        replace: bool = False,
        state: Any = None,
    ) -> None:
        """Navigate to *to*; an ``int`` moves through history instead.

        Returns once the navigation committed, was redirected to its final
        target, or was superseded by a later intent.
        """
        if isinstance(to, int):
            self.history.go(to)
            return
        location = create_location(to, current=self._state.location, state=state)
        action = HistoryAction.REPLACE if replace else HistoryAction.PUSH
        await self._start_navigation(action, location)

    async def submit(
        self,
        to: "str | Location",
        form_data: Any,
        *,
        method: str = "post",
        replace: bool = False,
        state: Any = None,
    ) -> None:
        """Submit *form_data* to *to*.

        Mutating methods run the action of the deepest matched route that
        declares one, then revalidate loaders.  ``method="get"`` encodes the
        form into the search string and only runs loaders.

        Raises ``ConfigurationError`` if a mutating submission targets a
        branch without an action.
        """
        submission = Submission(method.lower(), FormData.coerce(form_data))
        location = create_location(to, current=self._state.location, state=state)
        if submission.is_mutation:
            matches = self.tree.match(location.pathname)
            if matches:
                find_action_match(matches, location)
        else:
            location = location.with_search(submission.form_data.urlencode())
        action = HistoryAction.REPLACE if replace else HistoryAction.PUSH
        await self._start_navigation(action, location, submission=submission)

    async def revalidate(self) -> None:
        """Re-run the loaders of the current matches without navigating.

        While a navigation is in flight the data is only marked stale; the
        navigation reloads everything, or revalidates once it commits.
        """
        if self._pending is not None:
            logger.debug("Revalidation requested mid-navigation; marking data stale")
            self._stale = True
            return
        seq, signal = self._begin()
        try:
            await self._revalidate(seq, signal)
        except Exception:
            self._settle_failed(seq)
            raise
        finally:
            self._end(signal)

    # -- Navigation --

    async def _start_navigation(
        self,
        history_action: HistoryAction,
        location: Location,
        *,
        submission: Submission | None = None,
        override: Navigation | None = None,
        redirects: int = 0,
        initial: bool = False,
    ) -> None:
        seq, signal = self._begin()
        logger.debug("Navigation %d: %s %s", seq, history_action.value, location.href)
        try:
            await self._run_navigation(
                seq,
                signal,
                history_action,
                location,
                submission=submission,
                override=override,
                redirects=redirects,
                initial=initial,
            )
        except Exception:
            self._settle_failed(seq)
            raise
        finally:
            self._end(signal)

    def _settle_failed(self, seq: int) -> None:
        """Drop the in-flight markers of a round that raised instead of committing."""
        if not self._is_current(seq):
            return
        state = self._state
        if state.status is Status.IDLE and state.revalidation is Status.IDLE:
            return
        logger.debug("Round %d failed; back to idle at %s", seq, state.location.href)
        self._update(status=Status.IDLE, navigation=None, revalidation=Status.IDLE)

    async def _run_navigation(
        self,
        seq: int,
        signal: CancellationSignal,
        history_action: HistoryAction,
        location: Location,
        *,
        submission: Submission | None,
        override: Navigation | None,
        redirects: int,
        initial: bool,
    ) -> None:
        matches = self.tree.match(location.pathname)
        if not matches:
            root_id = self.tree.root.id or ""
            self._complete(
                seq,
                history_action,
                location,
                matches=self.tree.not_found_branch(),
                errors={root_id: NotFound(f"No route matches {location.pathname!r}")},
            )
            return

        if (
            submission is None
            and override is None
            and not initial
            and not self.config.hash_change_loads
            and _is_hash_change_only(self._state.location, location)
        ):
            self._complete(
                seq,
                history_action,
                location,
                matches=matches,
                errors=self._state.errors,
                action_data=self._state.action_data,
            )
            return

        action: _ActionOutcome | None = None
        if submission is not None and submission.is_mutation:
            action = await self._handle_action(
                seq, signal, location, submission, matches, redirects
            )
            if action is None:
                return

        await self._handle_loaders(
            seq,
            signal,
            history_action,
            location,
            matches,
            submission=submission,
            override=override,
            action=action,
            redirects=redirects,
            initial=initial,
        )

    async def _handle_action(
        self,
        seq: int,
        signal: CancellationSignal,
        location: Location,
        submission: Submission,
        matches: tuple[RouteMatch, ...],
        redirects: int,
    ) -> _ActionOutcome | None:
        action_match = find_action_match(matches, location)
        route_id = action_match.route.id or ""
        self._update(
            status=Status.SUBMITTING,
            navigation=Navigation(NavigationKind.ACTION_SUBMISSION, location, submission),
        )

        results = await run_round(
            [functools.partial(call_action, action_match, location, submission)], signal
        )
        if results is None or not self._is_current(seq):
            logger.debug("Action for %r superseded", route_id)
            return None

        result = results[0]
        if isinstance(result, DataFault):
            raise self._fault(result)
        if isinstance(result, DataRedirect):
            await self._follow_redirect(result, submission, redirects)
            return None
        if isinstance(result, DataError):
            boundary = find_boundary(matches, route_id, result.error)
            return _ActionOutcome(route_id, None, {boundary: result.error}, result.error)
        assert result is not None
        return _ActionOutcome(route_id, result.data, None, result.data)

    def _loading_navigation(
        self,
        location: Location,
        submission: Submission | None,
        action: _ActionOutcome | None,
    ) -> Navigation:
        if action is not None:
            return Navigation(NavigationKind.ACTION_RELOAD, location, submission)
        if submission is not None:
            return Navigation(NavigationKind.LOADER_SUBMISSION, location, submission)
        return Navigation(NavigationKind.LOAD, location)

    async def _handle_loaders(
        self,
        seq: int,
        signal: CancellationSignal,
        history_action: HistoryAction,
        location: Location,
        matches: tuple[RouteMatch, ...],
        *,
        submission: Submission | None,
        override: Navigation | None,
        action: _ActionOutcome | None,
        redirects: int,
        initial: bool,
    ) -> None:
        current = self._state
        navigation = override or self._loading_navigation(location, submission, action)
        revalidating = (
            action is not None
            or navigation.kind is NavigationKind.SUBMISSION_REDIRECT
            or self._stale
        )
        self._stale = False
        self._revalidating = revalidating

        to_load = select_loaders(
            current,
            matches,
            location,
            revalidating=revalidating,
            initial=initial,
            submission=submission,
            action_result=action.result if action else None,
        )
        action_data = action.data if action else (current.action_data if initial else None)
        pending_errors = action.errors if action else (current.errors if initial else None)

        if not to_load:
            self._complete(
                seq,
                history_action,
                location,
                matches=matches,
                errors=pending_errors,
                action_data=action_data,
            )
            return

        reloading = [m.route.id or "" for m in to_load]
        kept = {m.route.id for m in matches}
        leaving = [m.route.id or "" for m in current.matches if m.route.id not in kept]
        self._deferred.cancel(*reloading, *leaving)
        self._update(status=navigation.status, navigation=navigation)

        results = await run_round(loader_calls(to_load, location), signal)
        if results is None or not self._is_current(seq):
            logger.debug("Navigation %d superseded; dropping its loader results", seq)
            _discard_results(results)
            return

        fault = find_fault(results)
        if fault is not None:
            _discard_results(results)
            raise self._fault(fault)

        redirect = find_redirect(results)
        if redirect is not None:
            _discard_results(results)
            await self._follow_redirect(redirect, submission, redirects)
            return

        processed = process_loader_results(matches, results, pending_errors=pending_errors)
        self._complete(
            seq,
            history_action,
            location,
            matches=matches,
            loaded=processed.loader_data,
            reloaded=reloading,
            errors=processed.errors,
            action_data=action_data,
            deferred=processed.deferred,
        )

    async def _follow_redirect(
        self,
        result: DataRedirect,
        submission: Submission | None,
        redirects: int,
    ) -> None:
        hops = redirects + 1
        target = create_location(result.redirect.location, current=self._state.location)
        if hops > self.config.max_redirects:
            logger.error(
                "Redirect loop: %d hops, last from %r to %s", hops, result.route_id, target.href
            )
            raise RedirectLoopError(target.href, hops)
        kind = (
            NavigationKind.SUBMISSION_REDIRECT if submission is not None else NavigationKind.REDIRECT
        )
        logger.debug("Route %r redirected to %s (hop %d)", result.route_id, target.href, hops)
        await self._start_navigation(
            HistoryAction.REPLACE,
            target,
            override=Navigation(kind, target, submission),
            redirects=hops,
        )

    def _complete(
        self,
        seq: int,
        history_action: HistoryAction,
        location: Location,
        *,
        matches: tuple[RouteMatch, ...],
        loaded: Mapping[str, Any] | None = None,
        reloaded: Sequence[str] = (),
        errors: Mapping[str, Any] | None = None,
        action_data: Any = None,
        deferred: Mapping[str, dict[str, DeferredValue]] | None = None,
    ) -> None:
        """Publish the committed navigation and sync the history."""
        if not self._is_current(seq):
            logger.debug("Navigation %d is stale; not committing %s", seq, location.href)
            for fields in (deferred or {}).values():
                discard_all(fields)
            return

        self._ensure_streaming((deferred or {}).values())
        self._revalidating = False
        current = self._state
        loaded = loaded or {}
        kept = {m.route.id for m in matches}
        self._deferred.cancel(
            *(rid for rid in current.loader_data if rid not in kept or rid in loaded)
        )
        self._publish(
            dataclasses.replace(
                current,
                status=Status.IDLE,
                navigation=None,
                revalidation=Status.IDLE,
                history_action=history_action,
                location=location,
                matches=matches,
                loader_data=merge_loader_data(current.loader_data, matches, loaded, reloaded),
                action_data=action_data,
                errors=dict(errors) if errors else None,
                fetchers=self._fetchers.snapshot(),
            )
        )
        self._track_deferred(deferred)
        logger.debug("Navigation %d committed %s", seq, location.href)

        if history_action is HistoryAction.PUSH:
            self.history.navigate(location)
        elif history_action is HistoryAction.REPLACE:
            self.history.navigate(location, replace=True)

        if self._stale and self.running:
            self._spawn_guarded(self.revalidate)

    # -- Revalidation --

    async def _revalidate(self, seq: int, signal: CancellationSignal) -> None:
        state = self._state
        self._stale = False
        to_load = select_loaders(state, state.matches, state.location, revalidating=True)
        if not to_load:
            return
        self._revalidating = True

        reloading = [m.route.id or "" for m in to_load]
        self._deferred.cancel(*reloading)
        self._update(revalidation=Status.LOADING)

        results = await run_round(loader_calls(to_load, state.location), signal)
        if results is None or not self._is_current(seq):
            logger.debug("Revalidation %d superseded", seq)
            _discard_results(results)
            return

        fault = find_fault(results)
        if fault is not None:
            _discard_results(results)
            raise self._fault(fault)

        redirect = find_redirect(results)
        if redirect is not None:
            _discard_results(results)
            self._update(revalidation=Status.IDLE)
            self._end(signal)
            await self._follow_redirect(redirect, None, 0)
            return

        processed = process_loader_results(state.matches, results)
        self._ensure_streaming(processed.deferred.values())
        self._revalidating = False
        current = self._state
        self._publish(
            dataclasses.replace(
                current,
                loader_data=merge_loader_data(
                    current.loader_data, current.matches, processed.loader_data, reloading
                ),
                errors=processed.errors,
                revalidation=Status.IDLE,
            )
        )
        self._track_deferred(processed.deferred)
        logger.debug("Revalidation %d committed", seq)

        if self._stale and self.running:
            self._spawn_guarded(self.revalidate)

    # -- Deferred --

    def _ensure_streaming(self, groups: Iterable[Mapping[str, DeferredValue]]) -> None:
        """Deferred fields settle in the router's task group; refuse them when stopped."""
        pending = [fields for fields in groups if fields]
        if pending and not self.running:
            for fields in pending:
                discard_all(fields)
            msg = "Deferred loader data needs a running router; enter it with 'async with router:'."
            raise RuntimeError(msg)

    def _track_deferred(self, deferred: Mapping[str, dict[str, DeferredValue]] | None) -> None:
        for route_id, fields in (deferred or {}).items():
            self._deferred.track(route_id, fields, functools.partial(self._apply_deferred, route_id))

    def _apply_deferred(self, route_id: str, key: str, settled: DeferredValue) -> None:
        state = self._state
        data = state.loader_data.get(route_id)
        if not isinstance(data, Mapping) or key not in data:
            return
        loader_data = {**state.loader_data, route_id: {**data, key: settled}}
        self._publish(dataclasses.replace(state, loader_data=loader_data))

    # -- Fetchers --

    def get_fetcher(self, key: str) -> FetcherState:
        """The state of fetcher *key* (idle and empty if unknown)."""
        return self._fetchers.get(key)

    def acquire_fetcher(self, key: str) -> FetcherState:
        """Subscribe to fetcher *key*, creating it if needed."""
        created = key not in self._fetchers
        state = self._fetchers.acquire(key)
        if created:
            self._update(fetchers=self._fetchers.snapshot())
        return state

    def release_fetcher(self, key: str) -> None:
        """Unsubscribe from fetcher *key*; idle, unwatched fetchers are dropped."""
        if self._fetchers.release(key):
            self._deferred.cancel(("fetcher", key))
            self._update(fetchers=self._fetchers.snapshot())

    def delete_fetcher(self, key: str) -> None:
        """Abort fetcher *key* if running and drop it."""
        self._fetchers.delete(key)
        self._deferred.cancel(("fetcher", key))
        self._update(fetchers=self._fetchers.snapshot())

    def _set_fetcher(self, state: FetcherState) -> None:
        self._fetchers.update(state.key, state)
        self._update(fetchers=self._fetchers.snapshot())

    async def fetch(
        self,
        route_id: str | None,
        to: "str | Location",
        *,
        key: str | None = None,
        form_data: Any = None,
        method: str = "get",
    ) -> str:
        """Run one route's loader (or action) for *to* without navigating.

        *route_id* picks the route within the branch matched by *to*;
        ``None`` means the deepest match (the action match for mutating
        methods).  Returns the fetcher key once the fetcher settled or was
        superseded.  Only ``state.fetchers[key]`` changes; ``location``
        and ``matches`` never do.
        """
        key = key or self._fetchers.next_key()
        method = method.lower()
        location = create_location(to, current=self._state.location)
        submission: Submission | None = None
        if form_data is not None or method != "get":
            submission = Submission(method, FormData.coerce(form_data))
            if not submission.is_mutation:
                location = location.with_search(submission.form_data.urlencode())
        mutation = submission is not None and submission.is_mutation

        matches = self.tree.match(location.pathname)
        if not matches:
            self._fetcher_error(
                key, route_id, self.tree.not_found_branch(),
                NotFound(f"No route matches {location.pathname!r}"),
            )
            return key

        match = self._fetch_target(matches, route_id, location, mutation)
        signal = self._fetchers.begin(key)
        try:
            await self._run_fetcher(key, signal, match, matches, location, submission)
        finally:
            if self._fetchers.finish(key, signal):
                self._deferred.cancel(("fetcher", key))
                self._update(fetchers=self._fetchers.snapshot())
        return key

    def _fetch_target(
        self,
        matches: tuple[RouteMatch, ...],
        route_id: str | None,
        location: Location,
        mutation: bool,
    ) -> RouteMatch:
        if route_id is None:
            match = find_action_match(matches, location) if mutation else matches[-1]
        else:
            found = [m for m in matches if m.route.id == route_id]
            if not found:
                msg = f"Route {route_id!r} is not part of the branch matched by {location.pathname!r}."
                raise ConfigurationError(msg)
            match = found[0]
        if mutation and not match.route.has_action:
            msg = f"Route {match.route.id!r} has no action to submit the fetcher to."
            raise ConfigurationError(msg)
        if not mutation and not match.route.has_loader:
            msg = f"Route {match.route.id!r} has no loader for the fetcher to call."
            raise ConfigurationError(msg)
        return match

    async def _run_fetcher(
        self,
        key: str,
        signal: CancellationSignal,
        match: RouteMatch,
        matches: tuple[RouteMatch, ...],
        location: Location,
        submission: Submission | None,
    ) -> None:
        route_id = match.route.id or ""
        mutation = submission is not None and submission.is_mutation
        previous = self._fetchers.get(key)
        self._deferred.cancel(("fetcher", key))
        self._set_fetcher(
            FetcherState(
                key=key,
                status=Status.SUBMITTING if mutation else Status.LOADING,
                data=previous.data,
                form_data=submission.form_data if submission else None,
                form_method=submission.form_method if submission else None,
                route_id=route_id,
            )
        )

        if mutation:
            assert submission is not None
            call = functools.partial(call_action, match, location, submission)
        else:
            call = functools.partial(call_loader, match, location)
        results = await run_round([call], signal)
        if results is None or not self._fetchers.is_current(key, signal):
            logger.debug("Fetcher %r cancelled", key)
            _discard_results(results)
            return

        result = results[0]
        if isinstance(result, DataFault):
            self._set_fetcher(FetcherState(key=key, data=previous.data, route_id=route_id))
            raise self._fault(result)
        if isinstance(result, DataRedirect):
            self._set_fetcher(FetcherState(key=key, data=previous.data, route_id=route_id))
            await self._follow_redirect(result, submission if mutation else None, 0)
            return
        if isinstance(result, DataError):
            self._set_fetcher(FetcherState(key=key, data=previous.data, route_id=route_id))
            self._fetcher_error(key, route_id, matches, result.error)
            return
        assert result is not None

        if mutation and self.config.revalidate_on_fetcher_submission:
            self._set_fetcher(
                FetcherState(
                    key=key,
                    status=Status.LOADING,
                    data=result.data,
                    form_data=submission.form_data if submission else None,
                    form_method=submission.form_method if submission else None,
                    route_id=route_id,
                )
            )
            await self.revalidate()
            if not self._fetchers.is_current(key, signal):
                discard_all(result.deferred)
                return

        self._set_fetcher(FetcherState(key=key, data=result.data, route_id=route_id))
        if result.deferred:
            self._ensure_streaming([result.deferred])
            self._deferred.track(
                ("fetcher", key),
                result.deferred,
                functools.partial(self._apply_fetcher_deferred, key),
            )

    def _fetcher_error(
        self,
        key: str,
        route_id: str | None,
        matches: tuple[RouteMatch, ...],
        error: RouteError,
    ) -> None:
        """Attach a fetcher's data error to a boundary of the current branch."""
        current = self._state.matches
        if route_id is None:
            boundary = self.tree.root.id or ""
        elif any(m.route.id == route_id for m in current):
            boundary = find_boundary(current, route_id, error)
        else:
            boundary = find_boundary(matches, route_id, error)
        logger.debug("Fetcher %r raised %r; rendering at %r", key, error, boundary)
        self._update(errors={**(self._state.errors or {}), boundary: error})

    def _apply_fetcher_deferred(self, key: str, field: str, settled: DeferredValue) -> None:
        if key not in self._fetchers:
            return
        fetcher = self._fetchers.get(key)
        if not isinstance(fetcher.data, Mapping) or field not in fetcher.data:
            return
        self._set_fetcher(dataclasses.replace(fetcher, data={**fetcher.data, field: settled}))

    # -- Faults --

    def _fault(self, result: DataFault) -> Exception:
        logger.error(
            "Route %r raised an unexpected error",
            result.route_id,
            exc_info=(type(result.exc), result.exc, result.exc.__traceback__),
        )
        return result.exc
