"""Fetch coordination: which loaders/actions run, and how their results land.

The router decides *when* a round runs; this module decides *what* runs
in it and turns raw return values into ``DataResult`` variants:

- ``DataSuccess`` : a value (possibly holding deferred fields)
- ``DataRedirect``: a returned or raised ``Redirect``
- ``DataError``   : a returned or raised ``RouteError`` (application data)
- ``DataFault``   : any other exception (a programming error)

Rounds run every selected invocation concurrently in an anyio task
group.  A redirect short-circuits the round; aborting the round's
signal cancels whatever is still outstanding.
"""

import functools
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import anyio

from waypoint._internal.invoke import invoke
from waypoint._internal.types import Handler, Params
from waypoint.errors import ConfigurationError, RouteError, UnhandledRouteError
from waypoint.http.forms import FormData
from waypoint.http.location import Location
from waypoint.navigation.deferred import DeferredValue, split_deferred
from waypoint.navigation.signals import CancellationSignal
from waypoint.navigation.state import NavigationState, Submission
from waypoint.responses import Redirect
from waypoint.routing.route import RouteMatch

logger = logging.getLogger("waypoint.coordinator")


# ---------------------------------------------------------------------------
# Handler arguments
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LoaderArgs:
    """What a loader is called with."""

    params: Params
    location: Location
    signal: CancellationSignal


@dataclass(frozen=True, slots=True)
class ActionArgs:
    """What an action is called with."""

    params: Params
    location: Location
    form_data: FormData
    form_method: str
    signal: CancellationSignal


@dataclass(frozen=True, slots=True)
class RevalidateArgs:
    """What a route's ``revalidate`` predicate is called with.

    ``default_should_revalidate`` is the decision the router would make
    without the predicate; returning it unchanged keeps the default.
    """

    current_params: Params
    next_params: Params
    current_location: Location
    next_location: Location
    default_should_revalidate: bool
    form_method: str | None = None
    form_data: FormData | None = None
    action_result: Any = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DataSuccess:
    route_id: str
    data: Any
    deferred: dict[str, DeferredValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DataRedirect:
    route_id: str
    redirect: Redirect


@dataclass(frozen=True, slots=True)
class DataError:
    route_id: str
    error: RouteError


@dataclass(frozen=True, slots=True)
class DataFault:
    route_id: str
    exc: Exception


DataResult = DataSuccess | DataRedirect | DataError | DataFault

RoundCall = Callable[[CancellationSignal], Awaitable[DataResult]]


def normalize_result(route_id: str, value: Any) -> DataResult:
    """Classify a handler's return value (or caught marker exception)."""
    if isinstance(value, Redirect):
        return DataRedirect(route_id, value)
    if isinstance(value, RouteError):
        return DataError(route_id, value)
    return DataSuccess(route_id, value, deferred=split_deferred(value))


async def _call(route_id: str, handler: Handler, args: LoaderArgs | ActionArgs) -> DataResult:
    try:
        value = await invoke(handler, args)
    except (Redirect, RouteError) as exc:
        value = exc
    except Exception as exc:
        return DataFault(route_id, exc)
    return normalize_result(route_id, value)


async def call_loader(
    match: RouteMatch,
    location: Location,
    signal: CancellationSignal,
) -> DataResult:
    """Run *match*'s loader and normalize the outcome."""
    route = match.route
    if route.loader is None:
        msg = f"Route {route.id!r} has no loader."
        raise ConfigurationError(msg)
    args = LoaderArgs(params=dict(match.params), location=location, signal=signal)
    return await _call(route.id or "", route.loader, args)


async def call_action(
    match: RouteMatch,
    location: Location,
    submission: Submission,
    signal: CancellationSignal,
) -> DataResult:
    """Run *match*'s action and normalize the outcome."""
    route = match.route
    if route.action is None:
        msg = f"Route {route.id!r} has no action."
        raise ConfigurationError(msg)
    args = ActionArgs(
        params=dict(match.params),
        location=location,
        form_data=submission.form_data,
        form_method=submission.form_method,
        signal=signal,
    )
    return await _call(route.id or "", route.action, args)


def loader_calls(matches: Iterable[RouteMatch], location: Location) -> list[RoundCall]:
    """One round call per match, each awaiting that match's loader."""
    return [functools.partial(call_loader, match, location) for match in matches]


async def run_round(
    calls: Sequence[RoundCall],
    signal: CancellationSignal,
) -> list[DataResult | None] | None:
    """Run *calls* concurrently until all settle.

    Returns ``None`` when *signal* was aborted (the round was superseded);
    its results must not be committed.  Otherwise returns one result per
    call, in order.  A redirect cancels the calls still outstanding, whose
    slots are left as ``None``.
    """
    results: list[DataResult | None] = [None] * len(calls)
    round_signal = signal.child()

    async def run(index: int, call: RoundCall) -> None:
        result = await call(round_signal)
        results[index] = result
        if isinstance(result, DataRedirect):
            round_signal.abort("redirect")

    with anyio.CancelScope() as scope:
        remove = round_signal.add_callback(scope.cancel)
        try:
            async with anyio.create_task_group() as tg:
                for index, call in enumerate(calls):
                    tg.start_soon(run, index, call)
        finally:
            remove()

    if signal.aborted:
        logger.debug("Round cancelled (%s)", signal.reason)
        return None
    return results


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def find_action_match(matches: Sequence[RouteMatch], location: Location) -> RouteMatch:
    """The deepest match that declares an action.

    A trailing index match is skipped unless the search string carries a
    naked ``index`` parameter (``?index``): a form rendered by a layout
    submits to the layout, not to its index child.

    Raises ``ConfigurationError`` when no match declares an action.
    """
    candidates = list(matches)
    if candidates and candidates[-1].route.index and not location.search_params.has_naked("index"):
        candidates = candidates[:-1]
    for match in reversed(candidates):
        if match.route.has_action:
            return match
    msg = f"No route matching {location.pathname!r} declares an action to submit to."
    raise ConfigurationError(msg)


def should_load(
    state: NavigationState,
    match: RouteMatch,
    index: int,
    location: Location,
    *,
    revalidating: bool = False,
    initial: bool = False,
    submission: Submission | None = None,
    action_result: Any = None,
) -> bool:
    """Decide whether *match*'s loader runs in the upcoming round.

    Newly matched routes and routes without data always load.  For
    re-used routes the default is to load when the pathname, params or
    search changed, when the same href is requested again, or when the
    round revalidates after a mutation; the route's ``revalidate``
    predicate, if any, has the final word.
    """
    current = state.matches
    previous = current[index] if index < len(current) else None
    route_id = match.route.id
    if previous is None or previous.route.id != route_id:
        return True
    if route_id not in state.loader_data:
        return True
    if initial:
        return False

    default = (
        revalidating
        or previous.pathname != match.pathname
        or previous.params != match.params
        or location.search != state.location.search
        or location.path_and_search == state.location.path_and_search
    )
    predicate = match.route.revalidate
    if predicate is None:
        return default
    args = RevalidateArgs(
        current_params=dict(previous.params),
        next_params=dict(match.params),
        current_location=state.location,
        next_location=location,
        default_should_revalidate=default,
        form_method=submission.form_method if submission else None,
        form_data=submission.form_data if submission else None,
        action_result=action_result,
    )
    return bool(predicate(args))


def select_loaders(
    state: NavigationState,
    matches: Sequence[RouteMatch],
    location: Location,
    *,
    revalidating: bool = False,
    initial: bool = False,
    submission: Submission | None = None,
    action_result: Any = None,
) -> list[RouteMatch]:
    """The matches whose loaders run in the upcoming round, root first."""
    return [
        match
        for index, match in enumerate(matches)
        if match.route.has_loader
        and should_load(
            state,
            match,
            index,
            location,
            revalidating=revalidating,
            initial=initial,
            submission=submission,
            action_result=action_result,
        )
    ]


# ---------------------------------------------------------------------------
# Result processing
# ---------------------------------------------------------------------------

def find_boundary(matches: Sequence[RouteMatch], route_id: str, error: BaseException) -> str:
    """Id of the nearest route, *route_id* included, with an error boundary.

    Raises ``UnhandledRouteError`` when no route up the branch has one.
    """
    ids = [m.route.id for m in matches]
    stop = ids.index(route_id) + 1 if route_id in ids else len(matches)
    for match in reversed(matches[:stop]):
        if match.route.has_error_boundary:
            return match.route.id or ""
    raise UnhandledRouteError(route_id, error)


def find_redirect(results: Iterable[DataResult | None]) -> DataRedirect | None:
    """The redirect of the deepest route that produced one."""
    redirect: DataRedirect | None = None
    for result in results:
        if isinstance(result, DataRedirect):
            redirect = result
    return redirect


def find_fault(results: Iterable[DataResult | None]) -> DataFault | None:
    for result in results:
        if isinstance(result, DataFault):
            return result
    return None


@dataclass(slots=True)
class ProcessedRound:
    """Loader data, errors and deferred fields from one settled round."""

    loader_data: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, Any] | None = None
    deferred: dict[str, dict[str, DeferredValue]] = field(default_factory=dict)
    failed: set[str] = field(default_factory=set)


def process_loader_results(
    matches: Sequence[RouteMatch],
    results: Sequence[DataResult | None],
    *,
    pending_errors: Mapping[str, Any] | None = None,
) -> ProcessedRound:
    """Sort results into data and boundary-keyed errors.

    *pending_errors* (an action's error, already keyed by boundary) wins
    over loader errors landing on the same boundary.  Data errors never
    stop siblings: every result is processed.
    """
    processed = ProcessedRound()
    errors: dict[str, Any] = dict(pending_errors or {})
    for result in results:
        if isinstance(result, DataSuccess):
            processed.loader_data[result.route_id] = result.data
            if result.deferred:
                processed.deferred[result.route_id] = result.deferred
        elif isinstance(result, DataError):
            boundary = find_boundary(matches, result.route_id, result.error)
            errors.setdefault(boundary, result.error)
            processed.failed.add(result.route_id)
            logger.debug(
                "Loader for %r raised %r; rendering at %r",
                result.route_id, result.error, boundary,
            )
    processed.errors = errors or None
    return processed


def merge_loader_data(
    current: Mapping[str, Any],
    matches: Sequence[RouteMatch],
    loaded: Mapping[str, Any],
    reloaded: Iterable[str] = (),
) -> dict[str, Any]:
    """Loader data for *matches*: fresh values first, then re-used ones.

    Routes that left the branch lose their data; routes that were
    reloaded without producing data (they errored) lose it too.
    """
    dropped = set(reloaded)
    merged: dict[str, Any] = {}
    for match in matches:
        route_id = match.route.id or ""
        if route_id in loaded:
            merged[route_id] = loaded[route_id]
        elif route_id in current and route_id not in dropped:
            merged[route_id] = current[route_id]
    return merged
