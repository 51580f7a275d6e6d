"""Waypoint: client-side route matching and navigation state.

Match URLs against a nested route tree, then run loaders, actions and
fetchers as one cancellable state machine.

Basic usage::

    from waypoint import MemoryHistory, Route, Router

    routes = [
        Route(path="/", id="root", loader=load_root, error_boundary=True, children=[
            Route(index=True, id="home", loader=load_home),
            Route(path="users/:id", id="user", loader=load_user, action=save_user),
        ]),
    ]

    async with Router(routes, MemoryHistory(["/"])) as router:
        await router.initialize()
        await router.navigate("/users/42")
        router.state.loader_data["user"]
"""

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "DeferredValue",
    "FetcherState",
    "FormData",
    "History",
    "HydrationState",
    "Location",
    "MemoryHistory",
    "NavigationState",
    "NotFound",
    "Redirect",
    "RedirectLoopError",
    "Route",
    "RouteError",
    "RouteMatch",
    "RouteTree",
    "Router",
    "RouterConfig",
    "Status",
    "UnhandledRouteError",
    "WaypointError",
    "defer",
    "generate_path",
    "match_path",
    "redirect",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import waypoint`` light while providing a flat top-level API.
    """
    if name == "Router":
        from waypoint.navigation.router import Router

        return Router

    if name == "RouterConfig":
        from waypoint.config import RouterConfig

        return RouterConfig

    if name in ("Route", "RouteMatch"):
        from waypoint.routing import route as _route

        return getattr(_route, name)

    if name == "RouteTree":
        from waypoint.routing.matcher import RouteTree

        return RouteTree

    if name in ("generate_path", "match_path"):
        from waypoint.routing import pattern as _pattern

        return getattr(_pattern, name)

    if name in ("History", "MemoryHistory"):
        from waypoint import history as _history

        return getattr(_history, name)

    if name == "Location":
        from waypoint.http.location import Location

        return Location

    if name == "FormData":
        from waypoint.http.forms import FormData

        return FormData

    if name in ("Redirect", "redirect"):
        from waypoint import responses as _responses

        return getattr(_responses, name)

    if name in ("DeferredValue", "defer"):
        from waypoint.navigation import deferred as _deferred

        return getattr(_deferred, name)

    if name in ("FetcherState", "HydrationState", "NavigationState", "Status"):
        from waypoint.navigation import state as _state

        return getattr(_state, name)

    if name in (
        "ConfigurationError",
        "NotFound",
        "RedirectLoopError",
        "RouteError",
        "UnhandledRouteError",
        "WaypointError",
    ):
        from waypoint import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
