"""Waypoint exception hierarchy.

Shared across the route tree, the coordinator, and the router so every
module raises and catches the same types.

Two families live here:

- ``WaypointError`` and its subclasses are *faults*: configuration
  mistakes, redirect loops, data errors nobody can render.  They are
  raised to the caller and never stored in ``NavigationState``.
- ``RouteError`` is an application-level *data error*.  Loaders and
  actions raise (or return) it; the router stores it under
  ``state.errors`` at the nearest error boundary.
"""

from dataclasses import dataclass
from typing import Any


class WaypointError(Exception):
    """Base for all waypoint-specific faults."""


class ConfigurationError(WaypointError):
    """Raised when the route tree or router configuration is invalid.

    Typically raised by ``RouteTree`` at registration time, before any
    navigation runs.
    """


class InvalidPatternError(ConfigurationError):
    """A route path pattern could not be parsed."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid route pattern {pattern!r}: {reason}")


class RedirectLoopError(WaypointError):
    """A chain of loader/action redirects exceeded ``max_redirects``."""

    def __init__(self, location: str, hops: int) -> None:
        self.location = location
        self.hops = hops
        super().__init__(
            f"Too many redirects ({hops}) while navigating to {location!r}"
        )


class UnhandledRouteError(WaypointError):
    """A data error was raised by a route with no error boundary above it."""

    def __init__(self, route_id: str, error: BaseException) -> None:
        self.route_id = route_id
        self.error = error
        super().__init__(
            f"Route {route_id!r} raised {error!r} and no route in its branch "
            "declares an error boundary"
        )


class DeferredNotSettled(WaypointError):  # noqa: N818
    """``DeferredValue.unwrap()`` was called before the value settled."""


class MissingParamError(KeyError):
    """``generate_path()`` was called without a required parameter."""

    def __init__(self, pattern: str, name: str) -> None:
        self.pattern = pattern
        self.name = name
        super().__init__(f"Missing parameter {name!r} for pattern {pattern!r}")

    def __str__(self) -> str:
        return str(self.args[0])


@dataclass(frozen=True, slots=True)
class RouteError(Exception):
    """An application-level error value raised or returned by a loader/action.

    Stored in ``state.errors`` keyed by the id of the route whose error
    boundary renders it.  Equality is by value, so tests can compare
    ``state.errors`` against freshly built instances.
    """

    status: int = 500
    detail: str = ""
    data: Any = None

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(RouteError):  # noqa: N818
    """404: no route matched the target pathname."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)
