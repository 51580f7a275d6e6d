"""Route, PathSegment and RouteMatch frozen dataclasses."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from waypoint._internal.types import Handler, Params, RevalidatePredicate
from waypoint.errors import ConfigurationError


class SegmentKind(Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    SPLAT = "splat"


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:    ``users``  (kind=STATIC, value="users")
    Dynamic:   ``:id``    (kind=DYNAMIC, param_name="id")
    Optional:  ``:lang?`` (kind=DYNAMIC, param_name="lang", optional=True)
               ``en?``    (kind=STATIC, value="en", optional=True)
    Splat:     ``*``      (kind=SPLAT, param_name="*")
    """

    value: str
    kind: SegmentKind = SegmentKind.STATIC
    param_name: str | None = None
    optional: bool = False


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route declaration.

    Capabilities are optional fields, not subclasses: a route *may* have a
    loader, an action, a revalidation predicate and an error boundary, and
    the coordinator only ever checks for their presence.

    ``path=None`` declares a pathless layout route that consumes nothing.
    ``index=True`` declares a terminal route that only matches when
    nothing of the pathname is left at its depth.
    """

    path: str | None = None
    id: str | None = None
    index: bool = False
    children: tuple["Route", ...] = ()
    loader: Handler | None = field(default=None, compare=False)
    action: Handler | None = field(default=None, compare=False)
    revalidate: RevalidatePredicate | None = field(default=None, compare=False)
    error_boundary: bool = False
    case_sensitive: bool | None = None
    handle: Any = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    @property
    def has_loader(self) -> bool:
        return self.loader is not None

    @property
    def has_action(self) -> bool:
        return self.action is not None

    @property
    def has_error_boundary(self) -> bool:
        return self.error_boundary

    def __repr__(self) -> str:
        return f"Route(id={self.id!r}, path={self.path!r}, index={self.index!r})"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """One entry of a matched branch.

    ``params`` holds every parameter captured from the root down to this
    route; ``pathname`` is the part of the URL consumed so far.
    """

    route: Route
    params: Params
    pathname: str


_DECLARATION_KEYS = frozenset(
    {
        "path",
        "id",
        "index",
        "children",
        "loader",
        "action",
        "revalidate",
        "error_boundary",
        "case_sensitive",
        "handle",
    }
)


def create_route(declaration: "Route | Mapping[str, Any]") -> Route:
    """Build a ``Route`` from a plain dict declaration (``Route`` passes through).

    Usage::

        create_route({
            "path": "/users",
            "loader": load_users,
            "children": [{"path": ":id", "loader": load_user}],
        })
    """
    if isinstance(declaration, Route):
        return declaration
    if not isinstance(declaration, Mapping):
        msg = f"Route declarations must be Route objects or mappings, got {declaration!r}"
        raise ConfigurationError(msg)
    unknown = sorted(set(declaration) - _DECLARATION_KEYS)
    if unknown:
        msg = f"Unknown route declaration keys: {', '.join(unknown)}"
        raise ConfigurationError(msg)
    kwargs = dict(declaration)
    kwargs["children"] = create_routes(kwargs.get("children") or ())
    return Route(**kwargs)


def create_routes(declarations: Sequence["Route | Mapping[str, Any]"]) -> tuple[Route, ...]:
    """Build a tuple of routes from declarations (see ``create_route``)."""
    return tuple(create_route(d) for d in declarations)
