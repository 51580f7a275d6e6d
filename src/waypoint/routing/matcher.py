"""Route tree registration and nested branch matching.

Routes are registered once and validated as a tree; matching is then a
pure, synchronous depth-first walk that returns the single best branch
for a pathname.
"""

import dataclasses
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from waypoint.config import RouterConfig
from waypoint.errors import ConfigurationError
from waypoint.routing.pattern import INDEX_BONUS, CompiledPattern, compile_pattern, to_match_path
from waypoint.routing.route import Route, RouteMatch, create_routes

logger = logging.getLogger("waypoint.routing")


@dataclass(frozen=True, slots=True)
class _Candidate:
    """A fully matched sub-branch and its rank among siblings.

    ``rank`` is ``(head score, consumed depth, cumulative score)``:
    the head score is the node's own specificity (pathless and empty
    patterns borrow their selected child's), depth counts the matches
    that consumed part of the path, and the cumulative score sums every
    node's own score along the sub-branch.
    """

    matches: tuple[RouteMatch, ...]
    rank: tuple[int, int, int]


class RouteTree:
    """An immutable, validated route tree.

    Usage::

        tree = RouteTree([
            Route("/", id="root", error_boundary=True, children=(
                Route(index=True, id="home"),
                Route("users/:id", id="user", loader=load_user),
            )),
        ])
        tree.match("/users/42")
        # (RouteMatch(root, {}, "/"), RouteMatch(user, {"id": "42"}, "/users/42"))

    Registration raises ``ConfigurationError`` for duplicate ids, a route
    object used twice, parameter names repeated along a branch, index
    routes with children or a path, and patterns that do not compile.
    """

    __slots__ = ("_by_id", "_compiled", "_config", "_parents", "_routes")

    def __init__(
        self,
        routes: Sequence[Route | Mapping[str, Any]],
        *,
        config: RouterConfig | None = None,
    ) -> None:
        self._config = config or RouterConfig()
        declared = create_routes(routes)
        if not declared:
            msg = "A route tree needs at least one route."
            raise ConfigurationError(msg)

        self._check_ownership(declared, set())
        self._routes = self._assign_ids(declared, "")
        self._by_id: dict[str, Route] = {}
        self._parents: dict[str, str | None] = {}
        self._compiled: dict[str, CompiledPattern | None] = {}
        self._register(self._routes, None, frozenset())
        logger.debug("Registered %d routes", len(self._by_id))

    # -- Registration --

    def _check_ownership(self, routes: tuple[Route, ...], seen: set[int]) -> None:
        """Reject route objects that appear more than once in the tree."""
        for route in routes:
            if id(route) in seen:
                msg = f"{route!r} appears more than once in the route tree."
                raise ConfigurationError(msg)
            seen.add(id(route))
            self._check_ownership(route.children, seen)

    def _assign_ids(self, routes: tuple[Route, ...], tree_path: str) -> tuple[Route, ...]:
        """Give every id-less route a positional id such as ``"0-1"``."""
        result: list[Route] = []
        for i, route in enumerate(routes):
            position = f"{tree_path}-{i}" if tree_path else str(i)
            children = self._assign_ids(route.children, position)
            route_id = route.id if route.id is not None else position
            if route_id != route.id or children != route.children:
                route = dataclasses.replace(route, id=route_id, children=children)
            result.append(route)
        return tuple(result)

    def _register(
        self,
        routes: tuple[Route, ...],
        parent_id: str | None,
        names: frozenset[str],
    ) -> None:
        for route in routes:
            route_id = route.id or ""
            if route_id in self._by_id:
                msg = f"Duplicate route id {route_id!r}."
                raise ConfigurationError(msg)
            if route.index and route.children:
                msg = f"Index route {route_id!r} cannot have children."
                raise ConfigurationError(msg)
            if route.index and route.path is not None:
                msg = f"Index route {route_id!r} cannot have a path."
                raise ConfigurationError(msg)

            compiled: CompiledPattern | None = None
            child_names = names
            if route.path is not None:
                case_sensitive = (
                    route.case_sensitive
                    if route.case_sensitive is not None
                    else self._config.case_sensitive
                )
                compiled = compile_pattern(route.path, case_sensitive=case_sensitive)
                clash = names & set(compiled.param_names)
                if clash:
                    msg = (
                        f"Route {route_id!r} reuses parameter name(s) "
                        f"{', '.join(sorted(clash))} already captured by an ancestor."
                    )
                    raise ConfigurationError(msg)
                child_names = names | set(compiled.param_names)

            self._by_id[route_id] = route
            self._parents[route_id] = parent_id
            self._compiled[route_id] = compiled
            self._register(route.children, route_id, child_names)

    # -- Introspection --

    @property
    def routes(self) -> tuple[Route, ...]:
        """The top-level routes, with generated ids filled in."""
        return self._routes

    @property
    def root(self) -> Route:
        """The first top-level route: owner of not-found errors."""
        return self._routes[0]

    def get(self, route_id: str) -> Route:
        """Return the route registered under *route_id* (``KeyError`` if none)."""
        return self._by_id[route_id]

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def walk(self) -> Iterator[Route]:
        """Iterate every route, depth first, in declaration order."""
        stack = list(reversed(self._routes))
        while stack:
            route = stack.pop()
            yield route
            stack.extend(reversed(route.children))

    def ancestors(self, route_id: str) -> tuple[Route, ...]:
        """Routes from the top level down to *route_id*, inclusive."""
        chain: list[Route] = []
        current: str | None = route_id
        while current is not None:
            chain.append(self._by_id[current])
            current = self._parents[current]
        return tuple(reversed(chain))

    def compiled(self, route_id: str) -> CompiledPattern | None:
        """The compiled pattern of *route_id*, or ``None`` for pathless routes."""
        return self._compiled[route_id]

    # -- Matching --

    def match(self, pathname: str) -> tuple[RouteMatch, ...]:
        """Return the best matching branch for *pathname* (empty when none)."""
        best = self._match_level(self._routes, to_match_path(pathname), "", {})
        if best is None:
            logger.debug("No route matches %r", pathname)
            return ()
        return best.matches

    def not_found_branch(self) -> tuple[RouteMatch, ...]:
        """A renderable branch holding only the root route."""
        return (RouteMatch(route=self.root, params={}, pathname="/"),)

    def _match_level(
        self,
        routes: tuple[Route, ...],
        remaining: str,
        base: str,
        params: dict[str, str],
    ) -> _Candidate | None:
        """Pick exactly one matching sibling: highest rank, first declared on ties."""
        best: _Candidate | None = None
        for route in routes:
            candidate = self._match_route(route, remaining, base, params)
            if candidate is not None and (best is None or candidate.rank > best.rank):
                best = candidate
        return best

    def _match_route(
        self,
        route: Route,
        remaining: str,
        base: str,
        params: dict[str, str],
    ) -> _Candidate | None:
        if route.index:
            if remaining:
                return None
            match = RouteMatch(route=route, params=dict(params), pathname=base or "/")
            return _Candidate((match,), (INDEX_BONUS, 0, INDEX_BONUS))

        compiled = self._compiled[route.id or ""]
        own = 0
        consumed = ""
        rest = remaining
        if compiled is not None:
            result = compiled.match(remaining)
            if result is None:
                return None
            own = compiled.score
            consumed = result.consumed
            rest = result.remaining
            params = {**params, **result.params}

        pathname = base + consumed
        match = RouteMatch(route=route, params=dict(params), pathname=pathname or "/")
        depth = 1 if consumed else 0

        if route.children:
            child = self._match_level(route.children, rest, pathname, params)
            if child is not None:
                borrows_head = compiled is None or compiled.is_empty
                head = child.rank[0] if borrows_head else own
                return _Candidate(
                    (match, *child.matches),
                    (head, depth + child.rank[1], own + child.rank[2]),
                )

        # Leaf (or a parent none of whose children matched): must consume everything
        if rest:
            return None
        return _Candidate((match,), (own, depth, own))
