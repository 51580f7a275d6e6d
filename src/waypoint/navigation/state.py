"""NavigationState, FetcherState and the descriptors that feed them.

Frozen dataclasses.  The router never edits a published state: every
change builds a new ``NavigationState`` (with fresh dicts) and swaps it
in, so a snapshot taken with ``router.state`` never changes underneath
its holder.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from waypoint.http.forms import FormData
from waypoint.http.location import Location
from waypoint.routing.route import RouteMatch


class Status(Enum):
    """Lifecycle status shared by navigations and fetchers."""

    IDLE = "idle"
    LOADING = "loading"
    SUBMITTING = "submitting"


class NavigationKind(Enum):
    """Why the in-flight navigation is running."""

    LOAD = "load"
    REDIRECT = "redirect"
    LOADER_SUBMISSION = "loader_submission"
    ACTION_SUBMISSION = "action_submission"
    ACTION_RELOAD = "action_reload"
    SUBMISSION_REDIRECT = "submission_redirect"


class HistoryAction(Enum):
    """How the committed location entered the history stack."""

    PUSH = "push"
    REPLACE = "replace"
    POP = "pop"


@dataclass(frozen=True, slots=True)
class Submission:
    """A form submission: method plus payload.

    ``get`` submissions are serialized into the search string and only
    run loaders; every other method is a mutation that runs an action.
    """

    form_method: str
    form_data: FormData

    @property
    def is_mutation(self) -> bool:
        return self.form_method != "get"


@dataclass(frozen=True, slots=True)
class Navigation:
    """The navigation currently in flight."""

    kind: NavigationKind
    location: Location
    submission: Submission | None = None

    @property
    def status(self) -> Status:
        if self.kind in (NavigationKind.LOADER_SUBMISSION, NavigationKind.ACTION_SUBMISSION):
            return Status.SUBMITTING
        return Status.LOADING

    @property
    def form_data(self) -> FormData | None:
        return self.submission.form_data if self.submission else None

    @property
    def form_method(self) -> str | None:
        return self.submission.form_method if self.submission else None


@dataclass(frozen=True, slots=True)
class FetcherState:
    """Snapshot of one fetcher."""

    key: str
    status: Status = Status.IDLE
    data: Any = None
    form_data: FormData | None = None
    form_method: str | None = None
    route_id: str | None = None


@dataclass(frozen=True, slots=True)
class NavigationState:
    """The single authoritative snapshot a router exposes.

    During a navigation every field except ``status``, ``navigation``
    and ``fetchers`` still describes the *previous* location; the new
    location, matches and data land together when the round commits.
    """

    location: Location
    matches: tuple[RouteMatch, ...]
    status: Status = Status.IDLE
    loader_data: dict[str, Any] = field(default_factory=dict)
    action_data: Any = None
    errors: dict[str, Any] | None = None
    fetchers: dict[str, FetcherState] = field(default_factory=dict)
    navigation: Navigation | None = None
    history_action: HistoryAction = HistoryAction.POP
    revalidation: Status = Status.IDLE

    @property
    def route_ids(self) -> tuple[str, ...]:
        return tuple(m.route.id or "" for m in self.matches)


@dataclass(frozen=True, slots=True)
class HydrationState:
    """Data a router starts from, e.g. rendered ahead of time elsewhere."""

    loader_data: Mapping[str, Any] = field(default_factory=dict)
    action_data: Any = None
    errors: Mapping[str, Any] | None = None
