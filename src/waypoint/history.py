"""History backends.

The router talks to history through a small protocol: it reads the
current location, pushes or replaces entries after committing a
navigation, and listens for POP changes (back/forward, ``go(n)``) that it
did not initiate itself.

``MemoryHistory`` keeps the stack in a list, for tests and for hosts
without a browser.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from waypoint.http.location import Location, create_location

logger = logging.getLogger("waypoint.history")

HistoryListener = Callable[[Location], None]


@runtime_checkable
class History(Protocol):
    """What a router needs from a history backend.

    Listeners fire only for POP changes; ``navigate()`` never notifies.
    """

    def current_location(self) -> Location: ...
    def listen(self, listener: HistoryListener) -> Callable[[], None]: ...
    def navigate(self, location: Location, *, replace: bool = False) -> None: ...
    def go(self, delta: int) -> None: ...


class MemoryHistory:
    """An in-memory history stack.

    >>> history = MemoryHistory(["/", "/about"])
    >>> history.current_location().pathname
    '/about'
    """

    __slots__ = ("_entries", "_index", "_listeners")

    def __init__(
        self,
        initial_entries: Sequence[str | Location] = ("/",),
        initial_index: int | None = None,
    ) -> None:
        if not initial_entries:
            msg = "MemoryHistory needs at least one initial entry."
            raise ValueError(msg)
        self._entries: list[Location] = [create_location(entry) for entry in initial_entries]
        last = len(self._entries) - 1
        index = last if initial_index is None else initial_index
        self._index = min(max(index, 0), last)
        self._listeners: list[HistoryListener] = []

    @property
    def entries(self) -> tuple[Location, ...]:
        return tuple(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def current_location(self) -> Location:
        return self._entries[self._index]

    def listen(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unlisten() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unlisten

    def navigate(self, location: Location, *, replace: bool = False) -> None:
        """Push *location* (dropping forward entries) or replace the current one."""
        if replace:
            self._entries[self._index] = location
        else:
            del self._entries[self._index + 1 :]
            self._entries.append(location)
            self._index += 1

    def go(self, delta: int) -> None:
        """Move *delta* entries, clamped to the stack; notifies on change."""
        index = min(max(self._index + delta, 0), len(self._entries) - 1)
        if index == self._index:
            return
        self._index = index
        location = self._entries[index]
        logger.debug("History POP to %s", location.href)
        for listener in list(self._listeners):
            listener(location)

    def back(self) -> None:
        self.go(-1)

    def forward(self) -> None:
        self.go(1)
