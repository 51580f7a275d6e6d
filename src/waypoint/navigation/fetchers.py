"""Fetcher registry: independent data operations with their own lifecycle.

A fetcher runs one route's loader or action without navigating.  The
registry owns the per-key ``FetcherState`` snapshots, the signal of each
in-flight fetch, and subscriber counts that decide when an idle fetcher
can be dropped.
"""

import logging
from collections import Counter

from waypoint.navigation.signals import CancellationSignal
from waypoint.navigation.state import FetcherState, Status

logger = logging.getLogger("waypoint.fetchers")


class FetcherRegistry:
    """Per-key fetcher states, signals and subscriber counts.

    Fetchers are independent: starting one never cancels another, except
    that a new fetch on the *same* key aborts the one still running
    there.
    """

    __slots__ = ("_counter", "_orphaned", "_prefix", "_signals", "_states", "_subscribers")

    def __init__(self, key_prefix: str = "fetcher") -> None:
        self._prefix = key_prefix
        self._counter = 0
        self._states: dict[str, FetcherState] = {}
        self._signals: dict[str, CancellationSignal] = {}
        self._subscribers: Counter[str] = Counter()
        self._orphaned: set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def next_key(self) -> str:
        """A fresh key such as ``"fetcher-3"``."""
        self._counter += 1
        return f"{self._prefix}-{self._counter}"

    def get(self, key: str) -> FetcherState:
        """The state of *key*; unknown keys read as an idle, empty fetcher."""
        return self._states.get(key) or FetcherState(key=key)

    def snapshot(self) -> dict[str, FetcherState]:
        return dict(self._states)

    # -- Lifecycle --

    def begin(self, key: str) -> CancellationSignal:
        """Start a fetch on *key*, aborting the one already running there."""
        previous = self._signals.pop(key, None)
        if previous is not None:
            logger.debug("Fetcher %r superseded", key)
            previous.abort("superseded")
        signal = CancellationSignal()
        self._signals[key] = signal
        return signal

    def is_current(self, key: str, signal: CancellationSignal) -> bool:
        """True while *signal* is the live signal of *key*."""
        return self._signals.get(key) is signal and not signal.aborted

    def update(self, key: str, state: FetcherState) -> None:
        self._states[key] = state

    def finish(self, key: str, signal: CancellationSignal) -> bool:
        """Release *key*'s signal; drops the fetcher if nobody subscribes.

        Returns ``True`` when the fetcher was removed.
        """
        if self._signals.get(key) is signal:
            del self._signals[key]
        if key in self._orphaned and self.get(key).status is Status.IDLE:
            self._remove(key)
            return True
        return False

    def is_running(self, key: str) -> bool:
        return key in self._signals

    # -- Subscribers --

    def acquire(self, key: str) -> FetcherState:
        """Register a subscriber for *key* (creating the fetcher lazily)."""
        self._subscribers[key] += 1
        self._orphaned.discard(key)
        if key not in self._states:
            self._states[key] = FetcherState(key=key)
        return self._states[key]

    def release(self, key: str) -> bool:
        """Drop a subscriber; removes the fetcher if it is idle and unwatched.

        A fetcher still running when its last subscriber leaves is removed
        as soon as it settles.  Returns ``True`` when removed right away.
        """
        if self._subscribers[key] > 0:
            self._subscribers[key] -= 1
        if self._subscribers[key] > 0:
            return False
        del self._subscribers[key]
        if key in self._signals or self.get(key).status is not Status.IDLE:
            self._orphaned.add(key)
            return False
        self._remove(key)
        return True

    def delete(self, key: str) -> None:
        """Abort *key* if running and forget it."""
        signal = self._signals.pop(key, None)
        if signal is not None:
            signal.abort("deleted")
        self._subscribers.pop(key, None)
        self._remove(key)

    def abort_all(self) -> None:
        for key in list(self._signals):
            self._signals.pop(key).abort("closed")

    def _remove(self, key: str) -> None:
        self._orphaned.discard(key)
        if self._states.pop(key, None) is not None:
            logger.debug("Fetcher %r removed", key)
