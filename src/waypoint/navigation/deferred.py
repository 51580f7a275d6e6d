"""Deferred values: publish the critical data first, stream the rest.

A loader can return a mapping where some fields are still in flight::

    async def loader(args):
        return {
            "title": await load_title(),        # critical: awaited here
            "comments": defer(load_comments()), # deferred: streamed later
        }

Pipeline:

    1. The coordinator splits the mapping: unsettled ``DeferredValue``
       fields stay in the published data as placeholders.
    2. The router commits the round (status goes back to ``idle``).
    3. ``DeferredChannel.track()`` awaits each placeholder in the router's
       task group, one task per field.
    4. When a field settles, the router publishes a new state in which
       only that field is replaced by its settled ``DeferredValue``.

Every tracked owner (a route id or a fetcher key) has one
``CancellationSignal``; reloading or leaving the route aborts it and any
settlement that arrives afterwards is discarded.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any

import anyio

from waypoint.errors import DeferredNotSettled
from waypoint.navigation.signals import CancellationSignal

logger = logging.getLogger("waypoint.deferred")


@dataclass(frozen=True, slots=True)
class DeferredValue:
    """A loader output field that resolves after the round has settled.

    Unsettled placeholders carry the awaitable; settled instances are
    new objects with ``settled=True`` and either ``value`` or ``error``.
    """

    awaitable: Awaitable[Any] | None = field(default=None, repr=False, compare=False)
    settled: bool = False
    value: Any = None
    error: BaseException | None = None

    def unwrap(self) -> Any:
        """Return the settled value, re-raising a settled error.

        Raises ``DeferredNotSettled`` while still pending.
        """
        if not self.settled:
            msg = "Deferred value has not settled yet."
            raise DeferredNotSettled(msg)
        if self.error is not None:
            raise self.error
        return self.value

    async def settle(self) -> "DeferredValue":
        """Await the wrapped awaitable and return the settled form."""
        if self.settled or self.awaitable is None:
            return self
        try:
            value = await self.awaitable
        except Exception as exc:
            return DeferredValue(settled=True, error=exc)
        return DeferredValue(settled=True, value=value)

    def discard(self) -> None:
        """Close a never-awaited coroutine so it doesn't warn on collection."""
        if inspect.iscoroutine(self.awaitable):
            self.awaitable.close()


def defer(awaitable: Awaitable[Any]) -> DeferredValue:
    """Wrap *awaitable* as a deferred loader field."""
    if not inspect.isawaitable(awaitable):
        msg = f"defer() needs an awaitable, got {type(awaitable).__name__}"
        raise TypeError(msg)
    return DeferredValue(awaitable=awaitable)


def split_deferred(data: Any) -> dict[str, DeferredValue]:
    """Return the unsettled deferred fields of a mapping result."""
    if not isinstance(data, Mapping):
        return {}
    return {
        key: value
        for key, value in data.items()
        if isinstance(value, DeferredValue) and not value.settled
    }


def discard_all(fields: Mapping[str, DeferredValue]) -> None:
    for deferred in fields.values():
        deferred.discard()


class DeferredChannel:
    """Streams deferred field settlements back into router state.

    *spawn* schedules a coroutine function in a long-lived task group
    (``spawn(fn, *args)``), so settlements outlive the navigation that
    produced them.
    """

    __slots__ = ("_signals", "_spawn")

    def __init__(self, spawn: Callable[..., None]) -> None:
        self._spawn = spawn
        self._signals: dict[Hashable, CancellationSignal] = {}

    def track(
        self,
        owner: Hashable,
        fields: Mapping[str, DeferredValue],
        apply: Callable[[str, DeferredValue], None],
    ) -> None:
        """Start streaming *fields* for *owner*, replacing earlier ones."""
        self.cancel(owner)
        if not fields:
            return
        signal = CancellationSignal()
        self._signals[owner] = signal
        for key, deferred in fields.items():
            self._spawn(self._settle, owner, key, deferred, signal, apply)
        logger.debug("Streaming %d deferred field(s) for %r", len(fields), owner)

    def is_tracking(self, owner: Hashable) -> bool:
        signal = self._signals.get(owner)
        return signal is not None and not signal.aborted

    def cancel(self, *owners: Hashable) -> None:
        """Abort the deferred fields of *owners*; late settlements are dropped."""
        for owner in owners:
            signal = self._signals.pop(owner, None)
            if signal is not None:
                signal.abort("superseded")

    def cancel_all(self) -> None:
        self.cancel(*list(self._signals))

    async def _settle(
        self,
        owner: Hashable,
        key: str,
        deferred: DeferredValue,
        signal: CancellationSignal,
        apply: Callable[[str, DeferredValue], None],
    ) -> None:
        settled: DeferredValue | None = None
        try:
            with anyio.CancelScope() as scope:
                remove = signal.add_callback(scope.cancel)
                try:
                    settled = await deferred.settle()
                finally:
                    remove()
        finally:
            if settled is None:
                deferred.discard()

        if settled is None or signal.aborted:
            logger.debug("Discarding deferred field %r of %r", key, owner)
            return
        if settled.error is not None:
            logger.debug("Deferred field %r of %r rejected: %r", key, owner, settled.error)
        apply(key, settled)
