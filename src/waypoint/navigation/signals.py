"""Cooperative cancellation signals.

Every loader, action, fetcher and deferred value runs under a
``CancellationSignal``.  Aborting a signal flips ``aborted``, runs the
registered callbacks (the router uses one to cancel the anyio scope of a
round) and wakes ``wait()``.  Results are only committed after checking
that their signal is still live.

Usage::

    signal = CancellationSignal()
    child = signal.child()          # aborted whenever the parent is
    remove = signal.add_callback(scope.cancel)
    ...
    signal.abort("superseded")
"""

from collections.abc import Callable

import anyio


class CancellationSignal:
    """A one-shot abort flag with callbacks and an awaitable ``wait()``."""

    __slots__ = ("_aborted", "_callbacks", "_event", "_reason")

    def __init__(self) -> None:
        self._aborted = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], object]] = []
        self._event: anyio.Event | None = None

    def __repr__(self) -> str:
        if self._aborted:
            return f"CancellationSignal(aborted, reason={self._reason!r})"
        return "CancellationSignal(live)"

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> str | None:
        """Why the signal was aborted (``None`` while live)."""
        return self._reason

    def abort(self, reason: str = "aborted") -> None:
        """Abort the signal. Idempotent: only the first reason is kept."""
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        if self._event is not None:
            self._event.set()

    def add_callback(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Run *callback* on abort; returns a function that unregisters it.

        If the signal is already aborted the callback runs immediately.
        """
        if self._aborted:
            callback()
            return _noop

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def child(self) -> "CancellationSignal":
        """A new signal that is aborted together with this one."""
        child = CancellationSignal()
        self.add_callback(lambda: child.abort(self._reason or "aborted"))
        return child

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        if self._aborted:
            return
        if self._event is None:
            self._event = anyio.Event()
        await self._event.wait()


def _noop() -> None:
    return None
