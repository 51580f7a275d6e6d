"""Loaders and actions that settle only when a test says so.

Each call to a ``ControlledHandler`` parks on its own ``ControlledCall``
until the test resolves, rejects or redirects it::

    loader = ControlledHandler("user")
    route = Route(path="users/:id", id="user", loader=loader)
    ...
    await harness.start(router.navigate, "/users/1")
    await loader.resolve({"name": "Ada"})
"""

from typing import Any

import anyio

from waypoint.responses import Redirect


class ControlledCall:
    """One pending invocation of a ``ControlledHandler``."""

    __slots__ = ("_event", "_outcome", "args", "cancelled")

    def __init__(self, args: Any) -> None:
        self.args = args
        self.cancelled = False
        self._event = anyio.Event()
        self._outcome: tuple[bool, Any] | None = None

    def __repr__(self) -> str:
        return f"<ControlledCall settled={self.settled} cancelled={self.cancelled}>"

    @property
    def settled(self) -> bool:
        return self._outcome is not None

    @property
    def pending(self) -> bool:
        return not self.settled and not self.cancelled

    def resolve(self, value: Any = None) -> None:
        self._settle(False, value)

    def reject(self, error: BaseException) -> None:
        self._settle(True, error)

    def _settle(self, raises: bool, value: Any) -> None:
        if self.settled:
            msg = "Call already settled."
            raise RuntimeError(msg)
        self._outcome = (raises, value)
        self._event.set()

    async def wait(self) -> Any:
        try:
            await self._event.wait()
        except anyio.get_cancelled_exc_class():
            self.cancelled = True
            raise
        assert self._outcome is not None
        raises, value = self._outcome
        if raises:
            raise value
        return value


class ControlledHandler:
    """A loader/action stand-in that records calls and blocks until settled.

    The async ``resolve``/``reject``/``redirect`` helpers settle the oldest
    pending call (or *call*, if given) and then wait until every task is
    blocked again, so the router has processed the outcome on return.
    """

    def __init__(self, name: str = "handler") -> None:
        self.name = name
        self.calls: list[ControlledCall] = []

    def __repr__(self) -> str:
        return f"<ControlledHandler {self.name!r} calls={len(self.calls)}>"

    async def __call__(self, args: Any) -> Any:
        call = ControlledCall(args)
        self.calls.append(call)
        return await call.wait()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> ControlledCall:
        if not self.calls:
            msg = f"{self.name!r} was never called."
            raise LookupError(msg)
        return self.calls[-1]

    @property
    def pending(self) -> list[ControlledCall]:
        return [call for call in self.calls if call.pending]

    def _target(self, call: ControlledCall | None) -> ControlledCall:
        if call is not None:
            return call
        pending = self.pending
        if not pending:
            msg = f"{self.name!r} has no pending call."
            raise LookupError(msg)
        return pending[0]

    async def resolve(self, value: Any = None, *, call: ControlledCall | None = None) -> None:
        self._target(call).resolve(value)
        await anyio.wait_all_tasks_blocked()

    async def reject(self, error: BaseException, *, call: ControlledCall | None = None) -> None:
        self._target(call).reject(error)
        await anyio.wait_all_tasks_blocked()

    async def redirect(
        self,
        location: str,
        status: int = 302,
        *,
        call: ControlledCall | None = None,
    ) -> None:
        self._target(call).reject(Redirect(location, status))
        await anyio.wait_all_tasks_blocked()
