"""Redirect marker returned (or raised) by loaders and actions.

Usage::

    from waypoint import redirect

    async def loader(args):
        if not session.user:
            return redirect("/login")
        ...

    async def action(args):
        await save(args.form_data)
        raise redirect(f"/items/{args.params['id']}", status=303)
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Redirect(Exception):
    """Tell the router to navigate to *location* instead of committing.

    A ``Redirect`` can be returned or raised; both short-circuit the
    current round and start a ``replace`` navigation to *location*.
    """

    location: str
    status: int = 302

    def __post_init__(self) -> None:
        if not 300 <= self.status <= 399:
            msg = f"Redirect status must be 3xx, got {self.status}"
            raise ValueError(msg)

    def __str__(self) -> str:
        return f"{self.status} -> {self.location}"


def redirect(location: str, status: int = 302) -> Redirect:
    """Build a ``Redirect`` to *location*."""
    return Redirect(location=location, status=status)
