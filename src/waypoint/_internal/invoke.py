"""Invoke helpers: call sync or async loaders uniformly.

Loaders, actions and revalidation callbacks can be ``def`` or
``async def``. Any code that calls a user-provided callable must handle
both cases. This module keeps the sync/async check in exactly one place.

Usage::

    from waypoint._internal.invoke import invoke

    result = await invoke(route.loader, args)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately, no await needed
        def loader(args):
            return {"user": USERS[args.params["id"]]}

        # async: returns coroutine, awaited automatically
        async def loader(args):
            return {"user": await fetch_user(args.params["id"])}
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
