"""Shared type aliases used across waypoint modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Loader / action: user-defined function receiving LoaderArgs or ActionArgs
Handler: TypeAlias = Callable[..., Any]

# Revalidation predicate: receives RevalidateArgs, returns bool
RevalidatePredicate: TypeAlias = Callable[..., bool]

# State listener: receives the new NavigationState
Listener: TypeAlias = Callable[[Any], None]

# Route parameters captured from the pathname
Params: TypeAlias = dict[str, str]
