"""Locations and search parameters.

``Location`` is the immutable description of one history entry.  URL
string handling is delegated to ``urllib.parse``; this module only
normalizes pathnames and resolves relative targets the way links inside
a route tree expect.
"""

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import parse_qs, urlsplit


def _new_key() -> str:
    return uuid.uuid4().hex[:8]


def normalize_pathname(pathname: str) -> str:
    """Collapse repeated slashes and strip the trailing one.

    Examples::

        ""            -> "/"
        "users//42/"  -> "/users/42"
    """
    parts = [p for p in pathname.split("/") if p]
    return "/" + "/".join(parts)


def resolve_pathname(to: str, from_pathname: str = "/") -> str:
    """Resolve *to* against *from_pathname*.

    Absolute targets replace the pathname.  Relative targets are appended
    to *from_pathname* (treated as a directory), with ``.`` and ``..``
    segments applied.
    """
    if to.startswith("/"):
        segments: list[str] = []
    else:
        segments = [p for p in from_pathname.split("/") if p]
    for part in to.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if segments:
                segments.pop()
            continue
        segments.append(part)
    return "/" + "/".join(segments)


def _prefixed(value: str, prefix: str) -> str:
    if not value or value == prefix:
        return ""
    return value if value.startswith(prefix) else prefix + value


@dataclass(frozen=True, slots=True)
class Location:
    """One history entry: where the user is, plus opaque caller state."""

    pathname: str = "/"
    search: str = ""
    hash: str = ""
    state: Any = None
    key: str = field(default_factory=_new_key)

    @property
    def path_and_search(self) -> str:
        """``pathname + search``: the part loaders care about."""
        return self.pathname + self.search

    @property
    def href(self) -> str:
        return self.pathname + self.search + self.hash

    @property
    def search_params(self) -> "SearchParams":
        return SearchParams(self.search)

    def with_search(self, search: str) -> "Location":
        """Return a copy with *search* replacing the query string."""
        return replace(self, search=_prefixed(search, "?"), key=_new_key())


def create_location(
    to: "str | Location",
    *,
    current: Location | None = None,
    state: Any = None,
) -> Location:
    """Build a ``Location`` for a navigation target.

    *to* may be an absolute path (``/users/42?tab=1#top``), a relative
    path resolved against *current* (``edit``, ``../list``), a bare
    query (``?page=2``) or hash (``#top``), or an existing ``Location``.
    Every call produces a fresh ``key``.
    """
    if isinstance(to, Location):
        return replace(to, key=_new_key(), state=state if state is not None else to.state)

    base = current.pathname if current is not None else "/"
    parts = urlsplit(to)
    if parts.path:
        pathname = resolve_pathname(parts.path, base)
    else:
        pathname = base
    search = _prefixed(parts.query, "?")
    if not parts.path and not parts.query and current is not None and parts.fragment:
        # Hash-only targets keep the current search string
        search = current.search
    return Location(
        pathname=normalize_pathname(pathname),
        search=search,
        hash=_prefixed(parts.fragment, "#"),
        state=state,
    )


class SearchParams(Mapping[str, str]):
    """Immutable query string parameters.

    Implements ``Mapping[str, str]`` and the ``MultiValueMapping`` protocol.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    """

    _data: dict[str, list[str]]
    _raw: str

    __slots__ = ("_data", "_raw")

    def __init__(self, search: str = "") -> None:
        raw = search[1:] if search.startswith("?") else search
        object.__setattr__(self, "_raw", raw)
        object.__setattr__(self, "_data", parse_qs(raw, keep_blank_values=True))

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"SearchParams({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return list(self._data.get(key, []))

    def has_naked(self, key: str) -> bool:
        """True when *key* appears without a value (``?index`` or ``?index=``)."""
        return "" in self._data.get(key, [])
