"""Submission payloads.

Implements ``MultiValueMapping`` for consistent access across
``SearchParams`` and ``FormData``.  Forms are plain key/value payloads
here; there is no multipart or file handling because submissions never
leave the process.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any
from urllib.parse import urlencode


class FormData(Mapping[str, str]):
    """Immutable submission payload.

    Implements ``Mapping[str, str]`` and the ``MultiValueMapping`` protocol.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.

    Usage::

        form = FormData({"title": "Buy milk", "tags": ["home", "errand"]})
        form["title"]          # "Buy milk"
        form.get_list("tags")  # ["home", "errand"]
    """

    __slots__ = ("_data",)

    def __init__(
        self,
        data: Mapping[str, str | Iterable[str]] | Iterable[tuple[str, str]] | None = None,
    ) -> None:
        parsed: dict[str, list[str]] = {}
        if data is None:
            pass
        elif isinstance(data, Mapping):
            for key, value in data.items():
                if isinstance(value, str):
                    parsed.setdefault(key, []).append(value)
                else:
                    parsed.setdefault(key, []).extend(str(v) for v in value)
        else:
            for key, value in data:
                parsed.setdefault(key, []).append(str(value))
        object.__setattr__(self, "_data", parsed)

    @classmethod
    def coerce(cls, value: Any) -> "FormData":
        """Return *value* as ``FormData`` (no copy when it already is one)."""
        if isinstance(value, FormData):
            return value
        return cls(value)

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FormData):
            return self._data == other._data
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"FormData({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key* (checkboxes, multi-selects)."""
        return list(self._data.get(key, []))

    def multi_items(self) -> list[tuple[str, str]]:
        """Every ``(key, value)`` pair in insertion order."""
        return [(key, value) for key, values in self._data.items() for value in values]

    def urlencode(self) -> str:
        """Serialize as ``application/x-www-form-urlencoded`` (no leading ``?``)."""
        return urlencode(self.multi_items())
