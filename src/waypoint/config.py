"""Router configuration.

RouterConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from waypoint.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Router configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(max_redirects=5, case_sensitive=True)
    """

    # Redirects
    max_redirects: int = 20  # Hops allowed in one redirect chain before RedirectLoopError

    # Matching
    case_sensitive: bool = False  # Default for routes that don't set case_sensitive

    # Revalidation
    revalidate_on_fetcher_submission: bool = True  # Mutating fetchers refresh loaders when done
    hash_change_loads: bool = False  # Run loaders on hash-only navigations

    # Fetchers
    fetcher_key_prefix: str = "fetcher"  # Generated keys look like "fetcher-1"

    def __post_init__(self) -> None:
        if self.max_redirects < 0:
            msg = f"max_redirects must be >= 0, got {self.max_redirects}"
            raise ConfigurationError(msg)
        if not self.fetcher_key_prefix:
            msg = "fetcher_key_prefix must not be empty"
            raise ConfigurationError(msg)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "RouterConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            msg = f"Unknown router config keys: {', '.join(unknown)}"
            raise ConfigurationError(msg)
        return cls(**mapping)
