"""Test utilities for waypoint routers.

Provides hand-controlled loaders/actions and a harness that records
every published state::

    from waypoint.testing import ControlledHandler, Harness
"""

from waypoint.testing.controlled import ControlledCall, ControlledHandler
from waypoint.testing.harness import Harness

__all__ = [
    "ControlledCall",
    "ControlledHandler",
    "Harness",
]
