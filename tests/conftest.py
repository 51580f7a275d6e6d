"""Shared fixtures for waypoint tests."""

import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
