"""Shared fixtures for the mapcomposer test suite."""

from __future__ import annotations

import pytest

from mapcomposer.factory import ProjectionFactory
from mapcomposer.registry import ProjectionRegistry, default_registry


@pytest.fixture
def registry() -> ProjectionRegistry:
    return default_registry()


@pytest.fixture
def factory(registry) -> ProjectionFactory:
    return ProjectionFactory(registry)
