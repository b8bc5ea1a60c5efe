"""Pytest configuration for all tests."""

import pytest

from src.lifecycle.config import LifecycleSettings

from tests.helpers import BASE_SETTINGS


@pytest.fixture
def settings_factory():
    """Build LifecycleSettings from the base values plus overrides."""

    def factory(**overrides) -> LifecycleSettings:
        values = dict(BASE_SETTINGS)
        values.update(overrides)
        return LifecycleSettings(**values)

    return factory


@pytest.fixture
def lifecycle_settings(settings_factory):
    return settings_factory()
