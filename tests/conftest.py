"""Shared fixtures."""

import pytest

from content_bridge.utils.config import Settings
from tests.fakes import make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()
