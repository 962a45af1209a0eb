"""Shared test fixtures for Shipwright tests.

Provides a sample RunContext, a scripted Transport, and a raw
deployment config that can be reused across test modules.
"""

import pytest

from shipwright.schemas.context import RunContext
from tests.fixtures.contexts import make_context, sample_config
from tests.fixtures.transport import FakeTransport


@pytest.fixture
def run_context() -> RunContext:
    """RunContext for a typical single-host web app deployment."""
    return make_context()


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport where every command succeeds."""
    return FakeTransport()


@pytest.fixture
def sample_config_dict() -> dict:
    return sample_config()
