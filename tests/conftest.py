from __future__ import annotations

import pytest

from tests.fakes import FakeEncoder, FakeProvider, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture(autouse=True)
def _reset_fake_encoders():
    FakeEncoder.instances.clear()
    yield
    FakeEncoder.instances.clear()
