from __future__ import annotations

import pytest
from fakes import FakeBackend, make_app

from gitbuddy.app import Application


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def app(backend: FakeBackend) -> Application:
    return make_app(backend)
