from __future__ import annotations

import pytest

from factories import make_config
from flowpromote import remote
from flowpromote.config import FlowPromoteConfig


@pytest.fixture(autouse=True)
def _reset_client():
    remote.reset_client()
    yield
    remote.reset_client()


@pytest.fixture
def config(tmp_path) -> FlowPromoteConfig:
    return make_config(tmp_path)
