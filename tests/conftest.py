from __future__ import annotations

import pytest

from engine_config import reset_config


@pytest.fixture(autouse=True)
def _default_config():
    reset_config()
    yield
    reset_config()
