"""Shared test fixtures.

Every test starts from a clean settings cache and without ``AGENTLOOP_*``
overrides leaking in from the developer's environment.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from agentloop.agent_runtime.settings import get_settings


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("AGENTLOOP_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
