"""Shared fixtures: a steppable clock and an in-memory runtime."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from dockvault.config import DockvaultConfig
from dockvault.runtime import DockvaultRuntime


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def runtime(clock: FakeClock) -> DockvaultRuntime:
    return DockvaultRuntime.bootstrap(DockvaultConfig.default(), clock=clock)
