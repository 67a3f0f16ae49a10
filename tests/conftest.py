import asyncio
import os
import sys
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.services.events import reset_change_feed
from storefront.services.mock_store import reset_mock_store

TZ = ZoneInfo("Asia/Shanghai")
FIXED_NOW = datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)
FUTURE_DAY = date(2026, 10, 21)


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    reset_change_feed()
    yield
    reset_mock_store()
    reset_change_feed()


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self, *, yield_control: bool = False) -> None:
        self.use_mock_data = True
        self.latency_called = False
        self.latency_calls = 0
        self._yield_control = yield_control

    async def simulate_latency(self) -> None:
        self.latency_called = True
        self.latency_calls += 1
        if self._yield_control:
            await asyncio.sleep(0)


@pytest.fixture
def client() -> MockLatencyClient:
    return MockLatencyClient()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
