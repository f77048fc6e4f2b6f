"""Shared test fixtures."""

import asyncio
from typing import List, Optional, Tuple

import pytest
import pytest_asyncio

from core.cron_manager import CronManager
from core.cron_registry import JobRegistry
from core.gateway import TransportGateway
from interfaces.base import ClientInterface


class FakeClient(ClientInterface):
    """In-memory transport that records deliveries."""

    def __init__(self, fail_with: Optional[Exception] = None, delay: float = 0.0):
        self.sent: List[Tuple[str, str]] = []
        self.fail_with = fail_with
        self.delay = delay
        self.closed = False

    async def send_message(self, target: str, text: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((target, text))

    async def close(self) -> None:
        self.closed = True


PING = {"name": "ping", "schedule": "*/5 * * * *", "target": "123", "message": "hi"}


@pytest.fixture
def ping_fields() -> dict:
    return dict(PING)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def gateway(client: FakeClient) -> TransportGateway:
    gw = TransportGateway()
    gw.attach(client)
    return gw


@pytest_asyncio.fixture
async def manager(gateway: TransportGateway, registry: JobRegistry):
    mgr = CronManager(gateway, registry=registry)
    await mgr.start()
    yield mgr
    await mgr.stop()
