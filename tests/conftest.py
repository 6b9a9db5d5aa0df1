"""Shared pytest configuration and fixtures."""

import asyncio
import random

import pytest

from transmission_exporter.collectors.transmission_collector import TransmissionCollector
from transmission_exporter.services.transmission_client import SessionStats, TransmissionRPCError
from transmission_exporter.utils.logger import setup_logger


class FakeTransmissionClient:
    """
    In-memory stand-in for TransmissionClient.

    Each query returns its configured value, or raises the configured
    exception. An optional latency range makes every call sleep a random
    time first.
    """

    def __init__(
        self,
        port_open=True,
        turtle_mode=False,
        stats=None,
        port_error=None,
        turtle_error=None,
        stats_error=None,
        latency=None,
    ):
        self.port_open = port_open
        self.turtle_mode = turtle_mode
        self.stats = stats or SessionStats(
            active_torrents=3,
            paused_torrents=2,
            downloaded_bytes=1024,
            uploaded_bytes=4096,
        )
        self.port_error = port_error
        self.turtle_error = turtle_error
        self.stats_error = stats_error
        self.latency = latency
        self.calls = {"port": 0, "turtle": 0, "stats": 0}
        self.closed = False

    async def _delay(self):
        if self.latency:
            await asyncio.sleep(random.uniform(*self.latency))

    async def is_port_open(self):
        self.calls["port"] += 1
        await self._delay()
        if self.port_error:
            raise self.port_error
        return self.port_open

    async def is_turtle_mode_enabled(self):
        self.calls["turtle"] += 1
        await self._delay()
        if self.turtle_error:
            raise self.turtle_error
        return self.turtle_mode

    async def get_session_stats(self):
        self.calls["stats"] += 1
        await self._delay()
        if self.stats_error:
            raise self.stats_error
        return self.stats

    async def aclose(self):
        self.closed = True


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test")


@pytest.fixture
def fake_client():
    """Fake client where every query succeeds."""
    return FakeTransmissionClient()


@pytest.fixture
def collector(fake_client, logger):
    """TransmissionCollector backed by the fake client."""
    return TransmissionCollector(fake_client, logger, port_check_timeout=0.5)


@pytest.fixture
def rpc_error():
    return TransmissionRPCError("daemon unavailable", "session-get")
