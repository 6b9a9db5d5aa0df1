"""Tests for TransmissionCollector."""

import asyncio
import math
from collections import Counter
from unittest.mock import patch

import pytest

from conftest import FakeTransmissionClient
from transmission_exporter.collectors.transmission_collector import TransmissionCollector
from transmission_exporter.services.transmission_client import (
    SessionStats,
    TransmissionConnectionError,
    TransmissionRPCError,
)
from transmission_exporter.utils.metrics import MetricKind


EXPECTED_NAMES = {
    "transmission_is_port_open",
    "transmission_is_turtle_mode_active",
    "transmission_active_torrents",
    "transmission_paused_torrents",
    "transmission_downloaded_bytes_total",
    "transmission_uploaded_bytes_total",
}

STATS_NAMES = {
    "transmission_active_torrents",
    "transmission_paused_torrents",
    "transmission_downloaded_bytes_total",
    "transmission_uploaded_bytes_total",
}


def by_name(samples):
    return {s.descriptor.name: s for s in samples}


class TestDescribe:
    """Test suite for descriptor registration."""

    def test_describe_names(self, collector):
        """Catalog contains exactly the six gauges."""
        names = [d.name for d in collector.describe()]
        assert set(names) == EXPECTED_NAMES
        assert len(names) == len(EXPECTED_NAMES)

    def test_describe_gauges_without_labels(self, collector):
        for desc in collector.describe():
            assert desc.kind == MetricKind.GAUGE
            assert desc.labels == ()
            assert desc.documentation

    def test_describe_is_idempotent(self, collector):
        """Repeated calls return the very same descriptor objects."""
        first = collector.describe()
        second = collector.describe()
        assert first == second
        assert all(a is b for a, b in zip(first, second))

    def test_describe_does_no_io(self, collector, fake_client):
        collector.describe()
        assert fake_client.calls == {"port": 0, "turtle": 0, "stats": 0}

    @pytest.mark.asyncio
    async def test_describe_independent_of_failures(self, logger):
        """Catalog stays the same after a fully failing scrape."""
        client = FakeTransmissionClient(
            port_error=TransmissionConnectionError("down"),
            turtle_error=TransmissionConnectionError("down"),
            stats_error=TransmissionConnectionError("down"),
        )
        collector = TransmissionCollector(client, logger)
        before = collector.describe()
        await collector.scrape()
        assert collector.describe() == before


class TestScrapeSuccess:
    """Test suite for scrapes where every query succeeds."""

    @pytest.mark.asyncio
    async def test_one_sample_per_descriptor(self, collector):
        samples = await collector.scrape()

        names = Counter(s.descriptor.name for s in samples)
        assert set(names) == EXPECTED_NAMES
        assert all(count == 1 for count in names.values())
        assert all(s.is_valid for s in samples)
        assert all(math.isfinite(s.value) for s in samples)

    @pytest.mark.asyncio
    async def test_values(self, collector):
        samples = by_name(await collector.scrape())

        assert samples["transmission_is_port_open"].value == 1.0
        assert samples["transmission_is_turtle_mode_active"].value == 0.0
        assert samples["transmission_active_torrents"].value == 3.0
        assert samples["transmission_paused_torrents"].value == 2.0
        assert samples["transmission_downloaded_bytes_total"].value == 1024.0
        assert samples["transmission_uploaded_bytes_total"].value == 4096.0

    @pytest.mark.asyncio
    async def test_boolean_gauges_flipped(self, logger):
        client = FakeTransmissionClient(port_open=False, turtle_mode=True)
        samples = by_name(await TransmissionCollector(client, logger).scrape())

        assert samples["transmission_is_port_open"].value == 0.0
        assert samples["transmission_is_turtle_mode_active"].value == 1.0

    @pytest.mark.asyncio
    async def test_session_stats_single_round_trip(self, collector, fake_client):
        """Four stats gauges come from one upstream call."""
        await collector.scrape()
        assert fake_client.calls == {"port": 1, "turtle": 1, "stats": 1}

    @pytest.mark.asyncio
    async def test_large_byte_counters(self, logger):
        stats = SessionStats(0, 0, 5 * 2**40, 3 * 2**40)
        client = FakeTransmissionClient(stats=stats)
        samples = by_name(await TransmissionCollector(client, logger).scrape())

        assert samples["transmission_downloaded_bytes_total"].value == float(5 * 2**40)
        assert samples["transmission_uploaded_bytes_total"].value == float(3 * 2**40)

    @pytest.mark.asyncio
    async def test_no_logging_on_success(self, collector):
        with patch.object(collector.logger, "warning") as warning, \
                patch.object(collector.logger, "error") as error:
            await collector.scrape()

        warning.assert_not_called()
        error.assert_not_called()


class TestScrapeFailures:
    """Test suite for per-query failure handling."""

    @pytest.mark.asyncio
    async def test_port_failure_degrades_to_closed(self, logger):
        client = FakeTransmissionClient(port_error=TransmissionConnectionError("connection refused"))
        collector = TransmissionCollector(client, logger)

        with patch.object(collector.logger, "warning") as warning:
            samples = await collector.scrape()

        port = by_name(samples)["transmission_is_port_open"]
        assert port.is_valid
        assert port.value == 0.0
        assert all(s.is_valid for s in samples)
        warning.assert_called_once()
        assert warning.call_args.kwargs["extra"]["query"] == "port-test"

    @pytest.mark.asyncio
    async def test_port_timeout_degrades_to_closed(self, logger):
        """A hanging port test is cut off by its own deadline."""
        client = FakeTransmissionClient(latency=(1.0, 1.0))
        # Only the port query should be slow
        client.is_turtle_mode_enabled = _instant(False)
        client.get_session_stats = _instant(SessionStats(1, 1, 1, 1))
        collector = TransmissionCollector(client, logger, port_check_timeout=0.05)

        with patch.object(collector.logger, "warning") as warning:
            samples = await asyncio.wait_for(collector.scrape(), timeout=0.8)

        port = by_name(samples)["transmission_is_port_open"]
        assert port.is_valid
        assert port.value == 0.0
        warning.assert_called_once()
        assert "TimeoutError" in warning.call_args.kwargs["extra"]["error"]

    @pytest.mark.asyncio
    async def test_turtle_failure_yields_one_invalid_marker(self, logger, rpc_error):
        client = FakeTransmissionClient(turtle_error=rpc_error)
        collector = TransmissionCollector(client, logger)

        with patch.object(collector.logger, "error") as error:
            samples = await collector.scrape()

        invalid = [s for s in samples if not s.is_valid]
        assert len(invalid) == 1
        assert invalid[0].descriptor.name == "transmission_is_turtle_mode_active"
        assert invalid[0].error is rpc_error
        assert invalid[0].value is None
        assert {s.descriptor.name for s in samples if s.is_valid} == EXPECTED_NAMES - {
            "transmission_is_turtle_mode_active"
        }
        error.assert_called_once()
        assert error.call_args.kwargs["extra"]["query"] == "session-get"

    @pytest.mark.asyncio
    async def test_stats_failure_invalidates_all_four(self, logger):
        failure = TransmissionRPCError("too many requests", "session-stats")
        client = FakeTransmissionClient(stats_error=failure)
        collector = TransmissionCollector(client, logger)

        with patch.object(collector.logger, "error") as error:
            samples = await collector.scrape()

        invalid = {s.descriptor.name for s in samples if not s.is_valid}
        valid = {s.descriptor.name for s in samples if s.is_valid}
        assert invalid == STATS_NAMES
        assert valid == {"transmission_is_port_open", "transmission_is_turtle_mode_active"}
        assert all(s.error is failure for s in samples if not s.is_valid)
        # One failed call, one log line
        error.assert_called_once()

    @pytest.mark.asyncio
    async def test_all_failures_still_cover_catalog(self, logger):
        err = TransmissionConnectionError("no route to host")
        client = FakeTransmissionClient(port_error=err, turtle_error=err, stats_error=err)
        samples = await TransmissionCollector(client, logger).scrape()

        assert {s.descriptor.name for s in samples} == EXPECTED_NAMES
        assert len(samples) == len(EXPECTED_NAMES)
        assert [s.descriptor.name for s in samples if s.is_valid] == ["transmission_is_port_open"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, logger):
        """Non-client errors from a query do not escape the scrape."""
        client = FakeTransmissionClient(stats_error=KeyError("activeTorrentCount"))
        samples = await TransmissionCollector(client, logger).scrape()

        invalid = {s.descriptor.name for s in samples if not s.is_valid}
        assert invalid == STATS_NAMES

    @pytest.mark.asyncio
    async def test_no_stale_values_between_scrapes(self, logger):
        """A failing scrape never reuses the previous cycle's values."""
        client = FakeTransmissionClient()
        collector = TransmissionCollector(client, logger)
        first = by_name(await collector.scrape())
        assert first["transmission_active_torrents"].value == 3.0

        client.stats_error = TransmissionConnectionError("gone")
        second = by_name(await collector.scrape())
        assert not second["transmission_active_torrents"].is_valid
        assert second["transmission_active_torrents"].value is None

        client.stats_error = None
        client.stats = SessionStats(7, 0, 0, 0)
        third = by_name(await collector.scrape())
        assert third["transmission_active_torrents"].value == 7.0


class TestConcurrency:
    """Test suite for the fan-out/fan-in contract."""

    @pytest.mark.asyncio
    async def test_sub_collections_run_concurrently(self, logger):
        """Total scrape time is bounded by the slowest query, not the sum."""
        client = FakeTransmissionClient(latency=(0.2, 0.2))
        collector = TransmissionCollector(client, logger, port_check_timeout=1.0)

        loop = asyncio.get_running_loop()
        start = loop.time()
        samples = await collector.scrape()
        elapsed = loop.time() - start

        assert len(samples) == len(EXPECTED_NAMES)
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_hundred_concurrent_scrapes(self, logger):
        """Concurrent scrapes with random latency are each complete."""
        client = FakeTransmissionClient(latency=(0.0, 0.02))
        collector = TransmissionCollector(client, logger, port_check_timeout=1.0)

        results = await asyncio.wait_for(
            asyncio.gather(*(collector.scrape() for _ in range(100))),
            timeout=10
        )

        assert len(results) == 100
        for samples in results:
            names = Counter(s.descriptor.name for s in samples)
            assert set(names) == EXPECTED_NAMES
            assert all(count == 1 for count in names.values())
            assert all(s.is_valid for s in samples)
        assert client.calls == {"port": 100, "turtle": 100, "stats": 100}

    @pytest.mark.asyncio
    async def test_hundred_concurrent_scrapes_with_failures(self, logger):
        """Failing queries interleaved with slow ones never yield a partial scrape."""
        client = FakeTransmissionClient(
            latency=(0.0, 0.02),
            turtle_error=TransmissionConnectionError("flaky"),
        )
        collector = TransmissionCollector(client, logger, port_check_timeout=1.0)

        results = await asyncio.wait_for(
            asyncio.gather(*(collector.scrape() for _ in range(100))),
            timeout=10
        )

        for samples in results:
            assert {s.descriptor.name for s in samples} == EXPECTED_NAMES
            assert len(samples) == len(EXPECTED_NAMES)


def _instant(value):
    async def query():
        return value
    return query
