"""Collector for Transmission torrent daemon status."""

import asyncio
import logging
from typing import List, Tuple

from ..services.transmission_client import TransmissionClient
from ..utils.metrics import Failure, MetricDescriptor, Sample
from .base import BaseCollector, Emit, gauge_from_bool, query_outcome


NAMESPACE = "transmission"

DEFAULT_PORT_CHECK_TIMEOUT = 3.0


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join non-empty name parts with underscores."""
    return "_".join(part for part in (namespace, subsystem, name) if part)


class TransmissionCollector(BaseCollector):
    """
    Collector for Transmission status metrics.

    Every scrape runs three independent queries: peer port reachability,
    turtle mode and session statistics.
    """

    def __init__(
        self,
        client: TransmissionClient,
        logger: logging.Logger,
        port_check_timeout: float = DEFAULT_PORT_CHECK_TIMEOUT
    ):
        """
        Initialize Transmission collector.

        Args:
            client: Transmission RPC client, shared by concurrent queries
            logger: Logger instance
            port_check_timeout: Deadline in seconds for the peer port test
        """
        super().__init__(client, logger)
        self.port_check_timeout = port_check_timeout

        self.port_open_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "is_port_open"),
            "Indicates whether or not the peer port is accessible from the internet.",
        )

        self.turtle_mode_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "is_turtle_mode_active"),
            "Indicates whether or not turtle mode is active.",
        )

        self.active_torrents_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "active_torrents"),
            "Number of active torrents.",
        )
        self.paused_torrents_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "paused_torrents"),
            "Number of paused torrents.",
        )

        self.downloaded_bytes_total_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "downloaded_bytes_total"),
            "Total amount of downloaded data.",
        )
        self.uploaded_bytes_total_desc = MetricDescriptor(
            build_fq_name(NAMESPACE, "", "uploaded_bytes_total"),
            "Total amount of uploaded data.",
        )

        self._descriptors = (
            self.port_open_desc,
            self.turtle_mode_desc,
            self.active_torrents_desc,
            self.paused_torrents_desc,
            self.downloaded_bytes_total_desc,
            self.uploaded_bytes_total_desc,
        )

    def describe(self) -> Tuple[MetricDescriptor, ...]:
        return self._descriptors

    def sub_collections(self):
        return [
            self.collect_port_open,
            self.collect_turtle_mode,
            self.collect_session_stats,
        ]

    @query_outcome
    async def _query_port_open(self):
        return await asyncio.wait_for(self.client.is_port_open(), timeout=self.port_check_timeout)

    @query_outcome
    async def _query_turtle_mode(self):
        return await self.client.is_turtle_mode_enabled()

    @query_outcome
    async def _query_session_stats(self):
        return await self.client.get_session_stats()

    async def collect_port_open(self, emit: Emit) -> None:
        """Emit peer port reachability, treating any failure as closed."""
        outcome = await self._query_port_open()

        if isinstance(outcome, Failure):
            self.logger.warning(
                f"Failed to get peer port state, considering it closed: {_describe_error(outcome.error)}",
                extra={"query": "port-test", "error": _describe_error(outcome.error)}
            )
            open_ = False
        else:
            open_ = outcome.value

        emit(Sample.valid(self.port_open_desc, gauge_from_bool(open_)))

    async def collect_turtle_mode(self, emit: Emit) -> None:
        """Emit turtle mode state or an invalid marker."""
        outcome = await self._query_turtle_mode()

        if isinstance(outcome, Failure):
            self.logger.error(
                f"Failed to get turtle mode state: {_describe_error(outcome.error)}",
                extra={"query": "session-get", "error": _describe_error(outcome.error)}
            )
            emit(Sample.invalid(self.turtle_mode_desc, outcome.error))
            return

        emit(Sample.valid(self.turtle_mode_desc, gauge_from_bool(outcome.value)))

    async def collect_session_stats(self, emit: Emit) -> None:
        """Emit torrent counts and transfer totals, all invalid if the query fails."""
        outcome = await self._query_session_stats()
        descriptors: List[MetricDescriptor] = [
            self.active_torrents_desc,
            self.paused_torrents_desc,
            self.downloaded_bytes_total_desc,
            self.uploaded_bytes_total_desc,
        ]

        if isinstance(outcome, Failure):
            self.logger.error(
                f"Failed to get session statistics: {_describe_error(outcome.error)}",
                extra={"query": "session-stats", "error": _describe_error(outcome.error)}
            )
            for desc in descriptors:
                emit(Sample.invalid(desc, outcome.error))
            return

        stats = outcome.value
        values = [
            stats.active_torrents,
            stats.paused_torrents,
            stats.downloaded_bytes,
            stats.uploaded_bytes,
        ]
        for desc, value in zip(descriptors, values):
            emit(Sample.valid(desc, value))


def _describe_error(error: BaseException) -> str:
    # asyncio timeouts carry no message
    return str(error) or type(error).__name__
