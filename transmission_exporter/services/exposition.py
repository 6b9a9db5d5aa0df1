"""Bridge between the async collector and prometheus_client."""

import asyncio
import logging
import threading
from typing import Dict, Iterable, Optional

from prometheus_client import CollectorRegistry
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from ..collectors.base import BaseCollector
from ..utils.metrics import MetricDescriptor, MetricKind, Sample


class ScrapeBridge(Collector):
    """
    prometheus_client collector running scrapes on a dedicated event loop.

    The registry calls collect() from HTTP handler threads; each call
    submits one scrape to the bridge's loop and blocks until it is done.
    Every scrape and the upstream client share that single loop.
    """

    def __init__(self, collector: BaseCollector, logger: logging.Logger = None):
        """
        Initialize scrape bridge.

        Args:
            collector: Async collector to expose
            logger: Optional logger instance
        """
        self.collector = collector
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the event loop thread."""
        if self.running:
            self.logger.warning("Scrape loop is already running")
            return

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="scrape-loop",
            daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Close the upstream client and stop the event loop thread.

        If the thread is still busy after timeout the loop is left open and
        the bridge keeps its references, so stop() can be called again.
        """
        if self._thread is None:
            return

        if self._thread.is_alive():
            aclose = getattr(self.collector.client, "aclose", None)
            if aclose is not None:
                future = asyncio.run_coroutine_threadsafe(aclose(), self._loop)
                try:
                    future.result(timeout)
                except Exception as e:
                    self.logger.warning(f"Failed to close upstream client: {e}")

            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Scrape loop did not stop within {timeout}s, leaving it open")
                return

        self._loop.close()
        self._thread = None
        self._loop = None

    def describe(self) -> Iterable[GaugeMetricFamily]:
        """Yield one empty family per descriptor, without touching upstream."""
        for desc in self.collector.describe():
            yield self._family(desc)

    def collect(self) -> Iterable[GaugeMetricFamily]:
        """Run one scrape and yield a family per descriptor."""
        if not self.running:
            raise RuntimeError("ScrapeBridge.start() must be called before collecting")

        future = asyncio.run_coroutine_threadsafe(self.collector.scrape(), self._loop)
        samples: Dict[str, Sample] = {s.descriptor.name: s for s in future.result()}

        for desc in self.collector.describe():
            family = self._family(desc)
            sample = samples.get(desc.name)
            if sample is None:
                self.logger.error(f"Scrape produced no sample for {desc.name}")
            elif sample.is_valid:
                family.add_metric([], sample.value)
            # Invalid markers are exposed as a declared family without a value
            yield family

    @staticmethod
    def _family(desc: MetricDescriptor) -> GaugeMetricFamily:
        if desc.kind is not MetricKind.GAUGE:
            raise ValueError(f"Unsupported metric kind {desc.kind} for {desc.name}")
        return GaugeMetricFamily(desc.name, desc.documentation, labels=list(desc.labels))


def build_registry(bridge: ScrapeBridge) -> CollectorRegistry:
    """
    Create a dedicated registry holding only the bridge.

    Raises:
        ValueError: If the bridge's metric names collide
    """
    registry = CollectorRegistry(auto_describe=True)
    registry.register(bridge)
    return registry
