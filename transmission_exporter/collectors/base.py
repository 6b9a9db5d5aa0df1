"""Base collector abstract class for scrape-time collectors."""

import asyncio
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Callable, List, Tuple
import logging

from ..utils.metrics import Failure, MetricDescriptor, QueryOutcome, Sample, Success


Emit = Callable[[Sample], None]


class BaseCollector(ABC):
    """
    Abstract base class for collectors.

    A collector owns a fixed catalog of descriptors and, on every scrape,
    fans out into independent sub-collections that emit samples onto a
    shared list. Collectors hold no state between scrapes.
    """

    def __init__(self, client: Any, logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            client: Upstream client shared by all sub-collections
            logger: Logger instance
        """
        self.client = client
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    def describe(self) -> Tuple[MetricDescriptor, ...]:
        """
        Return every descriptor this collector can emit.

        Returns:
            Tuple[MetricDescriptor, ...]: The same descriptor objects on every call

        Note:
            Must not perform any I/O.
        """
        pass

    @abstractmethod
    def sub_collections(self) -> List[Callable[[Emit], Any]]:
        """
        Return the coroutine functions making up one scrape.

        Each takes an emit callback and is awaited concurrently with the others.
        """
        pass

    async def scrape(self) -> List[Sample]:
        """
        Run one full collection cycle.

        All sub-collections run concurrently; returns once every one of
        them has finished, whatever their individual outcome.

        Returns:
            List[Sample]: One sample or invalid marker per descriptor, in no
            particular order
        """
        samples: List[Sample] = []
        # Samples are appended from the event loop thread only
        await asyncio.gather(*(fn(samples.append) for fn in self.sub_collections()))
        return samples


def query_outcome(func):
    """
    Decorator turning a query coroutine into a QueryOutcome.

    The wrapped coroutine never raises for ordinary errors: its value is
    returned as Success and any Exception as Failure, so the mapping step
    has to handle both branches explicitly. Cancellation still propagates.

    Args:
        func: Query coroutine to wrap

    Returns:
        Wrapped coroutine returning Success or Failure
    """
    @wraps(func)
    async def wrapper(*args, **kwargs) -> QueryOutcome:
        try:
            return Success(await func(*args, **kwargs))
        except Exception as e:
            return Failure(e)
    return wrapper


def gauge_from_bool(flag: bool) -> float:
    """Map a boolean to a 0.0/1.0 gauge value."""
    return 1.0 if flag else 0.0
