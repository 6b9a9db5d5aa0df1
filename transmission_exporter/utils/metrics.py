"""Metric data structures shared by the collector and the exposition layer."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, Tuple, TypeVar, Union


T = TypeVar('T')


class MetricKind(Enum):
    """Value kind of an exposed metric."""

    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDescriptor:
    """Immutable definition of one exposed metric."""

    name: str
    documentation: str
    kind: MetricKind = MetricKind.GAUGE
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Success(Generic[T]):
    """Query completed and produced a value."""

    value: T


@dataclass(frozen=True)
class Failure:
    """Query failed with an error."""

    error: BaseException


QueryOutcome = Union[Success[Any], Failure]


@dataclass(frozen=True)
class Sample:
    """
    One metric reading of a single scrape.

    Either carries a numeric value, or an error meaning the metric could not
    be collected this cycle and must not be trusted.
    """

    descriptor: MetricDescriptor
    value: Optional[float] = None
    error: Optional[BaseException] = None

    @classmethod
    def valid(cls, descriptor: MetricDescriptor, value: float) -> 'Sample':
        return cls(descriptor=descriptor, value=float(value))

    @classmethod
    def invalid(cls, descriptor: MetricDescriptor, error: BaseException) -> 'Sample':
        return cls(descriptor=descriptor, error=error)

    @property
    def is_valid(self) -> bool:
        return self.error is None
