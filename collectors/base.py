"""Base scraper ABC, shared data types and the scrape error taxonomy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Union

# Closed set of values a parser may attach to a measurement.
RawValue = Union[None, bool, int, float, str]


@dataclass(frozen=True)
class Measurement:
    name: str
    value: RawValue
    labels: Mapping[str, str] = field(default_factory=dict)


class ScrapeError(Exception):
    """Base class for everything that can abort one endpoint's scrape."""


class MalformedReport(ScrapeError):
    """Plain-text status report does not have the expected structure."""


class FieldCountMismatch(ScrapeError):
    """A status line split into the wrong number of fields."""


class NumericParseError(ScrapeError, ValueError):
    """A token that should hold an unsigned integer does not."""


class DecodeError(ScrapeError):
    """JSON status document could not be decoded into a status record."""


class EndpointError(ScrapeError):
    """Fetching an endpoint failed: transport, status code or content type."""


class ConversionError(ValueError):
    """A raw measurement value could not be turned into a float."""


class EmptyValue(ConversionError):
    pass


class NonFiniteValue(ConversionError):
    pass


class UnsupportedType(ConversionError):
    pass


class BaseScraper(ABC):
    """Abstract base for status report parsers."""

    @abstractmethod
    def scrape(self, body: bytes, labels: Mapping[str, str]) -> Iterator[Measurement]:
        """Yield measurements parsed from ``body``.

        Measurements are yielded as soon as they are computed, so a consumer
        keeps whatever was produced before a ``ScrapeError`` is raised.
        """
        ...
