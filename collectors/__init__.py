from .base import (
    BaseScraper,
    ConversionError,
    DecodeError,
    EmptyValue,
    EndpointError,
    FieldCountMismatch,
    MalformedReport,
    Measurement,
    NonFiniteValue,
    NumericParseError,
    ScrapeError,
    UnsupportedType,
)
from .convert import to_float
from .nginx_collector import Endpoint, EndpointStatus, GaugeSeries, NginxCollector, StatusFormat
from .plus_status import PlusStatusScraper, peer_matcher
from .stub_status import StubStatusScraper

__version__ = "0.3.0"

__all__ = [
    "BaseScraper",
    "ConversionError",
    "DecodeError",
    "EmptyValue",
    "Endpoint",
    "EndpointError",
    "EndpointStatus",
    "FieldCountMismatch",
    "GaugeSeries",
    "MalformedReport",
    "Measurement",
    "NginxCollector",
    "NonFiniteValue",
    "NumericParseError",
    "PlusStatusScraper",
    "ScrapeError",
    "StatusFormat",
    "StubStatusScraper",
    "UnsupportedType",
    "peer_matcher",
    "to_float",
]
