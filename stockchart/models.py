"""Shapes shared by the cache, the upstream client and the HTTP routes."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, TypedDict

from stockchart.errors import CacheReadError, UnsupportedRangeError


class TimeRange(str, Enum):
    ONE_DAY = "1D"
    FIVE_DAYS = "5D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"

    @classmethod
    def parse(cls, value: "str | TimeRange") -> "TimeRange":
        """Normalize a user-supplied range label ("1m" and "1M" are the same)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnsupportedRangeError(str(value), [r.value for r in cls]) from None


class QueryParams(NamedTuple):
    interval: str
    period: str


class RawPricePoint(TypedDict):
    date: str
    date_utc: int        # epoch seconds
    open: float
    high: float
    low: float
    close: float
    volume: int
    adjclose: float


class RawMeta(TypedDict, total=False):
    symbol: str
    currency: str
    processedTime: str


class RawResponse(TypedDict):
    meta: RawMeta
    body: dict[str, RawPricePoint]


class ChartPoint(TypedDict):
    date: str            # ISO-8601 UTC, millisecond precision
    value: float


@dataclass
class CacheEntry:
    """Timestamped snapshot of one upstream response."""

    data: RawResponse
    timestamp: int  # epoch milliseconds at write time

    def to_json(self) -> str:
        return json.dumps({"data": self.data, "timestamp": self.timestamp})

    @classmethod
    def from_json(cls, payload: str) -> "CacheEntry":
        try:
            decoded = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise CacheReadError(f"Undecodable cache payload: {e}") from e

        if not isinstance(decoded, dict) or "data" not in decoded or "timestamp" not in decoded:
            raise CacheReadError("Cache payload is missing 'data' or 'timestamp'")
        try:
            timestamp = int(decoded["timestamp"])
        except (TypeError, ValueError) as e:
            raise CacheReadError(f"Invalid cache timestamp: {decoded['timestamp']!r}") from e
        return cls(data=decoded["data"], timestamp=timestamp)
