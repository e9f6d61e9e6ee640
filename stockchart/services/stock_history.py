"""RapidAPI Yahoo Finance client for historical stock prices.

Maps a TimeRange to the upstream (interval, period) query and converts the
raw response into chart points.
"""

import logging

import httpx
import pandas as pd

from stockchart.config import Settings, settings
from stockchart.errors import FetchError, TransformError
from stockchart.models import ChartPoint, QueryParams, RawResponse, TimeRange

logger = logging.getLogger(__name__)

QUERY_PARAMS: dict[TimeRange, QueryParams] = {
    TimeRange.ONE_DAY: QueryParams(interval="30m", period="1d"),
    TimeRange.FIVE_DAYS: QueryParams(interval="90m", period="5d"),
    TimeRange.ONE_WEEK: QueryParams(interval="2h", period="1w"),
    TimeRange.ONE_MONTH: QueryParams(interval="1d", period="1mo"),
    TimeRange.ONE_YEAR: QueryParams(interval="1wk", period="12mo"),
    TimeRange.FIVE_YEARS: QueryParams(interval="1mo", period="60mo"),
}


def query_params(time_range: TimeRange | str) -> QueryParams:
    return QUERY_PARAMS[TimeRange.parse(time_range)]


async def fetch_history(
    client: httpx.AsyncClient, params: QueryParams, config: Settings = settings
) -> RawResponse:
    """Fetch raw price history for the configured symbol.

    Raises FetchError on a non-2xx status or when no response arrives.
    """
    logger.info(
        "Requesting %s history (interval=%s, period=%s)", config.symbol, params.interval, params.period
    )
    try:
        resp = await client.get(
            config.history_url,
            params={"symbol": config.symbol, "interval": params.interval, "period": params.period},
            headers=config.credential_headers(),
        )
    except httpx.HTTPError as e:
        raise FetchError(0, str(e) or type(e).__name__) from e

    if not resp.is_success:
        raise FetchError(resp.status_code, resp.reason_phrase)

    try:
        return resp.json()
    except ValueError as e:
        raise TransformError(f"response body is not JSON ({e})") from e


def transform_data(raw: RawResponse) -> list[ChartPoint]:
    """Convert a raw response into chart points, oldest first.

    Each point becomes {date: ISO-8601 of date_utc, value: close}. Pure; the
    same raw response always yields the same points.
    """
    body = raw.get("body") if isinstance(raw, dict) else None
    if body is None:
        raise TransformError("response has no 'body'")

    points = list(body.values()) if isinstance(body, dict) else body
    if not isinstance(points, list):
        raise TransformError(f"'body' must be a mapping or list, got {type(body).__name__}")
    if not points:
        return []
    if not all(isinstance(p, dict) for p in points):
        raise TransformError("every price point must be an object")

    frame = pd.DataFrame.from_records(points)
    missing = {"date_utc", "close"} - set(frame.columns)
    if missing:
        raise TransformError(f"price points missing {sorted(missing)}")

    seconds = pd.to_numeric(frame["date_utc"], errors="coerce")
    close = pd.to_numeric(frame["close"], errors="coerce")
    if seconds.isna().any() or close.isna().any():
        raise TransformError("price points have missing or non-numeric date_utc/close")

    chart = pd.DataFrame(
        {
            "date": pd.to_datetime(seconds * 1000, unit="ms", utc=True),
            "value": close.astype(float),
        }
    ).sort_values("date", kind="stable")

    return [
        ChartPoint(date=_iso_millis(ts), value=float(value))
        for ts, value in zip(chart["date"], chart["value"])
    ]


def _iso_millis(ts: pd.Timestamp) -> str:
    """Format as 2023-11-14T22:13:20.000Z."""
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"
