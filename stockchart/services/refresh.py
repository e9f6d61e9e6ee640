"""Keeps chart points for the selected time range fresh.

Each refresh serves from cache while the entry is younger than the cache
duration, otherwise waits out the request delay and goes upstream. A single
polling task re-runs the refresh every poll interval for the active range;
switching range tears that task down and arms a new one.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

import httpx

from stockchart.config import Settings, settings
from stockchart.errors import FetchError, TransformError
from stockchart.models import CacheEntry, ChartPoint, TimeRange
from stockchart.services.cache import CacheStore, cache_key
from stockchart.services.stock_history import fetch_history, query_params, transform_data

logger = logging.getLogger(__name__)


class RefreshController:
    def __init__(
        self,
        store: CacheStore,
        client: httpx.AsyncClient,
        config: Settings = settings,
        sleep=asyncio.sleep,
        clock=time.time,
    ):
        self.store = store
        self.client = client
        self.config = config
        self._sleep = sleep
        self._clock = clock

        self.range = TimeRange.parse(config.default_range)
        self.points: list[ChartPoint] = []
        self.last_error: str | None = None
        self.last_updated: str | None = None
        self.source: str | None = None

        # Bumped on every range switch; results from older generations are dropped.
        self._generation = 0
        self._timer: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._in_flight: dict[int, int] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def refresh(self, time_range: TimeRange | str) -> list[ChartPoint]:
        """Return chart points for time_range, from cache when fresh.

        Raises FetchError when the upstream request fails; nothing is cached then.
        """
        points, _source = await self._refresh(TimeRange.parse(time_range))
        return points

    async def _refresh(self, time_range: TimeRange) -> tuple[list[ChartPoint], str]:
        key = cache_key(self.config.cache_namespace, time_range.value)
        cached = await asyncio.to_thread(self.store.get, key)
        if cached is not None and not self.store.is_expired(cached.timestamp, now=self._now_ms()):
            try:
                points = transform_data(cached.data)
            except TransformError as e:
                logger.warning("Ignoring unusable cache entry %s: %s", key, e)
            else:
                logger.debug("Cache hit for %s", key)
                return points, "cache"

        params = query_params(time_range)
        # Fixed delay before every upstream call
        await self._sleep(self.config.request_delay_seconds)
        try:
            raw = await fetch_history(self.client, params, self.config)
        except FetchError as e:
            logger.error("Error fetching stock data for %s: %s", time_range.value, e)
            raise

        points = transform_data(raw)
        await asyncio.to_thread(self.store.set, key, CacheEntry(data=raw, timestamp=self._now_ms()))
        return points, "upstream"

    # -- polling lifecycle ------------------------------------------------

    def start(self) -> None:
        """Refresh the current range now and arm the polling timer."""
        self._arm(self.range)

    def set_range(self, value: TimeRange | str) -> TimeRange:
        """Switch the active range, replacing the polling timer."""
        time_range = TimeRange.parse(value)
        if time_range == self.range and self._timer is not None and not self._timer.done():
            return time_range
        logger.info("Range changed %s -> %s", self.range.value, time_range.value)
        self.range = time_range
        self._arm(time_range)
        return time_range

    async def stop(self) -> None:
        tasks = list(self._pending)
        if self._timer is not None:
            tasks.append(self._timer)
            self._timer = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _arm(self, time_range: TimeRange) -> None:
        self._generation += 1
        generation = self._generation
        if self._timer is not None:
            self._timer.cancel()
        self._spawn(self._run(time_range, generation))
        self._timer = asyncio.create_task(self._poll(generation))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _poll(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval_seconds)
            self._spawn(self._run(self.range, generation))

    async def refresh_active(self) -> list[ChartPoint]:
        """Refresh the active range now and update displayed state.

        Unlike polling, errors are raised to the caller after being recorded.
        """
        return await self._run(self.range, self._generation, reraise=True)

    async def _run(
        self, time_range: TimeRange, generation: int, reraise: bool = False
    ) -> list[ChartPoint] | None:
        """One refresh attempt that updates displayed state."""
        self._in_flight[generation] = self._in_flight.get(generation, 0) + 1
        try:
            points, source = await self._refresh(time_range)
        except FetchError as e:
            # Keep whatever is already displayed
            if generation == self._generation:
                self.last_error = str(e)
            if reraise:
                raise
            return None
        except Exception as e:
            logger.exception("Refresh for %s failed", time_range.value)
            if generation == self._generation:
                self.last_error = str(e)
            if reraise:
                raise
            return None
        finally:
            remaining = self._in_flight[generation] - 1
            if remaining:
                self._in_flight[generation] = remaining
            else:
                del self._in_flight[generation]

        if generation != self._generation:
            logger.info("Discarding stale %s result; active range is %s", time_range.value, self.range.value)
            return points

        self.points = points
        self.source = source
        self.last_error = None
        self.last_updated = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        return points

    @property
    def loading(self) -> bool:
        """True while any refresh for the active range is in flight."""
        return self._in_flight.get(self._generation, 0) > 0

    def snapshot(self) -> dict:
        return {
            "symbol": self.config.symbol,
            "range": self.range.value,
            "loading": self.loading,
            "points": self.points,
            "last_updated": self.last_updated,
            "source": self.source,
            "error": self.last_error,
        }
