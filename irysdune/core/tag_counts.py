#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Daily transaction counts from the Irys tag index.

Pages through every transaction carrying all requested tags (newest first),
buckets them by UTC day over the requested window and returns a gap-free
series. Failures are best effort: a failed page ends pagination and whatever
has accumulated is returned.
"""
from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional, Sequence

from ..shared.cache import TTLCache, make_cache_key
from ..shared.config import TagQueryConfig
from ..shared.errors import FailurePolicy
from ..shared.irys_client import IrysGraphQLClient, extract_page
from ..shared.logging_setup import get_logger
from ..shared.models import MonthsWindow, ProgressReport, Tag, TimeSeriesPoint
from ..shared.scheduler import QueryScheduler
from ..shared.utils import MS_PER_DAY, day_range, day_start_ms, day_string, normalize_timestamp_ms, now_ms, resolve_window

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressReport], None]

PROGRESS_CAP = 95
PENDING_PAGE_ESTIMATE = 100


def estimate_progress(fetched: int) -> int:
    """Logarithmic progress estimate while the total is unknown"""
    return round(min(PROGRESS_CAP, math.log10(fetched + 1) * 30))


class TagCountAggregator:
    failure_policy = FailurePolicy.BEST_EFFORT

    def __init__(
        self,
        client: IrysGraphQLClient,
        scheduler: QueryScheduler,
        cache: TTLCache,
        config: Optional[TagQueryConfig] = None,
        cache_ttl: Optional[float] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            client: Tag-index client (anything with `query_transactions`)
            scheduler: Shared scheduler every page request goes through
            cache: Shared TTL cache
            config: Paging/window settings
            cache_ttl: Seconds to keep non-empty series (cache default when None)
            clock: Epoch-ms clock for the window end (injectable for tests)
        """
        self.client = client
        self.scheduler = scheduler
        self.cache = cache
        self.config = config or TagQueryConfig()
        self.cache_ttl = cache_ttl
        self._clock = clock or now_ms

    def fetch_daily_counts(
        self,
        tags: Sequence[Tag],
        progress: Optional[ProgressCallback] = None,
        date_range: Optional[MonthsWindow] = None,
    ) -> List[TimeSeriesPoint]:
        """
        Daily counts of transactions carrying every tag in `tags`

        Args:
            tags: Tag filters (ANDed); empty returns [] without a request
            progress: Optional progress sink
            date_range: Window length; config default (6 months) when None

        Returns:
            One TimeSeriesPoint per UTC day in the window, ascending
        """
        def report(current: float, total: float, percentage: float) -> None:
            if progress is not None:
                progress(ProgressReport(current=current, total=total, percentage=percentage))

        if not tags:
            logger.warning("Tag query without tags rejected; it would match the whole index")
            report(0, 0, 100)
            return []

        months = date_range.months if date_range is not None else self.config.default_months
        cache_key = make_cache_key("query-tags", {"tags": sorted(t.pair for t in tags), "months": months})
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Using cached tag counts for {cache_key}")
            report(1, 1, 100)
            return cached

        window = resolve_window(MonthsWindow(months), end_ms=self._clock())
        buckets: Dict[str, int] = {d: 0 for d in window.day_strings}
        tag_label = ",".join(t.pair for t in tags)
        logger.info(f"Fetching tag counts for [{tag_label}] from {day_string(window.start_ms)} to {day_string(window.end_ms)} ({months:g} months)")

        cursor: Optional[str] = None
        fetched = 0
        pages = 0
        in_range = 0
        out_of_range = 0
        oldest_ms: Optional[int] = None
        newest_ms: Optional[int] = None
        page_cap_hit = False

        while True:
            if self.config.max_pages is not None and pages >= self.config.max_pages:
                page_cap_hit = True
                logger.warning(f"Page cap of {self.config.max_pages} reached for [{tag_label}]")
                break

            try:
                response = self.scheduler.run(
                    f"query-tags:{tag_label}:{cursor or ''}",
                    lambda after=cursor: self.client.query_transactions(tags, first=self.config.page_size, after=after, order="DESC"),
                )
            except Exception as e:
                logger.error(f"Tag page request failed for [{tag_label}]: {e}")
                break

            if not response.success:
                logger.error(f"Tag page request failed for [{tag_label}]: {response.error}")
                break

            page = extract_page(response.data)
            if page is None:
                logger.error(f"Invalid response structure for [{tag_label}]: missing data.transactions")
                break

            edges = page["edges"]
            if not edges:
                break
            pages += 1

            for edge in edges:
                node = edge.get("node") or {}
                ts = normalize_timestamp_ms(node.get("timestamp"))
                if ts is None:
                    logger.warning(f"Invalid timestamp {node.get('timestamp')!r} on transaction {node.get('id')}")
                    continue
                oldest_ms = ts if oldest_ms is None else min(oldest_ms, ts)
                newest_ms = ts if newest_ms is None else max(newest_ms, ts)

                day = day_string(ts)
                if window.contains(ts):
                    buckets[day] += 1
                    in_range += 1
                else:
                    out_of_range += 1
                    logger.debug(f"Date out of range: {day} (transaction {str(node.get('id', ''))[:8]}...)")
                    if not self.config.drop_out_of_range_samples:
                        buckets[day] = buckets.get(day, 0) + 1

            fetched += len(edges)
            has_next = page["hasNextPage"]
            report(fetched, fetched + (PENDING_PAGE_ESTIMATE if has_next else 0), estimate_progress(fetched))

            cursor = edges[-1].get("cursor")
            if not has_next or not cursor:
                break

        series = self._to_series(buckets)

        logger.info(
            f"Tag query summary for [{tag_label}]: fetched={fetched}, pages={pages}, "
            f"in_range={in_range}, out_of_range={out_of_range}, active_days={sum(1 for p in series if p.count)}"
        )
        if out_of_range and self.config.drop_out_of_range_samples:
            logger.warning(f"{out_of_range} transaction(s) outside the requested window were dropped for [{tag_label}]")
        self._warn_if_stale(tag_label, window.start_ms, window.end_ms, oldest_ms, newest_ms, fetched, page_cap_hit)

        kept = in_range + (0 if self.config.drop_out_of_range_samples else out_of_range)
        if kept:
            self.cache.set(cache_key, series, ttl=self.cache_ttl)

        report(fetched, fetched, 100)
        return series

    def _to_series(self, buckets: Dict[str, int]) -> List[TimeSeriesPoint]:
        days = sorted(buckets)
        if not days:
            return []
        # out-of-range buckets may leave holes between the window and the extra days
        full = day_range(day_start_ms(days[0]), day_start_ms(days[-1]))
        return [TimeSeriesPoint(timestamp=day_start_ms(d), count=buckets.get(str(d), 0)) for d in full]

    def _warn_if_stale(self, label: str, start_ms: int, end_ms: int, oldest_ms: Optional[int], newest_ms: Optional[int], fetched: int, page_cap_hit: bool) -> None:
        if oldest_ms is None or newest_ms is None:
            return
        days_since_newest = (end_ms - newest_ms) // MS_PER_DAY
        if days_since_newest > self.config.stale_after_days:
            logger.warning(f"No data found for the last {days_since_newest} days for [{label}]; recent data may be missing")
        if oldest_ms > start_ms and (page_cap_hit or fetched >= self.config.page_size):
            logger.warning(
                f"Oldest data for [{label}] is from {day_string(oldest_ms)} but the window starts {day_string(start_ms)}; "
                f"older data may not have been fetched"
            )

    def fetch_multiple(
        self,
        tag_groups: Dict[str, Sequence[Tag]],
        progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, List[TimeSeriesPoint]]:
        """Run several tag queries in order; progress counts completed groups."""
        results: Dict[str, List[TimeSeriesPoint]] = {}
        total = len(tag_groups)
        for completed, (group_id, tags) in enumerate(tag_groups.items(), start=1):
            logger.info(f"Processing tag group {group_id}")
            results[group_id] = self.fetch_daily_counts(tags)
            if progress is not None:
                progress(ProgressReport(current=completed, total=total, percentage=round(completed / total * 100)))
        return results
