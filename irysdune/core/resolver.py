#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dashboard data resolver.

For every chart of a dashboard, decides which source answers each query
(shared trend data, project snapshot, tag index or on-chain logs), collects
the series and returns them keyed by chart id and then by query id. Preset
queries are stored under both their canonical preset id and the id they were
written with, so `onchain-<id>` and `<id>` consumers both find them.

Resolution is best effort: one failing query or on-chain chart never stops
the rest of the dashboard.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from ..shared.cache import TTLCache, make_cache_key
from ..shared.config import ResolverConfig
from ..shared.errors import InputGuardError, OnChainFetchError
from ..shared.logging_setup import get_logger
from ..shared.models import Chart, ChartDateRange, Dashboard, MonthsWindow, ProgressReport, Query
from ..shared.utils import MS_PER_DAY, now_ms
from .metrics import AggregatorMetrics
from .onchain import OnChainAggregator
from .presets import PresetCatalog
from .snapshot import SnapshotService
from .tag_counts import TagCountAggregator
from .trend_store import TrendDataStore

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressReport], None]
ChartData = Dict[str, Dict[str, List[Any]]]

PERIOD_MONTHS = {"week": 0.25, "month": 1, "quarter": 3, "year": 12}
DEFAULT_PERIOD_MONTHS = 6
PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}
DEFAULT_PERIOD_DAYS = 30


def period_months(time_period: str) -> float:
    return PERIOD_MONTHS.get(time_period, DEFAULT_PERIOD_MONTHS)


def period_days(time_period: str) -> int:
    return PERIOD_DAYS.get(time_period, DEFAULT_PERIOD_DAYS)


class DashboardResolver:
    def __init__(
        self,
        catalog: PresetCatalog,
        tag_aggregator: TagCountAggregator,
        onchain_aggregator: OnChainAggregator,
        snapshots: SnapshotService,
        cache: TTLCache,
        trend_store: Optional[TrendDataStore] = None,
        config: Optional[ResolverConfig] = None,
        cache_ttl: Optional[float] = None,
        metrics: Optional[AggregatorMetrics] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            catalog: App and on-chain preset catalog
            tag_aggregator: Tag-index source for custom queries
            onchain_aggregator: Event-log source for on-chain charts
            snapshots: Mutable-address source for preset projects
            cache: Shared TTL cache (resolved dashboards are stored here)
            trend_store: Shared per-project trend data, filled by another component
            config: Resolver timings
            cache_ttl: Seconds to keep a resolved dashboard (30 minutes by default)
            metrics: Optional chart outcome counters
            clock: Epoch-ms clock used for missing creation times
        """
        self.catalog = catalog
        self.tags = tag_aggregator
        self.onchain = onchain_aggregator
        self.snapshots = snapshots
        self.cache = cache
        self.trend_store = trend_store
        self.config = config or ResolverConfig()
        self.cache_ttl = cache_ttl if cache_ttl is not None else 30 * 60
        self.metrics = metrics
        self._clock = clock or now_ms

    def ensure_date_ranges(self, dashboard: Dashboard) -> Dashboard:
        """
        Give every chart without a date range `[created_at - period, created_at]`.

        Ranges are written onto the charts, so a dashboard resolved twice keeps
        the window it got the first time.
        """
        created = dashboard.created_at if dashboard.created_at is not None else self._clock()
        for chart in dashboard.charts:
            if chart.date_range is None:
                days = period_days(chart.time_period)
                chart.date_range = ChartDateRange(start_ms=int(created) - days * MS_PER_DAY, end_ms=int(created))
        return dashboard

    def _trend_data(self, trend_data: Optional[Dict[str, List[Any]]]) -> Dict[str, List[Any]]:
        if trend_data is not None:
            return trend_data
        if self.trend_store is None:
            return {}
        if self.trend_store.is_empty():
            logger.info(f"No trend data available, waiting up to {self.config.trend_wait_seconds:g}s")
            if not self.trend_store.wait_for_data(self.config.trend_wait_seconds):
                logger.warning("Trend data did not arrive in time; resolving without it")
        return self.trend_store.snapshot()

    def resolve_chart_data(
        self,
        dashboard: Dashboard,
        progress: Optional[ProgressCallback] = None,
        trend_data: Optional[Dict[str, List[Any]]] = None,
    ) -> ChartData:
        """
        Resolve every chart's series

        Args:
            dashboard: Dashboard to resolve; its `views` is incremented on completion
            progress: Optional progress sink; current counts charts
            trend_data: Pre-supplied per-preset series (skips the trend store)

        Returns:
            {chart_id: {query_id: series}}
        """
        n_charts = len(dashboard.charts)

        def emit(chart_index: int, fraction: float) -> None:
            if progress is None or not n_charts:
                return
            current = chart_index + max(0.0, min(1.0, fraction))
            progress(ProgressReport(current=current, total=n_charts, percentage=round(current / n_charts * 100)))

        cache_key = make_cache_key("dashboard-data", {"id": dashboard.id})
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Using cached dashboard data for {dashboard.id}")
            if progress is not None:
                progress(ProgressReport(current=n_charts, total=n_charts, percentage=100))
            return cached

        if not n_charts:
            logger.info(f"Dashboard {dashboard.id} has no charts, nothing to resolve")
            if progress is not None:
                progress(ProgressReport(current=0, total=0, percentage=100))
            return {}

        available = self._trend_data(trend_data)
        result: ChartData = {}

        for i, chart in enumerate(dashboard.charts):
            logger.info(f"Loading data for chart: {chart.title}")
            if chart.on_chain_query is not None:
                entries = self._resolve_onchain_chart(chart, available, lambda f, i=i: emit(i, f))
            elif chart.queries:
                entries = self._resolve_queries(chart, available, lambda f, i=i: emit(i, f))
            elif chart.tags:
                entries = self._resolve_legacy_tags(chart, available, lambda f, i=i: emit(i, f))
            else:
                logger.warning(f"Chart {chart.id} has neither queries nor tags, skipping")
                entries = {}

            if entries is None:
                if self.metrics is not None:
                    self.metrics.record_chart(resolved=False)
            else:
                result[chart.id] = entries
                if self.metrics is not None:
                    self.metrics.record_chart(resolved=True)
            emit(i, 1.0)

        self.cache.set(cache_key, result, ttl=self.cache_ttl)
        dashboard.views += 1
        if progress is not None:
            progress(ProgressReport(current=n_charts, total=n_charts, percentage=100))
        return result

    def _sub_progress(self, chart_progress: Callable[[float], None], index: int, count: int) -> ProgressCallback:
        return lambda report: chart_progress((index + report.percentage / 100.0) / count)

    def _resolve_onchain_chart(self, chart: Chart, available: Dict[str, List[Any]], chart_progress: Callable[[float], None]) -> Optional[Dict[str, List[Any]]]:
        """None when the on-chain fetch failed (the chart gets no entry)"""
        query: Optional[Query] = chart.queries[0] if len(chart.queries) == 1 else None
        preset_id = self.catalog.resolve_preset_id(query) if query is not None else None
        entries: Dict[str, List[Any]] = {}

        if preset_id is not None and preset_id in available:
            logger.info(f"Using trend data for on-chain preset {preset_id}")
            entries[query.id] = available[preset_id]
            entries[preset_id] = available[preset_id]
            return entries

        months = period_months(chart.time_period)
        try:
            data = self.onchain.fetch_contract_activity(
                chart.on_chain_query,
                self._sub_progress(chart_progress, 0, 1),
                MonthsWindow(months),
            )
        except (InputGuardError, OnChainFetchError) as e:
            logger.error(f"On-chain data unavailable for chart {chart.id}: {e}")
            return None

        entries[query.id if query is not None else chart.id] = data
        return entries

    def _resolve_queries(self, chart: Chart, available: Dict[str, List[Any]], chart_progress: Callable[[float], None]) -> Dict[str, List[Any]]:
        entries: Dict[str, List[Any]] = {}
        count = len(chart.queries)
        for j, query in enumerate(chart.queries):
            sub = self._sub_progress(chart_progress, j, count)
            try:
                preset_id = self.catalog.resolve_preset_id(query)
                if preset_id is not None:
                    data = self._preset_series(preset_id, available, sub, period_months(chart.time_period))
                    entries[preset_id] = data
                    entries[query.id] = data
                elif query.id in available:
                    logger.info(f"Using trend data for query {query.id}")
                    entries[query.id] = available[query.id]
                elif query.tags:
                    entries[query.id] = self.tags.fetch_daily_counts(query.tags, sub)
                else:
                    logger.warning(f"Query {query.id} in chart {chart.id} has no tags and matches no preset, skipping")
            except Exception as e:
                logger.error(f"Failed to resolve query {query.id} in chart {chart.id}: {e}")
            chart_progress((j + 1) / count)
        return entries

    def _resolve_legacy_tags(self, chart: Chart, available: Dict[str, List[Any]], chart_progress: Callable[[float], None]) -> Dict[str, List[Any]]:
        entries: Dict[str, List[Any]] = {}
        sub = self._sub_progress(chart_progress, 0, 1)
        try:
            preset = self.catalog.match_tag_set(chart.tags)
            if preset is not None:
                data = self._preset_series(preset.id, available, sub, period_months(chart.time_period))
                entries[chart.id] = data
                entries[preset.id] = data
            else:
                entries[chart.id] = self.tags.fetch_daily_counts(chart.tags, sub)
        except Exception as e:
            logger.error(f"Failed to resolve legacy chart {chart.id}: {e}")
        return entries

    def _preset_series(self, preset_id: str, available: Dict[str, List[Any]], progress: ProgressCallback, months: float) -> List[Any]:
        """Trend data, then the project snapshot, then the preset's own tags or contract"""
        if preset_id in available:
            logger.info(f"Using trend data for {preset_id}")
            return available[preset_id]
        if self.snapshots.has_project(preset_id):
            return self.snapshots.fetch_project_data(preset_id)
        app = self.catalog.app_preset(preset_id)
        if app is not None:
            return self.tags.fetch_daily_counts(app.tags, progress)
        if self.catalog.onchain_preset(preset_id) is not None:
            return self.onchain.fetch_contract_activity(self.catalog.to_onchain_query(preset_id), progress, MonthsWindow(months))
        return []
