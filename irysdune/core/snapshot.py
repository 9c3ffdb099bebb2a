#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pre-aggregated project series served from gateway mutable addresses.

Each configured project publishes a JSON document
`{projectId, projectName, dataType, generatedAt, dataPoints, data: [{timestamp, count, period}]}`
at a stable mutable address. Projects listed as cumulative publish running
totals and are converted back to daily increments.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from ..shared.cache import TTLCache, make_cache_key
from ..shared.config import SnapshotConfig
from ..shared.errors import DataShapeError, TransientFetchError
from ..shared.irys_client import GatewayClient
from ..shared.logging_setup import get_logger
from ..shared.models import ProgressReport, SnapshotDocument, TimeSeriesPoint
from ..shared.scheduler import QueryScheduler
from .trend_store import TrendDataStore

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressReport], None]


def cumulative_to_increments(points: List[TimeSeriesPoint]) -> List[TimeSeriesPoint]:
    """First point as-is, then only positive differences from the previous point"""
    if not points:
        return []
    out = [TimeSeriesPoint(timestamp=points[0].timestamp, count=points[0].count)]
    for prev, cur in zip(points, points[1:]):
        increment = cur.count - prev.count
        if increment > 0:
            out.append(TimeSeriesPoint(timestamp=cur.timestamp, count=increment))
    return out


def parse_points(document: SnapshotDocument) -> List[TimeSeriesPoint]:
    """
    Raises:
        DataShapeError: a data entry lacks a usable timestamp or count
    """
    points = []
    for raw in document.data:
        try:
            points.append(TimeSeriesPoint(timestamp=int(raw["timestamp"]), count=int(raw["count"])))
        except (KeyError, TypeError, ValueError) as e:
            raise DataShapeError(f"Invalid data point in {document.project_id or 'snapshot'}: {raw!r} ({e})")
    return points


class SnapshotService:
    def __init__(
        self,
        gateway: GatewayClient,
        scheduler: QueryScheduler,
        cache: TTLCache,
        config: Optional[SnapshotConfig] = None,
        trend_store: Optional[TrendDataStore] = None,
        cache_ttl: Optional[float] = None,
    ):
        self.gateway = gateway
        self.scheduler = scheduler
        self.cache = cache
        self.config = config or SnapshotConfig()
        self.trend_store = trend_store
        self.cache_ttl = cache_ttl

    def has_project(self, project_id: str) -> bool:
        return project_id in self.config.projects

    def fetch_document(self, project_id: str) -> SnapshotDocument:
        """
        Raises:
            KeyError: project has no mutable address
            TransientFetchError: gateway request failed
            DataShapeError: document has no `data` list
        """
        address = self.config.projects[project_id]
        logger.info(f"Fetching mutable address {address} for {project_id}")
        response = self.scheduler.run(f"snapshot:{project_id}", lambda: self.gateway.get_mutable(address))
        if not response.success:
            raise TransientFetchError(f"Failed to fetch snapshot for {project_id}: {response.error}")
        payload: Any = response.data
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise DataShapeError(f"Invalid data structure for {project_id}: missing data array")
        document = SnapshotDocument.from_dict(payload)
        logger.info(f"Received {document.project_name or project_id}: {document.data_points} points generated at {document.generated_at}")
        return document

    def fetch_project_data(self, project_id: str) -> List[TimeSeriesPoint]:
        """
        Daily series for a configured project; [] when unknown or unavailable.
        """
        if not self.has_project(project_id):
            logger.error(f"No mutable address found for project: {project_id}")
            return []

        cache_key = make_cache_key("snapshot", {"project": project_id})
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            points = parse_points(self.fetch_document(project_id))
        except (TransientFetchError, DataShapeError) as e:
            logger.error(f"Error fetching data for {project_id}: {e}")
            return []

        if project_id in self.config.cumulative_projects:
            converted = cumulative_to_increments(points)
            logger.info(f"Converted {len(points)} cumulative points to {len(converted)} incremental points for {project_id}")
            points = converted

        self.cache.set(cache_key, points, ttl=self.cache_ttl)
        return points

    def fetch_all_projects_data(self, progress: Optional[ProgressCallback] = None, max_workers: int = 4) -> Dict[str, List[TimeSeriesPoint]]:
        """
        Fetch every configured project in parallel and wait for all of them.

        The result is published to the trend store when one is attached.
        """
        project_ids = list(self.config.projects)
        total = len(project_ids)
        results: Dict[str, List[TimeSeriesPoint]] = {}
        completed = 0

        if progress is not None:
            progress(ProgressReport(current=0, total=total, percentage=0))

        logger.info(f"Fetching snapshot data for {total} projects")
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="snapshot") as pool:
            futures = {pool.submit(self.fetch_project_data, pid): pid for pid in project_ids}
            for future in as_completed(futures):
                pid = futures[future]
                results[pid] = future.result()
                completed += 1
                logger.debug(f"Completed {pid} ({completed}/{total})")
                if progress is not None:
                    progress(ProgressReport(current=completed, total=total, percentage=completed / total * 100))

        logger.info("Fetched snapshot data: " + ", ".join(f"{k}: {len(v)} points" for k, v in sorted(results.items())))
        if self.trend_store is not None:
            self.trend_store.publish(results)
        return results
