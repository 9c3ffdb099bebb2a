#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IrysDune aggregator runner.
- Loads configuration and preset catalogs
- Wires cache, scheduler, clients and aggregators
- Runs one tag query, on-chain preset, snapshot sweep or dashboard resolution
- Optionally exposes Prometheus /metrics (prometheus_client)

Usage examples:
  python -m irysdune.main --help
  python -m irysdune.main --tags App-Name=irys-cm-note --months 1
  python -m irysdune.main --onchain irys-flip --months 0.25
  python -m irysdune.main --onchain irys-flip --wallet 0x... --months 1
  python -m irysdune.main --onchain onchain-irys-crush --recent 20
  python -m irysdune.main --snapshots
  python -m irysdune.main --dashboard dashboard.json --json
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .core.metrics import AggregatorMetrics
from .core.onchain import OnChainAggregator
from .core.presets import PresetCatalog, load_presets
from .core.resolver import DashboardResolver
from .core.snapshot import SnapshotService
from .core.tag_counts import TagCountAggregator
from .core.trend_store import TrendDataStore
from .shared.cache import TTLCache
from .shared.config import AppConfig, ConfigError, apply_overrides, load_config
from .shared.errors import IrysDuneError
from .shared.irys_client import GatewayClient, IrysGraphQLClient
from .shared.logging_setup import setup_colored_logging
from .shared.models import Dashboard, MonthsWindow, ProgressReport, Tag
from .shared.scheduler import QueryScheduler
from .shared.utils import growth_rate, total_activity

BASE = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG = BASE / 'config' / 'irysdune.yaml'
DEFAULT_PRESETS = BASE / 'config' / 'presets.yaml'


@dataclass
class Services:
    config: AppConfig
    catalog: PresetCatalog
    metrics: AggregatorMetrics
    cache: TTLCache
    scheduler: QueryScheduler
    trend_store: TrendDataStore
    tags: TagCountAggregator
    onchain: OnChainAggregator
    snapshots: SnapshotService
    resolver: DashboardResolver


def build_services(config: AppConfig, catalog: PresetCatalog, metrics: Optional[AggregatorMetrics] = None) -> Services:
    """One cache, one scheduler and one trend store shared by every component"""
    metrics = metrics or AggregatorMetrics()
    http = config.http
    cache = TTLCache(default_ttl=config.cache.default_ttl_seconds, metrics=metrics)
    scheduler = QueryScheduler(delay_seconds=config.scheduler.delay_ms / 1000.0, metrics=metrics)
    trend_store = TrendDataStore()

    graphql = IrysGraphQLClient(config.endpoints.graphql_url, timeout=http.timeout, retry_attempts=http.retry_attempts, retry_backoff=http.retry_backoff)
    gateway = GatewayClient(config.endpoints.gateway_url, timeout=http.timeout, retry_attempts=http.retry_attempts, retry_backoff=http.retry_backoff)

    tags = TagCountAggregator(graphql, scheduler, cache, config=config.tag_query, cache_ttl=config.cache.default_ttl_seconds)
    onchain = OnChainAggregator(scheduler, cache, config=config, cache_ttl=config.cache.onchain_ttl_seconds)
    snapshots = SnapshotService(gateway, scheduler, cache, config=config.snapshots, trend_store=trend_store, cache_ttl=config.cache.snapshot_ttl_seconds)
    resolver = DashboardResolver(
        catalog, tags, onchain, snapshots, cache,
        trend_store=trend_store,
        config=config.resolver,
        cache_ttl=config.cache.dashboard_ttl_seconds,
        metrics=metrics,
    )
    return Services(config, catalog, metrics, cache, scheduler, trend_store, tags, onchain, snapshots, resolver)


def _log_progress(log: logging.Logger):
    def sink(report: ProgressReport) -> None:
        log.debug(f"Progress: {report.current:g}/{report.total:g} ({report.percentage:.0f}%)")
    return sink


def _parse_tags(pairs: List[str]) -> List[Tag]:
    tags = []
    for pair in pairs:
        name, sep, value = pair.partition('=')
        if not sep or not name:
            raise ValueError(f"Tag must be name=value, got {pair!r}")
        tags.append(Tag(name=name, value=value))
    return tags


def _series_summary(series: List[Any]) -> str:
    total = sum(p.count for p in series)
    return f"{len(series)} points, total={total}, 7d growth={growth_rate(series):+.1f}%"


def _to_jsonable(data: Dict[str, Dict[str, List[Any]]]) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
    return {chart_id: {qid: [p.to_dict() for p in series] for qid, series in queries.items()} for chart_id, queries in data.items()}


def main(
    config_path: Optional[str] = None,
    presets_path: Optional[str] = None,
    log_level: Optional[str] = None,
    tags: Optional[List[str]] = None,
    onchain: Optional[str] = None,
    wallet: Optional[str] = None,
    recent: Optional[int] = None,
    dashboard_path: Optional[str] = None,
    snapshots: bool = False,
    months: Optional[float] = None,
    as_json: bool = False,
    metrics_port: Optional[int] = None,
) -> int:
    config = load_config(str(config_path or DEFAULT_CONFIG))
    config = apply_overrides(config, log_level=log_level)
    setup_colored_logging(level=config.logging_level)
    log = logging.getLogger(__name__)

    catalog = load_presets(str(presets_path or DEFAULT_PRESETS))
    services = build_services(config, catalog)
    if metrics_port:
        services.metrics.serve(metrics_port)
        log.info(f"Serving metrics on :{metrics_port}/metrics")

    window = MonthsWindow(months) if months else None
    progress = _log_progress(log)
    loader: Optional[threading.Thread] = None

    try:
        if tags:
            series = services.tags.fetch_daily_counts(_parse_tags(tags), progress, window)
            if as_json:
                print(json.dumps([p.to_dict() for p in series], indent=2))
            else:
                print(f"tags {' '.join(tags)}: {_series_summary(series)}")

        if onchain:
            preset_id = catalog.resolve_preset_id(onchain)
            if preset_id is None or catalog.onchain_preset(preset_id) is None:
                log.error(f"Unknown on-chain preset: {onchain}")
                return 2
            query = catalog.to_onchain_query(preset_id)
            if recent:
                for event in services.onchain.fetch_recent_events(query, limit=recent):
                    print(f"{event.block_number} {event.event_name} {event.transaction_hash} {event.args or {}}")
            else:
                if wallet:
                    series = services.onchain.fetch_user_contract_activity(query, wallet, progress, window)
                else:
                    series = services.onchain.fetch_contract_activity(query, progress, window)
                if as_json:
                    print(json.dumps([p.to_dict() for p in series], indent=2))
                else:
                    print(f"onchain {preset_id}: {_series_summary(series)}")

        if snapshots or dashboard_path:
            loader = threading.Thread(target=services.snapshots.fetch_all_projects_data, name="snapshot-loader", daemon=True)
            loader.start()
            if snapshots:
                loader.join()
                trends = services.trend_store.snapshot()
                for project_id, series in sorted(trends.items()):
                    print(f"{project_id}: {_series_summary(series)}")
                print(f"all projects: total={total_activity(trends)}")

        if dashboard_path:
            with open(dashboard_path, 'r', encoding='utf-8') as f:
                dashboard = Dashboard.from_dict(json.load(f))
            services.resolver.ensure_date_ranges(dashboard)
            data = services.resolver.resolve_chart_data(dashboard, progress)
            if as_json:
                print(json.dumps({"dashboard": dashboard.to_dict(), "data": _to_jsonable(data)}, indent=2))
            else:
                for chart in dashboard.charts:
                    entries = data.get(chart.id)
                    if entries is None:
                        print(f"{chart.title}: unavailable")
                        continue
                    for qid, series in entries.items():
                        print(f"{chart.title} / {qid}: {_series_summary(series)}")

    except IrysDuneError as e:
        log.error(f"Aggregation failed: {e}")
        return 1
    finally:
        if loader is not None:
            loader.join()
        services.scheduler.shutdown(wait=False)

    if metrics_port:
        log.info("Metrics server running; press Ctrl+C to exit")
        try:
            while True:
                time.sleep(3600)
        except KeyboardInterrupt:
            pass
    return 0


def cli() -> None:
    parser = argparse.ArgumentParser(description='IrysDune activity aggregator')
    parser.add_argument('--config', type=str, default=None, help='Path to irysdune.yaml')
    parser.add_argument('--presets', type=str, default=None, help='Path to presets.yaml')
    parser.add_argument('--log-level', type=str, default=None, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], help='Logging level (overrides config)')
    parser.add_argument('--tags', nargs='+', metavar='NAME=VALUE', help='Run a tag-count query')
    parser.add_argument('--onchain', type=str, metavar='PRESET_ID', help='Aggregate an on-chain preset (id, onchain-<id> or name)')
    parser.add_argument('--wallet', type=str, metavar='ADDRESS', help='With --onchain: count only events involving this wallet')
    parser.add_argument('--recent', type=int, metavar='N', help='With --onchain: list the N newest events instead of daily counts')
    parser.add_argument('--snapshots', action='store_true', help='Fetch every project snapshot and print a summary')
    parser.add_argument('--dashboard', type=str, metavar='FILE', help='Resolve a dashboard JSON document')
    parser.add_argument('--months', type=float, default=None, help='Window length in months for --tags/--onchain')
    parser.add_argument('--json', action='store_true', help='Print full series as JSON')
    parser.add_argument('--metrics-port', type=int, default=None, help='Serve Prometheus metrics on this port')
    args = parser.parse_args()

    if not (args.tags or args.onchain or args.dashboard or args.snapshots):
        parser.error('nothing to do: pass --tags, --onchain, --snapshots or --dashboard')

    try:
        code = main(
            config_path=args.config,
            presets_path=args.presets,
            log_level=args.log_level,
            tags=args.tags,
            onchain=args.onchain,
            wallet=args.wallet,
            recent=args.recent,
            dashboard_path=args.dashboard,
            snapshots=args.snapshots,
            months=args.months,
            as_json=args.json,
            metrics_port=args.metrics_port,
        )
    except (ConfigError, ValueError, OSError) as e:
        print(f"Error: {e}")
        code = 2
    sys.exit(code)


if __name__ == '__main__':
    cli()
