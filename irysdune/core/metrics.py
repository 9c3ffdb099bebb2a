#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Prometheus metrics for the aggregation pipeline (prometheus_client).

One private CollectorRegistry per AggregatorMetrics instance, so tests and
embedded uses never collide with the global default registry.
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server


class AggregatorMetrics:
    def __init__(self, prefix: str = "irysdune_", registry: Optional[CollectorRegistry] = None) -> None:
        self.prefix = prefix
        self.registry = registry or CollectorRegistry()
        pfx = prefix
        self.scheduler_operations = Counter(f"{pfx}scheduler_operations", "Scheduled operations by outcome", ['outcome'], registry=self.registry)
        self.scheduler_queue_depth = Gauge(f"{pfx}scheduler_queue_depth", "Operations waiting in the scheduler queue", registry=self.registry)
        self.cache_lookups = Counter(f"{pfx}cache_lookups", "Cache lookups by result", ['result'], registry=self.registry)
        self.charts = Counter(f"{pfx}resolver_charts", "Dashboard charts by resolution outcome", ['outcome'], registry=self.registry)

    def record_operation(self, outcome: str) -> None:
        self.scheduler_operations.labels(outcome=outcome).inc()

    def set_queue_depth(self, depth: int) -> None:
        self.scheduler_queue_depth.set(depth)

    def record_cache(self, hit: bool) -> None:
        self.cache_lookups.labels(result="hit" if hit else "miss").inc()

    def record_chart(self, resolved: bool) -> None:
        self.charts.labels(outcome="resolved" if resolved else "failed").inc()

    def value(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Current sample value, e.g. value("cache_lookups_total", {"result": "hit"})"""
        return self.registry.get_sample_value(f"{self.prefix}{name}", labels or {})

    def render(self) -> str:
        return generate_latest(self.registry).decode("utf-8")

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose /metrics on a background HTTP server"""
        start_http_server(port, addr=addr, registry=self.registry)
