#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration System for the IrysDune aggregator
Handles YAML configuration loading, validation, environment overrides and
conversion into typed dataclasses.
"""

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_BLOCK_TIMES: Dict[str, float] = {
    "mainnet": 12,
    "polygon": 2,
    "arbitrum": 0.25,
    "avalanche": 2,
    "base": 2,
    "irys-testnet": 2,
}
FALLBACK_BLOCK_TIME = 12.0

VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigError(Exception):
    """Configuration-related errors"""
    pass


@dataclass
class EndpointsConfig:
    """Upstream HTTP endpoints"""
    graphql_url: str = "https://uploader.irys.xyz/graphql"
    gateway_url: str = "https://gateway.irys.xyz"

    def __post_init__(self):
        if not self.graphql_url:
            raise ValueError("graphql_url cannot be empty")
        if not self.gateway_url:
            raise ValueError("gateway_url cannot be empty")
        self.gateway_url = self.gateway_url.rstrip('/')


@dataclass
class HttpConfig:
    timeout: int = 30
    retry_attempts: int = 3
    retry_backoff: float = 1.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff cannot be negative")


@dataclass
class SchedulerConfig:
    delay_ms: int = 300

    def __post_init__(self):
        if self.delay_ms < 0:
            raise ValueError("delay_ms cannot be negative")


@dataclass
class CacheConfig:
    """TTLs in seconds per data family"""
    default_ttl_seconds: int = 300
    onchain_ttl_seconds: int = 600
    snapshot_ttl_seconds: int = 300
    dashboard_ttl_seconds: int = 1800

    def __post_init__(self):
        for name in ("default_ttl_seconds", "onchain_ttl_seconds", "snapshot_ttl_seconds", "dashboard_ttl_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass
class TagQueryConfig:
    page_size: int = 100
    default_months: float = 6
    max_pages: Optional[int] = None
    drop_out_of_range_samples: bool = True
    stale_after_days: int = 7

    def __post_init__(self):
        if not (1 <= self.page_size <= 100):
            raise ValueError("page_size must be between 1 and 100")
        if self.default_months <= 0:
            raise ValueError("default_months must be positive")
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError("max_pages must be >= 1 when set")


@dataclass
class NetworkConfig:
    name: str
    rpc_url: Optional[str] = None
    block_time_seconds: float = FALLBACK_BLOCK_TIME

    def __post_init__(self):
        self.name = self.name.strip().lower()
        if self.block_time_seconds <= 0:
            raise ValueError(f"block_time_seconds must be positive for network {self.name}")


@dataclass
class SnapshotConfig:
    """Mutable addresses of pre-aggregated project documents"""
    projects: Dict[str, str] = field(default_factory=dict)
    cumulative_projects: List[str] = field(default_factory=lambda: ["irys-names"])


@dataclass
class ResolverConfig:
    trend_wait_seconds: float = 5.0

    def __post_init__(self):
        if self.trend_wait_seconds < 0:
            raise ValueError("trend_wait_seconds cannot be negative")


@dataclass
class AppConfig:
    """Main configuration"""
    endpoints: EndpointsConfig = field(default_factory=EndpointsConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    tag_query: TagQueryConfig = field(default_factory=TagQueryConfig)
    networks: Dict[str, NetworkConfig] = field(default_factory=dict)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    logging_level: str = "INFO"

    def __post_init__(self):
        level = (self.logging_level or "INFO").upper()
        if level not in VALID_LEVELS:
            raise ValueError(f"logging_level must be one of: {VALID_LEVELS}")
        self.logging_level = level
        for name, block_time in DEFAULT_BLOCK_TIMES.items():
            self.networks.setdefault(name, NetworkConfig(name=name, block_time_seconds=block_time))

    def block_time(self, network: str) -> float:
        net = self.networks.get((network or "").strip().lower())
        return net.block_time_seconds if net else FALLBACK_BLOCK_TIME

    def rpc_url(self, network: str) -> Optional[str]:
        net = self.networks.get((network or "").strip().lower())
        return net.rpc_url if net else None


def _load_raw_config(config_path: str) -> Dict[str, Any]:
    """
    Load raw configuration from YAML file

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read {config_path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration must be a YAML mapping, got {type(raw_config)}")

    return raw_config


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _build_config_from_dict(config_dict: Dict[str, Any]) -> AppConfig:
    """
    Build AppConfig from dictionary

    Raises:
        ConfigError: If configuration is invalid
    """
    try:
        endpoints_raw = _section(config_dict, "endpoints")
        http_raw = _section(config_dict, "http")
        cache_raw = _section(config_dict, "cache")
        tag_raw = _section(config_dict, "tag_query")
        snap_raw = _section(config_dict, "snapshots")

        networks: Dict[str, NetworkConfig] = {}
        for name, net_raw in _section(config_dict, "networks").items():
            net_raw = net_raw or {}
            networks[str(name).lower()] = NetworkConfig(
                name=str(name),
                rpc_url=net_raw.get("rpc_url"),
                block_time_seconds=float(net_raw.get("block_time_seconds", DEFAULT_BLOCK_TIMES.get(str(name).lower(), FALLBACK_BLOCK_TIME))),
            )

        projects = snap_raw.get("projects", {}) or {}
        if not isinstance(projects, dict):
            raise ConfigError("'snapshots.projects' must be a mapping of project id -> mutable address")

        return AppConfig(
            endpoints=EndpointsConfig(
                graphql_url=endpoints_raw.get("graphql_url", EndpointsConfig.graphql_url),
                gateway_url=endpoints_raw.get("gateway_url", EndpointsConfig.gateway_url),
            ),
            http=HttpConfig(
                timeout=int(http_raw.get("timeout", 30)),
                retry_attempts=int(http_raw.get("retry_attempts", 3)),
                retry_backoff=float(http_raw.get("retry_backoff", 1.0)),
            ),
            scheduler=SchedulerConfig(delay_ms=int(_section(config_dict, "scheduler").get("delay_ms", 300))),
            cache=CacheConfig(
                default_ttl_seconds=int(cache_raw.get("default_ttl_seconds", 300)),
                onchain_ttl_seconds=int(cache_raw.get("onchain_ttl_seconds", 600)),
                snapshot_ttl_seconds=int(cache_raw.get("snapshot_ttl_seconds", 300)),
                dashboard_ttl_seconds=int(cache_raw.get("dashboard_ttl_seconds", 1800)),
            ),
            tag_query=TagQueryConfig(
                page_size=int(tag_raw.get("page_size", 100)),
                default_months=float(tag_raw.get("default_months", 6)),
                max_pages=tag_raw.get("max_pages"),
                drop_out_of_range_samples=bool(tag_raw.get("drop_out_of_range_samples", True)),
                stale_after_days=int(tag_raw.get("stale_after_days", 7)),
            ),
            networks=networks,
            snapshots=SnapshotConfig(
                projects={str(k): str(v) for k, v in projects.items()},
                cumulative_projects=list(snap_raw.get("cumulative_projects", ["irys-names"]) or []),
            ),
            resolver=ResolverConfig(
                trend_wait_seconds=float(_section(config_dict, "resolver").get("trend_wait_seconds", 5.0)),
            ),
            logging_level=str(_section(config_dict, "logging").get("level", "INFO")),
        )

    except (ValueError, TypeError, AttributeError) as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def _apply_env_overrides(config: AppConfig, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    env = os.environ if environ is None else environ
    if env.get("IRYSDUNE_GRAPHQL_URL"):
        config.endpoints.graphql_url = env["IRYSDUNE_GRAPHQL_URL"]
    if env.get("IRYSDUNE_GATEWAY_URL"):
        config.endpoints.gateway_url = env["IRYSDUNE_GATEWAY_URL"].rstrip('/')
    for key, value in env.items():
        if key.startswith("IRYSDUNE_RPC_") and value:
            name = key[len("IRYSDUNE_RPC_"):].lower().replace("_", "-")
            net = config.networks.get(name)
            if net is None:
                config.networks[name] = NetworkConfig(name=name, rpc_url=value)
            else:
                net.rpc_url = value
    return config


def load_config(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """
    Load and validate configuration from a YAML file

    Args:
        config_path: Path to YAML configuration file; None yields defaults
        environ: Environment mapping for endpoint overrides (default os.environ)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration cannot be loaded or is invalid
    """
    if config_path is None:
        config = AppConfig()
    else:
        config = _build_config_from_dict(_load_raw_config(str(config_path)))
    return _apply_env_overrides(config, environ)


def apply_overrides(config: AppConfig, **overrides) -> AppConfig:
    """
    Apply command-line overrides to configuration

    Raises:
        ConfigError: If overrides are invalid
    """
    updated = copy.deepcopy(config)
    try:
        if overrides.get("log_level"):
            updated.logging_level = str(overrides["log_level"])
        if overrides.get("graphql_url"):
            updated.endpoints.graphql_url = str(overrides["graphql_url"])
        if overrides.get("default_months"):
            updated.tag_query.default_months = float(overrides["default_months"])
        if overrides.get("scheduler_delay_ms") is not None:
            updated.scheduler.delay_ms = int(overrides["scheduler_delay_ms"])

        updated.__post_init__()
        updated.tag_query.__post_init__()
        updated.scheduler.__post_init__()
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Failed to apply CLI overrides: {e}")
    return updated
