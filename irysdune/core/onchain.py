#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
On-chain activity aggregation from contract event logs.

A wall-clock window is turned into an approximate block range from the
network's average block time, matching logs are scanned per event, each log
is dated by its block timestamp and counted per (UTC day, event name). The
result is gap-filled so every event has one entry per day of the window.

Any provider error aborts the whole call (ALL_OR_NOTHING). The only
exception is a contract queried without an event schema whose Transfer logs
cannot be read: it degrades to a single point carrying the address's
lifetime transaction count.
"""
from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from ..shared.abi import TRANSFER_TOPIC0, decode_log_args, event_topic, transfer_addresses
from ..shared.cache import TTLCache, make_cache_key
from ..shared.config import AppConfig
from ..shared.errors import FailurePolicy, InputGuardError, OnChainFetchError
from ..shared.logging_setup import get_logger
from ..shared.models import AbiEntry, ContractSpec, DaysWindow, EventDetail, MonthsWindow, OnChainPoint, OnChainQuery, ProgressReport
from ..shared.rpc_client import RpcClient
from ..shared.scheduler import QueryScheduler
from ..shared.utils import MS_PER_DAY, DateWindow, day_string, normalize_address, now_ms, parse_hex_int, resolve_window

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressReport], None]

WALLET_FIELDS = ("player", "from", "to", "minter")
RECENT_BLOCKS = 1000
SECONDS_PER_DAY = 24 * 60 * 60

# (day, event name or None)
BucketKey = Tuple[str, Optional[str]]


@dataclass
class BatchResult:
    """Outcome of a parallel multi-query aggregation"""
    series: Dict[str, List[OnChainPoint]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)


def _window_param(date_range: Optional[DateWindow], default_months: float) -> Dict[str, Any]:
    if isinstance(date_range, DaysWindow):
        return {"days": date_range.days}
    return {"months": date_range.months if isinstance(date_range, MonthsWindow) else default_months}


def wallet_matches(args: Optional[Dict[str, Any]], wallet: str) -> bool:
    """True when a player/from/to/minter argument equals `wallet` (normalised)"""
    if not args:
        return False
    for name in WALLET_FIELDS:
        value = args.get(name)
        if isinstance(value, str):
            try:
                if normalize_address(value) == wallet:
                    return True
            except ValueError:
                continue
    return False


class OnChainAggregator:
    failure_policy = FailurePolicy.ALL_OR_NOTHING

    def __init__(
        self,
        scheduler: QueryScheduler,
        cache: TTLCache,
        config: Optional[AppConfig] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
        cache_ttl: Optional[float] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            scheduler: Shared scheduler; every RPC round goes through it
            cache: Shared TTL cache
            config: Network table (RPC URLs, block times) and HTTP settings
            client_factory: Builds an RPC client for a URL (injectable for tests)
            cache_ttl: Seconds to keep aggregates (config onchain ttl when None)
            clock: Epoch-ms clock for the window end
        """
        self.scheduler = scheduler
        self.cache = cache
        self.config = config or AppConfig()
        self.cache_ttl = cache_ttl if cache_ttl is not None else self.config.cache.onchain_ttl_seconds
        self._clock = clock or now_ms
        http = self.config.http
        self._client_factory = client_factory or (
            lambda url: RpcClient(url, timeout=http.timeout, retry_attempts=http.retry_attempts, retry_backoff=http.retry_backoff)
        )

    def _rpc_url(self, query: OnChainQuery) -> str:
        url = query.rpc_url or self.config.rpc_url(query.network)
        if not url:
            raise InputGuardError(f"RPC URL is required for on-chain queries (network {query.network})")
        return url

    def _run(self, name: str, operation: Callable[[], Any]) -> Any:
        try:
            return self.scheduler.run(name, operation)
        except OnChainFetchError:
            raise
        except (requests.exceptions.RequestException, KeyError, ValueError, TypeError) as e:
            raise OnChainFetchError(f"{name} failed: {e}") from e

    def _block_range(self, client: Any, network: str, span_ms: int, label: str) -> Tuple[int, int]:
        latest = self._run(f"onchain-block-number:{label}", client.block_number)
        blocks_per_day = SECONDS_PER_DAY / self.config.block_time(network)
        days = span_ms / MS_PER_DAY
        start = max(0, latest - int(math.floor(days * blocks_per_day)))
        return start, latest

    def _scan(self, client: Any, address: str, topic0: str, start: int, end: int) -> List[Tuple[Dict[str, Any], int]]:
        """Logs for one topic with their block timestamps (seconds), as one scheduled operation"""
        def operation():
            logs = client.get_logs(address, [topic0], start, end)
            return [(log, client.get_block_timestamp(parse_hex_int(log["blockNumber"]))) for log in logs]
        return self._run(f"onchain-logs:{address}:{topic0[:10]}", operation)

    def fetch_contract_activity(
        self,
        query: OnChainQuery,
        progress: Optional[ProgressCallback] = None,
        date_range: Optional[DateWindow] = None,
    ) -> List[OnChainPoint]:
        """
        Daily activity of a contract (or contract group)

        Returns:
            Gap-filled OnChainPoints, one per day per event name; [] when
            nothing was collected

        Raises:
            InputGuardError: no RPC URL for the query's network
            OnChainFetchError: any provider failure
        """
        return self._aggregate(query, None, progress, date_range)

    def fetch_user_contract_activity(
        self,
        query: OnChainQuery,
        wallet_address: str,
        progress: Optional[ProgressCallback] = None,
        date_range: Optional[DateWindow] = None,
    ) -> List[OnChainPoint]:
        """Same as fetch_contract_activity, keeping only logs that involve `wallet_address`."""
        try:
            wallet = normalize_address(wallet_address)
        except ValueError as e:
            raise InputGuardError(f"Invalid wallet address: {e}") from e
        return self._aggregate(query, wallet, progress, date_range)

    def _aggregate(
        self,
        query: OnChainQuery,
        wallet: Optional[str],
        progress: Optional[ProgressCallback],
        date_range: Optional[DateWindow],
    ) -> List[OnChainPoint]:
        def report(current: float, total: float) -> None:
            if progress is not None:
                progress(ProgressReport(current=current, total=total, percentage=(current / total * 100) if total else 100))

        contracts = query.all_contracts()
        events = query.events
        params: Dict[str, Any] = {
            "address": sorted(c.contract_address.lower() for c in contracts),
            "abis": sorted(e.name for e in events),
            "network": query.network,
            **_window_param(date_range, self.config.tag_query.default_months),
        }
        if wallet is not None:
            params["wallet"] = wallet
        cache_key = make_cache_key("onchain-query", params)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Using cached on-chain data for {cache_key}")
            report(1, 1)
            return cached

        rpc_url = self._rpc_url(query)
        client = self._client_factory(rpc_url)
        window = resolve_window(date_range, end_ms=self._clock(), default_months=self.config.tag_query.default_months)
        label = contracts[0].contract_address
        start_block, latest_block = self._block_range(client, query.network, window.end_ms - window.start_ms, label)
        logger.info(f"Querying {len(contracts)} contract(s) on {query.network}, blocks {start_block} to {latest_block}")

        counts: Dict[BucketKey, int] = {}
        collected = False

        if not any(c.abis for c in contracts):
            collected = self._collect_transfers(client, contracts, wallet, start_block, latest_block, counts)
            series_names: List[Optional[str]] = [None]
        else:
            units = [(c, abi) for c in contracts for abi in c.abis]
            for done, (contract, abi) in enumerate(units):
                if abi.type != "event":
                    logger.info(f"Function calls cannot be queried from logs, skipping {abi.name}")
                    continue
                rows = self._scan(client, contract.contract_address, event_topic(abi), start_block, latest_block)
                matched = 0
                for log, ts in rows:
                    if wallet is not None and not wallet_matches(decode_log_args(abi, log), wallet):
                        continue
                    key = (day_string(ts * 1000), abi.name)
                    counts[key] = counts.get(key, 0) + 1
                    matched += 1
                collected = collected or matched > 0
                logger.info(f"Found {matched} {abi.name} event(s) on {contract.contract_address}")
                report(done + 1, len(units) + 1)
            series_names = [e.name for e in events]

        if not collected:
            logger.info(f"No on-chain activity found for {label} on {query.network}")
            report(1, 1)
            return []

        filled = [
            OnChainPoint(date=day, count=counts.get((day, name), 0), function_name=name)
            for day in window.day_strings
            for name in series_names
        ]
        self.cache.set(cache_key, filled, ttl=self.cache_ttl)
        report(1, 1)
        return filled

    def _collect_transfers(
        self,
        client: Any,
        contracts: List[ContractSpec],
        wallet: Optional[str],
        start_block: int,
        latest_block: int,
        counts: Dict[BucketKey, int],
    ) -> bool:
        collected = False
        for contract in contracts:
            address = contract.contract_address
            try:
                rows = self._scan(client, address, TRANSFER_TOPIC0, start_block, latest_block)
            except OnChainFetchError as e:
                logger.warning(f"Transfer logs unavailable for {address} ({e}); falling back to lifetime transaction count (diminished precision)")
                tx_count = self._run(f"onchain-tx-count:{address}", lambda: client.get_transaction_count(address))
                key = (day_string(self._clock()), None)
                counts[key] = counts.get(key, 0) + int(tx_count)
                collected = True
                continue
            logger.info(f"Found {len(rows)} Transfer event(s) on {address}")
            for log, ts in rows:
                if wallet is not None and wallet not in transfer_addresses(log):
                    continue
                key = (day_string(ts * 1000), None)
                counts[key] = counts.get(key, 0) + 1
                collected = True
        return collected

    def fetch_recent_events(self, query: OnChainQuery, limit: int = 100) -> List[EventDetail]:
        """Newest decoded events from the last 1000 blocks, newest first"""
        rpc_url = self._rpc_url(query)
        client = self._client_factory(rpc_url)
        latest = self._run(f"onchain-block-number:{query.contract_address}", client.block_number)
        from_block = max(0, latest - RECENT_BLOCKS)

        def operation():
            found: List[Tuple[Dict[str, Any], Optional[AbiEntry], str]] = []
            for contract in query.all_contracts():
                abis = [a for a in contract.abis if a.type == "event"]
                if not contract.abis:
                    found.extend((log, None, contract.contract_address) for log in client.get_logs(contract.contract_address, [TRANSFER_TOPIC0], from_block, latest))
                for abi in abis:
                    found.extend((log, abi, contract.contract_address) for log in client.get_logs(contract.contract_address, [event_topic(abi)], from_block, latest))
            found.sort(key=lambda item: (parse_hex_int(item[0].get("blockNumber")), parse_hex_int(item[0].get("logIndex"))), reverse=True)
            details = []
            for log, abi, address in found[:limit]:
                block_number = parse_hex_int(log["blockNumber"])
                details.append(EventDetail(
                    transaction_hash=str(log.get("transactionHash", "")),
                    block_number=block_number,
                    timestamp_ms=client.get_block_timestamp(block_number) * 1000,
                    event_name=abi.name if abi else "Transfer",
                    contract_address=address,
                    network=query.network,
                    args=decode_log_args(abi, log) if abi else None,
                ))
            return details

        return self._run(f"onchain-recent-events:{query.contract_address}", operation)

    def fetch_many(
        self,
        queries: Dict[str, OnChainQuery],
        date_range: Optional[MonthsWindow] = None,
        max_workers: int = 4,
    ) -> BatchResult:
        """
        Aggregate several queries in parallel and wait for all of them.

        A failed query is recorded in `failures` and does not affect the others.
        """
        result = BatchResult()
        if not queries:
            return result
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="onchain") as pool:
            futures = {key: pool.submit(self.fetch_contract_activity, q, None, date_range) for key, q in queries.items()}
            for key, future in futures.items():
                try:
                    result.series[key] = future.result()
                except Exception as e:
                    logger.error(f"On-chain aggregation failed for {key}: {e}")
                    result.failures[key] = str(e)
        return result
