#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Minimal JSON-RPC client for EVM-compatible chains.

Only the read calls the on-chain aggregator needs: latest block, log scans,
block timestamps and the lifetime transaction count of an address. Every
failure after retries surfaces as OnChainFetchError.
"""

import time
from typing import Any, Dict, List, Optional

import requests

from .errors import OnChainFetchError
from .logging_setup import get_logger
from .utils import parse_hex_int

logger = get_logger(__name__)


class RpcClient:
    """JSON-RPC over HTTP POST with retry and exponential backoff"""

    def __init__(self, url: str, timeout: int = 30, retry_attempts: int = 3, retry_backoff: float = 1.0):
        if not url:
            raise ValueError("RPC url cannot be empty")
        self.url = url
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        self._id = 1
        self._block_times: Dict[int, int] = {}

    def call(self, method: str, params: List[Any]) -> Any:
        """
        Execute one JSON-RPC method and return its `result`.

        Raises:
            OnChainFetchError: transport failure, HTTP error or RPC error object
        """
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": params}
        self._id += 1
        last_error = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.session.post(self.url, json=payload, timeout=self.timeout)
                if response.status_code != 200:
                    last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                    logger.warning(f"{method} failed: {last_error}")
                else:
                    data = response.json()
                    if isinstance(data, dict) and data.get("error"):
                        # provider-side errors (range too large, bad filter) do not improve on retry
                        raise OnChainFetchError(f"RPC error from {method}: {data['error']}")
                    return data.get("result") if isinstance(data, dict) else None

            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"{method} attempt {attempt + 1} timed out")

            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {str(e)}"
                logger.warning(f"{method} attempt {attempt + 1} connection failed")

            except ValueError as e:
                last_error = f"Invalid JSON response: {e}"
                logger.warning(f"{method} attempt {attempt + 1} returned invalid JSON")

            if attempt < self.retry_attempts - 1:
                time.sleep(self.retry_backoff * (2 ** attempt))

        raise OnChainFetchError(f"{method} failed after {self.retry_attempts} attempts: {last_error}")

    def block_number(self) -> int:
        return parse_hex_int(self.call("eth_blockNumber", []))

    def get_logs(self, address: str, topics: Optional[List[Any]], from_block: int, to_block: int) -> List[Dict[str, Any]]:
        f: Dict[str, Any] = {"fromBlock": hex(from_block), "toBlock": hex(to_block), "address": address}
        if topics:
            f["topics"] = topics
        return self.call("eth_getLogs", [f]) or []

    def get_block_timestamp(self, block_number: int) -> int:
        """Block timestamp in epoch seconds, memoised per client"""
        if block_number in self._block_times:
            return self._block_times[block_number]
        block = self.call("eth_getBlockByNumber", [hex(block_number), False])
        if not block or "timestamp" not in block:
            raise OnChainFetchError(f"Block {block_number} not found")
        ts = parse_hex_int(block["timestamp"])
        self._block_times[block_number] = ts
        return ts

    def get_transaction_count(self, address: str) -> int:
        return parse_hex_int(self.call("eth_getTransactionCount", [address, "latest"]))
