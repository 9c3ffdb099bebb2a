#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Shared store of per-project trend series.

Populated by the snapshot loader (or any other producer); read by the
dashboard resolver, which may wait a bounded time for the first publish.
"""
from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional


class TrendDataStore:
    def __init__(self) -> None:
        self._data: Dict[str, List[Any]] = {}
        self._cond = threading.Condition()

    def publish(self, data: Dict[str, List[Any]]) -> None:
        """Merge `data` into the store and wake waiting readers"""
        with self._cond:
            for key, series in data.items():
                self._data[key] = copy.deepcopy(series)
            self._cond.notify_all()

    def get(self, key: str) -> Optional[List[Any]]:
        with self._cond:
            series = self._data.get(key)
            return copy.deepcopy(series) if series is not None else None

    def snapshot(self) -> Dict[str, List[Any]]:
        with self._cond:
            return copy.deepcopy(self._data)

    def is_empty(self) -> bool:
        with self._cond:
            return not self._data

    def wait_for_data(self, timeout: float) -> bool:
        """
        Block until the store holds data or `timeout` seconds pass.

        Returns True when data is available.
        """
        with self._cond:
            return self._cond.wait_for(lambda: bool(self._data), timeout=timeout)

    def clear(self) -> None:
        with self._cond:
            self._data.clear()
