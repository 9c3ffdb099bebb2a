#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error taxonomy shared by the clients and aggregators.

- InputGuardError: rejected before any network call (empty tag set, missing RPC URL)
- TransientFetchError: HTTP/RPC failure or malformed response
- DataShapeError: response decoded but missing expected fields
- OnChainFetchError: provider failure during an on-chain aggregation (whole call aborts)

Stale data is not an error; it is reported through logging only.
"""
from __future__ import annotations

from enum import Enum


class IrysDuneError(Exception):
    """Base class for aggregation errors"""
    pass


class InputGuardError(IrysDuneError, ValueError):
    pass


class TransientFetchError(IrysDuneError):
    pass


class DataShapeError(IrysDuneError):
    pass


class OnChainFetchError(TransientFetchError):
    pass


class SchedulerClosedError(IrysDuneError, RuntimeError):
    pass


class FailurePolicy(str, Enum):
    """How an aggregator treats a failed unit of work."""
    BEST_EFFORT = "best_effort"        # abandon the unit, return what has accumulated
    ALL_OR_NOTHING = "all_or_nothing"  # abort the whole call
