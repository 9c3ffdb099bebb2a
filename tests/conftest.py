#!/usr/bin/env python3
"""
Shared fixtures: a fresh scheduler and cache per test.
"""
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.shared.cache import TTLCache
from irysdune.shared.scheduler import QueryScheduler


@pytest.fixture
def scheduler():
    s = QueryScheduler(delay_seconds=0)
    yield s
    s.shutdown()


@pytest.fixture
def cache():
    return TTLCache()
