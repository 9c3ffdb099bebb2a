#!/usr/bin/env python3
"""
Unit tests for project snapshot documents
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.core.snapshot import SnapshotService, cumulative_to_increments, parse_points
from irysdune.core.trend_store import TrendDataStore
from irysdune.shared.config import SnapshotConfig
from irysdune.shared.errors import DataShapeError
from irysdune.shared.irys_client import APIResponse
from irysdune.shared.models import SnapshotDocument, TimeSeriesPoint


def document(project_id, counts):
    return {
        "projectId": project_id,
        "projectName": project_id.title(),
        "dataType": "daily",
        "generatedAt": "2024-03-01T00:00:00Z",
        "dataPoints": len(counts),
        "data": [{"timestamp": 1_700_000_000_000 + i * 86_400_000, "count": c, "period": "day"} for i, c in enumerate(counts)],
    }


class FakeGateway:
    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def get_mutable(self, address):
        self.requested.append(address)
        return self.responses[address]


CONFIG = SnapshotConfig(
    projects={"cm-note": "ADDR_NOTE", "irys-names": "ADDR_NAMES", "broken": "ADDR_BROKEN"},
    cumulative_projects=["irys-names"],
)


def make_service(scheduler, cache, responses, trend_store=None):
    gateway = FakeGateway(responses)
    return SnapshotService(gateway, scheduler, cache, config=CONFIG, trend_store=trend_store), gateway


class TestCumulativeConversion:
    def test_positive_differences_only(self):
        points = [TimeSeriesPoint(i, c) for i, c in enumerate([5, 8, 8, 6, 10])]
        assert [(p.timestamp, p.count) for p in cumulative_to_increments(points)] == [(0, 5), (1, 3), (4, 4)]

    def test_empty(self):
        assert cumulative_to_increments([]) == []


class TestParsePoints:
    def test_bad_entry(self):
        doc = SnapshotDocument.from_dict({"projectId": "x", "data": [{"timestamp": 1}]})
        with pytest.raises(DataShapeError):
            parse_points(doc)


class TestSnapshotService:
    """Test per-project fetches"""

    def test_daily_project(self, scheduler, cache):
        service, gateway = make_service(scheduler, cache, {"ADDR_NOTE": APIResponse(success=True, data=document("cm-note", [1, 0, 4]))})
        points = service.fetch_project_data("cm-note")
        assert [p.count for p in points] == [1, 0, 4]
        assert gateway.requested == ["ADDR_NOTE"]

    def test_cumulative_project_is_converted(self, scheduler, cache):
        service, _ = make_service(scheduler, cache, {"ADDR_NAMES": APIResponse(success=True, data=document("irys-names", [5, 8, 8, 6, 10]))})
        assert [p.count for p in service.fetch_project_data("irys-names")] == [5, 3, 4]

    def test_unknown_project(self, scheduler, cache):
        service, gateway = make_service(scheduler, cache, {})
        assert not service.has_project("nope")
        assert service.fetch_project_data("nope") == []
        assert gateway.requested == []

    def test_missing_data_array(self, scheduler, cache):
        service, _ = make_service(scheduler, cache, {"ADDR_BROKEN": APIResponse(success=True, data={"projectId": "broken"})})
        assert service.fetch_project_data("broken") == []

    def test_gateway_failure(self, scheduler, cache):
        service, _ = make_service(scheduler, cache, {"ADDR_BROKEN": APIResponse(success=False, error="HTTP 404", status_code=404)})
        assert service.fetch_project_data("broken") == []
        assert len(cache) == 0

    def test_result_is_cached(self, scheduler, cache):
        service, gateway = make_service(scheduler, cache, {"ADDR_NOTE": APIResponse(success=True, data=document("cm-note", [2]))})
        service.fetch_project_data("cm-note")
        service.fetch_project_data("cm-note")
        assert gateway.requested == ["ADDR_NOTE"]


class TestFetchAllProjects:
    """Test the parallel sweep over every project"""

    def test_sweep_publishes_to_trend_store(self, scheduler, cache):
        store = TrendDataStore()
        responses = {
            "ADDR_NOTE": APIResponse(success=True, data=document("cm-note", [1, 2])),
            "ADDR_NAMES": APIResponse(success=True, data=document("irys-names", [3, 4])),
            "ADDR_BROKEN": APIResponse(success=False, error="down"),
        }
        service, _ = make_service(scheduler, cache, responses, trend_store=store)
        reports = []

        results = service.fetch_all_projects_data(reports.append, max_workers=3)

        assert set(results) == {"cm-note", "irys-names", "broken"}
        assert results["broken"] == []
        assert [p.count for p in results["irys-names"]] == [3, 1]
        assert [p.count for p in store.get("cm-note")] == [1, 2]
        assert (reports[0].current, reports[0].total, reports[0].percentage) == (0, 3, 0)
        assert [r.current for r in reports[1:]] == [1, 2, 3]
        assert reports[-1].percentage == 100


class TestTrendDataStore:
    def test_wait_returns_once_published(self):
        store = TrendDataStore()
        assert store.wait_for_data(timeout=0) is False
        store.publish({"a": [TimeSeriesPoint(1, 1)]})
        assert store.wait_for_data(timeout=0) is True
        assert not store.is_empty()

    def test_values_are_copied(self):
        store = TrendDataStore()
        series = [TimeSeriesPoint(1, 1)]
        store.publish({"a": series})
        series.append(TimeSeriesPoint(2, 2))
        assert len(store.get("a")) == 1
        assert store.get("missing") is None
        store.clear()
        assert store.snapshot() == {}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
