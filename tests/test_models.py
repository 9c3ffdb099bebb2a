#!/usr/bin/env python3
"""
Unit tests for domain models and dashboard documents
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.shared.models import (
    AbiEntry,
    Dashboard,
    DaysWindow,
    MonthsWindow,
    OnChainPoint,
    OnChainQuery,
    ProgressReport,
    Query,
    Tag,
    TimeSeriesPoint,
)

DASHBOARD = {
    "id": "dash-1",
    "name": "Irys apps",
    "description": "Daily activity",
    "author": "alice",
    "authorAddress": "0xabc",
    "createdAt": 1_710_000_000_000,
    "views": 3,
    "charts": [
        {
            "id": "c1",
            "title": "Notes",
            "timePeriod": "week",
            "chartType": "bar",
            "queries": [{"id": "cm-note", "name": "CM Note", "tags": [{"name": "App-Name", "value": "irys-cm-note"}]}],
            "dateRange": {"startDate": 1, "endDate": 2},
        },
        {
            "id": "c2",
            "title": "Crush",
            "queries": [],
            "onChainQuery": {
                "contractAddress": "0xB99B47558cA055919752D659C8a43FdA47Cb56E2",
                "network": "Irys-Testnet",
                "multipleContracts": [
                    {"name": "Main", "contractAddress": "0x01", "abis": [{"name": "GameFinished", "type": "event"}]},
                    {"name": "Rooms", "contractAddress": "0x02", "abis": [
                        {"name": "GameFinished", "type": "event"},
                        {"name": "createRoom", "type": "function"},
                        {"name": "RoomCreated", "type": "event"},
                    ]},
                ],
            },
        },
    ],
}


class TestDashboardDocument:
    """Test dashboard parsing and serialization"""

    def test_from_dict(self):
        dash = Dashboard.from_dict(DASHBOARD)
        assert dash.views == 3 and dash.likes == 0
        notes, crush = dash.charts
        assert notes.time_period == "week"
        assert notes.queries[0].tags == [Tag("App-Name", "irys-cm-note")]
        assert notes.date_range.start_ms == 1
        assert crush.time_period == "month"
        assert crush.on_chain_query.network == "irys-testnet"

    def test_round_trip_keeps_wire_names(self):
        out = Dashboard.from_dict(DASHBOARD).to_dict()
        assert out["authorAddress"] == "0xabc"
        assert out["charts"][0]["dateRange"] == {"startDate": 1, "endDate": 2}
        assert out["charts"][1]["onChainQuery"]["multipleContracts"][1]["name"] == "Rooms"
        assert Dashboard.from_dict(out).to_dict() == out

    def test_invalid_counters(self):
        with pytest.raises(ValueError):
            Dashboard(id="d", name="x", views=-1)
        with pytest.raises(ValueError):
            Dashboard(id=" ", name="x")


class TestOnChainQuery:
    def test_events_are_distinct_across_contracts(self):
        query = Dashboard.from_dict(DASHBOARD).charts[1].on_chain_query
        assert [e.name for e in query.events] == ["GameFinished", "RoomCreated"]
        assert [c.contract_address for c in query.all_contracts()] == ["0x01", "0x02"]

    def test_single_contract(self):
        query = OnChainQuery(contract_address="0x01", abis=[AbiEntry(name="Ping")])
        assert query.network == "mainnet"
        assert len(query.all_contracts()) == 1

    def test_empty_address_rejected(self):
        with pytest.raises(ValueError):
            OnChainQuery(contract_address=" ")


class TestSamples:
    """Test sample and window validation"""

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            TimeSeriesPoint(1, -1)
        with pytest.raises(ValueError):
            OnChainPoint("2024-03-01", -1)

    def test_onchain_point_date_format(self):
        with pytest.raises(ValueError):
            OnChainPoint("03/01/2024", 1)
        assert OnChainPoint("2024-03-01", 2, "Swap").to_dict() == {"date": "2024-03-01", "count": 2, "functionName": "Swap"}
        assert OnChainPoint("2024-03-01", 2).to_dict() == {"date": "2024-03-01", "count": 2}

    def test_progress_percentage_clamped(self):
        assert ProgressReport(1, 1, 140).percentage == 100
        assert ProgressReport(0, 1, -3).percentage == 0

    def test_windows_must_be_positive(self):
        with pytest.raises(ValueError):
            MonthsWindow(0)
        with pytest.raises(ValueError):
            DaysWindow(-2)

    def test_query_and_tag_validation(self):
        with pytest.raises(ValueError):
            Query(id="", name="x")
        with pytest.raises(ValueError):
            Tag(name=" ", value="x")
        assert Tag("App", "x").pair == "App:x"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
