#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Domain Models for the IrysDune activity aggregator
Defines series samples, dashboard documents and on-chain query descriptors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ONCHAIN_PREFIX = "onchain-"
TIME_PERIODS = ("week", "month", "quarter", "year")

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Tag:
    """Ledger transaction tag used to filter the tag index"""
    name: str
    value: str

    def __post_init__(self):
        if not self.name or not str(self.name).strip():
            raise ValueError("tag name cannot be empty")

    @property
    def pair(self) -> str:
        return f"{self.name}:{self.value}"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Tag":
        return cls(name=str(raw["name"]), value=str(raw.get("value", "")))

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass
class TimeSeriesPoint:
    """One daily sample (timestamp in epoch milliseconds)"""
    timestamp: int
    count: int

    def __post_init__(self):
        if self.count < 0:
            raise ValueError("count cannot be negative")

    def to_dict(self) -> Dict[str, int]:
        return {"timestamp": self.timestamp, "count": self.count}


@dataclass
class OnChainPoint:
    """
    One daily on-chain sample

    function_name discriminates event series that share a date.
    """
    date: str
    count: int
    function_name: Optional[str] = None

    def __post_init__(self):
        if not _DAY_RE.match(self.date or ""):
            raise ValueError(f"date must be YYYY-MM-DD, got {self.date!r}")
        if self.count < 0:
            raise ValueError("count cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"date": self.date, "count": self.count}
        if self.function_name is not None:
            out["functionName"] = self.function_name
        return out


@dataclass
class ProgressReport:
    """Progress snapshot handed to caller-supplied callbacks"""
    current: float
    total: float
    percentage: float
    message: Optional[str] = None

    def __post_init__(self):
        self.percentage = max(0.0, min(100.0, float(self.percentage)))


@dataclass(frozen=True)
class MonthsWindow:
    months: float = 6

    def __post_init__(self):
        if self.months <= 0:
            raise ValueError("months must be positive")


@dataclass(frozen=True)
class DaysWindow:
    days: int = 30

    def __post_init__(self):
        if self.days <= 0:
            raise ValueError("days must be positive")


@dataclass
class AbiInput:
    name: str
    type: str
    indexed: bool = False
    components: List[AbiInput] = field(default_factory=list)

    @property
    def canonical_type(self) -> str:
        """`tuple`, `tuple[]` and `tuple[N]` expanded to their component types"""
        if not self.type.startswith("tuple"):
            return self.type
        inner = ",".join(c.canonical_type for c in self.components)
        suffix = self.type[len("tuple"):]
        return f"({inner}){suffix}"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AbiInput":
        return cls(
            name=str(raw.get("name", "")),
            type=str(raw["type"]),
            indexed=bool(raw.get("indexed", False)),
            components=[cls.from_dict(c) for c in raw.get("components", []) or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "type": self.type, "indexed": self.indexed}
        if self.components:
            out["components"] = [c.to_dict() for c in self.components]
        return out


@dataclass
class AbiEntry:
    """Event or function fragment of a contract ABI"""
    name: str
    type: str = "event"
    inputs: List[AbiInput] = field(default_factory=list)

    def __post_init__(self):
        if self.type not in ("event", "function"):
            raise ValueError("abi type must be 'event' or 'function'")

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(i.canonical_type for i in self.inputs)})"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AbiEntry":
        return cls(
            name=str(raw["name"]),
            type=str(raw.get("type", "event")),
            inputs=[AbiInput.from_dict(i) for i in raw.get("inputs", []) or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "inputs": [i.to_dict() for i in self.inputs],
        }


@dataclass
class ContractSpec:
    contract_address: str
    abis: List[AbiEntry] = field(default_factory=list)
    name: Optional[str] = None


@dataclass
class OnChainQuery:
    """
    Descriptor of an on-chain activity query

    `contracts` lists extra contracts aggregated into the same series
    (games spread over several contracts).
    """
    contract_address: str
    abis: List[AbiEntry] = field(default_factory=list)
    network: str = "mainnet"
    rpc_url: Optional[str] = None
    contracts: List[ContractSpec] = field(default_factory=list)

    def __post_init__(self):
        if not self.contract_address or not self.contract_address.strip():
            raise ValueError("contract_address cannot be empty")
        self.network = (self.network or "mainnet").strip().lower()

    @property
    def events(self) -> List[AbiEntry]:
        """Distinct event fragments across all contracts, first occurrence wins"""
        seen: Dict[str, AbiEntry] = {}
        for spec in self.all_contracts():
            for abi in spec.abis:
                if abi.type == "event" and abi.name not in seen:
                    seen[abi.name] = abi
        return list(seen.values())

    def all_contracts(self) -> List[ContractSpec]:
        if self.contracts:
            return list(self.contracts)
        return [ContractSpec(contract_address=self.contract_address, abis=list(self.abis))]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "OnChainQuery":
        return cls(
            contract_address=str(raw.get("contractAddress") or raw.get("contract_address") or ""),
            abis=[AbiEntry.from_dict(a) for a in raw.get("abis", []) or []],
            network=str(raw.get("network") or "mainnet"),
            rpc_url=raw.get("rpcUrl") or raw.get("rpc_url"),
            contracts=[
                ContractSpec(
                    contract_address=str(c.get("contractAddress") or c.get("contract_address")),
                    abis=[AbiEntry.from_dict(a) for a in c.get("abis", []) or []],
                    name=c.get("name"),
                )
                for c in raw.get("multipleContracts", raw.get("contracts", [])) or []
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "contractAddress": self.contract_address,
            "abis": [a.to_dict() for a in self.abis],
            "network": self.network,
        }
        if self.rpc_url:
            out["rpcUrl"] = self.rpc_url
        if self.contracts:
            out["multipleContracts"] = [
                {"name": c.name, "contractAddress": c.contract_address, "abis": [a.to_dict() for a in c.abis]}
                for c in self.contracts
            ]
        return out


@dataclass
class Query:
    id: str
    name: str
    tags: List[Tag] = field(default_factory=list)
    color: Optional[str] = None

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("query id cannot be empty")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Query":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            tags=[Tag.from_dict(t) for t in raw.get("tags", []) or []],
            color=raw.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "name": self.name, "tags": [t.to_dict() for t in self.tags]}
        if self.color is not None:
            out["color"] = self.color
        return out


@dataclass
class ChartDateRange:
    """Absolute chart window, fixed once from the dashboard creation time"""
    start_ms: int
    end_ms: int

    def __post_init__(self):
        if self.start_ms > self.end_ms:
            raise ValueError("start_ms must not be after end_ms")


@dataclass
class Chart:
    id: str
    title: str
    queries: List[Query] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)  # legacy single tag array
    on_chain_query: Optional[OnChainQuery] = None
    time_period: str = "month"
    date_range: Optional[ChartDateRange] = None
    chart_type: str = "line"
    color: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("chart id cannot be empty")
        # unknown periods are kept; the resolver maps them to its defaults
        self.time_period = str(self.time_period or "month")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Chart":
        dr = raw.get("dateRange")
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or raw.get("name") or raw["id"]),
            queries=[Query.from_dict(q) for q in raw.get("queries", []) or []],
            tags=[Tag.from_dict(t) for t in raw.get("tags", []) or []],
            on_chain_query=OnChainQuery.from_dict(raw["onChainQuery"]) if raw.get("onChainQuery") else None,
            time_period=str(raw.get("timePeriod", "month")),
            date_range=ChartDateRange(int(dr["startDate"]), int(dr["endDate"])) if dr else None,
            chart_type=str(raw.get("chartType", "line")),
            color=raw.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "queries": [q.to_dict() for q in self.queries],
            "timePeriod": self.time_period,
            "chartType": self.chart_type,
        }
        if self.tags:
            out["tags"] = [t.to_dict() for t in self.tags]
        if self.on_chain_query is not None:
            out["onChainQuery"] = self.on_chain_query.to_dict()
        if self.date_range is not None:
            out["dateRange"] = {"startDate": self.date_range.start_ms, "endDate": self.date_range.end_ms}
        if self.color is not None:
            out["color"] = self.color
        return out


@dataclass
class Dashboard:
    """
    Dashboard document

    Only `charts[].date_range` and `views` are written by the resolver.
    """
    id: str
    name: str
    charts: List[Chart] = field(default_factory=list)
    created_at: Optional[int] = None  # epoch ms
    updated_at: Optional[int] = None
    author: str = ""
    author_address: str = ""
    description: str = ""
    views: int = 0
    likes: int = 0

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("dashboard id cannot be empty")
        if self.views < 0 or self.likes < 0:
            raise ValueError("views/likes cannot be negative")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Dashboard":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", "")),
            charts=[Chart.from_dict(c) for c in raw.get("charts", []) or []],
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            author=str(raw.get("author", "")),
            author_address=str(raw.get("authorAddress", "")),
            description=str(raw.get("description", "")),
            views=int(raw.get("views", 0) or 0),
            likes=int(raw.get("likes", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "author": self.author,
            "authorAddress": self.author_address,
            "charts": [c.to_dict() for c in self.charts],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "views": self.views,
            "likes": self.likes,
        }


@dataclass
class SnapshotDocument:
    """Pre-aggregated project document served at a mutable address"""
    project_id: str
    project_name: str
    data_type: str
    generated_at: str
    data_points: int
    data: List[Dict[str, Any]]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SnapshotDocument":
        return cls(
            project_id=str(raw.get("projectId", "")),
            project_name=str(raw.get("projectName", "")),
            data_type=str(raw.get("dataType", "")),
            generated_at=str(raw.get("generatedAt", "")),
            data_points=int(raw.get("dataPoints", 0) or 0),
            data=list(raw["data"]),
        )


@dataclass
class EventDetail:
    """Single decoded on-chain event"""
    transaction_hash: str
    block_number: int
    timestamp_ms: int
    event_name: str
    contract_address: str
    network: str
    args: Optional[Dict[str, Any]] = None
