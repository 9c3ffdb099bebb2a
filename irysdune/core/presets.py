#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Preset catalogs: tag-indexed app presets and on-chain contract presets.

Lookups go through PresetKey values:
- ExactId("irys-crush")            -> catalog id as written
- OnChainPrefixedId("irys-crush")  -> "onchain-irys-crush" with the prefix stripped
- Name("IrysCrush")                -> case-insensitive display name

`resolve_preset_id` tries the keys parsed from a query in that order and
returns the first canonical id that exists.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from ..shared.config import ConfigError
from ..shared.logging_setup import get_logger
from ..shared.models import ONCHAIN_PREFIX, AbiEntry, ContractSpec, OnChainQuery, Query, Tag

logger = get_logger(__name__)


class PresetKey:
    """Tagged lookup key for a preset"""

    @staticmethod
    def parse(value: Union[str, Query, Dict[str, Any], "PresetKey"]) -> List["PresetKey"]:
        """
        Candidate keys for a query id, a Query, or a `{id?, name?}` mapping,
        in resolution order.
        """
        if isinstance(value, PresetKey):
            return [value]
        if isinstance(value, Query):
            ident, name = value.id, value.name
        elif isinstance(value, dict):
            ident, name = value.get("id"), value.get("name")
        else:
            ident, name = str(value), None

        keys: List[PresetKey] = []
        if ident:
            keys.append(ExactId(ident))
            if ident.startswith(ONCHAIN_PREFIX) and len(ident) > len(ONCHAIN_PREFIX):
                keys.append(OnChainPrefixedId(ident[len(ONCHAIN_PREFIX):]))
        if name:
            keys.append(Name(name))
        return keys


@dataclass(frozen=True)
class ExactId(PresetKey):
    value: str


@dataclass(frozen=True)
class OnChainPrefixedId(PresetKey):
    preset_id: str


@dataclass(frozen=True)
class Name(PresetKey):
    value: str


@dataclass
class AppPreset:
    id: str
    name: str
    tags: List[Tag] = field(default_factory=list)
    color: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("preset id cannot be empty")
        if not self.tags:
            raise ValueError(f"app preset {self.id} needs at least one tag")


@dataclass
class OnChainPreset:
    id: str
    name: str
    contract_address: str
    network: str = "mainnet"
    rpc_url: Optional[str] = None
    description: str = ""
    events: List[AbiEntry] = field(default_factory=list)
    contracts: List[ContractSpec] = field(default_factory=list)

    def __post_init__(self):
        if not self.id:
            raise ValueError("preset id cannot be empty")
        if not self.contract_address:
            raise ValueError(f"on-chain preset {self.id} needs a contract_address")


class PresetCatalog:
    """Read-only view over both preset catalogs"""

    def __init__(self, app_presets: Iterable[AppPreset] = (), onchain_presets: Iterable[OnChainPreset] = ()):
        self.app_presets: Dict[str, AppPreset] = {p.id: p for p in app_presets}
        self.onchain_presets: Dict[str, OnChainPreset] = {p.id: p for p in onchain_presets}

    def __contains__(self, preset_id: str) -> bool:
        return preset_id in self.app_presets or preset_id in self.onchain_presets

    def _by_name(self, name: str) -> Optional[str]:
        wanted = name.strip().lower()
        for preset in list(self.app_presets.values()) + list(self.onchain_presets.values()):
            if preset.name.lower() == wanted:
                return preset.id
        return None

    def resolve_key(self, key: PresetKey) -> Optional[str]:
        if isinstance(key, ExactId):
            return key.value if key.value in self else None
        if isinstance(key, OnChainPrefixedId):
            return key.preset_id if key.preset_id in self else None
        if isinstance(key, Name):
            return self._by_name(key.value)
        raise TypeError(f"Unsupported preset key: {key!r}")

    def resolve_preset_id(self, value: Union[str, Query, Dict[str, Any], PresetKey]) -> Optional[str]:
        """
        Canonical preset id for a query id, Query or name mapping

        Example:
            >>> catalog.resolve_preset_id("onchain-irys-crush")
            'irys-crush'
        """
        for key in PresetKey.parse(value):
            resolved = self.resolve_key(key)
            if resolved is not None:
                return resolved
        return None

    def app_preset(self, preset_id: str) -> Optional[AppPreset]:
        return self.app_presets.get(preset_id)

    def onchain_preset(self, preset_id: str) -> Optional[OnChainPreset]:
        return self.onchain_presets.get(preset_id)

    def match_tag_set(self, tags: Sequence[Tag]) -> Optional[AppPreset]:
        """App preset whose tag set equals `tags` (same size, every preset tag present)"""
        if not tags:
            return None
        wanted = {(t.name, t.value) for t in tags}
        for preset in self.app_presets.values():
            if len(preset.tags) == len(tags) and all((t.name, t.value) in wanted for t in preset.tags):
                return preset
        return None

    def to_onchain_query(self, preset_id: str) -> OnChainQuery:
        """
        Raises:
            KeyError: unknown on-chain preset
        """
        preset = self.onchain_presets[preset_id]
        return OnChainQuery(
            contract_address=preset.contract_address,
            abis=list(preset.events),
            network=preset.network,
            rpc_url=preset.rpc_url,
            contracts=list(preset.contracts),
        )


def _parse_tags(raw: Any) -> List[Tag]:
    return [Tag.from_dict(t) for t in raw or []]


def load_presets(path: Union[str, Path]) -> PresetCatalog:
    """
    Load the preset catalog YAML

    Raises:
        ConfigError: If the file cannot be read or an entry is invalid
    """
    preset_file = Path(path)
    if not preset_file.exists():
        raise ConfigError(f"Preset catalog not found: {path}")
    try:
        with open(preset_file, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    try:
        apps = [
            AppPreset(id=str(p["id"]), name=str(p.get("name", p["id"])), tags=_parse_tags(p.get("tags")), color=p.get("color"))
            for p in raw.get("app_presets", []) or []
        ]
        chains = []
        for p in raw.get("onchain_presets", []) or []:
            chains.append(OnChainPreset(
                id=str(p["id"]),
                name=str(p.get("name", p["id"])),
                contract_address=str(p.get("contract_address", "")),
                network=str(p.get("network", "mainnet")).lower(),
                rpc_url=p.get("rpc_url"),
                description=str(p.get("description", "")),
                events=[AbiEntry.from_dict(a) for a in p.get("abis", []) or []],
                contracts=[
                    ContractSpec(
                        contract_address=str(c["contract_address"]),
                        abis=[AbiEntry.from_dict(a) for a in c.get("abis", []) or []],
                        name=c.get("name"),
                    )
                    for c in p.get("contracts", []) or []
                ],
            ))
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise ConfigError(f"Invalid preset catalog {path}: {e}")

    logger.info(f"Loaded {len(apps)} app presets and {len(chains)} on-chain presets from {path}")
    return PresetCatalog(apps, chains)
