#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Event-log decoding for contract ABIs.

Topic hashes are keccak-256 of the canonical event signature (web3). Indexed
arguments come from topics[1:], non-indexed ones are ABI-decoded from `data`
with eth_abi. Indexed strings, bytes, arrays and tuples are only available as
their topic hash.
"""

from typing import Any, Dict, List, Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError, ParseError
from eth_abi.grammar import TupleType, parse
from web3 import Web3

from .logging_setup import get_logger
from .models import AbiEntry

logger = get_logger(__name__)

TRANSFER_SIGNATURE = "Transfer(address,address,uint256)"
TRANSFER_TOPIC0 = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def keccak_hex(text: str) -> str:
    return Web3.to_hex(Web3.keccak(text=text))


def event_topic(abi: AbiEntry) -> str:
    """topic0 of an event fragment"""
    return keccak_hex(abi.signature)


def decode_topic_address(topic: str) -> str:
    topic = topic.lower()
    if topic.startswith("0x"):
        topic = topic[2:]
    return "0x" + topic[-40:]


def _topic_is_hash(type_str: str) -> bool:
    node = parse(type_str)
    return node.is_dynamic or node.is_array or isinstance(node, TupleType)


def _plain(value: Any) -> Any:
    """eth_abi output as JSON-friendly values (hex bytes, lists, lowercase addresses)"""
    if isinstance(value, bytes):
        return Web3.to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, str) and Web3.is_checksum_address(value):
        return value.lower()
    return value


def decode_log_args(abi: AbiEntry, log: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Decode a raw log against an event fragment.

    Returns a name -> value map, or None when the log's topics or data do not
    fit the fragment.
    """
    topics: List[str] = list(log.get("topics") or [])
    indexed = [i for i in abi.inputs if i.indexed]
    plain = [i for i in abi.inputs if not i.indexed]
    if len(topics) < len(indexed) + 1:
        return None

    args: Dict[str, Any] = {}
    try:
        for topic, inp in zip(topics[1:], indexed):
            if _topic_is_hash(inp.canonical_type):
                args[inp.name] = topic.lower()
            else:
                args[inp.name] = _plain(decode([inp.canonical_type], Web3.to_bytes(hexstr=topic))[0])
        values = decode([i.canonical_type for i in plain], Web3.to_bytes(hexstr=log.get("data") or "0x"))
    except (DecodingError, ParseError, ValueError) as e:
        logger.debug(f"Cannot decode {abi.name} log: {e}")
        return None
    for inp, value in zip(plain, values):
        args[inp.name] = _plain(value)
    return args


def transfer_addresses(log: Dict[str, Any]) -> List[str]:
    """from/to addresses of a raw Transfer log (topics 1 and 2)"""
    topics = list(log.get("topics") or [])
    return [decode_topic_address(t) for t in topics[1:3]]
