"""
Block classification.

Each decoded block is tried against a fixed sequence of shape checks and
takes the category of the first that accepts it:

    1. root descriptor       name, type, accessController
    2. log entry             sig, key, identity
    3. signer descriptor     id, type
    4. permission descriptor type == "orbitdb-access-controller"
    5. unrecognized

A field counts as present when it holds a truthy value. Blocks that do not
decode as DAG-CBOR maps are unrecognized.
"""

from typing import Any, Callable, NamedTuple, Optional

from logbridge import dagcbor
from logbridge.log import debug
from logbridge.models import BlockCategory

PERMISSION_CONTROLLER_TYPE = "orbitdb-access-controller"


class ClassifiedBlock(NamedTuple):
    cid: str
    category: BlockCategory
    content: Any  # Decoded value, None when undecodable


def _has(content: dict, *fields: str) -> bool:
    return all(content.get(f) for f in fields)


def try_parse_as_root_descriptor(content: dict) -> Optional[dict]:
    return content if _has(content, "name", "type", "accessController") else None

def try_parse_as_log_entry(content: dict) -> Optional[dict]:
    return content if _has(content, "sig", "key", "identity") else None

def try_parse_as_signer_descriptor(content: dict) -> Optional[dict]:
    return content if _has(content, "id", "type") else None

def try_parse_as_permission_descriptor(content: dict) -> Optional[dict]:
    return content if content.get("type") == PERMISSION_CONTROLLER_TYPE else None


RULES: tuple[tuple[BlockCategory, Callable[[dict], Optional[dict]]], ...] = (
    (BlockCategory.ROOT_DESCRIPTOR, try_parse_as_root_descriptor),
    (BlockCategory.LOG_ENTRY, try_parse_as_log_entry),
    (BlockCategory.SIGNER_DESCRIPTOR, try_parse_as_signer_descriptor),
    (BlockCategory.PERMISSION_DESCRIPTOR, try_parse_as_permission_descriptor),
)


def classify_content(content: Any) -> BlockCategory:
    if not isinstance(content, dict):
        return BlockCategory.UNRECOGNIZED
    for category, parse in RULES:
        if parse(content) is not None:
            return category
    return BlockCategory.UNRECOGNIZED


def classify_block(cid: str, data: bytes) -> ClassifiedBlock:
    try:
        content = dagcbor.decode(data)
    except (dagcbor.DecodeError, ValueError) as e:
        debug(f"Block {cid} is not DAG-CBOR: {e}")
        return ClassifiedBlock(cid, BlockCategory.UNRECOGNIZED, None)
    return ClassifiedBlock(cid, classify_content(content), content)
