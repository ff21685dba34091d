"""
DAG-CBOR block encoding.

Blocks are canonical CBOR. Links appear either as plain CID strings or as
CBOR tag 42 wrapping the binary CID behind a 0x00 prefix; decode() turns
tag 42 into CID objects so callers can normalise both with cids.link().
"""

from typing import Any

import cbor2
from cid import CIDv0, CIDv1, make_cid

CID_TAG = 42

DecodeError = cbor2.CBORError


def encode(value: Any) -> bytes:
    return cbor2.dumps(value, canonical=True, default=_encode_link)


def decode(data: bytes) -> Any:
    """Decode one block. Raises cbor2.CBORError or ValueError on bad input."""
    return _resolve_links(cbor2.loads(data))


def _encode_link(encoder, value):
    if isinstance(value, (CIDv0, CIDv1)):
        encoder.encode(cbor2.CBORTag(CID_TAG, b"\x00" + value.buffer))
        return
    raise cbor2.CBOREncodeError(f"cannot encode {type(value).__name__}")


def _resolve_links(value: Any) -> Any:
    if isinstance(value, cbor2.CBORTag):
        if value.tag == CID_TAG and isinstance(value.value, bytes):
            return _cid_from_binary(value.value)
        return value
    if isinstance(value, dict):
        return {k: _resolve_links(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_links(v) for v in value]
    return value


def _cid_from_binary(raw: bytes):
    if raw[:1] == b"\x00":
        raw = raw[1:]
    # A bare sha2-256 multihash is a CIDv0
    if raw[:1] == b"\x12":
        return make_cid(0, CIDv0.CODEC, raw)
    return make_cid(raw)
