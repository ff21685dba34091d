"""
Content identifier handling.

The local log addresses blocks as CIDv1 / dag-cbor / sha2-256 rendered in
base58btc ("zdpu..."). The remote store addresses the same bytes as
CIDv1 / raw / sha2-256 rendered in base32 ("bafkrei..."). Both forms carry
the same multihash, so translation only swaps the codec tag and the text
encoding; the digest never changes.
"""

from typing import Any, Optional, Union

import multihash
from cid import CIDv0, CIDv1, extract_encoding, make_cid

from logbridge.errors import MalformedIdentifier

LOCAL_CODEC = "dag-cbor"
LOCAL_BASE = "base58btc"
REMOTE_CODEC = "raw"
REMOTE_BASE = "base32"
HASH_FUNCTION = "sha2-256"

IPFS_PATH_PREFIX = "/ipfs/"

AnyCID = Union[CIDv0, CIDv1]


def parse(value: str) -> AnyCID:
    """Parse a textual CID (or an /ipfs/<cid> path). Raises MalformedIdentifier."""
    if not isinstance(value, str) or not value.strip():
        raise MalformedIdentifier(str(value), "empty identifier")
    text = value.strip()
    if text.startswith(IPFS_PATH_PREFIX):
        text = text[len(IPFS_PATH_PREFIX):]
    try:
        return make_cid(text)
    except (ValueError, TypeError, KeyError, IndexError, EOFError) as e:
        raise MalformedIdentifier(value, str(e)) from e


def encoding_of(value: str) -> str:
    """Name of the multibase a textual CIDv1 is rendered in."""
    try:
        return extract_encoding(value)
    except (ValueError, KeyError) as e:
        raise MalformedIdentifier(value, str(e)) from e


def render(codec: str, mh: bytes, base: str) -> str:
    return CIDv1(codec, mh).encode(base).decode("ascii")


def to_remote_form(local_cid: str) -> str:
    """Translate a local identifier into the remote store's form.

    Only canonical local identifiers are accepted: version 1, dag-cbor,
    base58btc. Anything else raises MalformedIdentifier.
    """
    parsed = parse(local_cid)
    if parsed.version != 1 or parsed.codec != LOCAL_CODEC:
        raise MalformedIdentifier(local_cid, f"expected CIDv1 {LOCAL_CODEC}")
    if encoding_of(local_cid.strip()) != LOCAL_BASE:
        raise MalformedIdentifier(local_cid, f"expected {LOCAL_BASE} text encoding")
    return render(REMOTE_CODEC, parsed.multihash, REMOTE_BASE)


def to_local_form(remote_cid: str) -> str:
    """Translate any parseable identifier into the local form, keeping its digest."""
    parsed = parse(remote_cid)
    return render(LOCAL_CODEC, parsed.multihash, LOCAL_BASE)


def digest_of(value: str) -> bytes:
    """Raw hash digest carried by an identifier."""
    parsed = parse(value)
    try:
        return multihash.decode(parsed.multihash).digest
    except (ValueError, TypeError) as e:
        raise MalformedIdentifier(value, str(e)) from e


def same_digest(a: str, b: str) -> bool:
    return digest_of(a) == digest_of(b)


def same_block(a: str, b: str) -> bool:
    """Two identifiers name the same block when codec and multihash agree."""
    first, second = parse(a), parse(b)
    return first.codec == second.codec and first.multihash == second.multihash


def cid_for(data: bytes, codec: str = LOCAL_CODEC, base: str = LOCAL_BASE) -> str:
    """Identifier of some bytes under the given codec and text encoding."""
    mh = multihash.digest(data, HASH_FUNCTION).encode()
    return render(codec, mh, base)


def verify(value: str, data: bytes) -> bool:
    """True when the bytes hash to the digest the identifier carries."""
    parsed = parse(value)
    try:
        return multihash.decode(parsed.multihash).verify(data)
    except (ValueError, TypeError, multihash.MultihashError) as e:
        raise MalformedIdentifier(value, str(e)) from e


def link(value: Any) -> Optional[str]:
    """Normalise a link found inside a decoded record to a textual CID.

    Accepts CID objects (decoded DAG-CBOR links), bare CID strings and
    /ipfs/<cid> paths. Strings are returned as written, minus the path.
    """
    if value is None:
        return None
    if isinstance(value, CIDv1):
        return value.encode(LOCAL_BASE).decode("ascii")
    if isinstance(value, CIDv0):
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(IPFS_PATH_PREFIX):
            text = text[len(IPFS_PATH_PREFIX):]
        return text or None
    return None
