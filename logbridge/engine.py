"""
Log engine contract.

A log engine owns a local block store and can open a database by address.
The bridge only needs four things from an opened database: its address,
its current heads, raw bytes for a CID, and the entries reachable from the
heads. Both the in-memory engine and the Kubo engine build their handles
on BlockLogHandle, which walks entries over get_raw_bytes().
"""

from collections import deque
from typing import Any, Optional, Protocol

from logbridge import cids, dagcbor
from logbridge.config import settings
from logbridge.errors import NoRootDescriptorFound
from logbridge.log import debug, warn
from logbridge.models import Entry


def make_address(root_cid: str, scheme: Optional[str] = None) -> str:
    return f"{(scheme or settings.ADDRESS_SCHEME).rstrip('/')}/{root_cid}"


def root_cid_of(address: str) -> str:
    """Root descriptor CID named by an address ("/orbitdb/<cid>" or a bare CID)."""
    root = address.strip().rstrip("/").split("/")[-1]
    cids.parse(root)
    return root


class LogHandle(Protocol):
    address: str
    name: Optional[str]
    type: Optional[str]

    async def current_heads(self) -> list[str]: ...

    async def get_raw_bytes(self, cid: str) -> Optional[bytes]: ...

    async def all_entries(self) -> list[Entry]: ...


class LogEngine(Protocol):
    async def open(self, address: str, heads: Optional[list[str]] = None) -> LogHandle: ...

    async def put_block(self, cid: str, data: bytes) -> None: ...


def entry_from_record(cid: str, record: dict, raw: Optional[bytes] = None) -> Entry:
    return Entry(
        hash=cid,
        raw=raw,
        id=record.get("id") if isinstance(record.get("id"), str) else None,
        identity=cids.link(record.get("identity")),
        next=[n for n in (cids.link(x) for x in record.get("next") or []) if n],
        payload=record.get("payload") if isinstance(record.get("payload"), dict) else {},
        clock=record.get("clock") if isinstance(record.get("clock"), dict) else {},
    )


def decode_root_descriptor(root_cid: str, data: Optional[bytes]) -> dict:
    if data is None:
        raise NoRootDescriptorFound(f"Root descriptor {root_cid} is not in the local block store", cid=root_cid)
    try:
        manifest = dagcbor.decode(data)
    except (dagcbor.DecodeError, ValueError) as e:
        raise NoRootDescriptorFound(f"Root descriptor {root_cid} could not be decoded: {e}", cid=root_cid) from e
    if not isinstance(manifest, dict):
        raise NoRootDescriptorFound(f"Root descriptor {root_cid} is not a map", cid=root_cid)
    return manifest


class BlockLogHandle:
    """An opened database whose blocks come from get_raw_bytes()."""

    def __init__(self, address: str, manifest: dict[str, Any]):
        self.address = address
        self.root_cid = root_cid_of(address)
        self.manifest = manifest
        self.name: Optional[str] = manifest.get("name")
        self.type: Optional[str] = manifest.get("type")

    async def current_heads(self) -> list[str]:
        raise NotImplementedError

    async def get_raw_bytes(self, cid: str) -> Optional[bytes]:
        raise NotImplementedError

    async def all_entries(self) -> list[Entry]:
        """
        Walk the log breadth-first from the current heads along next links.

        Entries whose bytes are missing or undecodable are skipped with a
        warning; the walk continues with whatever else is reachable.
        """
        entries: list[Entry] = []
        seen: set[str] = set()
        queue = deque(await self.current_heads())

        while queue:
            cid = queue.popleft()
            if cid in seen:
                continue
            seen.add(cid)

            data = await self.get_raw_bytes(cid)
            if data is None:
                warn(f"Entry {cid} is not in the local block store, skipping")
                continue
            try:
                record = dagcbor.decode(data)
            except (dagcbor.DecodeError, ValueError) as e:
                warn(f"Entry {cid} could not be decoded, skipping: {e}")
                continue
            if not isinstance(record, dict):
                warn(f"Entry {cid} is not a map, skipping")
                continue

            entry = entry_from_record(cid, record, data)
            entries.append(entry)
            queue.extend(n for n in entry.next if n not in seen)

        debug(f"Walked {len(entries)} entries of {self.address}")
        return entries
