"""
In-memory log engine.

Holds blocks in a dict keyed by local CID and head sets per address. It
writes the same DAG-CBOR records a real database writes (root descriptor,
permission descriptor, signer descriptor, log entries), so backups made
from it classify and restore like the real thing.

Invariants:
    - A block is stored under cids.cid_for(bytes); identifiers always match content
    - Heads of an address are the entries no other appended entry points at
"""

import hashlib
import uuid
from typing import Any, Optional

from pydantic import BaseModel

from logbridge import cids, dagcbor
from logbridge.config import settings
from logbridge.engine import BlockLogHandle, decode_root_descriptor, make_address, root_cid_of
from logbridge.models import (
    AccessController,
    Clock,
    Identity,
    IdentitySignatures,
    LogEntryRecord,
    Manifest,
    Payload,
)


class MemoryLogHandle(BlockLogHandle):
    def __init__(self, engine: "MemoryLogEngine", address: str, manifest: dict):
        super().__init__(address, manifest)
        self._engine = engine

    async def current_heads(self) -> list[str]:
        return list(self._engine.heads.get(self.address, []))

    async def get_raw_bytes(self, cid: str) -> Optional[bytes]:
        return self._engine.blocks.get(cid)

    async def append(
        self,
        key: Optional[str],
        value: Any = None,
        op: str = "PUT",
        next: Optional[list[str]] = None,
    ) -> str:
        """Append an entry and return its CID.

        next defaults to the current heads. Passing it explicitly lets a
        caller build concurrent branches.
        """
        writer = self._engine.writers.get(self.address)
        if writer is None:
            raise RuntimeError(f"No writer identity for {self.address}; open it via create_database()")
        identity_cid, identity = writer

        heads = await self.current_heads()
        parents = list(next) if next is not None else heads
        time = 1 + max((self._engine.clock_of(p) for p in parents), default=0)

        payload = Payload(op=op, key=key, value=value)
        record = LogEntryRecord(
            id=self.address,
            payload=payload,
            next=parents,
            clock=Clock(id=identity.publicKey, time=time),
            key=identity.publicKey,
            identity=identity_cid,
            sig=_fake_sign(identity.id, payload.model_dump(exclude_none=True), parents),
        )
        cid = self._engine.put_record(record)

        self._engine.heads[self.address] = [h for h in heads if h not in parents] + [cid]
        return cid


class MemoryLogEngine:
    def __init__(self, scheme: Optional[str] = None):
        self.scheme = scheme or settings.ADDRESS_SCHEME
        self.blocks: dict[str, bytes] = {}
        self.heads: dict[str, list[str]] = {}
        self.writers: dict[str, tuple[str, Identity]] = {}

    def put_record(self, record: BaseModel) -> str:
        data = dagcbor.encode(record.model_dump(exclude_none=True))
        cid = cids.cid_for(data)
        self.blocks[cid] = data
        return cid

    def clock_of(self, cid: str) -> int:
        data = self.blocks.get(cid)
        if data is None:
            return 0
        clock = dagcbor.decode(data).get("clock") or {}
        return int(clock.get("time", 0))

    async def put_block(self, cid: str, data: bytes) -> None:
        self.blocks[cid] = bytes(data)

    async def create_database(
        self,
        name: str,
        type: str = "events",
        identity_id: Optional[str] = None,
    ) -> MemoryLogHandle:
        identity_id = identity_id or uuid.uuid4().hex
        public_key = hashlib.sha256(identity_id.encode()).hexdigest()
        identity = Identity(
            id=identity_id,
            publicKey=public_key,
            signatures=IdentitySignatures(
                id=hashlib.sha256(f"id:{identity_id}".encode()).hexdigest(),
                publicKey=hashlib.sha256(f"pk:{public_key}".encode()).hexdigest(),
            ),
        )
        identity_cid = self.put_record(identity)
        ac_cid = self.put_record(AccessController(write=[identity_id]))
        root = self.put_record(Manifest(name=name, type=type, accessController=f"/ipfs/{ac_cid}"))

        address = make_address(root, self.scheme)
        self.heads.setdefault(address, [])
        self.writers[address] = (identity_cid, identity)
        return await self.open(address)

    async def open(self, address: str, heads: Optional[list[str]] = None) -> MemoryLogHandle:
        root = root_cid_of(address)
        address = make_address(root, self.scheme)
        manifest = decode_root_descriptor(root, self.blocks.get(root))
        if heads is not None:
            self.heads[address] = list(heads)
        return MemoryLogHandle(self, address, manifest)


def _fake_sign(identity_id: str, payload: dict, next: list[str]) -> str:
    # Stand-in signature; entries are never verified here
    return hashlib.sha256(dagcbor.encode({"id": identity_id, "payload": payload, "next": next})).hexdigest()
