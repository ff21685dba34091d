import httpx
from datetime import datetime, timezone
from typing import Optional

from logbridge import cids
from logbridge.config import settings
from logbridge.engine import BlockLogHandle, decode_root_descriptor, make_address, root_cid_of
from logbridge.errors import IdentifierMismatch
from logbridge.log import debug
from logbridge.models import HeadsPointer

# Explicit timeout configuration to prevent hanging on dead connections
_default_timeout = httpx.Timeout(
    connect=5.0,    # Connection establishment
    read=10.0,      # Reading response
    write=10.0,     # Writing request
    pool=5.0        # Waiting for connection from pool
)


class KuboLogHandle(BlockLogHandle):
    def __init__(self, engine: "KuboLogEngine", address: str, manifest: dict):
        super().__init__(address, manifest)
        self._engine = engine

    async def current_heads(self) -> list[str]:
        pointer = await self._engine.get_heads_pointer(self.address)
        return list(pointer.heads)

    async def get_raw_bytes(self, cid: str) -> Optional[bytes]:
        return await self._engine.get_block(cid)


class KuboLogEngine:
    """
    Log engine backed by a local Kubo node.

    Blocks live in the node's blockstore. The head set of each database is
    kept in MFS as a HeadsPointer JSON file under HEADS_POINTER_ROOT, named
    after the database's root descriptor CID.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        pointer_root: Optional[str] = None,
        scheme: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = (api_url or settings.IPFS_API_URL).rstrip("/")
        self.pointer_root = (pointer_root or settings.HEADS_POINTER_ROOT).rstrip("/")
        self.scheme = scheme or settings.ADDRESS_SCHEME
        self._transport = transport

    def _client(self, timeout: httpx.Timeout = _default_timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def pointer_path(self, address: str) -> str:
        return f"{self.pointer_root}/{root_cid_of(address)}.json"

    async def get_block(self, cid: str) -> Optional[bytes]:
        """Read a block from the local blockstore without going to the network."""
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.api_url}/block/get",
                    params={"arg": cid, "offline": "true"},
                )
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 500:  # Block not in local store
                return None
            raise

    async def put_block(self, cid: str, data: bytes) -> None:
        """Store bytes and check Kubo filed them under the expected CID."""
        parsed = cids.parse(cid)
        async with self._client() as client:
            response = await client.post(
                f"{self.api_url}/block/put",
                params={
                    "cid-codec": parsed.codec,
                    "mhtype": cids.HASH_FUNCTION,
                    "pin": "true",
                },
                files={"file": ("block", data, "application/octet-stream")},
            )
            response.raise_for_status()
            stored = response.json()["Key"]

        if not cids.same_block(stored, cid):
            raise IdentifierMismatch(
                f"Kubo stored block under {stored}, expected {cid}",
                expected=cid,
                actual=stored,
                mismatches=1,
            )
        debug(f"Stored block {cid} ({len(data)} bytes)")

    async def get_heads_pointer(self, address: str) -> HeadsPointer:
        """Read the heads pointer from MFS."""
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.api_url}/files/read",
                    params={"arg": self.pointer_path(address)},
                )
                response.raise_for_status()
                return HeadsPointer(**response.json())
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 500:  # File doesn't exist
                return HeadsPointer(
                    address=address,
                    heads=[],
                    last_updated=datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
                )
            raise

    async def update_heads_pointer(self, address: str, heads: list[str], timeout: float = 30.0):
        """Write the heads pointer to MFS.

        Args:
            address: Database address the heads belong to
            heads: Entry CIDs forming the new head set
            timeout: HTTP read timeout in seconds
        """
        pointer = HeadsPointer(
            address=address,
            heads=heads,
            last_updated=datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        )
        data = pointer.model_dump_json(by_alias=True)

        write_timeout = httpx.Timeout(
            connect=5.0,
            read=timeout,
            write=timeout,
            pool=5.0
        )

        async with self._client(write_timeout) as client:
            response = await client.post(
                f"{self.api_url}/files/write",
                params={
                    "arg": self.pointer_path(address),
                    "create": "true",
                    "truncate": "true",
                    "parents": "true"
                },
                files={"file": ("heads.json", data.encode(), "application/json")},
            )
            response.raise_for_status()

    async def open(self, address: str, heads: Optional[list[str]] = None) -> KuboLogHandle:
        root = root_cid_of(address)
        address = make_address(root, self.scheme)
        manifest = decode_root_descriptor(root, await self.get_block(root))
        if heads is not None:
            await self.update_heads_pointer(address, list(heads))
        return KuboLogHandle(self, address, manifest)
