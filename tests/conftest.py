"""
Shared fixtures.

FakeRemote answers the remote store's RPC calls and the gateway GETs
through httpx.MockTransport, so RemoteStore runs its real HTTP code.
"""

from typing import Optional

import httpx
import pytest

from logbridge import cids
from logbridge.memory import MemoryLogEngine, MemoryLogHandle
from logbridge.remote import RemoteStore

API_URL = "http://remote.test/api/v0"
GATEWAY = "http://gateway.test/ipfs"
BACKUP_GATEWAY = "http://backup-gateway.test/ipfs"


def multipart_payload(request: httpx.Request) -> bytes:
    """Bytes of the single file part in a multipart request."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    part = request.content.split(b"--" + boundary)[1]
    return part.split(b"\r\n\r\n", 1)[1].rsplit(b"\r\n", 1)[0]


class FakeRemote:
    """In-memory remote store plus gateway."""

    def __init__(self):
        self.blocks: dict[str, bytes] = {}  # Remote CID -> bytes
        self.pins: list[str] = []
        self.upload_calls = 0
        self.fail_uploads: set[int] = set()  # 1-based upload call numbers answered with 500
        self.fail_removes: set[str] = set()
        self.gateway_down = False  # Primary gateway answers 502
        self.tampered: set[str] = set()  # Served with altered bytes
        self.requests: list[httpx.Request] = []
        self.unreachable = False  # Every request fails to connect

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        host = request.url.host
        path = request.url.path

        if host == "remote.test":
            if path.endswith("/block/put"):
                return self._put(request)
            if path.endswith("/pin/ls"):
                return httpx.Response(200, json={"Keys": {cid: {"Type": "recursive"} for cid in self.pins}})
            if path.endswith("/pin/rm"):
                cid = request.url.params["arg"]
                if cid in self.fail_removes:
                    return httpx.Response(500, json={"Message": "remove failed"})
                if cid in self.pins:
                    self.pins.remove(cid)
                return httpx.Response(200, json={"Pins": [cid]})

        if host in ("gateway.test", "backup-gateway.test"):
            if host == "gateway.test" and self.gateway_down:
                return httpx.Response(502, text="bad gateway")
            cid = path.rsplit("/", 1)[-1]
            if cid not in self.blocks:
                return httpx.Response(404, text="not found")
            data = self.blocks[cid]
            if cid in self.tampered:
                data = data + b"\x00"
            return httpx.Response(200, content=data)

        return httpx.Response(404)

    def _put(self, request: httpx.Request) -> httpx.Response:
        self.upload_calls += 1
        if self.upload_calls in self.fail_uploads:
            return httpx.Response(500, json={"Message": "upload failed"})
        data = multipart_payload(request)
        cid = cids.cid_for(data, codec=cids.REMOTE_CODEC, base=cids.REMOTE_BASE)
        self.blocks[cid] = data
        if cid not in self.pins:
            self.pins.append(cid)
        return httpx.Response(200, json={"Key": cid, "Size": len(data)})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def store(self, gateways: Optional[list[str]] = None, **kwargs) -> RemoteStore:
        return RemoteStore(
            "test-key",
            "test-proof",
            api_url=API_URL,
            gateways=gateways or [GATEWAY],
            transport=self.transport(),
            **kwargs,
        )


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def store(remote):
    return remote.store()


@pytest.fixture
def engine():
    return MemoryLogEngine()


@pytest.fixture
def make_database(engine):
    """Factory for a database with `entries` sequential PUT entries."""

    async def _make(entries: int = 3, name: str = "bridge-test") -> MemoryLogHandle:
        handle = await engine.create_database(name)
        for i in range(entries):
            await handle.append(f"key-{i}", {"n": i})
        return handle

    return _make
