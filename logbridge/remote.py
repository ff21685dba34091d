"""
Remote content-addressed store.

Uploads, listings and removals go to the store's RPC endpoint with the
session credentials attached. Downloads go through public gateways, tried
in order; the first gateway that answers with bytes matching the
requested digest wins.
"""

from typing import Optional

import httpx

from logbridge import cids
from logbridge.config import settings
from logbridge.errors import BlockUnavailable, MissingCredentials, RemoteStoreError
from logbridge.log import debug, warn
from logbridge.models import SpaceItem

RAW_BLOCK_MEDIA_TYPE = "application/vnd.ipld.raw"


class RemoteStore:
    """An authenticated session against the remote store.

    Use as an async context manager, or call close() when done. Requests
    made after close() reopen the session.
    """

    def __init__(
        self,
        key: Optional[str],
        proof: Optional[str],
        api_url: Optional[str] = None,
        gateways: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        gateway_timeout: Optional[float] = None,
        verify_downloads: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not key or not proof:
            raise MissingCredentials()
        self.key = key
        self.proof = proof
        self.api_url = (api_url or settings.REMOTE_API_URL).rstrip("/")
        self.gateways = [g.rstrip("/") for g in (gateways or settings.GATEWAYS)]
        self.timeout = timeout or settings.REMOTE_TIMEOUT_SECONDS
        self.gateway_timeout = gateway_timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.verify_downloads = settings.VERIFY_DOWNLOADS if verify_downloads is None else verify_downloads
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._gateway_client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, **overrides) -> "RemoteStore":
        return cls(key=settings.REMOTE_KEY, proof=settings.REMOTE_PROOF, **overrides)

    async def __aenter__(self) -> "RemoteStore":
        self._session()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _session(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=5.0, read=self.timeout, write=self.timeout, pool=5.0),
                headers={
                    "Authorization": f"Bearer {self.key}",
                    "X-Delegation-Proof": self.proof,
                },
                transport=self._transport,
            )
        return self._client

    def _gateways(self) -> httpx.AsyncClient:
        # Gateways are public; credentials stay off these requests
        if self._gateway_client is None or self._gateway_client.is_closed:
            self._gateway_client = httpx.AsyncClient(
                timeout=self.gateway_timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._gateway_client

    async def close(self):
        for client in (self._client, self._gateway_client):
            if client is not None and not client.is_closed:
                await client.aclose()

    def _check(self, response: httpx.Response):
        if response.is_error:
            raise RemoteStoreError(
                f"{response.request.method} {response.request.url.path} failed: "
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

    async def upload(self, data: bytes) -> str:
        """Store one block as raw bytes. Returns the remote CID."""
        response = await self._session().post(
            f"{self.api_url}/block/put",
            params={
                "cid-codec": cids.REMOTE_CODEC,
                "mhtype": cids.HASH_FUNCTION,
                "pin": "true",
            },
            files={"file": ("block", data, "application/octet-stream")},
        )
        self._check(response)
        try:
            return response.json()["Key"]
        except (ValueError, KeyError) as e:
            raise RemoteStoreError(f"Unexpected upload response: {response.text[:200]}") from e

    async def download(self, remote_cid: str) -> bytes:
        """Fetch one block, trying each gateway in order."""
        attempts: list[str] = []
        client = self._gateways()

        for gateway in self.gateways:
            url = f"{gateway}/{remote_cid}"
            try:
                response = await client.get(url, headers={"Accept": RAW_BLOCK_MEDIA_TYPE})
                response.raise_for_status()
            except httpx.HTTPError as e:
                debug(f"   {gateway} failed for {remote_cid}: {e}")
                attempts.append(f"{gateway}: {e}")
                continue

            data = response.content
            if self.verify_downloads and not cids.verify(remote_cid, data):
                warn(f"   {gateway} returned bytes that do not hash to {remote_cid}")
                attempts.append(f"{gateway}: digest mismatch")
                continue

            debug(f"   Downloaded {remote_cid} ({len(data)} bytes) from {gateway}")
            return data

        raise BlockUnavailable(remote_cid, attempts)

    async def list_space(self) -> list[SpaceItem]:
        """Every upload recorded in the space."""
        response = await self._session().post(
            f"{self.api_url}/pin/ls",
            params={"type": "recursive"},
        )
        self._check(response)
        try:
            keys = response.json().get("Keys") or {}
        except ValueError as e:
            raise RemoteStoreError(f"Unexpected listing response: {response.text[:200]}") from e
        return [SpaceItem(root=cid, type=(info or {}).get("Type")) for cid, info in keys.items()]

    async def remove(self, remote_cid: str) -> None:
        response = await self._session().post(
            f"{self.api_url}/pin/rm",
            params={"arg": remote_cid},
        )
        self._check(response)
