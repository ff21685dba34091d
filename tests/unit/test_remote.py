"""
Unit tests for the remote store session.

Tests cover:
- Credentials and session headers
- Upload, listing and removal
- Gateway fallback and digest verification
"""

import pytest

from logbridge import cids
from logbridge.errors import BlockUnavailable, MissingCredentials, RemoteStoreError
from logbridge.remote import RemoteStore

PRIMARY = "http://gateway.test/ipfs"
SECONDARY = "http://backup-gateway.test/ipfs"


class TestCredentials:
    """A session needs both a key and a proof."""

    @pytest.mark.parametrize("key, proof", [(None, "proof"), ("key", None), ("", "")])
    def test_missing(self, key, proof):
        with pytest.raises(MissingCredentials):
            RemoteStore(key, proof)

    @pytest.mark.asyncio
    async def test_headers_on_rpc_not_gateway(self, remote, store):
        remote_cid = await store.upload(b"data")
        await store.download(remote_cid)

        upload_request, gateway_request = remote.requests
        assert upload_request.headers["authorization"] == "Bearer test-key"
        assert upload_request.headers["x-delegation-proof"] == "test-proof"
        assert "authorization" not in gateway_request.headers
        assert gateway_request.headers["accept"] == "application/vnd.ipld.raw"


class TestRpc:
    """Upload, list and remove."""

    @pytest.mark.asyncio
    async def test_upload_returns_remote_cid(self, remote, store):
        remote_cid = await store.upload(b"hello")

        assert remote_cid == cids.cid_for(b"hello", codec="raw", base="base32")
        assert remote.blocks[remote_cid] == b"hello"
        upload_request = remote.requests[0]
        assert upload_request.url.params["cid-codec"] == "raw"
        assert upload_request.url.params["mhtype"] == "sha2-256"

    @pytest.mark.asyncio
    async def test_upload_error(self, remote, store):
        remote.fail_uploads = {1}
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.upload(b"hello")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_list_and_remove(self, remote, store):
        first = await store.upload(b"one")
        second = await store.upload(b"two")

        items = await store.list_space()
        assert [i.root for i in items] == [first, second]
        assert items[0].type == "recursive"

        await store.remove(first)
        assert [i.root for i in await store.list_space()] == [second]

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, remote):
        async with remote.store() as store:
            await store.upload(b"x")
        assert store._client.is_closed
        # A closed session reopens on the next call
        assert await store.list_space()


class TestDownload:
    """Gateway downloads."""

    @pytest.mark.asyncio
    async def test_fallback_to_next_gateway(self, remote):
        store = remote.store(gateways=[PRIMARY, SECONDARY])
        remote_cid = await store.upload(b"block")
        remote.gateway_down = True

        assert await store.download(remote_cid) == b"block"
        hosts = [r.url.host for r in remote.requests[1:]]
        assert hosts == ["gateway.test", "backup-gateway.test"]

    @pytest.mark.asyncio
    async def test_all_gateways_fail(self, remote):
        store = remote.store(gateways=[PRIMARY, SECONDARY])
        missing = cids.cid_for(b"never uploaded", codec="raw", base="base32")

        with pytest.raises(BlockUnavailable) as exc_info:
            await store.download(missing)
        assert len(exc_info.value.attempts) == 2

    @pytest.mark.asyncio
    async def test_tampered_bytes_rejected(self, remote, store):
        remote_cid = await store.upload(b"block")
        remote.tampered.add(remote_cid)

        with pytest.raises(BlockUnavailable):
            await store.download(remote_cid)

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, remote):
        store = remote.store(verify_downloads=False)
        remote_cid = await store.upload(b"block")
        remote.tampered.add(remote_cid)

        assert await store.download(remote_cid) == b"block\x00"
