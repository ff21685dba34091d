"""
Block transfer loops.

Each loop attempts every item. A failure on one item is logged and
recorded in the report, and the loop moves on; nothing short of a broken
caller aborts the batch. With concurrency 1 items run strictly in order,
otherwise up to `concurrency` run at once.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import httpx

from logbridge import cids
from logbridge.config import settings
from logbridge.errors import BridgeError, PartialDownloadFailure, PartialUploadFailure
from logbridge.log import debug, log, success, warn
from logbridge.models import (
    Block,
    DownloadRecord,
    DownloadReport,
    TransferProgress,
    UploadRecord,
    UploadReport,
)
from logbridge.remote import RemoteStore

T = TypeVar("T")
ProgressCallback = Callable[[TransferProgress], None]

# Failures that belong to one item rather than to the whole batch
ITEM_ERRORS = (BridgeError, httpx.HTTPError)


async def _run_all(items: list[T], worker: Callable[[T], Awaitable[None]], concurrency: int):
    if concurrency <= 1:
        for item in items:
            await worker(item)
        return

    semaphore = asyncio.Semaphore(concurrency)

    async def bounded(item: T):
        async with semaphore:
            await worker(item)

    await asyncio.gather(*(bounded(item) for item in items))


def _notify(progress: Optional[ProgressCallback], **fields):
    if progress is not None:
        progress(TransferProgress(**fields))


async def upload_blocks(
    store: RemoteStore,
    blocks: Iterable[Block],
    concurrency: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> UploadReport:
    blocks = list(blocks)
    total = len(blocks)
    report = UploadReport()
    done = 0

    log(f"Uploading {total} blocks to remote store...")
    _notify(progress, type="upload", current=0, total=total, status="starting")

    async def upload_one(block: Block):
        nonlocal done
        error = None
        try:
            remote_cid = await store.upload(block.data)
            digest_matches = cids.same_digest(remote_cid, block.cid)
        except ITEM_ERRORS as e:
            failure = PartialUploadFailure(block.cid, e)
            warn(failure.message)
            error = str(e)
            report.failed.append(UploadRecord(
                local_cid=block.cid,
                size=block.size,
                error=error,
                code=failure.code,
            ))
        else:
            if not digest_matches:
                warn(f"Remote store returned {remote_cid} for {block.cid}; digests differ")
            debug(f"   Uploaded {block.cid} -> {remote_cid}")
            report.successful.append(UploadRecord(
                local_cid=block.cid,
                remote_cid=remote_cid,
                size=block.size,
            ))
        done += 1
        _notify(progress, type="upload", current=done, total=total, status="running", cid=block.cid, error=error)

    await _run_all(blocks, upload_one, concurrency or settings.TRANSFER_CONCURRENCY)

    _notify(progress, type="upload", current=done, total=total, status="completed")
    success(f"Upload completed: {len(report.successful)}/{total} blocks uploaded")
    return report


async def download_blocks(
    store: RemoteStore,
    targets: Iterable[tuple[str, Optional[str]]],
    concurrency: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> DownloadReport:
    """
    Download (remote_cid, expected_local_cid) pairs.

    Each downloaded block is filed under its translated local CID in
    report.blocks. When an expected local CID is given, the record notes
    whether translation agreed with it.
    """
    targets = list(targets)
    total = len(targets)
    report = DownloadReport()
    done = 0

    log(f"Downloading {total} blocks from remote store...")
    _notify(progress, type="download", current=0, total=total, status="starting")

    async def download_one(target: tuple[str, Optional[str]]):
        nonlocal done
        remote_cid, expected = target
        error = None
        try:
            data = await store.download(remote_cid)
            local_cid = cids.to_local_form(remote_cid)
        except ITEM_ERRORS as e:
            failure = PartialDownloadFailure(remote_cid, e)
            warn(failure.message)
            error = str(e)
            report.failed.append(DownloadRecord(
                remote_cid=remote_cid,
                expected_cid=expected,
                error=error,
                code=failure.code,
            ))
        else:
            match = None if expected is None else local_cid == expected
            if match is False:
                warn(f"Identifier mismatch: expected {expected}, got {local_cid}")
            report.blocks[local_cid] = data
            report.successful.append(DownloadRecord(
                remote_cid=remote_cid,
                local_cid=local_cid,
                expected_cid=expected,
                size=len(data),
                match=match,
            ))
        done += 1
        _notify(progress, type="download", current=done, total=total, status="running", cid=remote_cid, error=error)

    await _run_all(targets, download_one, concurrency or settings.TRANSFER_CONCURRENCY)

    _notify(progress, type="download", current=done, total=total, status="completed")
    success(f"Download completed: {len(report.successful)}/{total} blocks downloaded")
    return report


async def remove_blocks(
    store: RemoteStore,
    remote_cids: Iterable[str],
    batch_size: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> tuple[int, int]:
    """Remove uploads in batches, each batch in parallel. Returns (removed, failed)."""
    remote_cids = list(remote_cids)
    total = len(remote_cids)
    batch_size = max(1, batch_size or settings.REMOVE_BATCH_SIZE)
    removed = failed = 0

    _notify(progress, type="remove", current=0, total=total, status="starting")

    async def remove_one(remote_cid: str):
        nonlocal removed, failed
        try:
            await store.remove(remote_cid)
        except ITEM_ERRORS as e:
            failed += 1
            warn(f"Failed to remove {remote_cid}: {e}")
        else:
            removed += 1
            debug(f"   Removed {remote_cid}")

    for start in range(0, total, batch_size):
        batch = remote_cids[start:start + batch_size]
        await _run_all(batch, remove_one, len(batch))
        _notify(progress, type="remove", current=removed + failed, total=total, status="running")

    _notify(progress, type="remove", current=removed + failed, total=total, status="completed")
    return removed, failed
