"""
Backup and restore orchestration.

backup_database:    open -> extract -> upload
restore_database:   download by mapping -> store -> reconstruct heads -> open
restore_from_space: list space -> download all -> classify -> pick root -> open
clear_space:        list space -> remove in batches

Every call builds its own ReconstructionSession; no state is shared between
calls. Remote sessions are owned by the caller; LogBridge opens one per
operation.
"""

from typing import Callable, Optional

from logbridge import cids
from logbridge.config import settings
from logbridge.engine import LogEngine, make_address, root_cid_of
from logbridge.errors import BridgeError, IdentifierMismatch, NothingRestored, NothingUploaded
from logbridge.extract import extract_blocks
from logbridge.graph import ReconstructionSession
from logbridge.log import error, log, success, warn
from logbridge.models import BackupResult, ClearResult, DownloadReport, RestoreResult, SpaceItem
from logbridge.remote import RemoteStore
from logbridge.transfer import ITEM_ERRORS, ProgressCallback, download_blocks, remove_blocks, upload_blocks


async def backup_database(
    engine: LogEngine,
    address: str,
    store: RemoteStore,
    *,
    log_entries_only: bool = False,
    concurrency: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> BackupResult:
    log(f"Starting backup of {address}")

    handle = await engine.open(address)
    snapshot = await extract_blocks(handle, log_entries_only=log_entries_only)
    report = await upload_blocks(store, snapshot.blocks.values(), concurrency=concurrency, progress=progress)

    if not report.successful:
        error(f"Backup of {handle.address} uploaded nothing")
        raise NothingUploaded(len(snapshot.blocks))
    if report.failed:
        warn(f"{len(report.failed)} of {len(snapshot.blocks)} blocks failed to upload")

    success(f"Backup completed: {len(report.successful)}/{len(snapshot.blocks)} blocks")
    return BackupResult(
        success=True,
        root_cid=snapshot.root_cid,
        public_address=handle.address,
        database_name=handle.name,
        blocks_total=len(snapshot.blocks),
        blocks_uploaded=len(report.successful),
        blocks_failed=len(report.failed),
        block_category_counts=snapshot.category_counts(),
        identifier_mapping=report.mapping,
        failed=report.failed,
    )


async def restore_database(
    engine: LogEngine,
    store: RemoteStore,
    root_cid: str,
    identifier_mapping: dict[str, str],
    *,
    concurrency: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> RestoreResult:
    """Restore from a backup's local -> remote identifier mapping."""
    root = cids.to_local_form(root_cid_of(root_cid))
    log(f"Starting restore of {root} from {len(identifier_mapping)} mapped blocks")

    if not identifier_mapping:
        raise NothingRestored("Identifier mapping is empty; nothing to restore")

    targets = [(remote, local) for local, remote in identifier_mapping.items()]
    report = await download_blocks(store, targets, concurrency=concurrency, progress=progress)
    if not report.successful:
        raise NothingRestored("No blocks were successfully restored", attempted=len(targets))

    mismatches = len(report.mismatches)
    if mismatches > len(report.successful) - mismatches:
        raise IdentifierMismatch(
            f"{mismatches} of {len(report.successful)} restored blocks came back under "
            "unexpected identifiers",
            mismatches=mismatches,
        )

    session = ReconstructionSession()
    await _store_blocks(engine, session, report)
    return await _reconstruct(engine, session, root, report, mismatches=mismatches)


async def restore_from_space(
    engine: LogEngine,
    store: RemoteStore,
    root_cid: Optional[str] = None,
    *,
    concurrency: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> RestoreResult:
    """Restore by downloading everything in the remote space."""
    log("Starting restore from remote space")

    items = await store.list_space()
    log(f"   Found {len(items)} files in space")
    if not items:
        raise NothingRestored("No files found in remote space")

    report = await download_blocks(store, [(item.root, None) for item in items], concurrency=concurrency, progress=progress)
    if not report.successful:
        raise NothingRestored("No blocks were successfully restored", attempted=len(items))

    session = ReconstructionSession()
    await _store_blocks(engine, session, report)

    root = session.select_root(root_cid_of(root_cid) if root_cid else None)
    log(f"   Root descriptor: {root}")

    result = await _reconstruct(engine, session, root, report)
    result.space_files_found = len(items)
    return result


async def clear_space(
    store: RemoteStore,
    batch_size: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> ClearResult:
    log("Clearing remote space")
    items = await store.list_space()
    if not items:
        log("   Space is already empty")
        return ClearResult(success=True, total_files=0, total_removed=0, total_failed=0)

    removed, failed = await remove_blocks(store, [item.root for item in items], batch_size=batch_size, progress=progress)
    if failed:
        warn(f"Removed {removed}/{len(items)} files, {failed} failed")
    else:
        success(f"Removed {removed} files")
    return ClearResult(
        success=failed == 0,
        total_files=len(items),
        total_removed=removed,
        total_failed=failed,
    )


async def _store_blocks(engine: LogEngine, session: ReconstructionSession, report: DownloadReport) -> None:
    """
    File downloaded blocks in the local store, one at a time.

    A block the engine refuses moves from report.successful to report.failed
    and is left out of reconstruction.
    """
    records = {record.local_cid: record for record in report.successful}
    for cid, data in list(report.blocks.items()):
        try:
            await engine.put_block(cid, data)
        except ITEM_ERRORS as e:
            warn(f"Failed to store block {cid} locally: {e}")
            del report.blocks[cid]
            record = records.get(cid)
            if record is not None:
                report.successful.remove(record)
                report.failed.append(record.model_copy(update={
                    "error": str(e),
                    "code": e.code if isinstance(e, BridgeError) else "LOCAL_STORE_FAILURE",
                }))
            continue
        session.add(cid, data)

    if not report.blocks:
        raise NothingRestored("No restored block could be stored locally", attempted=len(records))
    log(f"   Stored {len(report.blocks)} blocks: {session.category_counts()}")


async def _reconstruct(
    engine: LogEngine,
    session: ReconstructionSession,
    root: str,
    report: DownloadReport,
    mismatches: int = 0,
) -> RestoreResult:
    heads = session.heads(root)
    log(f"   Reconstructed {len(heads)} heads")

    # The engine renders the address in its own scheme
    handle = await engine.open(make_address(root), heads=heads or None)
    entries = await handle.all_entries()

    named = session.addresses_of(root)
    expected_address = named[0] if len(named) == 1 else handle.address
    address_match = handle.address == expected_address
    if len(named) > 1:
        warn(f"Entries of {root} name several databases: {named}")
        address_match = False
    if not address_match:
        warn(f"Opened {handle.address}, expected {expected_address}")
    if not entries:
        warn(f"No entries recovered for {handle.address}")

    restored = address_match and bool(entries)
    if restored:
        success(f"Restore completed: {len(entries)} entries in {handle.address}")
    return RestoreResult(
        success=restored,
        public_address=handle.address,
        root_cid=root,
        database_name=handle.name,
        address_match=address_match,
        entries_recovered=len(entries),
        blocks_restored=len(report.successful),
        blocks_failed=len(report.failed),
        mismatches=mismatches,
        head_set=heads,
        block_category_counts=session.category_counts(),
    )


class LogBridge:
    """
    Entry point bundling an engine with a remote store factory.

    Each operation opens a fresh remote session and closes it afterwards.
    """

    def __init__(
        self,
        engine: LogEngine,
        store_factory: Callable[[], RemoteStore] = RemoteStore.from_settings,
        concurrency: Optional[int] = None,
    ):
        self.engine = engine
        self.store_factory = store_factory
        self.concurrency = concurrency

    async def backup(self, address: str, log_entries_only: bool = False,
                     progress: Optional[ProgressCallback] = None) -> BackupResult:
        async with self.store_factory() as store:
            return await backup_database(
                self.engine, address, store,
                log_entries_only=log_entries_only, concurrency=self.concurrency, progress=progress,
            )

    async def restore(self, root_cid: str, identifier_mapping: dict[str, str],
                      progress: Optional[ProgressCallback] = None) -> RestoreResult:
        async with self.store_factory() as store:
            return await restore_database(
                self.engine, store, root_cid, identifier_mapping,
                concurrency=self.concurrency, progress=progress,
            )

    async def restore_from_space(self, root_cid: Optional[str] = None,
                                 progress: Optional[ProgressCallback] = None) -> RestoreResult:
        async with self.store_factory() as store:
            return await restore_from_space(
                self.engine, store, root_cid, concurrency=self.concurrency, progress=progress,
            )

    async def list_space(self) -> list[SpaceItem]:
        async with self.store_factory() as store:
            return await store.list_space()

    async def clear_space(self, batch_size: Optional[int] = None,
                          progress: Optional[ProgressCallback] = None) -> ClearResult:
        async with self.store_factory() as store:
            return await clear_space(store, batch_size or settings.REMOVE_BATCH_SIZE, progress=progress)
