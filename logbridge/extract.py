from typing import Optional

from logbridge import cids, dagcbor
from logbridge.engine import LogHandle, root_cid_of
from logbridge.errors import NoEntriesFound, NoRootDescriptorFound
from logbridge.log import debug, log, success, warn
from logbridge.models import Block, BlockCategory, Snapshot


def _add(snapshot: Snapshot, cid: str, data: bytes, category: BlockCategory):
    # First category assigned to a CID wins
    if cid not in snapshot.blocks:
        snapshot.blocks[cid] = Block(cid=cid, data=data, category=category)


async def extract_blocks(handle: LogHandle, log_entries_only: bool = False) -> Snapshot:
    """
    Collect every block needed to rebuild a database.

    Order: log entries, root descriptor, permission descriptor, signer
    descriptors. Missing entries, permission and signer blocks are skipped
    with a warning. A log with no entries raises NoEntriesFound; a missing
    root descriptor raises NoRootDescriptorFound.

    With log_entries_only, only the entries are collected.
    """
    root_cid = root_cid_of(handle.address)
    mode = "log entries only" if log_entries_only else "all blocks"
    log(f"Extracting {mode} from database: {handle.name or handle.address}")

    snapshot = Snapshot(address=handle.address, root_cid=root_cid, name=handle.name)

    entries = await handle.all_entries()
    log(f"   Found {len(entries)} log entries")
    if not entries:
        raise NoEntriesFound(handle.address)

    for entry in entries:
        data = entry.raw if entry.raw is not None else await handle.get_raw_bytes(entry.hash)
        if data is None:
            warn(f"Failed to get entry {entry.hash}, skipping")
            continue
        _add(snapshot, entry.hash, data, BlockCategory.LOG_ENTRY)

    if not snapshot.blocks:
        raise NoEntriesFound(handle.address)

    if log_entries_only:
        success(f"Extracted {len(snapshot.blocks)} log entry blocks")
        return snapshot

    root_bytes = await handle.get_raw_bytes(root_cid)
    if root_bytes is None:
        raise NoRootDescriptorFound(f"Root descriptor {root_cid} is missing from the local block store", cid=root_cid)
    _add(snapshot, root_cid, root_bytes, BlockCategory.ROOT_DESCRIPTOR)
    debug(f"   Root descriptor: {root_cid}")

    permission_cid = _permission_reference(root_cid, root_bytes)
    if permission_cid:
        data = await handle.get_raw_bytes(permission_cid)
        if data is None:
            warn(f"Permission descriptor {permission_cid} is missing, skipping")
        else:
            _add(snapshot, permission_cid, data, BlockCategory.PERMISSION_DESCRIPTOR)
            debug(f"   Permission descriptor: {permission_cid}")

    signers: list[str] = []
    for entry in entries:
        if entry.identity and entry.hash in snapshot.blocks and entry.identity not in signers:
            signers.append(entry.identity)

    for signer in signers:
        data = await handle.get_raw_bytes(signer)
        if data is None:
            warn(f"Signer descriptor {signer} is missing, skipping")
            continue
        _add(snapshot, signer, data, BlockCategory.SIGNER_DESCRIPTOR)
    debug(f"   Signer descriptors: {len(signers)}")

    success(f"Extracted {len(snapshot.blocks)} total blocks")
    return snapshot


def _permission_reference(root_cid: str, root_bytes: bytes) -> Optional[str]:
    try:
        manifest = dagcbor.decode(root_bytes)
    except (dagcbor.DecodeError, ValueError) as e:
        warn(f"Root descriptor {root_cid} could not be decoded: {e}")
        return None
    if not isinstance(manifest, dict):
        return None
    reference = cids.link(manifest.get("accessController"))
    if not reference:
        warn(f"Root descriptor {root_cid} names no permission descriptor")
    return reference
