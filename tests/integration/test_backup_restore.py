"""
Integration tests for backup and restore round trips.

Tests cover:
- Backup with partial upload failure
- Empty databases
- Restore from an identifier mapping
- Restore from the whole remote space
- Head set equivalence across branches
- Multi-database spaces
- Clearing the space
- Non-default address schemes
"""

import pytest

from logbridge import cids
from logbridge.bridge import (
    LogBridge,
    backup_database,
    clear_space,
    restore_database,
    restore_from_space,
)
from logbridge.errors import (
    AmbiguousRootDescriptor,
    IdentifierMismatch,
    NoEntriesFound,
    NothingRestored,
    NothingUploaded,
)
from logbridge.engine import make_address
from logbridge.memory import MemoryLogEngine


class TestBackup:
    """Tests for backup_database."""

    @pytest.mark.asyncio
    async def test_backup(self, engine, store, make_database):
        handle = await make_database(entries=3)

        result = await backup_database(engine, handle.address, store)

        assert result.success
        assert result.root_cid == handle.root_cid
        assert result.public_address == handle.address
        assert result.database_name == "bridge-test"
        assert result.blocks_total == 6
        assert result.blocks_uploaded == 6
        assert result.block_category_counts == {
            "log_entry": 3,
            "manifest": 1,
            "access_controller": 1,
            "identity": 1,
        }
        assert set(result.identifier_mapping) == set(engine.blocks)

    @pytest.mark.asyncio
    async def test_partial_upload_failure(self, engine, remote, store, make_database):
        """Five blocks, uploads 2 and 4 fail: still a successful backup of 3."""
        handle = await make_database(entries=2)
        remote.fail_uploads = {2, 4}

        result = await backup_database(engine, handle.address, store)

        assert result.success
        assert result.blocks_total == 5
        assert result.blocks_uploaded == 3
        assert result.blocks_failed == 2
        assert len(result.identifier_mapping) == 3

    @pytest.mark.asyncio
    async def test_every_upload_fails(self, engine, remote, store, make_database):
        handle = await make_database(entries=1)
        remote.fail_uploads = set(range(1, 10))

        with pytest.raises(NothingUploaded):
            await backup_database(engine, handle.address, store)

    @pytest.mark.asyncio
    async def test_empty_database_uploads_nothing(self, engine, remote, store):
        handle = await engine.create_database("empty")

        with pytest.raises(NoEntriesFound):
            await backup_database(engine, handle.address, store)
        assert remote.upload_calls == 0

    @pytest.mark.asyncio
    async def test_log_entries_only(self, engine, store, make_database):
        handle = await make_database(entries=3)
        result = await backup_database(engine, handle.address, store, log_entries_only=True)

        assert result.blocks_total == 3
        assert result.block_category_counts == {"log_entry": 3}


class TestRestoreFromMapping:
    """Tests for restore_database."""

    @pytest.mark.asyncio
    async def test_round_trip(self, engine, store, make_database):
        handle = await make_database(entries=3)
        backup = await backup_database(engine, handle.address, store)

        target = MemoryLogEngine()
        result = await restore_database(target, store, backup.root_cid, backup.identifier_mapping)

        assert result.success
        assert result.address_match
        assert result.public_address == handle.address
        assert result.entries_recovered == 3
        assert result.blocks_restored == 6
        assert result.mismatches == 0
        assert set(result.head_set) == set(await handle.current_heads())
        assert target.blocks == engine.blocks

    @pytest.mark.asyncio
    async def test_empty_mapping(self, engine, store, make_database):
        handle = await make_database(entries=1)
        with pytest.raises(NothingRestored):
            await restore_database(MemoryLogEngine(), store, handle.root_cid, {})

    @pytest.mark.asyncio
    async def test_nothing_downloads(self, engine, remote, store, make_database):
        handle = await make_database(entries=1)
        backup = await backup_database(engine, handle.address, store)
        remote.blocks.clear()

        with pytest.raises(NothingRestored):
            await restore_database(MemoryLogEngine(), store, backup.root_cid, backup.identifier_mapping)

    @pytest.mark.asyncio
    async def test_majority_mismatch(self, engine, store, make_database):
        """When most blocks come back under other identifiers the restore is refused."""
        handle = await make_database(entries=3)
        backup = await backup_database(engine, handle.address, store)

        locals_ = list(backup.identifier_mapping)
        remotes = list(backup.identifier_mapping.values())
        rotated = dict(zip(locals_[1:] + locals_[:1], remotes))

        with pytest.raises(IdentifierMismatch):
            await restore_database(MemoryLogEngine(), store, backup.root_cid, rotated)

    @pytest.mark.asyncio
    async def test_remote_form_root_cid(self, engine, store, make_database):
        handle = await make_database(entries=2)
        backup = await backup_database(engine, handle.address, store)

        result = await restore_database(
            MemoryLogEngine(), store, cids.to_remote_form(backup.root_cid), backup.identifier_mapping,
        )

        assert result.root_cid == backup.root_cid
        assert result.address_match
        assert result.entries_recovered == 2

    @pytest.mark.asyncio
    async def test_restore_after_partial_backup(self, engine, remote, store, make_database):
        """Restore rebuilds from whatever made it into the backup."""
        handle = await make_database(entries=3)
        remote.fail_uploads = {2}  # Second entry in walk order
        backup = await backup_database(engine, handle.address, store)

        result = await restore_database(MemoryLogEngine(), store, backup.root_cid, backup.identifier_mapping)

        assert result.success
        assert result.entries_recovered < 3


class TestRestoreFromSpace:
    """Tests for restore_from_space."""

    @pytest.mark.asyncio
    async def test_three_entries(self, engine, store, make_database):
        handle = await make_database(entries=3)
        await backup_database(engine, handle.address, store)

        result = await restore_from_space(MemoryLogEngine(), store)

        assert result.success
        assert result.address_match
        assert result.public_address == handle.address
        assert result.entries_recovered == 3
        assert result.space_files_found == 6
        assert result.database_name == "bridge-test"

    @pytest.mark.asyncio
    async def test_head_set_equivalence(self, engine, store):
        """E1 <- E2 <- E3 and E1 <- E4 restores with heads {E3, E4}."""
        handle = await engine.create_database("branches")
        e1 = await handle.append("a")
        await handle.append("b")
        e3 = await handle.append("c")
        e4 = await handle.append("d", next=[e1])
        await backup_database(engine, handle.address, store)

        target = MemoryLogEngine()
        result = await restore_from_space(target, store)

        assert set(result.head_set) == {e3, e4}
        restored = await target.open(handle.address)
        assert set(await restored.current_heads()) == set(await handle.current_heads())
        assert result.entries_recovered == 4

    @pytest.mark.asyncio
    async def test_empty_space(self, store):
        with pytest.raises(NothingRestored):
            await restore_from_space(MemoryLogEngine(), store)

    @pytest.mark.asyncio
    async def test_two_databases_need_root_cid(self, engine, store, make_database):
        first = await make_database(entries=2, name="first")
        second = await make_database(entries=1, name="second")
        await backup_database(engine, first.address, store)
        await backup_database(engine, second.address, store)

        with pytest.raises(AmbiguousRootDescriptor):
            await restore_from_space(MemoryLogEngine(), store)

        result = await restore_from_space(MemoryLogEngine(), store, root_cid=second.root_cid)
        assert result.public_address == second.address
        assert result.entries_recovered == 1
        assert result.database_name == "second"


async def backup_custom_scheme(store):
    source = MemoryLogEngine(scheme="/custom")
    handle = await source.create_database("custom")
    for i in range(3):
        await handle.append(f"key-{i}")
    backup = await backup_database(source, handle.address, store)
    return handle, backup


class TestAddressScheme:
    """Restores honour the scheme the engines were built with."""

    @pytest.mark.asyncio
    async def test_mapping_restore(self, store):
        handle, backup = await backup_custom_scheme(store)

        result = await restore_database(
            MemoryLogEngine(scheme="/custom"), store, backup.root_cid, backup.identifier_mapping,
        )

        assert result.success
        assert result.address_match
        assert result.public_address == handle.address
        assert result.entries_recovered == 3
        assert set(result.head_set) == set(await handle.current_heads())

    @pytest.mark.asyncio
    async def test_space_restore(self, store):
        handle, _ = await backup_custom_scheme(store)

        result = await restore_from_space(MemoryLogEngine(scheme="/custom"), store)

        assert result.success
        assert result.address_match
        assert result.entries_recovered == 3
        assert set(result.head_set) == set(await handle.current_heads())

    @pytest.mark.asyncio
    async def test_other_scheme_is_flagged(self, store):
        """Entries are still rebuilt, but the result reports the address change."""
        _, backup = await backup_custom_scheme(store)

        result = await restore_from_space(MemoryLogEngine(scheme="/elsewhere"), store)

        assert not result.success
        assert not result.address_match
        assert result.public_address == make_address(backup.root_cid, "/elsewhere")
        assert result.entries_recovered == 3


class TestClearSpace:
    """Tests for clear_space."""

    @pytest.mark.asyncio
    async def test_clear(self, engine, remote, store, make_database):
        handle = await make_database(entries=2)
        await backup_database(engine, handle.address, store)

        result = await clear_space(store, batch_size=2)

        assert result.success
        assert result.total_files == 5
        assert result.total_removed == 5
        assert remote.pins == []

    @pytest.mark.asyncio
    async def test_clear_empty(self, store):
        result = await clear_space(store)
        assert result.success
        assert result.total_files == 0


class TestLogBridge:
    """Tests for the LogBridge facade."""

    @pytest.mark.asyncio
    async def test_backup_then_restore(self, engine, remote, make_database):
        handle = await make_database(entries=2)
        source = LogBridge(engine, store_factory=remote.store)
        backup = await source.backup(handle.address)

        target = LogBridge(MemoryLogEngine(), store_factory=remote.store)
        result = await target.restore(backup.root_cid, backup.identifier_mapping)

        assert result.entries_recovered == 2
        assert len(await target.list_space()) == 5
        assert (await target.clear_space()).total_removed == 5
