"""
Serialised bridge operations and the scheduled backup trigger.

Backup, restore and clear all touch the same local engine and remote
space, so the API and the scheduler share one lock.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import httpx

from logbridge.bridge import LogBridge
from logbridge.config import settings
from logbridge.errors import BridgeError
from logbridge.log import error, log, success
from logbridge.models import ScheduledBackup

# Global lock to serialise bridge operations
_bridge_lock = asyncio.Lock()

_last_backup: Optional[ScheduledBackup] = None


def operation_lock() -> asyncio.Lock:
    return _bridge_lock


def get_last_backup() -> Optional[ScheduledBackup]:
    return _last_backup


async def trigger_scheduled_backup(bridge: LogBridge):
    """
    Back up BACKUP_ADDRESS if nothing else is running.

    Skips when no address is configured or another operation holds the
    lock. Failures are recorded, never raised, so the scheduler keeps going.
    """
    global _last_backup

    if not settings.BACKUP_ADDRESS:
        log("No BACKUP_ADDRESS configured, skipping scheduled backup")
        return

    if _bridge_lock.locked():
        log("Bridge operation already in progress, skipping scheduled backup")
        return

    triggered_at = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
    record = ScheduledBackup(triggered_at=triggered_at, address=settings.BACKUP_ADDRESS)

    async with _bridge_lock:
        log(f"Scheduled backup triggered at {triggered_at}")
        try:
            record.result = await bridge.backup(settings.BACKUP_ADDRESS)
            success(f"Scheduled backup uploaded {record.result.blocks_uploaded}/{record.result.blocks_total} blocks")
        except (BridgeError, httpx.HTTPError) as e:
            record.error = str(e)
            error(f"Scheduled backup failed: {e}")

    _last_backup = record
