from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import httpx

from logbridge import jobs
from logbridge.bridge import LogBridge
from logbridge.config import settings
from logbridge.errors import (
    AmbiguousRootDescriptor,
    BlockUnavailable,
    BridgeError,
    IdentifierMismatch,
    MalformedIdentifier,
    MissingCredentials,
    NoEntriesFound,
    NoRootDescriptorFound,
    NothingRestored,
    NothingUploaded,
    RemoteStoreError,
)
from logbridge.kubo import KuboLogEngine
from logbridge.log import log, success
from logbridge.models import BackupRequest, RestoreRequest, SpaceRestoreRequest

app = FastAPI(title="IPFS Log Bridge API", version="1.0.0")

# Scheduler for time-based backups
scheduler = AsyncIOScheduler()

app.state.bridge = LogBridge(KuboLogEngine())

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_CODES = {
    MalformedIdentifier: 400,
    MissingCredentials: 401,
    NoEntriesFound: 404,
    NoRootDescriptorFound: 404,
    AmbiguousRootDescriptor: 409,
    IdentifierMismatch: 409,
    NothingUploaded: 502,
    NothingRestored: 502,
    BlockUnavailable: 502,
    RemoteStoreError: 502,
}


def _bridge() -> LogBridge:
    return app.state.bridge


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError):
    status_code = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.post("/backup")
async def backup(request: BackupRequest):
    """
    Back up a database to the remote store.

    Request body:
    - address: Database address ("/orbitdb/<root cid>")
    - log_entries_only: Upload only log entries (default false)

    Returns counts, per-category block counts and the local -> remote
    identifier mapping needed by POST /restore. Individual block failures
    are listed under "failed" and do not fail the request.
    """
    try:
        async with jobs.operation_lock():
            return await _bridge().backup(request.address, log_entries_only=request.log_entries_only)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Failed to reach IPFS: {str(e)}")


@app.post("/restore")
async def restore(request: RestoreRequest):
    """
    Restore a database from a backup's identifier mapping.

    Request body:
    - root_cid: Root descriptor CID (or database address)
    - identifier_mapping: Local CID -> remote CID, as returned by POST /backup
    """
    try:
        async with jobs.operation_lock():
            return await _bridge().restore(request.root_cid, request.identifier_mapping)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Failed to reach IPFS: {str(e)}")


@app.post("/restore/space")
async def restore_space(request: SpaceRestoreRequest):
    """
    Restore a database from everything stored in the remote space.

    Pass root_cid when the space holds more than one database.
    """
    try:
        async with jobs.operation_lock():
            return await _bridge().restore_from_space(request.root_cid)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Failed to reach IPFS: {str(e)}")


@app.get("/space")
async def list_space():
    """List uploads in the remote space."""
    try:
        items = await _bridge().list_space()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Failed to reach remote store: {str(e)}")
    return {"items": items, "count": len(items)}


@app.delete("/space")
async def clear_space():
    """Remove every upload from the remote space."""
    try:
        async with jobs.operation_lock():
            return await _bridge().clear_space()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Failed to reach remote store: {str(e)}")


@app.get("/backups/last")
async def last_backup():
    """Outcome of the most recent scheduled backup."""
    record = jobs.get_last_backup()
    if record is None:
        raise HTTPException(status_code=404, detail="No scheduled backup has run yet")
    return record


@app.on_event("startup")
async def startup_event():
    """Start the backup scheduler."""
    if settings.AUTO_BACKUP:
        interval = settings.BACKUP_INTERVAL_MINUTES
        log(f"Starting backup scheduler (every {interval} minutes)")

        scheduler.add_job(
            jobs.trigger_scheduled_backup,
            'interval',
            minutes=interval,
            args=[_bridge()],
            id='log_backup',
            replace_existing=True
        )
        scheduler.start()
        success("Backup scheduler started")
    else:
        log("Auto-backup disabled (AUTO_BACKUP=false)")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        log("Backup scheduler stopped")
