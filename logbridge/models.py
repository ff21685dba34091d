from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlockCategory(str, Enum):
    ROOT_DESCRIPTOR = "manifest"
    LOG_ENTRY = "log_entry"
    SIGNER_DESCRIPTOR = "identity"
    PERMISSION_DESCRIPTOR = "access_controller"
    UNRECOGNIZED = "unknown"


# Wire records. Field names follow the database's DAG-CBOR layout.

class Manifest(BaseModel):
    name: str
    type: str = "events"
    accessController: str  # "/ipfs/<cid>"

class AccessController(BaseModel):
    type: str = "orbitdb-access-controller"
    write: list[str] = []

class IdentitySignatures(BaseModel):
    id: str
    publicKey: str

class Identity(BaseModel):
    id: str
    type: str = "publickey"
    publicKey: str
    signatures: IdentitySignatures

class Payload(BaseModel):
    op: str = "PUT"  # "PUT" | "DEL" | "ADD"
    key: Optional[str] = None
    value: Any = None

class Clock(BaseModel):
    id: str
    time: int

class LogEntryRecord(BaseModel):
    id: str  # Database address
    payload: Payload
    next: list[str] = []  # Entries that causally precede this one
    refs: list[str] = []
    clock: Clock
    v: int = 2
    key: str
    identity: str  # Signer descriptor CID
    sig: str


class Entry(BaseModel):
    """A log entry as seen through a log handle."""
    hash: str
    id: Optional[str] = None
    identity: Optional[str] = None
    next: list[str] = []
    payload: dict = {}
    clock: dict = {}
    raw: Optional[bytes] = Field(default=None, exclude=True)  # Block bytes read during the walk


class HeadsPointer(BaseModel):
    model_config = ConfigDict(extra='allow')  # Allow extra fields from JSON

    schema_: str = Field(default="logbridge/heads-pointer@v1", alias="schema")
    address: str
    heads: list[str] = []
    last_updated: str


class Block(BaseModel):
    cid: str  # Local form
    data: bytes
    category: BlockCategory = BlockCategory.UNRECOGNIZED

    @property
    def size(self) -> int:
        return len(self.data)


class Snapshot(BaseModel):
    """Every block of one database at backup time, deduplicated by CID."""
    address: str
    root_cid: str
    name: Optional[str] = None
    blocks: dict[str, Block] = {}

    def category_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for block in self.blocks.values():
            counts[block.category.value] = counts.get(block.category.value, 0) + 1
        return counts


# Transfer records

class UploadRecord(BaseModel):
    local_cid: str
    remote_cid: Optional[str] = None
    size: int = 0
    error: Optional[str] = None
    code: Optional[str] = None

class UploadReport(BaseModel):
    successful: list[UploadRecord] = []
    failed: list[UploadRecord] = []

    @property
    def mapping(self) -> dict[str, str]:
        return {r.local_cid: r.remote_cid for r in self.successful}

class DownloadRecord(BaseModel):
    remote_cid: str
    local_cid: Optional[str] = None
    expected_cid: Optional[str] = None
    size: int = 0
    match: Optional[bool] = None  # None when there was nothing to compare against
    error: Optional[str] = None
    code: Optional[str] = None

class DownloadReport(BaseModel):
    successful: list[DownloadRecord] = []
    failed: list[DownloadRecord] = []
    blocks: dict[str, bytes] = Field(default={}, exclude=True)  # Local CID -> bytes

    @property
    def mismatches(self) -> list[DownloadRecord]:
        return [r for r in self.successful if r.match is False]

class TransferProgress(BaseModel):
    type: str  # "upload" | "download" | "remove"
    current: int
    total: int
    status: str  # "starting" | "running" | "completed"
    cid: Optional[str] = None
    error: Optional[str] = None

    @property
    def percentage(self) -> int:
        return round(self.current / self.total * 100) if self.total else 100

class SpaceItem(BaseModel):
    root: str  # Remote CID
    type: Optional[str] = None


# Operation results

class BackupResult(BaseModel):
    success: bool
    root_cid: str
    public_address: str
    database_name: Optional[str] = None
    blocks_total: int
    blocks_uploaded: int
    blocks_failed: int = 0
    block_category_counts: dict[str, int] = {}
    identifier_mapping: dict[str, str] = {}
    failed: list[UploadRecord] = []

class RestoreResult(BaseModel):
    success: bool
    public_address: str
    root_cid: str
    database_name: Optional[str] = None
    address_match: bool
    entries_recovered: int
    blocks_restored: int
    blocks_failed: int = 0
    mismatches: int = 0
    head_set: list[str] = []
    block_category_counts: dict[str, int] = {}
    space_files_found: Optional[int] = None

class ClearResult(BaseModel):
    success: bool
    total_files: int
    total_removed: int
    total_failed: int


# API request bodies

class BackupRequest(BaseModel):
    address: str
    log_entries_only: bool = False

class RestoreRequest(BaseModel):
    root_cid: str
    identifier_mapping: dict[str, str]

class SpaceRestoreRequest(BaseModel):
    root_cid: Optional[str] = None

class ScheduledBackup(BaseModel):
    triggered_at: str
    address: str
    result: Optional[BackupResult] = None
    error: Optional[str] = None
