"""
Error types for the log bridge.

Raised errors are reserved for preconditions that make a whole operation
meaningless (empty snapshot, absent root, malformed identifier). Expected
per-item failures (one upload, one download) are recorded in transfer
reports instead; PartialUploadFailure and PartialDownloadFailure describe
those records and are never raised by the transfer loops.

Invariants:
    - All errors inherit from BridgeError
    - Every error carries a stable code for programmatic handling
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class BridgeError(Exception):
    """Base exception for all bridge errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BRIDGE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class MalformedIdentifier(BridgeError, ValueError):
    """A content identifier or address could not be parsed."""

    def __init__(self, value: str, reason: str = "") -> None:
        message = f"Malformed identifier: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, code="MALFORMED_IDENTIFIER", details={"value": value})
        self.value = value


class BlockUnavailable(BridgeError):
    """Every gateway attempt for one block failed."""

    def __init__(self, cid: str, attempts: Optional[List[str]] = None) -> None:
        super().__init__(
            f"Could not download block {cid} from any gateway",
            code="BLOCK_UNAVAILABLE",
            details={"cid": cid, "attempts": attempts or []},
        )
        self.cid = cid
        self.attempts = attempts or []


class NoEntriesFound(BridgeError):
    """The log has no reachable entries; there is nothing to back up."""

    def __init__(self, address: str) -> None:
        super().__init__(
            f"No log entries reachable from the heads of {address}",
            code="NO_ENTRIES_FOUND",
            details={"address": address},
        )
        self.address = address


class NoRootDescriptorFound(BridgeError):
    """No root descriptor is available to anchor the database."""

    def __init__(self, message: str, cid: Optional[str] = None) -> None:
        super().__init__(message, code="NO_ROOT_DESCRIPTOR", details={"cid": cid})
        self.cid = cid


class AmbiguousRootDescriptor(BridgeError):
    """A remote space holds several roots and none can be singled out."""

    def __init__(self, candidates: List[str]) -> None:
        super().__init__(
            f"{len(candidates)} root descriptors found and none is uniquely "
            "referenced by log entries; pass root_cid explicitly",
            code="AMBIGUOUS_ROOT_DESCRIPTOR",
            details={"candidates": candidates},
        )
        self.candidates = candidates


class IdentifierMismatch(BridgeError):
    """A translated identifier disagrees with the expected one."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        mismatches: int = 0,
    ) -> None:
        super().__init__(
            message,
            code="IDENTIFIER_MISMATCH",
            details={"expected": expected, "actual": actual, "mismatches": mismatches},
        )
        self.expected = expected
        self.actual = actual
        self.mismatches = mismatches


class PartialUploadFailure(BridgeError):
    """One block failed to upload. Recorded, never raised."""

    def __init__(self, cid: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to upload block {cid}: {cause}",
            code="PARTIAL_UPLOAD_FAILURE",
            details={"cid": cid, "error": str(cause)},
        )
        self.cid = cid
        self.cause = cause


class PartialDownloadFailure(BridgeError):
    """One block failed to download. Recorded, never raised."""

    def __init__(self, cid: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to download block {cid}: {cause}",
            code="PARTIAL_DOWNLOAD_FAILURE",
            details={"cid": cid, "error": str(cause)},
        )
        self.cid = cid
        self.cause = cause


class NothingUploaded(BridgeError):
    """A backup finished with zero uploaded blocks."""

    def __init__(self, attempted: int) -> None:
        super().__init__(
            "No blocks were successfully uploaded",
            code="NOTHING_UPLOADED",
            details={"attempted": attempted},
        )


class NothingRestored(BridgeError):
    """A restore had nothing to download, or every download failed."""

    def __init__(self, message: str, attempted: int = 0) -> None:
        super().__init__(message, code="NOTHING_RESTORED", details={"attempted": attempted})


class MissingCredentials(BridgeError):
    """A remote session needs both a private key and a delegation proof."""

    def __init__(self) -> None:
        super().__init__(
            "Remote store authentication required: provide key and proof",
            code="MISSING_CREDENTIALS",
        )


class RemoteStoreError(BridgeError):
    """The remote store rejected a request or answered with something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, code="REMOTE_STORE_ERROR", details={"status_code": status_code})
        self.status_code = status_code
