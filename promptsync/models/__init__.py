"""Data models for promptsync."""

from promptsync.models.ledger import CURRENT_SCHEMA_VERSION, LedgerEntry, LedgerState
from promptsync.models.plan import (
    Conflict,
    ItemFailure,
    LocalDeletion,
    LocalIdAssignment,
    PlanLink,
    RemoteDeletion,
    SyncPlan,
    SyncResult,
    SyncStats,
)
from promptsync.models.prompt import DEFAULT_CATEGORY, FileContext, PromptRecord
from promptsync.models.remote import (
    Attribution,
    CapacityQuota,
    RemoteMetadata,
    RemoteRecord,
    UploadResult,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_CATEGORY",
    "Attribution",
    "CapacityQuota",
    "Conflict",
    "FileContext",
    "ItemFailure",
    "LedgerEntry",
    "LedgerState",
    "LocalDeletion",
    "LocalIdAssignment",
    "PlanLink",
    "PromptRecord",
    "RemoteDeletion",
    "RemoteMetadata",
    "RemoteRecord",
    "SyncPlan",
    "SyncResult",
    "SyncStats",
    "UploadResult",
]
