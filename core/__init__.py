from .status import Status, EvrStatus
from .errors import ParseWarning, PanelSyncError, StorageError, ValidationError
from .plan import ContextTag, Plan, Step
from .expected_result import ExpectedResult
from .task_log import LogEntry
from .task_record import TaskRecord
from .panel_data import PanelData, PanelMetadata
from .changes import (
    Change,
    ContentChange,
    StatusChange,
    Conflict,
    SyncPreview,
    REASON_ETAG_MISMATCH,
    REASON_STALE_TIMESTAMP,
    RESOLUTION_OURS,
    RESOLUTION_THEIRS,
)
from .audit import AuditEntry
from .fingerprint import fingerprint, section_fingerprints

__all__ = [
    "Status",
    "EvrStatus",
    # Errors
    "ParseWarning",
    "PanelSyncError",
    "StorageError",
    "ValidationError",
    # Record model
    "ContextTag",
    "Plan",
    "Step",
    "ExpectedResult",
    "LogEntry",
    "TaskRecord",
    # Panel
    "PanelData",
    "PanelMetadata",
    # Changes
    "Change",
    "ContentChange",
    "StatusChange",
    "Conflict",
    "SyncPreview",
    "REASON_ETAG_MISMATCH",
    "REASON_STALE_TIMESTAMP",
    "RESOLUTION_OURS",
    "RESOLUTION_THEIRS",
    "AuditEntry",
    "fingerprint",
    "section_fingerprints",
]
