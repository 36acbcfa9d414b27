import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from core import Conflict, ContentChange, PanelMetadata, TaskRecord
from core.changes import (
    CONFLICT_STRATEGY_ETAG_FIRST,
    CONFLICT_STRATEGY_TS_ONLY,
    REASON_ETAG_MISMATCH,
    REASON_STALE_TIMESTAMP,
    RESOLUTION_OURS,
    RESOLUTION_THEIRS,
)
from core.fingerprint import canonical, fingerprint, sections_of
from core.task_log import parse_timestamp


logger = logging.getLogger("panel_sync.sync")


def record_changed_since_snapshot(record: TaskRecord) -> bool:
    """The resolver only runs when the record moved past its fingerprint snapshot."""
    if not record.version_tag or not record.fingerprint_version_tag:
        return True
    return record.version_tag != record.fingerprint_version_tag


def _local_is_newer(record_ts: Optional[str], document_ts: Optional[str]) -> bool:
    """Record wins unless the document timestamp is strictly later."""
    doc_dt = parse_timestamp(document_ts)
    if doc_dt is None:
        return True
    rec_dt = parse_timestamp(record_ts)
    if rec_dt is None:
        return False
    return rec_dt >= doc_dt


class ConflictResolver:
    def __init__(self, strategy: str = CONFLICT_STRATEGY_ETAG_FIRST):
        if strategy not in (CONFLICT_STRATEGY_ETAG_FIRST, CONFLICT_STRATEGY_TS_ONLY):
            raise ValueError(f"unknown conflict strategy: {strategy}")
        self.strategy = strategy

    def resolve(
        self,
        record: TaskRecord,
        content_changes: List[ContentChange],
        metadata: PanelMetadata,
        document_mtime: Optional[str] = None,
    ) -> Tuple[List[ContentChange], List[Conflict]]:
        """Split document edits into one-sided changes and resolved conflicts.

        A conflict is a field the document touched that the record also touched
        since the snapshot, with differing values. One-sided edits pass through.
        """
        if not content_changes or not record_changed_since_snapshot(record):
            return list(content_changes), []
        stored = record.fingerprints or {}
        current = sections_of(record)
        remaining: List[ContentChange] = []
        conflicts: List[Conflict] = []
        for change in content_changes:
            baseline = stored.get(change.key)
            rec_value = current.get(change.section_id, {}).get(change.field)
            record_touched = baseline is None or fingerprint(canonical(rec_value)) != baseline
            if not record_touched:
                remaining.append(change)
                continue
            resolution, reason = self._decide(record, metadata, document_mtime)
            conflict = Conflict(
                field=change.field,
                section_id=change.section_id,
                ours=change.old_value,
                theirs=change.new_value,
                resolution=resolution,
                reason=reason,
            )
            logger.warning(
                "conflict on %s: %s wins (%s)", change.key, "record" if resolution == RESOLUTION_OURS else "panel", reason
            )
            conflicts.append(conflict)
        return remaining, conflicts

    def _decide(self, record: TaskRecord, metadata: PanelMetadata, document_mtime: Optional[str]) -> Tuple[str, str]:
        if self.strategy == CONFLICT_STRATEGY_ETAG_FIRST:
            if metadata.version_tag and record.version_tag and metadata.version_tag != record.version_tag:
                return RESOLUTION_OURS, REASON_ETAG_MISMATCH
        document_ts = metadata.updated_at or document_mtime
        if _local_is_newer(record.updated_at, document_ts):
            return RESOLUTION_OURS, REASON_STALE_TIMESTAMP
        return RESOLUTION_THEIRS, REASON_STALE_TIMESTAMP


def mtime_to_iso(mtime_ns: Optional[int]) -> Optional[str]:
    if mtime_ns is None:
        return None
    return datetime.fromtimestamp(mtime_ns / 1_000_000_000, tz=timezone.utc).isoformat()
