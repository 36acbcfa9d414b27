"""Change records produced by panel reconciliation.

``Change = ContentChange | StatusChange | Conflict``; each variant carries a
``kind`` discriminator so callers can match on it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Union

from .errors import ParseWarning


KIND_CONTENT = "content"
KIND_STATUS = "status"
KIND_CONFLICT = "conflict"

REASON_ETAG_MISMATCH = "etag_mismatch"
REASON_STALE_TIMESTAMP = "stale_timestamp"

RESOLUTION_OURS = "ours"  # structured record wins
RESOLUTION_THEIRS = "theirs"  # panel document wins

CONFLICT_STRATEGY_ETAG_FIRST = "etag_first_then_ts"
CONFLICT_STRATEGY_TS_ONLY = "ts_only"
CONFLICT_STRATEGIES = (CONFLICT_STRATEGY_ETAG_FIRST, CONFLICT_STRATEGY_TS_ONLY)


@dataclass
class ContentChange:
    field: str
    section_id: str
    old_value: Any
    new_value: Any
    kind: Literal["content"] = KIND_CONTENT

    @property
    def key(self) -> str:
        return self.section_id if self.section_id == self.field else f"{self.section_id}/{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "field": self.field,
            "section_id": self.section_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


@dataclass
class StatusChange:
    target: Literal["plan", "step", "evr"]
    node_id: str
    old_status: str
    new_status: str
    kind: Literal["status"] = KIND_STATUS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "target": self.target,
            "node_id": self.node_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
        }


@dataclass
class Conflict:
    field: str
    section_id: str
    ours: Any
    theirs: Any
    resolution: Literal["ours", "theirs"]
    reason: Literal["etag_mismatch", "stale_timestamp"]
    kind: Literal["conflict"] = KIND_CONFLICT

    @property
    def winner(self) -> Any:
        return self.ours if self.resolution == RESOLUTION_OURS else self.theirs

    def as_content_change(self) -> ContentChange:
        return ContentChange(field=self.field, section_id=self.section_id, old_value=self.ours, new_value=self.theirs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "field": self.field,
            "section_id": self.section_id,
            "ours": self.ours,
            "theirs": self.theirs,
            "resolution": self.resolution,
            "reason": self.reason,
        }


Change = Union[ContentChange, StatusChange, Conflict]


@dataclass
class SyncPreview:
    """Outcome of a reconciliation; ``applied`` is False for dry runs."""

    applied: bool = False
    changes: List[Union[ContentChange, StatusChange]] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    warnings: List[ParseWarning] = field(default_factory=list)
    pending_status: List[StatusChange] = field(default_factory=list)

    @property
    def content_changes(self) -> List[ContentChange]:
        return [c for c in self.changes if isinstance(c, ContentChange)]

    @property
    def status_changes(self) -> List[StatusChange]:
        return [c for c in self.changes if isinstance(c, StatusChange)]

    @property
    def is_clean(self) -> bool:
        return not (self.changes or self.conflicts or self.pending_status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "changes": [c.to_dict() for c in self.changes],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "warnings": [w.to_dict() for w in self.warnings],
            "pending_status": [c.to_dict() for c in self.pending_status],
        }
