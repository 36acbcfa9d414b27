"""Audit trail entries for panel reconciliation.

Every resolved conflict, every applied sync and every withheld status change
produces one entry. Entries are appended to the audit sink of the record they
belong to and never rewritten.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .changes import Conflict, StatusChange
from .task_log import now_iso


# Event types
EVENT_CONFLICT = "conflict"  # field touched on both sides, resolved
EVENT_SYNC = "sync"  # panel content applied to the record
EVENT_STATUS_PENDING = "status_pending"  # marker edit withheld for confirmation
EVENT_STATUS_CONFIRMED = "status_confirmed"
EVENT_DISCARDED = "discarded"  # panel edit dropped in favour of the record

# Actors
ACTOR_PANEL = "panel"
ACTOR_API = "api"
ACTOR_SYSTEM = "system"


@dataclass
class AuditEntry:
    """A single audit record.

    Attributes:
        timestamp: ISO 8601 timestamp
        event_type: conflict, sync, status_pending, ...
        actor: Origin of the change (panel, api, system)
        target: Section or node key ("plan:p-1/description", "step:s-1")
        data: Event-specific payload
    """

    timestamp: str
    event_type: str
    actor: str = ACTOR_SYSTEM
    target: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def now(cls, event_type: str, actor: str = ACTOR_SYSTEM, target: str = "", **data: Any) -> "AuditEntry":
        return cls(timestamp=now_iso(), event_type=event_type, actor=actor, target=target, data=data)

    @classmethod
    def conflict(cls, conflict: Conflict) -> "AuditEntry":
        """Both candidate values, the chosen source and the reason code."""
        return cls.now(
            EVENT_CONFLICT,
            ACTOR_SYSTEM,
            target=f"{conflict.section_id}/{conflict.field}" if conflict.section_id != conflict.field else conflict.field,
            field=conflict.field,
            ours=conflict.ours,
            theirs=conflict.theirs,
            chosen=conflict.resolution,
            reason=conflict.reason,
        )

    @classmethod
    def sync(cls, applied: List[str], version_tag: str) -> "AuditEntry":
        return cls.now(EVENT_SYNC, ACTOR_PANEL, applied=list(applied), version_tag=version_tag)

    @classmethod
    def status_pending(cls, change: StatusChange) -> "AuditEntry":
        return cls.now(
            EVENT_STATUS_PENDING,
            ACTOR_PANEL,
            target=f"{change.target}:{change.node_id}",
            old_status=change.old_status,
            new_status=change.new_status,
        )

    @classmethod
    def status_confirmed(cls, target: str, node_id: str, status: str, accepted: bool = True) -> "AuditEntry":
        return cls.now(EVENT_STATUS_CONFIRMED, ACTOR_API, target=f"{target}:{node_id}", status=status, accepted=accepted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "actor": self.actor,
            "target": self.target,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            timestamp=str(data.get("timestamp", "") or ""),
            event_type=str(data.get("event_type", "") or ""),
            actor=str(data.get("actor", ACTOR_SYSTEM) or ACTOR_SYSTEM),
            target=str(data.get("target", "") or ""),
            data=dict(data.get("data") or {}),
        )

    def format(self) -> str:
        """One-line human readable form."""
        target = f" {self.target}" if self.target else ""
        details = ", ".join(f"{k}={v!r}" for k, v in self.data.items())
        return f"[{self.timestamp[:19]}] {self.event_type}{target} ({self.actor}) {details}".rstrip()
