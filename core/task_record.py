from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import uuid

from .errors import ValidationError
from .expected_result import ExpectedResult
from .plan import Plan, Step, _str_list, iter_nodes
from .task_log import LogEntry, coerce_timestamp, now_iso


def new_version_tag() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class TaskRecord:
    id: str
    title: str
    goal: str = ""
    references: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)
    plans: List[Plan] = field(default_factory=list)
    expected_results: List[ExpectedResult] = field(default_factory=list)
    logs: List[LogEntry] = field(default_factory=list)
    revision: int = 0  # Monotonic storage revision (etag-like)
    version_tag: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    # Snapshot captured at last render/reconciliation.
    fingerprints: Dict[str, str] = field(default_factory=dict)
    fingerprint_version_tag: str = ""
    # node id -> status requested by a panel marker, awaiting confirmation.
    pending_status: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = now_iso()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_completed(self) -> bool:
        return bool(self.completed_at)

    def bump_version(self) -> str:
        """Mark a structured mutation: new revision, new opaque tag, fresh updated_at."""
        self.revision += 1
        self.version_tag = new_version_tag()
        self.updated_at = now_iso()
        return self.version_tag

    def find_plan(self, plan_id: str) -> Optional[Plan]:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        return None

    def find_step(self, step_id: str) -> Optional[Step]:
        for plan in self.plans:
            step = plan.find_step(step_id)
            if step is not None:
                return step
        return None

    def find_node(self, node_id: str) -> Optional[Any]:
        return self.find_plan(node_id) or self.find_step(node_id) or self.find_evr(node_id)

    def find_evr(self, evr_id: str) -> Optional[ExpectedResult]:
        for evr in self.expected_results:
            if evr.id == evr_id:
                return evr
        return None

    def refresh_evr_links(self) -> None:
        """Recompute ExpectedResult.referenced_by from plan [evr] tags and step uses_evr."""
        refs: Dict[str, List[str]] = {evr.id: [] for evr in self.expected_results}
        for plan in self.plans:
            for evr_id in plan.evr_bindings:
                if evr_id in refs and plan.id not in refs[evr_id]:
                    refs[evr_id].append(plan.id)
            for step in plan.steps:
                for evr_id in step.uses_evr:
                    if evr_id in refs and step.id not in refs[evr_id]:
                        refs[evr_id].append(step.id)
        for evr in self.expected_results:
            evr.referenced_by = refs.get(evr.id, [])

    def validate(self) -> None:
        """Raise ValidationError on structural problems (missing/duplicate ids)."""
        if not str(self.id or "").strip():
            raise ValidationError("record id is required")
        if any(sep in self.id for sep in ("/", "\\")) or self.id in (".", ".."):
            raise ValidationError("record id must be a plain name", record_id=self.id)
        seen: Dict[str, str] = {}
        nodes = [(kind, node.id) for kind, node in iter_nodes(self.plans)]
        nodes += [("evr", evr.id) for evr in self.expected_results]
        for kind, node_id in nodes:
            if not str(node_id or "").strip():
                raise ValidationError(f"{kind} without id", record_id=self.id)
            if node_id in seen:
                raise ValidationError(
                    f"duplicate node id {node_id!r}", record_id=self.id, field=kind, first=seen[node_id]
                )
            seen[node_id] = kind

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "goal": self.goal,
            "references": list(self.references),
            "requirements": list(self.requirements),
            "issues": list(self.issues),
            "hints": list(self.hints),
            "plans": [p.to_dict() for p in self.plans],
            "expected_results": [e.to_dict() for e in self.expected_results],
            "logs": [entry.to_dict() for entry in self.logs],
            "revision": self.revision,
            "version_tag": self.version_tag,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "fingerprints": dict(self.fingerprints),
            "fingerprint_version_tag": self.fingerprint_version_tag,
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at
        if self.pending_status:
            data["pending_status"] = dict(self.pending_status)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskRecord":
        try:
            revision = int(data.get("revision", 0) or 0)
        except (TypeError, ValueError):
            revision = 0
        record = cls(
            id=str(data.get("id", "") or "").strip(),
            title=str(data.get("title", "") or ""),
            goal=str(data.get("goal", "") or ""),
            references=_str_list(data.get("references")),
            requirements=_str_list(data.get("requirements")),
            issues=_str_list(data.get("issues")),
            hints=_str_list(data.get("hints")),
            plans=[Plan.from_dict(p) for p in (data.get("plans") or []) if isinstance(p, dict)],
            expected_results=[
                ExpectedResult.from_dict(e) for e in (data.get("expected_results") or []) if isinstance(e, dict)
            ],
            logs=[LogEntry.from_dict(entry) for entry in (data.get("logs") or []) if isinstance(entry, dict)],
            revision=revision,
            version_tag=str(data.get("version_tag", "") or ""),
            created_at=coerce_timestamp(data.get("created_at")),
            updated_at=coerce_timestamp(data.get("updated_at")),
            completed_at=coerce_timestamp(data.get("completed_at")),
            fingerprints={str(k): str(v) for k, v in (data.get("fingerprints") or {}).items()},
            fingerprint_version_tag=str(data.get("fingerprint_version_tag", "") or ""),
            pending_status={str(k): str(v) for k, v in (data.get("pending_status") or {}).items()},
        )
        record.refresh_evr_links()
        return record
