from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import uuid

from .status import Status, normalize_status_code
from .task_log import coerce_timestamp


def _new_node_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _str_list(values: Any) -> List[str]:
    return [str(v).strip() for v in (values or []) if str(v or "").strip()]


TAG_TYPES = ("evr", "uses_evr", "ref", "decision", "discuss", "inputs", "constraints")


def tag_type(tag: str) -> str:
    lowered = (tag or "").strip().lower()
    if lowered in ("reference",):
        return "ref"
    if lowered in ("discussion",):
        return "discuss"
    if lowered in ("input",):
        return "inputs"
    if lowered in ("constraint",):
        return "constraints"
    return lowered if lowered in TAG_TYPES else "ref"


@dataclass
class ContextTag:
    tag: str
    value: str

    @property
    def type(self) -> str:
        return tag_type(self.tag)

    def to_dict(self) -> Dict[str, str]:
        return {"tag": self.tag, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextTag":
        return cls(tag=str(data.get("tag", "") or "").strip(), value=str(data.get("value", "") or "").strip())


@dataclass
class Step:
    description: str
    status: str = "to_do"
    id: str = ""
    hints: List[str] = field(default_factory=list)
    context_tags: List[ContextTag] = field(default_factory=list)
    uses_evr: List[str] = field(default_factory=list)
    evidence: str = ""
    notes: str = ""
    created_at: Optional[str] = None  # ISO format timestamp
    completed_at: Optional[str] = None  # ISO format timestamp

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _new_node_id("step")
        self.status = normalize_status_code(self.status)

    @property
    def status_value(self) -> Status:
        return Status.from_string(self.status)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status,
        }
        if self.hints:
            data["hints"] = list(self.hints)
        if self.context_tags:
            data["context_tags"] = [t.to_dict() for t in self.context_tags]
        if self.uses_evr:
            data["uses_evr"] = list(self.uses_evr)
        if self.evidence:
            data["evidence"] = self.evidence
        if self.notes:
            data["notes"] = self.notes
        if self.created_at:
            data["created_at"] = self.created_at
        if self.completed_at:
            data["completed_at"] = self.completed_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            id=str(data.get("id", "") or "").strip(),
            description=str(data.get("description", "") or ""),
            status=str(data.get("status", "to_do") or "to_do"),
            hints=_str_list(data.get("hints")),
            context_tags=[ContextTag.from_dict(t) for t in (data.get("context_tags") or []) if isinstance(t, dict)],
            uses_evr=_str_list(data.get("uses_evr")),
            evidence=str(data.get("evidence", "") or ""),
            notes=str(data.get("notes", "") or ""),
            created_at=coerce_timestamp(data.get("created_at")),
            completed_at=coerce_timestamp(data.get("completed_at")),
        )


@dataclass
class Plan:
    description: str
    status: str = "to_do"
    id: str = ""
    steps: List[Step] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)
    context_tags: List[ContextTag] = field(default_factory=list)
    evidence: str = ""
    notes: str = ""
    created_at: Optional[str] = None
    completed_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _new_node_id("plan")
        self.status = normalize_status_code(self.status)

    @property
    def status_value(self) -> Status:
        return Status.from_string(self.status)

    @property
    def evr_bindings(self) -> List[str]:
        return [t.value for t in self.context_tags if t.type == "evr"]

    def find_step(self, step_id: str) -> Optional[Step]:
        for st in self.steps:
            if st.id == step_id:
                return st
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status,
            "steps": [st.to_dict() for st in self.steps],
        }
        if self.hints:
            data["hints"] = list(self.hints)
        if self.context_tags:
            data["context_tags"] = [t.to_dict() for t in self.context_tags]
        if self.evidence:
            data["evidence"] = self.evidence
        if self.notes:
            data["notes"] = self.notes
        if self.created_at:
            data["created_at"] = self.created_at
        if self.completed_at:
            data["completed_at"] = self.completed_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls(
            id=str(data.get("id", "") or "").strip(),
            description=str(data.get("description", "") or ""),
            status=str(data.get("status", "to_do") or "to_do"),
            steps=[Step.from_dict(s) for s in (data.get("steps") or []) if isinstance(s, dict)],
            hints=_str_list(data.get("hints")),
            context_tags=[ContextTag.from_dict(t) for t in (data.get("context_tags") or []) if isinstance(t, dict)],
            evidence=str(data.get("evidence", "") or ""),
            notes=str(data.get("notes", "") or ""),
            created_at=coerce_timestamp(data.get("created_at")),
            completed_at=coerce_timestamp(data.get("completed_at")),
        )


Node = Union[Plan, Step]


def iter_nodes(plans: List[Plan]) -> Iterator[Tuple[str, Node]]:
    """Yield ("plan"|"step", node) in document order."""
    for plan in plans or []:
        yield "plan", plan
        for st in plan.steps:
            yield "step", st

