from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import uuid

from .status import EvrStatus
from .task_log import coerce_timestamp

TextField = Union[str, List[str]]

EVR_CLASS_STATIC = "static"
EVR_CLASS_RUNTIME = "runtime"


def _coerce_text_field(value: Any) -> TextField:
    if isinstance(value, list):
        items = [str(v) for v in value if str(v or "").strip()]
        if not items:
            return ""
        if len(items) == 1:
            return items[0]
        return items
    return str(value or "")


def text_items(value: TextField) -> List[str]:
    """Flatten a verify/expect value to a list of lines."""
    if isinstance(value, list):
        return list(value)
    return [value] if value else []


@dataclass
class ExpectedResult:
    """A verifiable acceptance criterion (EVR) attached to plans/steps."""

    title: str
    id: str = ""
    verify: TextField = ""
    expect: TextField = ""
    status: str = "unknown"
    evr_class: str = EVR_CLASS_RUNTIME
    last_run: Optional[str] = None
    proof: str = ""
    notes: str = ""
    referenced_by: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = f"evr-{uuid.uuid4().hex[:8]}"
        self.normalize()

    def normalize(self) -> None:
        self.status = EvrStatus.from_string(self.status).code
        self.evr_class = EVR_CLASS_STATIC if str(self.evr_class or "").strip().lower() == EVR_CLASS_STATIC else EVR_CLASS_RUNTIME
        self.verify = _coerce_text_field(self.verify)
        self.expect = _coerce_text_field(self.expect)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "verify": self.verify,
            "expect": self.expect,
            "status": self.status,
            "class": self.evr_class,
        }
        if self.last_run:
            data["last_run"] = self.last_run
        if self.proof:
            data["proof"] = self.proof
        if self.notes:
            data["notes"] = self.notes
        if self.referenced_by:
            data["referenced_by"] = list(self.referenced_by)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpectedResult":
        return cls(
            id=str(data.get("id", "") or "").strip(),
            title=str(data.get("title", "") or ""),
            verify=data.get("verify", "") or "",
            expect=data.get("expect", "") or "",
            status=str(data.get("status", "unknown") or "unknown"),
            evr_class=str(data.get("class", EVR_CLASS_RUNTIME) or EVR_CLASS_RUNTIME),
            last_run=coerce_timestamp(data.get("last_run")),
            proof=str(data.get("proof", "") or ""),
            notes=str(data.get("notes", "") or ""),
            referenced_by=[str(v) for v in (data.get("referenced_by") or [])],
        )
