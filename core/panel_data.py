from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .errors import ParseWarning
from .expected_result import ExpectedResult
from .plan import Plan, Step
from .task_log import LogEntry


@dataclass
class PanelMetadata:
    """Front matter carried by a panel document."""

    record_id: str = ""
    version_tag: str = ""
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"record_id": self.record_id}
        if self.version_tag:
            data["version_tag"] = self.version_tag
        if self.updated_at:
            data["updated_at"] = self.updated_at
        return data


@dataclass
class PanelData:
    """Semi-structured result of parsing a panel document.

    Field names match TaskRecord so fingerprints are computed the same way
    for both sides. Plans, steps and EVRs only include lines that carried a
    usable anchor; everything else ends up in ``warnings``.
    """

    title: str = ""
    record_id: str = ""
    goal: str = ""
    references: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)
    plans: List[Plan] = field(default_factory=list)
    expected_results: List[ExpectedResult] = field(default_factory=list)
    logs: List[LogEntry] = field(default_factory=list)
    metadata: PanelMetadata = field(default_factory=PanelMetadata)
    warnings: List[ParseWarning] = field(default_factory=list)
    sections: Set[str] = field(default_factory=set)

    # Record-shaped accessors so a parsed panel can be rendered again.
    @property
    def id(self) -> str:
        return self.record_id or self.metadata.record_id

    @property
    def version_tag(self) -> str:
        return self.metadata.version_tag

    @property
    def updated_at(self) -> Optional[str]:
        return self.metadata.updated_at

    def node_ids(self) -> Set[str]:
        ids = {evr.id for evr in self.expected_results}
        for plan in self.plans:
            ids.add(plan.id)
            ids.update(step.id for step in plan.steps)
        return ids

    def find_step(self, step_id: str) -> Optional[Step]:
        for plan in self.plans:
            step = plan.find_step(step_id)
            if step is not None:
                return step
        return None

    @classmethod
    def from_record(cls, record: Any, *, with_front_matter: bool = True) -> "PanelData":
        """What parsing ``render(record)`` yields, without rendering or parsing."""
        metadata = PanelMetadata()
        if with_front_matter:
            metadata = PanelMetadata(record.id, record.version_tag, record.updated_at)
        sections = {"title", "plans"}
        for name in ("goal", "references", "requirements", "issues", "hints", "logs"):
            if getattr(record, name):
                sections.add(name)
        if record.expected_results:
            sections.add("expected_results")
        return cls(
            title=record.title,
            record_id=record.id,
            goal=record.goal,
            references=list(record.references),
            requirements=list(record.requirements),
            issues=list(record.issues),
            hints=list(record.hints),
            plans=[Plan.from_dict(p.to_dict()) for p in record.plans],
            expected_results=[ExpectedResult.from_dict(e.to_dict()) for e in record.expected_results],
            logs=[LogEntry.from_dict(e.to_dict()) for e in record.logs],
            metadata=metadata,
            sections=sections,
        )
