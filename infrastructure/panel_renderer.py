from typing import Any, List

import yaml

from core import ExpectedResult, Plan, Step, TaskRecord
from core.expected_result import text_items
from core.panel_data import PanelMetadata
from core.status import marker_for_evr_status, marker_for_status


SECTION_GOAL = "Goal"
SECTION_REQUIREMENTS = "Requirements"
SECTION_ISSUES = "Issues"
SECTION_HINTS = "Task Hints"
SECTION_PLANS = "Plans & Steps"
SECTION_EVR = "Expected Visible Results"
SECTION_LOGS = "Logs"

TITLE_PREFIX = "# Task: "
TASK_ID_PREFIX = "Task ID: "
REFERENCES_PREFIX = "References: "


def _inline(text: Any) -> str:
    """Collapse a value to one line; panel lines are line-oriented."""
    return " ".join(str(text or "").split())


def escape_goal_line(line: str) -> str:
    """Keep goal lines from reading as headings; a leading backslash is escaped too."""
    if line.startswith(("#", "\\")):
        return "\\" + line
    return line


def escape_reference(text: Any) -> str:
    return _inline(text).replace("\\", "\\\\").replace(",", "\\,")


def anchor(kind: str, node_id: str) -> str:
    return f"<!-- {kind}:{node_id} -->"


class PanelRenderer:
    """Render a TaskRecord as a panel document.

    Pure and idempotent: the output depends only on the record, sections come
    in a fixed order, and empty sections are omitted except Plans & Steps.
    """

    @classmethod
    def render(cls, record: TaskRecord, *, front_matter: bool = True) -> str:
        lines: List[str] = []
        if front_matter:
            lines.extend(cls._front_matter(PanelMetadata(record.id, record.version_tag, record.updated_at)))
        lines.append(f"{TITLE_PREFIX}{_inline(record.title)}")
        lines.append("")
        lines.append(f"{TASK_ID_PREFIX}{record.id}")
        if record.references:
            lines.append(REFERENCES_PREFIX + ", ".join(escape_reference(r) for r in record.references))
        lines.append("")

        if record.goal.strip():
            cls._section(lines, SECTION_GOAL, [escape_goal_line(ln.rstrip()) for ln in record.goal.strip().splitlines()])
        if record.requirements:
            cls._section(lines, SECTION_REQUIREMENTS, [f"- {_inline(r)}" for r in record.requirements])
        if record.issues:
            cls._section(lines, SECTION_ISSUES, [f"- {_inline(i)}" for i in record.issues])
        if record.hints:
            cls._section(lines, SECTION_HINTS, [f"> {_inline(h)}" for h in record.hints])

        plan_lines: List[str] = []
        for idx, plan in enumerate(record.plans, 1):
            plan_lines.extend(cls._plan_lines(idx, plan))
        cls._section(lines, SECTION_PLANS, plan_lines)

        if record.expected_results:
            evr_lines: List[str] = []
            for idx, evr in enumerate(record.expected_results, 1):
                evr_lines.extend(cls._evr_lines(idx, evr))
            cls._section(lines, SECTION_EVR, evr_lines)

        if record.logs:
            cls._section(
                lines,
                SECTION_LOGS,
                [
                    f"- **{entry.timestamp}** [{entry.level}] {entry.category}/{entry.action}: {_inline(entry.message)}"
                    for entry in record.logs
                ],
            )
        return "\n".join(lines).rstrip() + "\n"

    @staticmethod
    def _front_matter(metadata: PanelMetadata) -> List[str]:
        dumped = yaml.safe_dump(metadata.to_dict(), allow_unicode=True, sort_keys=False).rstrip()
        return ["---", *dumped.splitlines(), "---"]

    @staticmethod
    def _section(lines: List[str], heading: str, body: List[str]) -> None:
        lines.append(f"## {heading}")
        lines.append("")
        if body:
            lines.extend(body)
            lines.append("")

    @staticmethod
    def _node_extras(node: Any, indent: str) -> List[str]:
        out = [f"{indent}> {_inline(h)}" for h in node.hints]
        out.extend(f"{indent}- [{t.tag}] {_inline(t.value)}" for t in node.context_tags)
        return out

    @classmethod
    def _plan_lines(cls, idx: int, plan: Plan) -> List[str]:
        out = [f"{idx}. {marker_for_status(plan.status)} {_inline(plan.description)} {anchor('plan', plan.id)}"]
        out.extend(cls._node_extras(plan, "  "))
        for step_idx, step in enumerate(plan.steps, 1):
            out.extend(cls._step_lines(f"{idx}.{step_idx}", step))
        return out

    @classmethod
    def _step_lines(cls, number: str, step: Step) -> List[str]:
        out = [f"  {number} {marker_for_status(step.status)} {_inline(step.description)} {anchor('step', step.id)}"]
        out.extend(cls._node_extras(step, "    "))
        out.extend(f"    - [uses_evr] {evr_id}" for evr_id in step.uses_evr)
        return out

    @staticmethod
    def _evr_lines(idx: int, evr: ExpectedResult) -> List[str]:
        out = [f"{idx}. {marker_for_evr_status(evr.status)} {_inline(evr.title)} {anchor('evr', evr.id)}"]
        out.extend(f"  - [verify] {_inline(v)}" for v in text_items(evr.verify))
        out.extend(f"  - [expect] {_inline(e)}" for e in text_items(evr.expect))
        out.append(f"  - [class] {evr.evr_class}")
        if evr.last_run:
            out.append(f"  - [last_run] {evr.last_run}")
        if evr.proof:
            out.append(f"  - [proof] {_inline(evr.proof)}")
        if evr.notes:
            out.append(f"  - [notes] {_inline(evr.notes)}")
        return out


def render_panel(record: TaskRecord, *, front_matter: bool = True) -> str:
    return PanelRenderer.render(record, front_matter=front_matter)
