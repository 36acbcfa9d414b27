import logging
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from core import ContextTag, ExpectedResult, LogEntry, PanelData, ParseWarning, Plan, Step
from core import errors
from core.panel_data import PanelMetadata
from core.plan import tag_type
from core.status import evr_status_from_marker, status_from_marker
from core.task_log import coerce_timestamp


logger = logging.getLogger("panel_sync.panel")

SECTION_ALIASES: Dict[str, str] = {
    "goal": "goal",
    "requirements": "requirements",
    "issues": "issues",
    "task hints": "hints",
    "hints": "hints",
    "plans & steps": "plans",
    "plans and steps": "plans",
    "plans": "plans",
    "expected visible results": "expected_results",
    "expected results": "expected_results",
    "logs": "logs",
}


class PanelParser:
    """Parse a panel document back into PanelData.

    Never raises on a recoverable malformation: lines that cannot be matched
    to a node are skipped and reported as ParseWarning entries.
    """

    TITLE_PATTERN = re.compile(r"^#\s+(?:Task:\s*)?(.*)$")
    TASK_ID_PATTERN = re.compile(r"^Task ID:\s*(.*)$", re.IGNORECASE)
    REFERENCES_PATTERN = re.compile(r"^References:\s*(.*)$", re.IGNORECASE)
    HEADING_PATTERN = re.compile(r"^##\s+(.+?)\s*$")
    ANCHOR_PATTERN = re.compile(r"\s*<!--\s*(plan|step|evr)\s*:\s*([^\s>]+)\s*-->\s*$")
    PLAN_PATTERN = re.compile(r"^(\d+)[.)]\s*\[([^\]]*)\]\s?(.*)$")
    STEP_PATTERN = re.compile(r"^\s*(\d+)\.(\d+)[.)]?\s*\[([^\]]*)\]\s?(.*)$")
    HINT_PATTERN = re.compile(r"^(\s*)>\s?(.*)$")
    TAG_PATTERN = re.compile(r"^(\s*)[-*]\s*\[([^\]]+)\]\s*(.*)$")
    ITEM_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*)$")
    LOG_PATTERN = re.compile(r"^[-*]\s*\*\*(.+?)\*\*\s*\[(\w+)\]\s*([^/\s]+)/([^:\s]+):\s?(.*)$")
    REFERENCE_PATTERN = re.compile(r"(?:\\[\\,]|[^,])+")
    UNESCAPE_PATTERN = re.compile(r"\\([\\,])")

    @classmethod
    def parse_file(cls, filepath: Path) -> Optional[PanelData]:
        if not filepath.exists():
            return None
        return cls.parse(filepath.read_text(encoding="utf-8"))

    @classmethod
    def parse(cls, text: str) -> PanelData:
        panel = PanelData()
        lines = (text or "").splitlines()
        offset = cls._read_front_matter(lines, panel)

        section: Optional[str] = None
        buffer: List[Tuple[int, str]] = []
        header: List[Tuple[int, str]] = []

        def flush() -> None:
            if section is not None:
                cls._save_section(panel, section, buffer)

        for idx in range(offset, len(lines)):
            line = lines[idx]
            lineno = idx + 1
            match = cls.HEADING_PATTERN.match(line)
            if match:
                flush()
                name = match.group(1).strip().lower()
                section = SECTION_ALIASES.get(name, "")
                if not section:
                    panel.warnings.append(
                        ParseWarning(errors.WARN_UNKNOWN_SECTION, f"unknown section {match.group(1)!r}", lineno)
                    )
                else:
                    panel.sections.add(section)
                buffer = []
            elif section is None:
                header.append((lineno, line))
            else:
                buffer.append((lineno, line))
        flush()

        cls._parse_header(panel, header)
        cls._drop_duplicate_anchors(panel)
        if panel.metadata.record_id and not panel.record_id:
            panel.record_id = panel.metadata.record_id
        if panel.warnings:
            logger.debug("panel parsed with %d warning(s)", len(panel.warnings))
        return panel

    @staticmethod
    def _read_front_matter(lines: List[str], panel: PanelData) -> int:
        """Fill panel.metadata from a leading ``---`` block; return the first body line index."""
        if not lines or lines[0].strip() != "---":
            return 0
        for idx in range(1, len(lines)):
            if lines[idx].strip() == "---":
                break
        else:
            panel.warnings.append(ParseWarning(errors.WARN_BAD_FRONT_MATTER, "front matter is not closed", 1))
            return 0
        try:
            raw = yaml.safe_load("\n".join(lines[1:idx])) or {}
        except yaml.YAMLError as exc:
            panel.warnings.append(ParseWarning(errors.WARN_BAD_FRONT_MATTER, f"invalid front matter: {exc}", 1))
            return idx + 1
        if not isinstance(raw, dict):
            panel.warnings.append(ParseWarning(errors.WARN_BAD_FRONT_MATTER, "front matter is not a mapping", 1))
            return idx + 1
        panel.metadata = PanelMetadata(
            record_id=str(raw.get("record_id", "") or "").strip(),
            version_tag=str(raw.get("version_tag", "") or "").strip(),
            updated_at=coerce_timestamp(raw.get("updated_at")),
        )
        return idx + 1

    @classmethod
    def _parse_header(cls, panel: PanelData, header: List[Tuple[int, str]]) -> None:
        found_title = False
        for lineno, line in header:
            stripped = line.strip()
            if not stripped:
                continue
            if not found_title and stripped.startswith("# "):
                panel.title = cls.TITLE_PATTERN.match(stripped).group(1).strip()
                panel.sections.add("title")
                found_title = True
                continue
            match = cls.TASK_ID_PATTERN.match(stripped)
            if match:
                panel.record_id = match.group(1).strip()
                continue
            match = cls.REFERENCES_PATTERN.match(stripped)
            if match:
                panel.references = cls._split_references(match.group(1))
                panel.sections.add("references")
                continue
            panel.warnings.append(ParseWarning(errors.WARN_ORPHAN_LINE, f"unrecognized header line {stripped!r}", lineno))
        if not found_title:
            panel.warnings.append(ParseWarning(errors.WARN_MISSING_SECTION, "title line '# Task: ...' is missing", None, "title"))

    @classmethod
    def _split_references(cls, text: str) -> List[str]:
        """Comma separated; ``\\,`` and ``\\\\`` stand for a literal comma and backslash."""
        items = (cls.UNESCAPE_PATTERN.sub(r"\1", raw).strip() for raw in cls.REFERENCE_PATTERN.findall(text))
        return [item for item in items if item]

    @staticmethod
    def _unescape_goal_line(line: str) -> str:
        return line[1:] if line.startswith("\\") else line

    @classmethod
    def _save_section(cls, panel: PanelData, section: str, lines: List[Tuple[int, str]]) -> None:
        if not section:
            return
        if section == "goal":
            panel.goal = "\n".join(cls._unescape_goal_line(line.rstrip()) for _, line in lines).strip()
        elif section in ("requirements", "issues"):
            setattr(panel, section, cls._parse_list(lines))
        elif section == "hints":
            panel.hints = cls._parse_hints(lines)
        elif section == "plans":
            cls._parse_plans(panel, lines)
        elif section == "expected_results":
            cls._parse_evrs(panel, lines)
        elif section == "logs":
            cls._parse_logs(panel, lines)

    @classmethod
    def _parse_list(cls, lines: List[Tuple[int, str]]) -> List[str]:
        items: List[str] = []
        for _, line in lines:
            if not line.strip():
                continue
            match = cls.ITEM_PATTERN.match(line)
            value = (match.group(1) if match else line).strip()
            if value:
                items.append(value)
        return items

    @classmethod
    def _parse_hints(cls, lines: List[Tuple[int, str]]) -> List[str]:
        hints: List[str] = []
        for _, line in lines:
            match = cls.HINT_PATTERN.match(line)
            if match:
                value = match.group(2).strip()
            else:
                # Hand-written list item without the quote prefix.
                item = cls.ITEM_PATTERN.match(line)
                value = (item.group(1) if item else line).strip()
            if value:
                hints.append(value)
        return hints

    @classmethod
    def _split_anchor(cls, text: str) -> Tuple[str, Optional[str], Optional[str]]:
        match = cls.ANCHOR_PATTERN.search(text)
        if not match:
            return text.strip(), None, None
        return text[: match.start()].strip(), match.group(1), match.group(2)

    @staticmethod
    def _warn(panel: PanelData, code: str, message: str, lineno: int, section: str) -> None:
        panel.warnings.append(ParseWarning(code, message, lineno, section))

    @classmethod
    def _node_from_line(
        cls, panel: PanelData, kind: str, marker: str, rest: str, lineno: int, section: str
    ) -> Optional[Tuple[str, str, Any]]:
        """Validate marker and anchor of a checklist line -> (id, description, status)."""
        description, anchor_kind, node_id = cls._split_anchor(rest)
        if anchor_kind is None:
            cls._warn(panel, errors.WARN_MISSING_ANCHOR, f"{kind} line without anchor: {description!r}", lineno, section)
            return None
        if anchor_kind != kind:
            cls._warn(panel, errors.WARN_UNRESOLVED_ANCHOR, f"{kind} line carries a {anchor_kind} anchor", lineno, section)
            return None
        status = evr_status_from_marker(marker) if kind == "evr" else status_from_marker(marker)
        if status is None:
            cls._warn(panel, errors.WARN_MALFORMED_MARKER, f"unknown marker [{marker}] on {kind}:{node_id}", lineno, section)
            return None
        return node_id, description, status

    @classmethod
    def _parse_plans(cls, panel: PanelData, lines: List[Tuple[int, str]]) -> None:
        plan: Optional[Plan] = None
        step: Optional[Step] = None
        # False once a node line was rejected; its hint/tag lines are skipped too.
        node_ok = False
        for lineno, line in lines:
            if not line.strip():
                continue
            match = cls.PLAN_PATTERN.match(line)
            if match:
                step = None
                parsed = cls._node_from_line(panel, "plan", match.group(2), match.group(3), lineno, "plans")
                plan = None
                node_ok = parsed is not None
                if parsed:
                    node_id, description, status = parsed
                    plan = Plan(description=description, status=status.code, id=node_id)
                    panel.plans.append(plan)
                continue
            match = cls.STEP_PATTERN.match(line)
            if match:
                step = None
                parsed = cls._node_from_line(panel, "step", match.group(3), match.group(4), lineno, "plans")
                node_ok = parsed is not None
                if parsed and plan is None:
                    cls._warn(panel, errors.WARN_ORPHAN_LINE, f"step {parsed[0]} has no enclosing plan", lineno, "plans")
                    node_ok = False
                elif parsed:
                    node_id, description, status = parsed
                    step = Step(description=description, status=status.code, id=node_id)
                    plan.steps.append(step)
                continue
            hint = cls.HINT_PATTERN.match(line)
            tag = cls.TAG_PATTERN.match(line)
            if not (hint or tag):
                cls._warn(panel, errors.WARN_ORPHAN_LINE, f"unrecognized line {line.strip()!r}", lineno, "plans")
                continue
            if not node_ok:
                continue
            indent = len((hint or tag).group(1))
            node: Any = step if (step is not None and indent >= 4) else plan
            if node is None:
                cls._warn(panel, errors.WARN_ORPHAN_LINE, f"detail line outside a plan {line.strip()!r}", lineno, "plans")
                continue
            if hint:
                value = hint.group(2).strip()
                if value:
                    node.hints.append(value)
                continue
            tag_name, value = tag.group(2).strip(), tag.group(3).strip()
            if isinstance(node, Step) and tag_type(tag_name) == "uses_evr":
                node.uses_evr.append(value)
            else:
                node.context_tags.append(ContextTag(tag=tag_name, value=value))

    @classmethod
    def _parse_evrs(cls, panel: PanelData, lines: List[Tuple[int, str]]) -> None:
        evr: Optional[ExpectedResult] = None
        fields: Dict[str, List[str]] = {}

        def close() -> None:
            if evr is None:
                return
            evr.verify = fields.get("verify", [])
            evr.expect = fields.get("expect", [])
            evr.normalize()

        for lineno, line in lines:
            if not line.strip():
                continue
            match = cls.PLAN_PATTERN.match(line)
            if match:
                close()
                evr, fields = None, {}
                parsed = cls._node_from_line(panel, "evr", match.group(2), match.group(3), lineno, "expected_results")
                if parsed:
                    node_id, title, status = parsed
                    evr = ExpectedResult(title=title, id=node_id, status=status.code)
                    panel.expected_results.append(evr)
                continue
            tag = cls.TAG_PATTERN.match(line)
            if tag is None:
                cls._warn(panel, errors.WARN_ORPHAN_LINE, f"unrecognized line {line.strip()!r}", lineno, "expected_results")
                continue
            if evr is None:
                continue
            name, value = tag.group(2).strip().lower(), tag.group(3).strip()
            if name in ("verify", "expect"):
                fields.setdefault(name, []).append(value)
            elif name == "class":
                evr.evr_class = value
            elif name == "last_run":
                evr.last_run = value or None
            elif name == "proof":
                evr.proof = value
            elif name == "notes":
                evr.notes = value
            else:
                cls._warn(panel, errors.WARN_ORPHAN_LINE, f"unknown EVR field [{name}]", lineno, "expected_results")
        close()

    @classmethod
    def _parse_logs(cls, panel: PanelData, lines: List[Tuple[int, str]]) -> None:
        for lineno, line in lines:
            if not line.strip():
                continue
            match = cls.LOG_PATTERN.match(line.strip())
            if not match:
                cls._warn(panel, errors.WARN_ORPHAN_LINE, f"unrecognized log line {line.strip()!r}", lineno, "logs")
                continue
            timestamp, level, category, action, message = match.groups()
            panel.logs.append(
                LogEntry(timestamp=timestamp.strip(), message=message.strip(), level=level, category=category, action=action)
            )

    @staticmethod
    def _drop_duplicate_anchors(panel: PanelData) -> None:
        counts = Counter(
            [p.id for p in panel.plans]
            + [s.id for p in panel.plans for s in p.steps]
            + [e.id for e in panel.expected_results]
        )
        dupes = {node_id for node_id, count in counts.items() if count > 1}
        if not dupes:
            return
        for node_id in sorted(dupes):
            panel.warnings.append(
                ParseWarning(errors.WARN_DUPLICATE_ANCHOR, f"anchor {node_id!r} appears {counts[node_id]} times", None, "plans")
            )
        panel.plans = [p for p in panel.plans if p.id not in dupes]
        for plan in panel.plans:
            plan.steps = [s for s in plan.steps if s.id not in dupes]
        panel.expected_results = [e for e in panel.expected_results if e.id not in dupes]


def parse_panel(text: str) -> PanelData:
    return PanelParser.parse(text)
