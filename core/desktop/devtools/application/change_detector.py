"""Classify panel edits against the last reconciled record.

A field counts as touched by the document when its document fingerprint
differs from the snapshot stored on the record. Touched status fields become
StatusChange entries, every other touched field becomes a ContentChange.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core import ContentChange, PanelData, ParseWarning, StatusChange, TaskRecord
from core import errors
from core.fingerprint import (
    STATUS_FIELD,
    canonical,
    combine,
    field_key,
    fingerprint,
    sections_of,
    split_section,
)
from infrastructure.panel_parser import PanelParser


logger = logging.getLogger("panel_sync.sync")


@dataclass
class DetectionResult:
    content_changes: List[ContentChange] = field(default_factory=list)
    status_changes: List[StatusChange] = field(default_factory=list)
    parse_warnings: List[ParseWarning] = field(default_factory=list)
    panel: Optional[PanelData] = None

    @property
    def changes(self) -> List[Union[ContentChange, StatusChange]]:
        """Content changes first, then status changes."""
        return [*self.content_changes, *self.status_changes]


def detect_differences(text: str, last_known_record: TaskRecord) -> DetectionResult:
    return detect_panel_differences(PanelParser.parse(text), last_known_record)


def detect_panel_differences(panel: PanelData, record: TaskRecord) -> DetectionResult:
    result = DetectionResult(parse_warnings=list(panel.warnings), panel=panel)
    stored = record.fingerprints or {}
    current = sections_of(record)
    document = sections_of(panel)

    for section, doc_fields in document.items():
        kind, node_id = split_section(section)
        if section not in current:
            result.parse_warnings.append(
                ParseWarning(errors.WARN_UNRESOLVED_ANCHOR, f"{kind}:{node_id} is not part of record {record.id}", None, kind)
            )
            continue
        if kind == "title" and "title" not in panel.sections:
            continue  # partial parse; keep the record title
        rec_fields = current[section]
        baseline = stored.get(section) if stored else None
        if baseline is None:
            baseline = combine(section, rec_fields)
        if combine(section, doc_fields) == baseline:
            continue
        if kind == "logs":
            result.parse_warnings.append(
                ParseWarning(errors.WARN_LOGS_EDITED, "Logs section edits are ignored; use the log API", None, "logs")
            )
            continue
        for name, doc_value in doc_fields.items():
            if not _touched(stored, section, name, doc_value, rec_fields[name]):
                continue
            if canonical(doc_value) == canonical(rec_fields[name]):
                continue
            if name == STATUS_FIELD:
                result.status_changes.append(
                    StatusChange(target=kind, node_id=node_id, old_status=rec_fields[name], new_status=doc_value)
                )
            else:
                result.content_changes.append(
                    ContentChange(field=name, section_id=section, old_value=_plain(rec_fields[name]), new_value=_plain(doc_value))
                )

    for section in current:
        kind, node_id = split_section(section)
        if node_id and section not in document:
            result.parse_warnings.append(
                ParseWarning(errors.WARN_MISSING_NODE, f"{kind}:{node_id} is missing from the panel; not deleted", None, kind)
            )

    for warning in result.parse_warnings:
        logger.warning("panel %s: %s", record.id, warning)
    return result


def _touched(stored: Dict[str, str], section: str, name: str, doc_value: Any, rec_value: Any) -> bool:
    """True when the document side differs from the snapshot for this field."""
    key = field_key(section, name)
    baseline = stored.get(key) if stored else None
    if baseline is None:
        # No snapshot: direct comparison against the record.
        return canonical(doc_value) != canonical(rec_value)
    return fingerprint(canonical(doc_value)) != baseline


def _plain(value: Any) -> Any:
    """JSON-friendly copy of a field value."""
    if isinstance(value, list):
        return [v.to_dict() if hasattr(v, "to_dict") else v for v in value]
    return value
