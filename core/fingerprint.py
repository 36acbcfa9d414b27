"""Stable per-section fingerprints of a task record.

Every logical section of a record (title, goal, each plan, each step, each
expected result, ...) is broken into named fields. Each field gets its own
hash and the section hash is derived from its field hashes, so editing one
plan never changes the fingerprint of another.

Keys:
    scalar sections   ``title``, ``goal``, ``references``, ``requirements``,
                      ``issues``, ``hints``, ``logs`` (section key == field key)
    node sections     ``plan:<id>``, ``step:<id>``, ``evr:<id>``
    node fields       ``<section>/<field>``, e.g. ``plan:p-1/status``

The functions accept anything shaped like a TaskRecord, which includes the
parser's PanelData, so a document and a record are hashed the same way.
"""

import hashlib
from typing import Any, Dict, Iterator, List, Tuple

from .expected_result import text_items


SCALAR_SECTIONS = ("title", "goal", "references", "requirements", "issues", "hints", "logs")
PLAN_FIELDS = ("description", "status", "hints", "context_tags")
STEP_FIELDS = ("description", "status", "hints", "context_tags", "uses_evr")
EVR_FIELDS = ("title", "verify", "expect", "status", "evr_class", "last_run", "proof", "notes")
STATUS_FIELD = "status"

SectionFields = Dict[str, Any]


def fingerprint(text: str) -> str:
    """Deterministic content hash. Change detection only, not a security primitive."""
    return hashlib.blake2b((text or "").encode("utf-8"), digest_size=16).hexdigest()


def section_key(kind: str, node_id: str) -> str:
    return f"{kind}:{node_id}"


def field_key(section: str, name: str) -> str:
    return section if section == name else f"{section}/{name}"


def split_section(section: str) -> Tuple[str, str]:
    """``plan:p-1`` -> ("plan", "p-1"); scalar sections -> (section, "")."""
    kind, _, node_id = section.partition(":")
    return kind, node_id


def canonical(value: Any) -> str:
    """Render a field value to the text that gets hashed."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(canonical(v) for v in value)
    if hasattr(value, "tag") and hasattr(value, "value"):
        return f"{value.tag}:{value.value}"
    return " ".join(str(value).split())


def log_line(entry: Any) -> str:
    return f"{entry.timestamp}|{entry.level}|{entry.category}|{entry.action}|{entry.message}"


def iter_sections(record: Any) -> Iterator[Tuple[str, SectionFields]]:
    """Yield (section key, {field name: value}) for every section of ``record``."""
    yield "title", {"title": record.title}
    yield "goal", {"goal": record.goal}
    yield "references", {"references": list(record.references)}
    yield "requirements", {"requirements": list(record.requirements)}
    yield "issues", {"issues": list(record.issues)}
    yield "hints", {"hints": list(record.hints)}
    yield "logs", {"logs": [log_line(e) for e in record.logs]}
    for plan in record.plans:
        yield section_key("plan", plan.id), {name: getattr(plan, name) for name in PLAN_FIELDS}
        for step in plan.steps:
            yield section_key("step", step.id), {name: getattr(step, name) for name in STEP_FIELDS}
    for evr in record.expected_results:
        fields = {name: getattr(evr, name) for name in EVR_FIELDS}
        fields["verify"] = text_items(evr.verify)
        fields["expect"] = text_items(evr.expect)
        yield section_key("evr", evr.id), fields


def field_fingerprints(section: str, fields: SectionFields) -> Dict[str, str]:
    return {field_key(section, name): fingerprint(canonical(value)) for name, value in fields.items()}


def combine(section: str, fields: SectionFields) -> str:
    """Section hash derived from its field hashes."""
    hashes = field_fingerprints(section, fields)
    if section in hashes:
        return hashes[section]
    return fingerprint("\n".join(f"{key}={hashes[key]}" for key in sorted(hashes)))


def section_fingerprints(record: Any) -> Dict[str, str]:
    """Full snapshot map: section keys plus field keys."""
    result: Dict[str, str] = {}
    for section, fields in iter_sections(record):
        result.update(field_fingerprints(section, fields))
        result[section] = combine(section, fields)
    return result


def sections_of(record: Any) -> Dict[str, SectionFields]:
    return dict(iter_sections(record))


def changed_sections(stored: Dict[str, str], record: Any) -> List[str]:
    """Section keys whose current hash differs from ``stored`` (new sections included)."""
    return [section for section, fields in iter_sections(record) if stored.get(section) != combine(section, fields)]
