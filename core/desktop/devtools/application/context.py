import re
from pathlib import Path
from typing import Optional, Tuple

from core import ValidationError


LAST_FILE = ".last"


def _last_path(base: Optional[Path] = None) -> Path:
    return (base or Path(".")) / LAST_FILE


def save_last_record(record_id: str, document_path: Optional[Path] = None, base: Optional[Path] = None) -> None:
    """Remember the active record (and its panel path) for '.'/'last' shortcuts."""
    suffix = f"@{document_path}" if document_path else ""
    _last_path(base).write_text(f"{record_id}{suffix}", encoding="utf-8")


def get_last_record(base: Optional[Path] = None) -> Tuple[Optional[str], Optional[Path]]:
    last = _last_path(base)
    if not last.exists():
        return None, None
    raw = last.read_text(encoding="utf-8").strip()
    if "@" in raw:
        rid, path = raw.split("@", 1)
        return rid or None, (Path(path) if path else None)
    return raw or None, None


def normalize_record_id(raw: str) -> str:
    value = raw.strip().upper()
    if re.match(r"^TASK-\d+$", value):
        num = int(value.split("-")[1])
        return f"TASK-{num:03d}"
    if value.isdigit():
        return f"TASK-{int(value):03d}"
    return raw.strip()


def resolve_record_reference(
    raw_record_id: Optional[str], base: Optional[Path] = None
) -> Tuple[str, Optional[Path]]:
    """
    Return (record_id, bound document path or None) with shortcuts:
    '.' / 'last' / '@last' / empty -> last record from .last.
    """
    sentinel = (raw_record_id or "").strip()
    if not sentinel or sentinel in (".", "last", "@last"):
        last_id, last_path = get_last_record(base)
        if not last_id:
            raise ValidationError("no active record; pass a record id")
        return normalize_record_id(last_id), last_path
    record_id = normalize_record_id(sentinel)
    last_id, last_path = get_last_record(base)
    return record_id, (last_path if last_id == record_id else None)


__all__ = [
    "save_last_record",
    "get_last_record",
    "normalize_record_id",
    "resolve_record_reference",
]
