import json
import logging
from pathlib import Path
from typing import Dict, List

from core import AuditEntry, StorageError
from application.ports import AuditSink


logger = logging.getLogger("panel_sync.audit")

AUDIT_DIRNAME = ".audit"


class JsonlAuditLog(AuditSink):
    """Append-only JSON lines, one file per record: ``<dir>/.audit/<id>.jsonl``."""

    def __init__(self, records_dir: Path):
        self.audit_dir = Path(records_dir) / AUDIT_DIRNAME

    def _path(self, record_id: str) -> Path:
        return self.audit_dir / f"{record_id}.jsonl"

    def append(self, record_id: str, entry: AuditEntry) -> None:
        path = self._path(record_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            raise StorageError(f"cannot append audit entry: {exc}", path=str(path), record_id=record_id) from exc
        logger.info("%s %s %s", record_id, entry.event_type, entry.target)

    def read(self, record_id: str) -> List[AuditEntry]:
        path = self._path(record_id)
        if not path.exists():
            return []
        entries: List[AuditEntry] = []
        try:
            with open(path, "r", encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, 1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(AuditEntry.from_dict(json.loads(line)))
                    except json.JSONDecodeError:
                        logger.warning("skipping corrupt audit line %s:%d", path, lineno)
        except OSError as exc:
            raise StorageError(f"cannot read audit log: {exc}", path=str(path), record_id=record_id) from exc
        return entries


class MemoryAuditLog(AuditSink):
    """In-process sink; used when auditing to disk is disabled."""

    def __init__(self) -> None:
        self.entries: Dict[str, List[AuditEntry]] = {}

    def append(self, record_id: str, entry: AuditEntry) -> None:
        self.entries.setdefault(record_id, []).append(entry)

    def read(self, record_id: str) -> List[AuditEntry]:
        return list(self.entries.get(record_id, []))
