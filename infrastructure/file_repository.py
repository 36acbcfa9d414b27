import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core import StorageError, TaskRecord, ValidationError
from application.ports import DocumentSignature, RecordRepository


logger = logging.getLogger("panel_sync.storage")

RECORD_SUFFIX = ".yaml"
PANEL_SUFFIX = ".md"


class FileRecordRepository(RecordRepository):
    """Records as ``<dir>/<id>.yaml``, panels as ``<dir>/<id>.md``.

    Every OSError and YAML error is re-raised as StorageError carrying the path.
    """

    def __init__(self, records_dir: Path):
        self.records_dir = Path(records_dir)

    def _resolve_path(self, record_id: str, suffix: str) -> Path:
        # SEC: Validate record_id against path traversal
        if not record_id or ".." in record_id or "/" in record_id or "\\" in record_id:
            raise ValidationError(f"Invalid record id: {record_id!r}", record_id=record_id)
        resolved = (self.records_dir / f"{record_id}{suffix}").resolve()
        if not resolved.is_relative_to(self.records_dir.resolve()):
            raise ValidationError(f"Path traversal detected: {resolved} is outside {self.records_dir}", record_id=record_id)
        return resolved

    def record_path(self, record_id: str) -> Path:
        return self._resolve_path(record_id, RECORD_SUFFIX)

    def document_path(self, record_id: str) -> Path:
        return self._resolve_path(record_id, PANEL_SUFFIX)

    def exists(self, record_id: str) -> bool:
        return self.record_path(record_id).exists()

    def load_record(self, record_id: str) -> Optional[TaskRecord]:
        path = self.record_path(record_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise StorageError(f"cannot read record: {exc}", path=str(path), record_id=record_id) from exc
        if not isinstance(data, dict):
            raise StorageError("record file is not a mapping", path=str(path), record_id=record_id)
        return TaskRecord.from_dict(data)

    def save_record(self, record: TaskRecord) -> None:
        path = self.record_path(record.id)
        payload: Dict[str, Any] = record.to_dict()
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                yaml.safe_dump(payload, fh, allow_unicode=True, sort_keys=False)
            os.replace(tmp, path)
        except (OSError, yaml.YAMLError) as exc:
            raise StorageError(f"cannot write record: {exc}", path=str(path), record_id=record.id) from exc
        logger.debug("saved record %s (revision %s)", record.id, record.revision)

    def list_records(self) -> List[str]:
        if not self.records_dir.exists():
            return []
        return sorted(p.stem for p in self.records_dir.glob(f"*{RECORD_SUFFIX}") if p.is_file())

    def delete_record(self, record_id: str) -> bool:
        removed = False
        for path in (self.record_path(record_id), self.document_path(record_id)):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageError(f"cannot delete: {exc}", path=str(path), record_id=record_id) from exc
        return removed

    def read_document(self, path: Path) -> Optional[str]:
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"cannot read panel: {exc}", path=str(path)) from exc

    def write_document(self, path: Path, text: str) -> None:
        path = Path(path)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, path)
        except OSError as exc:
            raise StorageError(f"cannot write panel: {exc}", path=str(path)) from exc

    def document_signature(self, path: Path) -> Optional[DocumentSignature]:
        try:
            st = Path(path).stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"cannot stat panel: {exc}", path=str(path)) from exc
        return int(st.st_mtime_ns), int(st.st_size)
