from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from core import AuditEntry, TaskRecord


DocumentSignature = Tuple[int, int]  # (st_mtime_ns, st_size)


class RecordRepository(Protocol):
    def load_record(self, record_id: str) -> Optional[TaskRecord]:
        ...

    def save_record(self, record: TaskRecord) -> None:
        ...

    def list_records(self) -> List[str]:
        ...

    def document_path(self, record_id: str) -> Path:
        ...

    def read_document(self, path: Path) -> Optional[str]:
        ...

    def write_document(self, path: Path, text: str) -> None:
        ...

    def document_signature(self, path: Path) -> Optional[DocumentSignature]:
        ...


class AuditSink(Protocol):
    def append(self, record_id: str, entry: AuditEntry) -> None:
        ...

    def read(self, record_id: str) -> List[AuditEntry]:
        ...
