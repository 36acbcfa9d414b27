from pathlib import Path
from typing import Any, ContextManager, Optional, Protocol

from core import SyncPreview, TaskRecord


class PanelSyncService(Protocol):
    settings: Any

    def chain(self, record_id: str, document_path: Optional[Path] = None) -> ContextManager[Any]:
        ...

    def preview(self, ctx: Any, record: TaskRecord) -> SyncPreview:
        ...

    def reconcile_and_apply(self, ctx: Any, record: TaskRecord) -> Any:
        ...

    def commit(self, ctx: Any, record: TaskRecord) -> TaskRecord:
        ...

    def record_lock(self, record_id: str) -> ContextManager[Any]:
        ...
