"""Single choke point between record operations and the panel document.

Every read-style operation calls ``preview`` and every mutate-style operation
calls ``reconcile_and_apply`` before touching the record, then ``commit``
afterwards. Calls are scoped by an explicit SyncContext obtained from
``chain()``; its RequestCache guarantees at most one physical parse per
document revision within the chain and is thrown away when the chain ends.
"""

import copy
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from config import SyncSettings
from core import (
    AuditEntry,
    ContentChange,
    ContextTag,
    LogEntry,
    PanelData,
    ParseWarning,
    StatusChange,
    SyncPreview,
    TaskRecord,
    ValidationError,
)
from core import errors
from core.changes import RESOLUTION_THEIRS
from core.fingerprint import section_fingerprints, split_section
from core.desktop.devtools.application.change_detector import DetectionResult, detect_panel_differences
from core.desktop.devtools.application.conflict_resolver import ConflictResolver, mtime_to_iso
from application.ports import AuditSink, DocumentSignature, RecordRepository
from infrastructure.panel_parser import PanelParser
from infrastructure.panel_renderer import PanelRenderer


logger = logging.getLogger("panel_sync.sync")

STATE_UNSYNCED = "unsynced"
STATE_PREVIEWED = "previewed"
STATE_APPLIED = "applied"
STATE_DISCARDED = "discarded"

CacheKey = Tuple[str, DocumentSignature]


@dataclass
class RequestCache:
    """Parsed panels keyed by (document path, signature) for one call chain."""

    enabled: bool = True
    entries: Dict[CacheKey, PanelData] = field(default_factory=dict)
    parses: int = 0

    def get(self, path: Path, signature: DocumentSignature) -> Optional[PanelData]:
        if not self.enabled:
            return None
        return self.entries.get((str(path), signature))

    def put(self, path: Path, signature: Optional[DocumentSignature], panel: PanelData) -> None:
        if not self.enabled or signature is None:
            return
        # One live revision per path: older signatures are stale by definition.
        for key in [k for k in self.entries if k[0] == str(path)]:
            del self.entries[key]
        self.entries[(str(path), signature)] = panel

    def clear(self) -> None:
        self.entries.clear()


@dataclass
class SyncContext:
    record_id: str
    document_path: Path
    cache: RequestCache = field(default_factory=RequestCache)
    state: str = STATE_UNSYNCED
    closed: bool = False


@dataclass
class ApplyResult:
    record: TaskRecord
    preview: SyncPreview
    audit: List[AuditEntry] = field(default_factory=list)
    written: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record.id,
            "version_tag": self.record.version_tag,
            "written": self.written,
            "preview": self.preview.to_dict(),
            "audit": [entry.to_dict() for entry in self.audit],
        }


class RecordLock:
    """Reentrant lock for one record id; dropped once no caller references it."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def __enter__(self) -> "RecordLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._lock.release()


class SyncOrchestrator:
    def __init__(
        self,
        repository: RecordRepository,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[SyncSettings] = None,
        parser: Any = PanelParser,
        renderer: Any = PanelRenderer,
    ):
        self.repository = repository
        self.audit_sink = audit_sink
        self.settings = settings or SyncSettings()
        self.parser = parser
        self.renderer = renderer
        self.resolver = ConflictResolver(self.settings.conflict_strategy)
        self._locks: "weakref.WeakValueDictionary[str, RecordLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()
        self._bindings: Dict[str, Path] = {}

    # ------------------------------------------------------------------ chain

    @contextmanager
    def chain(self, record_id: str, document_path: Optional[Path] = None) -> Iterator[SyncContext]:
        """Open one logical call chain; the request cache dies with it."""
        path = Path(document_path) if document_path else self.repository.document_path(record_id)
        self.bind(record_id, path)
        ctx = SyncContext(record_id=record_id, document_path=path, cache=RequestCache(enabled=self.settings.request_cache))
        try:
            yield ctx
        finally:
            ctx.cache.clear()
            ctx.closed = True

    def bind(self, record_id: str, document_path: Path) -> None:
        resolved = Path(document_path).resolve()
        with self._locks_guard:
            bound = self._bindings.get(record_id)
            if bound is not None and bound != resolved:
                raise ValidationError(
                    "record is already bound to another panel document",
                    record_id=record_id,
                    path=str(resolved),
                    bound_path=str(bound),
                )
            self._bindings[record_id] = resolved

    def unbind(self, record_id: str) -> None:
        with self._locks_guard:
            self._bindings.pop(record_id, None)

    def record_lock(self, record_id: str) -> "RecordLock":
        """Lock serializing every sync and mutation of one record.

        Hold it across load, reconcile, mutate and commit so overlapping callers queue.
        """
        with self._locks_guard:
            lock = self._locks.get(record_id)
            if lock is None:
                lock = RecordLock()
                self._locks[record_id] = lock
            return lock

    def _check_context(self, ctx: SyncContext, record: TaskRecord) -> None:
        if ctx.closed:
            raise ValidationError("sync context is closed", record_id=ctx.record_id)
        if ctx.record_id != record.id:
            raise ValidationError("record does not match the sync context", record_id=record.id, context=ctx.record_id)

    # ---------------------------------------------------------------- reading

    def _load_panel(self, ctx: SyncContext) -> Tuple[Optional[PanelData], Optional[DocumentSignature]]:
        signature = self.repository.document_signature(ctx.document_path)
        if signature is None:
            return None, None
        cached = ctx.cache.get(ctx.document_path, signature)
        if cached is not None:
            return cached, signature
        text = self.repository.read_document(ctx.document_path)
        if text is None:
            return None, None
        panel = self.parser.parse(text)
        ctx.cache.parses += 1
        ctx.cache.put(ctx.document_path, signature, panel)
        return panel, signature

    def _detect(self, ctx: SyncContext, record: TaskRecord) -> Tuple[SyncPreview, Optional[DetectionResult]]:
        panel, signature = self._load_panel(ctx)
        if panel is None:
            warning = ParseWarning(errors.WARN_DOCUMENT_MISSING, f"panel {ctx.document_path} does not exist")
            return SyncPreview(warnings=[warning], pending_status=self._carried_pending(record, [])), None
        claimed = panel.metadata.record_id or panel.record_id
        if claimed and claimed != record.id:
            raise ValidationError(
                "panel belongs to a different record", record_id=record.id, panel_record_id=claimed, path=str(ctx.document_path)
            )
        detection = detect_panel_differences(panel, record)
        content, conflicts = self.resolver.resolve(
            record, detection.content_changes, panel.metadata, mtime_to_iso(signature[0] if signature else None)
        )
        pending = list(detection.status_changes) + self._carried_pending(record, detection.status_changes)
        preview = SyncPreview(
            applied=False,
            changes=[*content, *detection.status_changes],
            conflicts=conflicts,
            warnings=detection.parse_warnings,
            pending_status=pending,
        )
        return preview, detection

    @staticmethod
    def _carried_pending(record: TaskRecord, seen: List[StatusChange]) -> List[StatusChange]:
        """Status requests stored on the record by an earlier apply."""
        seen_ids = {c.node_id for c in seen}
        out: List[StatusChange] = []
        for node_id, status in record.pending_status.items():
            if node_id in seen_ids:
                continue
            target, node = _find_node(record, node_id)
            if node is None or node.status == status:
                continue
            out.append(StatusChange(target=target, node_id=node_id, old_status=node.status, new_status=status))
        return out

    def preview(self, ctx: SyncContext, record: TaskRecord) -> SyncPreview:
        """Dry run: report changes, conflicts and pending statuses; writes nothing."""
        with self.record_lock(record.id):
            self._check_context(ctx, record)
            preview, _ = self._detect(ctx, record)
            ctx.state = STATE_PREVIEWED
            if not preview.is_clean:
                logger.info(
                    "preview %s: %d change(s), %d conflict(s), %d pending status",
                    record.id,
                    len(preview.changes),
                    len(preview.conflicts),
                    len(preview.pending_status),
                )
            return preview

    # ---------------------------------------------------------------- writing

    def reconcile_and_apply(self, ctx: SyncContext, record: TaskRecord) -> ApplyResult:
        """Apply panel content edits to a copy of ``record``; status edits stay pending.

        Disk is touched only at the end: document first, then record, then audit.
        A failure before that leaves both files as they were.
        """
        with self.record_lock(record.id):
            self._check_context(ctx, record)
            record.validate()
            preview, detection = self._detect(ctx, record)
            if detection is None:
                working = copy.deepcopy(record)
                self._persist(ctx, working)
                ctx.state = STATE_APPLIED
                preview.applied = True
                return ApplyResult(record=working, preview=preview, written=True)

            to_apply: List[ContentChange] = list(preview.content_changes)
            to_apply += [c.as_content_change() for c in preview.conflicts if c.resolution == RESOLUTION_THEIRS]
            if not (to_apply or preview.conflicts):
                # Nothing but marker edits: leave the document alone so the markers survive.
                preview.applied = True
                ctx.state = STATE_APPLIED
                return ApplyResult(record=record, preview=preview)

            working = copy.deepcopy(record)
            for change in to_apply:
                _apply_change(working, change)
            for change in preview.status_changes:
                working.pending_status[change.node_id] = change.new_status
            applied_keys = [c.key for c in to_apply]
            if to_apply:
                working.logs.append(
                    LogEntry.now(
                        f"Applied {len(to_apply)} panel edit(s): {', '.join(applied_keys)}",
                        category="PANEL",
                        action="SYNC",
                    )
                )
            working.bump_version()
            working.refresh_evr_links()
            working.validate()
            self._persist(ctx, working)

            audit = [AuditEntry.conflict(c) for c in preview.conflicts]
            if to_apply:
                audit.append(AuditEntry.sync(applied_keys, working.version_tag))
            audit.extend(AuditEntry.status_pending(c) for c in preview.status_changes)
            self._audit(working.id, audit)

            preview.applied = True
            ctx.state = STATE_APPLIED
            logger.info("applied %d panel edit(s) to %s -> %s", len(to_apply), working.id, working.version_tag)
            return ApplyResult(record=working, preview=preview, audit=audit, written=True)

    def commit(self, ctx: SyncContext, record: TaskRecord) -> TaskRecord:
        """Persist a caller's own mutation: save, re-render, refresh the snapshot."""
        with self.record_lock(record.id):
            self._check_context(ctx, record)
            record.validate()
            if not record.version_tag:
                record.bump_version()
            record.refresh_evr_links()
            self._persist(ctx, record)
            ctx.state = STATE_UNSYNCED
            return record

    def discard(self, ctx: SyncContext) -> None:
        ctx.cache.clear()
        ctx.state = STATE_DISCARDED

    def _persist(self, ctx: SyncContext, record: TaskRecord) -> None:
        record.fingerprints = section_fingerprints(record)
        record.fingerprint_version_tag = record.version_tag
        text = self.renderer.render(record, front_matter=self.settings.front_matter)
        self.repository.write_document(ctx.document_path, text)
        # Re-key the cache to the rewritten document without parsing it again.
        signature = self.repository.document_signature(ctx.document_path)
        ctx.cache.put(ctx.document_path, signature, PanelData.from_record(record, with_front_matter=self.settings.front_matter))
        self.repository.save_record(record)

    def _audit(self, record_id: str, entries: List[AuditEntry]) -> None:
        if self.audit_sink is None or not self.settings.audit:
            return
        for entry in entries:
            self.audit_sink.append(record_id, entry)


def _find_node(record: TaskRecord, node_id: str) -> Tuple[str, Any]:
    plan = record.find_plan(node_id)
    if plan is not None:
        return "plan", plan
    step = record.find_step(node_id)
    if step is not None:
        return "step", step
    evr = record.find_evr(node_id)
    if evr is not None:
        return "evr", evr
    return "", None


def _apply_change(record: TaskRecord, change: ContentChange) -> None:
    kind, node_id = split_section(change.section_id)
    value = change.new_value
    if not node_id:
        setattr(record, change.field, list(value) if isinstance(value, list) else value)
        return
    _, node = _find_node(record, node_id)
    if node is None:
        logger.warning("cannot apply %s: node vanished", change.key)
        return
    if change.field == "context_tags":
        value = [ContextTag.from_dict(v) if isinstance(v, dict) else v for v in (value or [])]
    elif isinstance(value, list):
        value = list(value)
    setattr(node, change.field, value)
    if kind == "evr":
        node.normalize()
