from pathlib import Path

import pytest

from config import SyncSettings
from core import ExpectedResult, Plan, StorageError, Step, TaskRecord, ValidationError
from core import errors
from core.audit import EVENT_CONFLICT, EVENT_STATUS_PENDING, EVENT_SYNC
from core.desktop.devtools.application.sync_orchestrator import (
    STATE_APPLIED,
    STATE_PREVIEWED,
    SyncOrchestrator,
)
from infrastructure.audit_log import MemoryAuditLog
from infrastructure.file_repository import FileRecordRepository


class CountingRepository(FileRecordRepository):
    def __init__(self, records_dir: Path):
        super().__init__(records_dir)
        self.reads = 0
        self.fail_writes = False

    def read_document(self, path):
        self.reads += 1
        return super().read_document(path)

    def write_document(self, path, text):
        if self.fail_writes:
            raise StorageError("disk full", path=str(path))
        super().write_document(path, text)


def _setup(tmp_path: Path, **options):
    repo = CountingRepository(tmp_path)
    audit = MemoryAuditLog()
    orchestrator = SyncOrchestrator(repo, audit, SyncSettings(records_dir=tmp_path, **options))
    plan = Plan(description="Build it", id="p-1", steps=[Step(description="Write parser", id="s-1")])
    record = TaskRecord(
        id="REC-1",
        title="Panel sync",
        goal="Consistency",
        plans=[plan],
        expected_results=[ExpectedResult(title="Tests pass", id="e-1")],
    )
    record.bump_version()
    with orchestrator.chain(record.id) as ctx:
        orchestrator.commit(ctx, record)
    return repo, audit, orchestrator


def _edit_panel(repo: FileRecordRepository, old: str, new: str) -> None:
    path = repo.document_path("REC-1")
    text = path.read_text(encoding="utf-8")
    assert old in text
    path.write_text(text.replace(old, new), encoding="utf-8")


def test_commit_writes_record_and_panel(tmp_path):
    repo, _, _ = _setup(tmp_path)
    record = repo.load_record("REC-1")
    assert record.fingerprint_version_tag == record.version_tag
    assert "plan:p-1" in record.fingerprints
    assert "<!-- plan:p-1 -->" in repo.document_path("REC-1").read_text(encoding="utf-8")


def test_marker_only_edit_never_changes_status(tmp_path):
    repo, audit, orchestrator = _setup(tmp_path)
    _edit_panel(repo, "1. [ ] Build it", "1. [x] Build it")
    record = repo.load_record("REC-1")

    with orchestrator.chain("REC-1") as ctx:
        result = orchestrator.reconcile_and_apply(ctx, record)
        assert ctx.state == STATE_APPLIED

    assert result.written is False
    assert result.preview.applied is True
    assert result.record.find_plan("p-1").status == "to_do"
    assert [c.node_id for c in result.preview.pending_status] == ["p-1"]
    assert repo.load_record("REC-1").find_plan("p-1").status == "to_do"
    # Marker stays in the document until somebody confirms it.
    assert "1. [x] Build it" in repo.document_path("REC-1").read_text(encoding="utf-8")
    assert audit.read("REC-1") == []


def test_content_edit_applies_and_status_stays_pending(tmp_path):
    repo, audit, orchestrator = _setup(tmp_path)
    before = repo.load_record("REC-1")
    _edit_panel(repo, "# Task: Panel sync", "# Task: Panel sync v2")
    _edit_panel(repo, "1. [ ] Build it", "1. [x] Build it")

    with orchestrator.chain("REC-1") as ctx:
        result = orchestrator.reconcile_and_apply(ctx, before)
        assert ctx.state == STATE_APPLIED

    saved = repo.load_record("REC-1")
    assert result.written is True
    assert saved.title == "Panel sync v2"
    assert saved.find_plan("p-1").status == "to_do"
    assert saved.pending_status == {"p-1": "completed"}
    assert saved.revision == before.revision + 1
    assert saved.version_tag != before.version_tag
    assert saved.logs[-1].category == "PANEL"
    # Caller's object is untouched; the result carries the new record.
    assert before.title == "Panel sync"

    events = [entry.event_type for entry in audit.read("REC-1")]
    assert events == [EVENT_SYNC, EVENT_STATUS_PENDING]

    with orchestrator.chain("REC-1") as ctx:
        preview = orchestrator.preview(ctx, saved)
    assert preview.changes == []
    assert [(c.node_id, c.new_status) for c in preview.pending_status] == [("p-1", "completed")]


def test_at_most_one_parse_per_chain(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    _edit_panel(repo, "Consistency", "Consistency everywhere")
    record = repo.load_record("REC-1")
    repo.reads = 0

    with orchestrator.chain("REC-1") as ctx:
        first = orchestrator.preview(ctx, record)
        result = orchestrator.reconcile_and_apply(ctx, record)
        second = orchestrator.preview(ctx, result.record)
        orchestrator.commit(ctx, result.record)
        third = orchestrator.preview(ctx, result.record)

    assert [c.key for c in first.changes] == ["goal"]
    assert second.changes == [] and third.changes == []
    assert ctx.cache.parses == 1
    assert repo.reads == 1


def test_new_chain_parses_again(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    record = repo.load_record("REC-1")
    for _ in range(2):
        with orchestrator.chain("REC-1") as ctx:
            orchestrator.preview(ctx, record)
            assert ctx.cache.parses == 1
    assert ctx.cache.entries == {}


def test_disabled_cache_parses_every_time(tmp_path):
    repo, _, orchestrator = _setup(tmp_path, request_cache=False)
    record = repo.load_record("REC-1")
    with orchestrator.chain("REC-1") as ctx:
        orchestrator.preview(ctx, record)
        orchestrator.preview(ctx, record)
    assert ctx.cache.parses == 2


def test_preview_writes_nothing(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    _edit_panel(repo, "Consistency", "Changed")
    panel_before = repo.document_path("REC-1").read_text(encoding="utf-8")
    record = repo.load_record("REC-1")

    with orchestrator.chain("REC-1") as ctx:
        preview = orchestrator.preview(ctx, record)
        assert ctx.state == STATE_PREVIEWED

    assert preview.applied is False
    assert repo.load_record("REC-1").goal == "Consistency"
    assert repo.document_path("REC-1").read_text(encoding="utf-8") == panel_before


def test_out_of_band_record_change_wins_on_etag_mismatch(tmp_path):
    repo, audit, orchestrator = _setup(tmp_path)
    record = repo.load_record("REC-1")
    record.title = "From API"
    record.bump_version()
    repo.save_record(record)
    _edit_panel(repo, "# Task: Panel sync", "# Task: From panel")

    with orchestrator.chain("REC-1") as ctx:
        result = orchestrator.reconcile_and_apply(ctx, record)

    assert result.record.title == "From API"
    assert [(c.resolution, c.reason) for c in result.preview.conflicts] == [("ours", "etag_mismatch")]
    assert "# Task: From API" in repo.document_path("REC-1").read_text(encoding="utf-8")
    conflict = [e for e in audit.read("REC-1") if e.event_type == EVENT_CONFLICT][0]
    assert conflict.data["ours"] == "From API"
    assert conflict.data["theirs"] == "From panel"
    assert conflict.data["chosen"] == "ours"


def test_storage_error_leaves_record_untouched(tmp_path):
    repo, audit, orchestrator = _setup(tmp_path)
    _edit_panel(repo, "Consistency", "Changed")
    record = repo.load_record("REC-1")
    repo.fail_writes = True

    with orchestrator.chain("REC-1") as ctx:
        with pytest.raises(StorageError):
            orchestrator.reconcile_and_apply(ctx, record)

    saved = repo.load_record("REC-1")
    assert saved.goal == "Consistency"
    assert saved.version_tag == record.version_tag
    assert audit.read("REC-1") == []


def test_missing_panel_is_rendered(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    repo.document_path("REC-1").unlink()
    record = repo.load_record("REC-1")

    with orchestrator.chain("REC-1") as ctx:
        preview = orchestrator.preview(ctx, record)
        assert [w.code for w in preview.warnings] == [errors.WARN_DOCUMENT_MISSING]
        result = orchestrator.reconcile_and_apply(ctx, record)

    assert result.written is True
    assert repo.document_path("REC-1").exists()


def test_context_mismatch_raises(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    other = TaskRecord(id="REC-2", title="Other")
    with orchestrator.chain("REC-1") as ctx:
        with pytest.raises(ValidationError):
            orchestrator.preview(ctx, other)


def test_closed_context_raises(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    record = repo.load_record("REC-1")
    with orchestrator.chain("REC-1") as ctx:
        pass
    with pytest.raises(ValidationError):
        orchestrator.preview(ctx, record)


def test_panel_of_another_record_raises(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    _edit_panel(repo, "record_id: REC-1", "record_id: REC-2")
    record = repo.load_record("REC-1")
    with orchestrator.chain("REC-1") as ctx:
        with pytest.raises(ValidationError):
            orchestrator.reconcile_and_apply(ctx, record)


def test_one_record_cannot_bind_two_documents(tmp_path):
    _, _, orchestrator = _setup(tmp_path)
    with pytest.raises(ValidationError):
        with orchestrator.chain("REC-1", tmp_path / "elsewhere.md"):
            pass
    orchestrator.unbind("REC-1")
    with orchestrator.chain("REC-1", tmp_path / "elsewhere.md") as ctx:
        assert ctx.document_path == tmp_path / "elsewhere.md"


def test_invalid_record_is_rejected_before_writing(tmp_path):
    repo, _, orchestrator = _setup(tmp_path)
    record = repo.load_record("REC-1")
    record.plans[0].steps.append(Step(description="dup", id="s-1"))
    with orchestrator.chain("REC-1") as ctx:
        with pytest.raises(ValidationError):
            orchestrator.commit(ctx, record)
    assert len(repo.load_record("REC-1").plans[0].steps) == 1


def test_record_lock_is_shared_and_released(tmp_path):
    _, _, orchestrator = _setup(tmp_path)
    with orchestrator.record_lock("REC-1") as outer:
        with orchestrator.record_lock("REC-1") as inner:
            assert inner is outer
        assert "REC-1" in orchestrator._locks
    del outer, inner
    assert "REC-1" not in orchestrator._locks
