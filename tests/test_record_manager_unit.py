import threading
import time
from pathlib import Path

from config import SyncSettings
from core.audit import EVENT_STATUS_CONFIRMED
from core.desktop.devtools.application.record_manager import RecordManager
from core.desktop.devtools.application.sync_orchestrator import SyncOrchestrator
from infrastructure.audit_log import MemoryAuditLog
from infrastructure.file_repository import FileRecordRepository


def _manager(tmp_path: Path) -> RecordManager:
    repo = FileRecordRepository(tmp_path)
    audit = MemoryAuditLog()
    orchestrator = SyncOrchestrator(repo, audit, SyncSettings(records_dir=tmp_path))
    manager = RecordManager(repo, orchestrator, audit)
    ok, error, _ = manager.init("REC-1", "Panel sync", goal="Consistency", requirements=["no loss"])
    assert ok, error
    return manager


def _panel(manager: RecordManager) -> Path:
    return manager.repository.document_path("REC-1")


def _edit_panel(manager: RecordManager, old: str, new: str) -> None:
    path = _panel(manager)
    text = path.read_text(encoding="utf-8")
    assert old in text
    path.write_text(text.replace(old, new), encoding="utf-8")


def _add_plan(manager: RecordManager, description: str = "Build it", steps=None) -> str:
    ok, error, result = manager.add_plan("REC-1", description, steps=steps or [])
    assert ok, error
    return result.record.plans[-1].id


def test_init_renders_panel(tmp_path):
    manager = _manager(tmp_path)
    record = manager.load_record("REC-1")
    assert record.revision == 1
    assert record.logs[0].action == "CREATE"
    text = _panel(manager).read_text(encoding="utf-8")
    assert "# Task: Panel sync" in text
    assert "- no loss" in text


def test_init_rejects_duplicates_and_empty_titles(tmp_path):
    manager = _manager(tmp_path)
    ok, error, _ = manager.init("REC-1", "Again")
    assert not ok and error["code"] == "exists"
    ok, error, _ = manager.init("REC-2", "   ")
    assert not ok and error["code"] == "missing_title"


def test_mutation_picks_up_panel_edits_first(tmp_path):
    manager = _manager(tmp_path)
    _edit_panel(manager, "Consistency", "Consistency everywhere")

    plan_id = _add_plan(manager)

    record = manager.load_record("REC-1")
    assert record.goal == "Consistency everywhere"
    assert record.find_plan(plan_id) is not None
    text = _panel(manager).read_text(encoding="utf-8")
    assert "Consistency everywhere" in text
    assert f"<!-- plan:{plan_id} -->" in text


def test_read_is_a_dry_run(tmp_path):
    manager = _manager(tmp_path)
    _edit_panel(manager, "Consistency", "Changed")
    record, preview = manager.read("REC-1")
    assert record.goal == "Consistency"
    assert [c.key for c in preview.changes] == ["goal"]
    assert manager.load_record("REC-1").goal == "Consistency"


def test_read_missing_record(tmp_path):
    manager = _manager(tmp_path)
    assert manager.read("NOPE") == (None, None)


def test_marker_request_survives_unrelated_mutation(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    _edit_panel(manager, "1. [ ] Build it", "1. [x] Build it")

    ok, _, _ = manager.modify("REC-1", goal="New goal")
    assert ok

    record = manager.load_record("REC-1")
    assert record.find_plan(plan_id).status == "to_do"
    assert record.pending_status == {plan_id: "completed"}
    _, preview = manager.read("REC-1")
    assert [c.node_id for c in preview.pending_status] == [plan_id]


def test_confirm_pending_status(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    _edit_panel(manager, "1. [ ] Build it", "1. [x] Build it")

    ok, error, result = manager.confirm_pending_status("REC-1")

    assert ok, error
    plan = manager.load_record("REC-1").find_plan(plan_id)
    assert plan.status == "completed"
    assert plan.completed_at
    assert manager.load_record("REC-1").pending_status == {}
    assert "1. [x] Build it" in _panel(manager).read_text(encoding="utf-8")
    events = [e for e in manager.audit_sink.read("REC-1") if e.event_type == EVENT_STATUS_CONFIRMED]
    assert events[0].data == {"status": "completed", "accepted": True}


def test_reject_pending_status_resets_marker(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    _edit_panel(manager, "1. [ ] Build it", "1. [!] Build it")

    ok, error, _ = manager.confirm_pending_status("REC-1", plan_id, accept=False)

    assert ok, error
    record = manager.load_record("REC-1")
    assert record.find_plan(plan_id).status == "to_do"
    assert record.pending_status == {}
    assert "1. [ ] Build it" in _panel(manager).read_text(encoding="utf-8")


def test_confirm_without_pending_fails(tmp_path):
    manager = _manager(tmp_path)
    ok, error, _ = manager.confirm_pending_status("REC-1")
    assert not ok and error["code"] == "nothing_pending"


def test_update_status_is_the_status_path(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager, steps=["Write parser"])
    step_id = manager.load_record("REC-1").find_plan(plan_id).steps[0].id

    ok, error, _ = manager.update_status("REC-1", step_id, "done", evidence="pytest green")
    assert ok, error
    step = manager.load_record("REC-1").find_step(step_id)
    assert step.status == "completed" and step.evidence == "pytest green"

    ok, error, _ = manager.update_status("REC-1", step_id, "sideways")
    assert not ok and error["code"] == "invalid_status"
    ok, error, _ = manager.update_status("REC-1", "missing", "done")
    assert not ok and error["code"] == "node_not_found"


def test_evr_status_and_binding(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    ok, error, result = manager.add_evr("REC-1", "Tests pass", verify=["pytest -q"], bind_to=plan_id)
    assert ok, error
    evr_id = result.record.expected_results[0].id

    ok, error, _ = manager.add_step("REC-1", plan_id, "Run tests", uses_evr=[evr_id])
    assert ok, error
    ok, error, _ = manager.add_step("REC-1", plan_id, "Bad link", uses_evr=["evr-missing"])
    assert not ok and error["code"] == "evr_not_found"

    ok, error, _ = manager.update_status("REC-1", evr_id, "pass", evidence="CI #12")
    assert ok, error
    record = manager.load_record("REC-1")
    evr = record.find_evr(evr_id)
    assert evr.status == "pass" and evr.last_run and evr.proof == "CI #12"
    assert plan_id in evr.referenced_by
    assert record.find_plan(plan_id).evr_bindings == [evr_id]

    ok, error, _ = manager.update_status("REC-1", evr_id, "green")
    assert not ok and error["code"] == "invalid_status"


def test_modify_node_description(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    ok, error, _ = manager.modify("REC-1", node_id=plan_id, description="Build it well", issues=["slow CI"])
    assert ok, error
    record = manager.load_record("REC-1")
    assert record.find_plan(plan_id).description == "Build it well"
    assert record.issues == ["slow CI"]

    ok, error, _ = manager.modify("REC-1", node_id=plan_id)
    assert not ok and error["code"] == "missing_description"
    ok, error, _ = manager.modify("REC-1", logs=["nope"])
    assert not ok and error["code"] == "invalid_field"


def test_complete_requires_finished_plans(tmp_path):
    manager = _manager(tmp_path)
    plan_id = _add_plan(manager)
    ok, error, _ = manager.complete("REC-1")
    assert not ok and error["code"] == "incomplete"

    manager.update_status("REC-1", plan_id, "completed")
    ok, error, _ = manager.complete("REC-1")
    assert ok, error
    assert manager.load_record("REC-1").is_completed


def test_add_log_appends(tmp_path):
    manager = _manager(tmp_path)
    ok, error, _ = manager.add_log("REC-1", "Investigated flake", level="warn", action="debug")
    assert ok, error
    entry = manager.load_record("REC-1").logs[-1]
    assert (entry.level, entry.action, entry.message) == ("WARNING", "DEBUG", "Investigated flake")
    assert "[WARNING] TASK/DEBUG: Investigated flake" in _panel(manager).read_text(encoding="utf-8")


def test_rerender_does_not_bump(tmp_path):
    manager = _manager(tmp_path)
    before = manager.load_record("REC-1")
    _panel(manager).unlink()
    ok, error, _ = manager.rerender("REC-1")
    assert ok, error
    assert manager.load_record("REC-1").revision == before.revision
    assert _panel(manager).exists()


def test_session_shares_one_parse(tmp_path):
    manager = _manager(tmp_path)
    with manager.session("REC-1") as ctx:
        manager.read("REC-1", ctx)
        manager.add_log("REC-1", "one", ctx=ctx)
        manager.read("REC-1", ctx)
    assert ctx.cache.parses == 1


class SlowLoadRepository(FileRecordRepository):
    def load_record(self, record_id):
        record = super().load_record(record_id)
        time.sleep(0.05)
        return record


def test_overlapping_mutations_queue(tmp_path):
    repo = SlowLoadRepository(tmp_path)
    orchestrator = SyncOrchestrator(repo, None, SyncSettings(records_dir=tmp_path))
    manager = RecordManager(repo, orchestrator)
    ok, error, _ = manager.init("REC-1", "Panel sync")
    assert ok, error

    results = []
    threads = [
        threading.Thread(target=lambda i=i: results.append(manager.add_log("REC-1", f"msg {i}")[0]))
        for i in range(3)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == [True, True, True]
    messages = [entry.message for entry in manager.load_record("REC-1").logs]
    assert messages[0] == "Record created"
    assert sorted(messages[1:]) == ["msg 0", "msg 1", "msg 2"]
