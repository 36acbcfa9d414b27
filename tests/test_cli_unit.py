import json

import pytest

import config
import panel_sync
from core.desktop.devtools.interface import panel_app


@pytest.fixture
def records(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config, "USER_CONFIG_PATH", tmp_path / "cfg.yaml")
    for name in (config.ENV_RECORDS_DIR, config.ENV_CONFLICT_STRATEGY, config.ENV_AUDIT, config.ENV_REQUEST_CACHE):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(panel_app, "is_interactive", lambda: False)
    return tmp_path / "records"


def _run(capsys, records, *argv):
    code = panel_app.main(["--records-dir", str(records), *argv])
    return code, capsys.readouterr().out


def _json(out: str):
    return json.loads(out)


def _init(capsys, records):
    code, out = _run(capsys, records, "init", "REC-1", "Panel sync", "--goal", "Consistency")
    assert code == 0, out
    return _json(out)


def test_build_parser_has_core_commands():
    help_text = panel_sync.build_parser().format_help()
    for command in ("init", "preview", "apply", "confirm", "status", "render"):
        assert command in help_text


def test_init_then_show(capsys, records):
    body = _init(capsys, records)
    assert body["status"] == "OK"
    assert body["payload"]["panel"].endswith("REC-1.md")
    assert (records / "REC-1.md").exists()

    code, out = _run(capsys, records, "show")
    assert code == 0
    payload = _json(out)["payload"]
    assert payload["record"]["title"] == "Panel sync"
    assert "fingerprints" not in payload["record"]
    assert payload["preview"]["changes"] == []


def test_plan_then_marker_then_confirm(capsys, records):
    _init(capsys, records)
    code, out = _run(capsys, records, "plan", "Build it", "--step", "Write parser")
    assert code == 0, out
    plan_id = _json(out)["payload"]["record"]["plans"][0]["id"]

    panel = records / "REC-1.md"
    panel.write_text(panel.read_text(encoding="utf-8").replace("1. [ ] Build it", "1. [x] Build it"), encoding="utf-8")

    code, out = _run(capsys, records, "preview")
    assert code == 0
    pending = _json(out)["payload"]["pending_status"]
    assert [(p["node_id"], p["new_status"]) for p in pending] == [(plan_id, "completed")]

    code, out = _run(capsys, records, "confirm")
    assert code == 1
    assert "confirmation required" in _json(out)["message"]

    code, out = _run(capsys, records, "confirm", "--yes")
    assert code == 0, out
    plans = _json(out)["payload"]["record"]["plans"]
    assert plans[0]["status"] == "completed"


def test_apply_reports_applied_content(capsys, records):
    _init(capsys, records)
    panel = records / "REC-1.md"
    panel.write_text(panel.read_text(encoding="utf-8").replace("Consistency", "Consistency everywhere"), encoding="utf-8")

    code, out = _run(capsys, records, "apply")
    assert code == 0
    body = _json(out)
    assert body["message"] == "applied"
    assert [c["field"] for c in body["payload"]["preview"]["changes"]] == ["goal"]

    code, out = _run(capsys, records, "apply")
    assert _json(out)["message"] == "nothing to apply"


def test_render_prints_panel(capsys, records):
    _init(capsys, records)
    code, out = _run(capsys, records, "render")
    assert code == 0
    assert "# Task: Panel sync" in out
    assert "## Plans & Steps" in out


def test_status_errors_are_structured(capsys, records):
    _init(capsys, records)
    code, out = _run(capsys, records, "status", "plan-missing", "done")
    assert code == 1
    body = _json(out)
    assert body["status"] == "ERROR"
    assert body["payload"]["code"] == "node_not_found"


def test_validation_error_is_reported(capsys, records):
    _init(capsys, records)
    code, out = _run(capsys, records, "show", "--record", "../evil")
    assert code == 1
    assert _json(out)["payload"]["error"] == "ValidationError"


def test_log_and_audit(capsys, records):
    _init(capsys, records)
    code, _ = _run(capsys, records, "log", "Investigated", "--level", "WARNING")
    assert code == 0
    panel = records / "REC-1.md"
    panel.write_text(panel.read_text(encoding="utf-8").replace("Consistency", "Changed"), encoding="utf-8")
    _run(capsys, records, "apply")

    code, out = _run(capsys, records, "audit")
    assert code == 0
    events = [e["event_type"] for e in _json(out)["payload"]["entries"]]
    assert events == ["sync"]


def test_table_format(capsys, records):
    _init(capsys, records)
    code, out = _run(capsys, records, "--format", "table", "preview")
    assert code == 0
    assert "in sync" in out


def test_help_command(capsys, records):
    code, out = _run(capsys, records, "help")
    assert code == 0
    assert "Checklist markers" in out
