from pathlib import Path

from core import errors
from infrastructure.panel_parser import PanelParser, parse_panel


PANEL = """---
record_id: REC-1
version_tag: abc123
updated_at: '2026-01-01T00:00:00+00:00'
---
# Task: Panel sync

Task ID: REC-1

## Goal

Keep both sides consistent

## Plans & Steps

1. [x] Build it <!-- plan:p-1 -->
  > keep it small
  1.1 [ ] Write parser <!-- step:s-1 -->
    - [uses_evr] e-1
2. [-] Ship it <!-- plan:p-2 -->

## Expected Visible Results

1. [ ] Parser passes <!-- evr:e-1 -->
  - [verify] pytest -q
  - [verify] ruff check
  - [class] static
"""


def _codes(panel):
    return [w.code for w in panel.warnings]


def test_parse_full_panel():
    panel = PanelParser.parse(PANEL)

    assert panel.warnings == []
    assert panel.metadata.record_id == "REC-1"
    assert panel.metadata.version_tag == "abc123"
    assert panel.metadata.updated_at == "2026-01-01T00:00:00+00:00"
    assert panel.title == "Panel sync"
    assert panel.goal == "Keep both sides consistent"
    assert [(p.id, p.status) for p in panel.plans] == [("p-1", "completed"), ("p-2", "in_progress")]
    assert panel.plans[0].hints == ["keep it small"]
    assert panel.plans[0].steps[0].id == "s-1"
    assert panel.plans[0].steps[0].uses_evr == ["e-1"]
    evr = panel.expected_results[0]
    assert evr.verify == ["pytest -q", "ruff check"]
    assert evr.evr_class == "static"
    assert "title" in panel.sections and "plans" in panel.sections


def test_malformed_marker_is_skipped_with_warning():
    panel = parse_panel(PANEL.replace("2. [-] Ship it", "2. [?] Ship it"))
    assert [p.id for p in panel.plans] == ["p-1"]
    assert _codes(panel) == [errors.WARN_MALFORMED_MARKER]
    assert panel.warnings[0].line is not None


def test_line_without_anchor_is_skipped():
    panel = parse_panel(PANEL.replace(" <!-- plan:p-2 -->", ""))
    assert [p.id for p in panel.plans] == ["p-1"]
    assert _codes(panel) == [errors.WARN_MISSING_ANCHOR]


def test_anchor_of_wrong_kind_is_unresolved():
    panel = parse_panel(PANEL.replace("<!-- plan:p-2 -->", "<!-- evr:p-2 -->"))
    assert errors.WARN_UNRESOLVED_ANCHOR in _codes(panel)
    assert [p.id for p in panel.plans] == ["p-1"]


def test_duplicate_anchor_drops_every_copy():
    panel = parse_panel(PANEL.replace("<!-- plan:p-2 -->", "<!-- plan:p-1 -->"))
    assert panel.plans == []
    assert errors.WARN_DUPLICATE_ANCHOR in _codes(panel)


def test_rejected_node_does_not_leak_details_into_previous_node():
    text = PANEL.replace("1. [x] Build it <!-- plan:p-1 -->", "1. [x] Build it")
    panel = parse_panel(text)
    # Step s-1 has no enclosing plan once p-1 is dropped.
    assert [p.id for p in panel.plans] == ["p-2"]
    assert panel.plans[0].hints == []
    assert errors.WARN_ORPHAN_LINE in _codes(panel)


def test_missing_title_is_reported_not_fatal():
    panel = parse_panel(PANEL.replace("# Task: Panel sync\n", ""))
    assert panel.title == ""
    assert "title" not in panel.sections
    assert errors.WARN_MISSING_SECTION in _codes(panel)
    assert [p.id for p in panel.plans] == ["p-1", "p-2"]


def test_unknown_section_is_ignored():
    panel = parse_panel(PANEL + "\n## Random notes\n\nwhatever\n")
    assert errors.WARN_UNKNOWN_SECTION in _codes(panel)
    assert len(panel.expected_results) == 1


def test_bad_front_matter_is_a_warning():
    panel = parse_panel("---\n: [unbalanced\n---\n# Task: X\n")
    assert errors.WARN_BAD_FRONT_MATTER in _codes(panel)
    assert panel.title == "X"


def test_unclosed_front_matter():
    panel = parse_panel("---\nrecord_id: R\n# Task: X\n")
    assert errors.WARN_BAD_FRONT_MATTER in _codes(panel)


def test_panel_without_front_matter_uses_task_id_line():
    panel = parse_panel("# Task: Plain\n\nTask ID: REC-9\n\n## Plans & Steps\n")
    assert panel.record_id == "REC-9"
    assert panel.metadata.version_tag == ""


def test_parse_file_missing(tmp_path: Path):
    assert PanelParser.parse_file(tmp_path / "missing.md") is None
    path = tmp_path / "REC-1.md"
    path.write_text(PANEL, encoding="utf-8")
    assert PanelParser.parse_file(path).title == "Panel sync"
