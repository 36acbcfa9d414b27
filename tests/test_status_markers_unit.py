import pytest

from core.status import (
    MARKER_TO_EVR_STATUS,
    MARKER_TO_STATUS,
    EvrStatus,
    Status,
    evr_status_from_marker,
    marker_for_evr_status,
    marker_for_status,
    normalize_status_code,
    status_from_marker,
)


@pytest.mark.parametrize(
    "marker,expected",
    [
        (" ", Status.TODO),
        ("-", Status.IN_PROGRESS),
        ("~", Status.IN_PROGRESS),
        ("/", Status.IN_PROGRESS),
        ("x", Status.COMPLETED),
        ("X", Status.COMPLETED),
        ("✓", Status.COMPLETED),
        ("!", Status.BLOCKED),
        ("✗", Status.BLOCKED),
    ],
)
def test_plan_step_markers(marker, expected):
    assert status_from_marker(marker) is expected


@pytest.mark.parametrize("marker", ["", "?", "xx", "done", "  ", "o"])
def test_unknown_markers_are_malformed(marker):
    assert status_from_marker(marker) is None


@pytest.mark.parametrize(
    "marker,expected",
    [(" ", EvrStatus.UNKNOWN), ("x", EvrStatus.PASS), ("!", EvrStatus.FAIL), ("-", EvrStatus.SKIP)],
)
def test_evr_markers(marker, expected):
    assert evr_status_from_marker(marker) is expected


def test_evr_marker_table_rejects_plan_only_markers():
    assert evr_status_from_marker("✓") is None
    assert evr_status_from_marker("/") is None


def test_canonical_marker_roundtrips_for_every_status():
    for status in Status:
        assert status_from_marker(status.marker[1:-1]) is status
        assert marker_for_status(status.code) == status.marker
    for status in EvrStatus:
        assert evr_status_from_marker(status.marker[1:-1]) is status
        assert marker_for_evr_status(status.code) == status.marker


def test_marker_tables_only_map_to_known_statuses():
    assert set(MARKER_TO_STATUS.values()) == set(Status)
    assert set(MARKER_TO_EVR_STATUS.values()) == set(EvrStatus)


@pytest.mark.parametrize(
    "raw,code",
    [
        ("todo", "to_do"),
        ("TO DO", "to_do"),
        ("in-progress", "in_progress"),
        ("active", "in_progress"),
        ("done", "completed"),
        ("Blocked", "blocked"),
    ],
)
def test_normalize_status_code_aliases(raw, code):
    assert normalize_status_code(raw) == code


def test_normalize_status_code_rejects_unknown():
    with pytest.raises(ValueError):
        normalize_status_code("finished-ish")


def test_evr_status_aliases_and_fallback():
    assert EvrStatus.from_string("passed") is EvrStatus.PASS
    assert EvrStatus.from_string("FAILING") is EvrStatus.FAIL
    assert EvrStatus.from_string("whatever") is EvrStatus.UNKNOWN
