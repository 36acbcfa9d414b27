from enum import Enum
from typing import Dict, Final, Literal, Optional


class Status(Enum):
    TODO = ("to_do", " ", "○")
    IN_PROGRESS = ("in_progress", "-", "●")
    COMPLETED = ("completed", "x", "✓")
    BLOCKED = ("blocked", "!", "✗")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def marker(self) -> str:
        """Canonical checklist marker, including brackets."""
        return f"[{self.value[1]}]"

    @property
    def icon(self) -> str:
        return self.value[2]

    @classmethod
    def from_string(cls, value: str) -> "Status":
        code = normalize_status_code(value)
        for status in cls:
            if status.code == code:
                return status
        raise ValueError(f"Invalid status: {value!r}")


class EvrStatus(Enum):
    UNKNOWN = ("unknown", " ")
    PASS = ("pass", "x")
    FAIL = ("fail", "!")
    SKIP = ("skip", "-")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def marker(self) -> str:
        return f"[{self.value[1]}]"

    @classmethod
    def from_string(cls, value: str) -> "EvrStatus":
        token = (value or "").strip().lower()
        token = _EVR_STATUS_ALIASES.get(token, token)
        for status in cls:
            if status.code == token:
                return status
        return cls.UNKNOWN


StatusCode = Literal["to_do", "in_progress", "completed", "blocked"]

_CANONICAL_CODES: Final[frozenset[str]] = frozenset({"to_do", "in_progress", "completed", "blocked"})

_STATUS_ALIASES: Final[Dict[str, str]] = {
    "todo": "to_do",
    "pending": "to_do",
    "active": "in_progress",
    "doing": "in_progress",
    "done": "completed",
    "complete": "completed",
}

_EVR_STATUS_ALIASES: Final[Dict[str, str]] = {
    "passing": "pass",
    "passed": "pass",
    "failing": "fail",
    "failed": "fail",
    "skipped": "skip",
}

# Marker grammar: the character between the brackets of a checklist line.
# The table is total over the accepted alphabet; anything else is malformed.
MARKER_TO_STATUS: Final[Dict[str, Status]] = {
    " ": Status.TODO,
    "　": Status.TODO,
    "-": Status.IN_PROGRESS,
    "~": Status.IN_PROGRESS,
    "/": Status.IN_PROGRESS,
    "\\": Status.IN_PROGRESS,
    "|": Status.IN_PROGRESS,
    "x": Status.COMPLETED,
    "X": Status.COMPLETED,
    "✓": Status.COMPLETED,
    "✔": Status.COMPLETED,
    "√": Status.COMPLETED,
    "!": Status.BLOCKED,
    "✗": Status.BLOCKED,
    "✘": Status.BLOCKED,
    "×": Status.BLOCKED,
}

MARKER_TO_EVR_STATUS: Final[Dict[str, EvrStatus]] = {
    " ": EvrStatus.UNKNOWN,
    "x": EvrStatus.PASS,
    "X": EvrStatus.PASS,
    "!": EvrStatus.FAIL,
    "-": EvrStatus.SKIP,
    "~": EvrStatus.SKIP,
}


def normalize_status_code(value: str) -> str:
    """Normalize status input to the canonical code (to_do/in_progress/completed/blocked).

    Raises ValueError for unknown tokens.
    """
    token = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    token = _STATUS_ALIASES.get(token, token)
    if token in _CANONICAL_CODES:
        return token
    raise ValueError(f"Invalid status: {value!r}")


def status_from_marker(marker: str) -> Optional[Status]:
    """Map the inner marker character to a Status; None when the marker is malformed."""
    return MARKER_TO_STATUS.get(marker)


def evr_status_from_marker(marker: str) -> Optional[EvrStatus]:
    return MARKER_TO_EVR_STATUS.get(marker)


def marker_for_status(code: str) -> str:
    return Status.from_string(code).marker


def marker_for_evr_status(code: str) -> str:
    return EvrStatus.from_string(code).marker


__all__ = [
    "Status",
    "EvrStatus",
    "StatusCode",
    "MARKER_TO_STATUS",
    "MARKER_TO_EVR_STATUS",
    "normalize_status_code",
    "status_from_marker",
    "evr_status_from_marker",
    "marker_for_status",
    "marker_for_evr_status",
]
