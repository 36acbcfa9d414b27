"""Error taxonomy for panel reconciliation.

Parse warnings are values, not exceptions: the parser collects them and
reconciliation continues. Storage and validation failures abort the current
reconciliation before anything is written.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


# Parse warning codes
WARN_MALFORMED_MARKER = "malformed_marker"
WARN_MISSING_ANCHOR = "missing_anchor"
WARN_DUPLICATE_ANCHOR = "duplicate_anchor"
WARN_UNRESOLVED_ANCHOR = "unresolved_anchor"
WARN_MISSING_SECTION = "missing_section"
WARN_MISSING_NODE = "missing_node"
WARN_UNKNOWN_SECTION = "unknown_section"
WARN_ORPHAN_LINE = "orphan_line"
WARN_LOGS_EDITED = "logs_edited"
WARN_BAD_FRONT_MATTER = "bad_front_matter"
WARN_DOCUMENT_MISSING = "document_missing"


@dataclass(frozen=True)
class ParseWarning:
    """A document line or section that could not be matched; skipped, never fatal."""

    code: str
    message: str
    line: Optional[int] = None
    section: str = ""

    def __str__(self) -> str:
        where = f" (line {self.line})" if self.line else ""
        return f"{self.code}{where}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "line": self.line, "section": self.section}


class PanelSyncError(Exception):
    """Base class for errors that abort a reconciliation."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self), **self.context}


class StorageError(PanelSyncError):
    """I/O failure reading or writing a record or a panel document."""


class ValidationError(PanelSyncError):
    """Record or binding violates a structural invariant; nothing was written."""


__all__ = [
    "ParseWarning",
    "PanelSyncError",
    "StorageError",
    "ValidationError",
    "WARN_MALFORMED_MARKER",
    "WARN_MISSING_ANCHOR",
    "WARN_DUPLICATE_ANCHOR",
    "WARN_UNRESOLVED_ANCHOR",
    "WARN_MISSING_SECTION",
    "WARN_MISSING_NODE",
    "WARN_UNKNOWN_SECTION",
    "WARN_ORPHAN_LINE",
    "WARN_LOGS_EDITED",
    "WARN_BAD_FRONT_MATTER",
    "WARN_DOCUMENT_MISSING",
]
