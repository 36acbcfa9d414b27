from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional


LEVEL_INFO = "INFO"
LEVEL_WARNING = "WARNING"
LEVEL_ERROR = "ERROR"
LEVEL_TEACH = "TEACH"
LEVEL_SILENT = "SILENT"

_LEVEL_ALIASES = {
    "WARN": LEVEL_WARNING,
    "ERR": LEVEL_ERROR,
}
_LEVELS = frozenset({LEVEL_INFO, LEVEL_WARNING, LEVEL_ERROR, LEVEL_TEACH, LEVEL_SILENT})


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def coerce_timestamp(value: Any) -> Optional[str]:
    """Normalize YAML timestamps to an ISO string (YAML may load them as datetime)."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raw = str(value).strip()
    return raw or None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp to an aware UTC datetime; None when unparsable."""
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_level(value: str) -> str:
    token = (value or "").strip().upper()
    token = _LEVEL_ALIASES.get(token, token)
    return token if token in _LEVELS else LEVEL_INFO


@dataclass
class LogEntry:
    timestamp: str
    message: str
    level: str = LEVEL_INFO
    category: str = "TASK"
    action: str = "HANDLE"
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.level = normalize_level(self.level)
        self.category = (self.category or "TASK").strip().upper()
        self.action = (self.action or "HANDLE").strip().upper()

    @classmethod
    def now(cls, message: str, *, level: str = LEVEL_INFO, category: str = "TASK", action: str = "HANDLE", **details: Any) -> "LogEntry":
        return cls(timestamp=now_iso(), message=message, level=level, category=category, action=action, details=details)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level,
            "category": self.category,
            "action": self.action,
            "message": self.message,
        }
        if self.details:
            data["details"] = dict(self.details)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=coerce_timestamp(data.get("timestamp")) or "",
            message=str(data.get("message", "") or ""),
            level=str(data.get("level", LEVEL_INFO) or LEVEL_INFO),
            category=str(data.get("category", "TASK") or "TASK"),
            action=str(data.get("action", "HANDLE") or "HANDLE"),
            details=dict(data.get("details") or {}),
        )
