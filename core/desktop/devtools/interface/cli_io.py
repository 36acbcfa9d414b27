import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from wcwidth import wcwidth


def iso_timestamp() -> str:
    """UTC timestamp for structured CLI output."""
    return datetime.now(timezone.utc).isoformat()


def structured_response(
    command: str,
    *,
    status: str = "OK",
    message: str = "",
    payload: Optional[Dict] = None,
    summary: Optional[str] = None,
    exit_code: int = 0,
) -> int:
    """Unified JSON response for non-interactive commands."""
    body: Dict[str, object] = {
        "command": command,
        "status": status,
        "message": message,
        "timestamp": iso_timestamp(),
        "payload": payload or {},
    }
    if summary:
        body["summary"] = summary
    print(json.dumps(body, ensure_ascii=False, indent=2, default=str))
    return exit_code


def structured_error(command: str, message: str, *, payload: Optional[Dict] = None, status: str = "ERROR") -> int:
    """Short-hand for structured error responses."""
    return structured_response(command, status=status, message=message, payload=payload, exit_code=1)


def display_width(text: str) -> int:
    """Printable width of text, counting wide (CJK, emoji) characters as two columns."""
    width = 0
    for ch in (text or "").expandtabs(4):
        w = wcwidth(ch)
        width += max(0, w or 0)
    return width


def trim_display(text: str, width: int) -> str:
    acc = []
    used = 0
    for ch in (text or "").expandtabs(4):
        w = max(0, wcwidth(ch) or 0)
        if used + w > width:
            break
        acc.append(ch)
        used += w
    return "".join(acc)


def pad_display(text: str, width: int) -> str:
    """Trim and right-pad to exactly ``width`` visible columns."""
    trimmed = trim_display(text, width)
    return trimmed + " " * max(0, width - display_width(trimmed))


def render_table(headers: Sequence[str], rows: List[Sequence[str]], max_width: int = 60) -> str:
    widths = [display_width(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = min(max_width, max(widths[idx], display_width(str(cell))))
    sep = "  "
    lines = [sep.join(pad_display(h, widths[i]) for i, h in enumerate(headers)).rstrip()]
    lines.append(sep.join("-" * w for w in widths))
    for row in rows:
        lines.append(sep.join(pad_display(str(cell), widths[i]) for i, cell in enumerate(row)).rstrip())
    return "\n".join(lines)


__all__ = [
    "iso_timestamp",
    "structured_response",
    "structured_error",
    "display_width",
    "trim_display",
    "pad_display",
    "render_table",
]
