"""Interface-level constants for the panel_sync CLI."""

STATUS_CHOICES = ["to_do", "in_progress", "completed", "blocked", "todo", "active", "done"]
EVR_STATUS_CHOICES = ["unknown", "pass", "fail", "skip"]
FORMAT_CHOICES = ["json", "table"]
LOG_LEVEL_CHOICES = ["INFO", "WARNING", "ERROR", "TEACH", "SILENT"]

PANEL_HELP = """panel_sync: keep a task record and its markdown panel consistent

1) The record (<records_dir>/<id>.yaml) is authoritative; the panel (<id>.md) is for humans.
2) Edit titles, goals, descriptions, requirements, hints and EVR text directly in the panel;
   the next command that touches the record picks them up (`preview` shows them first).
3) Checklist markers ([ ] [-] [x] [!]) in the panel are requests, not changes: confirm them with
   `panel_sync confirm` or set them with `panel_sync status NODE STATUS`.
4) The Logs section is append-only; add entries with `panel_sync log`.
5) .last remembers the active record; '.' or an omitted --record refers to it.
"""
