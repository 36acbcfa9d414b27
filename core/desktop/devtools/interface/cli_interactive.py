"""Interactive confirmation of pending status changes."""

import sys
from typing import Iterable, List

from prompt_toolkit.shortcuts import confirm as pt_confirm

from core import StatusChange


def is_interactive() -> bool:
    """Check that both stdin and stdout are TTYs."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def confirm(question: str) -> bool:
    """Yes/No confirmation; aborting (Ctrl-C / Ctrl-D) counts as no."""
    try:
        return bool(pt_confirm(question))
    except (EOFError, KeyboardInterrupt):
        print()
        return False


def describe_status_change(change: StatusChange) -> str:
    return f"{change.target} {change.node_id}: {change.old_status} -> {change.new_status}"


def select_pending(changes: Iterable[StatusChange]) -> List[StatusChange]:
    """Ask about each pending change; returns the accepted ones."""
    return [change for change in changes if confirm(f"Apply {describe_status_change(change)}?")]


__all__ = ["is_interactive", "confirm", "describe_status_change", "select_pending"]
