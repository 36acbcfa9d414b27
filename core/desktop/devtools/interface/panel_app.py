#!/usr/bin/env python3
"""
panel_sync: CLI over the record manager and the sync orchestrator.

Records live under <records_dir>/<id>.yaml, panels next to them as <id>.md.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config import SyncSettings, get_user_records_dir, load_settings, set_user_records_dir
from core import PanelSyncError, SyncPreview, TaskRecord
from core.plan import iter_nodes
from core.desktop.devtools.application.context import resolve_record_reference, save_last_record
from core.desktop.devtools.application.record_manager import MutationResult, RecordManager
from core.desktop.devtools.application.sync_orchestrator import SyncOrchestrator
from core.desktop.devtools.interface.cli_interactive import is_interactive, select_pending
from core.desktop.devtools.interface.cli_io import render_table, structured_error, structured_response
from core.desktop.devtools.interface.cli_parser import build_parser as build_cli_parser
from core.desktop.devtools.interface.constants import PANEL_HELP
from infrastructure.audit_log import JsonlAuditLog, MemoryAuditLog
from infrastructure.file_repository import FileRecordRepository
from infrastructure.panel_renderer import PanelRenderer


@dataclass
class Services:
    settings: SyncSettings
    repository: FileRecordRepository
    audit: Any
    orchestrator: SyncOrchestrator
    manager: RecordManager


def build_services(args: argparse.Namespace) -> Services:
    settings = load_settings()
    if getattr(args, "records_dir", None):
        settings = settings.with_records_dir(Path(args.records_dir))
    repository = FileRecordRepository(settings.records_dir)
    audit = JsonlAuditLog(settings.records_dir) if settings.audit else MemoryAuditLog()
    orchestrator = SyncOrchestrator(repository, audit, settings)
    return Services(settings, repository, audit, orchestrator, RecordManager(repository, orchestrator, audit))


def _resolve(args: argparse.Namespace) -> Tuple[str, Optional[Path]]:
    record_id, last_panel = resolve_record_reference(getattr(args, "record_id", None))
    panel = Path(args.panel) if getattr(args, "panel", None) else last_panel
    return record_id, panel


def _record_payload(record: TaskRecord) -> Dict[str, Any]:
    data = record.to_dict()
    data.pop("fingerprints", None)
    return data


def _node_rows(record: TaskRecord) -> List[List[str]]:
    rows = [[kind, node.id, node.status, node.description] for kind, node in iter_nodes(record.plans)]
    rows += [["evr", evr.id, evr.status, evr.title] for evr in record.expected_results]
    return rows


def _preview_rows(preview: SyncPreview) -> List[List[str]]:
    rows: List[List[str]] = []
    for change in preview.changes:
        if change.kind == "content":
            rows.append(["content", change.key, str(change.old_value), str(change.new_value)])
        else:
            rows.append(["status", f"{change.target}:{change.node_id}", change.old_status, change.new_status])
    for conflict in preview.conflicts:
        rows.append([f"conflict/{conflict.resolution}", f"{conflict.section_id}/{conflict.field}", str(conflict.ours), str(conflict.theirs)])
    for change in preview.pending_status:
        if change not in preview.changes:
            rows.append(["pending", f"{change.target}:{change.node_id}", change.old_status, change.new_status])
    for warning in preview.warnings:
        rows.append(["warning", warning.code, str(warning.line or ""), warning.message])
    return rows


def _print_preview_table(preview: SyncPreview) -> None:
    rows = _preview_rows(preview)
    if rows:
        print(render_table(["kind", "target", "old", "new"], rows))
    else:
        print("panel and record are in sync")


def _mutation_response(command: str, args: argparse.Namespace, outcome: MutationResult, panel: Optional[Path]) -> int:
    ok, error, result = outcome
    if not ok:
        return structured_error(command, error["message"], payload={"code": error["code"]})
    save_last_record(result.record.id, panel)
    if args.format == "table":
        _print_preview_table(result.preview)
        print(render_table(["kind", "id", "status", "text"], _node_rows(result.record)))
        return 0
    return structured_response(
        command,
        message=f"{result.record.id} @ {result.record.version_tag}",
        payload={"record": _record_payload(result.record), "sync": result.to_dict()},
    )


def cmd_init(args: argparse.Namespace) -> int:
    services = build_services(args)
    panel = Path(args.panel) if args.panel else None
    ok, error, record = services.manager.init(
        args.record_id,
        args.title,
        goal=args.goal,
        references=args.references,
        requirements=args.requirements,
        hints=args.hints,
        document_path=panel,
    )
    if not ok:
        return structured_error("init", error["message"], payload={"code": error["code"]})
    save_last_record(record.id, panel)
    return structured_response(
        "init",
        message=f"created {record.id}",
        payload={"record": _record_payload(record), "panel": str(panel or services.repository.document_path(record.id))},
    )


def cmd_render(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    if args.write:
        with services.manager.session(record_id, panel) as ctx:
            outcome = services.manager.rerender(record_id, ctx)
        return _mutation_response("render", args, outcome, panel)
    record = services.repository.load_record(record_id)
    if record is None:
        return structured_error("render", f"record {record_id} not found")
    sys.stdout.write(PanelRenderer.render(record, front_matter=services.settings.front_matter))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        record, preview = services.manager.read(record_id, ctx)
    if record is None:
        return structured_error("show", f"record {record_id} not found")
    save_last_record(record_id, panel)
    if args.format == "table":
        print(f"{record.id}: {record.title} (revision {record.revision})")
        print(render_table(["kind", "id", "status", "text"], _node_rows(record)))
        if not preview.is_clean or preview.warnings:
            print()
            _print_preview_table(preview)
        return 0
    return structured_response("show", payload={"record": _record_payload(record), "preview": preview.to_dict()})


def cmd_preview(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        record, preview = services.manager.read(record_id, ctx)
    if record is None:
        return structured_error("preview", f"record {record_id} not found")
    if args.format == "table":
        _print_preview_table(preview)
        return 0
    summary = f"{len(preview.changes)} change(s), {len(preview.conflicts)} conflict(s), {len(preview.pending_status)} pending"
    return structured_response("preview", payload=preview.to_dict(), summary=summary)


def cmd_apply(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    record = services.repository.load_record(record_id)
    if record is None:
        return structured_error("apply", f"record {record_id} not found")
    with services.orchestrator.chain(record_id, panel) as ctx:
        result = services.orchestrator.reconcile_and_apply(ctx, record)
    if args.format == "table":
        _print_preview_table(result.preview)
        return 0
    message = "applied" if result.written else "nothing to apply"
    return structured_response("apply", message=message, payload=result.to_dict())


def cmd_modify(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    lists = {
        name: getattr(args, name)
        for name in ("references", "requirements", "issues", "hints")
        if getattr(args, name) is not None
    }
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.modify(
            record_id, title=args.title, goal=args.goal, node_id=args.node_id, description=args.description, ctx=ctx, **lists
        )
    return _mutation_response("modify", args, outcome, panel)


def cmd_add_plan(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.add_plan(record_id, args.description, steps=args.steps, hints=args.hints, ctx=ctx)
    return _mutation_response("plan", args, outcome, panel)


def cmd_add_step(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.add_step(record_id, args.plan_id, args.description, uses_evr=args.uses_evr, ctx=ctx)
    return _mutation_response("step", args, outcome, panel)


def cmd_add_evr(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.add_evr(
            record_id,
            args.title,
            verify=args.verify,
            expect=args.expect,
            evr_class=args.evr_class,
            bind_to=args.bind_to,
            ctx=ctx,
        )
    return _mutation_response("evr", args, outcome, panel)


def cmd_status(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.update_status(
            record_id, args.node_id, args.status, evidence=args.evidence, notes=args.notes, ctx=ctx
        )
    return _mutation_response("status", args, outcome, panel)


def cmd_confirm(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        record, preview = services.manager.read(record_id, ctx)
        if record is None:
            return structured_error("confirm", f"record {record_id} not found")
        pending = [c for c in preview.pending_status if args.node_id is None or c.node_id == args.node_id]
        if not pending:
            return structured_error("confirm", "no pending status change", payload={"code": "nothing_pending"})
        if args.reject:
            outcome = services.manager.confirm_pending_status(record_id, args.node_id, accept=False, ctx=ctx)
            return _mutation_response("confirm", args, outcome, panel)
        if not args.yes:
            if not is_interactive():
                return structured_error(
                    "confirm",
                    "confirmation required: pass --yes or run in a terminal",
                    payload={"pending": [c.to_dict() for c in pending]},
                )
            pending = select_pending(pending)
            if not pending:
                return structured_response("confirm", message="nothing confirmed")
        for change in pending:
            outcome = services.manager.confirm_pending_status(record_id, change.node_id, accept=True, ctx=ctx)
            if not outcome[0]:
                break
    return _mutation_response("confirm", args, outcome, panel)


def cmd_complete(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.complete(record_id, force=args.force, ctx=ctx)
    return _mutation_response("complete", args, outcome, panel)


def cmd_log(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, panel = _resolve(args)
    with services.manager.session(record_id, panel) as ctx:
        outcome = services.manager.add_log(
            record_id, args.message, level=args.level, category=args.category, action=args.action, ctx=ctx
        )
    return _mutation_response("log", args, outcome, panel)


def cmd_audit(args: argparse.Namespace) -> int:
    services = build_services(args)
    record_id, _ = _resolve(args)
    entries = services.audit.read(record_id)
    if args.format == "table":
        for entry in entries:
            print(entry.format())
        return 0
    return structured_response("audit", payload={"record_id": record_id, "entries": [e.to_dict() for e in entries]})


def cmd_config(args: argparse.Namespace) -> int:
    if args.set_records_dir is not None:
        set_user_records_dir(args.set_records_dir)
    settings = build_services(args).settings
    return structured_response(
        "config",
        payload={
            "records_dir": str(settings.records_dir),
            "user_records_dir": get_user_records_dir(),
            "conflict_strategy": settings.conflict_strategy,
            "request_cache": settings.request_cache,
            "audit": settings.audit,
            "front_matter": settings.front_matter,
        },
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    return build_cli_parser(commands=sys.modules[__name__])


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "verbose", False):
        logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")
    if not getattr(args, "command", None):
        parser.print_help()
        return 1
    if args.command == "help":
        parser.print_help()
        print()
        print(PANEL_HELP.strip())
        return 0
    try:
        return args.func(args)
    except PanelSyncError as exc:
        return structured_error(args.command, str(exc), payload=exc.to_dict())


if __name__ == "__main__":
    sys.exit(main())
