"""CLI parser construction for panel_sync."""

import argparse
from typing import Any

from core.desktop.devtools.interface.constants import (
    EVR_STATUS_CHOICES,
    FORMAT_CHOICES,
    LOG_LEVEL_CHOICES,
    STATUS_CHOICES,
)


def build_parser(commands: Any) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="panel_sync",
        description="panel_sync: task record <-> markdown panel reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--records-dir", dest="records_dir", help="directory holding <id>.yaml/<id>.md (PANEL_SYNC_RECORDS_DIR)")
    parser.add_argument("--format", choices=FORMAT_CHOICES, default="json", help="output format")
    parser.add_argument("--verbose", "-v", action="store_true", help="log sync activity to stderr")

    def add_record_arg(sp):
        sp.add_argument("--record", "-r", dest="record_id", help="record id ('.' or omitted = last used)")
        sp.add_argument("--panel", dest="panel", help="panel document path (default <records_dir>/<id>.md)")
        return sp

    sub = parser.add_subparsers(dest="command", help="Commands")

    ip = sub.add_parser("init", help="Create a record and render its panel")
    ip.add_argument("record_id")
    ip.add_argument("title")
    ip.add_argument("--goal", default="")
    ip.add_argument("--reference", action="append", dest="references", default=[])
    ip.add_argument("--requirement", action="append", dest="requirements", default=[])
    ip.add_argument("--hint", action="append", dest="hints", default=[])
    ip.add_argument("--panel", dest="panel", help="panel document path")
    ip.set_defaults(func=commands.cmd_init)

    rp = add_record_arg(sub.add_parser("render", help="Print the rendered panel (or rewrite it with --write)"))
    rp.add_argument("--write", action="store_true", help="reconcile, then rewrite the panel file")
    rp.set_defaults(func=commands.cmd_render)

    sp = add_record_arg(sub.add_parser("show", help="Show the record plus pending panel edits"))
    sp.set_defaults(func=commands.cmd_show)

    pp = add_record_arg(sub.add_parser("preview", help="Dry run: list panel edits, conflicts and pending statuses"))
    pp.set_defaults(func=commands.cmd_preview)

    ap = add_record_arg(sub.add_parser("apply", help="Apply panel content edits to the record"))
    ap.set_defaults(func=commands.cmd_apply)

    mp = add_record_arg(sub.add_parser("modify", help="Change record text fields"))
    mp.add_argument("--title")
    mp.add_argument("--goal")
    mp.add_argument("--node", dest="node_id", help="plan/step/EVR id whose description (EVR: title) changes")
    mp.add_argument("--description")
    mp.add_argument("--reference", action="append", dest="references")
    mp.add_argument("--requirement", action="append", dest="requirements")
    mp.add_argument("--issue", action="append", dest="issues")
    mp.add_argument("--hint", action="append", dest="hints")
    mp.set_defaults(func=commands.cmd_modify)

    plp = add_record_arg(sub.add_parser("plan", help="Add a plan"))
    plp.add_argument("description")
    plp.add_argument("--step", action="append", dest="steps", default=[])
    plp.add_argument("--hint", action="append", dest="hints", default=[])
    plp.set_defaults(func=commands.cmd_add_plan)

    stp = add_record_arg(sub.add_parser("step", help="Add a step to a plan"))
    stp.add_argument("plan_id")
    stp.add_argument("description")
    stp.add_argument("--uses-evr", action="append", dest="uses_evr", default=[])
    stp.set_defaults(func=commands.cmd_add_step)

    ep = add_record_arg(sub.add_parser("evr", help="Add an expected visible result"))
    ep.add_argument("title")
    ep.add_argument("--verify", action="append", default=[])
    ep.add_argument("--expect", action="append", default=[])
    ep.add_argument("--class", dest="evr_class", choices=["static", "runtime"], default="runtime")
    ep.add_argument("--plan", dest="bind_to", help="plan id that gets an [evr] tag")
    ep.set_defaults(func=commands.cmd_add_evr)

    up = add_record_arg(
        sub.add_parser(
            "status",
            help="Set plan/step/EVR status",
            description=(
                "Plans/steps: " + "/".join(STATUS_CHOICES) + "\n"
                "EVRs: " + "/".join(EVR_STATUS_CHOICES) + "\n"
                "This is the only way a status changes; panel markers only request it."
            ),
        )
    )
    up.add_argument("node_id")
    up.add_argument("status")
    up.add_argument("--evidence", default="")
    up.add_argument("--notes", default="")
    up.set_defaults(func=commands.cmd_status)

    cp = add_record_arg(sub.add_parser("confirm", help="Confirm status changes requested via panel markers"))
    cp.add_argument("--node", dest="node_id")
    cp.add_argument("--reject", action="store_true", help="drop the requests and reset the markers")
    cp.add_argument("--yes", "-y", action="store_true", help="do not ask interactively")
    cp.set_defaults(func=commands.cmd_confirm)

    dp = add_record_arg(sub.add_parser("complete", help="Mark the record completed"))
    dp.add_argument("--force", action="store_true")
    dp.set_defaults(func=commands.cmd_complete)

    lp = add_record_arg(sub.add_parser("log", help="Append a log entry"))
    lp.add_argument("message")
    lp.add_argument("--level", choices=LOG_LEVEL_CHOICES, default="INFO")
    lp.add_argument("--category", default="TASK")
    lp.add_argument("--action", default="NOTE")
    lp.set_defaults(func=commands.cmd_log)

    aup = add_record_arg(sub.add_parser("audit", help="Show the audit trail"))
    aup.set_defaults(func=commands.cmd_audit)

    cfg = sub.add_parser("config", help="Show settings; --records-dir persists a default directory")
    cfg.add_argument("--set-records-dir", dest="set_records_dir")
    cfg.set_defaults(func=commands.cmd_config)

    sub.add_parser("help", help="Usage rules")
    return parser
