"""Application-level record service (caller-side operations on a TaskRecord).

Every mutating operation follows the same sequence inside one sync chain:
reconcile panel edits first, then mutate, then commit (save + re-render).
Status is only ever changed here, never by reconciliation.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from application.ports import RecordRepository
from application.sync_service import PanelSyncService
from core import ContextTag, EvrStatus, ExpectedResult, LogEntry, Plan, Step, SyncPreview, TaskRecord
from core.audit import AuditEntry
from core.desktop.devtools.application.sync_orchestrator import ApplyResult, SyncContext
from core.status import Status, normalize_status_code
from core.task_log import now_iso


logger = logging.getLogger("panel_sync.sync")

Error = Dict[str, str]
MutationResult = Tuple[bool, Optional[Error], Optional[ApplyResult]]

MODIFIABLE_LISTS = ("references", "requirements", "issues", "hints")


def _error(code: str, message: str) -> Error:
    return {"code": code, "message": message}


class RecordManager:
    def __init__(self, repository: RecordRepository, orchestrator: PanelSyncService, audit_sink: Any = None):
        self.repository = repository
        self.orchestrator = orchestrator
        self.audit_sink = audit_sink

    @contextmanager
    def session(self, record_id: str, document_path: Optional[Path] = None) -> Iterator[SyncContext]:
        """Share one sync chain (and its request cache) across several calls."""
        with self.orchestrator.chain(record_id, document_path) as ctx:
            yield ctx

    @contextmanager
    def _chain(self, record_id: str, ctx: Optional[SyncContext]) -> Iterator[SyncContext]:
        if ctx is not None:
            yield ctx
            return
        with self.orchestrator.chain(record_id) as fresh:
            yield fresh

    def load_record(self, record_id: str) -> Optional[TaskRecord]:
        return self.repository.load_record(record_id)

    # ------------------------------------------------------------------ reads

    def init(
        self,
        record_id: str,
        title: str,
        *,
        goal: str = "",
        references: Optional[List[str]] = None,
        requirements: Optional[List[str]] = None,
        hints: Optional[List[str]] = None,
        document_path: Optional[Path] = None,
    ) -> Tuple[bool, Optional[Error], Optional[TaskRecord]]:
        if not (title or "").strip():
            return False, _error("missing_title", "title is required"), None
        with self.orchestrator.record_lock(record_id):
            if self.repository.load_record(record_id) is not None:
                return False, _error("exists", f"record {record_id} already exists"), None
            record = self._new_record(record_id, title, goal, references, requirements, hints)
            with self.orchestrator.chain(record_id, document_path) as ctx:
                self.orchestrator.commit(ctx, record)
        logger.info("created record %s", record_id)
        return True, None, record

    @staticmethod
    def _new_record(
        record_id: str,
        title: str,
        goal: str,
        references: Optional[List[str]],
        requirements: Optional[List[str]],
        hints: Optional[List[str]],
    ) -> TaskRecord:
        record = TaskRecord(
            id=record_id,
            title=title.strip(),
            goal=goal.strip(),
            references=list(references or []),
            requirements=list(requirements or []),
            hints=list(hints or []),
        )
        record.logs.append(LogEntry.now("Record created", category="TASK", action="CREATE"))
        record.bump_version()
        return record

    def read(self, record_id: str, ctx: Optional[SyncContext] = None) -> Tuple[Optional[TaskRecord], Optional[SyncPreview]]:
        """Load the record and preview pending panel edits (dry run)."""
        with self.orchestrator.record_lock(record_id):
            record = self.repository.load_record(record_id)
            if record is None:
                return None, None
            with self._chain(record_id, ctx) as chain_ctx:
                preview = self.orchestrator.preview(chain_ctx, record)
        return record, preview

    # -------------------------------------------------------------- mutations

    def _mutate(
        self,
        record_id: str,
        mutate: Callable[[TaskRecord], Optional[Error]],
        ctx: Optional[SyncContext] = None,
        *,
        bump: bool = True,
    ) -> MutationResult:
        with self.orchestrator.record_lock(record_id):
            record = self.repository.load_record(record_id)
            if record is None:
                return False, _error("not_found", f"record {record_id} not found"), None
            with self._chain(record_id, ctx) as chain_ctx:
                result = self.orchestrator.reconcile_and_apply(chain_ctx, record)
                record = result.record
                # Marker requests must survive the re-render below.
                for change in result.preview.status_changes:
                    record.pending_status[change.node_id] = change.new_status
                error = mutate(record)
                if error:
                    return False, error, result
                if bump:
                    record.bump_version()
                self.orchestrator.commit(chain_ctx, record)
                result.record = record
        return True, None, result

    def modify(
        self,
        record_id: str,
        *,
        title: Optional[str] = None,
        goal: Optional[str] = None,
        node_id: Optional[str] = None,
        description: Optional[str] = None,
        ctx: Optional[SyncContext] = None,
        **lists: Optional[List[str]],
    ) -> MutationResult:
        """Change text fields: title, goal, list sections, or a node description/title."""
        unknown = [name for name in lists if name not in MODIFIABLE_LISTS]
        if unknown:
            return False, _error("invalid_field", f"cannot modify {', '.join(unknown)}"), None

        def mutate(record: TaskRecord) -> Optional[Error]:
            if title is not None:
                if not title.strip():
                    return _error("missing_title", "title cannot be empty")
                record.title = title.strip()
            if goal is not None:
                record.goal = goal.strip()
            for name, values in lists.items():
                if values is not None:
                    setattr(record, name, [v.strip() for v in values if v and v.strip()])
            if node_id is not None:
                node = record.find_node(node_id)
                if node is None:
                    return _error("node_not_found", f"{node_id} not found")
                if description is None:
                    return _error("missing_description", "description is required with a node id")
                if isinstance(node, ExpectedResult):
                    node.title = description.strip()
                else:
                    node.description = description.strip()
            return None

        return self._mutate(record_id, mutate, ctx)

    def add_plan(
        self, record_id: str, description: str, *, steps: Optional[List[str]] = None, hints: Optional[List[str]] = None,
        ctx: Optional[SyncContext] = None,
    ) -> MutationResult:
        if not (description or "").strip():
            return False, _error("missing_description", "plan description is required"), None

        def mutate(record: TaskRecord) -> Optional[Error]:
            created = now_iso()
            plan = Plan(description=description.strip(), hints=list(hints or []), created_at=created)
            plan.steps = [Step(description=s.strip(), created_at=created) for s in (steps or []) if s.strip()]
            record.plans.append(plan)
            return None

        return self._mutate(record_id, mutate, ctx)

    def add_step(
        self, record_id: str, plan_id: str, description: str, *, uses_evr: Optional[List[str]] = None,
        ctx: Optional[SyncContext] = None,
    ) -> MutationResult:
        if not (description or "").strip():
            return False, _error("missing_description", "step description is required"), None

        def mutate(record: TaskRecord) -> Optional[Error]:
            plan = record.find_plan(plan_id)
            if plan is None:
                return _error("node_not_found", f"plan {plan_id} not found")
            unknown = [e for e in (uses_evr or []) if record.find_evr(e) is None]
            if unknown:
                return _error("evr_not_found", f"unknown EVR: {', '.join(unknown)}")
            plan.steps.append(Step(description=description.strip(), uses_evr=list(uses_evr or []), created_at=now_iso()))
            return None

        return self._mutate(record_id, mutate, ctx)

    def add_evr(
        self,
        record_id: str,
        title: str,
        *,
        verify: Optional[List[str]] = None,
        expect: Optional[List[str]] = None,
        evr_class: str = "runtime",
        bind_to: Optional[str] = None,
        ctx: Optional[SyncContext] = None,
    ) -> MutationResult:
        """Add an expected result; ``bind_to`` (plan id) adds an [evr] tag to that plan."""
        if not (title or "").strip():
            return False, _error("missing_title", "EVR title is required"), None

        def mutate(record: TaskRecord) -> Optional[Error]:
            evr = ExpectedResult(title=title.strip(), verify=list(verify or []), expect=list(expect or []), evr_class=evr_class)
            if bind_to:
                plan = record.find_plan(bind_to)
                if plan is None:
                    return _error("node_not_found", f"plan {bind_to} not found")
                plan.context_tags.append(ContextTag(tag="evr", value=evr.id))
            record.expected_results.append(evr)
            return None

        return self._mutate(record_id, mutate, ctx)

    def update_status(
        self,
        record_id: str,
        node_id: str,
        status: str,
        *,
        evidence: str = "",
        notes: str = "",
        ctx: Optional[SyncContext] = None,
    ) -> MutationResult:
        """The only path that changes plan/step/EVR status."""

        def mutate(record: TaskRecord) -> Optional[Error]:
            return self._set_status(record, node_id, status, evidence=evidence, notes=notes)

        return self._mutate(record_id, mutate, ctx)

    @staticmethod
    def _set_status(record: TaskRecord, node_id: str, status: str, *, evidence: str = "", notes: str = "") -> Optional[Error]:
        node = record.find_node(node_id)
        if node is None:
            return _error("node_not_found", f"{node_id} not found")
        if isinstance(node, ExpectedResult):
            code = (status or "").strip().lower()
            if code not in {s.code for s in EvrStatus}:
                return _error("invalid_status", f"invalid EVR status {status!r}")
            node.status = code
            if code != EvrStatus.UNKNOWN.code:
                node.last_run = now_iso()
            if evidence:
                node.proof = evidence.strip()
        else:
            try:
                code = normalize_status_code(status)
            except ValueError:
                return _error("invalid_status", f"invalid status {status!r}")
            node.status = code
            node.completed_at = now_iso() if code == Status.COMPLETED.code else None
            if evidence:
                node.evidence = evidence.strip()
        if notes:
            node.notes = notes.strip()
        record.pending_status.pop(node_id, None)
        return None

    def confirm_pending_status(
        self, record_id: str, node_id: Optional[str] = None, *, accept: bool = True, ctx: Optional[SyncContext] = None
    ) -> MutationResult:
        """Accept (or reject) status changes requested through panel markers."""
        confirmed: List[Tuple[str, str, str]] = []
        pending: List[Any] = []

        def mutate(record: TaskRecord) -> Optional[Error]:
            selected = [c for c in pending if node_id is None or c.node_id == node_id]
            if not selected:
                return _error("nothing_pending", "no pending status change" + (f" for {node_id}" if node_id else ""))
            for change in selected:
                if accept:
                    error = self._set_status(record, change.node_id, change.new_status)
                    if error:
                        return error
                else:
                    record.pending_status.pop(change.node_id, None)
                confirmed.append((change.target, change.node_id, change.new_status))
            return None

        with self.orchestrator.record_lock(record_id):
            record = self.repository.load_record(record_id)
            if record is None:
                return False, _error("not_found", f"record {record_id} not found"), None
            with self._chain(record_id, ctx) as chain_ctx:
                pending.extend(self.orchestrator.preview(chain_ctx, record).pending_status)
                ok, error, result = self._mutate(record_id, mutate, chain_ctx)
        if ok and self.audit_sink is not None:
            for target, nid, status in confirmed:
                self.audit_sink.append(record_id, AuditEntry.status_confirmed(target, nid, status, accepted=accept))
        return ok, error, result

    def complete(self, record_id: str, *, force: bool = False, ctx: Optional[SyncContext] = None) -> MutationResult:
        def mutate(record: TaskRecord) -> Optional[Error]:
            open_nodes = [p.id for p in record.plans if p.status != Status.COMPLETED.code]
            open_nodes += [s.id for p in record.plans for s in p.steps if s.status != Status.COMPLETED.code]
            if open_nodes and not force:
                return _error("incomplete", f"not completed: {', '.join(open_nodes)}")
            record.completed_at = now_iso()
            record.logs.append(LogEntry.now("Record completed", category="TASK", action="COMPLETE"))
            return None

        return self._mutate(record_id, mutate, ctx)

    def add_log(
        self,
        record_id: str,
        message: str,
        *,
        level: str = "INFO",
        category: str = "TASK",
        action: str = "NOTE",
        ctx: Optional[SyncContext] = None,
    ) -> MutationResult:
        """Logs are append-only and only grow through this call."""
        if not (message or "").strip():
            return False, _error("missing_message", "log message is required"), None

        def mutate(record: TaskRecord) -> Optional[Error]:
            record.logs.append(LogEntry.now(message.strip(), level=level, category=category, action=action))
            return None

        return self._mutate(record_id, mutate, ctx)

    def rerender(self, record_id: str, ctx: Optional[SyncContext] = None) -> MutationResult:
        """Reconcile, then rewrite the panel from the record without a version bump."""
        return self._mutate(record_id, lambda record: None, ctx, bump=False)
