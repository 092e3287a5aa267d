"""Read-only views derived from a snapshot.

These feed the public display board, the reception desk preview, the admin
dashboard and the operator panel.  Nothing here mutates state.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import config
from models import ModuleRecord, ModuleStatus, Priority, SystemState, Ticket, now_ms
from tickets import peek_code, total_waiting, waiting_tickets

# Public board labels, in precedence order.
INACTIVE = "INACTIVE"
PAUSED = "PAUSED"
CALLING = "CALLING"
ATTENDING = "ATTENDING"
IN_SERVICE = "IN SERVICE"
AVAILABLE = "AVAILABLE"


def display_status(module: ModuleRecord) -> str:
    """Label shown on the public board for one module.

    Paused wins over the ticket states so the board shows the module as
    unavailable even while it finishes its current subject.
    """
    if not module.active:
        return INACTIVE
    if module.paused:
        return PAUSED
    if module.holds_ticket and module.called_at is not None:
        return CALLING
    if module.is_attending:
        return ATTENDING
    if module.holds_ticket:
        return IN_SERVICE
    return AVAILABLE


def _ticket_view(ticket: Ticket) -> Dict[str, Any]:
    return {
        "code": ticket.code,
        "subjectId": ticket.subject_id,
        "priority": ticket.priority.value,
        "isHigh": ticket.priority == Priority.high,
        "createdAt": ticket.created_at,
    }


def module_summary(state: SystemState) -> List[Dict[str, Any]]:
    rows = []
    for module_id in state.module_ids():
        module = state.modules[module_id]
        rows.append({
            "moduleId": module_id,
            "status": module.status.value,
            "label": display_status(module),
            "ticket": module.current_ticket,
            "paused": module.paused,
        })
    return rows


def build_board(state: SystemState) -> Dict[str, Any]:
    """Everything the public display shows."""
    return {
        "modules": module_summary(state),
        "waiting": [
            {"code": t.code, "isHigh": t.priority == Priority.high}
            for t in waiting_tickets(state)
        ],
        "recentCalls": [
            entry.model_dump(by_alias=True) for entry in state.recent_call_history
        ],
        "lastUpdated": state.last_updated,
    }


def queue_preview(state: SystemState, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    limit = config.QUEUE_PREVIEW_SIZE if limit is None else limit
    return [_ticket_view(t) for t in waiting_tickets(state)[:limit]]


def admin_stats(state: SystemState) -> Dict[str, Any]:
    records = [state.modules[i] for i in state.module_ids()]
    statuses = [m.status for m in records]
    return {
        "waitingHigh": len(state.high_queue),
        "waitingNormal": len(state.queue),
        "waitingTotal": total_waiting(state),
        "nextCode": peek_code(state.ticket_counter),
        "activeModules": sum(1 for s in statuses if s != ModuleStatus.inactive),
        "busyModules": sum(1 for s in statuses if s in (
            ModuleStatus.assigned, ModuleStatus.called, ModuleStatus.attending)),
        "idleModules": sum(1 for s in statuses if s == ModuleStatus.idle_active),
        "pausedModules": sum(1 for m in records if m.active and m.paused),
        "totalModules": len(statuses),
    }


def group_call_logs(module: ModuleRecord, query: str = "") -> List[Dict[str, Any]]:
    """Calls grouped by ticket code, most recent ticket first.

    ``query`` filters on the ticket code, case-insensitively.
    """
    query = query.strip().lower()
    groups: Dict[str, Dict[str, Any]] = {}
    for log in module.call_logs:
        if query and query not in log.code.lower():
            continue
        group = groups.setdefault(
            log.code, {"code": log.code, "subjectId": log.subject_id, "calls": []}
        )
        group["calls"].append(log.called_at)
    return list(reversed(list(groups.values())))


def finished_log(module: ModuleRecord) -> List[Dict[str, Any]]:
    return [entry.model_dump(by_alias=True) for entry in reversed(module.finished_tickets)]


def elapsed_seconds(module: ModuleRecord, now: Optional[int] = None) -> int:
    """Seconds since the current ticket was assigned, 0 when idle."""
    if not module.holds_ticket or not module.assigned_at:
        return 0
    now = now_ms() if now is None else now
    return max(0, (now - module.assigned_at) // 1000)


def module_view(state: SystemState, module_id: int, query: str = "",
                now: Optional[int] = None) -> Dict[str, Any]:
    """Operator panel for one module."""
    module = state.module(module_id)
    return {
        "moduleId": module_id,
        "status": module.status.value,
        "label": display_status(module),
        "active": module.active,
        "paused": module.paused,
        "currentTicket": module.current_ticket,
        "currentSubjectId": module.current_subject_id,
        "calledAt": module.called_at,
        "isAttending": module.is_attending,
        "elapsedSeconds": elapsed_seconds(module, now),
        "callGroups": group_call_logs(module, query),
        "finished": finished_log(module),
        "waitingHigh": len(state.high_queue),
        "waitingNormal": len(state.queue),
        "waitingTotal": total_waiting(state),
    }


class CallWatcher:
    """Detects new calls between successive snapshots.

    Prime it with the snapshot shown at start-up so existing calls are not
    announced again.
    """

    def __init__(self) -> None:
        self.last_called: Dict[int, int] = {}

    def prime(self, state: SystemState) -> None:
        self.last_called = {
            module_id: state.modules[module_id].called_at or 0
            for module_id in state.module_ids()
        }

    def new_calls(self, state: SystemState) -> List[Tuple[int, str]]:
        calls = []
        for module_id in state.module_ids():
            module = state.modules[module_id]
            called_at = module.called_at or 0
            if called_at > self.last_called.get(module_id, 0):
                self.last_called[module_id] = called_at
                if module.current_ticket is not None:
                    calls.append((module_id, module.current_ticket))
        return calls
