"""Module state machine and ticket lifecycle.

A module moves through ``inactive`` -> ``idle_active`` -> ``assigned`` /
``called`` / ``attending`` -> back to ``idle_active`` when its ticket is
completed.  Pausing only blocks new assignments; a ticket already held by a
paused module can still be called, attended and completed.

Every transition is a plain function that mutates the snapshot passed in.
Calls that do not apply to the module's current status are silent no-ops;
callers persist the snapshot afterwards whether or not anything changed.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import config
from assignment import auto_assign
from models import (
    CallHistoryEntry,
    CallLogEntry,
    FinishedEntry,
    ModuleRecord,
    ModuleStatus,
    SystemState,
    Ticket,
    now_ms,
)
from tickets import requeue_front

logger = logging.getLogger(__name__)


def module_status(state: SystemState, module_id: int) -> ModuleStatus:
    return state.module(module_id).status


def deactivate_module(
    state: SystemState, module_id: int, now: Optional[int] = None
) -> Optional[Ticket]:
    """Disable a module, returning its ticket (if any) to the queue.

    The held ticket goes to the head of the normal lane so the subject is
    not lost.  Returns the re-queued ticket.
    """
    module = state.module(module_id)
    module.active = False
    module.paused = False
    returned = None
    if module.holds_ticket:
        returned = requeue_front(
            state,
            module.current_ticket,
            module.current_subject_id,
            now_ms() if now is None else now,
        )
        logger.info("Module %s deactivated, %s returned to queue", module_id, returned.code)
    else:
        logger.info("Module %s deactivated", module_id)
    module.release()
    return returned


def activate_module(
    state: SystemState, module_id: int, now: Optional[int] = None
) -> List[Tuple[int, str]]:
    module = state.module(module_id)
    # Must be active before the scan so it can pick up a ticket right away.
    module.active = True
    logger.info("Module %s activated", module_id)
    return auto_assign(state, now)


def pause_module(state: SystemState, module_id: int) -> bool:
    module = state.module(module_id)
    if not module.active or module.paused:
        return False
    module.paused = True
    logger.info("Module %s paused", module_id)
    return True


def resume_module(state: SystemState, module_id: int, now: Optional[int] = None) -> bool:
    module = state.module(module_id)
    if not module.active or not module.paused:
        return False
    module.paused = False
    logger.info("Module %s resumed", module_id)
    auto_assign(state, now)
    return True


def toggle_pause(state: SystemState, module_id: int, now: Optional[int] = None) -> bool:
    """Operator pause button: pause when running, resume when paused."""
    if state.module(module_id).paused:
        return resume_module(state, module_id, now)
    return pause_module(state, module_id)


def call_current_ticket(
    state: SystemState, module_id: int, now: Optional[int] = None
) -> Optional[CallLogEntry]:
    """Announce the module's ticket on the public display."""
    module = state.module(module_id)
    if not module.holds_ticket:
        logger.debug("Call ignored, module %s has no ticket", module_id)
        return None
    module.called_at = now_ms() if now is None else now
    entry = CallLogEntry(
        code=module.current_ticket,
        subject_id=module.current_subject_id,
        called_at=module.called_at,
    )
    module.call_logs.append(entry)
    state.recent_call_history.insert(
        0,
        CallHistoryEntry(code=entry.code, module_id=module_id, called_at=entry.called_at),
    )
    del state.recent_call_history[config.CALL_HISTORY_LIMIT:]
    logger.info("Module %s calling %s", module_id, entry.code)
    return entry


def attend_current_ticket(state: SystemState, module_id: int) -> bool:
    """Mark service as started; ends the calling state."""
    module = state.module(module_id)
    if not module.holds_ticket:
        logger.debug("Attend ignored, module %s has no ticket", module_id)
        return False
    module.is_attending = True
    module.called_at = None
    return True


def complete_current_ticket(
    state: SystemState, module_id: int, now: Optional[int] = None
) -> Optional[FinishedEntry]:
    """Finish the module's ticket and hand it the next one in line."""
    module = state.module(module_id)
    if not module.holds_ticket:
        logger.debug("Complete ignored, module %s has no ticket", module_id)
        return None
    now = now_ms() if now is None else now
    entry = FinishedEntry(
        code=module.current_ticket,
        subject_id=module.current_subject_id,
        finished_at=now,
    )
    module.finished_tickets.append(entry)
    module.release()
    logger.info("Module %s finished %s", module_id, entry.code)
    auto_assign(state, now)
    return entry


def activate_all(state: SystemState, now: Optional[int] = None) -> List[Tuple[int, str]]:
    for module_id in state.module_ids():
        state.modules[module_id].active = True
    logger.info("All modules activated")
    return auto_assign(state, now)


def deactivate_all(state: SystemState, now: Optional[int] = None) -> List[Ticket]:
    """Disable every module; returns the tickets sent back to the queue."""
    returned = []
    for module_id in state.module_ids():
        ticket = deactivate_module(state, module_id, now)
        if ticket is not None:
            returned.append(ticket)
    return returned


def reset_state(state: SystemState, module_count: Optional[int] = None) -> SystemState:
    """Fresh snapshot that keeps each module's ``active`` flag.

    Queues, counter, call history and per-module logs all go back to their
    defaults.  The fresh snapshot has ``module_count`` modules (the configured
    count when omitted).
    """
    fresh = SystemState.default(module_count)
    for module_id in fresh.module_ids():
        if module_id in state.modules:
            fresh.modules[module_id] = ModuleRecord(active=state.modules[module_id].active)
    return fresh
