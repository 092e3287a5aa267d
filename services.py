"""Actor operations against a shared store.

Each function is one read-modify-write cycle: read the current snapshot,
apply engine operations in memory, write the whole snapshot back.  These are
what the HTTP layer and the workers call; the engine modules themselves never
touch a store.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple, Union

from assignment import auto_assign
from lifecycle import (
    activate_all,
    activate_module,
    attend_current_ticket,
    call_current_ticket,
    complete_current_ticket,
    deactivate_all,
    deactivate_module,
    pause_module,
    resume_module,
    toggle_pause,
)
from models import Priority, SystemState, Ticket, now_ms
from store import SharedStateStore
from tickets import enqueue

logger = logging.getLogger(__name__)


MODULE_ACTIONS: Dict[str, Callable[[SystemState, int, int], Any]] = {
    "activate": activate_module,
    "deactivate": deactivate_module,
    "pause": lambda state, module_id, now: pause_module(state, module_id),
    "resume": resume_module,
    "toggle_pause": toggle_pause,
    "call": call_current_ticket,
    "attend": lambda state, module_id, now: attend_current_ticket(state, module_id),
    "complete": complete_current_ticket,
}


class InvalidActionError(ValueError):
    """Raised for a module action name that is not in ``MODULE_ACTIONS``."""


def issue_ticket(
    store: SharedStateStore,
    subject_id: str,
    priority: Union[Priority, str] = Priority.normal,
) -> Tuple[Ticket, Optional[int], SystemState]:
    """Reception desk: issue a ticket and hand it out if a module is free.

    Returns the ticket, the module it went to (None while it waits) and the
    written snapshot.
    """
    state = store.read()
    now = now_ms()
    ticket = enqueue(state, subject_id, priority, now)
    assigned_to = None
    for module_id, code in auto_assign(state, now):
        if code == ticket.code:
            assigned_to = module_id
    store.write(state)
    logger.info("Issued %s (%s), assigned to %s", ticket.code, ticket.priority.value,
                assigned_to or "queue")
    return ticket, assigned_to, state


def run_module_action(store: SharedStateStore, module_id: int, action: str) -> SystemState:
    """Module operator / admin: apply one transition to one module."""
    handler = MODULE_ACTIONS.get(action)
    if handler is None:
        raise InvalidActionError(f"Invalid action: {action}")
    state = store.read()
    handler(state, module_id, now_ms())
    return store.write(state)


def set_all_modules(store: SharedStateStore, active: bool) -> SystemState:
    """Admin: activate or deactivate every module at once."""
    state = store.read()
    if active:
        activate_all(state, now_ms())
    else:
        returned = deactivate_all(state, now_ms())
        if returned:
            logger.info("Returned %s to the queue", ", ".join(t.code for t in returned))
    return store.write(state)


def reset_system(store: SharedStateStore) -> SystemState:
    """Admin: clear queues, counter and history, keeping module activation."""
    return store.reset()
