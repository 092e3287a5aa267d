"""Automatic assignment of waiting tickets to free service modules."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from models import SystemState, now_ms
from tickets import dequeue_next, total_waiting

logger = logging.getLogger(__name__)


def assign_one(state: SystemState, module_id: int, now: Optional[int] = None) -> bool:
    """Bind the next waiting ticket to ``module_id``.

    Returns False, leaving the state untouched, when the module is inactive,
    paused, already busy, or nobody is waiting.
    """
    module = state.module(module_id)
    if not module.eligible:
        return False
    ticket = dequeue_next(state)
    if ticket is None:
        return False
    module.bind(ticket, now_ms() if now is None else now)
    logger.info("Assigned %s to module %s", ticket.code, module_id)
    return True


def auto_assign(state: SystemState, now: Optional[int] = None) -> List[Tuple[int, str]]:
    """Fill every eligible module, lowest id first.

    Returns the ``(module_id, code)`` pairs that were assigned.
    """
    now = now_ms() if now is None else now
    assigned = []
    for module_id in state.module_ids():
        if total_waiting(state) == 0:
            break
        if state.modules[module_id].eligible and assign_one(state, module_id, now):
            assigned.append((module_id, state.modules[module_id].current_ticket))
    return assigned
