"""Ticket codes and the two waiting lanes.

Codes are a letter followed by a two digit sequence (``A01`` .. ``Z99``).
After ``Z99`` the counter wraps to ``A01``; codes are only unique within one
reset period.

High priority tickets are always served before normal ones.  Inside a lane
the order is arrival order.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from models import Priority, SystemState, Ticket, TicketCounter, now_ms

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 99


def peek_code(counter: TicketCounter) -> str:
    """Code the next ticket will get, without advancing the counter."""
    return f"{counter.letter}{counter.sequence:02d}"


def next_code(counter: TicketCounter) -> str:
    """Return the current code and advance ``counter`` in place."""
    code = peek_code(counter)
    if counter.sequence >= MAX_SEQUENCE:
        counter.sequence = 1
        counter.letter = "A" if counter.letter >= "Z" else chr(ord(counter.letter) + 1)
    else:
        counter.sequence += 1
    return code


def _lane(state: SystemState, priority: Priority) -> List[Ticket]:
    return state.high_queue if priority == Priority.high else state.queue


def enqueue(
    state: SystemState,
    subject_id: str,
    priority: Union[Priority, str] = Priority.normal,
    now: Optional[int] = None,
) -> Ticket:
    """Issue a ticket for ``subject_id`` and append it to its lane.

    The subject id is expected to be non-empty; it is not validated here.
    """
    priority = Priority(priority)
    ticket = Ticket(
        code=next_code(state.ticket_counter),
        subject_id=subject_id.strip(),
        priority=priority,
        created_at=now_ms() if now is None else now,
    )
    _lane(state, priority).append(ticket)
    logger.debug("Queued %s (%s) for %s", ticket.code, priority.value, ticket.subject_id)
    return ticket


def dequeue_next(state: SystemState) -> Optional[Ticket]:
    if state.high_queue:
        return state.high_queue.pop(0)
    if state.queue:
        return state.queue.pop(0)
    return None


def peek_next(state: SystemState) -> Optional[Ticket]:
    if state.high_queue:
        return state.high_queue[0]
    if state.queue:
        return state.queue[0]
    return None


def total_waiting(state: SystemState) -> int:
    return len(state.high_queue) + len(state.queue)


def waiting_tickets(state: SystemState) -> List[Ticket]:
    """All waiting tickets in service order."""
    return state.high_queue + state.queue


def requeue_front(
    state: SystemState,
    code: str,
    subject_id: Optional[str],
    now: Optional[int] = None,
) -> Ticket:
    """Put a ticket back at the head of the normal lane.

    The ticket is downgraded to normal priority, so it still waits behind
    every high priority ticket.
    """
    ticket = Ticket(
        code=code,
        subject_id=subject_id or "",
        priority=Priority.normal,
        created_at=now_ms() if now is None else now,
    )
    state.queue.insert(0, ticket)
    return ticket
