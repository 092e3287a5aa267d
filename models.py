"""Data models for the walk-in queue.

The whole system lives in one ``SystemState`` snapshot: two waiting lanes,
the ticket counter, one record per service module and a short history of
recent calls.  Actors always read and write the snapshot as a whole, so the
pydantic models below double as the persistence format.  Field names are
stored in camelCase (``subjectId``, ``highQueue`` ...) through an alias
generator; Python code uses the snake_case attribute names.

``StateRecord`` is the SQLModel table used by the SQL store to keep the
serialized snapshot.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

import sqlmodel
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

import config


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnknownModuleError(LookupError):
    """Raised when a module id is outside the configured range."""

    def __init__(self, module_id: int) -> None:
        super().__init__(f"Unknown module {module_id}")
        self.module_id = module_id


class Priority(str, Enum):
    """Waiting lane of a ticket."""

    high = "high"
    normal = "normal"


class ModuleStatus(str, Enum):
    """Explicit state of a service module.

    Derived from the persisted flags by ``ModuleRecord.status``.  ``paused``
    is layered on top of the ticket-holding states and is not part of this
    enum except for the idle case.
    """

    inactive = "inactive"
    idle_active = "idle_active"
    idle_paused = "idle_paused"
    assigned = "assigned"
    called = "called"
    attending = "attending"


HOLDING_STATUSES = frozenset(
    {ModuleStatus.assigned, ModuleStatus.called, ModuleStatus.attending}
)


class SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Ticket(SnapshotModel):
    code: str
    subject_id: str
    priority: Priority = Priority.normal
    created_at: int = Field(default_factory=now_ms)


class TicketCounter(SnapshotModel):
    letter: str = Field(default="A", pattern=r"^[A-Z]$")
    sequence: int = Field(default=1, ge=1, le=99)


class CallLogEntry(SnapshotModel):
    code: str
    subject_id: Optional[str] = None
    called_at: int


class FinishedEntry(SnapshotModel):
    code: str
    subject_id: Optional[str] = None
    finished_at: int


class CallHistoryEntry(SnapshotModel):
    code: str
    module_id: int
    called_at: int


class ModuleRecord(SnapshotModel):
    active: bool = True
    paused: bool = False
    current_ticket: Optional[str] = None
    current_subject_id: Optional[str] = None
    called_at: Optional[int] = None
    is_attending: bool = False
    assigned_at: int = 0
    call_logs: List[CallLogEntry] = Field(default_factory=list)
    finished_tickets: List[FinishedEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize_idle(self) -> "ModuleRecord":
        # An idle module carries no per-ticket fields.
        if self.current_ticket is None:
            self.release()
        return self

    @property
    def holds_ticket(self) -> bool:
        return self.current_ticket is not None

    @property
    def eligible(self) -> bool:
        """True when the module can receive a new assignment."""
        return self.active and not self.paused and not self.holds_ticket

    @property
    def status(self) -> ModuleStatus:
        if not self.active:
            return ModuleStatus.inactive
        if not self.holds_ticket:
            return ModuleStatus.idle_paused if self.paused else ModuleStatus.idle_active
        if self.called_at is not None:
            return ModuleStatus.called
        if self.is_attending:
            return ModuleStatus.attending
        return ModuleStatus.assigned

    def bind(self, ticket: Ticket, now: int) -> None:
        self.current_ticket = ticket.code
        self.current_subject_id = ticket.subject_id
        self.called_at = None
        self.is_attending = True
        self.assigned_at = now

    def release(self) -> None:
        self.current_ticket = None
        self.current_subject_id = None
        self.called_at = None
        self.is_attending = False
        self.assigned_at = 0


class SystemState(SnapshotModel):
    queue: List[Ticket] = Field(default_factory=list)
    high_queue: List[Ticket] = Field(default_factory=list)
    modules: Dict[int, ModuleRecord] = Field(default_factory=dict)
    ticket_counter: TicketCounter = Field(default_factory=TicketCounter)
    recent_call_history: List[CallHistoryEntry] = Field(default_factory=list)
    last_updated: int = 0

    @field_validator("modules", mode="before")
    @classmethod
    def _drop_empty_modules(cls, value):
        # A null record counts as missing; ensure_modules backfills it.
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value

    @classmethod
    def default(cls, module_count: Optional[int] = None) -> "SystemState":
        state = cls()
        state.ensure_modules(module_count)
        return state

    def ensure_modules(self, module_count: Optional[int] = None) -> List[int]:
        """Backfill default records for missing module ids; returns the ids added."""
        count = config.MODULE_COUNT if module_count is None else module_count
        added = []
        for module_id in range(1, count + 1):
            if module_id not in self.modules:
                self.modules[module_id] = ModuleRecord()
                added.append(module_id)
        return added

    def module_ids(self) -> List[int]:
        return sorted(self.modules)

    def module(self, module_id: int) -> ModuleRecord:
        record = self.modules.get(module_id)
        if record is not None:
            return record
        if 1 <= module_id <= config.MODULE_COUNT:
            record = ModuleRecord()
            self.modules[module_id] = record
            return record
        raise UnknownModuleError(module_id)

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True)


class StateRecord(sqlmodel.SQLModel, table=True):
    """Single row holding the serialized snapshot for one state key."""

    __tablename__ = "state_snapshot"

    key: str = sqlmodel.Field(primary_key=True)
    payload: str
    writer: Optional[str] = None
    revision: int = sqlmodel.Field(default=0)
    updated_at: datetime = sqlmodel.Field(default_factory=utcnow)
