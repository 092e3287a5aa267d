"""Shared snapshot stores.

Every actor (reception desk, module operators, admin, public display) owns a
store instance.  Instances that share a backend see each other's writes:
``read`` returns the latest snapshot, ``write`` replaces it wholesale and
``subscribe`` registers a callback fired when *another* instance writes.

There is no locking or version check between read and write.  When two
actors write concurrently the later write wins and the earlier one is lost.

Backends:

* ``MemoryStateStore`` - in-process, used by tests and single-process runs.
* ``RedisStateStore`` - snapshot under a key plus pub/sub notifications.
* ``SqlStateStore`` - single-row SQLModel table, notifications by polling.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

import redis
from pydantic import ValidationError
from sqlmodel import Session, SQLModel, create_engine

import config
from lifecycle import reset_state
from models import StateRecord, SystemState, now_ms, utcnow

logger = logging.getLogger(__name__)

StateCallback = Callable[[SystemState], None]


def parse_snapshot(raw: Any, module_count: Optional[int] = None) -> Optional[SystemState]:
    """Parse a stored snapshot, or return None when it cannot be read.

    Snapshots written by an older setup with fewer modules get default
    records for the missing ids.
    """
    try:
        if isinstance(raw, (str, bytes)):
            state = SystemState.model_validate_json(raw)
        else:
            state = SystemState.model_validate(raw)
    except ValidationError as exc:
        logger.error("Discarding unreadable snapshot: %s", exc)
        return None
    added = state.ensure_modules(module_count)
    if added:
        logger.warning("Backfilled missing module records %s", added)
    return state


class SharedStateStore(ABC):
    """Base class for snapshot stores.

    Subclasses only move serialized payloads in and out of their backend;
    parsing, fallbacks and subscriber dispatch live here.
    """

    def __init__(self, module_count: Optional[int] = None, actor_id: Optional[str] = None) -> None:
        self.module_count = module_count
        self.actor_id = actor_id or uuid.uuid4().hex
        self._callbacks: List[StateCallback] = []

    @abstractmethod
    def _load_raw(self) -> Optional[str]:
        """Return the stored payload, or None when nothing is stored."""

    @abstractmethod
    def _save_raw(self, payload: str) -> None:
        """Persist ``payload`` and notify the other actors."""

    def default_state(self) -> SystemState:
        return SystemState.default(self.module_count)

    def read(self) -> SystemState:
        raw = self._load_raw()
        if raw is None:
            return self.default_state()
        state = parse_snapshot(raw, self.module_count)
        return state if state is not None else self.default_state()

    def write(self, state: SystemState) -> SystemState:
        state.last_updated = now_ms()
        self._save_raw(state.to_payload())
        return state

    def subscribe(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def reset(self) -> SystemState:
        logger.info("Resetting queue state")
        return self.write(reset_state(self.read(), self.module_count))

    def close(self) -> None:
        pass

    def _dispatch(self, state: SystemState) -> None:
        for callback in list(self._callbacks):
            try:
                callback(state)
            except Exception:
                logger.exception("State subscriber %r failed", callback)


class MemoryBackend:
    """Storage area shared by several ``MemoryStateStore`` instances."""

    def __init__(self) -> None:
        self.payload: Optional[str] = None
        self._stores: List["MemoryStateStore"] = []
        self._lock = threading.Lock()

    def attach(self, store: "MemoryStateStore") -> None:
        with self._lock:
            self._stores.append(store)

    def detach(self, store: "MemoryStateStore") -> None:
        with self._lock:
            if store in self._stores:
                self._stores.remove(store)

    def publish(self, writer: "MemoryStateStore", payload: str) -> None:
        with self._lock:
            listeners = [s for s in self._stores if s is not writer]
        for store in listeners:
            store._notify(payload)


class MemoryStateStore(SharedStateStore):
    def __init__(self, backend: Optional[MemoryBackend] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.backend = backend or MemoryBackend()
        self.backend.attach(self)

    def _load_raw(self) -> Optional[str]:
        return self.backend.payload

    def _save_raw(self, payload: str) -> None:
        self.backend.payload = payload
        self.backend.publish(self, payload)

    def _notify(self, payload: str) -> None:
        if not self._callbacks:
            return
        state = parse_snapshot(payload, self.module_count)
        if state is not None:
            self._dispatch(state)

    def close(self) -> None:
        self.backend.detach(self)


class RedisStateStore(SharedStateStore):
    def __init__(
        self,
        client: redis.Redis,
        key: str = config.STATE_KEY,
        channel: str = config.UPDATES_CHANNEL,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.client = client
        self.key = key
        self.channel = channel
        self._pubsub = None
        self._thread = None

    @classmethod
    def from_url(cls, url: Optional[str] = None, **kwargs: Any) -> "RedisStateStore":
        client = redis.from_url(url or config.REDIS_URL, decode_responses=True)
        client.ping()
        return cls(client, **kwargs)

    def _load_raw(self) -> Optional[str]:
        try:
            return self.client.get(self.key)
        except redis.RedisError as exc:
            logger.error("Redis read failed, using default state: %s", exc)
            return None

    def _save_raw(self, payload: str) -> None:
        self.client.set(self.key, payload)
        message = json.dumps({
            "type": "state_update",
            "writer": self.actor_id,
            "state": json.loads(payload),
            "timestamp": utcnow().isoformat(),
        })
        try:
            self.client.publish(self.channel, message)
        except redis.RedisError as exc:
            logger.warning("Redis publish failed: %s", exc)

    def subscribe(self, callback: StateCallback) -> None:
        super().subscribe(callback)
        if self._pubsub is None:
            self._pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            self._pubsub.subscribe(**{self.channel: self._handle_message})
            self._thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)

    def _handle_message(self, message: dict) -> None:
        try:
            data = json.loads(message["data"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed update message: %s", exc)
            return
        if not isinstance(data, dict) or data.get("writer") == self.actor_id:
            return
        state = parse_snapshot(data.get("state"), self.module_count)
        if state is not None:
            self._dispatch(state)

    def close(self) -> None:
        if self._thread is not None:
            self._thread.stop()
            self._thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None


class SqlStateStore(SharedStateStore):
    """Snapshot kept in one row of the ``state_snapshot`` table.

    Each write bumps ``revision``.  Subscribers are notified by ``poll``,
    which runs on a background thread when ``poll_interval`` is set.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: str = config.STATE_KEY,
        poll_interval: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.url = url or config.DATABASE_URL
        connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
        self.engine = create_engine(self.url, connect_args=connect_args)
        SQLModel.metadata.create_all(self.engine)
        self.key = key
        self.poll_interval = poll_interval
        self._seen_revision = self._current_revision()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _current_revision(self) -> int:
        with Session(self.engine) as session:
            record = session.get(StateRecord, self.key)
            return record.revision if record else 0

    def _load_raw(self) -> Optional[str]:
        with Session(self.engine) as session:
            record = session.get(StateRecord, self.key)
            return record.payload if record else None

    def _save_raw(self, payload: str) -> None:
        with Session(self.engine) as session:
            record = session.get(StateRecord, self.key)
            if record is None:
                record = StateRecord(key=self.key, payload=payload)
            record.payload = payload
            record.writer = self.actor_id
            record.revision += 1
            record.updated_at = utcnow()
            revision = record.revision
            session.add(record)
            session.commit()
        self._seen_revision = revision

    def poll(self) -> bool:
        """Dispatch the stored snapshot if another actor changed it."""
        with Session(self.engine) as session:
            record = session.get(StateRecord, self.key)
            if record is None or record.revision == self._seen_revision:
                return False
            self._seen_revision = record.revision
            writer, payload = record.writer, record.payload
        if writer == self.actor_id:
            return False
        state = parse_snapshot(payload, self.module_count)
        if state is None:
            return False
        self._dispatch(state)
        return True

    def subscribe(self, callback: StateCallback) -> None:
        super().subscribe(callback)
        if self.poll_interval and self._thread is None:
            self._thread = threading.Thread(target=self._poll_loop, daemon=True)
            self._thread.start()

    def _poll_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll()
            except Exception:
                logger.exception("Polling state table failed")

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self.engine.dispose()


def build_store(backend: Optional[str] = None, **kwargs: Any) -> SharedStateStore:
    """Create the store selected by ``STATE_BACKEND``."""
    backend = (backend or config.STATE_BACKEND).lower()
    if backend == "memory":
        return MemoryStateStore(**kwargs)
    if backend == "redis":
        if not config.REDIS_URL:
            raise RuntimeError("REDIS_URL is required for the redis backend")
        return RedisStateStore.from_url(config.REDIS_URL, **kwargs)
    if backend == "sql":
        return SqlStateStore(poll_interval=config.SQL_POLL_SECONDS, **kwargs)
    raise ValueError(f"Unknown state backend: {backend}")
