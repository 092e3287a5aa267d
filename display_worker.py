#!/usr/bin/env python3
"""
Display Announcement Worker

Follows the shared queue state and announces every new call ("ticket A07,
module 2") in the log, the way the public display flashes a called ticket.
Run this as a separate background process next to the API.

Usage:
    python display_worker.py

Environment Variables:
    STATE_BACKEND - memory | redis | sql (redis or sql to follow another process)
    REDIS_URL - Redis connection URL when STATE_BACKEND=redis
    DATABASE_URL - database URL when STATE_BACKEND=sql
"""

import logging
import sys
import time
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Tuple

import config
from display import CallWatcher, build_board
from models import SystemState
from store import SharedStateStore, build_store

logger = logging.getLogger("display_worker")


class DisplayWorker:
    def __init__(self, store: Optional[SharedStateStore] = None, keep: int = config.CALL_HISTORY_LIMIT):
        self.store = store
        self.watcher = CallWatcher()
        self.announcements: Deque[Dict[str, object]] = deque(maxlen=keep)
        self.updates_seen = 0

    def setup(self) -> bool:
        """Connect to the store and prime the call watcher."""
        try:
            if self.store is None:
                self.store = build_store()
            state = self.store.read()
        except Exception as e:
            logger.error("❌ Failed to open state store: %s", e)
            return False
        self.watcher.prime(state)
        board = build_board(state)
        logger.info("✅ Following %s: %s modules, %s waiting",
                    type(self.store).__name__, len(board["modules"]), len(board["waiting"]))
        self.store.subscribe(self.handle_state)
        return True

    def handle_state(self, state: SystemState) -> List[Tuple[int, str]]:
        """Announce the calls that are new in ``state``."""
        self.updates_seen += 1
        calls = self.watcher.new_calls(state)
        for module_id, code in calls:
            self.announcements.appendleft({
                "code": code,
                "moduleId": module_id,
                "announcedAt": datetime.now(timezone.utc).isoformat(),
            })
            logger.info("🔔 Ticket %s, please go to module %s", code, module_id)
        return calls

    def get_stats(self) -> dict:
        return {
            "updates_seen": self.updates_seen,
            "announcements": list(self.announcements),
            "worker_status": "running" if self.store is not None else "stopped",
            "last_check": datetime.now(timezone.utc).isoformat(),
        }

    def run(self, idle_seconds: float = 1.0) -> None:
        """Block until interrupted; notifications arrive on the store's thread."""
        logger.info("🚀 Display worker started - waiting for calls...")
        try:
            while True:
                time.sleep(idle_seconds)
        except KeyboardInterrupt:
            logger.info("🛑 Worker stopped by user")
        finally:
            self.store.close()


def main():
    """Main entry point."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format=config.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logger.info("🏥 Queue Controller - Display Announcement Worker")

    if config.STATE_BACKEND == "memory":
        logger.warning("⚠️  Memory backend only sees writes from this process")

    worker = DisplayWorker()
    if worker.setup():
        worker.run()
    else:
        logger.error("❌ Cannot start without a state store")


if __name__ == "__main__":
    main()
