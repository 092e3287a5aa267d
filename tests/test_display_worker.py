from unittest.mock import Mock

from display_worker import DisplayWorker
from services import issue_ticket, run_module_action
from store import MemoryStateStore


class TestDisplayWorker:
    def test_announces_new_calls_from_other_actors(self, backend, store):
        issue_ticket(store, "1111")
        worker = DisplayWorker(MemoryStateStore(backend, actor_id="display"))
        assert worker.setup() is True

        issue_ticket(store, "2222")
        assert list(worker.announcements) == []

        run_module_action(store, 2, "call")

        assert worker.updates_seen == 2
        latest = worker.announcements[0]
        assert latest["code"] == "A02"
        assert latest["moduleId"] == 2

    def test_existing_calls_are_not_announced(self, backend, store):
        issue_ticket(store, "1111")
        run_module_action(store, 1, "call")

        worker = DisplayWorker(MemoryStateStore(backend, actor_id="display"))
        worker.setup()
        run_module_action(store, 1, "attend")

        assert list(worker.announcements) == []
        assert worker.get_stats()["updates_seen"] == 1

    def test_setup_fails_when_store_unreadable(self):
        broken = Mock()
        broken.read.side_effect = RuntimeError("down")
        worker = DisplayWorker(broken)
        assert worker.setup() is False
        broken.subscribe.assert_not_called()
