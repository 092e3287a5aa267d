from display import (
    AVAILABLE,
    ATTENDING,
    CALLING,
    INACTIVE,
    IN_SERVICE,
    PAUSED,
    CallWatcher,
    admin_stats,
    build_board,
    display_status,
    elapsed_seconds,
    finished_log,
    group_call_logs,
    queue_preview,
)
from lifecycle import (
    attend_current_ticket,
    call_current_ticket,
    complete_current_ticket,
    deactivate_module,
    pause_module,
)
from models import ModuleRecord, Priority, SystemState
from assignment import auto_assign
from tickets import enqueue


def test_display_status_precedence():
    assert display_status(ModuleRecord(active=False)) == INACTIVE
    assert display_status(ModuleRecord(paused=True, current_ticket="A01", called_at=5)) == PAUSED
    assert display_status(ModuleRecord(current_ticket="A01", called_at=5, is_attending=True)) == CALLING
    assert display_status(ModuleRecord(current_ticket="A01", is_attending=True)) == ATTENDING
    assert display_status(ModuleRecord(current_ticket="A01")) == IN_SERVICE
    assert display_status(ModuleRecord()) == AVAILABLE


def test_board_lists_modules_waiting_and_calls(closed_state):
    closed_state.modules[1].active = True
    enqueue(closed_state, "1111")
    enqueue(closed_state, "2222", Priority.high)
    enqueue(closed_state, "3333")
    auto_assign(closed_state, now=10)
    call_current_ticket(closed_state, 1, now=20)

    board = build_board(closed_state)

    assert board["modules"][0] == {
        "moduleId": 1, "status": "called", "label": CALLING, "ticket": "A02", "paused": False,
    }
    assert board["modules"][1]["label"] == INACTIVE
    assert board["waiting"] == [
        {"code": "A01", "isHigh": False},
        {"code": "A03", "isHigh": False},
    ]
    assert board["recentCalls"] == [{"code": "A02", "moduleId": 1, "calledAt": 20}]


def test_queue_preview_is_limited_and_high_first(closed_state):
    for i in range(6):
        enqueue(closed_state, f"n{i}000")
    enqueue(closed_state, "h0000", Priority.high)

    preview = queue_preview(closed_state, limit=3)

    assert [p["code"] for p in preview] == ["A07", "A01", "A02"]
    assert preview[0]["isHigh"] is True
    assert len(queue_preview(closed_state)) == 5


def test_admin_stats():
    state = SystemState.default()
    enqueue(state, "1111")
    auto_assign(state, now=1)
    pause_module(state, 2)
    deactivate_module(state, 4)
    enqueue(state, "2222", Priority.high)

    stats = admin_stats(state)

    assert stats["waitingHigh"] == 1
    assert stats["waitingNormal"] == 0
    assert stats["waitingTotal"] == 1
    assert stats["nextCode"] == "A03"
    assert stats["activeModules"] == 3
    assert stats["busyModules"] == 1
    assert stats["idleModules"] == 1
    assert stats["pausedModules"] == 1
    assert stats["totalModules"] == 4


def test_admin_stats_counts_paused_module_holding_ticket():
    state = SystemState.default(2)
    enqueue(state, "1111")
    auto_assign(state, now=1)
    pause_module(state, 1)

    stats = admin_stats(state)

    assert stats["pausedModules"] == 1
    assert stats["busyModules"] == 1
    assert stats["idleModules"] == 1


class TestOperatorLogs:
    def _served(self):
        state = SystemState.default(1)
        enqueue(state, "1111")
        enqueue(state, "2222")
        auto_assign(state, now=1000)
        call_current_ticket(state, 1, now=2000)
        call_current_ticket(state, 1, now=3000)
        attend_current_ticket(state, 1)
        complete_current_ticket(state, 1, now=4000)
        call_current_ticket(state, 1, now=5000)
        return state

    def test_call_logs_grouped_newest_first(self):
        module = self._served().modules[1]
        groups = group_call_logs(module)
        assert groups == [
            {"code": "A02", "subjectId": "2222", "calls": [5000]},
            {"code": "A01", "subjectId": "1111", "calls": [2000, 3000]},
        ]

    def test_call_log_filter_ignores_case(self):
        module = self._served().modules[1]
        assert [g["code"] for g in group_call_logs(module, "a01")] == ["A01"]
        assert group_call_logs(module, "B") == []

    def test_finished_log_newest_first(self):
        module = self._served().modules[1]
        assert finished_log(module) == [{"code": "A01", "subjectId": "1111", "finishedAt": 4000}]

    def test_elapsed_seconds(self):
        module = self._served().modules[1]
        assert elapsed_seconds(module, now=4000 + 65_500) == 65
        assert elapsed_seconds(ModuleRecord(), now=99_999) == 0


class TestCallWatcher:
    def test_primed_calls_are_not_repeated(self):
        state = SystemState.default()
        enqueue(state, "1111")
        auto_assign(state, now=1)
        call_current_ticket(state, 1, now=100)

        watcher = CallWatcher()
        watcher.prime(state)
        assert watcher.new_calls(state) == []

        call_current_ticket(state, 1, now=200)
        assert watcher.new_calls(state) == [(1, "A01")]
        assert watcher.new_calls(state) == []

    def test_new_module_call_detected(self):
        state = SystemState.default()
        watcher = CallWatcher()
        watcher.prime(state)
        enqueue(state, "1111")
        enqueue(state, "2222")
        auto_assign(state, now=1)

        call_current_ticket(state, 2, now=50)

        assert watcher.new_calls(state) == [(2, "A02")]
