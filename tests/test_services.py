import pytest

from models import Priority, UnknownModuleError
from services import InvalidActionError, issue_ticket, reset_system, run_module_action, set_all_modules
from store import MemoryStateStore


def test_issue_ticket_goes_to_first_free_module(store):
    ticket, assigned_to, state = issue_ticket(store, "1234")
    assert ticket.code == "A01"
    assert assigned_to == 1
    assert store.read().modules[1].current_ticket == "A01"
    assert state.last_updated > 0


def test_issue_ticket_waits_when_all_modules_closed(store):
    set_all_modules(store, False)
    ticket, assigned_to, _ = issue_ticket(store, "5678", Priority.high)
    assert assigned_to is None
    assert [t.code for t in store.read().high_queue] == [ticket.code]


def test_scenario_high_priority_overtakes(store):
    set_all_modules(store, False)
    issue_ticket(store, "1234")
    issue_ticket(store, "5678", "high")

    state = run_module_action(store, 1, "activate")

    assert state.modules[1].current_ticket == "A02"
    assert [t.code for t in state.queue] == ["A01"]


def test_operator_flow_through_store(store, backend):
    display = MemoryStateStore(backend, actor_id="display")
    updates = []
    display.subscribe(updates.append)

    issue_ticket(store, "1111")
    issue_ticket(store, "2222")
    run_module_action(store, 1, "call")
    run_module_action(store, 1, "attend")
    state = run_module_action(store, 1, "complete")

    assert state.modules[1].current_ticket is None
    assert [f.code for f in state.modules[1].finished_tickets] == ["A01"]
    assert state.modules[2].current_ticket == "A02"
    assert len(updates) == 5
    display.close()


def test_deactivating_all_returns_tickets(store):
    issue_ticket(store, "1111")
    issue_ticket(store, "2222")
    state = set_all_modules(store, False)
    assert sorted(t.code for t in state.queue) == ["A01", "A02"]

    state = set_all_modules(store, True)
    assert state.modules[1].current_ticket is not None
    assert state.modules[2].current_ticket is not None


def test_invalid_action(store):
    with pytest.raises(InvalidActionError):
        run_module_action(store, 1, "teleport")


def test_unknown_module(store):
    with pytest.raises(UnknownModuleError):
        run_module_action(store, 7, "call")


def test_reset_system(store):
    run_module_action(store, 3, "deactivate")
    issue_ticket(store, "1111")
    state = reset_system(store)
    assert state.modules[1].current_ticket is None
    assert state.modules[3].active is False
    assert state.ticket_counter.sequence == 1
