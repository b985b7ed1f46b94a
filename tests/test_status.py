import pytest

from commands import delete_command
from search import SearchParams, search_commands
from status import get_status
from systems import register_system


@pytest.fixture
def three_systems(db, history):
    for n in range(1, 4):
        register_system(db, history, f"mac-{n}", f"system-{n}", "some-host", "1.2.0")
    db.commit()
    return history


def test_counts_over_history(db, three_systems):
    status = get_status(db, three_systems, process_id=2)
    assert status == {
        "totalCommands": 50,
        "totalSessions": 5,
        "totalSystems": 3,
        "totalCommandsToday": 50,
        "sessionTotalCommands": 10,
    }


def test_delete_lowers_totals(db, three_systems):
    victim = search_commands(db, SearchParams(user_id=three_systems, limit=1))[0]
    assert delete_command(db, three_systems, victim["uuid"]) == 1
    db.commit()

    status = get_status(db, three_systems, process_id=4)
    assert status["totalCommands"] == 49
    # the newest command belongs to the last process id
    assert status["sessionTotalCommands"] == 9
    assert status["totalCommandsToday"] == 49


def test_old_commands_not_counted_today(db, make_user, add_command):
    user_id = make_user("old-timer")
    add_command(user_id, "ls", created=86_400_000 * 3)
    add_command(user_id, "pwd")
    status = get_status(db, user_id, process_id=1)
    assert status["totalCommands"] == 2
    assert status["totalCommandsToday"] == 1


def test_invariants(db, history):
    status = get_status(db, history, process_id=0)
    assert status["sessionTotalCommands"] <= status["totalCommands"]
    assert status["totalCommandsToday"] <= status["totalCommands"]


def test_empty_user(db, make_user):
    user_id = make_user("nobody")
    assert get_status(db, user_id, process_id=1) == {
        "totalCommands": 0,
        "totalSessions": 0,
        "totalSystems": 0,
        "totalCommandsToday": 0,
        "sessionTotalCommands": 0,
    }


def test_session_count_is_not_scoped_to_user(db, make_user, add_command):
    alice = make_user("alice")
    bob = make_user("bob")
    add_command(alice, "ls", process_id=4242)
    add_command(bob, "ls", process_id=4242)
    assert get_status(db, alice, process_id=4242)["sessionTotalCommands"] == 2
