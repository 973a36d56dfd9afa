import datetime

import pytest

import billiards.storage as storage
from billiards.models import Match, MatchStatus, MatchType, Role, User
from billiards.services.matches import cleanup_expired_matches
from conftest import fetch

BASE = datetime.datetime(2024, 6, 1, 18, 0)


def make_user(user_id, role=Role.MEMBER):
    return User(
        user_id=user_id,
        name=user_id.upper(),
        email=f"{user_id}@club.test",
        password_hash="x",
        student_id=f"S-{user_id}",
        role=role,
    )


def make_match(when, status=MatchStatus.OPEN, location="Table 1"):
    match = Match(
        type=MatchType.SINGLES,
        datetime=when,
        location=location,
        creator="u1",
        players=["u1"],
        status=status,
    )
    storage.create_match(match)
    return match


def test_user_roundtrip_and_cache():
    storage.create_user(make_user("u1", Role.OFFICER))
    user = storage.get_user("u1")
    assert user.role == Role.OFFICER
    assert user.stats.elo == 1200
    assert storage._redis.get(storage._user_key("u1")) is not None

    user.stats.elo = 1300
    storage.update_user_stats("u1", user.stats)
    assert storage._redis.get(storage._user_key("u1")) is None
    assert storage.get_user("u1").stats.elo == 1300

    conn = storage._connect()
    try:
        assert fetch(conn, "SELECT elo FROM users WHERE user_id = ?", "u1")["elo"] == 1300
    finally:
        conn.close()

    storage.delete_user("u1")
    assert storage.get_user("u1") is None
    assert storage._redis.get(storage._user_key("u1")) is None


def test_column_scoped_writes_leave_other_columns():
    storage.create_user(make_user("u1"))
    stale = storage.get_user("u1")

    storage.update_user_role("u1", Role.OFFICER)
    stale.stats.elo = 1250
    stale.stats.wins = 1
    storage.update_user_stats("u1", stale.stats)

    user = storage.get_user("u1")
    assert user.role == Role.OFFICER
    assert (user.stats.elo, user.stats.wins) == (1250, 1)

    storage.update_user_role("u1", Role.MEMBER)
    assert storage.get_user("u1").stats.elo == 1250


def test_lookup_by_email_and_student_id():
    storage.create_user(make_user("u1"))
    assert storage.get_user_by_email("u1@club.test").user_id == "u1"
    assert storage.get_user_by_student_id("S-u1").user_id == "u1"
    assert storage.get_user_by_email("nobody@club.test") is None


def test_transaction_rollback_discards_writes():
    with pytest.raises(RuntimeError):
        with storage.transaction() as conn:
            storage.create_user(make_user("u1"), conn=conn)
            raise RuntimeError("boom")
    assert storage.get_user("u1") is None
    assert storage.count_users() == 0


def test_locked_section_commits():
    with storage.locked("player:u1", "location:Table 1", "player:u1") as conn:
        storage.create_user(make_user("u1", Role.LEADER), conn=conn)
        storage.create_user(make_user("u2"), conn=conn)
        assert storage.count_users(conn=conn) == 2
    counts = storage.count_users_by_role()
    assert counts[Role.LEADER] == 1
    assert counts[Role.MEMBER] == 1
    assert counts[Role.CO_LEADER] == 0


def test_list_matches_filters_and_orders():
    late = make_match(BASE + datetime.timedelta(hours=3))
    early = make_match(BASE)
    cancelled = make_match(BASE + datetime.timedelta(hours=1), status=MatchStatus.CANCELLED)

    assert [m.id for m in storage.list_matches()] == [early.id, cancelled.id, late.id]
    ids = [m.id for m in storage.list_matches(statuses=[MatchStatus.OPEN])]
    assert ids == [early.id, late.id]

    window = storage.list_matches(start=BASE, end=BASE + datetime.timedelta(hours=2))
    assert [m.datetime for m in window] == [BASE, BASE + datetime.timedelta(hours=1)]

    assert storage.list_matches(statuses=[]) == []


def test_match_roundtrip():
    match = make_match(BASE)
    match.players.append("u2")
    match.status = MatchStatus.FILLED
    storage.update_match_record(match)

    loaded = storage.get_match(match.id)
    assert loaded.players == ["u1", "u2"]
    assert loaded.status == MatchStatus.FILLED
    assert loaded.datetime == BASE
    assert storage.get_match(12345) is None


def test_expired_matches_are_cancelled():
    now = storage.utcnow()
    stale = make_match(now - datetime.timedelta(hours=2))
    done = make_match(now - datetime.timedelta(hours=3), status=MatchStatus.COMPLETED)
    upcoming = make_match(now + datetime.timedelta(hours=2))

    assert cleanup_expired_matches() == 1
    assert storage.get_match(stale.id).status == MatchStatus.CANCELLED
    assert storage.get_match(stale.id).is_deleted
    assert storage.get_match(done.id).status == MatchStatus.COMPLETED
    assert storage.get_match(upcoming.id).status == MatchStatus.OPEN
    assert cleanup_expired_matches() == 0
