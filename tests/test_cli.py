import datetime

import billiards.storage as storage
from billiards.cli import main
from billiards.models import Match, MatchStatus, MatchType, Role
from billiards.services import users


def test_preview(capsys):
    assert main(["preview", "1200", "10", "1200", "10"]) == 0
    out = capsys.readouterr().out
    assert "A wins: A +16, B -16" in out
    assert "B wins: A -16, B +16" in out


def test_set_role(capsys):
    users.register("Alice", "alice@club.test", "pw", "S1")
    bob = users.register("Bob", "bob@club.test", "pw", "S2")

    assert main(["set-role", "BOB@club.test", "co_leader"]) == 0
    assert "bob@club.test is now co_leader" in capsys.readouterr().out
    assert storage.get_user(bob["user_id"]).role == Role.CO_LEADER


def test_set_role_keeps_last_leader(capsys):
    alice = users.register("Alice", "alice@club.test", "pw", "S1")
    assert main(["set-role", "alice@club.test", "member"]) == 1
    assert "Cannot remove the last leader" in capsys.readouterr().err
    assert storage.get_user(alice["user_id"]).role == Role.LEADER

    assert main(["set-role", "nobody@club.test", "member"]) == 1


def test_cleanup_and_leaderboard(capsys):
    alice = users.register("Alice", "alice@club.test", "pw", "S1")
    storage.create_match(
        Match(
            type=MatchType.SINGLES,
            datetime=storage.utcnow() - datetime.timedelta(days=1),
            location="Table 1",
            creator=alice["user_id"],
            players=[alice["user_id"]],
            status=MatchStatus.OPEN,
        )
    )
    assert main(["cleanup"]) == 0
    assert "Expired 1 matches" in capsys.readouterr().out

    assert main(["leaderboard"]) == 0
    assert "1. Alice 1200" in capsys.readouterr().out
