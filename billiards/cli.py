import argparse
import sys

from . import storage
from .logging_config import setup_logging
from .models import Role
from .rating import RatingInput, preview_both_outcomes
from .services.admin import set_role_unchecked
from .services.exceptions import ServiceError
from .services.matches import ELO, cleanup_expired_matches
from .services.stats import leaderboard


def set_role(email: str, role: str) -> dict:
    """Assign ``role`` to the account registered under ``email``."""
    user = storage.get_user_by_email(email.strip().lower())
    if not user:
        raise ServiceError("User not found", 404)
    return set_role_unchecked(user.user_id, role)


def print_leaderboard(limit: int | None = None) -> None:
    entries = leaderboard()
    if limit is not None:
        entries = entries[:limit]
    for idx, e in enumerate(entries, start=1):
        s = e["stats"]
        print(
            f"{idx}. {e['name']} {s['elo']} "
            f"({s['ranked_wins']}-{s['ranked_losses']} ranked, {s['wins']}-{s['losses']} casual)"
        )


def print_preview(rating_a: int, games_a: int, rating_b: int, games_b: int) -> None:
    preview = preview_both_outcomes(RatingInput(rating_a, games_a), RatingInput(rating_b, games_b), ELO)
    print(f"A wins: A {preview.if_a_wins.a_change:+g}, B {preview.if_a_wins.b_change:+g}")
    print(f"B wins: A {preview.if_b_wins.a_change:+g}, B {preview.if_b_wins.b_change:+g}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Billiards Club CLI')
    sub = parser.add_subparsers(dest='cmd', required=True)

    srole = sub.add_parser('set-role', help='assign a role without hierarchy checks')
    srole.add_argument('email')
    srole.add_argument('role', choices=[r.value for r in Role])

    sub.add_parser('cleanup', help='cancel matches whose start time has passed')

    board = sub.add_parser('leaderboard')
    board.add_argument('--limit', type=int)

    pre = sub.add_parser('preview', help='show rating changes for both outcomes')
    pre.add_argument('rating_a', type=int)
    pre.add_argument('games_a', type=int)
    pre.add_argument('rating_b', type=int)
    pre.add_argument('games_b', type=int)

    args = parser.parse_args(argv)
    setup_logging()

    try:
        if args.cmd == 'set-role':
            user = set_role(args.email, args.role)
            print(f"{user['email']} is now {user['role']}")
        elif args.cmd == 'cleanup':
            print(f"Expired {cleanup_expired_matches()} matches")
        elif args.cmd == 'leaderboard':
            print_leaderboard(args.limit)
        elif args.cmd == 'preview':
            print_preview(args.rating_a, args.games_a, args.rating_b, args.games_b)
    except ServiceError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
