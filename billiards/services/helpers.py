from .exceptions import ServiceError
from .. import storage
from ..models import User, Match


def get_user_or_404(user_id: str, conn=None) -> User:
    user = storage.get_user(user_id, conn=conn)
    if not user:
        raise ServiceError("User not found", 404)
    return user


def get_match_or_404(match_id: int, conn=None) -> Match:
    match = storage.get_match(match_id, conn=conn)
    if not match:
        raise ServiceError("Match not found", 404)
    return match
