from __future__ import annotations
import logging
import secrets
import uuid
from passlib.context import CryptContext
from .exceptions import ServiceError
from .helpers import get_user_or_404
from .. import storage
from ..models import User, Role
from ..roles import permissions_for

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(user: User, password: str) -> bool:
    try:
        return pwd_context.verify(password, user.password_hash)
    except ValueError:
        return False


def user_summary(user: User) -> dict[str, object]:
    """Public view of a user, without credentials."""
    return {
        "user_id": user.user_id,
        "name": user.name,
        "email": user.email,
        "student_id": user.student_id,
        "is_admin": user.is_admin,
        "role": user.role.value,
        "stats": {
            "elo": user.stats.elo,
            "games_played": user.stats.games_played,
            "wins": user.stats.wins,
            "losses": user.stats.losses,
        },
    }


def _issue_token(user: User) -> dict[str, object]:
    token = secrets.token_hex(16)
    storage.insert_token(token, user.user_id)
    return {"token": token, **user_summary(user)}


def register(name: str, email: str, password: str, student_id: str) -> dict[str, object]:
    """Create an account and return a logged-in session for it.

    The first account in an empty club becomes its leader.
    """
    email = email.strip().lower()
    with storage.locked("users") as conn:
        if storage.get_user_by_email(email, conn=conn):
            raise ServiceError("User already exists", 400)
        if storage.get_user_by_student_id(student_id, conn=conn):
            raise ServiceError("Student ID already registered", 400)
        first = storage.count_users(conn=conn) == 0
        user = User(
            user_id=uuid.uuid4().hex,
            name=name,
            email=email,
            password_hash=hash_password(password),
            student_id=student_id,
            role=Role.LEADER if first else Role.MEMBER,
        )
        storage.create_user(user, conn=conn)
    logger.info("registered user %s (%s)", user.user_id, user.role.value)
    return _issue_token(user)


def login(email: str, password: str) -> dict[str, object]:
    user = storage.get_user_by_email(email.strip().lower())
    if not user:
        raise ServiceError("User not found", 400)
    if not check_password(user, password):
        raise ServiceError("Invalid credentials", 400)
    return _issue_token(user)


def logout(token: str) -> None:
    storage.delete_token(token)


def user_info(user_id: str) -> dict[str, object]:
    return user_summary(get_user_or_404(user_id))


def list_users(actor_id: str) -> list[dict[str, object]]:
    """Return every account; restricted to roles that manage members."""
    actor = get_user_or_404(actor_id)
    if not permissions_for(actor.role).can_manage_members:
        raise ServiceError("Admin access required", 403)
    return [user_summary(u) for u in storage.load_users().values()]
