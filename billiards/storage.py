import json
import datetime
import logging
import pickle
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras
import redis

from .config import (
    DB_FILE,
    get_database_url,
    get_redis_url,
    get_cache_ttl,
)
from .models import (
    Match,
    MatchResult,
    MatchStatus,
    MatchType,
    PlayerStats,
    Role,
    User,
)

logger = logging.getLogger(__name__)

# ``DB_FILE`` is imported from ``billiards.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")

# Optional Redis cache
REDIS_URL = get_redis_url()
CACHE_TTL = get_cache_ttl()
_redis = redis.from_url(REDIS_URL) if REDIS_URL else None

LEADERBOARD_KEY = "billiards:leaderboard"


def _user_key(user_id: str) -> str:
    return f"billiards:user:{user_id}"


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def executemany(self, query, seq):
        q = query.replace("?", "%s")
        self._c.executemany(q, seq)
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def execute(self, query, params=None):
        return self.cursor().execute(query, params)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


# Objects to push to the cache once the surrounding transaction commits,
# tracked per thread since request handlers run in a thread pool.
# ``None`` marks a deletion.
_local = threading.local()

# per-resource mutexes guarding validate-then-commit sequences
_resource_locks: Dict[str, threading.Lock] = {}
_resource_locks_guard = threading.Lock()


def _load_cache(key: str):
    if not _redis:
        return None
    try:
        data = _redis.get(key)
    except redis.RedisError:
        logger.warning("redis read failed for %s", key, exc_info=True)
        return None
    if data is None:
        return None
    return pickle.loads(data)


def _save_cache(key: str, value: object) -> None:
    if not _redis:
        return
    try:
        _redis.setex(key, CACHE_TTL, pickle.dumps(value))
    except redis.RedisError:
        logger.warning("redis write failed for %s", key, exc_info=True)


def _delete_cache(key: str) -> None:
    if not _redis:
        return
    try:
        _redis.delete(key)
    except redis.RedisError:
        logger.warning("redis delete failed for %s", key, exc_info=True)


def _pending_users() -> Dict[str, User | None]:
    if not hasattr(_local, "users"):
        _local.users = {}
    return _local.users


def _mark_leaderboard_dirty() -> None:
    _local.leaderboard_dirty = True


def utcnow() -> datetime.datetime:
    """Return the current UTC time as a naive datetime, the form stored in the DB."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _refresh_after_write() -> None:
    """Flush pending objects to the Redis cache."""
    pending = _pending_users()
    for user_id, user in list(pending.items()):
        if user is None:
            _delete_cache(_user_key(user_id))
        else:
            _save_cache(_user_key(user_id), user)
    if pending or getattr(_local, "leaderboard_dirty", False):
        _delete_cache(LEADERBOARD_KEY)
    _discard_pending()


def _discard_pending() -> None:
    _pending_users().clear()
    _local.leaderboard_dirty = False


def invalidate_cache() -> None:
    """Drop every cached user and the cached leaderboard."""
    _discard_pending()
    if not _redis:
        return
    try:
        for key in _redis.scan_iter("billiards:*"):
            _redis.delete(key)
    except redis.RedisError:
        logger.warning("redis invalidation failed", exc_info=True)


def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        _init_schema(conn)
        return _PgConnection(conn)
    path = DB_FILE
    if DATABASE_URL.startswith("sqlite://"):
        path = Path(urlparse(DATABASE_URL).path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    _init_schema(conn)
    return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection with an active transaction."""
    conn = _connect()
    try:
        yield conn
        conn.commit()
        _refresh_after_write()
    except Exception:
        conn.rollback()
        _discard_pending()
        raise
    finally:
        conn.close()


def _resource_lock(key: str) -> threading.Lock:
    with _resource_locks_guard:
        lock = _resource_locks.get(key)
        if lock is None:
            lock = _resource_locks[key] = threading.Lock()
        return lock


@contextmanager
def locked(*keys: str) -> Generator[object, None, None]:
    """Hold the locks for ``keys`` around a transaction and yield its connection.

    Reads done on the yielded connection and the writes that depend on them
    commit as one unit with respect to other ``locked`` sections on the same
    keys. Locks are taken in sorted order so overlapping key sets cannot
    deadlock. On PostgreSQL transaction-scoped advisory locks extend the
    guarantee across processes.
    """
    ordered = sorted(set(keys))
    held: List[threading.Lock] = []
    try:
        for key in ordered:
            lock = _resource_lock(key)
            lock.acquire()
            held.append(lock)
        with transaction() as conn:
            if IS_PG:
                cur = conn.cursor()
                for key in ordered:
                    cur.execute("SELECT pg_advisory_xact_lock(hashtext(?))", (key,))
            yield conn
    finally:
        for lock in reversed(held):
            lock.release()


def _init_schema(conn) -> None:
    cur = conn.cursor()
    id_column = "id SERIAL PRIMARY KEY" if IS_PG else "id INTEGER PRIMARY KEY AUTOINCREMENT"
    cur.execute(
        """CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT UNIQUE,
        password_hash TEXT,
        student_id TEXT UNIQUE,
        role TEXT DEFAULT 'member',
        elo INTEGER DEFAULT 1200,
        games_played INTEGER DEFAULT 0,
        wins INTEGER DEFAULT 0,
        losses INTEGER DEFAULT 0,
        created_ts TEXT
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS matches (
        {id_column},
        type TEXT,
        datetime TEXT,
        duration INTEGER,
        location TEXT,
        creator TEXT,
        status TEXT,
        is_ranked INTEGER DEFAULT 0,
        is_deleted INTEGER DEFAULT 0,
        data TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT,
        ts TEXT
    )"""
    )
    conn.commit()


def _run(conn, fn):
    """Call ``fn(conn)`` on ``conn`` or on a fresh auto-committed connection."""
    if conn is not None:
        return fn(conn)
    own = _connect()
    try:
        result = fn(own)
        own.commit()
        _refresh_after_write()
        return result
    except Exception:
        own.rollback()
        _discard_pending()
        raise
    finally:
        own.close()


# --- users -----------------------------------------------------------------

def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        student_id=row["student_id"],
        role=Role(row["role"]),
        stats=PlayerStats(
            elo=row["elo"],
            games_played=row["games_played"],
            wins=row["wins"],
            losses=row["losses"],
        ),
        created_ts=datetime.datetime.fromisoformat(row["created_ts"]),
    )


def create_user(user: User, conn=None) -> None:
    """Insert a new user record."""

    def _insert(c):
        c.cursor().execute(
            """INSERT INTO users(user_id, name, email, password_hash, student_id, role,
            elo, games_played, wins, losses, created_ts) VALUES (?,?,?,?,?,?,?,?,?,?,?)""",
            (
                user.user_id,
                user.name,
                user.email,
                user.password_hash,
                user.student_id,
                Role(user.role).value,
                user.stats.elo,
                user.stats.games_played,
                user.stats.wins,
                user.stats.losses,
                user.created_ts.isoformat(),
            ),
        )
        _pending_users()[user.user_id] = user

    _run(conn, _insert)


def update_user_role(user_id: str, role: Role, conn=None) -> None:
    """Persist only the role column of a user."""

    def _update(c):
        c.cursor().execute(
            "UPDATE users SET role = ? WHERE user_id = ?", (Role(role).value, user_id)
        )
        # the cached copy is reloaded on next read
        _pending_users()[user_id] = None

    _run(conn, _update)


def update_user_stats(user_id: str, stats: PlayerStats, conn=None) -> None:
    """Persist only the rating and win/loss columns of a user."""

    def _update(c):
        c.cursor().execute(
            "UPDATE users SET elo = ?, games_played = ?, wins = ?, losses = ? WHERE user_id = ?",
            (stats.elo, stats.games_played, stats.wins, stats.losses, user_id),
        )
        _pending_users()[user_id] = None

    _run(conn, _update)


def delete_user(user_id: str, conn=None) -> None:
    """Remove a user and every token issued to them."""

    def _delete(c):
        cur = c.cursor()
        cur.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
        cur.execute("DELETE FROM auth_tokens WHERE user_id = ?", (user_id,))
        _pending_users()[user_id] = None

    _run(conn, _delete)


def get_user(user_id: str, conn=None) -> User | None:
    """Return a single :class:`User` by id or ``None`` if not found.

    Reads made on a transaction connection bypass the cache so the caller
    sees the state it is about to modify.
    """
    if conn is None:
        cached = _load_cache(_user_key(user_id))
        if cached is not None:
            return cached

    def _select(c):
        return c.cursor().execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()

    row = _run(conn, _select)
    if not row:
        return None
    user = _row_to_user(row)
    if conn is None:
        _save_cache(_user_key(user_id), user)
    return user


def _get_user_by(column: str, value: str, conn=None) -> User | None:
    def _select(c):
        return c.cursor().execute(f"SELECT * FROM users WHERE {column} = ?", (value,)).fetchone()

    row = _run(conn, _select)
    return _row_to_user(row) if row else None


def get_user_by_email(email: str, conn=None) -> User | None:
    return _get_user_by("email", email, conn)


def get_user_by_student_id(student_id: str, conn=None) -> User | None:
    return _get_user_by("student_id", student_id, conn)


def load_users(conn=None) -> Dict[str, User]:
    """Return all users keyed by id."""

    def _select(c):
        return c.cursor().execute("SELECT * FROM users ORDER BY created_ts, user_id").fetchall()

    return {row["user_id"]: _row_to_user(row) for row in _run(conn, _select)}


def count_users(conn=None) -> int:
    def _select(c):
        row = c.cursor().execute("SELECT COUNT(*) AS n FROM users").fetchone()
        return row["n"]

    return _run(conn, _select)


def count_users_by_role(conn=None) -> Dict[Role, int]:
    """Return the number of users holding each role."""

    def _select(c):
        return c.cursor().execute("SELECT role, COUNT(*) AS n FROM users GROUP BY role").fetchall()

    counts = {role: 0 for role in Role}
    for row in _run(conn, _select):
        counts[Role(row["role"])] = row["n"]
    return counts


# --- matches ---------------------------------------------------------------

def _ts(value: datetime.datetime) -> str:
    return value.isoformat(timespec="seconds")


def _match_data(match: Match) -> str:
    result = None
    if match.result:
        result = {
            "winners": match.result.winners,
            "losers": match.result.losers,
            "score": match.result.score,
            "recorded_by": match.result.recorded_by,
            "recorded_at": match.result.recorded_at.isoformat(),
        }
    return json.dumps(
        {
            "players": match.players,
            "result": result,
            "created_ts": match.created_ts.isoformat(),
        }
    )


def _row_to_match(row) -> Match:
    data = json.loads(row["data"] or "{}")
    result = None
    if data.get("result"):
        r = data["result"]
        result = MatchResult(
            winners=r["winners"],
            losers=r["losers"],
            score=r.get("score"),
            recorded_by=r["recorded_by"],
            recorded_at=datetime.datetime.fromisoformat(r["recorded_at"]),
        )
    return Match(
        id=row["id"],
        type=MatchType(row["type"]),
        datetime=datetime.datetime.fromisoformat(row["datetime"]),
        duration_minutes=row["duration"],
        location=row["location"],
        creator=row["creator"],
        status=MatchStatus(row["status"]),
        is_ranked=bool(row["is_ranked"]),
        is_deleted=bool(row["is_deleted"]),
        players=list(data.get("players", [])),
        result=result,
        created_ts=datetime.datetime.fromisoformat(data["created_ts"]) if data.get("created_ts") else utcnow(),
    )


def create_match(match: Match, conn=None) -> int:
    """Insert a match record and return its id."""

    def _insert(c):
        row = c.cursor().execute(
            """INSERT INTO matches(type, datetime, duration, location, creator, status,
            is_ranked, is_deleted, data) VALUES (?,?,?,?,?,?,?,?,?) RETURNING id""",
            (
                MatchType(match.type).value,
                _ts(match.datetime),
                match.duration_minutes,
                match.location,
                match.creator,
                MatchStatus(match.status).value,
                int(match.is_ranked),
                int(match.is_deleted),
                _match_data(match),
            ),
        ).fetchone()
        return row["id"]

    match.id = _run(conn, _insert)
    return match.id


def update_match_record(match: Match, conn=None) -> None:
    """Persist the mutable fields of ``match``."""
    def _update(c):
        c.cursor().execute(
            """UPDATE matches SET datetime = ?, duration = ?, location = ?, status = ?,
            is_ranked = ?, is_deleted = ?, data = ? WHERE id = ?""",
            (
                _ts(match.datetime),
                match.duration_minutes,
                match.location,
                MatchStatus(match.status).value,
                int(match.is_ranked),
                int(match.is_deleted),
                _match_data(match),
                match.id,
            ),
        )

    if match.result is not None:
        _mark_leaderboard_dirty()
    _run(conn, _update)


def get_match(match_id: int, conn=None) -> Match | None:
    def _select(c):
        return c.cursor().execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()

    row = _run(conn, _select)
    return _row_to_match(row) if row else None


def list_matches(
    statuses: Iterable[MatchStatus] | None = None,
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
    conn=None,
) -> List[Match]:
    """Return matches ordered by start time, optionally filtered.

    ``start`` and ``end`` bound the scheduled start time inclusively.
    """
    clauses = []
    params: list = []
    if statuses is not None:
        values = [MatchStatus(s).value for s in statuses]
        if not values:
            return []
        clauses.append(f"status IN ({','.join('?' for _ in values)})")
        params.extend(values)
    if start is not None:
        clauses.append("datetime >= ?")
        params.append(_ts(start))
    if end is not None:
        clauses.append("datetime <= ?")
        params.append(_ts(end))
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

    def _select(c):
        return c.cursor().execute(f"SELECT * FROM matches{where} ORDER BY datetime, id", params).fetchall()

    return [_row_to_match(row) for row in _run(conn, _select)]


def expire_matches(now: datetime.datetime, conn=None) -> int:
    """Cancel and hide open or filled matches that should already have started."""

    def _update(c):
        cur = c.cursor()
        cur.execute(
            """UPDATE matches SET status = ?, is_deleted = 1
            WHERE datetime < ? AND status IN (?, ?) AND is_deleted = 0""",
            (
                MatchStatus.CANCELLED.value,
                _ts(now),
                MatchStatus.OPEN.value,
                MatchStatus.FILLED.value,
            ),
        )
        return cur.rowcount

    return _run(conn, _update)


# --- tokens ----------------------------------------------------------------

def insert_token(token: str, user_id: str, conn=None) -> None:
    """Persist an authentication token."""

    def _insert(c):
        c.cursor().execute(
            "INSERT INTO auth_tokens(token, user_id, ts) VALUES (?,?,?)",
            (token, user_id, utcnow().isoformat()),
        )

    _run(conn, _insert)


def get_token(token: str) -> tuple[str, datetime.datetime] | None:
    """Retrieve a ``(user_id, timestamp)`` tuple for the token."""

    def _select(c):
        return c.cursor().execute("SELECT user_id, ts FROM auth_tokens WHERE token = ?", (token,)).fetchone()

    row = _run(None, _select)
    if not row:
        return None
    return row["user_id"], datetime.datetime.fromisoformat(row["ts"])


def delete_token(token: str) -> None:
    """Remove an authentication token."""
    _run(None, lambda c: c.cursor().execute("DELETE FROM auth_tokens WHERE token = ?", (token,)))


# --- leaderboard cache -----------------------------------------------------

def get_cached_leaderboard() -> Optional[list]:
    return _load_cache(LEADERBOARD_KEY)


def set_cached_leaderboard(entries: list) -> None:
    _save_cache(LEADERBOARD_KEY, entries)
