from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from typing import List, Optional, FrozenSet

# Rating given to every newly registered player
DEFAULT_RATING = 1200

# Limits on a single match booking, in minutes. The upper bound also sizes
# the candidate window the storage layer fetches for conflict checks.
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480
DEFAULT_DURATION_MINUTES = 60


class MatchStatus(str, enum.Enum):
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MatchType(str, enum.Enum):
    SINGLES = "1v1"
    DOUBLES = "2v2"


# players needed to fill a match of each type
MATCH_CAPACITY = {
    MatchType.SINGLES: 2,
    MatchType.DOUBLES: 4,
}


class Role(str, enum.Enum):
    """Club roles, listed from least to most privileged."""

    MEMBER = "member"
    OFFICER = "officer"
    CO_LEADER = "co_leader"
    LEADER = "leader"


@dataclass
class PlayerStats:
    elo: int = DEFAULT_RATING
    games_played: int = 0
    wins: int = 0
    losses: int = 0


@dataclass
class User:
    """Account data for authentication, role and rating."""

    user_id: str
    name: str
    email: str
    password_hash: str
    student_id: str
    role: Role = Role.MEMBER
    stats: PlayerStats = field(default_factory=PlayerStats)
    created_ts: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def is_admin(self) -> bool:
        return self.role != Role.MEMBER


@dataclass(frozen=True)
class TimeSlot:
    start: datetime.datetime
    end: datetime.datetime


@dataclass(frozen=True)
class MatchSnapshot:
    """Read-only view of a match used by the booking checks.

    ``players`` holds canonical user ids; callers resolve any richer player
    objects before building a snapshot.
    """

    id: Optional[int]
    datetime: datetime.datetime
    duration_minutes: int
    location: str
    status: MatchStatus = MatchStatus.OPEN
    players: FrozenSet[str] = frozenset()


@dataclass
class MatchResult:
    winners: List[str]
    losers: List[str]
    recorded_by: str
    score: Optional[str] = None
    recorded_at: datetime.datetime = field(default_factory=datetime.datetime.now)


@dataclass
class Match:
    type: MatchType
    datetime: datetime.datetime
    location: str
    creator: str
    players: List[str] = field(default_factory=list)
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    status: MatchStatus = MatchStatus.OPEN
    is_ranked: bool = False
    is_deleted: bool = False
    result: Optional[MatchResult] = None
    id: Optional[int] = None
    created_ts: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def capacity(self) -> int:
        return MATCH_CAPACITY[MatchType(self.type)]

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.capacity

    def snapshot(self, players: List[str] | None = None) -> MatchSnapshot:
        """Return a :class:`MatchSnapshot`, optionally with a different roster."""
        return MatchSnapshot(
            id=self.id,
            datetime=self.datetime,
            duration_minutes=self.duration_minutes,
            location=self.location,
            status=MatchStatus(self.status),
            players=frozenset(self.players if players is None else players),
        )
