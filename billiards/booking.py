from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .models import MatchSnapshot, MatchStatus, TimeSlot

# Padding kept free before and after every match for table turnover
BUFFER_MINUTES = 30

PLAYER_CONFLICT_ERROR = "Player has a conflicting match"
LOCATION_CONFLICT_ERROR = "Location is not available at this time"


@dataclass(frozen=True)
class BookingConfig:
    buffer_minutes: int = BUFFER_MINUTES


DEFAULT_CONFIG = BookingConfig()


@dataclass(frozen=True)
class PlayerConflict:
    has_conflict: bool
    conflicting_match: Optional[MatchSnapshot] = None


@dataclass(frozen=True)
class LocationAvailability:
    is_available: bool
    conflicting_match: Optional[MatchSnapshot] = None


@dataclass(frozen=True)
class BookingVerdict:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    conflicting_match: Optional[MatchSnapshot] = None


def time_slot_with_buffer(match: MatchSnapshot, config: BookingConfig = DEFAULT_CONFIG) -> TimeSlot:
    """Return the interval a match occupies, padded by the buffer on both sides."""
    buffer = datetime.timedelta(minutes=config.buffer_minutes)
    start = match.datetime - buffer
    end = match.datetime + datetime.timedelta(minutes=match.duration_minutes) + buffer
    return TimeSlot(start=start, end=end)


def slots_overlap(slot1: TimeSlot, slot2: TimeSlot) -> bool:
    """Return True if the slots intersect. Touching endpoints do not count."""
    return slot1.start < slot2.end and slot2.start < slot1.end


def _competing(proposed: MatchSnapshot, candidates: Iterable[MatchSnapshot]):
    for match in candidates:
        if match.status == MatchStatus.CANCELLED:
            continue
        if proposed.id is not None and match.id == proposed.id:
            continue
        yield match


def has_conflicting_matches(
    player_id: str,
    proposed: MatchSnapshot,
    candidates: Iterable[MatchSnapshot],
    config: BookingConfig = DEFAULT_CONFIG,
) -> PlayerConflict:
    """Return the first candidate that clashes with ``proposed`` for ``player_id``.

    Candidates are scanned in the order given, so callers should pass them in
    a stable (e.g. chronological) order.
    """
    proposed_slot = time_slot_with_buffer(proposed, config)
    for match in _competing(proposed, candidates):
        if player_id not in match.players:
            continue
        if slots_overlap(proposed_slot, time_slot_with_buffer(match, config)):
            return PlayerConflict(has_conflict=True, conflicting_match=match)
    return PlayerConflict(has_conflict=False)


def is_location_available(
    location: str,
    proposed: MatchSnapshot,
    candidates: Iterable[MatchSnapshot],
    config: BookingConfig = DEFAULT_CONFIG,
) -> LocationAvailability:
    """Return whether ``location`` is free for the proposed match's slot."""
    proposed_slot = time_slot_with_buffer(proposed, config)
    for match in _competing(proposed, candidates):
        if match.location != location:
            continue
        if slots_overlap(proposed_slot, time_slot_with_buffer(match, config)):
            return LocationAvailability(is_available=False, conflicting_match=match)
    return LocationAvailability(is_available=True)


def validate_booking(
    proposed: MatchSnapshot,
    candidates: Iterable[MatchSnapshot],
    config: BookingConfig = DEFAULT_CONFIG,
) -> BookingVerdict:
    """Check every player and the location of ``proposed`` for clashes.

    Only the first conflicting player is reported. The location check runs
    regardless, and when it fails its conflicting match replaces the one
    found for a player.
    """
    candidates = list(candidates)
    errors: List[str] = []
    conflicting: Optional[MatchSnapshot] = None

    for player_id in sorted(proposed.players):
        found = has_conflicting_matches(player_id, proposed, candidates, config)
        if found.has_conflict:
            errors.append(PLAYER_CONFLICT_ERROR)
            conflicting = found.conflicting_match
            break

    location = is_location_available(proposed.location, proposed, candidates, config)
    if not location.is_available:
        errors.append(LOCATION_CONFLICT_ERROR)
        conflicting = location.conflicting_match

    return BookingVerdict(is_valid=not errors, errors=errors, conflicting_match=conflicting)


def candidate_window(
    when: datetime.datetime, duration_minutes: int, max_duration_minutes: int, config: BookingConfig = DEFAULT_CONFIG
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the start-time range an existing match must fall in to possibly clash.

    Anything starting outside this window cannot overlap a match at ``when``
    lasting ``duration_minutes`` once both are buffered.
    """
    pad = datetime.timedelta(minutes=2 * config.buffer_minutes)
    earliest = when - datetime.timedelta(minutes=max_duration_minutes) - pad
    latest = when + datetime.timedelta(minutes=duration_minutes) + pad
    return earliest, latest
