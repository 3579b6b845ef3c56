import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from prestige_assistant.entities import Event, Transaction, UserProfile
from prestige_assistant.normalizer import reference_id

logger = logging.getLogger(__name__)

SNAPSHOT_HEADER = "DATA_SNAPSHOT:\n"
DEFAULT_CONTEXT_LIMIT = 200

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------
def is_upcoming(event: Event, now: datetime) -> bool:
    """Starts at or after ``now``, has only a future end, or is in progress."""
    start, end = event.start_time, event.end_time
    if start is not None and start >= now:
        return True
    if start is None and end is not None and end >= now:
        return True
    return start is not None and end is not None and start < now <= end


def _upcoming_key(event: Event) -> tuple[int, datetime]:
    moment = event.start_time or event.end_time
    # Events without timestamps go after every dated one
    return (0, moment) if moment is not None else (1, EPOCH)


def _past_key(event: Event) -> datetime:
    return event.end_time or event.start_time or EPOCH


def split_events(
    events: Iterable[Event], now: datetime
) -> tuple[list[Event], list[Event]]:
    """Partition into (upcoming, past).

    Upcoming is sorted soonest first, past most recent first. Both sorts are
    stable, so equal keys keep backend order.
    """
    upcoming: list[Event] = []
    past: list[Event] = []
    for event in events:
        (upcoming if is_upcoming(event, now) else past).append(event)
    upcoming.sort(key=_upcoming_key)
    past.sort(key=_past_key, reverse=True)
    return upcoming, past


def events_organized_by(events: Iterable[Event], profile: Optional[UserProfile]) -> list[Event]:
    """Events owned by the profile or listing it among the organizers."""
    my_id = profile.id if profile else None
    if not my_id:
        return []

    def _organizes(event: Event) -> bool:
        if event.owner_id is not None and event.owner_id == my_id:
            return True
        for organizer in event.organizers:
            ref = reference_id(organizer)
            if ref is not None and str(ref) == my_id:
                return True
        return False

    return [e for e in events if _organizes(e)]


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------
def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


def event_summary(event: Event) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "location": event.location,
        "startTime": _iso(event.start_time),
        "endTime": _iso(event.end_time),
        "capacity": event.capacity,
        "guestsCount": event.guests_count,
        "published": event.published,
        "meRsvped": event.registered,
    }


def transaction_summary(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "type": txn.type,
        "points": txn.points,
        "createdAt": _iso(txn.created_at),
        "note": txn.note,
        "eventId": txn.event_id,
    }


def profile_summary(profile: UserProfile) -> dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "utorid": profile.username,
        "role": profile.role,
        "points": profile.points,
    }


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Snapshot:
    """Derived views of one user's data plus the bounded grounding payload.

    The event lists hold every matching event; only ``payload`` is capped.
    """

    profile: UserProfile
    events: list[Event]
    upcoming: list[Event]
    past: list[Event]
    rsvps: list[Event]
    organizing: list[Event]
    transactions: list[Transaction]
    payload: dict
    warnings: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict:
        return self.payload["counts"]

    def render(self) -> str:
        """Serialize the payload for the completion service."""
        return SNAPSHOT_HEADER + json.dumps(self.payload, indent=2, ensure_ascii=False)


def build_snapshot(
    profile: UserProfile,
    events: Sequence[Event],
    transactions: Sequence[Transaction],
    now: datetime,
    context_limit: int = DEFAULT_CONTEXT_LIMIT,
    warnings: Iterable[str] = (),
) -> Snapshot:
    """Partition, derive and cap the user's data into a grounding snapshot.

    Counts are taken over the full lists so they stay accurate when the
    listed entries are truncated to ``context_limit``.
    """
    upcoming, past = split_events(events, now)
    rsvps = [e for e in events if e.registered]
    organizing = events_organized_by(events, profile)
    warnings = list(warnings)

    def cap(items: Sequence) -> Sequence:
        return items[:context_limit]

    payload = {
        "user": profile_summary(profile),
        "counts": {
            "totalEvents": len(events),
            "upcoming": len(upcoming),
            "past": len(past),
            "rsvps": len(rsvps),
            "organizing": len(organizing),
            "transactions": len(transactions),
        },
        "rsvps": [event_summary(e) for e in cap(rsvps)],
        "organizing": [event_summary(e) for e in cap(organizing)],
        "upcoming": [event_summary(e) for e in cap(upcoming)],
        "past": [event_summary(e) for e in cap(past)],
        "transactions": [transaction_summary(t) for t in cap(transactions)],
    }
    if warnings:
        payload["warnings"] = warnings

    logger.debug(
        "build_snapshot() user=%s counts=%s limit=%d",
        profile.id, payload["counts"], context_limit,
    )
    return Snapshot(
        profile=profile,
        events=list(events),
        upcoming=upcoming,
        past=past,
        rsvps=rsvps,
        organizing=organizing,
        transactions=list(transactions),
        payload=payload,
        warnings=warnings,
    )
