"""Map backend records of any vintage onto the canonical entities.

The backend has renamed fields across versions, so every canonical field is
looked up through a fixed priority list of alternate names; the first value
that is present and not ``None`` wins. Every function here is total: any
input, including a non-mapping, produces a canonical record.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from prestige_assistant.entities import Event, Transaction, UserProfile

logger = logging.getLogger(__name__)

_MISSING = object()

# -------- Event field priorities --------
EVENT_ID_FIELDS = ("id", "_id", "eventId", "uuid")
EVENT_NAME_FIELDS = ("name", "title")
EVENT_DESCRIPTION_FIELDS = (
    "description", "eventDescription", "longDescription", "details", "summary", "desc",
)
EVENT_LOCATION_FIELDS = ("location", "where")
EVENT_START_FIELDS = ("startTime", "start_time")
EVENT_END_FIELDS = ("endTime", "end_time")
EVENT_GUEST_COUNT_FIELDS = ("guestsCount", "guests_count", "numGuests")
EVENT_PUBLISHED_FIELDS = ("published", "isPublished", "is_published")
EVENT_REGISTERED_FIELDS = ("meRsvped", "rsvped", "isRsvped", "registered")
EVENT_OWNER_FIELDS = ("ownerId", "createdBy", "owner")
GUEST_IDENTITY_FIELDS = ("id", "userId", "utorid", "email")
REFERENCE_ID_FIELDS = ("id", "userId", "_id")

# -------- Transaction field priorities --------
TRANSACTION_ID_FIELDS = ("id", "_id", "uuid")
TRANSACTION_POINTS_FIELDS = ("points", "amount")
TRANSACTION_TYPE_FIELDS = ("type", "kind")
TRANSACTION_TIME_FIELDS = ("createdAt", "time", "date")
TRANSACTION_NOTE_FIELDS = ("note", "reason")

# -------- Profile field priorities --------
PROFILE_ID_FIELDS = ("id", "_id")
PROFILE_USERNAME_FIELDS = ("utorid", "utorId", "username")
PROFILE_NAME_FIELDS = ("name", "fullName", "displayName")
PROFILE_POINTS_FIELDS = ("points", "balance")


def first_present(record: Mapping, fields: Iterable[str], default: Any = None) -> Any:
    """Return the first value among ``fields`` that exists and is not None."""
    for field in fields:
        value = record.get(field, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def _as_mapping(record: Any) -> Mapping:
    return record if isinstance(record, Mapping) else {}


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Naive values are taken as UTC. Anything unparseable yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable timestamp: %r", text[:50])
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Identity matching
# ---------------------------------------------------------------------------
def is_me(value: Any, profile: Optional[UserProfile]) -> bool:
    """True when ``value`` names the profile by id or username, ignoring case."""
    if profile is None or value is None:
        return False
    v = str(value).lower()
    if not v:
        return False
    my_id = (profile.id or "").lower()
    my_username = (profile.username or "").lower()
    return (bool(my_id) and v == my_id) or (bool(my_username) and v == my_username)


def _guest_identity(guest: Any) -> Any:
    if isinstance(guest, Mapping):
        return first_present(guest, GUEST_IDENTITY_FIELDS)
    return None


def reference_id(value: Any) -> Any:
    """Unwrap a user reference that may be a bare id or a nested user object."""
    if isinstance(value, Mapping):
        return first_present(value, REFERENCE_ID_FIELDS)
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
def normalize_profile(raw: Any, fallback_id: Optional[str] = None) -> UserProfile:
    record = _as_mapping(raw)
    return UserProfile(
        id=_as_str(first_present(record, PROFILE_ID_FIELDS, fallback_id)),
        username=_as_str(first_present(record, PROFILE_USERNAME_FIELDS)),
        name=_as_str(first_present(record, PROFILE_NAME_FIELDS)),
        role=_as_str(record.get("role")),
        points=_as_int(first_present(record, PROFILE_POINTS_FIELDS)),
    )


def normalize_event(raw: Any, profile: Optional[UserProfile] = None) -> Event:
    record = _as_mapping(raw)

    guests = record.get("guests")
    guests = guests if isinstance(guests, list) else []
    guests_count = _as_int(first_present(record, EVENT_GUEST_COUNT_FIELDS))
    if guests_count is None and isinstance(record.get("guests"), list):
        guests_count = len(guests)

    registered = bool(first_present(record, EVENT_REGISTERED_FIELDS, False)) or any(
        is_me(_guest_identity(g), profile) for g in guests
    )

    if isinstance(record.get("organizers"), list):
        organizers = list(record["organizers"])
    elif isinstance(record.get("organiser"), list):
        organizers = list(record["organiser"])
    else:
        organizers = []

    published = first_present(record, EVENT_PUBLISHED_FIELDS)

    return Event(
        id=_as_str(first_present(record, EVENT_ID_FIELDS)),
        name=_as_text(first_present(record, EVENT_NAME_FIELDS, "Untitled event")),
        description=_as_text(first_present(record, EVENT_DESCRIPTION_FIELDS, "")),
        location=_as_text(first_present(record, EVENT_LOCATION_FIELDS, "")),
        start_time=parse_timestamp(first_present(record, EVENT_START_FIELDS)),
        end_time=parse_timestamp(first_present(record, EVENT_END_FIELDS)),
        capacity=_as_int(record.get("capacity")),
        guests_count=guests_count,
        published=None if published is None else bool(published),
        registered=registered,
        organizers=organizers,
        owner_id=_as_str(reference_id(first_present(record, EVENT_OWNER_FIELDS))),
    )


def normalize_transaction(raw: Any) -> Transaction:
    record = _as_mapping(raw)
    return Transaction(
        id=_as_str(first_present(record, TRANSACTION_ID_FIELDS)),
        points=_as_int(first_present(record, TRANSACTION_POINTS_FIELDS)) or 0,
        type=_as_text(first_present(record, TRANSACTION_TYPE_FIELDS, "")),
        created_at=parse_timestamp(first_present(record, TRANSACTION_TIME_FIELDS)),
        note=_as_text(first_present(record, TRANSACTION_NOTE_FIELDS, "")),
        event_id=_as_str(record.get("eventId")),
    )
