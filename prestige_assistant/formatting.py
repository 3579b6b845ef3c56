import logging
from datetime import datetime, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from prestige_assistant.entities import Event

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> Optional[tzinfo]:
    """ZoneInfo for an IANA name; None (host local time) when empty or unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown DISPLAY_TIMEZONE %r, using host local time", name)
        return None


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def fmt_date(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """'Oct 19'"""
    local = moment.astimezone(tz)
    return f"{local:%b} {local.day}"


def fmt_time(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """'3:05 PM'"""
    local = moment.astimezone(tz)
    hour = local.hour % 12 or 12
    return f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"


def time_range(event: Event, tz: Optional[tzinfo] = None) -> str:
    start, end = event.start_time, event.end_time
    if start is not None and end is not None:
        return f"{fmt_date(start, tz)} {fmt_time(start, tz)}–{fmt_time(end, tz)}"
    if start is not None:
        return f"{fmt_date(start, tz)} {fmt_time(start, tz)}"
    return ""


def format_event_line(event: Event, tz: Optional[tzinfo] = None) -> str:
    when = time_range(event, tz)
    line = f"• {event.name}"
    if when:
        line += f" — {when}"
    if event.location:
        line += f" @ {event.location}"
    if event.guests_count is not None and event.capacity is not None:
        line += f" ({event.guests_count}/{event.capacity})"
    return line


def format_events_list(events: Iterable[Event], tz: Optional[tzinfo] = None) -> str:
    return "\n".join(format_event_line(e, tz) for e in events)
