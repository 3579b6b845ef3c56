import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 3
MAX_RESULT_LIMIT = 20


class Intent(str, Enum):
    UPCOMING_EVENTS = "upcoming"
    MY_RSVPS = "my-rsvps"
    MY_ORGANIZING = "organizing"
    GENERAL = "general"


class DateRange(NamedTuple):
    start: datetime
    end: datetime

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment <= self.end


@dataclass(frozen=True)
class IntentMatch:
    intent: Intent
    limit: int = DEFAULT_RESULT_LIMIT
    date_range: Optional[DateRange] = None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
_CURLY_QUOTES_RE = re.compile("[‘’]")
_RSVPED_RE = re.compile(r"rsvp(?:[- ]?ed|'d)")
_RSVP_TO_RE = re.compile(r"\brsvp\b\s*to\b")


def normalize_text(text: str) -> str:
    """Lower-case, unify apostrophes and collapse the RSVP verb forms.

    "RSVP'd", "rsvp-ed" and "rsvp ed" all become "rsvped"; "rsvp to" becomes
    "rsvped to" so the past-tense patterns below see a single token.
    """
    t = _CURLY_QUOTES_RE.sub("'", (text or "").lower())
    t = _RSVPED_RE.sub("rsvped", t)
    return _RSVP_TO_RE.sub("rsvped to", t)


# ---------------------------------------------------------------------------
# Rules, in precedence order
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    patterns: tuple[re.Pattern, ...]

    def matches(self, normalized: str) -> bool:
        return any(p.search(normalized) for p in self.patterns)


UPCOMING_RULE = IntentRule(
    Intent.UPCOMING_EVENTS,
    (
        re.compile(r"\b(?:upcoming|next|soon)\b.*\bevents?\b"),
        re.compile(r"\bevents?\b.*\b(?:upcoming|next|soon|today|tomorrow|this week)\b"),
        re.compile(r"^events?\b"),
        re.compile(r"\bwhat'?s on\b"),
    ),
)

MY_RSVPS_RULE = IntentRule(
    Intent.MY_RSVPS,
    (
        re.compile(
            r"\bwhat\b.*\bevents?\b.*\b(?:am|i)\b.*"
            r"\b(?:rsvped|registered|signed up|attending|going)\b"
        ),
        re.compile(r"\bmy\b.*\b(?:rsvps?|registrations?|events?)\b"),
        re.compile(r"\b(?:show|list|see|display)\b.*\bmy\b.*\b(?:rsvps?|registrations?|events?)\b"),
    ),
)

MY_ORGANIZING_RULE = IntentRule(
    Intent.MY_ORGANIZING,
    (
        re.compile(
            r"\b(?:what|which)\b.*\bevents?\b.*\b(?:i|am)\b.*"
            r"\b(?:organis(?:e|ing)|organiz(?:e|ing)|hosting|running)\b"
        ),
        re.compile(r"\bmy\b.*\b(?:organized|organised|organizing|organising|hosting)\b.*\bevents?\b"),
    ),
)

RULES: tuple[IntentRule, ...] = (UPCOMING_RULE, MY_RSVPS_RULE, MY_ORGANIZING_RULE)


def detect_intent(text: str) -> Intent:
    """First matching rule wins; GENERAL when none match."""
    normalized = normalize_text(text)
    for rule in RULES:
        if rule.matches(normalized):
            return rule.intent
    return Intent.GENERAL


# ---------------------------------------------------------------------------
# Parameter extraction
# ---------------------------------------------------------------------------
_LIMIT_PREFIX_RE = re.compile(r"(?:top|first|next)\s+(\d{1,2})\b", re.IGNORECASE)
_LIMIT_SUFFIX_RE = re.compile(r"\b(\d{1,2})\s+events?\b", re.IGNORECASE)


def parse_limit_from_text(text: str) -> Optional[int]:
    """Return the requested result count (1-20), or None when absent."""
    if not text:
        return None
    m = _LIMIT_PREFIX_RE.search(text) or _LIMIT_SUFFIX_RE.search(text)
    if m:
        n = int(m.group(1))
        if 0 < n <= MAX_RESULT_LIMIT:
            return n
    return None


_TODAY_RE = re.compile(r"\btoday\b")
_TOMORROW_RE = re.compile(r"\btomorrow\b")
_THIS_WEEK_RE = re.compile(r"\bthis week\b")


def _day_bounds(day, tz) -> DateRange:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)
    return DateRange(start, end)


def parse_date_hint(text: str, now: datetime) -> Optional[DateRange]:
    """Map "today", "tomorrow" or "this week" to bounds in the timezone of ``now``.

    Weeks start on Monday.
    """
    t = (text or "").lower()
    tz = now.tzinfo
    today = now.date()
    if _TODAY_RE.search(t):
        return _day_bounds(today, tz)
    if _TOMORROW_RE.search(t):
        return _day_bounds(today + timedelta(days=1), tz)
    if _THIS_WEEK_RE.search(t):
        monday = today - timedelta(days=today.weekday())
        return DateRange(
            _day_bounds(monday, tz).start,
            _day_bounds(monday + timedelta(days=6), tz).end,
        )
    return None


def classify(text: str, now: datetime) -> IntentMatch:
    """Classify a message and extract its result limit and date hint."""
    intent = detect_intent(text)
    limit = parse_limit_from_text(text) or DEFAULT_RESULT_LIMIT
    date_range = parse_date_hint(text, now)
    logger.debug(
        "classify() intent=%s limit=%d range=%s", intent.value, limit, date_range,
    )
    return IntentMatch(intent=intent, limit=limit, date_range=date_range)
