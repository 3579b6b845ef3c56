import logging
from datetime import datetime, tzinfo
from typing import Callable, NamedTuple, Optional

import httpx

from prestige_assistant.backend_client import fetch_user_world
from prestige_assistant.config import settings
from prestige_assistant.entities import Event
from prestige_assistant.errors import CompletionServiceError, ConfigurationError, ValidationError
from prestige_assistant.formatting import format_events_list, local_now
from prestige_assistant.gemini_client import GeminiClient, user_turn
from prestige_assistant.intent import DateRange, Intent, IntentMatch, classify
from prestige_assistant.session_cache import SessionCache, SessionState, SnapshotLoader
from prestige_assistant.snapshot import EPOCH, Snapshot, build_snapshot, split_events

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exact reply constants for the fast-path intents and failures
# ---------------------------------------------------------------------------
NO_UPCOMING_REPLY = "I couldn't find any upcoming events."
NO_RSVPS_REPLY = "You have no upcoming RSVP'd events."
NO_ORGANIZING_REPLY = "You are not listed as an organizer for any events."
UNAVAILABLE_REPLY = "AI is unavailable right now."
MESSAGE_REQUIRED_REPLY = "message is required"
DEFAULT_ROLE = "regular"

SYSTEM_PROMPT = """\
You are Prestige Assistant for a points & events program.
- Be concise (2–5 sentences).
- Respect roles (regular, cashier, manager, superuser). Don't reveal manager-only actions to regular users.
- When asked about actions (RSVP, cancel, publish), explain steps and point to the right page instead of "doing" it.
- If unsure, say so and suggest opening the event details page.
- Do not mention the user's role in responses unless they explicitly ask.
- The first message is a DATA_SNAPSHOT of the user's profile, events and transactions. \
Answer from it; if it lists warnings, say the data may be incomplete."""


class TurnResult(NamedTuple):
    reply: str
    intent: Intent
    available: bool = True


def validate_message(raw: object, max_length: Optional[int] = None) -> str:
    """Trim and bound the message. Raises ValidationError when nothing is left."""
    max_length = max_length or settings.MAX_MESSAGE_LENGTH
    text = raw.strip()[:max_length] if isinstance(raw, str) else ""
    if not text:
        raise ValidationError(MESSAGE_REQUIRED_REPLY)
    return text


def make_snapshot_loader(
    http_client: httpx.AsyncClient,
    now: Callable[[], datetime] = local_now,
    context_limit: Optional[int] = None,
) -> SnapshotLoader:
    """Bind the backend fetchers and the snapshot builder into a cache loader."""
    limit = context_limit or settings.AI_CTX_LIMIT

    async def load(identity: str, auth_token: str) -> Snapshot:
        world = await fetch_user_world(http_client, identity, auth_token)
        return build_snapshot(
            world.profile,
            world.events,
            world.transactions,
            now(),
            context_limit=limit,
            warnings=world.warnings,
        )

    return load


# ---------------------------------------------------------------------------
# RSVP filtering
# ---------------------------------------------------------------------------
def _is_strictly_upcoming(event: Event, now: datetime) -> bool:
    start, end = event.start_time, event.end_time
    if start is None:
        return False
    return start >= now or (end is not None and start < now <= end)


def select_rsvps(
    rsvps: list[Event], now: datetime, date_range: Optional[DateRange], limit: int
) -> list[Event]:
    """RSVP'd events inside the range (if any) that have not finished, soonest first."""
    selected = rsvps
    if date_range is not None:
        selected = [e for e in selected if date_range.contains(e.start_time)]
    selected = [e for e in selected if _is_strictly_upcoming(e, now)]
    selected = sorted(selected, key=lambda e: e.start_time or e.end_time or EPOCH)
    return selected[:limit]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class Orchestrator:
    def __init__(
        self,
        cache: SessionCache,
        gemini: GeminiClient,
        now: Optional[Callable[[], datetime]] = None,
        display_tz: Optional[tzinfo] = None,
        include_role_prefix: Optional[bool] = None,
        max_message_length: Optional[int] = None,
    ) -> None:
        self.cache = cache
        self.gemini = gemini
        self.display_tz = display_tz
        self._now = now or (lambda: local_now(display_tz))
        self.include_role_prefix = (
            include_role_prefix if include_role_prefix is not None else settings.AI_INCLUDE_ROLE
        )
        self.max_message_length = max_message_length or settings.MAX_MESSAGE_LENGTH

    async def handle_turn(
        self,
        identity: str,
        raw_message: object,
        auth_token: str = "",
        role: Optional[str] = None,
    ) -> TurnResult:
        """Answer one chat message, from cached data when possible.

        Raises ConfigurationError without a completion key and ValidationError
        for an empty message, both before the cache or backend is touched.
        """
        if not self.gemini.configured:
            raise ConfigurationError("AI key not configured.")
        message = validate_message(raw_message, self.max_message_length)

        state = await self.cache.get_fresh(identity, auth_token)
        if state.snapshot is not None and state.snapshot.warnings:
            # Serve this turn from the partial data, retry the backend on the next
            logger.info(
                "Degraded snapshot for identity=%s (%s), refreshing next turn",
                identity, "; ".join(state.snapshot.warnings),
            )
            self.cache.invalidate(identity)
        now = self._now()
        match = classify(message.lower(), now)
        logger.info(
            "handle_turn() identity=%s intent=%s limit=%d message=%s",
            identity, match.intent.value, match.limit, message[:100],
        )

        if match.intent is Intent.UPCOMING_EVENTS:
            return self._upcoming(state, match, now)
        if match.intent is Intent.MY_RSVPS:
            return self._my_rsvps(state, match, now)
        if match.intent is Intent.MY_ORGANIZING:
            return self._organizing(state, match)
        return await self._general(state, message, role)

    # -------- Fast paths --------
    def _upcoming(self, state: SessionState, match: IntentMatch, now: datetime) -> TurnResult:
        upcoming, _ = split_events(state.events, now)
        if match.date_range is not None:
            upcoming = [e for e in upcoming if match.date_range.contains(e.start_time)]
        top = upcoming[: match.limit]
        if not top:
            reply = NO_UPCOMING_REPLY
            if match.date_range is not None:
                reply = reply[:-1] + " in that period."
        else:
            reply = (
                f"Here are the next {len(top)} upcoming events:\n"
                f"{format_events_list(top, self.display_tz)}"
            )
        return TurnResult(reply, Intent.UPCOMING_EVENTS)

    def _my_rsvps(self, state: SessionState, match: IntentMatch, now: datetime) -> TurnResult:
        rsvps = state.snapshot.rsvps if state.snapshot else []
        top = select_rsvps(rsvps, now, match.date_range, match.limit)
        if not top:
            reply = NO_RSVPS_REPLY
            if match.date_range is not None:
                reply = reply[:-1] + " in that period."
        else:
            reply = (
                f"Your next {len(top)} RSVP'd events:\n"
                f"{format_events_list(top, self.display_tz)}"
            )
        return TurnResult(reply, Intent.MY_RSVPS)

    def _organizing(self, state: SessionState, match: IntentMatch) -> TurnResult:
        organizing = state.snapshot.organizing if state.snapshot else []
        top = organizing[: match.limit]
        if not top:
            return TurnResult(NO_ORGANIZING_REPLY, Intent.MY_ORGANIZING)
        reply = (
            f"You're organizing {len(top)} event(s):\n"
            f"{format_events_list(top, self.display_tz)}"
        )
        return TurnResult(reply, Intent.MY_ORGANIZING)

    # -------- General --------
    def build_contents(self, state: SessionState, message: str) -> list[dict]:
        """Snapshot first, then the stored history, then the new message."""
        contents: list[dict] = []
        if state.snapshot is not None:
            contents.append(user_turn(state.snapshot.render()))
        contents.extend(self.cache.history(state.identity))
        contents.append(user_turn(message))
        return contents

    async def _general(
        self, state: SessionState, message: str, role: Optional[str]
    ) -> TurnResult:
        contents = self.build_contents(state, message)
        try:
            reply = await self.gemini.generate(SYSTEM_PROMPT, contents)
        except CompletionServiceError:
            logger.error("Completion failed for identity=%s", state.identity, exc_info=True)
            return TurnResult(UNAVAILABLE_REPLY, Intent.GENERAL, available=False)

        if self.include_role_prefix:
            resolved_role = role or (state.profile.role if state.profile else None) or DEFAULT_ROLE
            tag = f"(role: {resolved_role}) "
            if not reply.startswith(tag):
                reply = tag + reply

        self.cache.append_exchange(state.identity, message, reply)
        return TurnResult(reply, Intent.GENERAL)
