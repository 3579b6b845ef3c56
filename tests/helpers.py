"""Shared builders for the test modules.

All tests run against a fixed clock: Wednesday 2026-10-21 12:00 UTC, so the
current week spans Monday 2026-10-19 to Sunday 2026-10-25.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from prestige_assistant.entities import Event, UserProfile
from prestige_assistant.errors import CompletionServiceError

NOW = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
API_BASE = "https://backend-production-09c4.up.railway.app"

ME = UserProfile(id="42", username="alice1", name="Alice", role="regular", points=120)


def at(day: int, hour: int = 0, minute: int = 0) -> datetime:
    """A UTC moment in October 2026."""
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def make_event(
    name: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    **fields,
) -> Event:
    fields.setdefault("id", name.lower().replace(" ", "-"))
    return Event(name=name, start_time=start, end_time=end, **fields)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGemini:
    """Stands in for GeminiClient; records every call."""

    def __init__(self, replies=None, configured: bool = True, model: str = "gemini-test") -> None:
        self.replies = list(replies or [])
        self.configured = configured
        self.model = model
        self.calls: list[tuple[str, list[dict]]] = []

    async def generate(self, system_prompt: str, contents: list[dict]) -> str:
        self.calls.append((system_prompt, [dict(c) for c in contents]))
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def unavailable() -> CompletionServiceError:
    return CompletionServiceError("completion service returned 503")
