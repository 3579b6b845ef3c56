import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from prestige_assistant.config import settings
from prestige_assistant.entities import Event, Transaction, UserProfile
from prestige_assistant.gemini_client import model_turn, user_turn
from prestige_assistant.snapshot import Snapshot

logger = logging.getLogger(__name__)

# (identity, auth_token) -> freshly built snapshot
SnapshotLoader = Callable[[str, str], Awaitable[Snapshot]]


@dataclass
class SessionState:
    identity: str
    fresh: bool = False
    last_refresh: float = 0.0
    last_access: float = 0.0
    profile: Optional[UserProfile] = None
    events: list[Event] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    snapshot: Optional[Snapshot] = None
    history: list[dict] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def apply(self, snapshot: Snapshot, now: float) -> None:
        """Replace the cached data wholesale with a new snapshot."""
        self.profile = snapshot.profile
        self.events = snapshot.events
        self.transactions = snapshot.transactions
        self.snapshot = snapshot
        self.fresh = True
        self.last_refresh = now


class SessionCache:
    """Per-identity snapshot and conversation history, refreshed lazily on a TTL.

    Refreshes are single-flight per identity: concurrent turns for the same
    user wait on one in-flight load and reuse its result. Sessions are
    evicted least-recently-used once ``max_sessions`` is reached.
    """

    def __init__(
        self,
        loader: SnapshotLoader,
        ttl_seconds: Optional[float] = None,
        max_history_pairs: Optional[int] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SESSION_TTL_SECONDS
        self.max_history_pairs = (
            max_history_pairs if max_history_pairs is not None else settings.MAX_HISTORY_PAIRS
        )
        self.max_sessions = max_sessions if max_sessions is not None else settings.MAX_SESSIONS
        self._clock = clock
        self._sessions: OrderedDict[str, SessionState] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, identity: str) -> bool:
        return identity in self._sessions

    def _touch(self, identity: str) -> SessionState:
        """Return (or create) the session, marking it most recently used."""
        now = self._clock()
        state = self._sessions.get(identity)
        if state is not None:
            self._sessions.move_to_end(identity)
        else:
            self._evict()
            state = SessionState(identity=identity)
            self._sessions[identity] = state
        state.last_access = now
        return state

    def _evict(self) -> None:
        """Drop least-recently-used sessions until there is room for one more.

        A session whose refresh is in flight is skipped; if every session is
        refreshing the cache grows past ``max_sessions`` until one finishes.
        """
        while len(self._sessions) >= self.max_sessions:
            victim = next(
                (key for key, s in self._sessions.items() if not s.lock.locked()), None,
            )
            if victim is None:
                logger.warning(
                    "All %d sessions are refreshing, none evicted", len(self._sessions),
                )
                return
            del self._sessions[victim]
            logger.debug("Evicted session for %s (LRU)", victim)

    def is_stale(self, state: SessionState) -> bool:
        return not state.fresh or (self._clock() - state.last_refresh) > self.ttl_seconds

    async def get_fresh(self, identity: str, auth_token: str = "") -> SessionState:
        """Return the session for ``identity``, rebuilding its snapshot if stale."""
        state = self._touch(identity)
        if not self.is_stale(state):
            return state

        async with state.lock:
            # Another turn may have refreshed while this one waited
            if self.is_stale(state):
                logger.info("Refreshing snapshot for identity=%s", identity)
                snapshot = await self._loader(identity, auth_token)
                state.apply(snapshot, self._clock())
        return state

    def invalidate(self, identity: str) -> None:
        """Force the next access to refresh."""
        state = self._sessions.get(identity)
        if state is not None:
            state.fresh = False

    def history(self, identity: str) -> list[dict]:
        state = self._sessions.get(identity)
        return list(state.history) if state is not None else []

    def append_exchange(self, identity: str, user_text: str, reply_text: str) -> None:
        """Record one user/model pair, keeping only the most recent pairs."""
        state = self._touch(identity)
        state.history.append(user_turn(user_text))
        state.history.append(model_turn(reply_text))
        max_entries = self.max_history_pairs * 2
        if len(state.history) > max_entries:
            del state.history[: len(state.history) - max_entries]
