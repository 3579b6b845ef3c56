import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from prestige_assistant.config import settings
from prestige_assistant.entities import Event, Transaction, UserProfile
from prestige_assistant.errors import UpstreamFetchError
from prestige_assistant.normalizer import (
    normalize_event,
    normalize_profile,
    normalize_transaction,
)

logger = logging.getLogger(__name__)


@dataclass
class UserWorld:
    """Everything fetched for one user in a single refresh."""

    profile: UserProfile
    events: list[Event] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _build_headers(auth_token: str) -> dict[str, str]:
    """Build request headers for the backend API."""
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"
    return headers


async def _get(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """GET helper. Returns parsed JSON or raises UpstreamFetchError."""
    timeout = timeout or settings.BACKEND_TIMEOUT
    try:
        response = await client.get(url, headers=headers, params=params, timeout=timeout)
    except httpx.TimeoutException as exc:
        logger.error("Backend GET timed out: %s", url)
        raise UpstreamFetchError(url) from exc
    except httpx.HTTPError as exc:
        logger.error("Backend GET HTTP error for %s: %s", url, exc)
        raise UpstreamFetchError(url) from exc

    if response.status_code != 200:
        logger.warning("Backend GET returned %d for %s", response.status_code, url)
        raise UpstreamFetchError(url, response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        logger.error("Backend GET returned invalid JSON for %s", url)
        raise UpstreamFetchError(url, response.status_code) from exc


def _extract_items(data: Any, collection_key: str) -> list:
    """Items may sit under items/results/<collection> or be the bare body."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("items", "results", collection_key):
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def _total_pages(data: Any, collected: int, limit: int) -> int:
    """Reported page count, else derived from total/count, else from what was collected."""
    if not isinstance(data, dict):
        return math.ceil(collected / limit) or 1
    try:
        if data.get("totalPages"):
            return int(data["totalPages"])
        total = data.get("total")
        if total is None:
            total = data.get("count")
        if total is None:
            total = collected
        return math.ceil(int(total) / limit) or 1
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed page counters in events envelope")
        return math.ceil(collected / limit) or 1


# ---------------------------------------------------------------------------
# 1. Profile
# ---------------------------------------------------------------------------
async def fetch_profile(client: httpx.AsyncClient, auth_token: str) -> Any:
    """Fetch the raw /users/me record."""
    url = f"{settings.API_BASE}/users/me"
    logger.info("Fetching profile")
    return await _get(client, url, _build_headers(auth_token))


# ---------------------------------------------------------------------------
# 2. Events (paginated)
# ---------------------------------------------------------------------------
async def fetch_all_events(
    client: httpx.AsyncClient,
    auth_token: str,
    profile: Optional[UserProfile],
    page_limit: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> tuple[list[Event], bool]:
    """Walk the event pages sequentially, normalizing as it goes.

    Returns (events, truncated). ``truncated`` is True when the page ceiling
    stopped the walk or a later page failed, so the list is incomplete. A
    failure on the first page raises UpstreamFetchError.
    """
    url = f"{settings.API_BASE}/events"
    headers = _build_headers(auth_token)
    limit = page_limit or settings.EVENTS_PAGE_LIMIT
    max_pages = max_pages or settings.EVENTS_MAX_PAGES

    events: list[Event] = []
    page = 1
    while True:
        params = {
            "page": page,
            "limit": limit,
            "showFull": "true",
            "includeMe": "true",
            "includeGuests": "true",
            "includeOrganizers": "true",
        }
        try:
            data = await _get(client, url, headers, params=params)
        except UpstreamFetchError:
            if page == 1:
                raise
            logger.warning("Event page %d failed, keeping %d events", page, len(events))
            return events, True

        items = _extract_items(data, "events")
        if not items:
            break
        events.extend(normalize_event(raw, profile) for raw in items)

        total_pages = _total_pages(data, len(events), limit)
        if page >= total_pages:
            break
        if page >= max_pages:
            logger.warning(
                "Event listing truncated at %d pages (%d reported), %d events kept",
                max_pages, total_pages, len(events),
            )
            return events, True
        page += 1

    logger.info("Fetched %d events over %d page(s)", len(events), page)
    return events, False


# ---------------------------------------------------------------------------
# 3. Transactions
# ---------------------------------------------------------------------------
async def fetch_transactions(
    client: httpx.AsyncClient, auth_token: str, limit: Optional[int] = None
) -> list[Transaction]:
    url = f"{settings.API_BASE}/transactions"
    params = {"page": 1, "limit": limit or settings.TRANSACTIONS_LIMIT}
    data = await _get(client, url, _build_headers(auth_token), params=params)
    transactions = [normalize_transaction(t) for t in _extract_items(data, "transactions")]
    logger.info("Fetched %d transactions", len(transactions))
    return transactions


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
async def fetch_user_world(
    client: httpx.AsyncClient, identity: str, auth_token: str
) -> UserWorld:
    """Fetch and normalize the profile, events and transactions of one user.

    Never raises for upstream failures: a failed source is replaced by empty
    data and noted in ``warnings`` so the turn can proceed degraded.
    """
    logger.info("Starting user data refresh for identity=%s", identity)
    warnings: list[str] = []

    try:
        raw_profile = await fetch_profile(client, auth_token)
    except UpstreamFetchError:
        warnings.append("Profile could not be loaded.")
        raw_profile = None
    profile = normalize_profile(raw_profile, fallback_id=identity)

    async def _safe_events() -> tuple[list[Event], Optional[str]]:
        try:
            events, truncated = await fetch_all_events(client, auth_token, profile)
        except UpstreamFetchError:
            return [], "Events could not be loaded."
        if truncated:
            return events, (
                f"Event list is incomplete: only the first {len(events)} events were loaded."
            )
        return events, None

    async def _safe_transactions() -> tuple[list[Transaction], Optional[str]]:
        try:
            return await fetch_transactions(client, auth_token), None
        except UpstreamFetchError:
            return [], "Transactions could not be loaded."

    (events, events_warning), (transactions, txn_warning) = await asyncio.gather(
        _safe_events(), _safe_transactions(),
    )
    warnings.extend(w for w in (events_warning, txn_warning) if w)

    logger.info(
        "User data refresh completed for identity=%s events=%d transactions=%d warnings=%d",
        identity, len(events), len(transactions), len(warnings),
    )
    return UserWorld(
        profile=profile, events=events, transactions=transactions, warnings=warnings,
    )
