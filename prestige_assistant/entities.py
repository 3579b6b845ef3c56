from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    points: Optional[int] = None


class Event(BaseModel):
    """Canonical event, independent of the backend's field naming."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = "Untitled event"
    description: str = ""
    location: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    capacity: Optional[int] = None
    guests_count: Optional[int] = None
    published: Optional[bool] = None
    registered: bool = False
    organizers: list[Any] = Field(default_factory=list)
    owner_id: Optional[str] = None


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    points: int = 0
    type: str = ""
    created_at: Optional[datetime] = None
    note: str = ""
    event_id: Optional[str] = None
