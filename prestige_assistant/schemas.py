from typing import Any, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    # Any value is accepted; the orchestrator truncates long messages and
    # rejects blank or non-string ones with a 400
    message: Any = ""


class ChatResponse(BaseModel):
    reply: str
    model: str
    roleSeen: str
    audioBase64: Optional[str] = None
    intent: Optional[str] = None


class ReplyOnly(BaseModel):
    """Error body of the chat endpoint."""
    reply: str


class TtsRequest(BaseModel):
    text: str = Field(default="", max_length=10000)


class TtsResponse(BaseModel):
    audioBase64: str


class PingResponse(BaseModel):
    ok: bool
    model: str
    role: Optional[str] = None
    apiBase: str
    aiConfigured: bool
    ttsConfigured: bool


class HealthResponse(BaseModel):
    status: str
