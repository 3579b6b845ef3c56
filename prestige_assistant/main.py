import logging
import uuid as _uuid
from contextlib import asynccontextmanager
from time import time

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from prestige_assistant.config import settings
from prestige_assistant.errors import ConfigurationError, ValidationError
from prestige_assistant.formatting import local_now, resolve_timezone
from prestige_assistant.gemini_client import GeminiClient
from prestige_assistant.identity import Identity, get_identity, require_identity
from prestige_assistant.intent import Intent
from prestige_assistant.orchestrator import (
    UNAVAILABLE_REPLY,
    Orchestrator,
    make_snapshot_loader,
)
from prestige_assistant.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    PingResponse,
    ReplyOnly,
    TtsRequest,
    TtsResponse,
)
from prestige_assistant.session_cache import SessionCache
from prestige_assistant.speech import SpeechClient

logger = logging.getLogger(__name__)

GENERIC_FAILURE_REPLY = "Error contacting AI"


# ---------------------------------------------------------------------------
# Request ID middleware (log correlation)
# ---------------------------------------------------------------------------
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(_uuid.uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# Request logging middleware (timing)
# ---------------------------------------------------------------------------
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time()
        response = await call_next(request)
        elapsed = (time() - start) * 1000
        logger.info(
            "%s %s %d %.0fms",
            request.method, request.url.path, response.status_code, elapsed,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application")

    try:
        app.state.backend_http = httpx.AsyncClient(timeout=settings.BACKEND_TIMEOUT)
        app.state.gemini_http = httpx.AsyncClient(timeout=settings.GEMINI_TIMEOUT)
        app.state.tts_http = httpx.AsyncClient(timeout=settings.TTS_TIMEOUT)
        logger.info("HTTP clients created")
    except Exception:
        logger.critical("Failed to create HTTP clients", exc_info=True)
        raise

    display_tz = resolve_timezone(settings.DISPLAY_TIMEZONE)
    cache = SessionCache(
        make_snapshot_loader(app.state.backend_http, now=lambda: local_now(display_tz)),
    )
    app.state.orchestrator = Orchestrator(
        cache, GeminiClient(client=app.state.gemini_http), display_tz=display_tz,
    )
    app.state.speech = SpeechClient(client=app.state.tts_http)
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    await app.state.backend_http.aclose()
    await app.state.gemini_http.aclose()
    await app.state.tts_http.aclose()
    logger.info("Application shutdown complete")


app = FastAPI(lifespan=lifespan)

# --- Middleware stack (order matters: last added = first executed) ---
# Execution order: CORS → RequestId → Logging → handler
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIdMiddleware)

_cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
if not _cors_origins:
    _cors_origins = ["http://localhost:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"reply": "AI key not configured."})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"reply": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(status_code=500, content={"reply": GENERIC_FAILURE_REPLY})


# Dependencies
def get_orchestrator_dep() -> Orchestrator:
    return app.state.orchestrator


def get_speech_dep() -> SpeechClient:
    return app.state.speech


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness probe: always 200 while the process is up."""
    return HealthResponse(status="ok")


router = APIRouter(prefix="/api/ai")


@router.get("/ping", response_model=PingResponse)
async def ping(identity: Identity = Depends(get_identity)):
    """Configuration status; touches neither the cache nor any upstream."""
    return PingResponse(
        ok=True,
        model=settings.GEMINI_MODEL,
        role=identity.role if identity.user_id else None,
        apiBase=settings.API_BASE,
        aiConfigured=bool(settings.GEMINI_API_KEY),
        ttsConfigured=bool(settings.ELEVENLABS_API_KEY),
    )


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ReplyOnly}, 500: {"model": ReplyOnly}, 502: {"model": ReplyOnly}},
)
async def chat(
    body: ChatRequest,
    identity: Identity = Depends(require_identity),
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
    speech: SpeechClient = Depends(get_speech_dep),
):
    try:
        result = await orchestrator.handle_turn(
            identity.user_id, body.message, auth_token=identity.token, role=identity.role,
        )
    except (ConfigurationError, ValidationError):
        raise
    except Exception:
        logger.error("Chat turn failed for identity=%s", identity.user_id, exc_info=True)
        return JSONResponse(status_code=500, content={"reply": GENERIC_FAILURE_REPLY})

    if not result.available:
        return JSONResponse(status_code=502, content={"reply": UNAVAILABLE_REPLY})

    # Audio is an optional enrichment; a failure leaves the reply untouched
    audio = await speech.synthesize_base64(result.reply)
    return ChatResponse(
        reply=result.reply,
        model=orchestrator.gemini.model,
        roleSeen=identity.role,
        audioBase64=audio,
        intent=None if result.intent is Intent.GENERAL else result.intent.value,
    )


@router.post("/tts", response_model=TtsResponse)
async def tts(body: TtsRequest, speech: SpeechClient = Depends(get_speech_dep)):
    """Synthesize arbitrary text, e.g. to replay an earlier reply."""
    if not speech.configured:
        return JSONResponse(status_code=500, content={"error": "TTS not configured"})
    text = body.text.strip()
    if not text:
        return JSONResponse(status_code=400, content={"error": "text is required"})
    audio = await speech.synthesize_base64(text)
    if not audio:
        return JSONResponse(status_code=500, content={"error": "TTS failed"})
    return TtsResponse(audioBase64=audio)


app.include_router(router)
