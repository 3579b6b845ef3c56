import base64
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from prestige_assistant.config import settings
from prestige_assistant.errors import SynthesisError

logger = logging.getLogger(__name__)


class SpeechClient:
    """ElevenLabs text-to-speech. Every failure degrades to "no audio"."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        voice_id: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(timeout=settings.TTS_TIMEOUT)
        self.base_url = settings.ELEVENLABS_URL
        self.api_key = api_key if api_key is not None else settings.ELEVENLABS_API_KEY
        self.voice_id = voice_id or settings.ELEVENLABS_VOICE_ID
        self.model = model or settings.ELEVENLABS_MODEL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _synthesize(self, text: str) -> bytes:
        url = f"{self.base_url}/{quote(self.voice_id, safe='')}"
        try:
            response = await self.client.post(
                url,
                headers={
                    "xi-api-key": self.api_key,
                    "Content-Type": "application/json",
                    "Accept": "audio/mpeg",
                },
                json={"text": text, "model_id": self.model},
                timeout=settings.TTS_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise SynthesisError(f"TTS request failed: {type(e).__name__}") from e
        if response.status_code != 200:
            raise SynthesisError(f"TTS returned {response.status_code}")
        return response.content

    async def synthesize_base64(self, text: str) -> Optional[str]:
        """Return base64 audio for ``text``, or None when unavailable."""
        if not self.api_key or not text:
            return None
        try:
            audio = await self._synthesize(text)
        except SynthesisError as e:
            logger.warning("Speech synthesis failed: %s", e)
            return None
        except Exception as exc:
            logger.error("Unexpected speech synthesis error: %s", type(exc).__name__)
            return None
        return base64.b64encode(audio).decode("ascii")
