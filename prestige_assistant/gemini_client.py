import logging
from typing import Optional
from urllib.parse import quote

import httpx

from prestige_assistant.config import settings
from prestige_assistant.errors import CompletionServiceError, ConfigurationError

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I'm not sure."


def user_turn(text: str) -> dict:
    return {"role": "user", "parts": [{"text": text}]}


def model_turn(text: str) -> dict:
    return {"role": "model", "parts": [{"text": text}]}


class GeminiClient:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(timeout=settings.GEMINI_TIMEOUT)
        self.base_url = settings.GEMINI_URL
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _build_generation_config(self) -> dict:
        """Build the sampling config from settings."""
        return {
            "temperature": settings.GEMINI_TEMPERATURE,
            "topP": settings.GEMINI_TOP_P,
        }

    def _build_payload(self, system_prompt: str, contents: list[dict]) -> dict:
        return {
            "system_instruction": {"role": "system", "parts": [{"text": system_prompt}]},
            "generationConfig": self._build_generation_config(),
            "contents": contents,
        }

    @staticmethod
    def _extract_text(data: object) -> str:
        """Join the first candidate's text parts.

        A blocked prompt comes back as 200 with only ``promptFeedback``; that and
        any candidate without content fall back to EMPTY_REPLY.
        """
        candidates = data.get("candidates") if isinstance(data, dict) else None
        first = candidates[0] if isinstance(candidates, list) and candidates else {}
        content = first.get("content") if isinstance(first, dict) else None
        parts = (content.get("parts") if isinstance(content, dict) else None) or []
        texts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")]
        return "\n".join(texts) or EMPTY_REPLY

    async def generate(self, system_prompt: str, contents: list[dict]) -> str:
        """Non-streaming completion via :generateContent.

        Raises ConfigurationError without an API key. Transport errors, non-200
        statuses and unparseable bodies raise CompletionServiceError.
        """
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")

        url = f"{self.base_url}/{quote(self.model, safe='')}:generateContent"
        logger.debug(
            "generate() model=%s contents=%d", self.model, len(contents),
        )
        try:
            response = await self.client.post(
                url,
                headers={"x-goog-api-key": self.api_key},
                json=self._build_payload(system_prompt, contents),
                timeout=settings.GEMINI_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.error("Gemini request failed: %s", type(e).__name__)
            raise CompletionServiceError("completion request failed") from e

        if response.status_code != 200:
            logger.error(
                "Gemini API error: %d %s", response.status_code, response.text[:500],
            )
            raise CompletionServiceError(f"completion service returned {response.status_code}")

        try:
            return self._extract_text(response.json()).strip()
        except ValueError as e:
            logger.error(
                "Gemini returned invalid JSON: %s (body: %s)",
                e, response.text[:500],
            )
            raise CompletionServiceError("invalid completion response") from e
