"""
OpenAI completion client.

Wraps ``openai.AsyncOpenAI`` with circuit breakers and a cached availability
probe. Callers decide what to do when the service is unavailable; the
insights service falls back to statistical rules.
"""

import json
import time
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from ..circuit_breaker import get_circuit_breaker
from ..config import get_config
from ..errors import AppError, ErrorCode, create_app_error
from ..logging import get_logger

logger = get_logger("ai.openai")

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that provides concise and accurate information."
)
STRUCTURED_SYSTEM_PROMPT = (
    "You are a helpful assistant that provides structured data in JSON format."
)

AVAILABILITY_BREAKER = {"failure_threshold": 2, "reset_timeout": 30.0, "timeout": 5.0}
COMPLETION_BREAKER = {"failure_threshold": 3, "reset_timeout": 60.0, "timeout": 30.0}


class OpenAIClient:
    """Thin async wrapper over the chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        config = get_config()
        self.api_key = api_key if api_key is not None else config.ai.api_key
        self.model = model or config.ai.model
        self.temperature = config.ai.temperature
        self.max_tokens = config.ai.max_tokens
        self.cache_seconds = config.ai.availability_cache_seconds
        self._client = client
        self._available: Optional[bool] = None
        self._checked_at = 0.0

    def _get_client(self) -> AsyncOpenAI:
        """Lazy-init the SDK client."""
        if self._client is None:
            if not self.api_key:
                raise create_app_error(
                    ErrorCode.AI_SERVICE_UNAVAILABLE, "OpenAI API key is not configured"
                )
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def is_available(self) -> bool:
        """Check that AI features are on and the API answers, cached briefly."""
        if not get_config().features.ai_features or not self.api_key:
            return False

        now = time.monotonic()
        if self._available is not None and now - self._checked_at < self.cache_seconds:
            return self._available

        breaker = get_circuit_breaker("openai-availability", **AVAILABILITY_BREAKER)
        try:
            client = self._get_client()
            await breaker.execute(lambda: client.models.list())
            self._available = True
        except Exception as e:
            logger.warning("OpenAI availability check failed", error=str(e))
            self._available = False
        self._checked_at = now
        return self._available

    async def complete(
        self,
        prompt: str,
        system: str = DEFAULT_SYSTEM_PROMPT,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the text of a single chat completion."""
        client = self._get_client()
        breaker = get_circuit_breaker("openai-completion", **COMPLETION_BREAKER)
        try:
            response = await breaker.execute(
                lambda: client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self._temperature(temperature),
                    max_tokens=max_tokens or self.max_tokens,
                )
            )
        except AppError:
            raise
        except Exception as e:
            logger.error("OpenAI completion failed", prompt_length=len(prompt), error=str(e))
            raise create_app_error(ErrorCode.AI_SERVICE_UNAVAILABLE, str(e)) from e

        return _message_content(response) or ""

    async def complete_structured(
        self,
        prompt: str,
        schema_hint: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Ask for a JSON object following ``schema_hint`` and parse it."""
        client = self._get_client()
        full_prompt = (
            f"{prompt}\n\n"
            f"Please provide your response in the following JSON format:\n{schema_hint}\n\n"
            "Ensure your response is valid JSON that strictly follows this schema."
        )
        breaker = get_circuit_breaker("openai-structured-data", **COMPLETION_BREAKER)
        try:
            response = await breaker.execute(
                lambda: client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": STRUCTURED_SYSTEM_PROMPT},
                        {"role": "user", "content": full_prompt},
                    ],
                    temperature=self._temperature(temperature),
                    max_tokens=max_tokens or self.max_tokens,
                    response_format={"type": "json_object"},
                )
            )
        except AppError:
            raise
        except Exception as e:
            logger.error(
                "OpenAI structured completion failed",
                prompt_length=len(prompt),
                schema_length=len(schema_hint),
                error=str(e),
            )
            raise create_app_error(ErrorCode.AI_SERVICE_UNAVAILABLE, str(e)) from e

        content = _message_content(response) or "{}"
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse AI response", content=content[:200])
            raise create_app_error(
                ErrorCode.AI_PROCESSING_ERROR, "Failed to parse AI response as JSON"
            ) from e

    def _temperature(self, temperature: Optional[float]) -> float:
        return self.temperature if temperature is None else temperature


def _message_content(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) if message else None


_client: Optional[OpenAIClient] = None


def get_ai_client() -> OpenAIClient:
    """Process-wide client instance."""
    global _client
    if _client is None:
        _client = OpenAIClient()
    return _client


def reset_ai_client() -> None:
    """Drop the cached client, used when configuration changes."""
    global _client
    _client = None
