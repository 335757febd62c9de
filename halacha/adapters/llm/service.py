"""
LLM Service - Unified language model interface.

Routes between:
- Anthropic Messages API
- OpenAI Chat Completions API

The provider and model come from settings; callers only see LLMResponse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from halacha.config import LLMAuthError, LLMError, Settings, get_settings

logger = logging.getLogger(__name__)

__all__ = ["LLMResponse", "LLMService"]

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"


@dataclass
class LLMResponse:
    """Response from LLM generation."""

    text: str
    model: str
    provider: str  # "anthropic" or "openai"
    input_tokens: int | None = None
    output_tokens: int | None = None

    @property
    def tokens_used(self) -> int | None:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return (self.input_tokens or 0) + (self.output_tokens or 0)


class LLMService:
    """
    Unified LLM service for Anthropic and OpenAI models.

    Example:
        >>> llm = LLMService()
        >>> response = await llm.generate("When are candles lit?", system_instruction=...)
        >>> print(response.text)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        provider: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize LLM service.

        Args:
            settings: Application settings (defaults to get_settings())
            provider: Override configured provider
            model: Override configured model
            client: Preconfigured HTTP client (tests)
        """
        self.settings = settings or get_settings()
        self.provider = (provider or self.settings.llm_provider).lower()
        self.model = model or self.settings.llm_model
        self._client = client

        if self.provider not in ("anthropic", "openai"):
            raise LLMError(f"Unknown LLM provider: {self.provider}")

        logger.debug("LLM: Using %s model %s", self.provider, self.model)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.llm_timeout)
        return self._client

    async def generate(
        self,
        prompt: str,
        system_instruction: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate text response.

        Args:
            prompt: User prompt
            system_instruction: System prompt
            max_tokens: Override configured output limit

        Returns:
            LLMResponse with generated text

        Raises:
            LLMAuthError: Missing or rejected API key
            LLMError: Provider unreachable or returned an error
        """
        max_tokens = max_tokens or self.settings.llm_max_tokens
        try:
            if self.provider == "anthropic":
                return await self._generate_anthropic(prompt, system_instruction, max_tokens)
            return await self._generate_openai(prompt, system_instruction, max_tokens)
        except httpx.HTTPError as e:
            raise LLMError(
                f"{self.provider} unreachable: {e}", {"provider": self.provider}
            ) from e

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _post(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> Any:
        client = await self._get_client()
        response = await client.post(url, headers=headers, json=body)

        if response.status_code in (401, 403):
            raise LLMAuthError(
                f"{self.provider} rejected credentials",
                {"status": response.status_code},
            )
        if response.status_code == 429:
            raise LLMError(f"{self.provider} quota exceeded", {"code": "QUOTA_EXCEEDED"})
        if response.status_code != 200:
            logger.error(
                "%s error: %s %s", self.provider, response.status_code, response.text[:200]
            )
            raise LLMError(
                f"{self.provider} API error: {response.status_code}",
                {"status": response.status_code},
            )

        return response.json()

    async def _generate_anthropic(
        self,
        prompt: str,
        system_instruction: str | None,
        max_tokens: int,
    ) -> LLMResponse:
        """Generate using the Anthropic Messages API."""
        if not self.settings.anthropic_api_key:
            raise LLMAuthError("Anthropic API key is not configured")

        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_instruction:
            body["system"] = system_instruction

        data = await self._post(
            ANTHROPIC_URL,
            {
                "x-api-key": self.settings.anthropic_api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            body,
        )

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage", {})

        return LLMResponse(
            text=text,
            model=data.get("model", self.model),
            provider="anthropic",
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )

    async def _generate_openai(
        self,
        prompt: str,
        system_instruction: str | None,
        max_tokens: int,
    ) -> LLMResponse:
        """Generate using the OpenAI Chat Completions API."""
        if not self.settings.openai_api_key:
            raise LLMAuthError("OpenAI API key is not configured")

        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        data = await self._post(
            OPENAI_URL,
            {
                "Authorization": f"Bearer {self.settings.openai_api_key}",
                "Content-Type": "application/json",
            },
            {"model": self.model, "max_tokens": max_tokens, "messages": messages},
        )

        text = ""
        choices = data.get("choices", [])
        if choices:
            text = choices[0].get("message", {}).get("content") or ""
        usage = data.get("usage", {})

        return LLMResponse(
            text=text,
            model=data.get("model", self.model),
            provider="openai",
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
