"""Async Anthropic Claude client wrapper with retry logic."""

import json
from typing import Any

import structlog
from anthropic import (
    APIConnectionError,
    APIStatusError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from concord.config import Settings, get_settings
from concord.core.exceptions import LLMError

logger = structlog.get_logger(__name__)

RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError)


class ClaudeClient:
    """Async wrapper for Anthropic Claude API with retry logic."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = AsyncAnthropic(api_key=self._settings.anthropic_api_key)
        self._model = self._settings.model

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.api_retry_attempts),
            wait=wait_exponential(multiplier=self._settings.api_retry_delay, min=1, max=10),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    async def _create(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> str:
        model = model or self._model
        try:
            async for attempt in self._retrying():
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "llm_retry",
                            model=model,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    response = await self._client.messages.create(
                        model=model,
                        max_tokens=max_tokens or self._settings.max_tokens,
                        temperature=(
                            temperature
                            if temperature is not None
                            else self._settings.temperature
                        ),
                        system=system_prompt,
                        messages=[{"role": "user", "content": user_prompt}],
                    )
        except APIStatusError as e:
            raise LLMError(
                f"Claude API error: {e.message}",
                model=model,
                status_code=e.status_code,
            ) from e
        except Exception as e:
            raise LLMError(f"Claude API error: {e}", model=model) from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any] | list[Any]:
        """
        Send a completion request and parse the reply as JSON.

        Args:
            system_prompt: The system prompt defining agent behavior
            user_prompt: The user message
            model: Model override (defaults to settings)
            temperature: Sampling temperature override
            max_tokens: Maximum tokens in response

        Returns:
            Parsed JSON response
        """
        json_instruction = "\n\nRespond ONLY with a valid JSON value, no additional text."

        content = await self._create(
            system_prompt + json_instruction,
            user_prompt,
            model,
            temperature,
            max_tokens,
        )

        try:
            return self._parse_json_response(content)
        except json.JSONDecodeError as e:
            raise LLMError(
                f"Failed to parse JSON response: {e}",
                model=model or self._model,
                details={"raw_response": content[:500]},
            ) from e

    def _parse_json_response(self, content: str) -> dict[str, Any] | list[Any]:
        """Parse JSON from response, handling markdown code blocks."""
        content = content.strip()

        # Remove markdown code blocks if present
        if content.startswith("```json"):
            content = content[7:]
        elif content.startswith("```"):
            content = content[3:]

        if content.endswith("```"):
            content = content[:-3]

        content = content.strip()

        return json.loads(content)

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Send a completion request and return raw text response.

        Args:
            system_prompt: The system prompt
            user_prompt: The user message
            model: Model override (defaults to settings)
            temperature: Sampling temperature override
            max_tokens: Maximum tokens in response

        Returns:
            Raw text response
        """
        return await self._create(system_prompt, user_prompt, model, temperature, max_tokens)
