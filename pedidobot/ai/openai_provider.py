from __future__ import annotations

import logging

from openai import APIError, APITimeoutError, OpenAI

from pedidobot.ai.base import CompletionError
from pedidobot.core.config import (
    LLM_API_KEY,
    LLM_BASE_URL,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """Chat completions against any OpenAI-compatible endpoint (Groq by default)."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model or LLM_MODEL
        self.timeout = timeout or LLM_TIMEOUT_SECONDS
        self._client = client or OpenAI(
            api_key=api_key or LLM_API_KEY,
            base_url=base_url or LLM_BASE_URL or None,
            timeout=self.timeout,
            max_retries=0,
        )

    def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=LLM_TEMPERATURE,
                max_tokens=LLM_MAX_TOKENS,
            )
        except APITimeoutError as exc:
            logger.warning("completion timed out after %ss", self.timeout)
            raise CompletionError("completion timed out") from exc
        except APIError as exc:
            raise CompletionError(f"completion failed: {exc}") from exc

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""
