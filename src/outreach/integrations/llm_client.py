"""OpenAI chat-completions client used to draft outreach emails."""

import asyncio
import logging
import os
from typing import Optional

import openai
from openai import OpenAI

from ..constants import DEFAULT_OPENAI_MODEL

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120


class LLMError(Exception):
    """Base exception for text-generation errors."""

    pass


class LLMAuthError(LLMError):
    """Raised when the provider rejects the API key."""

    pass


class LLMRateLimitError(LLMError):
    """Raised when the provider rate limit or quota is exceeded."""

    pass


class LLMClient:
    """Thin async wrapper around the OpenAI chat completions API.

    Attributes:
        model: Chat model identifier.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_MODEL,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            model: Chat model used for completions.
            timeout_seconds: Request timeout in seconds.

        Raises:
            ValueError: If no API key is provided or found in environment.
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key required. Set OPENAI_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self.model = model
        self._client = OpenAI(api_key=self.api_key, timeout=timeout_seconds, max_retries=0)
        logger.info("LLMClient initialized with model %s", model)

    async def complete(self, prompt: str) -> str:
        """Run a single-shot completion and return the response text.

        Args:
            prompt: Fully composed prompt.

        Returns:
            The model's text output (may be empty).

        Raises:
            LLMAuthError: If authentication fails.
            LLMRateLimitError: If rate limited or out of quota.
            LLMError: For any other provider failure.
        """
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self._client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                ),
            )
        except openai.AuthenticationError as e:
            raise LLMAuthError(f"Authentication failed: {e}") from e
        except openai.RateLimitError as e:
            raise LLMRateLimitError(f"Rate limit exceeded: {e}") from e
        except openai.OpenAIError as e:
            raise LLMError(f"Completion failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
