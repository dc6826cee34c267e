"""Mistral API client wrapper for question rewriting.

Wraps chat completion with:
- Async API calls
- Plain-text extraction from string or chunked message content
- Rate limit (429) and generic SDK error translation
"""

from __future__ import annotations

from mistralai import Mistral
from mistralai.models.sdkerror import SDKError

from qbank.rewrite.parser import response_text


class RateLimitException(Exception):
    """Raised when the backend returns 429 (Too Many Requests)."""

    pass


class BackendError(Exception):
    """Raised for any other non-successful backend response."""

    pass


class MistralRewriteClient:
    """Async wrapper around Mistral's chat completion API.

    Usage:
        client = MistralRewriteClient(api_key="...")
        text, tokens = await client.rewrite(
            user_prompt="...",
            system_prompt="...",
        )
    """

    def __init__(self, api_key: str, model: str = "mistral-large-latest") -> None:
        """Initialize the Mistral client.

        Args:
            api_key: Mistral API key.
            model: Model identifier.
        """
        self._client = Mistral(api_key=api_key)
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def rewrite(
        self,
        user_prompt: str,
        system_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> tuple[str, int]:
        """Send one rewrite request.

        Args:
            user_prompt: Per-question prompt.
            system_prompt: Fixed per-run instructions.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature.

        Returns:
            Tuple of (response_text, total_tokens_used). The text is
            returned unparsed; it may wrap the JSON payload in prose.

        Raises:
            RateLimitException: On 429 (Too Many Requests).
            BackendError: On other API errors or an empty response.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        try:
            response = await self._client.chat.complete_async(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except SDKError as e:
            if e.status_code == 429:
                raise RateLimitException(
                    f"Mistral rate limit exceeded (HTTP 429): {e}"
                ) from e
            raise BackendError(f"Mistral API error (HTTP {e.status_code}): {e}") from e

        if response is None or not response.choices:
            raise BackendError("Mistral returned no choices")

        text = response_text(response.choices[0].message.content)
        total_tokens = response.usage.total_tokens if response.usage else 0
        return text, total_tokens
