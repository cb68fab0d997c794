"""
Text-generation API client (Cohere-style ``/generate``).

One method, one HTTP call: no retries and no validation of the generated
text. The Stock Suggestion Client owns both.

Request::

    POST {base_url}/generate
    Authorization: Bearer <api_key>
    {"model", "prompt", "max_tokens", "temperature", "stop_sequences"}

Response::

    {"generations": [{"text": "..."}]}
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from stockswap.config import TextGenConfig
from stockswap.errors import TextGenerationFailed, TransportError

logger = logging.getLogger(__name__)


class TextGenerationClient:
    """Thin wrapper over an ``httpx.AsyncClient`` for the generate endpoint.

    Args:
        http: Async HTTP client (its timeout is the per-call budget).
        config: Text-generation settings (base URL, model, API key).
    """

    def __init__(self, http: httpx.AsyncClient, config: TextGenConfig) -> None:
        self.http = http
        self.config = config

    @property
    def enabled(self) -> bool:
        """False when no API key is configured."""
        return bool(self.config.api_key)

    async def generate(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> str:
        """Generate one completion and return its stripped text.

        Raises:
            TextGenerationFailed: No API key, non-2xx status, or no text in
                the response body.
            TransportError: Any httpx request failure.
        """
        if not self.enabled:
            raise TextGenerationFailed("No text-generation API key configured")

        payload: dict = {
            "model": self.config.model,
            "prompt": prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if stop_sequences:
            payload["stop_sequences"] = list(stop_sequences)

        url = f"{self.config.base_url.rstrip('/')}/generate"
        try:
            resp = await self.http.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise TransportError("generate", exc) from exc

        if resp.is_error:
            raise TextGenerationFailed(
                "Text generation failed", status_code=resp.status_code, body=resp.text
            )
        try:
            text = resp.json()["generations"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TextGenerationFailed(
                f"Unexpected generate response shape: {exc!r}",
                status_code=resp.status_code, body=resp.text,
            ) from exc
        if not isinstance(text, str):
            raise TextGenerationFailed("Generated text is not a string", body=resp.text)

        logger.debug("Generated %d chars.", len(text))
        return text.strip()
