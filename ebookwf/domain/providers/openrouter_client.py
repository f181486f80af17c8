"""OpenRouter-compatible chat completions client."""

import logging
from typing import Any

import httpx
from tenacity import (
    Retrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ebookwf.domain.constants import (
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    SYSTEM_MESSAGE,
)
from ebookwf.domain.errors import GenerationError
from ebookwf.domain.models.generation import GenerationParams
from ebookwf.domain.providers.generation_client import GenerationClient

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryableResponse(Exception):
    """Internal marker for responses worth another attempt."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RetryableResponse):
        return True
    # Timeouts are reported, not retried
    if isinstance(exc, httpx.TimeoutException):
        return False
    return isinstance(exc, httpx.TransportError)


class OpenRouterClient(GenerationClient):
    """Generation client for the OpenRouter chat completions API.

    Retries 429/5xx responses and transport errors with exponential backoff.
    A request that exceeds ``timeout_seconds`` fails with GenerationError.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 10.0,
        app_title: str = "eBook Workflow Engine",
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.app_title = app_title
        self._transport = transport

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "openrouter",
            "description": "OpenRouter chat completions API over HTTPS",
            "requires_config": True,
            "config_keys": ["api_key", "base_url", "timeout_seconds", "max_retries"],
            "default_timeout": DEFAULT_TIMEOUT_SECONDS,
        }

    def validate(self) -> None:
        if not self.api_key:
            raise GenerationError(
                "OpenRouter API key is not configured. "
                "Set OPENROUTER_API_KEY or generation.api_key in config.yml"
            )
        if self.max_retries < 1:
            raise GenerationError("max_retries must be >= 1")

    def generate(self, prompt: str, model: str, params: GenerationParams) -> str:
        self.validate()
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "top_p": params.top_p,
        }

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            reraise=False,
        )

        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response_data = retrying(self._post, client, payload)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise GenerationError(
                f"Generation failed after {self.max_retries} attempts: {last}"
            ) from last
        except httpx.TimeoutException as e:
            raise GenerationError(
                f"Generation timed out after {self.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        return self._extract_content(response_data)

    def _post(self, client: httpx.Client, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"POST {self.base_url} model={payload['model']}")
        response = client.post(self.base_url, json=payload, headers=self._headers())

        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Retryable response from generation API: {response.status_code}")
            raise RetryableResponse(response.status_code, response.text)
        if response.status_code >= 400:
            raise GenerationError(
                f"API request failed with status {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError(f"Invalid JSON in API response: {e}") from e

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.app_title,
        }

    def _extract_content(self, data: dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Unexpected API response shape: {data!r:.200}") from e

        if not isinstance(content, str) or not content.strip():
            raise GenerationError("API returned empty content")
        return content
