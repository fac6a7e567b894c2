"""
LLM Client

Chat-completions client for OpenAI-compatible APIs over httpx.

Responsibility:
    - POST {base}/chat/completions with a system + user message
    - Return the first choice's message content
    - Classify failures into LLMError with the retryable flag

Architecture Notes:
    - Infrastructure Layer (implements LLMClientProtocol)
    - One httpx.AsyncClient per instance (connection reuse); close() on shutdown
    - transport is injectable so tests run against httpx.MockTransport

Error Handling:
    - 429 with error.code "insufficient_quota" -> permanent
    - 429 (rate_limit_exceeded), 5xx, timeouts, transport errors -> retryable
    - Other 4xx -> permanent
    - Response without choices[0].message.content -> permanent (invalid_response)
"""

import logging
import os
from typing import Any, Optional

import httpx

from src.domain.shared.exceptions import LLMError

# Configure logger for this module
logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4"


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code") or error.get("type")
    return None


def classify_response_error(response: httpx.Response) -> LLMError:
    """Map a non-2xx response to LLMError."""
    status = response.status_code
    code = _error_code(response)

    if status == 429:
        if code == "insufficient_quota":
            return LLMError("LLM quota exceeded", retryable=False, code=code, status_code=status)
        return LLMError(
            "LLM rate limit exceeded",
            retryable=True,
            code=code or "rate_limit_exceeded",
            status_code=status,
        )
    if status >= 500:
        return LLMError(
            f"LLM upstream error {status}", retryable=True, code=code or "server_error", status_code=status
        )
    return LLMError(
        f"LLM request rejected with {status}", retryable=False, code=code or "bad_request", status_code=status
    )


class OpenAICompatibleClient:
    """
    LLM client for any OpenAI-compatible chat-completions endpoint.

    Examples:
        >>> client = OpenAICompatibleClient(api_key="sk-...")
        >>> text = await client.complete("Extract skills...", system="You are a resume parser.")
        >>> await client.close()
    """

    def __init__(
        self,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_MODEL)
        api_key = api_key if api_key is not None else os.getenv("LLM_API_KEY", "")
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=(api_base or os.getenv("LLM_API_BASE", DEFAULT_API_BASE)).rstrip("/"),
            headers=headers,
            timeout=timeout or float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
            transport=transport,
        )

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> str:
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.post(
                "/chat/completions",
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
            )
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM request timed out: {e}", retryable=True, code="timeout") from e
        except httpx.TransportError as e:
            raise LLMError(f"LLM transport error: {e}", retryable=True, code="transport_error") from e

        if response.is_error:
            error = classify_response_error(response)
            logger.warning(f"LLM call failed: {error} (retryable={error.retryable})")
            raise error

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(
                "LLM response has no completion content", retryable=False, code="invalid_response"
            ) from e

        logger.debug(f"LLM completion received ({len(content or '')} chars)")
        return content or ""

    async def close(self) -> None:
        await self._client.aclose()
