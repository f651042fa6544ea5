"""OpenAI-compatible chat completion client."""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from bizfit_api.config import Settings, get_settings
from bizfit_api.observability import log_llm_request, log_llm_response

logger = structlog.get_logger()


class OpenAIError(Exception):
    """Base exception for OpenAI client errors."""

    pass


class OpenAIAuthError(OpenAIError):
    """Raised when authentication fails."""

    pass


class OpenAIRateLimitError(OpenAIError):
    """Raised when the provider rate limit is exceeded."""

    pass


class OpenAITimeoutError(OpenAIError):
    """Raised when a request does not finish within the hard timeout."""

    pass


@dataclass
class LLMResponse:
    """Non-streaming response from the LLM."""

    content: str
    tokens_used: int
    finish_reason: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str = ""


class OpenAIClient:
    """Async client for the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ):
        """Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key. Defaults to config value.
            base_url: API base URL. Defaults to config value.
            model: Model ID to use. Defaults to config value.
            max_tokens: Default maximum tokens in a response.
            temperature: Default sampling temperature.
            timeout_seconds: Hard timeout for one request.
        """
        settings = get_settings()
        self._api_key = api_key or settings.openai_api_key
        self._base_url = base_url or settings.openai_base_url
        self._model = model or settings.llm_model
        self._max_tokens = max_tokens if max_tokens is not None else settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "OpenAIClient":
        """Enter async context."""
        await self.connect()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    async def connect(self) -> None:
        """Create the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            # Transport timeouts sit above the hard timeout enforced in chat()
            timeout=httpx.Timeout(self._timeout + 5.0, connect=10.0),
        )
        logger.info("OpenAI client connected", model=self._model)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("OpenAI client closed")

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_configured(self) -> bool:
        """Check if the client is properly configured with an API key."""
        return bool(self._api_key and self._api_key.startswith("sk-"))

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_response: bool = False,
        timeout: float | None = None,
        purpose: str = "chat",
    ) -> LLMResponse:
        """Send a system + user prompt pair and return the completion."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.chat(
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            json_response=json_response,
            timeout=timeout,
            purpose=purpose,
        )

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_response: bool = False,
        timeout: float | None = None,
        purpose: str = "chat",
    ) -> LLMResponse:
        """Send a chat completion request (non-streaming).

        The hard timeout races the request with ``asyncio.wait_for``, which
        cancels the in-flight httpx request instead of leaking it.

        Args:
            messages: Chat messages with ``role`` and ``content``.
            max_tokens: Overrides the default token budget.
            temperature: Overrides the default temperature.
            json_response: Ask the model for a JSON object response.
            timeout: Overrides the default hard timeout, in seconds.
            purpose: Label for logs and metrics.

        Returns:
            LLM response with content and token usage.

        Raises:
            OpenAIAuthError: On 401 or when no API key is configured.
            OpenAIRateLimitError: On 429.
            OpenAITimeoutError: If the request exceeds the hard timeout.
            OpenAIError: On any other HTTP, transport, or payload error.
        """
        if not self.is_configured:
            raise OpenAIAuthError("OpenAI API key not configured")

        if not self._client:
            await self.connect()

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
        }
        if json_response:
            payload["response_format"] = {"type": "json_object"}

        system_prompt = next((m["content"] for m in messages if m["role"] == "system"), "")
        user_prompt = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        request_log = log_llm_request(
            model=self._model,
            purpose=purpose,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=payload["max_tokens"],
            json_response=json_response,
        )

        hard_timeout = timeout if timeout is not None else self._timeout
        try:
            response = await asyncio.wait_for(
                self._client.post("/chat/completions", json=payload),
                timeout=hard_timeout,
            )
            response.raise_for_status()
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"].get("content") or ""
            finish_reason = choice.get("finish_reason")
            usage = data.get("usage") or {}
        except asyncio.TimeoutError:
            log_llm_response(request_log, error="timeout")
            raise OpenAITimeoutError(f"Request timed out after {hard_timeout}s") from None
        except httpx.HTTPStatusError as e:
            log_llm_response(request_log, error=f"http {e.response.status_code}")
            self._handle_http_error(e)
            raise
        except httpx.TimeoutException as e:
            log_llm_response(request_log, error="transport timeout")
            raise OpenAITimeoutError(f"Transport timeout: {e}") from e
        except httpx.RequestError as e:
            log_llm_response(request_log, error=f"network: {type(e).__name__}")
            raise OpenAIError(f"Network error: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            log_llm_response(request_log, error="malformed response")
            raise OpenAIError(f"Malformed response payload: {e}") from e

        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        tokens_used = usage.get("total_tokens", prompt_tokens + completion_tokens)

        log_llm_response(
            request_log,
            tokens_prompt=prompt_tokens,
            tokens_completion=completion_tokens,
            tokens_total=tokens_used,
            finish_reason=finish_reason or "unknown",
        )

        return LLMResponse(
            content=content,
            tokens_used=tokens_used,
            finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            model=data.get("model", self._model),
        )

    def _handle_http_error(self, error: httpx.HTTPStatusError) -> None:
        """Handle HTTP errors from the OpenAI API."""
        status = error.response.status_code
        try:
            detail = error.response.json().get("error", {}).get("message", str(error))
        except (ValueError, AttributeError):
            detail = str(error)

        logger.error("OpenAI API error", status=status, detail=detail)

        if status == 401:
            raise OpenAIAuthError(f"Authentication failed: {detail}")
        elif status == 429:
            raise OpenAIRateLimitError(f"Rate limit exceeded: {detail}")
        else:
            raise OpenAIError(f"API error ({status}): {detail}")


def create_openai_client(settings: Settings) -> OpenAIClient | None:
    """Build a client when a usable API key is configured, else None.

    A missing key routes every caller to its algorithmic or template
    fallback; it is not an error.
    """
    if not settings.has_openai_key:
        logger.warning("OpenAI API key not configured, AI features use fallbacks")
        return None
    return OpenAIClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
        timeout_seconds=settings.llm_timeout_seconds,
    )
