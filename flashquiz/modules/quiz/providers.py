"""LLM provider adapters.

Each provider has its own request shape, auth header and response envelope.
An adapter builds the request, sends it with httpx, pulls the single text
payload out of the envelope and turns failures into errors a user can act on
(bad key vs. exhausted quota vs. wrong model name) instead of a bare status.

Dispatch is a closed set: ``AIProvider`` enumerates every supported provider
and ``provider_class`` matches on it exhaustively.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, assert_never

import httpx

from flashquiz.core.config import AIProvider, AIQuizSettings
from flashquiz.core.errors import (
    ConfigurationError,
    MalformedResponseError,
    NetworkError,
    ProviderRejection,
    TruncatedResponseError,
    UnsupportedProviderError,
)
from flashquiz.core.logging import bind, get_logger

logger = get_logger(__name__)

TRUNCATION_REASONS = frozenset({"length", "max_tokens", "MAX_TOKENS", "LENGTH"})
_QUOTA_HINTS = ("quota", "billing", "credit", "insufficient")


@dataclass
class ProviderRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


@dataclass
class ProviderResponse:
    text: str
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    tokens_used: Optional[int] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def _error_payload(response: httpx.Response) -> tuple[str, str]:
    """Return ``(message, code)`` from any of the providers' error envelopes."""
    try:
        data = response.json()
    except ValueError:
        return (response.text.strip() or "Unknown error"), ""
    if not isinstance(data, dict):
        return str(data), ""
    err = data.get("error")
    if isinstance(err, dict):
        code = str(err.get("status") or err.get("code") or err.get("type") or "")
        return str(err.get("message") or err), code
    if isinstance(err, str):
        return err, ""
    if data.get("message"):
        return str(data["message"]), ""
    return str(data), ""


def _error_message(data: dict[str, Any]) -> str:
    err = data.get("error")
    if isinstance(err, dict):
        return str(err.get("message") or err)
    return str(err)


class LLMProvider(ABC):
    kind: AIProvider
    label: str

    def __init__(self, settings: AIQuizSettings) -> None:
        self.settings = settings

    @property
    @abstractmethod
    def model(self) -> str: ...

    @property
    @abstractmethod
    def base_url(self) -> str: ...

    @abstractmethod
    def check_config(self) -> None:
        """Raise ``ConfigurationError`` if credentials are missing."""

    @abstractmethod
    def build_request(self, prompt: str) -> ProviderRequest: ...

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> ProviderResponse: ...

    @property
    def system_prompt(self) -> str:
        return self.settings.effective_system_prompt

    def diagnose(self, status: int, message: str, code: str) -> str:
        """Explain a non-2xx answer in terms of what the user should fix."""
        if status == 400:
            return (
                f"{self.label} API returned 400 Bad Request: {message}. Common causes: "
                f"invalid model name (check that '{self.model}' exists), invalid "
                "parameters, or malformed request."
            )
        if status in (401, 403):
            return (
                f"{self.label} API authentication failed ({status}): {message}. "
                "Check your API key in settings."
            )
        if status == 404:
            return (
                f"{self.label} API returned 404 Not Found: {message}. Check the model "
                f"name '{self.model}' and the base URL '{self.base_url}'."
            )
        if status in (402, 429):
            hint = f"{message} {code}".lower()
            if status == 402 or any(h in hint for h in _QUOTA_HINTS):
                return (
                    f"{self.label} API quota exhausted ({status}): {message}. "
                    "Check your plan, billing details or remaining credits."
                )
            return (
                f"{self.label} API rate limit exceeded: {message}. "
                "Please wait and try again."
            )
        if status >= 500:
            return (
                f"{self.label} API is unavailable ({status}): {message}. "
                "The provider is having problems; try again later."
            )
        return f"{self.label} API request failed (status {status}): {message}"

    def _malformed(self, data: Any, e: Exception) -> MalformedResponseError:
        return MalformedResponseError(
            f"Unexpected {self.label} response format ({type(e).__name__}: {e})",
            excerpt=str(data)[:200],
        )

    async def complete(
        self, prompt: str, client: Optional[httpx.AsyncClient] = None
    ) -> ProviderResponse:
        """Send one request and return the provider's text payload."""
        self.check_config()
        request = self.build_request(prompt)
        log = bind(logger, provider=self.kind.value)
        log.debug("%s request to %s (model %s)", self.label, request.url, self.model)

        try:
            if client is not None:
                response = await client.post(
                    request.url, headers=request.headers, json=request.body
                )
            else:
                async with httpx.AsyncClient(
                    timeout=self.settings.http_timeout
                ) as own_client:
                    response = await own_client.post(
                        request.url, headers=request.headers, json=request.body
                    )
        except httpx.RequestError as e:
            raise NetworkError(self.label, str(e) or type(e).__name__) from e

        if not response.is_success:
            message, code = _error_payload(response)
            log.error("%s API error %d: %s", self.label, response.status_code, message)
            raise ProviderRejection(
                self.kind.value,
                self.diagnose(response.status_code, message, code),
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.label} returned a non-JSON response envelope",
                excerpt=response.text[:200],
            ) from e
        if not isinstance(data, dict):
            raise self._malformed(data, TypeError("envelope is not an object"))

        result = self.parse_response(data)
        log.info(
            "%s finished (reason: %s, %d characters)",
            self.label,
            result.finish_reason,
            len(result.text),
        )
        if result.finish_reason in TRUNCATION_REASONS:
            raise TruncatedResponseError(self.label, result.finish_reason)
        return result


class OpenAICompatibleProvider(LLMProvider):
    """Chat Completions envelope shared by OpenAI, OpenRouter and most gateways."""

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": prompt},
        ]

    def _body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": self._messages(prompt),
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        if "error" in data and not data.get("choices"):
            raise ProviderRejection(
                self.kind.value, f"{self.label} returned an error: {_error_message(data)}"
            )
        try:
            choice = data["choices"][0]
            message = choice["message"]
            finish_reason = choice.get("finish_reason")
            content = message.get("content")
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise self._malformed(data, e) from e

        if finish_reason == "content_filter":
            raise ProviderRejection(
                self.kind.value,
                f"{self.label} blocked the response with its content filter. "
                "Try different cards or rephrase the system prompt.",
            )
        if content is None and message.get("refusal"):
            raise ProviderRejection(
                self.kind.value, f"{self.label} refused the request: {message['refusal']}"
            )
        usage = data.get("usage") or {}
        return ProviderResponse(
            text=str(content or ""),
            model=data.get("model") or self.model,
            finish_reason=finish_reason,
            tokens_used=usage.get("total_tokens"),
            raw=data,
        )


class OpenAIProvider(OpenAICompatibleProvider):
    kind = AIProvider.OPENAI
    label = "OpenAI"

    @property
    def model(self) -> str:
        return self.settings.openai.model or "gpt-4"

    @property
    def base_url(self) -> str:
        return (self.settings.openai.base_url or "https://api.openai.com/v1").rstrip("/")

    def check_config(self) -> None:
        if not self.settings.openai.api_key:
            raise ConfigurationError("OpenAI API key not configured")

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.settings.openai.api_key}",
                "Content-Type": "application/json",
            },
            body=self._body(prompt),
        )


class OpenRouterProvider(OpenAICompatibleProvider):
    kind = AIProvider.OPENROUTER
    label = "OpenRouter"

    @property
    def model(self) -> str:
        return self.settings.openrouter.model

    @property
    def base_url(self) -> str:
        return (
            self.settings.openrouter.base_url or "https://openrouter.ai/api/v1"
        ).rstrip("/")

    def check_config(self) -> None:
        if not self.settings.openrouter.api_key:
            raise ConfigurationError(
                "OpenRouter API key not configured. Set OPENROUTER_API_KEY in your environment."
            )

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.settings.openrouter.api_key}",
                "Content-Type": "application/json",
                "X-Title": self.settings.openrouter.app_name,
            },
            body=self._body(prompt),
        )

    def diagnose(self, status: int, message: str, code: str) -> str:
        if status == 402:
            return (
                f"OpenRouter account is out of credits (402): {message}. "
                "Add credits at openrouter.ai or pick a free model."
            )
        return super().diagnose(status, message, code)


class CustomProvider(OpenAICompatibleProvider):
    """Any OpenAI-compatible endpoint, with extra headers from settings."""

    kind = AIProvider.CUSTOM
    label = "Custom API"

    @property
    def model(self) -> str:
        return self.settings.custom.model

    @property
    def base_url(self) -> str:
        return (self.settings.custom.base_url or "").rstrip("/")

    @property
    def url(self) -> str:
        endpoint = self.settings.custom.endpoint or "/chat/completions"
        if endpoint.startswith("/"):
            return f"{self.base_url}{endpoint}"
        return f"{self.base_url}/{endpoint}"

    def check_config(self) -> None:
        if not self.settings.custom.api_key or not self.settings.custom.base_url:
            raise ConfigurationError(
                "Custom API configuration incomplete: both CUSTOM_LLM_API_KEY and "
                "CUSTOM_LLM_BASE_URL are required"
            )

    def build_request(self, prompt: str) -> ProviderRequest:
        headers = {
            "Authorization": f"Bearer {self.settings.custom.api_key}",
            "Content-Type": "application/json",
            **self.settings.custom.headers,
        }
        return ProviderRequest(url=self.url, headers=headers, body=self._body(prompt))


class AnthropicProvider(LLMProvider):
    kind = AIProvider.ANTHROPIC
    label = "Anthropic"

    API_VERSION = "2023-06-01"

    @property
    def model(self) -> str:
        return self.settings.anthropic.model or "claude-3-5-sonnet-20241022"

    @property
    def base_url(self) -> str:
        return (
            self.settings.anthropic.base_url or "https://api.anthropic.com/v1"
        ).rstrip("/")

    def check_config(self) -> None:
        if not self.settings.anthropic.api_key:
            raise ConfigurationError("Anthropic API key not configured")

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/messages",
            headers={
                "x-api-key": str(self.settings.anthropic.api_key),
                "anthropic-version": self.API_VERSION,
                "Content-Type": "application/json",
            },
            body={
                "model": self.model,
                "max_tokens": self.settings.max_tokens,
                "temperature": self.settings.temperature,
                "system": self.system_prompt,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def diagnose(self, status: int, message: str, code: str) -> str:
        if status == 529 or code == "overloaded_error":
            return (
                f"Anthropic API is overloaded ({status}): {message}. "
                "Please wait a moment and try again."
            )
        if status == 400 and "credit" in message.lower():
            return (
                f"Anthropic API quota exhausted ({status}): {message}. "
                "Check your plan, billing details or remaining credits."
            )
        return super().diagnose(status, message, code)

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        try:
            blocks = data["content"]
            text = "".join(
                b.get("text", "") for b in blocks if b.get("type", "text") == "text"
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise self._malformed(data, e) from e
        stop_reason = data.get("stop_reason")
        if stop_reason == "refusal":
            raise ProviderRejection(
                self.kind.value, "Anthropic declined to answer this request (refusal)."
            )
        usage = data.get("usage") or {}
        tokens = None
        if usage:
            tokens = int(usage.get("input_tokens") or 0) + int(
                usage.get("output_tokens") or 0
            )
        return ProviderResponse(
            text=text,
            model=data.get("model") or self.model,
            finish_reason=stop_reason,
            tokens_used=tokens,
            raw=data,
        )


class GeminiProvider(LLMProvider):
    kind = AIProvider.GEMINI
    label = "Gemini"

    BLOCK_REASONS = frozenset(
        {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}
    )

    @property
    def model(self) -> str:
        return self.settings.gemini.model or "gemini-1.5-flash"

    @property
    def base_url(self) -> str:
        return (
            self.settings.gemini.base_url
            or "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")

    def check_config(self) -> None:
        if not self.settings.gemini.api_key:
            raise ConfigurationError("Gemini API key not configured")

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/models/{self.model}:generateContent",
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": str(self.settings.gemini.api_key),
            },
            body={
                "contents": [{"parts": [{"text": f"{self.system_prompt}\n\n{prompt}"}]}],
                "generationConfig": {
                    "temperature": self.settings.temperature,
                    "maxOutputTokens": self.settings.max_tokens,
                    "responseMimeType": "application/json",
                },
            },
        )

    def diagnose(self, status: int, message: str, code: str) -> str:
        if status == 404:
            return (
                f"Gemini API returned 404 Not Found: {message}. Check that the model "
                f"'{self.model}' exists; newer models may need the v1 base URL "
                "instead of v1beta."
            )
        if status == 429 and "RESOURCE_EXHAUSTED" in code.upper():
            return (
                f"Gemini API quota exhausted (429): {message}. "
                "Check your plan, billing details or wait for the quota to reset."
            )
        return super().diagnose(status, message, code)

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason")
            if reason:
                ratings = feedback.get("safetyRatings") or [{}]
                category = ratings[0].get("category") or "Unknown"
                raise ProviderRejection(
                    self.kind.value,
                    f"Gemini blocked the request: {reason}. Reason: {category}",
                )
            raise ProviderRejection(
                self.kind.value,
                "Gemini returned no response candidates. The request may have "
                "been blocked or failed.",
            )

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in self.BLOCK_REASONS:
            raise ProviderRejection(
                self.kind.value,
                f"Gemini stopped generating for {finish_reason} reasons. "
                "Try different cards or a different model.",
            )
        if finish_reason not in (None, "STOP", "FINISH_REASON_UNSPECIFIED", *TRUNCATION_REASONS):
            logger.warning("Unexpected Gemini finish reason: %s", finish_reason)

        try:
            parts = candidate["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, TypeError, AttributeError) as e:
            if finish_reason in TRUNCATION_REASONS:
                text = ""
            else:
                raise self._malformed(data, e) from e

        usage = data.get("usageMetadata") or {}
        return ProviderResponse(
            text=text,
            model=data.get("modelVersion") or self.model,
            finish_reason=finish_reason,
            tokens_used=usage.get("totalTokenCount"),
            raw=data,
        )


def provider_class(kind: AIProvider) -> type[LLMProvider]:
    match kind:
        case AIProvider.OPENAI:
            return OpenAIProvider
        case AIProvider.ANTHROPIC:
            return AnthropicProvider
        case AIProvider.GEMINI:
            return GeminiProvider
        case AIProvider.OPENROUTER:
            return OpenRouterProvider
        case AIProvider.CUSTOM:
            return CustomProvider
        case _:
            assert_never(kind)


def get_provider(
    kind: AIProvider | str | None, settings: AIQuizSettings
) -> LLMProvider:
    """Instantiate the adapter for ``kind`` (defaults to ``settings.provider``)."""
    try:
        resolved = AIProvider(kind or settings.provider)
    except ValueError as e:
        raise UnsupportedProviderError(f"Unknown AI provider: {kind}") from e
    return provider_class(resolved)(settings)


async def call_provider(
    kind: AIProvider | str | None,
    prompt: str,
    settings: AIQuizSettings,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Convenience wrapper: one request, raw text back."""
    response = await get_provider(kind, settings).complete(prompt, client=client)
    return response.text
