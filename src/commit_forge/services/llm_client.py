"""
Model Request/Response Contract

Provider-neutral request and response types, response-shape parsing, and
the default OpenAI-compatible HTTP transport.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from ..errors import ApiError, NetworkError

logger = structlog.get_logger(__name__)

MIN_MESSAGE_LENGTH = 3

MESSAGE_PREFIXES = [
    re.compile(r"^commit message:\s*", re.I),
    re.compile(r"^this is commit message:\s*", re.I),
    re.compile(r"^here is the commit message:\s*", re.I),
    re.compile(r"^the commit message is:\s*", re.I),
    re.compile(r"^suggested commit:\s*", re.I),
    re.compile(r"^commit:\s*", re.I),
]


@dataclass
class ChatMessage:
    role: str  # system, user, assistant
    content: str


@dataclass
class ModelRequest:
    """One chat-completion request."""

    provider: str
    model: str
    messages: list[ChatMessage] = field(default_factory=list)
    max_tokens: int = 500
    temperature: float = 0.6
    stream: bool = False

    def to_payload(self) -> dict[str, Any]:
        """OpenAI-compatible JSON body."""
        return {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": self.stream,
        }


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ModelResponse:
    message: str
    model: str = "unknown"
    finish_reason: str = "unknown"
    usage: TokenUsage | None = None


class ModelTransport(Protocol):
    """Anything that can turn a request into a response."""

    async def send(self, request: ModelRequest) -> ModelResponse:
        ...


def parse_model_response(data: Any, provider: str) -> ModelResponse:
    """
    Normalize the response shapes providers return.

    Accepted shapes, in order:
    1. ``choices`` array with ``message.content`` or ``text``
    2. Direct ``response`` / ``text`` / ``content`` field
    3. Top-level ``message`` as a string or ``{content}``

    Raises:
        ApiError: On an ``error`` field or when no text can be found.
    """
    if not isinstance(data, dict):
        raise ApiError(f"Invalid response format from {provider}: expected a JSON object")

    if data.get("error"):
        error = data["error"]
        if isinstance(error, dict):
            detail = error.get("message") or "Unknown API error"
        else:
            detail = str(error)
        raise ApiError(f"{provider} API error: {detail}")

    message: Any = None
    finish_reason = "unknown"

    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0]
        if not isinstance(choice, dict):
            raise ApiError(f"Invalid response format from {provider}: malformed choice")
        inner = choice.get("message")
        if isinstance(inner, dict):
            message = inner.get("content")
        if not message:
            message = choice.get("text")
        finish_reason = choice.get("finish_reason") or finish_reason
    elif data.get("response") or data.get("text") or data.get("content"):
        message = data.get("response") or data.get("text") or data.get("content")
        finish_reason = data.get("finish_reason") or "complete"
    elif data.get("message"):
        inner = data["message"]
        if isinstance(inner, str):
            message = inner
        elif isinstance(inner, dict):
            message = inner.get("content")
        else:
            raise ApiError(f"Invalid response format from {provider}: malformed message")
        finish_reason = data.get("finish_reason") or "complete"

    if not isinstance(message, str) or not message.strip():
        raise ApiError(f"Invalid response format from {provider}: no choices found")

    usage = None
    if isinstance(data.get("usage"), dict):
        raw = data["usage"]
        usage = TokenUsage(
            prompt_tokens=raw.get("prompt_tokens") or 0,
            completion_tokens=raw.get("completion_tokens") or 0,
            total_tokens=raw.get("total_tokens") or 0,
        )

    return ModelResponse(
        message=message,
        model=data.get("model") or "unknown",
        finish_reason=finish_reason,
        usage=usage,
    )


def clean_model_message(text: str, provider: str = "model") -> str:
    """Strip chatty prefixes, wrapping quotes and list markers from a reply."""
    message = text.strip().replace("\r\n", "\n")
    message = re.sub(r"\n{3,}", "\n\n", message).strip()

    for pattern in MESSAGE_PREFIXES:
        message = pattern.sub("", message)

    message = re.sub(r"^[\"'](.+)[\"']$", r"\1", message, flags=re.S)
    message = re.sub(r"^[-*]\s+", "", message).strip()

    if len(message) < MIN_MESSAGE_LENGTH:
        raise ApiError(f'Generated commit message too short from {provider}: "{message}"')

    return message


class HttpTransport:
    """OpenAI-compatible chat-completions client over httpx."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize transport.

        Args:
            base_url: API root, e.g. ``https://openrouter.ai/api/v1``
            api_key: Bearer token, omitted from headers when unset
            timeout: Request timeout in seconds
            client: Pre-built client (tests pass one with a mock transport)
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def send(self, request: ModelRequest) -> ModelResponse:
        provider = request.provider
        try:
            resp = await self._client.post("/chat/completions", json=request.to_payload())
        except httpx.TransportError as e:
            raise NetworkError(f"Network error communicating with {provider}: {e}", e) from e

        if resp.status_code >= 400:
            raise ApiError(
                f"{provider} API error ({resp.status_code}): {_error_detail(resp)}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {provider}", cause=e) from e

        response = parse_model_response(data, provider)
        logger.debug(
            "Model response received",
            provider=provider,
            model=response.model,
            finish_reason=response.finish_reason,
        )
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    return resp.text[:500]
