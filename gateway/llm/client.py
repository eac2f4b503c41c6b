"""
Language Model Client
=====================

Thin async clients for the supported text-generation providers. Both expose
the same two calls:

- ``chat(messages)``   multi-turn chat, returns the assistant reply text
- ``generate(prompt)`` single prompt, returns the completion text

Providers:
- ollama: ``POST /api/chat`` and ``POST /api/generate`` (non-streaming)
- openai: ``POST /chat/completions`` (OpenAI-compatible APIs)

Errors raise ``LLMError``; ``status_code is None`` means the provider could
not be reached.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings
from ..models import ChatMessage

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"
OLLAMA_API_BASE = "http://localhost:11434"


# =============================================================================
# Exceptions
# =============================================================================

class LLMError(Exception):
    """A provider call failed."""

    def __init__(self, provider: str, status_code: Optional[int], message: str):
        super().__init__(f"{provider} failed ({status_code}): {message}")
        self.provider = provider
        self.status_code = status_code
        self.message = message

    @property
    def is_unreachable(self) -> bool:
        return self.status_code is None


# =============================================================================
# Clients
# =============================================================================

class LLMClient(ABC):
    """
    Base class for provider clients.

    Subclasses implement ``chat`` and ``generate``; the HTTP plumbing and
    error translation live here.
    """

    provider: str = "llm"

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 60.0,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers=headers,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException:
            logger.error(
                "LLM request timeout",
                extra={"provider": self.provider, "path": path}
            )
            raise LLMError(self.provider, None, "request timeout")
        except httpx.TransportError as e:
            logger.error(
                f"LLM network error: {e}",
                extra={"provider": self.provider, "path": path}
            )
            raise LLMError(self.provider, None, "provider unreachable")

        if not response.is_success:
            logger.warning(
                f"LLM provider error: {response.status_code}",
                extra={"provider": self.provider, "status_code": response.status_code}
            )
            raise LLMError(self.provider, response.status_code, _error_text(response))

        try:
            data = response.json()
        except ValueError:
            raise LLMError(self.provider, response.status_code, "invalid JSON response")

        if not isinstance(data, dict):
            logger.warning(
                "LLM provider returned a non-object body",
                extra={"provider": self.provider, "path": path}
            )
            raise LLMError(self.provider, response.status_code, "unexpected response body")
        return data

    @abstractmethod
    async def chat(self, messages: List[ChatMessage]) -> str:
        ...

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        ...


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.reason_phrase
    if isinstance(error, str):
        return error
    return response.reason_phrase


def _text(container: Any, key: str) -> str:
    """String at ``container[key]``, or "" when the provider sent null or another type."""
    value = container.get(key) if isinstance(container, dict) else None
    return value if isinstance(value, str) else ""


class OllamaClient(LLMClient):
    """Client for a local or remote Ollama server."""

    provider = "ollama"

    async def chat(self, messages: List[ChatMessage]) -> str:
        data = await self._post(
            "/api/chat",
            {
                "model": self.model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "stream": False,
            },
        )
        return _text(data.get("message"), "content")

    async def generate(self, prompt: str) -> str:
        data = await self._post(
            "/api/generate",
            {"model": self.model, "prompt": prompt, "stream": False},
        )
        return _text(data, "response")


class OpenAIClient(LLMClient):
    """Client for the OpenAI chat completions API (or a compatible server)."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            base_url or OPENAI_API_BASE,
            model,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            http_client=http_client,
        )

    async def chat(self, messages: List[ChatMessage]) -> str:
        data = await self._post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
            },
        )
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        return _text(first.get("message") if isinstance(first, dict) else None, "content")

    async def generate(self, prompt: str) -> str:
        return await self.chat([ChatMessage(role="user", content=prompt)])


# =============================================================================
# Factory
# =============================================================================

def create_llm_client(settings: Settings) -> LLMClient:
    """
    Build the client selected by ``LLM_PROVIDER``.

    Args:
        settings: Application settings

    Returns:
        OllamaClient or OpenAIClient

    Raises:
        ValueError: If the provider is unsupported or misconfigured
    """
    provider = settings.LLM_PROVIDER

    if provider == "ollama":
        return OllamaClient(
            settings.LLM_BASE_URL or OLLAMA_API_BASE,
            settings.LLM_MODEL,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    if provider == "openai":
        if not settings.LLM_API_KEY:
            raise ValueError("LLM_API_KEY is required for the openai provider")
        return OpenAIClient(
            settings.LLM_API_KEY,
            settings.LLM_MODEL,
            base_url=settings.LLM_BASE_URL,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unsupported LLM provider: {provider}")


__all__ = [
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "OpenAIClient",
    "create_llm_client",
]
