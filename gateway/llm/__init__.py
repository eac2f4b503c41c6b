"""
LLM Package

Chat and text generation through Ollama or an OpenAI-compatible API.

Modules:
- client: provider clients and create_llm_client factory
- routes: /app/llm/chat and /app/llm/generate
"""

from .client import LLMClient, LLMError, create_llm_client
from .routes import llm_router

__all__ = [
    "LLMClient",
    "LLMError",
    "create_llm_client",
    "llm_router",
]
