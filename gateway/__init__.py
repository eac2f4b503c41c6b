"""
Identity & LLM API Gateway

FastAPI service that sits between API clients and two external services:

- Ory Kratos (public API): login, registration, verification, recovery and
  settings flows, plus session validation and logout
- A language-model provider (Ollama or OpenAI-compatible) for chat and
  text generation

Packages:
- auth: session gating, Kratos client, flow body builders, flow routes
- llm: language-model client and routes
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
]
