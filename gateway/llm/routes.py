"""
LLM Routes
==========

Session-protected chat and text generation endpoints (mounted under
/api/v1/app/llm).

- POST /chat      {"messages": [{"role", "content"}]} -> {"content"}
- POST /generate  {"prompt"}                          -> {"content"}
"""

import logging

from fastapi import APIRouter, Depends, Request

from ..auth.session import require_session
from ..errors import AppError
from ..models import ChatRequest, ContentResponse, GenerateRequest, Session
from .client import LLMClient, LLMError

logger = logging.getLogger(__name__)

LANGUAGE_MODEL = "language model"

llm_router = APIRouter(
    prefix="/app/llm",
    tags=["llm"],
)


# ============================================================================
# Dependencies
# ============================================================================

def get_llm_client(request: Request) -> LLMClient:
    """
    Dependency returning the shared LLM client from app state.

    Raises:
        AppError: SERVICE_UNAVAILABLE if the client was never initialized
    """
    llm = getattr(request.app.state, "llm", None)
    if llm is None:
        raise AppError.service_unavailable(LANGUAGE_MODEL)
    return llm


def _translate(error: LLMError) -> AppError:
    if error.is_unreachable:
        return AppError.service_unavailable(LANGUAGE_MODEL, details=error.message)
    return AppError.internal("failed to generate response", details=error.message)


# ============================================================================
# Endpoints
# ============================================================================

@llm_router.post("/chat", response_model=ContentResponse)
async def chat(
    payload: ChatRequest,
    session: Session = Depends(require_session),
    llm: LLMClient = Depends(get_llm_client),
) -> ContentResponse:
    logger.info(
        "Chat request",
        extra={
            "identity_id": session.identity_id,
            "message_count": len(payload.messages),
        }
    )

    try:
        content = await llm.chat(payload.messages)
    except LLMError as e:
        raise _translate(e)

    return ContentResponse(content=content)


@llm_router.post("/generate", response_model=ContentResponse)
async def generate(
    payload: GenerateRequest,
    session: Session = Depends(require_session),
    llm: LLMClient = Depends(get_llm_client),
) -> ContentResponse:
    logger.info(
        "Generate request",
        extra={
            "identity_id": session.identity_id,
            "prompt_length": len(payload.prompt),
        }
    )

    try:
        content = await llm.generate(payload.prompt)
    except LLMError as e:
        raise _translate(e)

    return ContentResponse(content=content)
